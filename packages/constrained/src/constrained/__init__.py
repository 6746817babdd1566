"""
Constrained ordination package (redundancy analysis).

Regresses the response on the predictors, decomposes the fitted values into
constrained axes and the residuals into unconstrained axes, and partitions
total inertia between them.

Predictors may mix numeric and categorical columns; categorical columns are
expanded to indicators with the first (sorted) level as reference.
Collinear design columns raise RankDeficiencyError, or are dropped
leftmost-first on request.
"""

from constrained.design import DesignMatrix, as_predictor_frame, build_design, encode
from constrained.rda import fit, prepare_response
from constrained.variance import adjusted_r_squared, r_squared

__all__ = [
    'DesignMatrix',
    'as_predictor_frame',
    'build_design',
    'encode',
    'fit',
    'prepare_response',
    'adjusted_r_squared',
    'r_squared',
]
