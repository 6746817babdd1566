"""
Eigendecomposition package.

Unconstrained ordination of one input:
  ObservationTable     → PCA (center, optionally scale, SVD)
  DissimilarityMatrix  → PCoA (Gower double-centering, eigh)

Output: ranked orthogonal axes with eigenvalues, explained fractions,
observation scores and (PCA) variable loadings.
"""

from eigendecomp.decompose import (
    decompose,
    pca,
    pcoa,
    svd_axes,
    gower_center,
)
from eigendecomp.continuity import orient_axes, align_axes
from eigendecomp.flatten import flatten_result, axes_frame, scores_frame

__all__ = [
    'decompose',
    'pca',
    'pcoa',
    'svd_axes',
    'gower_center',
    'orient_axes',
    'align_axes',
    'flatten_result',
    'axes_frame',
    'scores_frame',
]
