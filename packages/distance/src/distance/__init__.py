"""
Distance package.

Converts an observation × variable table into a pairwise dissimilarity
matrix under a named transform (e.g. Hellinger) and metric (e.g. Euclidean).

Transform-then-Euclidean is the bridge between raw community tables and
linear ordination: Hellinger + Euclidean gives the Hellinger distance,
chord + Euclidean the chord distance.
"""

from distance.transforms import Transform, transform, transform_values
from distance.compute import Metric, compute

__all__ = [
    'Transform',
    'Metric',
    'transform',
    'transform_values',
    'compute',
]
