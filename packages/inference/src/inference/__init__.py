"""
Group-difference tests on multivariate data.

    hotelling_t2  two groups, parametric, on an ObservationTable
    manova        ≥ 2 groups, parametric, on an ObservationTable
    permanova     ≥ 2 groups, permutation-based, on a DissimilarityMatrix
"""

from inference.groups import encode_groups
from inference.hotelling import HotellingResult, hotelling_t2
from inference.manova import ManovaResult, manova
from inference.permanova import PermanovaResult, permanova

__all__ = [
    'encode_groups',
    'HotellingResult',
    'hotelling_t2',
    'ManovaResult',
    'manova',
    'PermanovaResult',
    'permanova',
]
