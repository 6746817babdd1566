"""
Shared core for the ordination packages.

Holds what every stage agrees on: the input tables, the result types,
the error taxonomy, numeric configuration and the permutation engine.
No decomposition math lives here.
"""

from ordination.errors import (
    OrdinationError,
    InvalidInputError,
    DegenerateInputError,
    RankDeficiencyError,
)
from ordination.table import ObservationTable, DissimilarityMatrix, constant_columns
from ordination.results import Axis, OrdinationResult, ConstrainedOrdinationResult
from ordination.config import CONFIG, get_setting, load_config, validate_config
from ordination.permutation import PermutationTest, run_permutations, as_seed_sequence

__all__ = [
    'OrdinationError',
    'InvalidInputError',
    'DegenerateInputError',
    'RankDeficiencyError',
    'ObservationTable',
    'DissimilarityMatrix',
    'constant_columns',
    'Axis',
    'OrdinationResult',
    'ConstrainedOrdinationResult',
    'CONFIG',
    'get_setting',
    'load_config',
    'validate_config',
    'PermutationTest',
    'run_permutations',
    'as_seed_sequence',
]
