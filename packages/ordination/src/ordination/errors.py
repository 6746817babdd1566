"""
Error taxonomy shared by every ordination package.

Errors are raised where they are detected and never retried. They describe
caller mistakes or unusable data, so a failing computation returns nothing
rather than a partially filled result.
"""

from typing import Sequence


class OrdinationError(Exception):
    """Base class for all ordination errors."""


class InvalidInputError(OrdinationError, ValueError):
    """Malformed or insufficient input shape / values."""


class DegenerateInputError(OrdinationError, ValueError):
    """Zero variance or zero rank where structure is required."""


class RankDeficiencyError(OrdinationError, ValueError):
    """Collinear predictors: the design matrix is not full column rank.

    ``dropped`` lists the design columns a leftmost-first scan would drop
    to restore full rank.
    """

    def __init__(self, message: str, dropped: Sequence[str] = ()):
        super().__init__(message)
        self.dropped = tuple(dropped)
