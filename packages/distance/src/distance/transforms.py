"""
Row and column transforms applied to an observation table before
distances are computed (or before a transformation-based RDA).

Row-wise: total, hellinger, chord, log, pa.
Column-wise: max, standardize.
"""

import logging
from enum import Enum

import numpy as np

from ordination.errors import InvalidInputError
from ordination.table import ObservationTable, constant_columns

logger = logging.getLogger(__name__)


class Transform(str, Enum):
    NONE = 'none'
    TOTAL = 'total'             # row proportions
    HELLINGER = 'hellinger'     # sqrt of row proportions
    CHORD = 'chord'             # row / row Euclidean norm
    LOG = 'log'                 # log(1 + x)
    PA = 'pa'                   # presence / absence
    MAX = 'max'                 # column / column maximum
    STANDARDIZE = 'standardize' # column z-score

    @classmethod
    def parse(cls, name) -> "Transform":
        if isinstance(name, cls):
            return name
        key = str(name).strip().lower()
        aliases = {'proportion': 'total', 'relative': 'total', 'presence': 'pa'}
        key = aliases.get(key, key)
        try:
            return cls(key)
        except ValueError:
            valid = [t.value for t in cls]
            raise InvalidInputError(f"unknown transform {name!r}; expected one of {valid}") from None


NON_NEGATIVE_TRANSFORMS = {Transform.TOTAL, Transform.HELLINGER, Transform.PA, Transform.LOG}


def _require_non_negative(values: np.ndarray, what: str) -> None:
    if np.any(values < 0):
        rows = np.where(np.any(values < 0, axis=1))[0]
        raise InvalidInputError(f"{what} requires non-negative values; negative entries in rows {rows.tolist()}")


def _row_totals(values: np.ndarray, table: ObservationTable, what: str) -> np.ndarray:
    totals = values.sum(axis=1)
    empty = np.where(totals <= 0)[0]
    if len(empty):
        ids = [table.row_ids[i] for i in empty]
        raise InvalidInputError(f"{what} undefined for rows summing to zero: {ids}")
    return totals


def transform_values(table: ObservationTable, transform) -> np.ndarray:
    """Transformed values as a plain array."""
    transform = Transform.parse(transform)
    values = np.array(table.values, dtype=np.float64)

    if transform in NON_NEGATIVE_TRANSFORMS:
        _require_non_negative(values, f"{transform.value} transform")

    if transform is Transform.NONE:
        return values

    if transform is Transform.TOTAL:
        return values / _row_totals(values, table, 'total transform')[:, None]

    if transform is Transform.HELLINGER:
        return np.sqrt(values / _row_totals(values, table, 'hellinger transform')[:, None])

    if transform is Transform.CHORD:
        norms = np.linalg.norm(values, axis=1)
        zero = np.where(norms <= 0)[0]
        if len(zero):
            ids = [table.row_ids[i] for i in zero]
            raise InvalidInputError(f"chord transform undefined for all-zero rows: {ids}")
        return values / norms[:, None]

    if transform is Transform.LOG:
        return np.log1p(values)

    if transform is Transform.PA:
        return (values > 0).astype(np.float64)

    if transform is Transform.MAX:
        col_max = values.max(axis=0)
        zero = np.where(col_max <= 0)[0]
        if len(zero):
            ids = [table.column_ids[j] for j in zero]
            raise InvalidInputError(f"max transform undefined for columns with non-positive maximum: {ids}")
        return values / col_max[None, :]

    # STANDARDIZE
    if table.n_rows < 2:
        raise InvalidInputError("standardize transform needs at least 2 rows")
    flat = constant_columns(values)
    if len(flat):
        ids = [table.column_ids[j] for j in flat]
        raise InvalidInputError(f"standardize transform undefined for zero-variance columns: {ids}")
    return (values - values.mean(axis=0)) / values.std(axis=0, ddof=1)


def transform(table: ObservationTable, name='none') -> ObservationTable:
    """
    Apply a named transform and return a new table with the same ids.

    Parameters
    ----------
    table : ObservationTable
    name : str or Transform
        none, total, hellinger, chord, log, pa, max, standardize.
    """
    t = Transform.parse(name)
    logger.debug("transform %s on %dx%d table", t.value, table.n_rows, table.n_columns)
    return table.with_values(transform_values(table, t))
