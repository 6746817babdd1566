"""
In-memory tables consumed by the ordination stages.

ObservationTable: observations (rows) × numeric variables (columns).
DissimilarityMatrix: square, symmetric, zero-diagonal, non-negative.

Both are frozen and hold read-only arrays. Validation happens once, at
construction, and raises InvalidInputError.
"""

from collections import Counter
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
import polars as pl

from ordination.config import get_setting
from ordination.errors import InvalidInputError


def _readonly(values: np.ndarray) -> np.ndarray:
    values = np.array(values, dtype=np.float64, copy=True)
    values.setflags(write=False)
    return values


def constant_columns(values: np.ndarray, tol: Optional[float] = None) -> np.ndarray:
    """
    Indices of columns with no variance.

    A column is constant when its standard deviation is at most tol × its
    largest |value|, so the test does not depend on the units of the data.
    An all-zero column is always constant.
    """
    if tol is None:
        tol = get_setting('tolerance.variance')
    values = np.asarray(values, dtype=np.float64)
    if values.shape[0] < 2:
        return np.arange(values.shape[1])
    spread = values.std(axis=0, ddof=1)
    magnitude = np.abs(values).max(axis=0)
    return np.where(spread <= tol * magnitude)[0]


def _check_ids(ids: Sequence[str], expected: int, what: str) -> Tuple[str, ...]:
    ids = tuple(str(i) for i in ids)
    if len(ids) != expected:
        raise InvalidInputError(f"{what}: expected {expected} identifiers, got {len(ids)}")
    if len(set(ids)) != len(ids):
        dupes = sorted(i for i, count in Counter(ids).items() if count > 1)
        raise InvalidInputError(f"{what}: identifiers must be unique, duplicated: {dupes}")
    return ids


@dataclass(frozen=True)
class ObservationTable:
    """Numeric observation × variable table with unique row / column ids."""
    values: np.ndarray
    row_ids: Tuple[str, ...]
    column_ids: Tuple[str, ...]

    def __post_init__(self):
        values = np.asarray(self.values)
        if values.ndim != 2:
            raise InvalidInputError(f"table must be 2-D, got shape {values.shape}")
        if not np.issubdtype(values.dtype, np.number) and values.dtype != np.bool_:
            raise InvalidInputError(f"table must be numeric, got dtype {values.dtype}")
        values = values.astype(np.float64)
        if not np.all(np.isfinite(values)):
            raise InvalidInputError("table contains missing or non-finite values")
        n, p = values.shape
        object.__setattr__(self, 'values', _readonly(values))
        object.__setattr__(self, 'row_ids', _check_ids(self.row_ids, n, 'row_ids'))
        object.__setattr__(self, 'column_ids', _check_ids(self.column_ids, p, 'column_ids'))

    @classmethod
    def from_array(
        cls,
        values,
        row_ids: Optional[Sequence[str]] = None,
        column_ids: Optional[Sequence[str]] = None,
    ) -> "ObservationTable":
        """Build from an array-like; missing ids become row_0… / col_0…."""
        values = np.asarray(values, dtype=np.float64)
        if values.ndim == 1:
            values = values.reshape(-1, 1)
        if values.ndim != 2:
            raise InvalidInputError(f"table must be 2-D, got shape {values.shape}")
        n, p = values.shape
        if row_ids is None:
            row_ids = [f"row_{i}" for i in range(n)]
        if column_ids is None:
            column_ids = [f"col_{j}" for j in range(p)]
        return cls(values, tuple(row_ids), tuple(column_ids))

    @classmethod
    def from_polars(cls, df: pl.DataFrame, id_column: Optional[str] = None) -> "ObservationTable":
        """
        Build from a polars DataFrame.

        Parameters
        ----------
        df : pl.DataFrame
            Every column except ``id_column`` must be numeric.
        id_column : str, optional
            Column holding row identifiers. Row positions are used otherwise.
        """
        if id_column is not None:
            if id_column not in df.columns:
                raise InvalidInputError(f"id column {id_column!r} not in frame")
            row_ids = [str(v) for v in df.get_column(id_column).to_list()]
            df = df.drop(id_column)
        else:
            row_ids = [f"row_{i}" for i in range(df.height)]

        non_numeric = [c for c, dt in zip(df.columns, df.dtypes) if not dt.is_numeric()]
        if non_numeric:
            raise InvalidInputError(f"non-numeric columns in observation table: {non_numeric}")
        if df.null_count().sum_horizontal().item() > 0:
            raise InvalidInputError("table contains missing values")

        return cls(df.to_numpy().astype(np.float64), tuple(row_ids), tuple(df.columns))

    @property
    def shape(self) -> Tuple[int, int]:
        return self.values.shape

    @property
    def n_rows(self) -> int:
        return self.values.shape[0]

    @property
    def n_columns(self) -> int:
        return self.values.shape[1]

    def with_values(self, values: np.ndarray) -> "ObservationTable":
        """Same identifiers, new values (e.g. after a transform)."""
        return ObservationTable(values, self.row_ids, self.column_ids)

    def take_rows(self, order: Sequence[int]) -> "ObservationTable":
        """Reorder rows (ids travel with their rows)."""
        order = np.asarray(order, dtype=int)
        return ObservationTable(
            self.values[order],
            tuple(self.row_ids[i] for i in order),
            self.column_ids,
        )

    def to_polars(self, id_column: str = 'id') -> pl.DataFrame:
        data = {id_column: list(self.row_ids)}
        for j, name in enumerate(self.column_ids):
            data[name] = self.values[:, j]
        return pl.DataFrame(data)


@dataclass(frozen=True)
class DissimilarityMatrix:
    """Pairwise dissimilarities between the rows of an ObservationTable."""
    values: np.ndarray
    ids: Tuple[str, ...]
    transform: str = 'none'
    metric: str = 'euclidean'

    def __post_init__(self):
        values = np.asarray(self.values, dtype=np.float64)
        if values.ndim != 2 or values.shape[0] != values.shape[1]:
            raise InvalidInputError(f"dissimilarity matrix must be square, got shape {values.shape}")
        if values.shape[0] < 2:
            raise InvalidInputError("dissimilarity matrix needs at least 2 observations")
        if not np.all(np.isfinite(values)):
            raise InvalidInputError("dissimilarity matrix contains non-finite values")

        tol = get_setting('tolerance.symmetry')
        if np.any(values < -tol):
            raise InvalidInputError("dissimilarities must be non-negative")
        if not np.allclose(values, values.T, atol=tol, rtol=0.0):
            raise InvalidInputError("dissimilarity matrix must be symmetric")
        if np.any(np.abs(np.diag(values)) > tol):
            raise InvalidInputError("dissimilarity matrix must have a zero diagonal")

        # Snap numerical noise so downstream code sees an exact metric layout
        values = np.clip((values + values.T) / 2.0, 0.0, None)
        np.fill_diagonal(values, 0.0)

        object.__setattr__(self, 'values', _readonly(values))
        object.__setattr__(self, 'ids', _check_ids(self.ids, values.shape[0], 'ids'))

    @classmethod
    def from_array(cls, values, ids: Optional[Sequence[str]] = None,
                   transform: str = 'none', metric: str = 'euclidean') -> "DissimilarityMatrix":
        values = np.asarray(values, dtype=np.float64)
        if ids is None:
            ids = [f"row_{i}" for i in range(values.shape[0])]
        return cls(values, tuple(ids), transform, metric)

    @property
    def n(self) -> int:
        return self.values.shape[0]

    def condensed(self) -> np.ndarray:
        """Upper-triangle entries, row-major (scipy's condensed form)."""
        iu = np.triu_indices(self.n, k=1)
        return self.values[iu]
