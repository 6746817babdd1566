"""
Design matrix construction for constrained ordination.

Predictor frame → encoded columns → centered → collinear columns removed.

Numeric columns are used as-is. String, categorical, enum and boolean
columns become indicator columns named "<variable>[<level>]", levels
sorted, first level dropped as reference.

Collinearity is resolved by a leftmost-first scan: a column whose residual
on the columns already kept is numerically zero is redundant.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import polars as pl

from ordination.config import get_setting
from ordination.errors import InvalidInputError, RankDeficiencyError
from ordination.table import ObservationTable

logger = logging.getLogger(__name__)

_CATEGORICAL = (pl.Utf8, pl.Categorical, pl.Boolean)


@dataclass(frozen=True)
class DesignMatrix:
    """Centered, full-column-rank design."""
    values: np.ndarray                          # (n_observations, n_columns)
    columns: Tuple[str, ...]
    variables: Tuple[str, ...]                  # original variables with ≥ 1 kept column
    variable_columns: Dict[str, Tuple[str, ...]]
    dropped: Tuple[str, ...]

    @property
    def rank(self) -> int:
        return self.values.shape[1]

    def column_indices(self, variables: Sequence[str]) -> List[int]:
        wanted = set()
        for v in variables:
            wanted.update(self.variable_columns.get(v, ()))
        return [j for j, c in enumerate(self.columns) if c in wanted]


def _is_categorical(dtype) -> bool:
    return isinstance(dtype, pl.Enum) or any(dtype == d for d in _CATEGORICAL)


def as_predictor_frame(
    predictors,
    response: ObservationTable,
    row_id_column: Optional[str] = None,
) -> pl.DataFrame:
    """
    Normalize predictors to a polars frame aligned row-for-row with ``response``.

    Parameters
    ----------
    predictors : pl.DataFrame, ObservationTable or None
        None (or a frame without columns) is the null model.
    row_id_column : str, optional
        Frame column with row ids; rows are reordered to match the response
        and the id column is removed.
    """
    n = response.n_rows
    if predictors is None:
        return pl.DataFrame()

    if isinstance(predictors, ObservationTable):
        if predictors.row_ids != response.row_ids:
            if set(predictors.row_ids) != set(response.row_ids):
                raise InvalidInputError("predictor and response row ids differ")
            position = {rid: i for i, rid in enumerate(predictors.row_ids)}
            predictors = predictors.take_rows([position[rid] for rid in response.row_ids])
        return predictors.to_polars(id_column='__id__').drop('__id__')

    if not isinstance(predictors, pl.DataFrame):
        raise InvalidInputError(
            f"predictors must be a polars DataFrame or ObservationTable, got {type(predictors).__name__}"
        )
    if predictors.width == 0:
        return pl.DataFrame()

    if row_id_column is not None:
        if row_id_column not in predictors.columns:
            raise InvalidInputError(f"row id column {row_id_column!r} not in predictors")
        ids = [str(v) for v in predictors.get_column(row_id_column).to_list()]
        if len(set(ids)) != len(ids):
            raise InvalidInputError("predictor row ids must be unique")
        missing = sorted(set(response.row_ids) - set(ids))
        if missing:
            raise InvalidInputError(f"predictors missing rows for ids: {missing}")
        position = {rid: i for i, rid in enumerate(ids)}
        order = [position[rid] for rid in response.row_ids]
        predictors = predictors.select(pl.all().gather(order)).drop(row_id_column)

    if predictors.height != n:
        raise InvalidInputError(
            f"predictors have {predictors.height} rows, response has {n}"
        )
    return predictors


def encode(frame: pl.DataFrame) -> Tuple[np.ndarray, List[str], List[str]]:
    """
    Encode a predictor frame as raw (uncentered) numeric columns.

    Returns
    -------
    values : (n, n_encoded) array
    columns : encoded column names
    owners : original variable of each encoded column
    """
    blocks, columns, owners = [], [], []
    for name in frame.columns:
        series = frame.get_column(name)
        if series.null_count():
            raise InvalidInputError(f"predictor {name!r} has missing values")
        dtype = series.dtype

        if dtype.is_numeric():
            values = series.cast(pl.Float64).to_numpy()
            if not np.all(np.isfinite(values)):
                raise InvalidInputError(f"predictor {name!r} has non-finite values")
            blocks.append(values.reshape(-1, 1))
            columns.append(name)
            owners.append(name)
        elif _is_categorical(dtype):
            labels = np.array([str(v) for v in series.to_list()])
            levels = sorted(set(labels.tolist()))
            # A single-level factor yields one constant column that the rank
            # scan drops
            used = levels[1:] if len(levels) > 1 else levels
            for level in used:
                blocks.append((labels == level).astype(np.float64).reshape(-1, 1))
                columns.append(f"{name}[{level}]")
                owners.append(name)
        else:
            raise InvalidInputError(f"predictor {name!r} has unsupported dtype {dtype}")

    if not blocks:
        return np.zeros((frame.height, 0)), [], []
    return np.hstack(blocks), columns, owners


def leftmost_independent(
    matrix: np.ndarray,
    tol: Optional[float] = None,
    reference: Optional[np.ndarray] = None,
) -> List[int]:
    """
    Indices of columns kept by a leftmost-first independence scan.

    Modified Gram-Schmidt with one re-orthogonalization pass. A column is
    redundant when its residual norm is below tol × its own norm, so
    columns in very different units are judged alike.

    A column is zero when its norm is exactly zero or, when ``reference``
    norms are given (e.g. of the columns before centering), at most
    tolerance.variance × its reference norm.
    """
    if tol is None:
        tol = get_setting('tolerance.rank')
    zero_tol = get_setting('tolerance.variance')
    n = matrix.shape[0]
    basis = np.zeros((n, 0))
    keep = []

    for j in range(matrix.shape[1]):
        col = matrix[:, j].astype(np.float64)
        norm = float(np.linalg.norm(col))
        floor = zero_tol * float(reference[j]) if reference is not None else 0.0
        if norm <= floor:
            continue
        resid = col
        for _ in range(2):
            resid = resid - basis @ (basis.T @ resid)
        rnorm = float(np.linalg.norm(resid))
        if rnorm <= tol * norm:
            continue
        basis = np.column_stack([basis, resid / rnorm])
        keep.append(j)

    return keep


def build_design(frame: pl.DataFrame, drop_collinear: bool = False) -> DesignMatrix:
    """
    Build the centered, full-rank design matrix.

    Raises
    ------
    RankDeficiencyError
        Redundant columns found and ``drop_collinear`` is False. The error's
        ``dropped`` attribute names them.
    """
    raw, columns, owners = encode(frame)
    centered = raw - raw.mean(axis=0) if raw.shape[1] else raw

    keep = leftmost_independent(centered, reference=np.linalg.norm(raw, axis=0))
    dropped = tuple(c for j, c in enumerate(columns) if j not in set(keep))

    if dropped:
        if not drop_collinear:
            raise RankDeficiencyError(
                f"design matrix is rank deficient; redundant columns: {list(dropped)}",
                dropped=dropped,
            )
        logger.warning("dropping collinear predictor columns: %s", list(dropped))

    kept_columns = tuple(columns[j] for j in keep)
    variable_columns: Dict[str, Tuple[str, ...]] = {}
    for j in keep:
        variable_columns.setdefault(owners[j], ())
        variable_columns[owners[j]] += (columns[j],)
    variables = tuple(v for v in dict.fromkeys(owners) if v in variable_columns)

    return DesignMatrix(
        values=centered[:, keep],
        columns=kept_columns,
        variables=variables,
        variable_columns=variable_columns,
        dropped=dropped,
    )
