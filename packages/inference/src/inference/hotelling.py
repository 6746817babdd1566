"""
Two-sample Hotelling's T².

    T² = n1·n2 / (n1 + n2) · dᵀ S_pooled⁻¹ d
    F  = (n1 + n2 − p − 1) / (p · (n1 + n2 − 2)) · T²   ~ F(p, n1 + n2 − p − 1)
"""

from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np
from scipy import stats

from ordination.errors import DegenerateInputError, InvalidInputError
from ordination.table import ObservationTable
from inference.groups import encode_groups


@dataclass(frozen=True)
class HotellingResult:
    t2: float
    f: float
    df1: int
    df2: int
    p_value: float
    groups: Tuple[str, str]
    mean_difference: np.ndarray     # mean(group 1) − mean(group 0), per variable


def pooled_covariance(values: np.ndarray, codes: np.ndarray, n_groups: int) -> np.ndarray:
    """Within-group covariance pooled over groups (ddof = n − g)."""
    p = values.shape[1]
    scatter = np.zeros((p, p))
    for g in range(n_groups):
        block = values[codes == g]
        centered = block - block.mean(axis=0)
        scatter += centered.T @ centered
    return scatter / (len(values) - n_groups)


def hotelling_t2(table: ObservationTable, groups: Sequence) -> HotellingResult:
    """
    Test equality of two multivariate group means.

    Parameters
    ----------
    table : ObservationTable
        (n_observations, p) response.
    groups : sequence
        Exactly two distinct labels, one per observation.

    Raises
    ------
    InvalidInputError
        Not exactly two groups, or too few observations for p variables.
    DegenerateInputError
        Singular pooled covariance.
    """
    values = np.asarray(table.values, dtype=np.float64)
    n, p = values.shape
    codes, levels = encode_groups(groups, n)
    if len(levels) != 2:
        raise InvalidInputError(f"Hotelling's T² compares exactly 2 groups, got {len(levels)}")

    n1 = int(np.sum(codes == 0))
    n2 = int(np.sum(codes == 1))
    df2 = n1 + n2 - p - 1
    if df2 <= 0:
        raise InvalidInputError(f"need more than {p + 1} observations for {p} variables, got {n}")

    pooled = pooled_covariance(values, codes, 2)
    if np.linalg.matrix_rank(pooled) < p:
        raise DegenerateInputError("pooled covariance matrix is singular")

    diff = values[codes == 1].mean(axis=0) - values[codes == 0].mean(axis=0)
    t2 = float(n1 * n2 / (n1 + n2) * diff @ np.linalg.solve(pooled, diff))
    f = df2 / (p * (n1 + n2 - 2)) * t2

    return HotellingResult(
        t2=t2,
        f=float(f),
        df1=p,
        df2=df2,
        p_value=float(stats.f.sf(f, p, df2)),
        groups=(levels[0], levels[1]),
        mean_difference=diff,
    )
