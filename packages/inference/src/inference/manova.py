"""
One-way MANOVA.

Eigenvalues λ of E⁻¹H (H = between-group SSCP, E = within-group SSCP)
give the four classical statistics; F approximations follow the usual
Rao / Pillai / McKeon forms.
"""

import logging
from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np
import polars as pl
from scipy import linalg, stats

from ordination.errors import DegenerateInputError, InvalidInputError
from ordination.table import ObservationTable
from inference.groups import encode_groups

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ManovaResult:
    statistics: pl.DataFrame        # test, statistic, approx_f, df1, df2, p_value
    eigenvalues: np.ndarray         # of E⁻¹H, descending
    hypothesis_sscp: np.ndarray
    error_sscp: np.ndarray
    df_hypothesis: int
    df_error: int
    groups: Tuple[str, ...]

    def statistic(self, test: str) -> dict:
        rows = self.statistics.filter(pl.col('test') == test).to_dicts()
        if not rows:
            raise KeyError(test)
        return rows[0]


def sscp_matrices(values: np.ndarray, codes: np.ndarray, n_groups: int) -> Tuple[np.ndarray, np.ndarray]:
    """Between-group (H) and within-group (E) sums of squares and cross-products."""
    grand = values.mean(axis=0)
    p = values.shape[1]
    h = np.zeros((p, p))
    e = np.zeros((p, p))
    for g in range(n_groups):
        block = values[codes == g]
        mean = block.mean(axis=0)
        d = (mean - grand)[:, None]
        h += len(block) * (d @ d.T)
        centered = block - mean
        e += centered.T @ centered
    return h, e


def _wilks(eig, p, q, df_res):
    test = float(np.prod(1.0 / (1.0 + eig)))
    tmp1 = df_res - 0.5 * (p - q + 1)
    tmp2 = (p * q - 2) / 4.0
    tmp3 = p ** 2 + q ** 2 - 5
    tmp3 = np.sqrt(((p * q) ** 2 - 4) / tmp3) if tmp3 > 0 else 1.0
    df1 = p * q
    df2 = tmp1 * tmp3 - 2 * tmp2
    f = (test ** (-1.0 / tmp3) - 1.0) * df2 / df1
    return test, f, df1, df2


def _pillai(eig, p, q, df_res):
    test = float(np.sum(eig / (1.0 + eig)))
    s = min(p, q)
    m = 0.5 * (abs(p - q) - 1)
    n = 0.5 * (df_res - p - 1)
    tmp1 = 2 * m + s + 1
    tmp2 = 2 * n + s + 1
    f = (tmp2 / tmp1 * test) / (s - test) if s - test > 0 else float('inf')
    return test, f, s * tmp1, s * tmp2


def _hotelling_lawley(eig, p, q, df_res):
    test = float(np.sum(eig))
    s = min(p, q)
    m = 0.5 * (abs(p - q) - 1)
    n = 0.5 * (df_res - p - 1)
    tmp1 = 2 * m + s + 1
    tmp2 = 2 * (s * n + 1)
    return test, (tmp2 * test) / s / s / tmp1, s * tmp1, tmp2


def _roy(eig, p, q, df_res):
    test = float(np.max(eig))
    tmp1 = max(p, q)
    tmp2 = df_res - tmp1 + q
    return test, (tmp2 * test) / tmp1, tmp1, tmp2


_TESTS = [
    ('wilks', _wilks),
    ('pillai', _pillai),
    ('hotelling_lawley', _hotelling_lawley),
    ('roy', _roy),
]


def manova(table: ObservationTable, groups: Sequence) -> ManovaResult:
    """
    One-way MANOVA of a multivariate response on a grouping factor.

    Parameters
    ----------
    table : ObservationTable
        (n_observations, p) response.
    groups : sequence
        Group label per observation (≥ 2 groups).

    Raises
    ------
    InvalidInputError
        Too few groups / members, or fewer error degrees of freedom than
        response variables.
    DegenerateInputError
        Within-group SSCP matrix is singular.
    """
    values = np.asarray(table.values, dtype=np.float64)
    n, p = values.shape
    codes, levels = encode_groups(groups, n)
    q = len(levels) - 1
    df_res = n - len(levels)
    if df_res < p:
        raise InvalidInputError(f"{p} response variables need at least {p} error degrees of freedom, got {df_res}")

    h, e = sscp_matrices(values, codes, len(levels))
    if np.linalg.matrix_rank(e) < p:
        raise DegenerateInputError("within-group SSCP matrix is singular")

    # Generalized symmetric problem H v = λ E v
    eig = linalg.eigh(h, e, eigvals_only=True)
    eig = np.clip(np.sort(eig)[::-1], 0.0, None)

    rows = {'test': [], 'statistic': [], 'approx_f': [], 'df1': [], 'df2': [], 'p_value': []}
    for name, fn in _TESTS:
        test, f, df1, df2 = fn(eig, p, q, df_res)
        rows['test'].append(name)
        rows['statistic'].append(float(test))
        rows['approx_f'].append(float(f))
        rows['df1'].append(float(df1))
        rows['df2'].append(float(df2))
        rows['p_value'].append(float(stats.f.sf(f, df1, df2)))

    logger.debug("MANOVA n=%d p=%d groups=%d", n, p, len(levels))

    return ManovaResult(
        statistics=pl.DataFrame(rows),
        eigenvalues=eig,
        hypothesis_sscp=h,
        error_sscp=e,
        df_hypothesis=q,
        df_error=df_res,
        groups=tuple(levels),
    )
