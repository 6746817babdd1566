"""
Partial pseudo-F permutation test for one term given conditioning terms.

    Z = conditioning columns, X = tested columns
    R = (I − H_Z) Y                       reduced-model residuals
    X̃ = (I − H_Z) X
    F = (SS(H_X̃ R) / df1) / ((SS(R) − SS(H_X̃ R)) / df2)

Permutation: shuffle the rows of R, residualize on Z again, recompute F.
With no conditioning terms this is a plain shuffle of the (centered)
response rows.
"""

import logging
from typing import Optional

import numpy as np

from ordination.permutation import PermutationTest, SeedLike, run_permutations
from constrained.design import leftmost_independent
from constrained.variance import fitted_ss, fitted_values, projector_basis

logger = logging.getLogger(__name__)


def partial_f_test(
    response: np.ndarray,
    tested: np.ndarray,
    conditioning: np.ndarray,
    n_permutations: int,
    seed: SeedLike = None,
    n_jobs: Optional[int] = None,
) -> PermutationTest:
    """
    Permutation test of ``tested`` columns given ``conditioning`` columns.

    Parameters
    ----------
    response : np.ndarray
        (n, p) centered response.
    tested : np.ndarray
        (n, df1) centered design columns of the term under test.
    conditioning : np.ndarray
        (n, k) centered design columns already in the model (k may be 0).
    n_permutations : int
    seed : int, SeedSequence or None
    n_jobs : int, optional

    Returns
    -------
    PermutationTest. When no residual degrees of freedom remain the
    statistic is NaN and the p-value is 1.
    """
    n = response.shape[0]
    qz = projector_basis(conditioning)
    # Tested columns independent of the conditioning terms and of each other
    k = conditioning.shape[1]
    scan = leftmost_independent(np.column_stack([conditioning, tested]))
    keep = [j - k for j in scan if j >= k]
    residual_x = tested - fitted_values(qz, tested)
    df1 = len(keep)
    df2 = n - 1 - k - df1
    if df1 == 0 or df2 <= 0:
        logger.debug("partial F untestable: df1=%d df2=%d", df1, df2)
        return PermutationTest(statistic=float('nan'), p_value=1.0,
                               n_permutations=0, n_exceed=0)

    reduced = response - fitted_values(qz, response)
    qx = projector_basis(residual_x[:, keep])

    def _f(resid: np.ndarray) -> float:
        resid = resid - fitted_values(qz, resid)
        ss_x = fitted_ss(qx, resid)
        ss_r = float(np.sum(resid ** 2)) - ss_x
        if ss_r <= 0:
            return float('inf')
        return (ss_x / df1) / (ss_r / df2)

    observed = _f(reduced)
    return run_permutations(
        statistic=lambda order: _f(reduced[order]),
        observed=observed,
        n_obs=n,
        n_permutations=n_permutations,
        seed=seed,
        n_jobs=n_jobs,
    )
