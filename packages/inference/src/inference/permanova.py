"""
PERMANOVA (permutational multivariate analysis of variance).

Partitions squared dissimilarities into between- and within-group sums
of squares:

    SS_T = (1/N) · Σ_{i<j} d²_ij
    SS_W = Σ_g (1/n_g) · Σ_{i<j ∈ g} d²_ij
    SS_A = SS_T − SS_W

    pseudo-F = (SS_A / (g − 1)) / (SS_W / (N − g))

Significance comes from permuting group labels through the shared
permutation engine, so a seed fixes the p-value exactly.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from ordination.config import get_setting
from ordination.errors import DegenerateInputError
from ordination.permutation import run_permutations
from ordination.table import DissimilarityMatrix
from inference.groups import encode_groups

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PermanovaResult:
    pseudo_f: float
    r2: float
    ss_between: float
    ss_within: float
    ss_total: float
    df_between: int
    df_within: int
    p_value: float
    n_permutations: int
    groups: Tuple[str, ...]
    entropy: Optional[int] = None


def within_ss(d2: np.ndarray, codes: np.ndarray, n_groups: int) -> float:
    """Σ_g (1/n_g) Σ_{i<j ∈ g} d²_ij for squared dissimilarities ``d2``."""
    total = 0.0
    for g in range(n_groups):
        idx = np.where(codes == g)[0]
        # full block counts every pair twice
        total += d2[np.ix_(idx, idx)].sum() / (2.0 * len(idx))
    return float(total)


def permanova(
    dissimilarity: DissimilarityMatrix,
    groups: Sequence,
    permutations: Optional[int] = None,
    seed=None,
    n_jobs: Optional[int] = None,
) -> PermanovaResult:
    """
    Test for differences between group centroids in dissimilarity space.

    Parameters
    ----------
    dissimilarity : DissimilarityMatrix
    groups : sequence
        Group label per observation, in ``dissimilarity.ids`` order.
    permutations : int, optional
        Defaults to inference.permanova_permutations.
    seed : int, optional
        Seed for the label permutations.
    n_jobs : int, optional
        Worker threads for the permutation engine.

    Raises
    ------
    InvalidInputError
        Fewer than 2 groups, a group below the minimum size, or a length
        mismatch.
    DegenerateInputError
        All dissimilarities are zero.
    """
    n = dissimilarity.n
    codes, levels = encode_groups(groups, n)
    if permutations is None:
        permutations = get_setting('inference.permanova_permutations')

    d2 = np.asarray(dissimilarity.values, dtype=np.float64) ** 2
    ss_total = float(d2.sum() / (2.0 * n))
    if ss_total <= 0.0:
        raise DegenerateInputError("all dissimilarities are zero")

    k = len(levels)
    df_between = k - 1
    df_within = n - k

    def pseudo_f(labels: np.ndarray) -> float:
        ss_w = within_ss(d2, labels, k)
        if ss_w <= 0.0:
            return float('inf')
        return ((ss_total - ss_w) / df_between) / (ss_w / df_within)

    ss_within = within_ss(d2, codes, k)
    observed = pseudo_f(codes)

    test = run_permutations(
        lambda order: pseudo_f(codes[order]),
        observed,
        n_obs=n,
        n_permutations=permutations,
        seed=seed,
        n_jobs=n_jobs,
    )
    logger.info("PERMANOVA: F=%.4f R²=%.4f p=%.4f (%d permutations)",
                observed, (ss_total - ss_within) / ss_total, test.p_value, permutations)

    return PermanovaResult(
        pseudo_f=float(observed),
        r2=float((ss_total - ss_within) / ss_total),
        ss_between=float(ss_total - ss_within),
        ss_within=ss_within,
        ss_total=ss_total,
        df_between=df_between,
        df_within=df_within,
        p_value=test.p_value,
        n_permutations=permutations,
        groups=tuple(levels),
        entropy=test.entropy,
    )
