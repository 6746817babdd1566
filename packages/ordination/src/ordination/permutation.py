"""
Permutation engine shared by stepwise selection and PERMANOVA.

Every permutation draws its row order from its own child of a
numpy SeedSequence, so the sequence of permutations is fixed and
enumerable for a given seed. Workers only return exceedance counts and
counts are summed, so the p-value does not depend on how permutations
are split across threads.

Without a caller-supplied seed the run is not reproducible; the generated
entropy is logged and stored on the result so it can be replayed.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, List, Optional, Union

import numpy as np

from ordination.config import get_setting

logger = logging.getLogger(__name__)

# Relative slack when comparing permuted statistics with the observed one
EPS = float(np.sqrt(np.finfo(np.float64).eps))

SeedLike = Union[None, int, np.random.SeedSequence]


@dataclass(frozen=True)
class PermutationTest:
    """Outcome of one permutation test."""
    statistic: float
    p_value: float
    n_permutations: int
    n_exceed: int
    entropy: Optional[int] = None


def as_seed_sequence(seed: SeedLike) -> np.random.SeedSequence:
    """
    Normalize a caller seed. ``None`` draws fresh OS entropy and warns.

    A caller SeedSequence is rebuilt from its entropy and spawn key, so
    spawning children here never advances the caller's own counter.
    """
    if isinstance(seed, np.random.SeedSequence):
        return np.random.SeedSequence(
            seed.entropy, spawn_key=seed.spawn_key, pool_size=seed.pool_size,
        )
    if seed is None:
        ss = np.random.SeedSequence()
        logger.warning(
            "permutation test run without a seed; results are not reproducible "
            "(replay with seed=%d)", ss.entropy,
        )
        return ss
    return np.random.SeedSequence(int(seed))


def permutation_orders(n_obs: int, seeds: List[np.random.SeedSequence]) -> np.ndarray:
    """Row orders for the given permutation seeds, one row per seed."""
    return np.vstack([np.random.default_rng(s).permutation(n_obs) for s in seeds])


def run_permutations(
    statistic: Callable[[np.ndarray], float],
    observed: float,
    n_obs: int,
    n_permutations: int,
    seed: SeedLike = None,
    n_jobs: Optional[int] = None,
    chunk_size: Optional[int] = None,
    plus_one: Optional[bool] = None,
) -> PermutationTest:
    """
    Permutation p-value for an upper-tailed statistic.

    Parameters
    ----------
    statistic : callable
        Maps a row order (permutation of range(n_obs)) to the statistic
        computed on the permuted data. Must not mutate shared state.
    observed : float
        Statistic on the unpermuted data.
    n_obs : int
        Number of rows being permuted.
    n_permutations : int
        Number of permutations.
    seed : int, SeedSequence or None
        Seed for the permutation sequence.
    n_jobs : int, optional
        Worker threads. Defaults to permutation.n_jobs.
    chunk_size : int, optional
        Permutations per work item. Defaults to permutation.chunk_size.
    plus_one : bool, optional
        Count the observed statistic as one of the permutations. Defaults
        to permutation.plus_one.

    Returns
    -------
    PermutationTest with p = n_exceed / n_permutations, or
    (n_exceed + 1) / (n_permutations + 1) with ``plus_one``.
    """
    if n_permutations < 1:
        raise ValueError(f"n_permutations must be positive, got {n_permutations}")
    n_jobs = n_jobs or get_setting('permutation.n_jobs', 1)
    chunk_size = chunk_size or get_setting('permutation.chunk_size', 100)
    if plus_one is None:
        plus_one = get_setting('permutation.plus_one', False)

    ss = as_seed_sequence(seed)
    children = ss.spawn(n_permutations)
    chunks = [children[i:i + chunk_size] for i in range(0, n_permutations, chunk_size)]
    threshold = observed
    if np.isfinite(observed):
        threshold = observed - EPS * max(abs(observed), 1.0)

    def _count(chunk: List[np.random.SeedSequence]) -> int:
        exceed = 0
        for order in permutation_orders(n_obs, chunk):
            if statistic(order) >= threshold:
                exceed += 1
        return exceed

    if n_jobs > 1 and len(chunks) > 1:
        with ThreadPoolExecutor(max_workers=n_jobs) as executor:
            n_exceed = sum(executor.map(_count, chunks))
    else:
        n_exceed = sum(_count(c) for c in chunks)

    if plus_one:
        p_value = (n_exceed + 1) / (n_permutations + 1)
    else:
        p_value = n_exceed / n_permutations
    logger.debug("permutation test: stat=%.6g exceed=%d/%d p=%.4g",
                 observed, n_exceed, n_permutations, p_value)

    return PermutationTest(
        statistic=float(observed),
        p_value=float(p_value),
        n_permutations=n_permutations,
        n_exceed=n_exceed,
        entropy=ss.entropy if seed is None else None,
    )
