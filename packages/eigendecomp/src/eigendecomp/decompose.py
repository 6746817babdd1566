"""
Core eigendecomposition computation.

Two input variants, dispatched explicitly:

    ObservationTable     → PCA:  center (→ scale) → SVD → ranked axes
    DissimilarityMatrix  → PCoA: −½D² → double-center → eigh → ranked axes

PCA on a table and PCoA on the table's Euclidean distance matrix produce the
same observation scores (U·s); signs are fixed by the same canonical rule,
so the two agree up to rotation inside tied-eigenvalue subspaces.
"""

import logging
from typing import Optional, Tuple

import numpy as np

from ordination.config import get_setting
from ordination.errors import DegenerateInputError, InvalidInputError
from ordination.results import OrdinationResult
from ordination.table import DissimilarityMatrix, ObservationTable, constant_columns
from eigendecomp.continuity import orient_axes

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Shared SVD step (also used by the constrained ordinator)
# ---------------------------------------------------------------------------

def svd_axes(
    matrix: np.ndarray,
    denominator: float,
    max_axes: Optional[int] = None,
    positive_only: bool = False,
    reference: float = 0.0,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Ranked axes of an already-centered matrix.

    Parameters
    ----------
    matrix : np.ndarray
        (n_observations, n_variables), processed (centered / scaled).
    denominator : float
        Eigenvalue = s² / denominator (n − 1 for variances).
    max_axes : int, optional
        Keep at most this many axes.
    positive_only : bool
        Drop axes whose eigenvalue is numerically zero.
    reference : float
        Scale for the zero test when it exceeds the leading eigenvalue
        (e.g. the total inertia of the unsplit response).

    Returns
    -------
    eigenvalues : (k,) descending
    observation_scores : (n_observations, k) = U·s
    variable_scores : (n_variables, k) = V
    """
    n, p = matrix.shape
    if n == 0 or p == 0:
        return np.zeros(0), np.zeros((n, 0)), np.zeros((p, 0))

    u, s, vt = np.linalg.svd(matrix, full_matrices=False)
    eigenvalues = s ** 2 / denominator

    # Stable descending sort: tied axes keep their original order
    order = np.argsort(-eigenvalues, kind='stable')
    eigenvalues = eigenvalues[order]
    u = u[:, order]
    s = s[order]
    v = vt.T[:, order]

    k = len(eigenvalues) if max_axes is None else min(max_axes, len(eigenvalues))
    if positive_only:
        top = float(eigenvalues[0]) if len(eigenvalues) else 0.0
        tol = get_setting('tolerance.eigenvalue') * max(top, reference)
        k = min(k, int(np.sum(eigenvalues > tol)))

    scores = u[:, :k] * s[:k]
    loadings = v[:, :k]
    scores, loadings = orient_axes(scores, loadings)
    return eigenvalues[:k], scores, loadings


def _explained(eigenvalues: np.ndarray, total: float) -> np.ndarray:
    if total <= 0:
        return np.zeros_like(eigenvalues)
    return eigenvalues / total


# ---------------------------------------------------------------------------
# PCA
# ---------------------------------------------------------------------------

def pca(table: ObservationTable, center: bool = True, scale: bool = False) -> OrdinationResult:
    """
    Principal component analysis of an observation table.

    Parameters
    ----------
    table : ObservationTable
        (n_observations, n_variables).
    center : bool
        Subtract column means first.
    scale : bool
        Divide columns by their standard deviation (ddof=1), i.e. PCA of
        the correlation matrix.

    Returns
    -------
    OrdinationResult with min(n−1, p) axes (min(n, p) when uncentered),
    zero-eigenvalue axes included.
    """
    n, p = table.shape
    if n < 2:
        raise InvalidInputError(f"PCA needs at least 2 observations, got {n}")

    matrix = np.array(table.values, dtype=np.float64)
    if center:
        matrix = matrix - matrix.mean(axis=0)

    if scale:
        flat = constant_columns(table.values)
        if len(flat):
            names = [table.column_ids[j] for j in flat]
            raise DegenerateInputError(f"cannot scale zero-variance columns: {names}")
        matrix = matrix / table.values.std(axis=0, ddof=1)

    if center:
        rank_zero = len(constant_columns(table.values)) == p
    else:
        rank_zero = not np.any(table.values)
    if rank_zero:
        raise DegenerateInputError("matrix has rank 0 (all entries zero after centering)")

    max_axes = min(n - 1, p) if center else min(n, p)
    eigenvalues, scores, loadings = svd_axes(matrix, n - 1, max_axes=max_axes)

    total = float(np.sum(matrix ** 2) / (n - 1))
    logger.debug("PCA %dx%d center=%s scale=%s → %d axes", n, p, center, scale, len(eigenvalues))

    return OrdinationResult(
        method='PCA',
        eigenvalues=eigenvalues,
        explained_ratio=_explained(eigenvalues, float(eigenvalues.sum())),
        observation_scores=scores,
        row_ids=table.row_ids,
        total_variance=total,
        variable_scores=loadings,
        column_ids=table.column_ids,
        axis_prefix='PC',
    )


# ---------------------------------------------------------------------------
# PCoA
# ---------------------------------------------------------------------------

def gower_center(matrix: np.ndarray) -> np.ndarray:
    """Double-center: subtract row and column means, add back the grand mean."""
    row_mean = matrix.mean(axis=1, keepdims=True)
    col_mean = matrix.mean(axis=0, keepdims=True)
    return matrix - row_mean - col_mean + matrix.mean()


def _off_diagonal(n: int) -> np.ndarray:
    return ~np.eye(n, dtype=bool)


def lingoes(distances: np.ndarray) -> np.ndarray:
    """Lingoes correction: d' = sqrt(d² + 2c), c = |most negative eigenvalue|."""
    b = gower_center(-0.5 * distances ** 2)
    c = max(0.0, -float(np.linalg.eigvalsh(b).min()))
    corrected = distances.copy()
    off = _off_diagonal(len(distances))
    corrected[off] = np.sqrt(distances[off] ** 2 + 2.0 * c)
    return corrected


def cailliez(distances: np.ndarray) -> np.ndarray:
    """Cailliez correction: d' = d + c, c = largest eigenvalue of the block matrix."""
    n = len(distances)
    delta1 = gower_center(-0.5 * distances ** 2)
    delta2 = gower_center(-0.5 * distances)
    block = np.block([
        [np.zeros((n, n)), 2.0 * delta1],
        [-np.eye(n), -4.0 * delta2],
    ])
    c = max(0.0, float(np.max(np.real(np.linalg.eigvals(block)))))
    corrected = distances.copy()
    off = _off_diagonal(n)
    corrected[off] = distances[off] + c
    return corrected


_CORRECTIONS = {'lingoes': lingoes, 'cailliez': cailliez}


def pcoa(dm: DissimilarityMatrix, correction: Optional[str] = None) -> OrdinationResult:
    """
    Principal coordinate analysis of a dissimilarity matrix.

    Axes with non-positive eigenvalues are discarded; their eigenvalues are
    kept in ``negative_eigenvalues`` for diagnostics. Eigenvalues are those of
    the Gower-centered matrix (not divided by n − 1).

    Parameters
    ----------
    dm : DissimilarityMatrix
    correction : str, optional
        'lingoes' or 'cailliez' to make a non-Euclidean matrix Euclidean.
    """
    if correction is None:
        correction = get_setting('decompose.pcoa_correction')
    distances = np.array(dm.values, dtype=np.float64)

    if not np.any(distances > 0):
        raise DegenerateInputError("dissimilarity matrix is all zero (identical observations)")

    if correction is not None:
        if correction not in _CORRECTIONS:
            raise InvalidInputError(f"unknown PCoA correction {correction!r}")
        distances = _CORRECTIONS[correction](distances)

    b = gower_center(-0.5 * distances ** 2)
    vals, vecs = np.linalg.eigh(b)

    order = np.argsort(-vals, kind='stable')
    vals = vals[order]
    vecs = vecs[:, order]

    tol = get_setting('tolerance.eigenvalue') * float(np.abs(vals).max())
    if vals[0] <= tol:
        raise DegenerateInputError("double-centered matrix has rank 0")

    keep = vals > tol
    negative = vals[vals < -tol]
    if len(negative):
        ratio = float(-negative.min() / vals[0])
        if ratio > get_setting('decompose.negative_eigenvalue_warning'):
            logger.warning(
                "PCoA: %d negative eigenvalues, largest magnitude %.3g of the first "
                "positive one; the %s/%s matrix is not Euclidean",
                len(negative), ratio, dm.transform, dm.metric,
            )

    eigenvalues = vals[keep]
    scores = vecs[:, keep] * np.sqrt(eigenvalues)
    scores, _ = orient_axes(scores)
    total = float(eigenvalues.sum())

    logger.debug("PCoA n=%d → %d positive axes, %d negative", dm.n, len(eigenvalues), len(negative))

    return OrdinationResult(
        method='PCoA',
        eigenvalues=eigenvalues,
        explained_ratio=_explained(eigenvalues, total),
        observation_scores=scores,
        row_ids=dm.ids,
        total_variance=total,
        axis_prefix='PCoA',
        negative_eigenvalues=negative,
        correction=correction,
    )


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

def decompose(
    matrix,
    center: bool = True,
    scale: bool = False,
    correction: Optional[str] = None,
) -> OrdinationResult:
    """
    Decompose an observation table (PCA) or a dissimilarity matrix (PCoA).

    Parameters
    ----------
    matrix : ObservationTable or DissimilarityMatrix
    center, scale : bool
        PCA preprocessing. A dissimilarity matrix is always double-centered;
        scale=True is rejected for it.
    correction : str, optional
        PCoA negative-eigenvalue correction ('lingoes' / 'cailliez').

    Raises
    ------
    InvalidInputError
        Unsupported input type or option combination.
    DegenerateInputError
        Rank-0 input, or scaling a zero-variance column.
    """
    if isinstance(matrix, ObservationTable):
        if correction is not None:
            raise InvalidInputError("correction applies to dissimilarity matrices only")
        return pca(matrix, center=center, scale=scale)
    if isinstance(matrix, DissimilarityMatrix):
        if scale:
            raise InvalidInputError("scale=True is not defined for a dissimilarity matrix")
        return pcoa(matrix, correction=correction)
    raise InvalidInputError(
        f"decompose expects ObservationTable or DissimilarityMatrix, got {type(matrix).__name__}"
    )
