"""
Axis sign orientation.

Eigenvectors have sign ambiguity — eigh/SVD can flip signs arbitrarily.
Two rules remove it:

1. Canonical: the largest-magnitude observation score of every axis is
   positive (first such observation on near-ties). Applied to every
   decomposition, so PCA and PCoA of the same data point the same way.
2. Reference: flip the axes of one result so that each has a non-negative
   dot product with the matching axis of another result.
"""

from dataclasses import replace
from typing import Optional, Tuple

import numpy as np

from ordination.results import OrdinationResult

# Scores within this relative distance of the column maximum count as tied
_TIE = 1e-8
# Columns below this fraction of the largest entry are numerically zero
_ZERO = 1e-12


def _pivot(column: np.ndarray, floor: float) -> Optional[int]:
    magnitude = np.abs(column)
    top = magnitude.max() if len(magnitude) else 0.0
    if top <= floor:
        return None
    return int(np.argmax(magnitude >= top * (1.0 - _TIE)))


def orient_axes(
    scores: np.ndarray,
    loadings: Optional[np.ndarray] = None,
) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    """
    Apply the canonical sign rule column by column.

    Parameters
    ----------
    scores : np.ndarray
        (n_observations, n_axes) observation scores.
    loadings : np.ndarray, optional
        (n_variables, n_axes) variable scores, flipped together with scores.
        Used as the pivot for axes whose scores are all zero.

    Returns
    -------
    (scores, loadings) with consistent signs. Inputs are not modified.
    """
    scores = np.array(scores, dtype=np.float64, copy=True)
    if loadings is not None:
        loadings = np.array(loadings, dtype=np.float64, copy=True)

    floor = _ZERO * float(np.abs(scores).max()) if scores.size else 0.0
    for k in range(scores.shape[1]):
        idx = _pivot(scores[:, k], floor)
        if idx is not None:
            flip = scores[idx, k] < 0
        elif loadings is not None and _pivot(loadings[:, k], _ZERO) is not None:
            flip = loadings[_pivot(loadings[:, k], _ZERO), k] < 0
        else:
            flip = False
        if flip:
            scores[:, k] *= -1
            if loadings is not None:
                loadings[:, k] *= -1

    return scores, loadings


def enforce_axis_continuity(current: np.ndarray, reference: np.ndarray) -> np.ndarray:
    """
    Flip columns of ``current`` whose dot product with the matching column of
    ``reference`` is negative. Extra columns on either side are left alone.

    Returns the sign vector (+1 / −1) that was applied.
    """
    k = min(current.shape[1], reference.shape[1])
    signs = np.ones(current.shape[1])
    for j in range(k):
        if np.dot(current[:, j], reference[:, j]) < 0:
            signs[j] = -1.0
    return signs


def align_axes(result: OrdinationResult, reference: OrdinationResult) -> OrdinationResult:
    """
    Return a copy of ``result`` with axis signs agreeing with ``reference``.

    Both results must describe the same observations in the same order.
    """
    if result.row_ids != reference.row_ids:
        raise ValueError("align_axes: results describe different observations")

    signs = enforce_axis_continuity(result.observation_scores, reference.observation_scores)
    variable_scores = result.variable_scores
    if variable_scores is not None:
        variable_scores = variable_scores * signs

    return replace(
        result,
        observation_scores=result.observation_scores * signs,
        variable_scores=variable_scores,
    )
