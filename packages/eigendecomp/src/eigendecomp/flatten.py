"""
Flatten ordination results for a plotting / report collaborator.

flatten_result: one dict of scalars (eigenvalues, explained, cumulative).
axes_frame:     one row per axis.
scores_frame:   one row per observation (or variable), one column per axis.
"""

from typing import Any, Dict

import numpy as np
import polars as pl

from ordination.results import ConstrainedOrdinationResult, OrdinationResult


def flatten_result(result: OrdinationResult, max_axes: int = 5) -> Dict[str, Any]:
    """
    Flatten an OrdinationResult to scalar key-value pairs.

    Parameters
    ----------
    result : OrdinationResult
    max_axes : int
        Number of axes to include.

    Returns
    -------
    dict of {str: float | int | str}.
    """
    row: Dict[str, Any] = {
        'method': result.method,
        'n_observations': len(result.row_ids),
        'n_axes': result.n_axes,
        'total_variance': float(result.total_variance),
    }
    if result.column_ids is not None:
        row['n_variables'] = len(result.column_ids)
    if result.method == 'PCoA':
        row['n_negative_eigenvalues'] = int(len(result.negative_eigenvalues))

    cum = 0.0
    for k, label in enumerate(result.axis_labels[:max_axes]):
        row[f'eigenvalue_{label}'] = float(result.eigenvalues[k])
        row[f'explained_{label}'] = float(result.explained_ratio[k])
        cum += float(result.explained_ratio[k])
        row[f'cumulative_{label}'] = cum

    return row


def axes_frame(result) -> pl.DataFrame:
    """Axis table; a ConstrainedOrdinationResult lists constrained axes first."""
    if isinstance(result, ConstrainedOrdinationResult):
        parts = [('constrained', result.constrained), ('unconstrained', result.unconstrained)]
    else:
        parts = [(result.method, result)]

    kinds, labels, eigs, explained = [], [], [], []
    for kind, res in parts:
        kinds.extend([kind] * res.n_axes)
        labels.extend(res.axis_labels)
        eigs.extend(float(v) for v in res.eigenvalues)
        explained.extend(float(v) for v in res.explained_ratio)

    return pl.DataFrame({
        'kind': kinds,
        'axis': labels,
        'eigenvalue': eigs,
        'explained': explained,
    }, schema={'kind': pl.Utf8, 'axis': pl.Utf8, 'eigenvalue': pl.Float64, 'explained': pl.Float64}
    ).with_columns(pl.col('explained').cum_sum().alias('cumulative'))


def scores_frame(result: OrdinationResult, which: str = 'observations', max_axes: int = None) -> pl.DataFrame:
    """
    Scores as a polars frame.

    Parameters
    ----------
    which : str
        'observations' (rows = observations) or 'variables' (rows = variables,
        PCA / RDA only).
    """
    if which == 'observations':
        ids, scores = result.row_ids, result.observation_scores
    elif which == 'variables':
        if result.variable_scores is None:
            raise ValueError(f"{result.method} result has no variable scores")
        ids, scores = result.column_ids, result.variable_scores
    else:
        raise ValueError(f"which must be 'observations' or 'variables', got {which!r}")

    k = result.n_axes if max_axes is None else min(max_axes, result.n_axes)
    data = {'id': list(ids)}
    for j, label in enumerate(result.axis_labels[:k]):
        data[label] = np.asarray(scores[:, j], dtype=np.float64)
    return pl.DataFrame(data)
