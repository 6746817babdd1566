"""
Redundancy analysis (linear-constraint ordination).

    Y (centered, optionally scaled)   X (centered design, full rank)
    Ŷ = QQᵀY                          → SVD → constrained axes
    Y − Ŷ                             → SVD → unconstrained axes

Constrained site scores are linear combinations of the design columns:
X · coefficients, with coefficients = B·V (B the OLS coefficients, V the
constrained response loadings). Constrained and residual site scores live in
orthogonal subspaces, so every axis of the result is orthogonal to every
other one.
"""

import logging
from typing import Optional

import numpy as np
import polars as pl

from ordination.config import get_setting
from ordination.errors import DegenerateInputError, InvalidInputError
from ordination.results import ConstrainedOrdinationResult, OrdinationResult
from ordination.table import ObservationTable, constant_columns
from eigendecomp.decompose import svd_axes
from constrained.design import DesignMatrix, as_predictor_frame, build_design
from constrained.variance import (
    adjusted_r_squared,
    fitted_ss,
    fitted_values,
    projector_basis,
    r_squared,
)

logger = logging.getLogger(__name__)


def prepare_response(response: ObservationTable, scale: bool = False) -> np.ndarray:
    """Centered (and optionally unit-variance) response matrix."""
    n = response.n_rows
    if n < 2:
        raise InvalidInputError(f"constrained ordination needs at least 2 observations, got {n}")
    y = np.array(response.values, dtype=np.float64)
    y = y - y.mean(axis=0)
    if scale:
        flat = constant_columns(response.values)
        if len(flat):
            names = [response.column_ids[j] for j in flat]
            raise DegenerateInputError(f"cannot scale zero-variance response columns: {names}")
        y = y / response.values.std(axis=0, ddof=1)
    return y


def _biplot_scores(design: np.ndarray, scores: np.ndarray) -> np.ndarray:
    """Correlations between design columns and constrained site scores."""
    m, k = design.shape[1], scores.shape[1]
    out = np.zeros((m, k))
    if m == 0 or k == 0:
        return out
    dn = np.linalg.norm(design, axis=0)
    sn = np.linalg.norm(scores, axis=0)
    denom = np.outer(dn, sn)
    valid = denom > 0
    out[valid] = (design.T @ scores)[valid] / denom[valid]
    return out


def _per_predictor(
    y: np.ndarray,
    design: DesignMatrix,
    total_ss: float,
) -> pl.DataFrame:
    """Marginal (alone) and conditional (given all others) fractions per variable."""
    x = design.values
    full_ss = fitted_ss(projector_basis(x), y)
    rows = {'variable': [], 'df': [], 'marginal': [], 'conditional': []}
    for var in design.variables:
        idx = design.column_indices([var])
        rest = [j for j in range(design.rank) if j not in idx]
        alone = fitted_ss(projector_basis(x[:, idx]), y)
        without = fitted_ss(projector_basis(x[:, rest]), y)
        rows['variable'].append(var)
        rows['df'].append(len(idx))
        rows['marginal'].append(alone / total_ss)
        rows['conditional'].append((full_ss - without) / total_ss)
    return pl.DataFrame(rows, schema={
        'variable': pl.Utf8, 'df': pl.Int64, 'marginal': pl.Float64, 'conditional': pl.Float64,
    })


def fit(
    response: ObservationTable,
    predictors=None,
    *,
    scale: Optional[bool] = None,
    drop_collinear: Optional[bool] = None,
    per_predictor: bool = False,
    row_id_column: Optional[str] = None,
) -> ConstrainedOrdinationResult:
    """
    Fit a redundancy analysis of ``response`` on ``predictors``.

    Parameters
    ----------
    response : ObservationTable
        (n_observations, n_response_variables), e.g. Hellinger-transformed
        abundances.
    predictors : pl.DataFrame, ObservationTable or None
        Explanatory variables aligned with the response rows. Numeric and
        categorical columns are allowed. None fits the null model.
    scale : bool, optional
        Standardize response columns. Defaults to constrained.scale.
    drop_collinear : bool, optional
        Drop redundant design columns instead of raising. Defaults to
        constrained.drop_collinear.
    per_predictor : bool
        Also compute the fraction of inertia each predictor explains alone
        and given the others.
    row_id_column : str, optional
        Predictor column holding response row ids (for alignment).

    Returns
    -------
    ConstrainedOrdinationResult

    Raises
    ------
    InvalidInputError, DegenerateInputError, RankDeficiencyError
    """
    if scale is None:
        scale = get_setting('constrained.scale')
    if drop_collinear is None:
        drop_collinear = get_setting('constrained.drop_collinear')

    n, p = response.shape
    y = prepare_response(response, scale=scale)
    total_ss = float(np.sum(y ** 2))
    if total_ss <= 0 or len(constant_columns(response.values)) == response.n_columns:
        raise DegenerateInputError("response has no variance")

    frame = as_predictor_frame(predictors, response, row_id_column=row_id_column)
    design = build_design(frame, drop_collinear=drop_collinear)
    x = design.values if design.rank else np.zeros((n, 0))
    m = design.rank

    basis = projector_basis(x)
    fitted = fitted_values(basis, y)
    resid = y - fitted

    total = total_ss / (n - 1)
    c_eig, c_scores, c_loadings = svd_axes(
        fitted, n - 1, max_axes=m, positive_only=True, reference=total,
    )
    u_eig, u_scores, u_loadings = svd_axes(
        resid, n - 1, max_axes=max(min(n - 1 - m, p), 0), positive_only=True, reference=total,
    )

    if m:
        coef = np.linalg.lstsq(x, y, rcond=None)[0]
        coefficients = coef @ c_loadings
    else:
        coefficients = np.zeros((0, len(c_eig)))

    constrained_inertia = float(np.sum(fitted ** 2) / (n - 1))
    unconstrained_inertia = float(np.sum(resid ** 2) / (n - 1))
    r2 = r_squared(constrained_inertia, total)
    adj_r2 = adjusted_r_squared(r2, n, m)

    logger.debug("RDA n=%d p=%d m=%d → %d constrained, %d unconstrained axes, R2=%.4f",
                 n, p, m, len(c_eig), len(u_eig), r2)

    constrained = OrdinationResult(
        method='RDA',
        eigenvalues=c_eig,
        explained_ratio=c_eig / total,
        observation_scores=c_scores,
        row_ids=response.row_ids,
        total_variance=total,
        variable_scores=c_loadings,
        column_ids=response.column_ids,
        axis_prefix='RDA',
    )
    unconstrained = OrdinationResult(
        method='RDA',
        eigenvalues=u_eig,
        explained_ratio=u_eig / total,
        observation_scores=u_scores,
        row_ids=response.row_ids,
        total_variance=total,
        variable_scores=u_loadings,
        column_ids=response.column_ids,
        axis_prefix='PC',
    )

    return ConstrainedOrdinationResult(
        constrained=constrained,
        unconstrained=unconstrained,
        coefficients=coefficients,
        biplot_scores=_biplot_scores(x, c_scores),
        design_columns=design.columns,
        variables=design.variables,
        variable_columns=dict(design.variable_columns),
        dropped=design.dropped,
        total_inertia=total,
        constrained_inertia=constrained_inertia,
        unconstrained_inertia=unconstrained_inertia,
        r2=r2,
        adj_r2=adj_r2,
        n_observations=n,
        rank=m,
        response=response,
        predictors=frame,
        scale=scale,
        per_predictor=_per_predictor(y, design, total_ss) if per_predictor and m else None,
    )
