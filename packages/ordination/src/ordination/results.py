"""
Result types returned by the decomposer and the constrained ordinator.

Axes are stored column-wise: eigenvalues[k], explained_ratio[k],
observation_scores[:, k] and variable_scores[:, k] describe axis k.
Axes are ordered by decreasing eigenvalue.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import numpy as np
import polars as pl

from ordination.table import ObservationTable


@dataclass(frozen=True)
class Axis:
    """One ordination axis."""
    label: str
    eigenvalue: float
    explained: float
    observation_scores: np.ndarray
    variable_scores: Optional[np.ndarray] = None


@dataclass(frozen=True)
class OrdinationResult:
    """
    Ranked orthogonal axes of an unconstrained (or sub-) decomposition.

    Eigenvalue scale depends on the method. PCA and RDA report variances
    (s² / (n − 1)); PCoA reports raw eigenvalues of the Gower-centered
    matrix, n − 1 times larger for Euclidean distances of the same data.
    ``axis_variances`` puts every method on the variance scale.
    """
    method: str
    eigenvalues: np.ndarray
    explained_ratio: np.ndarray
    observation_scores: np.ndarray
    row_ids: Tuple[str, ...]
    total_variance: float
    variable_scores: Optional[np.ndarray] = None
    column_ids: Optional[Tuple[str, ...]] = None
    axis_prefix: str = 'PC'
    # PCoA only: eigenvalues dropped for being non-positive
    negative_eigenvalues: np.ndarray = field(default_factory=lambda: np.zeros(0))
    correction: Optional[str] = None

    @property
    def n_axes(self) -> int:
        return len(self.eigenvalues)

    @property
    def axis_variances(self) -> np.ndarray:
        """Eigenvalues as variances along each axis."""
        if self.method == 'PCoA':
            return self.eigenvalues / (len(self.row_ids) - 1)
        return self.eigenvalues

    @property
    def axis_labels(self) -> Tuple[str, ...]:
        return tuple(f"{self.axis_prefix}{k + 1}" for k in range(self.n_axes))

    @property
    def axes(self) -> Tuple[Axis, ...]:
        out = []
        for k, label in enumerate(self.axis_labels):
            out.append(Axis(
                label=label,
                eigenvalue=float(self.eigenvalues[k]),
                explained=float(self.explained_ratio[k]),
                observation_scores=self.observation_scores[:, k],
                variable_scores=None if self.variable_scores is None else self.variable_scores[:, k],
            ))
        return tuple(out)

    @property
    def cumulative_explained(self) -> np.ndarray:
        return np.cumsum(self.explained_ratio)


@dataclass(frozen=True)
class ConstrainedOrdinationResult:
    """
    Redundancy analysis result.

    ``constrained`` holds axes that are linear combinations of the design
    columns; ``unconstrained`` holds the residual axes. Both carry explained
    fractions relative to the total inertia, so together they sum to 1.
    """
    constrained: OrdinationResult
    unconstrained: OrdinationResult
    coefficients: np.ndarray              # (n_design_columns, n_constrained_axes)
    biplot_scores: np.ndarray             # (n_design_columns, n_constrained_axes)
    design_columns: Tuple[str, ...]
    variables: Tuple[str, ...]            # original predictor variables kept
    variable_columns: Dict[str, Tuple[str, ...]]
    dropped: Tuple[str, ...]
    total_inertia: float
    constrained_inertia: float
    unconstrained_inertia: float
    r2: float
    adj_r2: float
    n_observations: int
    rank: int
    response: ObservationTable
    predictors: pl.DataFrame
    scale: bool = False
    per_predictor: Optional[pl.DataFrame] = None

    @property
    def axes(self):
        return self.constrained.axes + self.unconstrained.axes

    @property
    def row_ids(self) -> Tuple[str, ...]:
        return self.response.row_ids

    @property
    def constrained_fraction(self) -> float:
        return self.constrained_inertia / self.total_inertia

    @property
    def unconstrained_fraction(self) -> float:
        return self.unconstrained_inertia / self.total_inertia

    def inertia_table(self) -> pl.DataFrame:
        """Total / constrained / unconstrained inertia with proportions and ranks."""
        return pl.DataFrame({
            'component': ['total', 'constrained', 'unconstrained'],
            'inertia': [self.total_inertia, self.constrained_inertia, self.unconstrained_inertia],
            'proportion': [1.0, self.constrained_fraction, self.unconstrained_fraction],
            'rank': [
                self.constrained.n_axes + self.unconstrained.n_axes,
                self.constrained.n_axes,
                self.unconstrained.n_axes,
            ],
        })
