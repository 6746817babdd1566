"""
Stepwise selection policy and criteria.

The stopping rule mixes a permutation p-value threshold, an improvement
check and (optionally) the full-model criterion as a ceiling. Near ties
between candidates are resolved by a configurable rule.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import numpy as np

from ordination.config import get_setting
from ordination.errors import InvalidInputError
from constrained.variance import adjusted_r_squared, r_squared


class Criterion(str, Enum):
    ADJ_R2 = 'adj_r2'
    R2 = 'r2'

    @classmethod
    def parse(cls, name) -> "Criterion":
        if isinstance(name, cls):
            return name
        key = str(name).strip().lower().replace('adjustedr2', 'adj_r2').replace('adjusted_r2', 'adj_r2')
        try:
            return cls(key)
        except ValueError:
            raise InvalidInputError(f"unknown criterion {name!r}; expected 'adj_r2' or 'r2'") from None

    def evaluate(self, fitted_ss: float, total_ss: float, n: int, m: int) -> float:
        """Criterion value; undefined adjusted R² maps to −inf so it never wins."""
        r2 = r_squared(fitted_ss, total_ss)
        if self is Criterion.R2:
            return r2
        adj = adjusted_r_squared(r2, n, m)
        return float('-inf') if np.isnan(adj) else adj


@dataclass(frozen=True)
class SelectionPolicy:
    """Thresholds and tie rules for stepwise selection."""
    alpha: float = 0.05
    alpha_out: float = 0.10
    n_permutations: int = 999
    use_ceiling: bool = True
    tie_tolerance: float = 0.0
    tie_break: str = 'order'        # 'order' or 'pvalue'
    direction: str = 'forward'      # 'forward' or 'both'

    def __post_init__(self):
        if not 0.0 < self.alpha < 1.0:
            raise InvalidInputError(f"alpha must be in (0, 1), got {self.alpha}")
        if self.n_permutations < 1:
            raise InvalidInputError("n_permutations must be positive")
        if self.tie_break not in ('order', 'pvalue'):
            raise InvalidInputError(f"tie_break must be 'order' or 'pvalue', got {self.tie_break!r}")
        if self.direction not in ('forward', 'both'):
            raise InvalidInputError(f"direction must be 'forward' or 'both', got {self.direction!r}")
        if self.tie_tolerance < 0:
            raise InvalidInputError("tie_tolerance must be non-negative")

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None, **overrides) -> "SelectionPolicy":
        """Build from the stepwise section of a config (defaults: CONFIG)."""
        def _get(key):
            return get_setting(f'stepwise.{key}', config=config)

        values = dict(
            alpha=_get('alpha'),
            alpha_out=_get('alpha_out'),
            n_permutations=_get('permutations'),
            use_ceiling=_get('use_ceiling'),
            tie_tolerance=_get('tie_tolerance'),
            tie_break=_get('tie_break'),
            direction=_get('direction'),
        )
        values.update(overrides)
        return cls(**values)
