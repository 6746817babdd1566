"""
Stepwise predictor selection for redundancy analysis.

State: ordered tuple of included predictor variables, starting at the
null model. Each forward step scores every remaining candidate with the
criterion, takes the best one (ties per policy), and accepts it when

    permutation p-value < alpha
    AND criterion improves on the current model
    AND (use_ceiling) criterion does not exceed the full model's

With direction='both', after every addition the included predictors are
re-tested given the others and the least significant one is removed while
its p-value exceeds alpha_out.

Stops when nothing is accepted, max_steps is reached or no candidates
remain.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ordination.config import get_setting
from ordination.errors import InvalidInputError
from ordination.permutation import PermutationTest, as_seed_sequence
from ordination.results import ConstrainedOrdinationResult
from constrained.design import DesignMatrix, build_design
from constrained.rda import fit, prepare_response
from constrained.variance import fitted_ss, projector_basis
from stepwise.partial import partial_f_test
from stepwise.policy import Criterion, SelectionPolicy

logger = logging.getLogger(__name__)

# Rounding slack when a candidate model coincides with the full model
_CEILING_SLACK = 1e-12


@dataclass(frozen=True)
class SelectionStep:
    """One accepted transition of the selection."""
    step: int
    action: str                 # 'add' or 'remove'
    predictor: str
    criterion_before: float
    criterion_after: float
    statistic: float            # partial pseudo-F
    p_value: float
    n_permutations: int


class SelectionTrace(tuple):
    """
    Ordered SelectionSteps plus how the selection ended.

    Compares equal to the plain tuple of its steps.
    """

    def __new__(cls, steps: Sequence[SelectionStep], stop_reason: str, entropy: Optional[int] = None):
        obj = super().__new__(cls, tuple(steps))
        obj.stop_reason = stop_reason
        obj.entropy = entropy
        return obj


class _Workspace:
    """Response, design and criterion shared by every step of one selection."""

    def __init__(self, full_model: ConstrainedOrdinationResult, criterion: Criterion):
        self.y = prepare_response(full_model.response, scale=full_model.scale)
        self.n = self.y.shape[0]
        self.total_ss = float(np.sum(self.y ** 2))
        self.design: DesignMatrix = build_design(full_model.predictors, drop_collinear=True)
        self.criterion = criterion

    def columns(self, variables: Sequence[str]) -> np.ndarray:
        idx = self.design.column_indices(variables)
        return self.design.values[:, idx] if idx else np.zeros((self.n, 0))

    def score(self, variables: Sequence[str]) -> float:
        x = self.columns(variables)
        ss = fitted_ss(projector_basis(x), self.y)
        return self.criterion.evaluate(ss, self.total_ss, self.n, x.shape[1])


def _check_models(null_model: ConstrainedOrdinationResult, full_model: ConstrainedOrdinationResult):
    a, b = null_model.response, full_model.response
    if a.row_ids != b.row_ids or a.column_ids != b.column_ids or not np.array_equal(a.values, b.values):
        raise InvalidInputError("null and full models must be fitted to the same response")
    if null_model.scale != full_model.scale:
        raise InvalidInputError("null and full models must use the same response scaling")
    extra = [v for v in null_model.variables if v not in full_model.variables]
    if extra:
        raise InvalidInputError(f"null model predictors not in full model: {extra}")


class StepwiseSelector:
    """
    Forward (or both-direction) selection of RDA predictors.

    Usage:
        null = constrained.fit(y, None)
        full = constrained.fit(y, env)
        model, steps = StepwiseSelector().select(null, full, seed=1)
    """

    def __init__(
        self,
        policy: Optional[SelectionPolicy] = None,
        criterion='adj_r2',
        n_jobs: Optional[int] = None,
    ):
        self.policy = policy or SelectionPolicy.from_config()
        self.criterion = Criterion.parse(criterion)
        self.n_jobs = n_jobs or get_setting('permutation.n_jobs', 1)

    def _test(self, ws: _Workspace, variable: str, given: Sequence[str],
              seeds: np.random.SeedSequence) -> PermutationTest:
        return partial_f_test(
            ws.y,
            ws.columns([variable]),
            ws.columns(given),
            n_permutations=self.policy.n_permutations,
            seed=seeds.spawn(1)[0],
            n_jobs=self.n_jobs,
        )

    def _forward(self, ws: _Workspace, included: List[str], ceiling: float,
                 seeds: np.random.SeedSequence):
        """Best acceptable addition, or (None, reason)."""
        candidates = [v for v in ws.design.variables if v not in included]
        if not candidates:
            return None, 'full_model'

        current = ws.score(included)
        scored = [(v, ws.score(included + [v])) for v in candidates]
        best_value = max(s for _, s in scored)
        tied = [(v, s) for v, s in scored if s >= best_value - self.policy.tie_tolerance]

        if self.policy.use_ceiling and best_value > ceiling + _CEILING_SLACK * max(1.0, abs(ceiling)):
            logger.info("stop: best candidate %s exceeds full-model %s (%.4f > %.4f)",
                        tied[0][0], self.criterion.value, best_value, ceiling)
            return None, 'ceiling'

        if self.policy.tie_break == 'pvalue' and len(tied) > 1:
            tests = [(v, s, self._test(ws, v, included, seeds)) for v, s in tied]
            # min() keeps the first (column order) among equal p-values
            variable, value, test = min(tests, key=lambda t: t[2].p_value)
        else:
            variable, value = tied[0]
            test = self._test(ws, variable, included, seeds)

        if not test.p_value < self.policy.alpha:
            logger.info("stop: %s not significant (p=%.4f)", variable, test.p_value)
            return None, 'not_significant'
        if not value > current:
            logger.info("stop: %s does not improve %s", variable, self.criterion.value)
            return None, 'no_improvement'

        return (variable, current, value, test), None

    def _backward(self, ws: _Workspace, included: List[str], protected: str,
                  seeds: np.random.SeedSequence):
        """Least significant removable predictor above alpha_out, or None."""
        worst = None
        for v in included:
            if v == protected:
                continue
            others = [u for u in included if u != v]
            test = self._test(ws, v, others, seeds)
            if worst is None or test.p_value > worst[1].p_value:
                worst = (v, test)
        if worst is not None and worst[1].p_value > self.policy.alpha_out:
            return worst
        return None

    def select(
        self,
        null_model: ConstrainedOrdinationResult,
        full_model: ConstrainedOrdinationResult,
        max_steps: Optional[int] = None,
        seed=None,
    ) -> Tuple[ConstrainedOrdinationResult, SelectionTrace]:
        """
        Run the selection.

        Parameters
        ----------
        null_model : ConstrainedOrdinationResult
            Starting model (usually no predictors).
        full_model : ConstrainedOrdinationResult
            Model with every candidate predictor; its criterion is the ceiling.
        max_steps : int, optional
            Cap on accepted steps. Defaults to stepwise.max_steps.
        seed : int, optional
            Seed for all permutation tests. Without one the selection is not
            bit-reproducible; the generated entropy is kept on the trace.

        Returns
        -------
        (selected model, SelectionTrace of SelectionStep)
        """
        _check_models(null_model, full_model)
        if max_steps is None:
            max_steps = get_setting('stepwise.max_steps')

        ws = _Workspace(full_model, self.criterion)
        seeds = as_seed_sequence(seed)
        entropy = seeds.entropy if seed is None else None

        included = [v for v in ws.design.variables if v in null_model.variables]
        ceiling = ws.score(list(ws.design.variables))
        steps: List[SelectionStep] = []
        reason = 'max_steps'

        while len(steps) < max_steps:
            accepted, stop = self._forward(ws, included, ceiling, seeds)
            if accepted is None:
                reason = stop
                break

            variable, before, after, test = accepted
            included.append(variable)
            steps.append(SelectionStep(
                step=len(steps) + 1, action='add', predictor=variable,
                criterion_before=before, criterion_after=after,
                statistic=test.statistic, p_value=test.p_value,
                n_permutations=test.n_permutations,
            ))
            logger.info("step %d: + %s (%s %.4f → %.4f, F=%.3f, p=%.4f)",
                        len(steps), variable, self.criterion.value,
                        before, after, test.statistic, test.p_value)

            while self.policy.direction == 'both' and len(steps) < max_steps:
                removal = self._backward(ws, included, variable, seeds)
                if removal is None:
                    break
                gone, test = removal
                before = ws.score(included)
                included.remove(gone)
                after = ws.score(included)
                steps.append(SelectionStep(
                    step=len(steps) + 1, action='remove', predictor=gone,
                    criterion_before=before, criterion_after=after,
                    statistic=test.statistic, p_value=test.p_value,
                    n_permutations=test.n_permutations,
                ))
                logger.info("step %d: - %s (p=%.4f)", len(steps), gone, test.p_value)

        predictors = full_model.predictors.select(included) if included else None
        model = fit(full_model.response, predictors, scale=full_model.scale, drop_collinear=True)
        return model, SelectionTrace(steps, reason, entropy)


def select(
    null_model: ConstrainedOrdinationResult,
    full_model: ConstrainedOrdinationResult,
    criterion='adj_r2',
    max_steps: Optional[int] = None,
    policy: Optional[SelectionPolicy] = None,
    seed=None,
    n_jobs: Optional[int] = None,
) -> Tuple[ConstrainedOrdinationResult, SelectionTrace]:
    """Functional form of StepwiseSelector(...).select(...)."""
    selector = StepwiseSelector(policy=policy, criterion=criterion, n_jobs=n_jobs)
    return selector.select(null_model, full_model, max_steps=max_steps, seed=seed)
