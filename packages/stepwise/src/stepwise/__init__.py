"""
Stepwise selection package.

Adds (and optionally removes) predictor variables of a redundancy analysis
one at a time, using adjusted R² as the criterion and a permutation test of
the partial pseudo-F as the significance gate. The full model's criterion
acts as a ceiling.

Permutation tests are stochastic: pass an explicit seed for reproducible
selections. Without one, results differ between runs and the generated
entropy is recorded on the returned trace.
"""

from stepwise.policy import Criterion, SelectionPolicy
from stepwise.partial import partial_f_test
from stepwise.select import SelectionStep, SelectionTrace, StepwiseSelector, select

__all__ = [
    'Criterion',
    'SelectionPolicy',
    'partial_f_test',
    'SelectionStep',
    'SelectionTrace',
    'StepwiseSelector',
    'select',
]
