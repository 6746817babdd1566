"""
Orchestration package.

Runs the ordination stages in dependency order:
distance → decompose / permanova, constrained → stepwise.

This package imports and sequences all other packages.
It passes in-memory tables between package functions.
No math lives here, only wiring.
"""

from orchestration.pipeline import STAGES, Pipeline, PipelineStage

__all__ = ['STAGES', 'Pipeline', 'PipelineStage']
