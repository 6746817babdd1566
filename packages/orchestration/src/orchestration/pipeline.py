"""
Pipeline runner: sequences the ordination packages.

Defines the DAG of stages with named inputs/outputs:

    response ──► distance ──► dissimilarity ──┬─► decompose ──► ordination
                                              └─► permanova (+ groups)
    response + predictors ──► constrained ──► rda ──┐
    response ──► null_model ────────────────────────┴─► stepwise

Runs stages in topological order over in-memory artifacts. Stage options
are read from the pipeline's config, so one YAML file drives a whole run.

No math lives here. Only wiring.
"""

import importlib
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from ordination.config import get_setting

logger = logging.getLogger(__name__)


@dataclass
class PipelineStage:
    """Definition of a compute stage."""
    name: str
    package: str
    function: str  # dotted path: 'distance.compute.compute'
    inputs: List[str]  # artifact names passed positionally
    outputs: List[str]  # artifact names produced (several → tuple return)
    options: Dict[str, str] = field(default_factory=dict)  # kwarg → config path
    factories: Dict[str, str] = field(default_factory=dict)  # kwarg → dotted callable(config)
    stochastic: bool = False  # accepts seed / n_jobs
    optional: bool = False
    depends_on: List[str] = field(default_factory=list)


# Canonical stage ordering
STAGES: List[PipelineStage] = [
    PipelineStage(
        name='distance',
        package='distance',
        function='distance.compute.compute',
        inputs=['response'],
        outputs=['dissimilarity'],
        options={
            'transform': 'distance.default_transform',
            'metric': 'distance.default_metric',
        },
    ),
    PipelineStage(
        name='decompose',
        package='eigendecomp',
        function='eigendecomp.decompose.pcoa',
        inputs=['dissimilarity'],
        outputs=['ordination'],
        options={'correction': 'decompose.pcoa_correction'},
        depends_on=['distance'],
    ),
    PipelineStage(
        name='constrained',
        package='constrained',
        function='constrained.rda.fit',
        inputs=['response', 'predictors'],
        outputs=['rda'],
        options={
            'scale': 'constrained.scale',
            'drop_collinear': 'constrained.drop_collinear',
        },
    ),
    PipelineStage(
        name='null_model',
        package='constrained',
        function='constrained.rda.fit',
        inputs=['response'],
        outputs=['null_model'],
        options={'scale': 'constrained.scale'},
    ),
    PipelineStage(
        name='stepwise',
        package='stepwise',
        function='stepwise.select.select',
        inputs=['null_model', 'rda'],
        outputs=['selected', 'selection_trace'],
        options={
            'criterion': 'stepwise.criterion',
            'max_steps': 'stepwise.max_steps',
        },
        factories={'policy': 'stepwise.policy.SelectionPolicy.from_config'},
        stochastic=True,
        optional=True,
        depends_on=['constrained', 'null_model'],
    ),
    PipelineStage(
        name='permanova',
        package='inference',
        function='inference.permanova.permanova',
        inputs=['dissimilarity', 'groups'],
        outputs=['permanova'],
        options={'permutations': 'inference.permanova_permutations'},
        stochastic=True,
        optional=True,
        depends_on=['distance'],
    ),
]


def _resolve(dotted: str) -> Callable:
    """Import 'pkg.module.attr[.attr]' and return the attribute."""
    parts = dotted.split('.')
    for i in range(len(parts) - 1, 0, -1):
        try:
            obj = importlib.import_module('.'.join(parts[:i]))
        except ImportError:
            continue
        for attr in parts[i:]:
            obj = getattr(obj, attr)
        return obj
    raise ImportError(f"cannot resolve {dotted!r}")


class Pipeline:
    """
    Orchestrates execution of all ordination stages.

    Usage:
        pipeline = Pipeline()
        results = pipeline.run(response, predictors=env, groups=site, seed=1)
        results = pipeline.run(response, include=['decompose'])
        pipeline = Pipeline(config=load_config('run.yaml'))
    """

    def __init__(
        self,
        stages: Optional[List[PipelineStage]] = None,
        config: Optional[Dict[str, Any]] = None,
    ):
        self.stages = stages or STAGES
        self.config = config
        self._stage_map = {s.name: s for s in self.stages}

    def get_execution_order(
        self,
        include: Optional[List[str]] = None,
        skip_optional: bool = False,
    ) -> List[PipelineStage]:
        """
        Get topologically sorted execution order.

        Parameters
        ----------
        include : list of str, optional
            Only include these stages (plus dependencies).
        skip_optional : bool
            Skip optional stages.

        Returns
        -------
        list of PipelineStage in execution order.
        """
        if include:
            unknown = [name for name in include if name not in self._stage_map]
            if unknown:
                raise KeyError(f"unknown stages: {unknown}")
            # Resolve dependencies recursively
            needed = set()
            to_process = list(include)
            while to_process:
                name = to_process.pop()
                if name in needed:
                    continue
                needed.add(name)
                to_process.extend(self._stage_map[name].depends_on)
            stages = [s for s in self.stages if s.name in needed]
        else:
            stages = list(self.stages)

        if skip_optional:
            stages = [s for s in stages if not s.optional]

        return stages

    def check_inputs(self, stage: PipelineStage, available: Iterable[str]) -> List[str]:
        """Inputs of a stage not among the available artifact names."""
        available = set(available)
        return [inp for inp in stage.inputs if inp not in available]

    def stage_options(self, stage: PipelineStage) -> Dict[str, Any]:
        """Keyword arguments for a stage, read from the pipeline config."""
        kwargs = {kw: get_setting(path, config=self.config) for kw, path in stage.options.items()}
        for kw, dotted in stage.factories.items():
            kwargs[kw] = _resolve(dotted)(self.config)
        return kwargs

    def run_stage(
        self,
        stage: PipelineStage,
        artifacts: Dict[str, Any],
        seed=None,
        n_jobs: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Run a single stage, adding its outputs to ``artifacts``.

        Returns dict with status and timing. Errors from the stage
        function propagate.
        """
        available = [k for k, v in artifacts.items() if v is not None]
        missing = self.check_inputs(stage, available)

        result = {
            'stage': stage.name,
            'package': stage.package,
            'missing_inputs': missing,
        }

        if missing:
            result['status'] = 'skipped'
            result['reason'] = f'missing inputs: {missing}'
            logger.info("skip %s: missing %s", stage.name, missing)
            return result

        func = _resolve(stage.function)
        kwargs = self.stage_options(stage)
        if stage.stochastic:
            kwargs['seed'] = seed
            kwargs['n_jobs'] = n_jobs

        t0 = time.time()
        value = func(*[artifacts[name] for name in stage.inputs], **kwargs)
        if len(stage.outputs) == 1:
            value = (value,)
        artifacts.update(zip(stage.outputs, value))

        result['status'] = 'completed'
        result['outputs'] = list(stage.outputs)
        result['elapsed'] = time.time() - t0
        logger.info("%s done in %.3fs", stage.name, result['elapsed'])
        return result

    def run(
        self,
        response,
        predictors=None,
        groups=None,
        include: Optional[List[str]] = None,
        skip_optional: bool = False,
        seed=None,
        n_jobs: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Run the pipeline over in-memory inputs.

        Parameters
        ----------
        response : ObservationTable
        predictors : pl.DataFrame or ObservationTable, optional
            Enables the constrained and stepwise stages.
        groups : sequence, optional
            Group label per response row. Enables permanova.
        include : list of str, optional
            Only these stages (plus dependencies).
        skip_optional : bool
            Skip optional stages.
        seed : int, optional
            Seed shared by the stochastic stages.
        n_jobs : int, optional
            Worker threads for permutation tests.

        Returns
        -------
        dict of artifact name → value for every produced output, plus
        'stages': the per-stage status records.
        """
        artifacts: Dict[str, Any] = {
            'response': response,
            'predictors': predictors,
            'groups': groups,
        }
        inputs = set(artifacts)
        records = [
            self.run_stage(stage, artifacts, seed=seed, n_jobs=n_jobs)
            for stage in self.get_execution_order(include, skip_optional)
        ]
        results = {k: v for k, v in artifacts.items() if k not in inputs}
        results['stages'] = records
        return results

    def plan(
        self,
        available: Iterable[str] = ('response',),
        include: Optional[List[str]] = None,
    ) -> List[Dict[str, Any]]:
        """Dry-run: show what would execute given the available inputs."""
        available = set(available)
        plan = []
        for stage in self.get_execution_order(include):
            missing = self.check_inputs(stage, available)
            entry = {
                'stage': stage.name,
                'package': stage.package,
                'missing_inputs': missing,
                'status': 'skipped' if missing else 'dry_run',
            }
            if not missing:
                available.update(stage.outputs)
            plan.append(entry)
        return plan

    def list_stages(self) -> List[Dict[str, Any]]:
        """List all stages with their metadata."""
        return [
            {
                'name': s.name,
                'package': s.package,
                'function': s.function,
                'inputs': s.inputs,
                'outputs': s.outputs,
                'optional': s.optional,
            }
            for s in self.stages
        ]
