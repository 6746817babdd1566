"""Tests for the orchestration package."""
import numpy as np
import polars as pl
import pytest


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def data():
    """16 sites × 4 species with one informative predictor and two habitats."""
    from ordination.table import ObservationTable
    np.random.seed(42)
    n = 16
    gradient = np.linspace(0.0, 1.0, n)
    env = pl.DataFrame({'gradient': gradient, 'noise': np.random.randn(n)})
    counts = np.column_stack([
        30 * gradient + 1,
        30 * (1 - gradient) + 1,
        np.full(n, 10.0),
        5 + 5 * np.random.rand(n),
    ])
    response = ObservationTable.from_array(counts, row_ids=[f's{i}' for i in range(n)])
    groups = ['low'] * (n // 2) + ['high'] * (n // 2)
    return response, env, groups


@pytest.fixture
def fast_config(tmp_path):
    from ordination.config import load_config
    path = tmp_path / 'fast.yaml'
    path.write_text(
        "stepwise:\n  permutations: 99\n"
        "inference:\n  permanova_permutations: 99\n"
        "distance:\n  default_transform: hellinger\n"
    )
    return load_config(path)


# ---------------------------------------------------------------------------
# Stage graph
# ---------------------------------------------------------------------------

class TestStages:

    def test_stage_names(self):
        from orchestration.pipeline import STAGES
        assert [s.name for s in STAGES] == [
            'distance', 'decompose', 'constrained', 'null_model', 'stepwise', 'permanova',
        ]

    def test_no_unknown_deps(self):
        from orchestration.pipeline import STAGES
        stage_names = {s.name for s in STAGES}
        for s in STAGES:
            for dep in s.depends_on:
                assert dep in stage_names, f'{s.name} depends on unknown stage {dep}'

    def test_inputs_are_produced_upstream(self):
        from orchestration.pipeline import STAGES
        available = {'response', 'predictors', 'groups'}
        for s in STAGES:
            for inp in s.inputs:
                assert inp in available, f'{s.name} consumes {inp} before it exists'
            available.update(s.outputs)

    def test_functions_resolve(self):
        from orchestration.pipeline import STAGES, _resolve
        for s in STAGES:
            assert callable(_resolve(s.function))
            for dotted in s.factories.values():
                assert callable(_resolve(dotted))

    def test_config_paths_exist(self):
        from ordination.config import get_setting
        from orchestration.pipeline import STAGES
        sentinel = object()
        for s in STAGES:
            for path in s.options.values():
                assert get_setting(path, default=sentinel) is not sentinel, path


class TestExecutionOrder:

    def test_full_order(self):
        from orchestration.pipeline import Pipeline
        names = [s.name for s in Pipeline().get_execution_order()]
        assert names.index('distance') < names.index('decompose')
        assert names.index('distance') < names.index('permanova')
        assert names.index('constrained') < names.index('stepwise')
        assert names.index('null_model') < names.index('stepwise')

    def test_subset_includes_deps(self):
        from orchestration.pipeline import Pipeline
        names = [s.name for s in Pipeline().get_execution_order(include=['stepwise'])]
        assert names == ['constrained', 'null_model', 'stepwise']

    def test_skip_optional(self):
        from orchestration.pipeline import Pipeline
        names = [s.name for s in Pipeline().get_execution_order(skip_optional=True)]
        assert 'stepwise' not in names
        assert 'permanova' not in names
        assert 'decompose' in names

    def test_unknown_stage(self):
        from orchestration.pipeline import Pipeline
        with pytest.raises(KeyError):
            Pipeline().get_execution_order(include=['clustering'])

    def test_list_stages(self):
        from orchestration.pipeline import Pipeline
        stages = Pipeline().list_stages()
        assert len(stages) == 6
        assert all({'name', 'package', 'inputs', 'outputs', 'optional'} <= set(s) for s in stages)

    def test_plan_response_only(self):
        from orchestration.pipeline import Pipeline
        plan = {r['stage']: r for r in Pipeline().plan()}
        assert plan['distance']['status'] == 'dry_run'
        assert plan['decompose']['status'] == 'dry_run'
        assert plan['constrained']['status'] == 'skipped'
        assert plan['constrained']['missing_inputs'] == ['predictors']
        assert plan['stepwise']['status'] == 'skipped'
        assert plan['permanova']['missing_inputs'] == ['groups']

    def test_plan_everything(self):
        from orchestration.pipeline import Pipeline
        plan = Pipeline().plan(available=['response', 'predictors', 'groups'])
        assert all(r['status'] == 'dry_run' for r in plan)


# ---------------------------------------------------------------------------
# Running
# ---------------------------------------------------------------------------

class TestRun:

    def test_response_only(self, data):
        from orchestration.pipeline import Pipeline
        response, _, _ = data
        results = Pipeline().run(response, include=['decompose'])
        assert set(results) == {'dissimilarity', 'ordination', 'stages'}
        assert results['ordination'].method == 'PCoA'
        assert results['dissimilarity'].ids == response.row_ids
        assert [r['status'] for r in results['stages']] == ['completed', 'completed']

    def test_missing_inputs_skip(self, data):
        from orchestration.pipeline import Pipeline
        response, _, _ = data
        results = Pipeline().run(response)
        status = {r['stage']: r['status'] for r in results['stages']}
        assert status['constrained'] == 'skipped'
        assert status['stepwise'] == 'skipped'
        assert status['permanova'] == 'skipped'
        assert 'rda' not in results

    def test_full_run(self, data, fast_config):
        from orchestration.pipeline import Pipeline
        response, env, groups = data
        results = Pipeline(config=fast_config).run(response, predictors=env, groups=groups, seed=1)
        assert results['dissimilarity'].transform == 'hellinger'
        assert results['rda'].variables == ('gradient', 'noise')
        assert results['null_model'].rank == 0
        assert results['selection_trace'][0].predictor == 'gradient'
        assert 'gradient' in results['selected'].variables
        assert results['permanova'].n_permutations == 99
        assert all(r['status'] == 'completed' for r in results['stages'])

    def test_seeded_runs_repeat(self, data, fast_config):
        from orchestration.pipeline import Pipeline
        response, env, groups = data
        pipeline = Pipeline(config=fast_config)
        a = pipeline.run(response, predictors=env, groups=groups, seed=4, include=['stepwise', 'permanova'])
        b = pipeline.run(response, predictors=env, groups=groups, seed=4, include=['stepwise', 'permanova'])
        assert a['selection_trace'] == b['selection_trace']
        assert a['permanova'] == b['permanova']

    def test_stage_errors_propagate(self, data):
        from ordination.errors import RankDeficiencyError
        from orchestration.pipeline import Pipeline
        response, env, _ = data
        env = env.with_columns(pl.col('gradient').alias('gradient2'))
        with pytest.raises(RankDeficiencyError):
            Pipeline().run(response, predictors=env, include=['constrained'])
