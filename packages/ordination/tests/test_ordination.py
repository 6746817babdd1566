"""Tests for the shared ordination core."""
import numpy as np
import pytest


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def small_values():
    np.random.seed(42)
    return np.random.rand(6, 3)


@pytest.fixture
def square_distances():
    """Euclidean distances between 4 points on a line: 0, 1, 3, 6."""
    x = np.array([0.0, 1.0, 3.0, 6.0])
    return np.abs(x[:, None] - x[None, :])


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class TestErrors:

    def test_hierarchy(self):
        from ordination.errors import (
            OrdinationError, InvalidInputError, DegenerateInputError, RankDeficiencyError,
        )
        for cls in (InvalidInputError, DegenerateInputError, RankDeficiencyError):
            assert issubclass(cls, OrdinationError)
            assert issubclass(cls, ValueError)

    def test_rank_deficiency_carries_dropped(self):
        from ordination.errors import RankDeficiencyError
        err = RankDeficiencyError("collinear", dropped=['b', 'c'])
        assert err.dropped == ('b', 'c')
        assert 'collinear' in str(err)


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

class TestConfig:

    def test_get_setting(self):
        from ordination.config import get_setting
        assert get_setting('stepwise.alpha') == 0.05
        assert get_setting('stepwise.permutations') == 999
        assert get_setting('tolerance.eigenvalue') == 1e-10

    def test_get_setting_missing_returns_default(self):
        from ordination.config import get_setting
        assert get_setting('stepwise.nope') is None
        assert get_setting('nope.nope', default=3) == 3

    def test_defaults_are_consistent(self):
        from ordination.config import validate_config
        assert validate_config() == []

    def test_validate_catches_bad_values(self):
        import copy
        from ordination.config import CONFIG, validate_config
        cfg = copy.deepcopy(CONFIG)
        cfg['stepwise']['alpha'] = 0.0
        cfg['stepwise']['tie_break'] = 'random'
        cfg['decompose']['pcoa_correction'] = 'sqrt'
        errors = validate_config(cfg)
        assert len(errors) == 3

    def test_load_config_merges_without_mutating(self, tmp_path):
        from ordination.config import CONFIG, get_setting, load_config
        path = tmp_path / 'run.yaml'
        path.write_text("stepwise:\n  alpha: 0.01\n  permutations: 199\n")
        cfg = load_config(path)
        assert get_setting('stepwise.alpha', config=cfg) == 0.01
        assert get_setting('stepwise.permutations', config=cfg) == 199
        # untouched keys survive the merge
        assert get_setting('stepwise.max_steps', config=cfg) == 50
        assert CONFIG['stepwise']['alpha'] == 0.05

    def test_load_config_empty_file(self, tmp_path):
        from ordination.config import CONFIG, load_config
        path = tmp_path / 'empty.yaml'
        path.write_text("")
        assert load_config(path) == CONFIG

    def test_load_config_rejects_non_mapping(self, tmp_path):
        from ordination.config import load_config
        path = tmp_path / 'list.yaml'
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ValueError):
            load_config(path)


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------

class TestObservationTable:

    def test_from_array_default_ids(self, small_values):
        from ordination.table import ObservationTable
        t = ObservationTable.from_array(small_values)
        assert t.shape == (6, 3)
        assert t.row_ids[0] == 'row_0'
        assert t.column_ids == ('col_0', 'col_1', 'col_2')

    def test_values_are_read_only(self, small_values):
        from ordination.table import ObservationTable
        t = ObservationTable.from_array(small_values)
        with pytest.raises(ValueError):
            t.values[0, 0] = 1.0

    def test_rejects_non_finite(self, small_values):
        from ordination.errors import InvalidInputError
        from ordination.table import ObservationTable
        small_values[2, 1] = np.nan
        with pytest.raises(InvalidInputError):
            ObservationTable.from_array(small_values)

    def test_rejects_duplicate_ids(self, small_values):
        from ordination.errors import InvalidInputError
        from ordination.table import ObservationTable
        with pytest.raises(InvalidInputError, match='duplicated'):
            ObservationTable.from_array(small_values, column_ids=['a', 'b', 'a'])

    def test_rejects_wrong_id_count(self, small_values):
        from ordination.errors import InvalidInputError
        from ordination.table import ObservationTable
        with pytest.raises(InvalidInputError):
            ObservationTable.from_array(small_values, row_ids=['a', 'b'])

    def test_polars_round_trip(self, small_values):
        import polars as pl
        from ordination.table import ObservationTable
        df = pl.DataFrame({
            'site': [f's{i}' for i in range(6)],
            'a': small_values[:, 0],
            'b': small_values[:, 1],
        })
        t = ObservationTable.from_polars(df, id_column='site')
        assert t.row_ids[3] == 's3'
        assert t.column_ids == ('a', 'b')
        back = t.to_polars(id_column='site')
        assert back.columns == ['site', 'a', 'b']
        np.testing.assert_allclose(back['b'].to_numpy(), small_values[:, 1])

    def test_polars_rejects_strings(self):
        import polars as pl
        from ordination.errors import InvalidInputError
        from ordination.table import ObservationTable
        df = pl.DataFrame({'a': [1.0, 2.0], 'b': ['x', 'y']})
        with pytest.raises(InvalidInputError, match='non-numeric'):
            ObservationTable.from_polars(df)

    def test_take_rows_moves_ids(self, small_values):
        from ordination.table import ObservationTable
        t = ObservationTable.from_array(small_values)
        r = t.take_rows([5, 0, 1, 2, 3, 4])
        assert r.row_ids[0] == 'row_5'
        np.testing.assert_array_equal(r.values[0], small_values[5])


class TestDissimilarityMatrix:

    def test_valid(self, square_distances):
        from ordination.table import DissimilarityMatrix
        dm = DissimilarityMatrix.from_array(square_distances)
        assert dm.n == 4
        np.testing.assert_allclose(dm.condensed(), [1, 3, 6, 2, 5, 3])

    def test_snaps_tiny_asymmetry(self, square_distances):
        from ordination.table import DissimilarityMatrix
        square_distances[0, 1] += 1e-12
        dm = DissimilarityMatrix.from_array(square_distances)
        assert dm.values[0, 1] == dm.values[1, 0]

    @pytest.mark.parametrize('mutate', ['asymmetric', 'diagonal', 'negative', 'nonsquare'])
    def test_rejects(self, square_distances, mutate):
        from ordination.errors import InvalidInputError
        from ordination.table import DissimilarityMatrix
        d = square_distances.copy()
        if mutate == 'asymmetric':
            d[0, 1] = 2.0
        elif mutate == 'diagonal':
            d[2, 2] = 0.5
        elif mutate == 'negative':
            d[0, 1] = d[1, 0] = -1.0
        else:
            d = d[:, :3]
        with pytest.raises(InvalidInputError):
            DissimilarityMatrix.from_array(d)

    def test_needs_two_observations(self):
        from ordination.errors import InvalidInputError
        from ordination.table import DissimilarityMatrix
        with pytest.raises(InvalidInputError):
            DissimilarityMatrix.from_array(np.zeros((1, 1)))


class TestConstantColumns:

    def test_relative_to_column_magnitude(self):
        from ordination.table import constant_columns
        np.random.seed(2)
        values = np.column_stack([
            np.random.randn(6) * 1e-12,
            np.full(6, 0.1),
            np.zeros(6),
            5e6 + np.random.randn(6),
        ])
        assert list(constant_columns(values)) == [1, 2]

    def test_single_row_is_constant(self):
        from ordination.table import constant_columns
        assert list(constant_columns(np.array([[1.0, 2.0]]))) == [0, 1]


# ---------------------------------------------------------------------------
# Permutation engine
# ---------------------------------------------------------------------------

def _first_value_statistic(values):
    """Statistic that is large only when the largest value stays first."""
    return lambda order: float(values[order][0])


class TestPermutations:

    def test_same_seed_same_result(self):
        from ordination.permutation import run_permutations
        values = np.arange(10, dtype=float)
        stat = _first_value_statistic(values[::-1])
        a = run_permutations(stat, 9.0, n_obs=10, n_permutations=199, seed=7)
        b = run_permutations(stat, 9.0, n_obs=10, n_permutations=199, seed=7)
        assert a == b

    def test_n_jobs_does_not_change_result(self):
        from ordination.permutation import run_permutations
        values = np.random.RandomState(0).rand(12)
        stat = _first_value_statistic(values)
        serial = run_permutations(stat, values[0], 12, 250, seed=3, n_jobs=1, chunk_size=20)
        threaded = run_permutations(stat, values[0], 12, 250, seed=3, n_jobs=4, chunk_size=20)
        assert serial.n_exceed == threaded.n_exceed
        assert serial.p_value == threaded.p_value

    def test_p_value_bounds(self):
        from ordination.permutation import run_permutations
        stat = lambda order: 0.0
        # observed above every permuted value: minimum attainable p
        low = run_permutations(stat, 1.0, 5, 99, seed=1)
        assert low.n_exceed == 0
        assert low.p_value == 0.0
        # observed equal to every permuted value: all count as exceeding
        high = run_permutations(stat, 0.0, 5, 99, seed=1)
        assert high.n_exceed == 99
        assert high.p_value == 1.0

    def test_infinite_observed(self):
        from ordination.permutation import run_permutations
        result = run_permutations(lambda order: 1.0, float('inf'), 4, 9, seed=1)
        assert result.p_value == 0.0

    def test_fraction_of_exceedances(self):
        from ordination.permutation import run_permutations
        values = np.arange(5, dtype=float)
        # observed 3.0: permutations putting 3 or 4 first count as exceeding
        result = run_permutations(_first_value_statistic(values), 3.0, 5, 200, seed=2)
        assert 0 < result.n_exceed < 200
        assert result.p_value == pytest.approx(result.n_exceed / 200)

    def test_plus_one_correction(self):
        from ordination.permutation import run_permutations
        stat = lambda order: 0.0
        result = run_permutations(stat, 1.0, 5, 19, seed=1, plus_one=True)
        assert result.p_value == pytest.approx(1 / 20)
        values = np.arange(5, dtype=float)
        corrected = run_permutations(_first_value_statistic(values), 3.0, 5, 200, seed=2, plus_one=True)
        assert corrected.p_value == pytest.approx((corrected.n_exceed + 1) / 201)

    def test_plus_one_from_config(self, monkeypatch):
        from ordination.config import CONFIG
        from ordination.permutation import run_permutations
        monkeypatch.setitem(CONFIG['permutation'], 'plus_one', True)
        result = run_permutations(lambda order: 0.0, 1.0, 5, 19, seed=1)
        assert result.p_value == pytest.approx(1 / 20)

    def test_reused_seed_sequence_repeats(self):
        from ordination.permutation import run_permutations
        values = np.random.RandomState(1).rand(8)
        stat = _first_value_statistic(values)
        ss = np.random.SeedSequence(1234)
        a = run_permutations(stat, values[0], 8, 99, seed=ss)
        b = run_permutations(stat, values[0], 8, 99, seed=ss)
        assert a == b
        assert ss.n_children_spawned == 0

    def test_unseeded_records_entropy(self, caplog):
        import logging
        from ordination.permutation import run_permutations
        with caplog.at_level(logging.WARNING, logger='ordination.permutation'):
            result = run_permutations(lambda order: 0.0, 1.0, 4, 9)
        assert result.entropy is not None
        assert 'not reproducible' in caplog.text

    def test_rejects_zero_permutations(self):
        from ordination.permutation import run_permutations
        with pytest.raises(ValueError):
            run_permutations(lambda order: 0.0, 1.0, 4, 0, seed=1)

    def test_orders_are_permutations(self):
        from ordination.permutation import as_seed_sequence, permutation_orders
        seeds = as_seed_sequence(5).spawn(3)
        orders = permutation_orders(8, seeds)
        assert orders.shape == (3, 8)
        for row in orders:
            assert sorted(row) == list(range(8))
