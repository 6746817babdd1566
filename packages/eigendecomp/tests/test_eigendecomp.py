"""Tests for the eigendecomp package."""
import numpy as np
import pytest


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def collinear_table():
    """4 observations, 2 perfectly correlated columns → one real axis."""
    from ordination.table import ObservationTable
    return ObservationTable.from_array([[1, 2], [2, 4], [3, 6], [4, 8]])


@pytest.fixture
def random_table():
    """10 observations × 3 variables with distinct variances."""
    from ordination.table import ObservationTable
    np.random.seed(42)
    values = np.random.randn(10, 3) * np.array([3.0, 1.5, 0.5])
    return ObservationTable.from_array(values)


@pytest.fixture
def non_euclidean():
    """Equilateral triangle plus a point 0.1 from every vertex."""
    from ordination.table import DissimilarityMatrix
    d = np.array([
        [0.0, 1.0, 1.0, 0.1],
        [1.0, 0.0, 1.0, 0.1],
        [1.0, 1.0, 0.0, 0.1],
        [0.1, 0.1, 0.1, 0.0],
    ])
    return DissimilarityMatrix.from_array(d)


def _euclidean(table):
    from distance.compute import compute
    return compute(table, metric='euclidean')


# ---------------------------------------------------------------------------
# PCA
# ---------------------------------------------------------------------------

class TestPCA:

    def test_collinear_single_axis(self, collinear_table):
        from eigendecomp.decompose import pca
        result = pca(collinear_table)
        assert result.n_axes == 2
        assert result.explained_ratio[0] == pytest.approx(1.0)
        assert result.eigenvalues[1] == pytest.approx(0.0, abs=1e-10)

    def test_eigenvalues_are_variances(self, random_table):
        from eigendecomp.decompose import pca
        result = pca(random_table)
        cov = np.cov(random_table.values, rowvar=False)
        np.testing.assert_allclose(result.eigenvalues, np.sort(np.linalg.eigvalsh(cov))[::-1])
        assert result.total_variance == pytest.approx(np.trace(cov))

    def test_explained_sums_to_one(self, random_table):
        from eigendecomp.decompose import pca
        result = pca(random_table)
        assert result.explained_ratio.sum() == pytest.approx(1.0)
        assert result.cumulative_explained[-1] == pytest.approx(1.0)
        assert np.all(np.diff(result.eigenvalues) <= 0)

    def test_axes_orthogonal(self, random_table):
        from eigendecomp.decompose import pca
        result = pca(random_table)
        gram = result.observation_scores.T @ result.observation_scores
        np.testing.assert_allclose(gram - np.diag(np.diag(gram)), 0.0, atol=1e-10)
        loadings = result.variable_scores
        np.testing.assert_allclose(loadings.T @ loadings, np.eye(3), atol=1e-10)

    def test_scores_reconstruct_data(self, random_table):
        from eigendecomp.decompose import pca
        result = pca(random_table)
        centered = random_table.values - random_table.values.mean(axis=0)
        np.testing.assert_allclose(result.observation_scores @ result.variable_scores.T, centered, atol=1e-10)

    def test_sign_rule(self, random_table):
        from eigendecomp.decompose import pca
        scores = pca(random_table).observation_scores
        for k in range(scores.shape[1]):
            col = scores[:, k]
            assert col[np.argmax(np.abs(col))] > 0

    def test_axis_count_wide_table(self):
        from ordination.table import ObservationTable
        from eigendecomp.decompose import pca
        np.random.seed(42)
        table = ObservationTable.from_array(np.random.randn(4, 10))
        assert pca(table).n_axes == 3
        assert pca(table, center=False).n_axes == 4

    def test_scaled_is_correlation_pca(self, random_table):
        from eigendecomp.decompose import pca
        result = pca(random_table, scale=True)
        corr = np.corrcoef(random_table.values, rowvar=False)
        np.testing.assert_allclose(result.eigenvalues, np.sort(np.linalg.eigvalsh(corr))[::-1])
        assert result.eigenvalues.sum() == pytest.approx(3.0)

    def test_labels(self, random_table):
        from eigendecomp.decompose import pca
        result = pca(random_table)
        assert result.axis_labels == ('PC1', 'PC2', 'PC3')
        assert result.axes[0].label == 'PC1'
        assert result.column_ids == random_table.column_ids

    def test_constant_table_is_degenerate(self):
        from ordination.errors import DegenerateInputError
        from ordination.table import ObservationTable
        from eigendecomp.decompose import pca
        with pytest.raises(DegenerateInputError):
            pca(ObservationTable.from_array(np.ones((5, 3))))

    def test_scale_zero_variance_column(self):
        from ordination.errors import DegenerateInputError
        from ordination.table import ObservationTable
        from eigendecomp.decompose import pca
        table = ObservationTable.from_array([[1.0, 5.0], [2.0, 5.0], [3.0, 5.0]])
        with pytest.raises(DegenerateInputError, match='col_1'):
            pca(table, scale=True)

    def test_tiny_units_are_not_degenerate(self):
        from ordination.table import ObservationTable
        from eigendecomp.decompose import pca
        np.random.seed(0)
        values = np.random.randn(10, 3)
        tiny = pca(ObservationTable.from_array(values * 1e-12))
        plain = pca(ObservationTable.from_array(values))
        np.testing.assert_allclose(tiny.eigenvalues, plain.eigenvalues * 1e-24, rtol=1e-8)
        np.testing.assert_allclose(tiny.explained_ratio, plain.explained_ratio, rtol=1e-8)

    def test_scale_low_variance_column(self):
        from ordination.table import ObservationTable
        from eigendecomp.decompose import pca
        np.random.seed(1)
        values = np.random.randn(12, 2)
        values[:, 1] *= 1e-8
        result = pca(ObservationTable.from_array(values), scale=True)
        assert result.eigenvalues.sum() == pytest.approx(2.0)

    def test_scale_constant_fractional_column(self):
        from ordination.errors import DegenerateInputError
        from ordination.table import ObservationTable
        from eigendecomp.decompose import pca
        table = ObservationTable.from_array([[1.0, 0.1], [2.0, 0.1], [3.0, 0.1], [4.0, 0.1]])
        with pytest.raises(DegenerateInputError, match='col_1'):
            pca(table, scale=True)

    def test_single_observation(self):
        from ordination.errors import InvalidInputError
        from ordination.table import ObservationTable
        from eigendecomp.decompose import pca
        with pytest.raises(InvalidInputError):
            pca(ObservationTable.from_array([[1.0, 2.0, 3.0]]))


# ---------------------------------------------------------------------------
# PCoA
# ---------------------------------------------------------------------------

class TestPCoA:

    def test_matches_pca_on_euclidean(self, random_table):
        from eigendecomp.decompose import pca, pcoa
        p = pca(random_table)
        q = pcoa(_euclidean(random_table))
        n = random_table.n_rows
        assert q.n_axes == p.n_axes
        np.testing.assert_allclose(q.eigenvalues, p.eigenvalues * (n - 1), rtol=1e-8)
        np.testing.assert_allclose(q.observation_scores, p.observation_scores, atol=1e-8)
        np.testing.assert_allclose(q.explained_ratio, p.explained_ratio, rtol=1e-8)
        np.testing.assert_allclose(q.axis_variances, p.axis_variances, rtol=1e-8)
        np.testing.assert_array_equal(p.axis_variances, p.eigenvalues)

    def test_distances_preserved(self, random_table):
        from scipy.spatial.distance import pdist
        from eigendecomp.decompose import pcoa
        dm = _euclidean(random_table)
        q = pcoa(dm)
        np.testing.assert_allclose(pdist(q.observation_scores), dm.condensed(), atol=1e-8)

    def test_labels_and_method(self, random_table):
        from eigendecomp.decompose import pcoa
        q = pcoa(_euclidean(random_table))
        assert q.method == 'PCoA'
        assert q.axis_labels[0] == 'PCoA1'
        assert q.variable_scores is None
        assert len(q.negative_eigenvalues) == 0

    def test_all_zero_is_degenerate(self):
        from ordination.errors import DegenerateInputError
        from ordination.table import DissimilarityMatrix
        from eigendecomp.decompose import pcoa
        with pytest.raises(DegenerateInputError):
            pcoa(DissimilarityMatrix.from_array(np.zeros((4, 4))))

    def test_negative_eigenvalues_reported(self, non_euclidean, caplog):
        import logging
        from eigendecomp.decompose import pcoa
        with caplog.at_level(logging.WARNING, logger='eigendecomp.decompose'):
            q = pcoa(non_euclidean)
        assert len(q.negative_eigenvalues) > 0
        assert np.all(q.eigenvalues > 0)
        assert q.explained_ratio.sum() == pytest.approx(1.0)
        assert 'not Euclidean' in caplog.text

    @pytest.mark.parametrize('correction', ['lingoes', 'cailliez'])
    def test_corrections_remove_negative_eigenvalues(self, non_euclidean, correction):
        from eigendecomp.decompose import pcoa
        q = pcoa(non_euclidean, correction=correction)
        assert len(q.negative_eigenvalues) == 0
        assert q.correction == correction

    def test_unknown_correction(self, non_euclidean):
        from ordination.errors import InvalidInputError
        from eigendecomp.decompose import pcoa
        with pytest.raises(InvalidInputError):
            pcoa(non_euclidean, correction='sqrt')


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

class TestDecompose:

    def test_dispatch(self, random_table):
        from eigendecomp.decompose import decompose
        assert decompose(random_table).method == 'PCA'
        assert decompose(_euclidean(random_table)).method == 'PCoA'

    def test_rejects_raw_array(self):
        from ordination.errors import InvalidInputError
        from eigendecomp.decompose import decompose
        with pytest.raises(InvalidInputError):
            decompose(np.eye(3))

    def test_rejects_scale_for_dissimilarity(self, random_table):
        from ordination.errors import InvalidInputError
        from eigendecomp.decompose import decompose
        with pytest.raises(InvalidInputError):
            decompose(_euclidean(random_table), scale=True)

    def test_rejects_correction_for_table(self, random_table):
        from ordination.errors import InvalidInputError
        from eigendecomp.decompose import decompose
        with pytest.raises(InvalidInputError):
            decompose(random_table, correction='lingoes')


# ---------------------------------------------------------------------------
# Continuity
# ---------------------------------------------------------------------------

class TestContinuity:

    def test_orient_flips_scores_and_loadings_together(self):
        from eigendecomp.continuity import orient_axes
        scores = np.array([[1.0, 2.0], [-3.0, 0.5]])
        loadings = np.array([[0.6, 0.8], [0.8, -0.6]])
        s, v = orient_axes(scores, loadings)
        np.testing.assert_array_equal(s[:, 0], [-1.0, 3.0])
        np.testing.assert_array_equal(v[:, 0], [-0.6, -0.8])
        np.testing.assert_array_equal(s[:, 1], scores[:, 1])

    def test_zero_axis_uses_loadings(self):
        from eigendecomp.continuity import orient_axes
        scores = np.zeros((3, 1))
        loadings = np.array([[0.2], [-0.9]])
        _, v = orient_axes(scores, loadings)
        assert v[1, 0] == pytest.approx(0.9)

    def test_tiny_scores_still_set_the_sign(self):
        from eigendecomp.continuity import orient_axes
        scores = np.array([[1e-14], [-3e-14]])
        loadings = np.array([[0.9], [0.2]])
        s, v = orient_axes(scores, loadings)
        assert s[1, 0] > 0
        assert v[0, 0] < 0

    def test_align_axes(self, random_table):
        from dataclasses import replace
        from eigendecomp.continuity import align_axes
        from eigendecomp.decompose import pca
        ref = pca(random_table)
        flipped = replace(
            ref,
            observation_scores=ref.observation_scores * np.array([1.0, -1.0, -1.0]),
            variable_scores=ref.variable_scores * np.array([1.0, -1.0, -1.0]),
        )
        aligned = align_axes(flipped, ref)
        np.testing.assert_allclose(aligned.observation_scores, ref.observation_scores)
        np.testing.assert_allclose(aligned.variable_scores, ref.variable_scores)

    def test_enforce_axis_continuity_signs(self):
        from eigendecomp.continuity import enforce_axis_continuity
        ref = np.array([[1.0, 1.0], [2.0, -1.0]])
        cur = np.array([[-1.0, 1.0], [-2.0, -1.0]])
        np.testing.assert_array_equal(enforce_axis_continuity(cur, ref), [-1.0, 1.0])


# ---------------------------------------------------------------------------
# Flatten
# ---------------------------------------------------------------------------

class TestFlatten:

    def test_flatten_keys(self, random_table):
        from eigendecomp.decompose import pca
        from eigendecomp.flatten import flatten_result
        row = flatten_result(pca(random_table), max_axes=2)
        assert row['method'] == 'PCA'
        assert row['n_observations'] == 10
        assert row['n_variables'] == 3
        assert 'eigenvalue_PC2' in row
        assert 'eigenvalue_PC3' not in row
        assert row['cumulative_PC2'] == pytest.approx(row['explained_PC1'] + row['explained_PC2'])

    def test_flatten_pcoa(self, non_euclidean):
        from eigendecomp.decompose import pcoa
        from eigendecomp.flatten import flatten_result
        row = flatten_result(pcoa(non_euclidean))
        assert row['n_negative_eigenvalues'] > 0
        assert 'n_variables' not in row

    def test_axes_frame(self, random_table):
        from eigendecomp.decompose import pca
        from eigendecomp.flatten import axes_frame
        df = axes_frame(pca(random_table))
        assert df.columns == ['kind', 'axis', 'eigenvalue', 'explained', 'cumulative']
        assert df.height == 3
        assert df['cumulative'][-1] == pytest.approx(1.0)

    def test_scores_frame(self, random_table):
        from eigendecomp.decompose import pca, pcoa
        from eigendecomp.flatten import scores_frame
        obs = scores_frame(pca(random_table), max_axes=2)
        assert obs.columns == ['id', 'PC1', 'PC2']
        var = scores_frame(pca(random_table), which='variables')
        assert var['id'].to_list() == list(random_table.column_ids)
        with pytest.raises(ValueError):
            scores_frame(pcoa(_euclidean(random_table)), which='variables')
