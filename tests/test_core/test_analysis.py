"""
Tests for core analysis components.

This module tests the fundamental algorithms of the Poisson GLM toolkit:
- Design matrix construction
- Filter extraction (STA, whitened STA and linear-Gaussian GLM)
- Nonlinearity estimation
- Encoding model analysis pipeline
"""

import logging

import pytest
import numpy as np
from numpy.testing import assert_array_almost_equal, assert_allclose, assert_array_equal
from hypothesis import given, settings, strategies as st

from poisson_glm_toolkit.core.encoding_analyzer import EncodingModelAnalyzer, sweep_window_sizes
from poisson_glm_toolkit.core.design_matrix import (
    DesignMatrixBuilder, build_design_matrix, lag_axis, validate_design_matrix
)
from poisson_glm_toolkit.core.filter_extraction import (
    FittedFilter, LinearGaussianFitter, spike_triggered_average, whitened_sta,
    compare_filter_methods
)
from poisson_glm_toolkit.core.nonlinearity_estimation import (
    NonlinearityEstimator, NonparametricNonlinearity, estimate_nonlinearity
)
from poisson_glm_toolkit.core.exceptions import (
    DataValidationError, DimensionMismatchError, SingularMatrixError,
    DegenerateInputError, ConfigurationError
)
from poisson_glm_toolkit.synthetic import SyntheticDataGenerator, create_biphasic_filter
from poisson_glm_toolkit.utils.config import load_default_config
from poisson_glm_toolkit.utils.metrics import FilterMetrics


class TestDesignMatrix:
    """Test design matrix construction"""

    def test_temporal_design_matrix(self):
        """Test basic temporal design matrix construction"""
        window_size = 5
        stimulus = np.array([1, 2, 3, 4, 5, 6, 7, 8])

        design_matrix = build_design_matrix(stimulus, window_size)

        assert design_matrix.shape == (len(stimulus), window_size)

        # Zero padding at the beginning, earliest lag first
        assert_array_almost_equal(design_matrix[0], [0, 0, 0, 0, 1])
        assert_array_almost_equal(design_matrix[1], [0, 0, 0, 1, 2])
        assert_array_almost_equal(design_matrix[-1], [4, 5, 6, 7, 8])

    def test_rows_are_shifted_copies(self):
        """Each row equals the previous row shifted left by one sample"""
        stimulus = np.random.default_rng(0).normal(size=200)
        design_matrix = build_design_matrix(stimulus, 12)

        assert_array_equal(design_matrix[1:, :-1], design_matrix[:-1, 1:])
        # Lag-zero column is the stimulus itself
        assert_array_equal(design_matrix[:, -1], stimulus)

        validation = validate_design_matrix(design_matrix, 200, 12)
        assert validation['shape_ok']
        assert validation['hankel_structure']
        assert validation['warnings'] == []

    def test_leading_zero_padding(self):
        """The first window_size - 1 rows contain the padding zeros"""
        stimulus = np.arange(1, 11, dtype=float)
        design_matrix = build_design_matrix(stimulus, 4)

        for t in range(3):
            assert_array_equal(design_matrix[t, :3 - t], 0.0)
            assert np.all(design_matrix[t, 3 - t:] > 0)

    def test_window_equal_to_length(self):
        """A window covering the whole stimulus is allowed"""
        stimulus = np.array([3.0, -1.0, 2.0])
        design_matrix = build_design_matrix(stimulus, 3)

        assert design_matrix.shape == (3, 3)
        assert_array_equal(design_matrix[-1], stimulus)

    def test_intercept_column(self):
        """Intercept column of ones is prepended"""
        builder = DesignMatrixBuilder(3, include_intercept=True)
        design_matrix = builder.build(np.arange(6, dtype=float))

        assert builder.n_columns == 4
        assert design_matrix.shape == (6, 4)
        assert_array_equal(design_matrix[:, 0], 1.0)
        assert_array_equal(design_matrix[-1, 1:], [3, 4, 5])

        validation = validate_design_matrix(design_matrix, 6, 3, include_intercept=True)
        assert validation['shape_ok']
        assert validation['hankel_structure']

    def test_result_is_writable_copy(self):
        """Returned matrix does not alias the stimulus"""
        stimulus = np.arange(5, dtype=float)
        design_matrix = build_design_matrix(stimulus, 2)
        design_matrix[0, 0] = 99.0
        assert stimulus[0] == 0.0

    def test_lag_axis(self):
        """Lag axis runs from the earliest lag to zero"""
        assert_allclose(lag_axis(3, dt=0.01), [-0.02, -0.01, 0.0])
        assert_allclose(lag_axis(1), [0.0])

    def test_invalid_parameters(self):
        """Test error handling for invalid parameters"""
        with pytest.raises(DimensionMismatchError):
            DesignMatrixBuilder(window_size=0)

        with pytest.raises(DimensionMismatchError):
            build_design_matrix(np.ones(4), 5)

        with pytest.raises(DataValidationError):
            build_design_matrix(np.ones((4, 2)), 2)

        with pytest.raises(DataValidationError):
            build_design_matrix(np.array([1.0, np.nan, 2.0]), 2)

        with pytest.raises(DataValidationError):
            build_design_matrix(np.array([]), 1)

    def test_validation_detects_broken_structure(self):
        """validate_design_matrix flags a non-Hankel matrix"""
        design_matrix = build_design_matrix(np.arange(10, dtype=float), 3)
        design_matrix[5, 0] = -1.0

        validation = validate_design_matrix(design_matrix, 10, 3)
        assert not validation['hankel_structure']
        assert len(validation['warnings']) == 1

        validation = validate_design_matrix(design_matrix, 11, 3)
        assert not validation['shape_ok']

    @settings(max_examples=25, deadline=None)
    @given(
        window_size=st.integers(min_value=1, max_value=20),
        n_samples=st.integers(min_value=20, max_value=300)
    )
    def test_design_matrix_properties(self, window_size, n_samples):
        """Test design matrix properties hold for various inputs"""
        stimulus = np.random.default_rng(n_samples).normal(size=n_samples)
        design_matrix = build_design_matrix(stimulus, window_size)

        assert design_matrix.shape == (n_samples, window_size)
        assert np.isfinite(design_matrix).all()
        assert_array_equal(design_matrix[1:, :-1], design_matrix[:-1, 1:])


class TestFilterExtraction:
    """Test filter extraction algorithms"""

    def setup_method(self):
        """Setup common test data"""
        self.window_size = 8
        self.n_samples = 500
        rng = np.random.default_rng(42)

        self.stimulus = rng.normal(size=self.n_samples)
        self.design_matrix = build_design_matrix(self.stimulus, self.window_size)
        self.true_filter = rng.normal(size=self.window_size)

    def test_exact_recovery_without_offset(self):
        """OLS recovers a noiseless linear filter exactly"""
        response = self.design_matrix @ self.true_filter

        fitted = LinearGaussianFitter().fit(self.design_matrix, response)

        assert fitted.method == 'linear_gaussian'
        assert fitted.intercept is None
        assert fitted.n_parameters == self.window_size
        assert_allclose(fitted.filter, self.true_filter, atol=1e-9)

    def test_exact_recovery_with_offset(self):
        """OLS with offset recovers filter and intercept exactly"""
        response = 0.7 + self.design_matrix @ self.true_filter

        fitted = LinearGaussianFitter(include_intercept=True).fit(self.design_matrix, response)

        assert fitted.method == 'linear_gaussian_offset'
        assert fitted.has_intercept
        assert fitted.intercept == pytest.approx(0.7, abs=1e-9)
        assert_allclose(fitted.filter, self.true_filter, atol=1e-9)
        assert_allclose(fitted.coefficients, np.concatenate([[0.7], self.true_filter]), atol=1e-9)
        assert_allclose(fitted.predict_rate(self.design_matrix), response, atol=1e-9)

    def test_intercept_override(self):
        """fit() argument overrides the fitter default"""
        response = self.design_matrix @ self.true_filter
        fitted = LinearGaussianFitter(include_intercept=True).fit(
            self.design_matrix, response, include_intercept=False
        )
        assert not fitted.has_intercept

    def test_singular_design(self):
        """Rank-deficient designs raise SingularMatrixError"""
        duplicated = np.column_stack([self.design_matrix, self.design_matrix[:, 0]])
        response = np.ones(self.n_samples)

        with pytest.raises(SingularMatrixError):
            LinearGaussianFitter().fit(duplicated, response)

        with pytest.raises(SingularMatrixError):
            LinearGaussianFitter().fit(self.design_matrix[:3], response[:3])

    def test_misaligned_inputs(self):
        """Different numbers of time bins raise DimensionMismatchError"""
        with pytest.raises(DimensionMismatchError):
            LinearGaussianFitter().fit(self.design_matrix, np.ones(self.n_samples - 1))

    def test_sta_extraction(self):
        """STA is the spike-weighted mean stimulus window"""
        spikes = np.zeros(self.n_samples)
        spikes[[20, 100, 300]] = [1, 2, 1]

        sta = spike_triggered_average(self.design_matrix, spikes)

        expected = (self.design_matrix[20] + 2 * self.design_matrix[100]
                    + self.design_matrix[300]) / 4
        assert sta.shape == (self.window_size,)
        assert_allclose(sta, expected)

    def test_sta_without_spikes(self):
        """STA is undefined without spikes"""
        with pytest.raises(DegenerateInputError):
            spike_triggered_average(self.design_matrix, np.zeros(self.n_samples))

    def test_whitened_sta_matches_linear_fit(self):
        """Whitened STA is the no-offset linear-Gaussian filter"""
        spikes = np.random.default_rng(1).poisson(0.5, self.n_samples)

        wsta = whitened_sta(self.design_matrix, spikes)
        fitted = LinearGaussianFitter().fit(self.design_matrix, spikes)

        assert_allclose(wsta, fitted.filter)

    def test_compare_filter_methods(self):
        """Identical filters compare as similar"""
        comparison = compare_filter_methods(self.true_filter, 2 * self.true_filter)

        assert comparison['correlation'] == pytest.approx(1.0)
        assert comparison['filters_similar']
        assert comparison['magnitude_ratio'] == pytest.approx(2.0)

        mismatch = compare_filter_methods(self.true_filter, np.ones(3))
        assert not mismatch['filters_similar']
        assert 'error' in mismatch


class TestFittedFilter:
    """Test the immutable fitted filter"""

    def test_immutable(self):
        weights = np.array([1.0, 2.0, 3.0])
        fitted = FittedFilter(weights, intercept=0.5, link='exp')

        weights[0] = 100.0
        assert fitted.filter[0] == 1.0

        with pytest.raises(ValueError):
            fitted.filter[0] = 5.0

        with pytest.raises(AttributeError):
            fitted.intercept = 1.0

        with pytest.raises(AttributeError):
            fitted.link = 'identity'

        with pytest.raises(AttributeError):
            fitted.method = 'other'
        assert fitted.link == 'exp'

    def test_predict_rate_links(self):
        design_matrix = np.array([[1.0, 0.0], [0.0, 1.0]])

        identity = FittedFilter([0.5, -0.5], intercept=1.0)
        assert_allclose(identity.predict_rate(design_matrix), [1.5, 0.5])

        exponential = FittedFilter([0.5, -0.5], intercept=1.0, link='exp')
        assert_allclose(exponential.predict_rate(design_matrix), np.exp([1.5, 0.5]))

    def test_column_mismatch(self):
        fitted = FittedFilter([1.0, 2.0])
        with pytest.raises(DimensionMismatchError):
            fitted.filter_output(np.ones((4, 3)))

    def test_unknown_link(self):
        with pytest.raises(DataValidationError):
            FittedFilter([1.0], link='logistic')


class TestNonlinearityEstimation:
    """Test nonlinearity estimation"""

    def test_bins_span_data_range(self):
        """Bin edges run exactly from min to max of the filter output"""
        filter_output = np.random.default_rng(3).normal(size=1000)
        spike_counts = np.random.default_rng(4).poisson(1.0, 1000)

        nonlinearity = NonlinearityEstimator(n_bins=20).estimate(filter_output, spike_counts)

        assert nonlinearity.bin_edges[0] == filter_output.min()
        assert nonlinearity.bin_edges[-1] == filter_output.max()
        assert len(nonlinearity.bin_centers) == 20
        assert nonlinearity.bin_counts.sum() == 1000
        assert nonlinearity.n_parameters == 20

    def test_maximum_goes_to_last_bin(self):
        """Interior edges belong to the upper bin, the maximum to the last bin"""
        filter_output = np.array([0.0, 1.0, 2.0, 3.0, 4.0])
        spike_counts = np.array([0, 0, 1, 1, 1])

        nonlinearity = estimate_nonlinearity(filter_output, spike_counts, n_bins=2)

        assert_array_equal(nonlinearity.bin_edges, [0.0, 2.0, 4.0])
        assert_array_equal(nonlinearity.bin_counts, [2, 3])
        assert_allclose(nonlinearity.bin_rates, [0.0, 1.0])

    def test_nearest_center_evaluation(self):
        """Evaluation picks the nearest bin center, ties to the lower bin"""
        nonlinearity = estimate_nonlinearity(
            np.array([0.0, 1.0, 2.0, 3.0, 4.0]), np.array([0, 0, 1, 1, 1]), n_bins=2
        )

        assert_allclose(nonlinearity.bin_centers, [1.0, 3.0])
        assert nonlinearity.evaluate(2.0) == 0.0
        assert nonlinearity.evaluate(2.01) == 1.0
        assert isinstance(nonlinearity(1.0), float)

        # Constant extrapolation beyond the fitted range
        assert nonlinearity.evaluate(-100.0) == 0.0
        assert nonlinearity.evaluate(100.0) == 1.0

        assert_allclose(nonlinearity.evaluate(np.array([-5.0, 2.5, 9.0])), [0.0, 1.0, 1.0])

    def test_rates_scale_with_dt(self):
        """Rates are spikes per second, predict_counts spikes per bin"""
        filter_output = np.array([0.0, 1.0, 2.0, 3.0])
        spike_counts = np.array([1, 1, 2, 2])

        nonlinearity = estimate_nonlinearity(filter_output, spike_counts, n_bins=2, dt=0.01)

        assert_allclose(nonlinearity.bin_rates, [100.0, 200.0])
        assert nonlinearity.predict_counts(3.0) == pytest.approx(2.0)

    def test_empty_bins_take_nearest_rate(self, caplog, monkeypatch):
        """Empty bins are flagged and filled from the nearest non-empty bin"""
        monkeypatch.setattr(logging.getLogger('poisson_glm_toolkit'), 'propagate', True)

        filter_output = np.array([0.0, 0.1, 0.2, 3.9, 4.0])
        spike_counts = np.array([1, 1, 1, 2, 2])

        with caplog.at_level(logging.WARNING, logger='poisson_glm_toolkit'):
            nonlinearity = estimate_nonlinearity(filter_output, spike_counts, n_bins=4)

        assert_array_equal(nonlinearity.empty_bins, [False, True, True, False])
        assert nonlinearity.n_empty_bins == 2
        assert_allclose(nonlinearity.bin_rates, [1.0, 1.0, 2.0, 2.0])
        assert nonlinearity.raw_rates.mask.tolist() == [False, True, True, False]
        assert "2 out of 4 bins are empty" in caplog.text

    def test_empty_bin_tie_goes_to_lower(self):
        """An empty bin equidistant from two filled bins takes the lower one"""
        nonlinearity = estimate_nonlinearity(np.array([0.0, 3.0]), np.array([1, 3]), n_bins=3)

        assert_array_equal(nonlinearity.empty_bins, [False, True, False])
        assert_allclose(nonlinearity.bin_rates, [1.0, 1.0, 3.0])

    def test_monotonic_response(self):
        """A response increasing with filter output gives non-decreasing rates"""
        filter_output = np.linspace(0, 1, 1000)
        spike_counts = np.floor(10 * filter_output)

        nonlinearity = estimate_nonlinearity(filter_output, spike_counts, n_bins=10)

        assert np.all(np.diff(nonlinearity.bin_rates) >= 0)
        assert nonlinearity.n_empty_bins == 0

    def test_monotonic_response_from_poisson_draws(self):
        """Poisson counts from an increasing nonlinearity give increasing rates"""
        rng = np.random.default_rng(12)
        filter_output = rng.normal(size=50000)
        spike_counts = rng.poisson(np.exp(0.5 * filter_output))

        nonlinearity = estimate_nonlinearity(filter_output, spike_counts, n_bins=10)

        # Sparse tail bins are too noisy to compare
        well_sampled = nonlinearity.bin_counts >= 500
        assert well_sampled.sum() >= 5
        assert np.all(np.diff(nonlinearity.bin_rates[well_sampled]) > 0)

    def test_estimate_is_frozen(self):
        nonlinearity = estimate_nonlinearity(np.arange(10.0), np.ones(10), n_bins=3)
        with pytest.raises(ValueError):
            nonlinearity.bin_rates[0] = 5.0

    def test_invalid_inputs(self):
        """Degenerate inputs and settings are rejected"""
        with pytest.raises(DegenerateInputError):
            estimate_nonlinearity(np.ones(50), np.ones(50))

        with pytest.raises(ConfigurationError):
            NonlinearityEstimator(n_bins=0)

        with pytest.raises(ConfigurationError):
            NonlinearityEstimator(dt=0.0)

        with pytest.raises(DimensionMismatchError):
            estimate_nonlinearity(np.arange(5.0), np.ones(4))

        with pytest.raises(DataValidationError):
            estimate_nonlinearity(np.arange(5.0), -np.ones(5))

        nonlinearity = estimate_nonlinearity(np.arange(5.0), np.ones(5), n_bins=2)
        with pytest.raises(DataValidationError):
            nonlinearity.evaluate(np.nan)

    def test_direct_construction_requires_matching_shapes(self):
        with pytest.raises(DimensionMismatchError):
            NonparametricNonlinearity([0.0, 1.0, 2.0], [1.0], [1, 1], dt=1.0)

        with pytest.raises(DegenerateInputError):
            NonparametricNonlinearity([0.0, 1.0], [0.0], [0], dt=1.0)

    @settings(max_examples=20, deadline=None)
    @given(
        n_bins=st.integers(min_value=1, max_value=50),
        n_samples=st.integers(min_value=100, max_value=1000)
    )
    def test_nonlinearity_estimation_properties(self, n_bins, n_samples):
        """Test nonlinearity estimation properties"""
        rng = np.random.default_rng(n_bins * n_samples)
        filter_output = rng.normal(size=n_samples)
        spike_counts = rng.poisson(1.0, n_samples)

        nonlinearity = estimate_nonlinearity(filter_output, spike_counts, n_bins=n_bins)

        assert len(nonlinearity.bin_centers) == n_bins
        assert nonlinearity.bin_counts.sum() == n_samples

        predictions = nonlinearity.evaluate(rng.normal(size=50))
        assert np.all(predictions >= 0)


class TestEncodingModelAnalyzer:
    """Test complete encoding model analysis pipeline"""

    def setup_method(self):
        """Setup test data"""
        self.window_size = 25
        self.bin_size = 0.008
        self.true_filter = create_biphasic_filter(self.window_size, amplitude=0.5)

        self.generator = SyntheticDataGenerator(
            filter_true=self.true_filter,
            intercept_true=-2.0,
            random_seed=42
        )
        dataset = self.generator.create_test_dataset(n_time_bins=10000, dt=self.bin_size)
        self.stimulus = dataset['stimulus']
        self.spikes = dataset['spikes']

        self.analyzer = EncodingModelAnalyzer(
            bin_size=self.bin_size,
            window_size=self.window_size,
            n_bins=25
        )

    def test_complete_analysis(self):
        """Test complete analysis pipeline"""
        self.analyzer.fit(self.stimulus, self.spikes)

        assert self.analyzer.fitted

        results = self.analyzer.get_results()
        for key in ('sta', 'whitened_sta', 'linear_filter', 'poisson_filter',
                    'poisson_intercept', 'nonlinearity', 'scores',
                    'performance_metrics', 'metadata'):
            assert key in results

        estimated_filter = results['poisson_filter']
        assert estimated_filter.shape == self.true_filter.shape
        assert FilterMetrics.filter_consistency(self.true_filter, estimated_filter) > 0.9
        assert results['poisson_intercept'] == pytest.approx(-2.0, abs=0.2)

        assert len(results['lags']) == self.window_size
        assert results['metadata']['design_matrix_validation']['hankel_structure']

        durations = results['metadata']['stage_durations']
        assert set(durations) == {'design matrix construction', 'filter estimation',
                                  'nonlinearity estimation', 'model evaluation'}
        assert all(duration >= 0 for duration in durations.values())

    def test_model_scores(self):
        """Fitted GLMs beat the homogeneous model"""
        self.analyzer.fit(self.stimulus, self.spikes)
        scores = self.analyzer.scores

        assert set(scores) == {'exp_glm', 'np_glm'}

        exp_score = scores['exp_glm']
        assert exp_score.log_likelihood > exp_score.null_log_likelihood
        assert exp_score.single_spike_info > 0
        assert exp_score.n_parameters == 1 + self.window_size
        assert exp_score.total_spikes == int(self.spikes.sum())

        np_score = scores['np_glm']
        assert np_score.n_parameters == 1 + self.window_size + 25
        assert np_score.log_likelihood > np_score.null_log_likelihood

        comparison = self.analyzer.performance_metrics['aic_comparison']
        assert min(entry['delta_aic'] for entry in comparison.values()) == 0.0

        metrics = self.analyzer.performance_metrics
        assert 0 < metrics['r_squared_offset'] < 1
        assert metrics['r_squared_offset'] >= metrics['r_squared_no_offset']

    def test_prediction(self):
        """Test model prediction capability"""
        self.analyzer.fit(self.stimulus, self.spikes)

        test_stimulus = np.random.default_rng(7).normal(size=1000)
        for model in ('exp_glm', 'np_glm'):
            predicted = self.analyzer.predict(test_stimulus, model=model)
            assert predicted.shape == test_stimulus.shape
            assert np.all(predicted >= 0)

        linear = self.analyzer.predict(test_stimulus, model='linear_gaussian')
        assert linear.shape == test_stimulus.shape

        with pytest.raises(DataValidationError):
            self.analyzer.predict(test_stimulus, model='unknown')

    def test_simulate_raster(self):
        """Simulated rasters are reproducible for a fixed seed"""
        self.analyzer.fit(self.stimulus, self.spikes)
        segment = self.stimulus[:100]

        raster = self.analyzer.simulate_raster(segment, n_repeats=5, rng=3)
        assert raster.shape == (5, 100)
        assert_array_equal(raster, self.analyzer.simulate_raster(segment, n_repeats=5, rng=3))

        fine = self.analyzer.simulate_raster(segment, n_repeats=2, model='np_glm',
                                             rng=3, upsample_factor=10)
        assert fine.shape == (2, 1000)

        with pytest.raises(DataValidationError):
            self.analyzer.simulate_raster(segment, model='linear_gaussian')

    def test_validation_errors(self):
        """Test input validation and error handling"""
        with pytest.raises(ConfigurationError):
            EncodingModelAnalyzer(bin_size=-0.001)

        with pytest.raises(ConfigurationError):
            EncodingModelAnalyzer(window_size=0)

        with pytest.raises(ConfigurationError):
            EncodingModelAnalyzer(window_size=2.5)

        with pytest.raises(ConfigurationError):
            EncodingModelAnalyzer(n_bins=0)

        analyzer = EncodingModelAnalyzer()
        with pytest.raises(DataValidationError):
            analyzer.get_results()

        with pytest.raises(DimensionMismatchError):
            analyzer.fit(self.stimulus, self.spikes[:-1])

        with pytest.raises(DegenerateInputError):
            analyzer.fit(self.stimulus, np.zeros_like(self.spikes))
        assert not analyzer.fitted

    def test_from_config(self):
        """Analyzer settings come from the configuration dictionary"""
        config = load_default_config()
        config['analysis']['window_size'] = 10
        config['nonlinearity']['n_bins'] = 15

        analyzer = EncodingModelAnalyzer.from_config(config)

        assert analyzer.window_size == 10
        assert analyzer.n_bins == 15
        assert analyzer.bin_size == 0.008
        assert analyzer.poisson_fitter.max_iter == 100


def test_sweep_window_sizes():
    """Window sweep scores each window and records failures"""
    generator = SyntheticDataGenerator(create_biphasic_filter(10), intercept_true=-1.0,
                                       random_seed=5)
    dataset = generator.create_test_dataset(n_time_bins=3000)

    results = sweep_window_sizes(dataset['stimulus'], dataset['spikes'],
                                 [5, 10, 5000], progress_bar=False)

    assert list(results) == [5, 10, 5000]
    assert results[10]['n_parameters'] == 11
    assert results[10]['log_likelihood'] >= results[5]['log_likelihood']
    assert 'error' in results[5000]


if __name__ == "__main__":
    pytest.main([__file__])
