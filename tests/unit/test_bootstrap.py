"""
Tests for goodness-of-fit statistics, the parametric bootstrap and the site
bootstrap of smoothed occupancy.
"""

import pytest
import numpy as np
import pandas as pd

from dynocc_jax.core.exceptions import ConfigurationError, DynOccError, OptimizationError
from dynocc_jax.formulas import create_formula_spec
from dynocc_jax.inference import (
    bootstrap_p_value,
    fit_statistics,
    nonparametric_bootstrap,
    parametric_bootstrap,
    smoothed_standard_errors,
)
from dynocc_jax.inference.diagnostics import STATISTICS
from dynocc_jax.inference.uncertainty import BootstrapUncertainty
from dynocc_jax.models import DynamicOccupancyModel, ModelResult


pytestmark = pytest.mark.unit


class _CrashingModel(DynamicOccupancyModel):
    """Evaluates fitted models normally but every refit raises."""

    def fit(self, formula_spec, data, **kwargs):
        raise RuntimeError("solver crashed")


class TestFitStatistics:

    def test_values_match_residuals(self, model, null_fit, small_data):
        stats = fit_statistics(null_fit, small_data, model)
        expected = model.fitted(null_fit, small_data)
        assert set(stats) == set(STATISTICS)
        assert stats["SSE"] == pytest.approx(np.sum((small_data.y - expected) ** 2))
        assert stats["chi_square"] == pytest.approx(np.sum((small_data.y - expected) ** 2 / expected))

    def test_missing_surveys_skipped(self, model, null_fit, small_data):
        y = small_data.y.copy()
        y[0, :] = np.nan
        stats = fit_statistics(null_fit, small_data.with_observations(y), model)
        assert all(np.isfinite(value) for value in stats.values())
        assert stats["SSE"] < fit_statistics(null_fit, small_data, model)["SSE"] + 1e-9


class TestBootstrapPValue:

    def test_formula(self):
        assert bootstrap_p_value(5.0, np.array([1.0, 5.0, 7.0, 2.0])) == pytest.approx(3 / 5)

    def test_never_zero(self):
        assert bootstrap_p_value(100.0, np.zeros(99)) == pytest.approx(0.01)

    def test_all_exceed(self):
        assert bootstrap_p_value(0.0, np.ones(9)) == pytest.approx(1.0)


class TestParametricBootstrap:

    def test_same_seed_reproduces(self, model, null_fit, small_data):
        first = parametric_bootstrap(null_fit, small_data, n_sim=4, seed=11, model=model)
        second = parametric_bootstrap(null_fit, small_data, n_sim=4, seed=11, model=model)
        pd.testing.assert_frame_equal(first.simulated, second.simulated)
        assert first.p_values == second.p_values

    def test_worker_count_does_not_change_results(self, model, null_fit, small_data):
        serial = parametric_bootstrap(null_fit, small_data, n_sim=4, seed=5, model=model)
        threaded = parametric_bootstrap(null_fit, small_data, n_sim=4, seed=5, n_workers=2, model=model)
        pd.testing.assert_frame_equal(serial.simulated, threaded.simulated)

    def test_summary_contents(self, model, null_fit, small_data):
        gof = parametric_bootstrap(null_fit, small_data, n_sim=3, seed=2, model=model)
        summary = gof.get_summary()

        assert summary["model"] == "null"
        assert summary["n_sim"] == 3
        assert set(summary["statistics"]) == set(STATISTICS)
        assert len(gof.simulated) + gof.n_failed == 3
        for name in STATISTICS:
            assert 0 < gof.p_values[name] <= 1

    def test_without_refit(self, model, true_fit, small_data):
        gof = parametric_bootstrap(true_fit, small_data, n_sim=100, seed=102022, refit=False, model=model)

        assert len(gof.simulated) == 100
        assert gof.n_failed == 0
        assert not gof.refit
        assert all(0 < p <= 1 for p in gof.p_values.values())

    @pytest.mark.parametrize("n_sim", [0, -3])
    def test_rejects_non_positive_simulations(self, null_fit, small_data, n_sim):
        with pytest.raises(ConfigurationError):
            parametric_bootstrap(null_fit, small_data, n_sim=n_sim)

    def test_rejects_failed_model(self, small_data):
        failed = ModelResult(formula_spec=create_formula_spec(name="bad"))
        with pytest.raises(DynOccError):
            parametric_bootstrap(failed, small_data, n_sim=2)

    def test_unexpected_refit_errors_are_counted(self, null_fit, small_data):
        with pytest.raises(DynOccError) as excinfo:
            parametric_bootstrap(null_fit, small_data, n_sim=2, seed=1, model=_CrashingModel())
        assert excinfo.value.error_code == "GOF"


class TestNonparametricBootstrap:

    def test_shape_and_range(self, null_fit, small_data):
        samples = nonparametric_bootstrap(null_fit, small_data, n_boot=4, seed=1)
        assert samples.shape[1] == 5
        assert 2 <= samples.shape[0] <= 4
        assert np.all((samples >= 0) & (samples <= 1))

    def test_same_seed_reproduces(self, null_fit, small_data):
        first = nonparametric_bootstrap(null_fit, small_data, n_boot=3, seed=9)
        second = nonparametric_bootstrap(null_fit, small_data, n_boot=3, seed=9)
        np.testing.assert_allclose(first, second)

    def test_rejects_non_positive_trials(self, null_fit, small_data):
        with pytest.raises(ConfigurationError):
            nonparametric_bootstrap(null_fit, small_data, n_boot=0)

    def test_unexpected_refit_errors_are_counted(self, null_fit, small_data):
        with pytest.raises(OptimizationError):
            BootstrapUncertainty(model=_CrashingModel()).smoothed_samples(
                null_fit, small_data, n_boot=2, rng=np.random.default_rng(3)
            )

    def test_standard_errors_scale_with_sites(self):
        samples = np.array([[0.1, 0.5], [0.3, 0.5]])
        np.testing.assert_allclose(
            smoothed_standard_errors(samples, n_sites=10), [np.std([1.0, 3.0], ddof=1), 0.0]
        )
