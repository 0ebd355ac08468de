"""
Integration tests for fitting the candidate model battery.
"""

import pytest
import numpy as np

from dynocc_jax.core.api import DEFAULT_MODEL_SPECS, default_model_specs, fit_model, fit_model_battery
from dynocc_jax.core.exceptions import ModelSpecificationError, OptimizationError
from dynocc_jax.formulas import create_formula_spec
from dynocc_jax.inference import likelihood_ratio_test, rank_models
from dynocc_jax.models import DynamicOccupancyModel


pytestmark = pytest.mark.integration


class _UnstableModel(DynamicOccupancyModel):
    """Raises a non-package error for the model named 'unstable'."""

    def fit(self, formula_spec, data, **kwargs):
        if formula_spec.name == "unstable":
            raise RuntimeError("solver crashed")
        return super().fit(formula_spec, data, **kwargs)


@pytest.fixture(scope="module")
def battery(small_data, model):
    return fit_model_battery(None, small_data, model=model)


class TestDefaultSpecs:

    def test_seven_models_in_order(self):
        assert list(DEFAULT_MODEL_SPECS) == ["null", "psi", "gam", "phi", "p", "true", "global"]

    def test_specs_are_named(self):
        specs = default_model_specs()
        assert all(spec.name == name for name, spec in specs.items())
        assert specs["true"].p.formula_string == "~1"
        assert specs["global"].covariates_for("p") == {"Xp"}


class TestFitModelBattery:

    def test_all_models_fitted_in_order(self, battery):
        assert battery.keys() == list(DEFAULT_MODEL_SPECS)
        assert all(result.success for result in battery.values())

    def test_parameter_counts(self, battery):
        counts = {name: result.n_parameters for name, result in battery.items()}
        assert counts == {"null": 4, "psi": 5, "gam": 5, "phi": 5, "p": 5, "true": 7, "global": 8}

    def test_shared_dataset(self, battery, small_data):
        assert battery.data_hash == small_data.data_hash()

    def test_ranking(self, battery):
        ranking = rank_models(battery)
        assert len(ranking) == 7
        assert ranking["aic"].is_monotonic_increasing
        assert ranking["aic_weight"].sum() == pytest.approx(1.0)

    def test_nested_likelihoods(self, battery):
        assert battery["global"].log_likelihood >= battery["true"].log_likelihood - 1e-6
        assert battery["true"].log_likelihood >= battery["null"].log_likelihood - 1e-6

    def test_lrt_true_against_global(self, battery):
        result = likelihood_ratio_test(battery, "true", "global")
        assert result.df == 1
        assert 0 <= result.p_value <= 1

    def test_failing_spec_is_recorded(self, small_data, model):
        specs = {
            "null": create_formula_spec(),
            "bad": create_formula_spec(psi="~Xp"),
            "psi": {"psi": "~Xpsi1"},
        }
        collection = fit_model_battery(specs, small_data, model=model)

        assert collection.keys() == ["null", "bad", "psi"]
        assert not collection["bad"].success
        assert collection["bad"].error_message
        assert collection["psi"].success

        ranking = rank_models(collection)
        assert ranking["model"].iloc[-1] == "bad"
        assert ranking["rank"].isna().iloc[-1]

    def test_unexpected_error_does_not_stop_battery(self, small_data):
        specs = {"null": {}, "unstable": {"psi": "~Xpsi1"}, "gam": {"gamma": "~Xgamma"}}
        collection = fit_model_battery(specs, small_data, model=_UnstableModel())

        assert collection.keys() == ["null", "unstable", "gam"]
        assert collection["null"].success
        assert collection["gam"].success
        assert not collection["unstable"].success
        assert "RuntimeError: solver crashed" in collection["unstable"].error_message

    def test_list_of_specs(self, small_data, model):
        specs = [create_formula_spec(name="a"), create_formula_spec(gamma="~Xgamma")]
        collection = fit_model_battery(specs, small_data, model=model)
        assert collection.keys() == ["a", "model_2"]


class TestFitModel:

    def test_unexpected_errors_become_optimization_errors(self, small_data):
        with pytest.raises(OptimizationError) as excinfo:
            fit_model(create_formula_spec(name="unstable"), small_data, model=_UnstableModel())
        assert isinstance(excinfo.value.__cause__, RuntimeError)

    def test_specification_errors_propagate(self, small_data, model):
        with pytest.raises(ModelSpecificationError):
            fit_model(create_formula_spec(phi="~Xp"), small_data, model=model)

    def test_returns_result(self, small_data, model):
        result = fit_model(create_formula_spec(name="null"), small_data, model=model)
        assert result.success
        assert np.isfinite(result.aic)
