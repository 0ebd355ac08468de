"""
Tests for AIC ranking and likelihood-ratio tests.

Uses hand-built ModelResult objects so the statistics are known exactly.
"""

import pytest
import numpy as np
import pandas as pd
from scipy import stats

from dynocc_jax.core.exceptions import DynOccError, NonNestedModelsError
from dynocc_jax.formulas import create_formula_spec
from dynocc_jax.inference import rank_models, likelihood_ratio_test
from dynocc_jax.models import ModelCollection, ModelResult, OptimizationStatus


pytestmark = pytest.mark.unit


def _result(name, log_likelihood, n_parameters, spec=None, data_hash="abc"):
    return ModelResult(
        formula_spec=spec or create_formula_spec(name=name),
        model_name=name,
        status=OptimizationStatus.SUCCESS,
        parameters=np.zeros(n_parameters),
        log_likelihood=log_likelihood,
        data_hash=data_hash,
    )


def _failed(name):
    return ModelResult.failed(create_formula_spec(name=name), name, "did not converge")


class TestModelCollection:

    def test_preserves_insertion_order(self):
        collection = ModelCollection({"b": _result("b", -10, 2), "a": _result("a", -9, 3)})
        assert collection.keys() == ["b", "a"]
        assert len(collection) == 2

    def test_rejects_duplicates(self):
        collection = ModelCollection({"a": _result("a", -10, 2)})
        with pytest.raises(DynOccError):
            collection.add("a", _result("a", -10, 2))

    def test_rejects_mixed_datasets(self):
        collection = ModelCollection({"a": _result("a", -10, 2)})
        with pytest.raises(DynOccError) as excinfo:
            collection.add("b", _result("b", -10, 2, data_hash="other"))
        assert excinfo.value.error_code == "DATA_MISMATCH"

    def test_converged_and_failed(self):
        collection = ModelCollection({"a": _result("a", -10, 2), "f": _failed("f")})
        assert list(collection.converged()) == ["a"]
        assert list(collection.failed()) == ["f"]


class TestRankModels:

    def test_orders_by_aic(self):
        collection = ModelCollection({
            "null": _result("null", -110.0, 4),
            "psi": _result("psi", -100.0, 5),
            "global": _result("global", -99.5, 9),
        })
        ranking = rank_models(collection)

        assert list(ranking["model"]) == ["psi", "global", "null"]
        assert list(ranking["rank"]) == [1, 2, 3]
        np.testing.assert_allclose(ranking["aic"], [210.0, 217.0, 228.0])
        np.testing.assert_allclose(ranking["delta_aic"], [0.0, 7.0, 18.0])

    def test_weights(self):
        collection = ModelCollection({
            "a": _result("a", -100.0, 5),
            "b": _result("b", -101.0, 5),
        })
        ranking = rank_models(collection)

        assert ranking["aic_weight"].sum() == pytest.approx(1.0)
        expected = 1.0 / (1.0 + np.exp(-1.0))
        assert ranking["aic_weight"].iloc[0] == pytest.approx(expected)

    def test_ties_keep_insertion_order(self):
        collection = ModelCollection({
            "second": _result("second", -100.0, 5),
            "first": _result("first", -100.0, 5),
            "best": _result("best", -90.0, 5),
        })
        ranking = rank_models(collection)
        assert list(ranking["model"]) == ["best", "second", "first"]
        assert ranking["aic_weight"].iloc[1] == pytest.approx(ranking["aic_weight"].iloc[2])

    def test_failed_models_listed_last(self):
        collection = ModelCollection({
            "broken": _failed("broken"),
            "a": _result("a", -100.0, 5),
        })
        ranking = rank_models(collection)

        assert list(ranking["model"]) == ["a", "broken"]
        assert ranking["rank"].iloc[0] == 1
        assert ranking["rank"].isna().iloc[1]
        assert np.isnan(ranking["aic"].iloc[1])
        assert ranking["status"].iloc[1] == "failed"
        assert ranking["error"].iloc[1] == "did not converge"
        assert ranking["aic_weight"].iloc[0] == pytest.approx(1.0)

    def test_reranking_is_identical(self):
        collection = ModelCollection({
            "a": _result("a", -100.0, 5),
            "b": _result("b", -100.0, 5),
            "c": _result("c", -98.0, 6),
        })
        pd.testing.assert_frame_equal(rank_models(collection), rank_models(collection))

    def test_all_failed(self):
        ranking = rank_models(ModelCollection({"x": _failed("x")}))
        assert len(ranking) == 1
        assert ranking["rank"].isna().all()


class TestLikelihoodRatioTest:

    @pytest.fixture
    def collection(self):
        null = create_formula_spec(name="null")
        psi = create_formula_spec(psi="~Xpsi1", name="psi")
        gam = create_formula_spec(gamma="~Xgamma", name="gam")
        both = create_formula_spec(psi="~Xpsi1", gamma="~Xgamma", name="both")
        return ModelCollection({
            "null": _result("null", -105.0, 4, spec=null),
            "psi": _result("psi", -100.0, 5, spec=psi),
            "gam": _result("gam", -103.0, 5, spec=gam),
            "both": _result("both", -99.0, 6, spec=both),
            "same": _result("same", -100.0, 4, spec=create_formula_spec(name="same")),
            "broken": _failed("broken"),
        })

    def test_statistic_and_p_value(self, collection):
        result = likelihood_ratio_test(collection, "null", "psi")
        assert result.statistic == pytest.approx(10.0)
        assert result.df == 1
        assert result.p_value == pytest.approx(stats.chi2.sf(10.0, 1))
        assert result.to_dict()["simpler"] == "null"

    def test_multiple_degrees_of_freedom(self, collection):
        result = likelihood_ratio_test(collection, "null", "both")
        assert result.df == 2
        assert result.p_value == pytest.approx(stats.chi2.sf(12.0, 2))

    def test_statistic_floored_at_zero(self):
        collection = ModelCollection({
            "null": _result("null", -100.0, 4, spec=create_formula_spec(name="null")),
            "psi": _result("psi", -100.5, 5, spec=create_formula_spec(psi="~Xpsi1", name="psi")),
        })
        result = likelihood_ratio_test(collection, "null", "psi")
        assert result.statistic == 0.0
        assert result.p_value == pytest.approx(1.0)

    def test_non_nested(self, collection):
        with pytest.raises(NonNestedModelsError):
            likelihood_ratio_test(collection, "psi", "gam")

    def test_reversed_order(self, collection):
        with pytest.raises(NonNestedModelsError):
            likelihood_ratio_test(collection, "psi", "null")

    def test_equal_parameter_counts(self, collection):
        with pytest.raises(NonNestedModelsError) as excinfo:
            likelihood_ratio_test(collection, "null", "same")
        assert excinfo.value.error_code == "NON_NESTED"

    def test_missing_model(self, collection):
        with pytest.raises(NonNestedModelsError):
            likelihood_ratio_test(collection, "null", "absent")

    def test_failed_model(self, collection):
        with pytest.raises(NonNestedModelsError):
            likelihood_ratio_test(collection, "null", "broken")
