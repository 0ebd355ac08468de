"""
End-to-end tests of the simulate, fit, select and summarize pipeline, its
exports and the command line entry point.
"""

import json

import pytest
import numpy as np
import pandas as pd

from dynocc_jax.cli import main
from dynocc_jax.config import DynOccConfig
from dynocc_jax.core.api import DEFAULT_MODEL_SPECS, run_pipeline
from dynocc_jax.core.export import ResultsExporter


pytestmark = pytest.mark.integration


def _small_config(**kwargs):
    options = dict(
        seed=7,
        survey={"site_count": 80, "year_count": 4, "occasions_per_year": 3},
        analysis={"gof_simulations": 5, "bootstrap_trials": 4},
    )
    options.update(kwargs)
    return DynOccConfig(**options)


@pytest.fixture(scope="module")
def pipeline_result():
    return run_pipeline(_small_config())


class TestRunPipeline:

    def test_all_models_present(self, pipeline_result):
        assert pipeline_result.collection.keys() == list(DEFAULT_MODEL_SPECS)
        assert set(pipeline_result.ranking["model"]) == set(DEFAULT_MODEL_SPECS)

    def test_simulated_data_shape(self, pipeline_result):
        assert pipeline_result.simulated.y.shape == (80, 4, 3)
        assert pipeline_result.data.y.shape == (80, 12)

    def test_selected_model_assessed(self, pipeline_result):
        assert pipeline_result.selected.model_name == "true"
        assert pipeline_result.gof.model_name == "true"
        assert pipeline_result.gof.n_sim == 5
        assert pipeline_result.gof.seed == 7

    def test_comparison(self, pipeline_result):
        comparison = pipeline_result.comparison
        assert len(comparison) == 12
        assert pipeline_result.figure is not None

    def test_reproducible(self, pipeline_result):
        again = run_pipeline(_small_config())
        np.testing.assert_array_equal(again.simulated.y, pipeline_result.simulated.y)
        pd.testing.assert_frame_equal(again.ranking, pipeline_result.ranking)
        pd.testing.assert_frame_equal(again.gof.simulated, pipeline_result.gof.simulated)
        pd.testing.assert_frame_equal(again.comparison, pipeline_result.comparison)

    def test_dotted_overrides(self):
        result = run_pipeline(
            _small_config(analysis={"gof_simulations": 2, "bootstrap_trials": 2, "selected_model": "missing"}),
            **{"survey.site_count": 40},
        )
        assert result.data.n_sites == 40
        assert "selected_model" in result.errors
        assert result.gof is None
        assert result.comparison is None

    def test_lrt_error_recorded(self):
        result = run_pipeline(
            _small_config(analysis={"gof_simulations": 2, "bootstrap_trials": 2, "lrt_simpler": "psi", "lrt_richer": "gam"})
        )
        assert result.lrt is None
        assert result.lrt_error
        assert "lrt" in result.errors


class TestExport:

    def test_artifacts(self, pipeline_result, tmp_path):
        written = ResultsExporter().export(pipeline_result, tmp_path)

        for name in (
            "model_ranking.csv",
            "likelihood_ratio_test.json",
            "goodness_of_fit.json",
            "gof_simulations.csv",
            "occupancy_comparison.csv",
            "occupancy_comparison.png",
            "coefficients.csv",
            "run_metadata.json",
        ):
            assert (tmp_path / name).exists(), name
        assert len(written) == 8

        ranking = ResultsExporter.load_table(tmp_path / "model_ranking.csv")
        assert "null" in set(ranking["model"])
        assert list(ranking["model"]) == list(pipeline_result.ranking["model"])
        np.testing.assert_allclose(ranking["aic"], pipeline_result.ranking["aic"], atol=1e-6)

        lrt = json.loads((tmp_path / "likelihood_ratio_test.json").read_text())
        assert lrt["simpler"] == "true"
        assert lrt["richer"] == "global"

        metadata = json.loads((tmp_path / "run_metadata.json").read_text())
        assert metadata["config"]["seed"] == 7
        assert metadata["data_hash"] == pipeline_result.data.data_hash()

    def test_load_table_keeps_null_model_name(self, tmp_path):
        path = tmp_path / "ranking.csv"
        pd.DataFrame({"model": ["null", "psi"], "aic": [210.5, np.nan]}).to_csv(path, index=False)

        table = ResultsExporter.load_table(path)

        assert list(table["model"]) == ["null", "psi"]
        assert np.isnan(table["aic"].iloc[1])

    def test_print_summary(self, pipeline_result, capsys):
        ResultsExporter().print_summary(pipeline_result)
        output = capsys.readouterr().out
        assert "Model ranking (AIC)" in output
        assert "Goodness of fit (true" in output


class TestCommandLine:

    def test_run(self, tmp_path):
        status = main([
            "--sites", "40",
            "--years", "3",
            "--occasions", "2",
            "--seed", "3",
            "--gof-simulations", "2",
            "--bootstrap-trials", "2",
            "--output-dir", str(tmp_path),
            "--log-level", "WARNING",
        ])
        assert status == 0
        assert (tmp_path / "model_ranking.csv").exists()
        assert (tmp_path / "run_metadata.json").exists()

    def test_invalid_configuration(self, tmp_path, capsys):
        assert main(["--sites", "0", "--output-dir", str(tmp_path)]) == 2
        assert "Configuration error" in capsys.readouterr().err

    def test_missing_config_file(self, tmp_path):
        assert main(["--config", str(tmp_path / "absent.yaml")]) == 2

    def test_config_file(self, tmp_path):
        config_path = tmp_path / "run.yaml"
        _small_config(
            survey={"site_count": 30, "year_count": 3, "occasions_per_year": 2},
            analysis={"gof_simulations": 2, "bootstrap_trials": 2},
            output_directory=str(tmp_path / "out"),
        ).save_config(config_path)

        assert main(["--config", str(config_path), "--log-level", "WARNING"]) == 0
        assert (tmp_path / "out" / "coefficients.csv").exists()


@pytest.mark.slow
class TestDefaultScenario:
    """The default survey: 100 sites, 10 years, 3 occasions, seed 102022."""

    @pytest.fixture(scope="class")
    def default_result(self):
        return run_pipeline(DynOccConfig(analysis={"gof_simulations": 20, "bootstrap_trials": 10}))

    def test_generating_model_ranks_highly(self, default_result):
        ranking = default_result.ranking
        true_rank = ranking.loc[ranking["model"] == "true", "rank"].iloc[0]
        assert true_rank <= 2

    def test_detection_covariate_not_supported(self, default_result):
        assert default_result.lrt.df == 1
        assert default_result.lrt.p_value > 0.05

    def test_expected_counts_track_truth(self, default_result):
        comparison = default_result.comparison
        truth = comparison[comparison["series"] == "True"]["value"].to_numpy()
        expected = comparison[comparison["series"] == "Expected"]["value"].to_numpy()
        assert np.all(np.abs(expected - truth) < 0.25 * default_result.data.n_sites)
