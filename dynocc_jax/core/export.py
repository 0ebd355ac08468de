"""
Core export functionality for dynocc-jax.

Writes pipeline results as CSV, JSON and PNG artifacts.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

import numpy as np
import pandas as pd

from ..utils.logging import get_logger

logger = get_logger(__name__)


def _json_default(value):
    if isinstance(value, (np.integer,)):
        return int(value)
    if isinstance(value, (np.floating,)):
        return float(value)
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, Path):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class ResultsExporter:
    """
    Results export for dynocc-jax pipeline runs.

    Handles the ranking table, likelihood-ratio test, goodness of fit,
    occupancy comparison and coefficient estimates.

    Missing values are written as empty cells. Read tables back with
    ``load_table`` so the model named ``null`` is not parsed as missing.
    """

    def __init__(self, decimal_precision: int = 6):
        """
        Initialize results exporter.

        Args:
            decimal_precision: Number of decimal places for numeric CSV values
        """
        self.decimal_precision = decimal_precision

    @staticmethod
    def load_table(path: Union[str, Path]) -> pd.DataFrame:
        """Read an exported CSV treating only empty cells as missing."""
        return pd.read_csv(path, keep_default_na=False, na_values=[""])

    def _write_csv(self, frame: pd.DataFrame, path: Path, index: bool = False) -> Path:
        frame = frame.copy()
        numeric_columns = frame.select_dtypes(include=[np.number]).columns
        frame[numeric_columns] = frame[numeric_columns].round(self.decimal_precision)
        frame.to_csv(path, index=index)
        return path

    def _write_json(self, payload: Dict[str, Any], path: Path) -> Path:
        with open(path, "w") as f:
            json.dump(payload, f, indent=2, default=_json_default)
        return path

    def coefficients_table(self, collection) -> pd.DataFrame:
        """Coefficient estimates of every converged model, long format."""
        frames = []
        for name, result in collection.converged().items():
            table = result.coefficient_table().reset_index()
            table.insert(0, "model", name)
            frames.append(table)
        if not frames:
            return pd.DataFrame(columns=["model", "parameter", "estimate", "se", "z", "p_value"])
        return pd.concat(frames, ignore_index=True)

    def export(self, pipeline_result, directory: Optional[Union[str, Path]] = None) -> Dict[str, Path]:
        """
        Export every artifact of a pipeline run.

        Args:
            pipeline_result: PipelineResult from ``run_pipeline``
            directory: Output directory (default: the configured output directory)

        Returns:
            Mapping of artifact name to written path
        """
        directory = Path(directory or pipeline_result.config.output_directory)
        directory.mkdir(parents=True, exist_ok=True)
        written: Dict[str, Path] = {}

        written["model_ranking"] = self._write_csv(
            pipeline_result.ranking, directory / "model_ranking.csv"
        )

        lrt_payload = (
            pipeline_result.lrt.to_dict()
            if pipeline_result.lrt is not None
            else {
                "simpler": pipeline_result.config.analysis.lrt_simpler,
                "richer": pipeline_result.config.analysis.lrt_richer,
                "error": pipeline_result.lrt_error,
            }
        )
        written["likelihood_ratio_test"] = self._write_json(
            lrt_payload, directory / "likelihood_ratio_test.json"
        )

        if pipeline_result.gof is not None:
            written["goodness_of_fit"] = self._write_json(
                pipeline_result.gof.get_summary(), directory / "goodness_of_fit.json"
            )
            written["gof_simulations"] = self._write_csv(
                pipeline_result.gof.simulated, directory / "gof_simulations.csv", index=True
            )

        if pipeline_result.comparison is not None:
            written["occupancy_comparison"] = self._write_csv(
                pipeline_result.comparison, directory / "occupancy_comparison.csv"
            )

        if pipeline_result.figure is not None:
            figure_path = directory / "occupancy_comparison.png"
            pipeline_result.figure.savefig(figure_path, dpi=150, bbox_inches="tight")
            written["occupancy_plot"] = figure_path

        written["coefficients"] = self._write_csv(
            self.coefficients_table(pipeline_result.collection), directory / "coefficients.csv"
        )

        written["run_metadata"] = self._write_json(
            {
                "created": datetime.now().isoformat(timespec="seconds"),
                "config": pipeline_result.config.model_dump(mode="json"),
                "data_hash": pipeline_result.collection.data_hash,
                "errors": pipeline_result.errors,
            },
            directory / "run_metadata.json",
        )

        logger.info(f"Exported {len(written)} artifacts to {directory}")
        return written

    def print_summary(self, pipeline_result) -> None:
        """Print a short summary of a pipeline run."""
        ranking = pipeline_result.ranking
        print("\nModel ranking (AIC)")
        print("=" * 50)
        columns = ["rank", "model", "n_parameters", "aic", "delta_aic", "aic_weight"]
        print(ranking[columns].to_string(index=False, float_format="%.3f"))

        failed = ranking[ranking["rank"].isna()]
        if len(failed):
            print("\nFailed models:")
            print(failed[["model", "error"]].to_string(index=False))

        if pipeline_result.lrt is not None:
            lrt = pipeline_result.lrt
            print(
                f"\nLikelihood-ratio test {lrt.simpler} vs {lrt.richer}: "
                f"chi2={lrt.statistic:.3f}, df={lrt.df}, p={lrt.p_value:.4f}"
            )
        elif pipeline_result.lrt_error:
            print(f"\nLikelihood-ratio test skipped: {pipeline_result.lrt_error}")

        if pipeline_result.gof is not None:
            print(f"\nGoodness of fit ({pipeline_result.gof.model_name}, {pipeline_result.gof.n_sim} simulations):")
            for name, p in pipeline_result.gof.p_values.items():
                print(f"  {name}: observed={pipeline_result.gof.observed[name]:.3f}, p={p:.3f}")


def export_pipeline_results(pipeline_result, directory: Optional[Union[str, Path]] = None, print_summary: bool = True) -> Dict[str, Path]:
    """Convenience function to export results with default settings."""
    exporter = ResultsExporter()
    written = exporter.export(pipeline_result, directory)
    if print_summary:
        exporter.print_summary(pipeline_result)
    return written
