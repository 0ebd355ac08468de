"""
Tests for occupied-site summaries, the comparison table and its plot.
"""

import pytest
import numpy as np
import pandas as pd

from dynocc_jax.core.plotting import plot_occupancy_comparison
from dynocc_jax.core.summary import SERIES, occupied_site_counts, occupancy_comparison_table


pytestmark = pytest.mark.unit


class TestOccupiedSiteCounts:

    def test_counts(self):
        z = np.array([[1, 0], [1, 1], [0, 0]])
        detections = np.array([
            [[1, 0], [0, 0]],
            [[0, 0], [0, 1]],
            [[0, 0], [0, 0]],
        ], dtype=float)
        counts = occupied_site_counts(z, detections)
        np.testing.assert_array_equal(counts["true"], [2, 1])
        np.testing.assert_array_equal(counts["observed"], [1, 1])

    def test_missing_surveys_are_not_detections(self):
        z = np.ones((2, 1), dtype=int)
        detections = np.array([[[np.nan, 1.0]], [[np.nan, np.nan]]])
        counts = occupied_site_counts(z, detections)
        np.testing.assert_array_equal(counts["observed"], [1])


class TestComparisonTable:

    @pytest.fixture(scope="class")
    def table(self, small_simulation, true_fit, small_data, model):
        samples = np.full((4, 5), 0.5)
        samples[0] += 0.1
        return occupancy_comparison_table(
            small_simulation, true_fit, small_data, bootstrap_samples=samples, model=model
        )

    def test_layout(self, table):
        assert list(table.columns) == ["year", "series", "value", "se"]
        assert len(table) == 15
        assert list(table["series"].cat.categories) == SERIES
        assert list(table["year"].iloc[:5]) == [1, 2, 3, 4, 5]

    def test_true_and_observed_counts(self, table, small_simulation):
        true_rows = table[table["series"] == "True"]
        observed_rows = table[table["series"] == "Observed"]
        np.testing.assert_array_equal(true_rows["value"], small_simulation.true_occupied)
        np.testing.assert_array_equal(observed_rows["value"], small_simulation.observed_occupied)
        assert true_rows["se"].isna().all()
        assert observed_rows["se"].isna().all()

    def test_expected_series(self, table, model, true_fit, small_data):
        expected_rows = table[table["series"] == "Expected"]
        np.testing.assert_allclose(expected_rows["value"], model.smoothed(true_fit, small_data) * 60)
        assert (expected_rows["se"] > 0).all()
        assert (expected_rows["value"] >= table[table["series"] == "Observed"]["value"].to_numpy() - 1e-6).all()


class TestPlot:

    def test_saves_png(self, tmp_path):
        table = pd.DataFrame({
            "year": [1, 2, 1, 2, 1, 2],
            "series": pd.Categorical(["True", "True", "Observed", "Observed", "Expected", "Expected"], categories=SERIES),
            "value": [10.0, 12.0, 8.0, 9.0, 10.5, 11.5],
            "se": [np.nan, np.nan, np.nan, np.nan, 1.0, 1.2],
        })
        path = tmp_path / "plots" / "occupancy.png"

        figure = plot_occupancy_comparison(table, path=path)

        assert path.exists()
        assert path.stat().st_size > 0
        labels = [text.get_text() for text in figure.axes[0].get_legend().get_texts()]
        assert labels == ["True", "Observed", "Expected"]
