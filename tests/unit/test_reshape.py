"""
Tests for survey design, detection reshaping and the MultiSeasonData container.
"""

import pytest
import numpy as np
import pandas as pd

from dynocc_jax.core.exceptions import DataShapeError
from dynocc_jax.data import (
    SurveyDesign,
    MultiSeasonData,
    reshape_detections,
    unreshape_detections,
    load_multiseason_csv,
)


pytestmark = pytest.mark.unit


class TestSurveyDesign:

    def test_sizes(self):
        design = SurveyDesign(10, 4, 3)
        assert design.n_surveys == 12
        assert design.detection_shape == (10, 4, 3)
        assert design.matrix_shape == (10, 12)
        assert design.column_index(2, 1) == 7

    @pytest.mark.parametrize("sizes", [(0, 4, 3), (10, 0, 3), (10, 4, -1)])
    def test_rejects_non_positive_sizes(self, sizes):
        with pytest.raises(DataShapeError):
            SurveyDesign(*sizes)


class TestReshapeDetections:

    def test_year_major_column_order(self, tiny_detections):
        design = SurveyDesign(2, 3, 2)
        matrix = reshape_detections(tiny_detections, design)

        assert matrix.shape == (2, 6)
        for s in range(2):
            for y in range(3):
                for o in range(2):
                    assert matrix[s, y * 2 + o] == tiny_detections[s, y, o]

    def test_first_row_matches_year_then_occasion(self):
        design = SurveyDesign(1, 2, 3)
        detections = np.array([[[1, 0, 0], [0, 1, 1]]], dtype=float)
        np.testing.assert_array_equal(
            reshape_detections(detections, design), [[1, 0, 0, 0, 1, 1]]
        )

    def test_missing_values_pass_through(self):
        design = SurveyDesign(2, 2, 2)
        detections = np.zeros((2, 2, 2))
        detections[1, 0, 1] = np.nan
        matrix = reshape_detections(detections, design)

        assert np.isnan(matrix[1, 1])
        assert np.isnan(matrix).sum() == 1

    def test_does_not_modify_input(self, tiny_detections):
        original = tiny_detections.copy()
        matrix = reshape_detections(tiny_detections, SurveyDesign(2, 3, 2))
        matrix[:] = -1
        np.testing.assert_array_equal(tiny_detections, original)

    def test_repeated_reshape_is_identical(self, tiny_detections):
        design = SurveyDesign(2, 3, 2)
        np.testing.assert_array_equal(
            reshape_detections(tiny_detections, design), reshape_detections(tiny_detections, design)
        )

    def test_rejects_two_dimensional_input(self):
        with pytest.raises(DataShapeError):
            reshape_detections(np.zeros((2, 6)), SurveyDesign(2, 3, 2))

    def test_rejects_mismatched_shape(self, tiny_detections):
        with pytest.raises(DataShapeError) as excinfo:
            reshape_detections(tiny_detections, SurveyDesign(2, 2, 3))
        assert excinfo.value.error_code == "DATA_SHAPE"

    def test_unreshape_inverts(self, tiny_detections):
        design = SurveyDesign(2, 3, 2)
        back = unreshape_detections(reshape_detections(tiny_detections, design), design)
        np.testing.assert_array_equal(back, tiny_detections)


class TestMultiSeasonData:

    def _data(self, **kwargs):
        design = SurveyDesign(4, 3, 2)
        rng = np.random.default_rng(0)
        y = rng.binomial(1, 0.4, size=design.matrix_shape).astype(float)
        defaults = dict(
            design=design,
            y=y,
            site_covariates={"elev": rng.normal(size=4)},
            yearly_site_covariates={"rain": rng.normal(size=(4, 2))},
            observation_covariates={"wind": rng.normal(size=(4, 3, 2))},
        )
        defaults.update(kwargs)
        return MultiSeasonData(**defaults)

    def test_levels_and_builtin_year(self):
        data = self._data()
        assert data.covariate_level("elev") == "site"
        assert data.covariate_level("rain") == "yearly"
        assert data.covariate_level("wind") == "observation"
        assert data.covariate_info["year"].is_categorical
        assert data.covariate_info["year"].levels == [1, 2, 3]
        assert set(data.covariate_names) == {"elev", "rain", "wind", "year"}

    def test_detections_view(self):
        data = self._data()
        assert data.detections.shape == (4, 3, 2)
        np.testing.assert_array_equal(reshape_detections(data.detections, data.design), data.y)

    def test_observation_covariate_accepts_matrix(self):
        wind = np.arange(24, dtype=float).reshape(4, 6)
        data = self._data(observation_covariates={"wind": wind})
        assert data.observation_covariates["wind"].shape == (4, 3, 2)
        assert data.observation_covariates["wind"][0, 1, 0] == 2.0

    def test_transition_covariate_truncates_yearly_values(self):
        rain = np.arange(12, dtype=float).reshape(4, 3)
        data = self._data(yearly_site_covariates={"rain": rain})
        np.testing.assert_array_equal(data.transition_covariate("rain"), rain[:, :2])

    def test_rejects_non_binary_observations(self):
        with pytest.raises(DataShapeError):
            self._data(y=np.full((4, 6), 2.0))

    def test_rejects_bad_covariate_shape(self):
        with pytest.raises(DataShapeError):
            self._data(site_covariates={"elev": np.zeros(5)})

    def test_rejects_duplicate_covariate_names(self):
        with pytest.raises(DataShapeError):
            self._data(site_covariates={"rain": np.zeros(4)})

    def test_subset_sites_resamples_rows(self):
        data = self._data()
        subset = data.subset_sites([0, 0, 3])
        assert subset.n_sites == 3
        np.testing.assert_array_equal(subset.y[1], data.y[0])
        np.testing.assert_array_equal(subset.site_covariates["elev"], data.site_covariates["elev"][[0, 0, 3]])
        assert subset.covariate_info["year"].is_categorical

    def test_with_observations_keeps_covariates(self):
        data = self._data()
        new = data.with_observations(np.zeros((4, 6)))
        assert new.y.sum() == 0
        np.testing.assert_array_equal(new.site_covariates["elev"], data.site_covariates["elev"])

    def test_data_hash_tracks_observations(self):
        data = self._data()
        assert data.data_hash() == self._data().data_hash()
        assert data.data_hash() != data.with_observations(np.zeros((4, 6))).data_hash()

    def test_dict_round_trip(self):
        data = self._data()
        restored = MultiSeasonData.from_dict(data.to_dict())
        assert restored.data_hash() == data.data_hash()
        assert restored.covariate_level("wind") == "observation"


class TestLoadCsv:

    def test_wide_csv(self, tmp_path):
        frame = pd.DataFrame({
            "site": ["a", "b", "c"],
            "y.1": [1, 0, 0], "y.2": [0, 0, 1],
            "y.3": [1, 0, np.nan], "y.4": [0, 0, 1],
            "elev": [1.5, 2.0, 0.1],
            "habitat": ["forest", "field", "forest"],
        })
        path = tmp_path / "survey.csv"
        frame.to_csv(path, index=False)

        data = load_multiseason_csv(path, n_years=2, n_occasions=2, site_id_column="site")

        assert data.n_sites == 3
        assert data.site_ids == ["a", "b", "c"]
        assert np.isnan(data.y[2, 2])
        assert data.covariate_info["habitat"].is_categorical
        assert data.covariate_info["habitat"].levels == ["field", "forest"]
        np.testing.assert_allclose(data.site_covariates["elev"], [1.5, 2.0, 0.1])

    def test_wrong_detection_column_count(self, tmp_path):
        path = tmp_path / "survey.csv"
        pd.DataFrame({"y.1": [1], "y.2": [0], "y.3": [1]}).to_csv(path, index=False)
        with pytest.raises(DataShapeError):
            load_multiseason_csv(path, n_years=2, n_occasions=2)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_multiseason_csv(tmp_path / "absent.csv", n_years=2, n_occasions=2)
