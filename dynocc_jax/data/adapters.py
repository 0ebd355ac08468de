"""
Survey data containers and reshaping for dynocc-jax.

Multi-season detection data arrive as a site x year x occasion array. Model
fitting works on the site x (year * occasion) observation matrix, with columns
ordered year-major and occasion-minor.
"""

import hashlib
import pandas as pd
import numpy as np
from pathlib import Path
from typing import Dict, List, Optional, Union, Any, Sequence
from dataclasses import dataclass, field, replace

from ..core.exceptions import DataShapeError
from ..utils.logging import get_logger
from ..utils.validation import validate_array_dimensions, validate_binary_array


logger = get_logger(__name__)


SITE = "site"
YEARLY = "yearly"
OBSERVATION = "observation"


@dataclass(frozen=True)
class SurveyDesign:
    """Immutable survey design: sites, primary periods (years) and secondary occasions."""
    n_sites: int
    n_years: int
    n_occasions: int

    def __post_init__(self):
        for name in ("n_sites", "n_years", "n_occasions"):
            value = getattr(self, name)
            if not isinstance(value, (int, np.integer)) or value <= 0:
                raise DataShapeError(
                    name="SurveyDesign",
                    specific_issue=f"{name} must be a positive integer, got {value!r}",
                )

    @property
    def n_surveys(self) -> int:
        """Total number of surveys per site (years * occasions)."""
        return self.n_years * self.n_occasions

    @property
    def detection_shape(self):
        return (self.n_sites, self.n_years, self.n_occasions)

    @property
    def matrix_shape(self):
        return (self.n_sites, self.n_surveys)

    def column_index(self, year: int, occasion: int) -> int:
        """Observation matrix column for zero-based year and occasion."""
        return year * self.n_occasions + occasion


def reshape_detections(detections: np.ndarray, design: SurveyDesign) -> np.ndarray:
    """
    Flatten a site x year x occasion detection array into the observation matrix.

    Row s of the result holds occasions 1..O of year 1, then year 2, and so on,
    so that ``matrix[s, y * O + o] == detections[s, y, o]``. Values are copied
    unchanged; NaN marks a missing survey.

    Raises:
        DataShapeError: If the array is not 3-D or disagrees with the design
    """
    detections = np.asarray(detections)
    validate_array_dimensions(
        detections,
        expected_shape=design.detection_shape,
        name="detections",
    )
    return detections.reshape(design.matrix_shape).copy()


def unreshape_detections(matrix: np.ndarray, design: SurveyDesign) -> np.ndarray:
    """Inverse of :func:`reshape_detections`."""
    matrix = np.asarray(matrix)
    validate_array_dimensions(matrix, expected_shape=design.matrix_shape, name="observation matrix")
    return matrix.reshape(design.detection_shape).copy()


@dataclass
class CovariateInfo:
    """Information about a covariate."""
    name: str
    level: str
    is_categorical: bool = False
    levels: Optional[List[Any]] = None


@dataclass
class MultiSeasonData:
    """
    Prepared dataset for dynamic occupancy models.

    Holds the observation matrix together with covariates at three levels:

    - site covariates, one value per site (S,)
    - yearly site covariates, one value per site and year (S x Y) or per
      site and transition (S x (Y-1)); for transitions the first Y-1 columns
      of an S x Y array are used
    - observation covariates, one value per survey (S x Y x O)

    A categorical ``year`` covariate is always available.
    """
    design: SurveyDesign
    y: np.ndarray
    site_covariates: Dict[str, np.ndarray] = field(default_factory=dict)
    yearly_site_covariates: Dict[str, np.ndarray] = field(default_factory=dict)
    observation_covariates: Dict[str, np.ndarray] = field(default_factory=dict)
    covariate_info: Dict[str, CovariateInfo] = field(default_factory=dict)
    site_ids: Optional[List[Any]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        design = self.design
        self.y = np.asarray(self.y, dtype=float)
        validate_array_dimensions(self.y, expected_shape=design.matrix_shape, name="observation matrix")
        validate_binary_array(self.y, name="observation matrix")

        self.site_covariates = {
            name: self._check(values, [(design.n_sites,)], name)
            for name, values in self.site_covariates.items()
        }
        self.yearly_site_covariates = {
            name: self._check(
                values,
                [(design.n_sites, design.n_years), (design.n_sites, design.n_years - 1)],
                name,
            )
            for name, values in self.yearly_site_covariates.items()
        }
        self.observation_covariates = {
            name: self._observation_array(values, name)
            for name, values in self.observation_covariates.items()
        }

        if "year" not in self.yearly_site_covariates:
            # Categorical values are stored as codes into ``levels``
            self.yearly_site_covariates["year"] = np.tile(
                np.arange(design.n_years, dtype=float), (design.n_sites, 1)
            )
            self.covariate_info["year"] = CovariateInfo(
                "year", YEARLY, is_categorical=True, levels=list(range(1, design.n_years + 1))
            )

        levels = {
            **{name: SITE for name in self.site_covariates},
            **{name: YEARLY for name in self.yearly_site_covariates},
            **{name: OBSERVATION for name in self.observation_covariates},
        }
        counts = len(self.site_covariates) + len(self.yearly_site_covariates) + len(self.observation_covariates)
        if len(levels) != counts:
            raise DataShapeError(
                name="covariates",
                specific_issue="covariate names must be unique across site, yearly and observation levels",
            )
        for name, level in levels.items():
            info = self.covariate_info.get(name)
            if info is None:
                self.covariate_info[name] = CovariateInfo(name, level)
            elif info.level != level:
                self.covariate_info[name] = replace(info, level=level)

    @staticmethod
    def _check(values, shapes, name) -> np.ndarray:
        array = np.asarray(values, dtype=float)
        if tuple(array.shape) not in [tuple(s) for s in shapes]:
            raise DataShapeError(name=name, expected_shape=shapes[0], actual_shape=array.shape)
        return array

    def _observation_array(self, values, name) -> np.ndarray:
        array = np.asarray(values, dtype=float)
        if array.ndim == 2:
            return unreshape_detections(array, self.design)
        validate_array_dimensions(array, expected_shape=self.design.detection_shape, name=name)
        return array

    @property
    def n_sites(self) -> int:
        return self.design.n_sites

    @property
    def n_years(self) -> int:
        return self.design.n_years

    @property
    def n_occasions(self) -> int:
        return self.design.n_occasions

    @property
    def detections(self) -> np.ndarray:
        """Site x year x occasion view of the observation matrix."""
        return unreshape_detections(self.y, self.design)

    @property
    def covariate_names(self) -> List[str]:
        return list(self.covariate_info.keys())

    def covariate_level(self, name: str) -> str:
        return self.covariate_info[name].level

    def covariate_array(self, name: str) -> np.ndarray:
        """Raw covariate values at their native level."""
        level = self.covariate_level(name)
        if level == SITE:
            return self.site_covariates[name]
        if level == YEARLY:
            return self.yearly_site_covariates[name]
        return self.observation_covariates[name]

    def transition_covariate(self, name: str) -> np.ndarray:
        """Yearly covariate restricted to the Y-1 transitions (S x (Y-1))."""
        values = self.yearly_site_covariates[name]
        return values[:, : self.n_years - 1]

    def subset_sites(self, indices: Sequence[int]) -> "MultiSeasonData":
        """Dataset restricted to (or resampled by) the given site indices."""
        indices = np.asarray(indices, dtype=int)
        design = SurveyDesign(len(indices), self.n_years, self.n_occasions)
        return MultiSeasonData(
            design=design,
            y=self.y[indices],
            site_covariates={k: v[indices] for k, v in self.site_covariates.items()},
            yearly_site_covariates={k: v[indices] for k, v in self.yearly_site_covariates.items()},
            observation_covariates={k: v[indices] for k, v in self.observation_covariates.items()},
            covariate_info=dict(self.covariate_info),
            site_ids=None,
            metadata={**self.metadata, "resampled": True},
        )

    def with_observations(self, y: np.ndarray) -> "MultiSeasonData":
        """Same sites and covariates, new observation matrix."""
        return MultiSeasonData(
            design=self.design,
            y=y,
            site_covariates=self.site_covariates,
            yearly_site_covariates=self.yearly_site_covariates,
            observation_covariates=self.observation_covariates,
            covariate_info=dict(self.covariate_info),
            site_ids=self.site_ids,
            metadata={**self.metadata, "simulated": True},
        )

    def data_hash(self) -> str:
        """Stable hash of observations and covariates."""
        digest = hashlib.sha256()
        digest.update(np.ascontiguousarray(self.y).tobytes())
        for group in (self.site_covariates, self.yearly_site_covariates, self.observation_covariates):
            for name in sorted(group):
                digest.update(name.encode())
                digest.update(np.ascontiguousarray(group[name]).tobytes())
        return digest.hexdigest()[:16]

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a pickle-safe dictionary."""
        return {
            "design": [self.n_sites, self.n_years, self.n_occasions],
            "y": self.y.copy(),
            "site_covariates": {k: v.copy() for k, v in self.site_covariates.items()},
            "yearly_site_covariates": {k: v.copy() for k, v in self.yearly_site_covariates.items()},
            "observation_covariates": {k: v.copy() for k, v in self.observation_covariates.items()},
            "covariate_info": {
                name: {
                    "name": info.name,
                    "level": info.level,
                    "is_categorical": info.is_categorical,
                    "levels": info.levels,
                }
                for name, info in self.covariate_info.items()
            },
            "site_ids": self.site_ids,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data_dict: Dict[str, Any]) -> "MultiSeasonData":
        """Deserialize from :meth:`to_dict` output."""
        return cls(
            design=SurveyDesign(*data_dict["design"]),
            y=np.asarray(data_dict["y"]),
            site_covariates=data_dict["site_covariates"],
            yearly_site_covariates=data_dict["yearly_site_covariates"],
            observation_covariates=data_dict["observation_covariates"],
            covariate_info={
                name: CovariateInfo(**info) for name, info in data_dict["covariate_info"].items()
            },
            site_ids=data_dict.get("site_ids"),
            metadata=data_dict.get("metadata") or {},
        )


def build_multiseason_data(simulated) -> MultiSeasonData:
    """
    Package simulator output into a prepared dataset.

    Args:
        simulated: SimulatedData with ``y``, ``xpsi1``, ``xphi``, ``xgamma``
            and ``xp`` arrays

    Returns:
        MultiSeasonData with site covariate ``Xpsi1``, yearly covariates
        ``Xphi`` and ``Xgamma`` and observation covariate ``Xp``
    """
    design = simulated.design
    data = MultiSeasonData(
        design=design,
        y=reshape_detections(simulated.y, design),
        site_covariates={"Xpsi1": simulated.xpsi1},
        yearly_site_covariates={"Xphi": simulated.xphi, "Xgamma": simulated.xgamma},
        observation_covariates={"Xp": simulated.xp},
        metadata={"source": "simulation", "seed": simulated.seed},
    )
    logger.info(
        "Prepared multi-season data",
        sites=design.n_sites,
        years=design.n_years,
        occasions=design.n_occasions,
    )
    return data


def load_multiseason_csv(
    file_path: Union[str, Path],
    n_years: int,
    n_occasions: int,
    detection_prefix: str = "y.",
    site_id_column: Optional[str] = None,
    **kwargs,
) -> MultiSeasonData:
    """
    Load a wide CSV with one row per site.

    Detection columns are those starting with ``detection_prefix`` taken in file
    order and must number ``n_years * n_occasions``; remaining numeric columns
    become site covariates and string columns categorical site covariates.

    Args:
        file_path: Path to CSV file
        n_years: Number of primary periods
        n_occasions: Number of secondary occasions per year
        detection_prefix: Prefix of detection columns
        site_id_column: Optional column holding site identifiers
        **kwargs: Passed to pandas.read_csv
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"Data file not found: {file_path}")

    frame = pd.read_csv(file_path, **kwargs)
    detection_columns = [c for c in frame.columns if str(c).startswith(detection_prefix)]
    design = SurveyDesign(len(frame), n_years, n_occasions)

    if len(detection_columns) != design.n_surveys:
        raise DataShapeError(
            name="detection columns",
            expected_shape=(design.n_surveys,),
            actual_shape=(len(detection_columns),),
        )

    site_ids = None
    if site_id_column is not None:
        site_ids = frame[site_id_column].tolist()

    site_covariates: Dict[str, np.ndarray] = {}
    covariate_info: Dict[str, CovariateInfo] = {}
    skip = set(detection_columns) | ({site_id_column} if site_id_column else set())
    for column in frame.columns:
        if column in skip:
            continue
        series = frame[column]
        if pd.api.types.is_numeric_dtype(series):
            site_covariates[column] = series.to_numpy(dtype=float)
        else:
            categories = pd.Categorical(series)
            site_covariates[column] = categories.codes.astype(float)
            covariate_info[column] = CovariateInfo(
                column, SITE, is_categorical=True, levels=list(categories.categories)
            )

    logger.info(f"Loaded {len(frame)} sites from {file_path}", covariates=len(site_covariates))

    return MultiSeasonData(
        design=design,
        y=frame[detection_columns].to_numpy(dtype=float),
        site_covariates=site_covariates,
        covariate_info=covariate_info,
        site_ids=site_ids,
        metadata={"source": str(file_path)},
    )
