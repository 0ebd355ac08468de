"""
Occupancy summaries comparing truth, naive observation and model estimates.
"""

from typing import Any, Dict, Optional

import numpy as np
import pandas as pd

from ..inference.uncertainty import nonparametric_bootstrap, smoothed_standard_errors
from ..models.base import ModelResult
from ..models.occupancy import DynamicOccupancyModel
from ..utils.logging import get_logger


logger = get_logger(__name__)

SERIES = ["True", "Observed", "Expected"]


def occupied_site_counts(z: np.ndarray, detections: np.ndarray) -> Dict[str, np.ndarray]:
    """
    Occupied sites per year.

    Args:
        z: True states, S x Y
        detections: Detections, S x Y x O (NaN for missing surveys)

    Returns:
        Dictionary with ``true`` (sites truly occupied) and ``observed``
        (sites with at least one detection) counts per year
    """
    z = np.asarray(z)
    detections = np.asarray(detections, dtype=float)
    return {
        "true": z.sum(axis=0).astype(int),
        "observed": (np.nansum(detections, axis=2) > 0).sum(axis=0).astype(int),
    }


def occupancy_comparison_table(
    simulated: Any,
    result: ModelResult,
    data: Any,
    n_boot: int = 50,
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
    bootstrap_samples: Optional[np.ndarray] = None,
    model: Optional[DynamicOccupancyModel] = None,
) -> pd.DataFrame:
    """
    Long-format table of occupied-site counts per year.

    Series are ``True`` (simulated states), ``Observed`` (naive, sites with a
    detection) and ``Expected`` (smoothed occupancy times the number of
    sites). Only ``Expected`` carries a standard error, from a site bootstrap.

    Args:
        simulated: SimulatedData with the true states
        result: Fitted model used for smoothing
        data: Dataset the model was fitted to
        n_boot: Bootstrap samples for the standard error
        seed: Seed for the bootstrap generator (ignored when ``rng`` is given)
        rng: Explicit numpy Generator
        bootstrap_samples: Precomputed B x Y smoothed samples

    Returns:
        DataFrame with columns ``year``, ``series``, ``value``, ``se``
    """
    model = model or DynamicOccupancyModel()
    n_sites, n_years = data.n_sites, data.n_years

    counts = occupied_site_counts(simulated.z, data.detections)
    expected = model.smoothed(result, data) * n_sites

    if bootstrap_samples is None:
        bootstrap_samples = nonparametric_bootstrap(result, data, n_boot=n_boot, seed=seed, rng=rng)
    se = smoothed_standard_errors(bootstrap_samples, n_sites)

    years = np.arange(1, n_years + 1)
    frames = [
        pd.DataFrame({"year": years, "series": "True", "value": counts["true"].astype(float), "se": np.nan}),
        pd.DataFrame({"year": years, "series": "Observed", "value": counts["observed"].astype(float), "se": np.nan}),
        pd.DataFrame({"year": years, "series": "Expected", "value": expected, "se": se}),
    ]
    table = pd.concat(frames, ignore_index=True)
    table["series"] = pd.Categorical(table["series"], categories=SERIES)

    logger.debug("Built occupancy comparison table", rows=len(table))
    return table
