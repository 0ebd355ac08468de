"""
Bootstrap uncertainty for derived occupancy quantities.

Resamples sites with replacement, refits the model and recomputes smoothed
occupancy, giving standard errors that do not rely on asymptotic normality.
"""

from typing import Any, Optional

import numpy as np

from ..core.exceptions import ConfigurationError, OptimizationError, DynOccError
from ..models.base import ModelResult
from ..models.occupancy import DynamicOccupancyModel
from ..utils.logging import get_logger


logger = get_logger(__name__)


class BootstrapUncertainty:
    """
    Non-parametric (site) bootstrap of smoothed occupancy.
    """

    def __init__(self, model: Optional[DynamicOccupancyModel] = None):
        self.logger = get_logger(self.__class__.__name__)
        self.model = model or DynamicOccupancyModel()

    def _create_bootstrap_sample(self, data: Any, rng: np.random.Generator) -> Any:
        """Resample sites with replacement."""
        indices = rng.integers(0, data.n_sites, size=data.n_sites)
        return data.subset_sites(indices)

    def smoothed_samples(
        self,
        result: ModelResult,
        data: Any,
        n_boot: int = 50,
        rng: Optional[np.random.Generator] = None,
        **fit_kwargs,
    ) -> np.ndarray:
        """
        Smoothed occupancy from site-resampled refits.

        Returns:
            Array of shape (successful samples, n_years)
        """
        if n_boot is None or int(n_boot) <= 0:
            raise ConfigurationError(config_key="bootstrap_trials", reason=f"must be positive, got {n_boot}")

        rng = rng if rng is not None else np.random.default_rng()
        self.logger.info(f"Computing bootstrap uncertainty with {n_boot} samples", model=result.model_name)

        # Draw every resample before fitting so results depend only on the seed
        samples = [self._create_bootstrap_sample(data, rng) for _ in range(int(n_boot))]

        from ..core.api import fit_model

        smoothed = []
        for i, sample in enumerate(samples):
            try:
                refit = fit_model(
                    result.formula_spec, sample, model=self.model,
                    initial_parameters=result.parameters, **fit_kwargs,
                )
            except DynOccError as e:
                self.logger.debug(f"Bootstrap sample {i} failed: {e.message}")
                continue
            smoothed.append(self.model.smoothed(refit, sample))

            if (i + 1) % 10 == 0:
                self.logger.debug(f"Completed {i + 1}/{n_boot} bootstrap samples")

        if len(smoothed) < int(n_boot) * 0.5:
            raise OptimizationError(
                reason=(
                    f"too many bootstrap samples failed ({int(n_boot) - len(smoothed)}/{n_boot}); "
                    "model may be unstable or data insufficient"
                ),
            )

        if len(smoothed) < int(n_boot):
            self.logger.warning(f"{int(n_boot) - len(smoothed)} bootstrap samples failed and were dropped")

        return np.vstack(smoothed)


def nonparametric_bootstrap(
    result: ModelResult,
    data: Any,
    n_boot: int = 50,
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
    **fit_kwargs,
) -> np.ndarray:
    """
    Site bootstrap of smoothed occupancy (proportion of sites per year).

    Returns:
        Array of shape (B, n_years)
    """
    rng = rng if rng is not None else np.random.default_rng(seed)
    return BootstrapUncertainty().smoothed_samples(result, data, n_boot=n_boot, rng=rng, **fit_kwargs)


def smoothed_standard_errors(samples: np.ndarray, n_sites: int) -> np.ndarray:
    """Standard error of the number of occupied sites per year."""
    return np.std(np.asarray(samples), axis=0, ddof=1) * n_sites
