"""
Goodness-of-fit diagnostics for dynocc-jax.

Fit statistics compare observed detections with the model's expected
detection probabilities. A parametric bootstrap simulates datasets from the
fitted model, refits, and compares the observed statistics with their
simulated distribution.
"""

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from ..core.exceptions import ConfigurationError, DynOccError
from ..models.base import ModelResult
from ..models.occupancy import DynamicOccupancyModel
from ..utils.logging import get_logger


logger = get_logger(__name__)

STATISTICS = ["SSE", "freeman_tukey", "chi_square"]


def fit_statistics(
    result: ModelResult, data: Any, model: Optional[DynamicOccupancyModel] = None
) -> Dict[str, float]:
    """
    Discrepancy statistics between observed and fitted values.

    - SSE: sum of squared residuals
    - freeman_tukey: sum of (sqrt(observed) - sqrt(expected))^2
    - chi_square: sum of (observed - expected)^2 / expected

    Missing surveys are skipped.
    """
    model = model or DynamicOccupancyModel()
    expected = model.fitted(result, data)
    observed = data.y
    keep = ~np.isnan(observed)
    obs, exp = observed[keep], expected[keep]

    with np.errstate(divide="ignore", invalid="ignore"):
        chi = np.where(exp > 0, (obs - exp) ** 2 / exp, 0.0)

    return {
        "SSE": float(np.sum((obs - exp) ** 2)),
        "freeman_tukey": float(np.sum((np.sqrt(obs) - np.sqrt(exp)) ** 2)),
        "chi_square": float(np.sum(chi)),
    }


@dataclass
class GoodnessOfFitResult:
    """Parametric bootstrap goodness-of-fit results."""
    model_name: str
    observed: Dict[str, float]
    simulated: pd.DataFrame
    p_values: Dict[str, float]
    n_sim: int
    n_failed: int = 0
    seed: Optional[int] = None
    refit: bool = True
    elapsed_seconds: float = 0.0
    warnings: List[str] = field(default_factory=list)

    def get_summary(self) -> Dict[str, Any]:
        """Summary suitable for JSON export."""
        simulated = self.simulated
        return {
            "model": self.model_name,
            "n_sim": self.n_sim,
            "n_failed": self.n_failed,
            "seed": self.seed,
            "refit": self.refit,
            "statistics": {
                name: {
                    "observed": self.observed[name],
                    "simulated_mean": float(simulated[name].mean()) if len(simulated) else None,
                    "simulated_sd": float(simulated[name].std(ddof=1)) if len(simulated) > 1 else None,
                    "p_value": self.p_values[name],
                }
                for name in self.observed
            },
            "warnings": list(self.warnings),
        }


def bootstrap_p_value(observed: float, simulated: np.ndarray) -> float:
    """(1 + #{t* >= t0}) / (n + 1)."""
    simulated = np.asarray(simulated, dtype=float)
    return float((1 + np.sum(simulated >= observed)) / (len(simulated) + 1))


def _simulated_statistics(index, result, data, y_sim, refit, model, fit_kwargs):
    from ..core.api import fit_model

    sim_data = data.with_observations(y_sim)
    if refit:
        sim_result = fit_model(
            result.formula_spec, sim_data, model=model, initial_parameters=result.parameters, **fit_kwargs
        )
    else:
        sim_result = result
    return index, fit_statistics(sim_result, sim_data, model)


def parametric_bootstrap(
    result: ModelResult,
    data: Any,
    n_sim: int = 100,
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
    refit: bool = True,
    n_workers: int = 1,
    model: Optional[DynamicOccupancyModel] = None,
    **fit_kwargs,
) -> GoodnessOfFitResult:
    """
    Parametric bootstrap goodness-of-fit test.

    All synthetic datasets are drawn sequentially from one generator before
    any refitting, so the output does not depend on ``n_workers``.

    Args:
        result: Fitted model to assess
        data: Dataset the model was fitted to
        n_sim: Number of simulated datasets
        seed: Seed for the generator (ignored when ``rng`` is given)
        rng: Explicit numpy Generator
        refit: Refit the model to each simulated dataset
        n_workers: Threads used for refitting
        **fit_kwargs: Passed to ``DynamicOccupancyModel.fit``

    Raises:
        ConfigurationError: If ``n_sim`` is not positive
        DynOccError: If the model did not converge or every refit failed
    """
    if n_sim is None or int(n_sim) <= 0:
        raise ConfigurationError(config_key="gof_simulations", reason=f"must be positive, got {n_sim}")
    if not result.success:
        raise DynOccError(
            f"Cannot assess fit of unconverged model '{result.model_name}'",
            error_code="GOF",
        )

    start_time = time.time()
    model = model or DynamicOccupancyModel()
    rng = rng if rng is not None else np.random.default_rng(seed)

    observed = fit_statistics(result, data, model)
    datasets = [model.simulate(result, data, rng) for _ in range(int(n_sim))]

    logger.info(
        f"Parametric bootstrap for '{result.model_name}'",
        n_sim=n_sim,
        refit=refit,
        n_workers=n_workers,
    )

    rows: Dict[int, Dict[str, float]] = {}
    failures: List[str] = []
    gof_logger = logger.bind(model=result.model_name)

    if n_workers > 1:
        with ThreadPoolExecutor(max_workers=n_workers) as executor:
            futures = {
                executor.submit(_simulated_statistics, i, result, data, y_sim, refit, model, fit_kwargs): i
                for i, y_sim in enumerate(datasets)
            }
            for future in as_completed(futures):
                try:
                    index, stats = future.result()
                    rows[index] = stats
                except DynOccError as e:
                    gof_logger.debug(f"Refit failed: {e.message}", replicate=futures[future])
                    failures.append(e.message)
    else:
        for i, y_sim in enumerate(datasets):
            try:
                index, stats = _simulated_statistics(i, result, data, y_sim, refit, model, fit_kwargs)
                rows[index] = stats
            except DynOccError as e:
                gof_logger.debug(f"Refit failed: {e.message}", replicate=i)
                failures.append(e.message)

    if not rows:
        raise DynOccError(
            f"All {n_sim} bootstrap refits failed for '{result.model_name}'",
            suggestions=["Check that the model converges on the observed data"],
            error_code="GOF",
        )

    simulated = pd.DataFrame([rows[i] for i in sorted(rows)], columns=STATISTICS)
    simulated.index = pd.Index(sorted(rows), name="simulation")
    p_values = {name: bootstrap_p_value(observed[name], simulated[name]) for name in STATISTICS}

    warnings = []
    if failures:
        warnings.append(f"{len(failures)} of {n_sim} refits failed and were dropped")
        gof_logger.warning(warnings[-1])

    gof = GoodnessOfFitResult(
        model_name=result.model_name,
        observed=observed,
        simulated=simulated,
        p_values=p_values,
        n_sim=int(n_sim),
        n_failed=len(failures),
        seed=seed,
        refit=refit,
        elapsed_seconds=time.time() - start_time,
        warnings=warnings,
    )

    logger.info(
        "Goodness of fit",
        **{f"p_{name}": f"{p:.3f}" for name, p in p_values.items()},
    )
    return gof
