"""
Model selection for dynocc-jax.

AIC ranking with Akaike weights and likelihood-ratio tests between nested
models.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict
import numpy as np
import pandas as pd
from scipy import stats

from ..core.exceptions import NonNestedModelsError
from ..utils.logging import get_logger


logger = get_logger(__name__)

RANKING_COLUMNS = [
    "model",
    "n_parameters",
    "log_likelihood",
    "aic",
    "delta_aic",
    "aic_weight",
    "rank",
    "status",
    "error",
]


def rank_models(collection) -> pd.DataFrame:
    """
    Rank fitted models by AIC.

    Converged models are sorted by AIC ascending, ties keeping insertion
    order, and ranked 1..n. Failed models follow with NaN statistics and no
    rank.

    Args:
        collection: ModelCollection (or any ordered mapping name -> ModelResult)

    Returns:
        DataFrame with one row per model
    """
    rows = []
    for name, result in collection.items():
        ok = result.success
        rows.append({
            "model": name,
            "n_parameters": result.n_parameters if ok else np.nan,
            "log_likelihood": result.log_likelihood if ok else np.nan,
            "aic": result.aic if ok else np.nan,
            "status": result.status.value,
            "error": result.error_message,
        })

    table = pd.DataFrame(rows, columns=[c for c in RANKING_COLUMNS if c not in ("delta_aic", "aic_weight", "rank")])
    converged = table[table["aic"].notna()].sort_values("aic", kind="mergesort")
    failed = table[table["aic"].isna()]

    if len(converged):
        delta = converged["aic"] - converged["aic"].min()
        weights = np.exp(-0.5 * delta)
        converged = converged.assign(
            delta_aic=delta,
            aic_weight=weights / weights.sum(),
            rank=np.arange(1, len(converged) + 1),
        )
    failed = failed.assign(delta_aic=np.nan, aic_weight=np.nan, rank=pd.NA)

    ranking = pd.concat([converged, failed], ignore_index=True)[RANKING_COLUMNS]
    ranking["rank"] = ranking["rank"].astype("Int64")
    ranking["n_parameters"] = ranking["n_parameters"].astype("Int64")

    if len(failed):
        logger.warning(f"{len(failed)} model(s) failed and are listed without rank")

    return ranking


@dataclass(frozen=True)
class LikelihoodRatioResult:
    """Likelihood-ratio test of a simpler model against a richer one."""
    simpler: str
    richer: str
    statistic: float
    df: int
    p_value: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def likelihood_ratio_test(collection, simpler: str, richer: str) -> LikelihoodRatioResult:
    """
    Likelihood-ratio test between two fitted models.

    The statistic is ``max(0, 2 * (ll_richer - ll_simpler))`` referred to a
    chi-square distribution with ``k_richer - k_simpler`` degrees of freedom.

    Raises:
        NonNestedModelsError: If either model is missing or failed, the
            formulas are not nested, or the parameter counts are equal
    """
    for name in (simpler, richer):
        if name not in collection:
            raise NonNestedModelsError(simpler, richer, reason=f"model '{name}' is not in the collection")
        if not collection[name].success:
            raise NonNestedModelsError(simpler, richer, reason=f"model '{name}' did not converge")

    small, large = collection[simpler], collection[richer]

    if not small.formula_spec.is_nested_in(large.formula_spec):
        raise NonNestedModelsError(
            simpler, richer, reason="covariates of the simpler model are not a subset of the richer model's"
        )

    df = int(large.n_parameters - small.n_parameters)
    if df <= 0:
        raise NonNestedModelsError(
            simpler, richer, reason=f"richer model must have more parameters (df={df})"
        )

    statistic = max(0.0, 2.0 * float(large.log_likelihood - small.log_likelihood))
    p_value = float(stats.chi2.sf(statistic, df))

    logger.info(
        f"Likelihood-ratio test {simpler} vs {richer}",
        statistic=f"{statistic:.3f}",
        df=df,
        p_value=f"{p_value:.4f}",
    )

    return LikelihoodRatioResult(simpler, richer, statistic, df, p_value)
