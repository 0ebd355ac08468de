"""
Main API functions for dynocc-jax.

High-level interface for fitting model batteries and running the full
simulate, fit, select, assess and summarize pipeline.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd

from ..config.settings import DynOccConfig
from ..data.adapters import MultiSeasonData, SurveyDesign, build_multiseason_data
from ..data.simulation import SimulatedData, simulate_dynocc
from ..formulas import FormulaSpec
from ..inference.diagnostics import GoodnessOfFitResult, parametric_bootstrap
from ..inference.selection import LikelihoodRatioResult, likelihood_ratio_test, rank_models
from ..models import DynamicOccupancyModel, ModelCollection, ModelResult
from ..utils.logging import get_logger, log_performance, log_stage
from .exceptions import DynOccError, NonNestedModelsError, OptimizationError
from .plotting import plot_occupancy_comparison
from .summary import occupancy_comparison_table

logger = get_logger(__name__)


# Candidate models, in reporting order
DEFAULT_MODEL_SPECS: Dict[str, Dict[str, str]] = {
    "null": {"psi": "~1", "gamma": "~1", "phi": "~1", "p": "~1"},
    "psi": {"psi": "~Xpsi1", "gamma": "~1", "phi": "~1", "p": "~1"},
    "gam": {"psi": "~1", "gamma": "~Xgamma", "phi": "~1", "p": "~1"},
    "phi": {"psi": "~1", "gamma": "~1", "phi": "~Xphi", "p": "~1"},
    "p": {"psi": "~1", "gamma": "~1", "phi": "~1", "p": "~Xp"},
    "true": {"psi": "~Xpsi1", "gamma": "~Xgamma", "phi": "~Xphi", "p": "~1"},
    "global": {"psi": "~Xpsi1", "gamma": "~Xgamma", "phi": "~Xphi", "p": "~Xp"},
}


def default_model_specs() -> Dict[str, FormulaSpec]:
    """The seven candidate models as FormulaSpec objects, in order."""
    return {
        name: FormulaSpec.from_dict({**formulas, "name": name})
        for name, formulas in DEFAULT_MODEL_SPECS.items()
    }


def _as_named_specs(
    specs: Union[Mapping[str, Union[FormulaSpec, Dict[str, str]]], Sequence[FormulaSpec]]
) -> Dict[str, FormulaSpec]:
    if isinstance(specs, Mapping):
        named = {}
        for name, spec in specs.items():
            if not isinstance(spec, FormulaSpec):
                spec = FormulaSpec.from_dict({**spec, "name": name})
            elif spec.name != name:
                spec = FormulaSpec.from_dict({**spec.to_dict(), "name": name})
            named[name] = spec
        return named
    return {spec.name or f"model_{i + 1}": spec for i, spec in enumerate(specs)}


def fit_model(
    spec: FormulaSpec,
    data: MultiSeasonData,
    model: Optional[DynamicOccupancyModel] = None,
    **kwargs,
) -> ModelResult:
    """
    Fit one dynamic occupancy model.

    Args:
        spec: Formula specification
        data: Prepared multi-season data
        model: Model instance (default: DynamicOccupancyModel())
        **kwargs: ``max_iterations``, ``tolerance``, ``initial_parameters``

    Returns:
        ModelResult with fitted parameters and diagnostics

    Raises:
        ModelSpecificationError: If the formulas do not match the data
        OptimizationError: If fitting fails

    Examples:
        >>> spec = create_formula_spec(psi="~Xpsi1", gamma="~Xgamma", name="psi_gam")
        >>> result = fit_model(spec, data)
    """
    model = model or DynamicOccupancyModel()
    try:
        return model.fit(spec, data, **kwargs)
    except DynOccError:
        raise
    except Exception as e:
        raise OptimizationError(
            reason=f"{type(e).__name__}: {e}",
            optimizer="scipy_lbfgs",
        ) from e


@log_performance
def fit_model_battery(
    specs: Union[Mapping[str, Union[FormulaSpec, Dict[str, str]]], Sequence[FormulaSpec], None],
    data: MultiSeasonData,
    model: Optional[DynamicOccupancyModel] = None,
    **kwargs,
) -> ModelCollection:
    """
    Fit every candidate model to the same dataset.

    A failing fit is logged and recorded with ``FAILED`` status and its error
    message; it never stops the remaining fits.

    Args:
        specs: Mapping of name to FormulaSpec (or formula dict), or a list of
            named FormulaSpecs; defaults to DEFAULT_MODEL_SPECS
        data: Prepared multi-season data
        **kwargs: Passed to ``fit_model``

    Returns:
        ModelCollection in the order the specifications were given
    """
    named = _as_named_specs(specs if specs is not None else DEFAULT_MODEL_SPECS)
    model = model or DynamicOccupancyModel()
    data_hash = data.data_hash()
    collection = ModelCollection(data_hash=data_hash)

    logger.info(f"Fitting {len(named)} models", sites=data.n_sites, years=data.n_years)

    for name, spec in named.items():
        try:
            result = fit_model(spec, data, model=model, **kwargs)
            logger.info(f"{name}: AIC={result.aic:.2f}", k=result.n_parameters)
        except DynOccError as e:
            logger.error(f"Model '{name}' failed: {e.message}", error_code=e.error_code)
            result = ModelResult.failed(spec, name, e.message, data_hash=data_hash)
        result.model_name = name
        collection.add(name, result)

    return collection


@dataclass
class PipelineResult:
    """Everything produced by one pipeline run."""
    config: DynOccConfig
    simulated: SimulatedData
    data: MultiSeasonData
    collection: ModelCollection
    ranking: pd.DataFrame
    lrt: Optional[LikelihoodRatioResult] = None
    lrt_error: Optional[str] = None
    gof: Optional[GoodnessOfFitResult] = None
    comparison: Optional[pd.DataFrame] = None
    figure: Any = None
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def selected(self) -> Optional[ModelResult]:
        return self.collection.get(self.config.analysis.selected_model)


def _phase_generators(seed: int) -> Dict[str, np.random.Generator]:
    """Independent generators for each stochastic phase."""
    simulation, gof, bootstrap = np.random.SeedSequence(seed).spawn(3)
    return {
        "simulation": np.random.default_rng(simulation),
        "gof": np.random.default_rng(gof),
        "bootstrap": np.random.default_rng(bootstrap),
    }


def run_pipeline(config: Optional[DynOccConfig] = None, **overrides) -> PipelineResult:
    """
    Simulate a survey, fit the candidate models and summarize.

    Steps: simulate, reshape, fit the battery, rank by AIC, likelihood-ratio
    test, parametric-bootstrap goodness of fit for the selected model, and
    compare true, observed and expected occupied-site counts.

    Args:
        config: Configuration (default: DynOccConfig())
        **overrides: Dotted-key configuration updates, e.g. ``survey.site_count=50``

    Returns:
        PipelineResult
    """
    config = config or DynOccConfig()
    if overrides:
        config.update(**overrides)

    survey, analysis = config.survey, config.analysis
    design = SurveyDesign(survey.site_count, survey.year_count, survey.occasions_per_year)
    generators = _phase_generators(config.seed)
    fit_kwargs = {"max_iterations": analysis.max_iterations, "tolerance": analysis.tolerance}

    logger.info(
        "Starting dynamic occupancy pipeline",
        seed=config.seed,
        sites=design.n_sites,
        years=design.n_years,
        occasions=design.n_occasions,
    )

    simulated = simulate_dynocc(design, config.simulation, seed=config.seed, rng=generators["simulation"])
    data = build_multiseason_data(simulated)

    collection = fit_model_battery(DEFAULT_MODEL_SPECS, data, **fit_kwargs)
    ranking = rank_models(collection)

    result = PipelineResult(
        config=config,
        simulated=simulated,
        data=data,
        collection=collection,
        ranking=ranking,
    )

    try:
        result.lrt = likelihood_ratio_test(collection, analysis.lrt_simpler, analysis.lrt_richer)
    except NonNestedModelsError as e:
        logger.error(f"Likelihood-ratio test skipped: {e.message}")
        result.lrt_error = e.message
        result.errors["lrt"] = e.message

    selected = result.selected
    if selected is None or not selected.success:
        message = f"Selected model '{analysis.selected_model}' is unavailable or failed"
        logger.error(message)
        result.errors["selected_model"] = message
        return result

    try:
        with log_stage("goodness of fit", logger, model=selected.model_name, n_sim=analysis.gof_simulations):
            result.gof = parametric_bootstrap(
                selected,
                data,
                n_sim=analysis.gof_simulations,
                rng=generators["gof"],
                n_workers=analysis.n_workers,
                **fit_kwargs,
            )
        result.gof.seed = config.seed
    except DynOccError as e:
        logger.error(f"Goodness of fit failed: {e.message}")
        result.errors["gof"] = e.message

    try:
        with log_stage("site bootstrap", logger, n_boot=analysis.bootstrap_trials):
            result.comparison = occupancy_comparison_table(
                simulated,
                selected,
                data,
                n_boot=analysis.bootstrap_trials,
                rng=generators["bootstrap"],
            )
    except DynOccError as e:
        logger.error(f"Occupancy comparison failed: {e.message}")
        result.errors["comparison"] = e.message
        return result

    result.figure = plot_occupancy_comparison(result.comparison)

    logger.info("Pipeline finished", best_model=ranking.iloc[0]["model"])
    return result
