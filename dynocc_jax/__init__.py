"""
DynOcc-JAX: dynamic (multi-season) occupancy modelling using JAX

Simulates multi-season detection surveys, fits colonization-extinction
occupancy models by maximum likelihood, and compares candidate models by AIC,
likelihood-ratio tests and parametric-bootstrap goodness of fit.
"""

import jax

# Likelihoods and Hessians need double precision
jax.config.update("jax_enable_x64", True)

__version__ = "0.1.0"

# Data
from .data.adapters import (
    SurveyDesign,
    MultiSeasonData,
    reshape_detections,
    unreshape_detections,
    build_multiseason_data,
    load_multiseason_csv,
)
from .data.simulation import SimulatedData, simulate_dynocc

# Formula system
from .formulas import FormulaSpec, ParameterFormula, ParameterType, create_formula_spec

# Models
from .models import DynamicOccupancyModel, ModelResult, ModelCollection, OptimizationStatus

# Inference
from .inference import (
    rank_models,
    likelihood_ratio_test,
    LikelihoodRatioResult,
    fit_statistics,
    parametric_bootstrap,
    GoodnessOfFitResult,
    nonparametric_bootstrap,
)

# Pipeline
from .core.api import (
    DEFAULT_MODEL_SPECS,
    default_model_specs,
    fit_model,
    fit_model_battery,
    run_pipeline,
    PipelineResult,
)
from .core.summary import occupied_site_counts, occupancy_comparison_table
from .core.plotting import plot_occupancy_comparison
from .core.export import ResultsExporter, export_pipeline_results

# Configuration
from .config.settings import DynOccConfig

# Exceptions
from .core.exceptions import (
    DynOccError,
    DataShapeError,
    ModelSpecificationError,
    OptimizationError,
    ConvergenceError,
    NonNestedModelsError,
    ConfigurationError,
)

__all__ = [
    "__version__",
    # Data
    "SurveyDesign",
    "MultiSeasonData",
    "reshape_detections",
    "unreshape_detections",
    "build_multiseason_data",
    "load_multiseason_csv",
    "SimulatedData",
    "simulate_dynocc",
    # Formula system
    "FormulaSpec",
    "ParameterFormula",
    "ParameterType",
    "create_formula_spec",
    # Models
    "DynamicOccupancyModel",
    "ModelResult",
    "ModelCollection",
    "OptimizationStatus",
    # Inference
    "rank_models",
    "likelihood_ratio_test",
    "LikelihoodRatioResult",
    "fit_statistics",
    "parametric_bootstrap",
    "GoodnessOfFitResult",
    "nonparametric_bootstrap",
    # Pipeline
    "DEFAULT_MODEL_SPECS",
    "default_model_specs",
    "fit_model",
    "fit_model_battery",
    "run_pipeline",
    "PipelineResult",
    "occupied_site_counts",
    "occupancy_comparison_table",
    "plot_occupancy_comparison",
    "ResultsExporter",
    "export_pipeline_results",
    # Configuration
    "DynOccConfig",
    # Exceptions
    "DynOccError",
    "DataShapeError",
    "ModelSpecificationError",
    "OptimizationError",
    "ConvergenceError",
    "NonNestedModelsError",
    "ConfigurationError",
]
