"""
Statistical inference module for dynocc-jax.

Provides model ranking, likelihood-ratio tests, goodness-of-fit testing by
parametric bootstrap and site-bootstrap uncertainty.
"""

from .selection import rank_models, likelihood_ratio_test, LikelihoodRatioResult
from .diagnostics import (
    fit_statistics,
    parametric_bootstrap,
    bootstrap_p_value,
    GoodnessOfFitResult,
)
from .uncertainty import (
    BootstrapUncertainty,
    nonparametric_bootstrap,
    smoothed_standard_errors,
)

__all__ = [
    "rank_models",
    "likelihood_ratio_test",
    "LikelihoodRatioResult",
    "fit_statistics",
    "parametric_bootstrap",
    "bootstrap_p_value",
    "GoodnessOfFitResult",
    "BootstrapUncertainty",
    "nonparametric_bootstrap",
    "smoothed_standard_errors",
]
