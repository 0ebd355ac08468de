"""
Optimization for dynocc-jax.

Main entry points:
- ScipyLBFGSOptimizer: bound-constrained L-BFGS-B with JAX gradients
- covariance_from_hessian: asymptotic covariance from the observed information
"""

from .optimizers import OptimizationConfig, OptimizationResult, ScipyLBFGSOptimizer
from .hessian_utils import (
    covariance_from_hessian,
    standard_errors_from_covariance,
    validate_hessian_quality,
)

__all__ = [
    "OptimizationConfig",
    "OptimizationResult",
    "ScipyLBFGSOptimizer",
    "covariance_from_hessian",
    "standard_errors_from_covariance",
    "validate_hessian_quality",
]
