"""
Bound-constrained likelihood optimization for dynocc-jax.

Wraps scipy.optimize.minimize (L-BFGS-B) with JAX-computed gradients and
returns results following scipy.optimize conventions.
"""

import time
import numpy as np
import scipy.optimize
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from ..utils.logging import get_logger


logger = get_logger(__name__)


@dataclass
class OptimizationConfig:
    """Optimizer settings."""

    max_iter: int = 1000
    tolerance: float = 1e-8
    verbose: bool = False


@dataclass
class OptimizationResult:
    """Standard optimization result following scipy.optimize conventions."""

    success: bool
    x: np.ndarray
    fun: float
    nit: int
    nfev: int
    message: str
    jac: Optional[np.ndarray] = None
    optimization_time: float = 0.0
    strategy_used: str = "scipy_lbfgs"

    @property
    def gradient_norm(self) -> Optional[float]:
        if self.jac is None:
            return None
        return float(np.max(np.abs(self.jac)))

    @property
    def hit_iteration_limit(self) -> bool:
        return "ITERATIONS" in str(self.message).upper()


class ScipyLBFGSOptimizer:
    """
    L-BFGS-B optimizer using scipy.optimize.minimize.

    The objective and gradient are expected to return the negative
    log-likelihood and its gradient, typically from a jitted
    ``jax.value_and_grad`` function.
    """

    def __init__(self, config: Optional[OptimizationConfig] = None):
        self.config = config or OptimizationConfig()

    def minimize(
        self,
        objective_and_gradient: Callable[[np.ndarray], Tuple[float, np.ndarray]],
        x0: np.ndarray,
        bounds: Optional[List[Tuple[float, float]]] = None,
    ) -> OptimizationResult:
        """Minimize using L-BFGS-B algorithm."""
        start_time = time.time()

        def fun(x):
            value, gradient = objective_and_gradient(x)
            return float(value), np.asarray(gradient, dtype=float)

        options = {
            "maxiter": self.config.max_iter,
            "ftol": self.config.tolerance,
            "gtol": self.config.tolerance,
        }
        if self.config.verbose:
            options["disp"] = True

        scipy_result = scipy.optimize.minimize(
            fun=fun,
            x0=np.asarray(x0, dtype=float),
            method="L-BFGS-B",
            jac=True,
            bounds=bounds,
            options=options,
        )

        result = OptimizationResult(
            success=bool(scipy_result.success),
            x=np.asarray(scipy_result.x),
            fun=float(scipy_result.fun),
            nit=int(scipy_result.nit),
            nfev=int(scipy_result.nfev),
            message=str(scipy_result.message),
            jac=np.asarray(scipy_result.jac) if scipy_result.jac is not None else None,
            optimization_time=time.time() - start_time,
        )

        logger.debug(
            f"L-BFGS-B finished in {result.nit} iterations, "
            f"{result.nfev} function evaluations",
            success=result.success,
            status=result.message,
        )

        return result
