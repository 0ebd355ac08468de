"""
Dynamic (multi-season) occupancy model implementation for dynocc-jax.

Implements the colonization-extinction occupancy model as a two-state hidden
Markov model with a JAX forward algorithm. Sites are independent; each site's
latent state is occupied or unoccupied in every year, and repeated surveys
within a year detect the species only at occupied sites.

Parameters, all with logit links:
- psi:   probability a site is occupied in the first year
- gamma: probability an unoccupied site becomes occupied by the next year
- phi:   probability an occupied site stays occupied by the next year
- p:     probability of detection in a survey of an occupied site
"""

import time
from functools import partial
import jax
import jax.numpy as jnp
import numpy as np
from typing import Dict, List, Optional, Tuple, Any

from .base import OccupancyModel, ModelResult, OptimizationStatus
from ..formulas.spec import FormulaSpec, ParameterType
from ..formulas.design_matrix import DesignMatrixInfo, build_design_matrices
from ..optimization import (
    OptimizationConfig,
    ScipyLBFGSOptimizer,
    covariance_from_hessian,
    standard_errors_from_covariance,
    validate_hessian_quality,
)
from ..core.exceptions import ConvergenceError
from ..utils.logging import get_logger


logger = get_logger(__name__)

PARAMETER_ORDER = [ParameterType.PSI, ParameterType.GAMMA, ParameterType.PHI, ParameterType.P]

# Coefficient bounds on the logit scale
COEFFICIENT_BOUNDS = (-15.0, 15.0)


def logit(x):
    """Logit link function."""
    return np.log(x / (1 - x))


@jax.jit
def inv_logit(x: jnp.ndarray) -> jnp.ndarray:
    """Inverse logit (sigmoid) function."""
    return jax.nn.sigmoid(x)


def _split(theta, sizes):
    """Split the coefficient vector into (psi, gamma, phi, p) blocks."""
    blocks, start = [], 0
    for size in sizes:
        blocks.append(theta[start:start + size])
        start += size
    return blocks


def _linear_predictors(theta, matrices, sizes):
    return [X @ beta for X, beta in zip(matrices, _split(theta, sizes))]


def _emissions(eta_p, y, mask):
    """
    Per site-year probability of the detection history.

    Returns (e0, e1): the probability given unoccupied (1 with no detections,
    otherwise 0) and given occupied. Missing surveys contribute a factor of 1.
    """
    log_p = jax.nn.log_sigmoid(eta_p)
    log_q = jax.nn.log_sigmoid(-eta_p)
    log_e1 = jnp.sum(mask * (y * log_p + (1.0 - y) * log_q), axis=-1)
    detected = jnp.sum(mask * y, axis=-1) > 0
    e0 = jnp.where(detected, 0.0, 1.0)
    return e0, jnp.exp(log_e1)


def _site_forward(psi1, gamma, phi, e0, e1):
    """Scaled forward pass for one site; returns log-likelihood and filtered states."""
    alpha = jnp.stack([(1.0 - psi1) * e0[0], psi1 * e1[0]])
    c0 = jnp.sum(alpha)
    alpha = alpha / c0

    def step(alpha, inputs):
        g, f, em0, em1 = inputs
        predicted = jnp.stack([
            alpha[0] * (1.0 - g) + alpha[1] * (1.0 - f),
            alpha[0] * g + alpha[1] * f,
        ])
        updated = predicted * jnp.stack([em0, em1])
        c = jnp.sum(updated)
        updated = updated / c
        return updated, (updated, jnp.log(c))

    _, (alphas, log_c) = jax.lax.scan(step, alpha, (gamma, phi, e0[1:], e1[1:]))
    log_lik = jnp.log(c0) + jnp.sum(log_c)
    return log_lik, jnp.concatenate([alpha[None, :], alphas], axis=0)


def _site_smoothed(psi1, gamma, phi, e0, e1):
    """Posterior probability of occupancy in each year for one site."""
    _, alphas = _site_forward(psi1, gamma, phi, e0, e1)

    def step(beta, inputs):
        g, f, em0, em1 = inputs
        weighted = beta * jnp.stack([em0, em1])
        previous = jnp.stack([
            (1.0 - g) * weighted[0] + g * weighted[1],
            (1.0 - f) * weighted[0] + f * weighted[1],
        ])
        previous = previous / jnp.sum(previous)
        return previous, previous

    _, betas = jax.lax.scan(
        step, jnp.ones(2), (gamma, phi, e0[1:], e1[1:]), reverse=True
    )
    betas = jnp.concatenate([betas, jnp.ones((1, 2))], axis=0)
    posterior = alphas * betas
    return posterior[:, 1] / jnp.sum(posterior, axis=1)


def _probabilities(theta, matrices, sizes):
    eta_psi, eta_gamma, eta_phi, eta_p = _linear_predictors(theta, matrices, sizes)
    return inv_logit(eta_psi), inv_logit(eta_gamma), inv_logit(eta_phi), eta_p


@partial(jax.jit, static_argnames=("sizes",))
def _negative_log_likelihood(theta, matrices, y, mask, sizes):
    """JIT-compiled negative log-likelihood summed over sites."""
    psi1, gamma, phi, eta_p = _probabilities(theta, matrices, sizes)
    e0, e1 = _emissions(eta_p, y, mask)
    site_ll, _ = jax.vmap(_site_forward)(psi1, gamma, phi, e0, e1)
    return -jnp.sum(site_ll)


_value_and_grad = jax.jit(jax.value_and_grad(_negative_log_likelihood), static_argnames=("sizes",))
_hessian = jax.jit(jax.hessian(_negative_log_likelihood), static_argnames=("sizes",))


@partial(jax.jit, static_argnames=("sizes",))
def _smoothed_occupancy(theta, matrices, y, mask, sizes):
    psi1, gamma, phi, eta_p = _probabilities(theta, matrices, sizes)
    e0, e1 = _emissions(eta_p, y, mask)
    return jax.vmap(_site_smoothed)(psi1, gamma, phi, e0, e1)


def projected_occupancy(psi1: np.ndarray, gamma: np.ndarray, phi: np.ndarray) -> np.ndarray:
    """Unconditional occupancy probability per site and year (S x Y)."""
    n_years = gamma.shape[1] + 1
    psi = np.empty((psi1.shape[0], n_years))
    psi[:, 0] = psi1
    for t in range(1, n_years):
        psi[:, t] = psi[:, t - 1] * phi[:, t - 1] + (1.0 - psi[:, t - 1]) * gamma[:, t - 1]
    return psi


class DynamicOccupancyModel(OccupancyModel):
    """
    Dynamic occupancy model (initial occupancy, colonization, persistence, detection).

    Each method that needs estimates takes the fitted ``ModelResult`` so one fit
    serves ranking, likelihood-ratio tests, goodness of fit and smoothing.
    """

    def __init__(self):
        super().__init__()
        self.parameter_order = [param.value for param in PARAMETER_ORDER]

    def build_design_matrices(
        self, formula_spec: FormulaSpec, data: Any
    ) -> Dict[str, DesignMatrixInfo]:
        """Build design matrices for psi, gamma, phi and p."""
        self.validate_formula(formula_spec, data)
        matrices = build_design_matrices(formula_spec, data)
        return {param.value: matrices[param] for param in PARAMETER_ORDER}

    def _likelihood_inputs(self, data: Any, design_matrices: Dict[str, DesignMatrixInfo]):
        detections = data.detections
        mask = ~np.isnan(detections)
        matrices = tuple(design_matrices[name].matrix for name in self.parameter_order)
        sizes = tuple(design_matrices[name].parameter_count for name in self.parameter_order)
        return (
            matrices,
            jnp.asarray(np.where(mask, detections, 0.0)),
            jnp.asarray(mask.astype(float)),
            sizes,
        )

    def get_parameter_names(self, design_matrices: Dict[str, DesignMatrixInfo]) -> List[str]:
        return [
            f"{name}({column})"
            for name in self.parameter_order
            for column in design_matrices[name].column_names
        ]

    def get_parameter_bounds(self, design_matrices: Dict[str, DesignMatrixInfo]) -> List[tuple]:
        n_params = sum(info.parameter_count for info in design_matrices.values())
        return [COEFFICIENT_BOUNDS] * n_params

    def get_initial_parameters(
        self, data: Any, design_matrices: Dict[str, DesignMatrixInfo]
    ) -> np.ndarray:
        """
        Starting values from naive occupancy summaries.

        Intercepts start at the logit of the naive estimate; all other
        coefficients start at zero.
        """
        detections = data.detections
        observed = ~np.isnan(detections)
        detected = np.nansum(detections, axis=2) > 0
        surveyed = observed.any(axis=2)

        first_year = surveyed[:, 0]
        naive_psi = detected[first_year, 0].mean() if first_year.any() else 0.5

        detected_years = detected & surveyed
        naive_p = np.nanmean(detections[detected_years]) if detected_years.any() else 0.5

        both = surveyed[:, :-1] & surveyed[:, 1:]
        was_occ = detected[:, :-1] & both
        was_empty = ~detected[:, :-1] & both
        naive_phi = detected[:, 1:][was_occ].mean() if was_occ.any() else 0.8
        naive_gamma = detected[:, 1:][was_empty].mean() if was_empty.any() else 0.2

        naive = {"psi": naive_psi, "gamma": naive_gamma, "phi": naive_phi, "p": naive_p}
        self.logger.debug(
            "Naive estimates",
            **{name: f"{float(value):.3f}" for name, value in naive.items()},
        )

        initial = []
        for name in self.parameter_order:
            info = design_matrices[name]
            params = np.zeros(info.parameter_count)
            start = float(logit(np.clip(naive[name], 0.05, 0.95)))
            if info.has_intercept:
                params[info.column_names.index("(Intercept)")] = start
            initial.append(params)

        return np.concatenate(initial)

    def log_likelihood(
        self, parameters, data: Any, design_matrices: Dict[str, DesignMatrixInfo]
    ) -> float:
        """Log-likelihood of the detection data at the given coefficients."""
        matrices, y, mask, sizes = self._likelihood_inputs(data, design_matrices)
        return -float(_negative_log_likelihood(jnp.asarray(parameters), matrices, y, mask, sizes=sizes))

    def fit(
        self,
        formula_spec: FormulaSpec,
        data: Any,
        max_iterations: int = 1000,
        tolerance: float = 1e-8,
        initial_parameters: Optional[np.ndarray] = None,
    ) -> ModelResult:
        """
        Fit the model by maximum likelihood.

        Args:
            formula_spec: Model formula specification
            data: MultiSeasonData
            max_iterations: L-BFGS-B iteration limit
            tolerance: L-BFGS-B function and gradient tolerance
            initial_parameters: Optional starting coefficients

        Returns:
            ModelResult with SUCCESS status

        Raises:
            ModelSpecificationError: If the formulas do not fit the data
            ConvergenceError: If the optimizer does not converge or the optimum
                is not finite
        """
        start_time = time.time()
        design_matrices = self.build_design_matrices(formula_spec, data)
        matrices, y, mask, sizes = self._likelihood_inputs(data, design_matrices)

        x0 = initial_parameters
        if x0 is None:
            x0 = self.get_initial_parameters(data, design_matrices)

        def objective_and_gradient(theta):
            return _value_and_grad(jnp.asarray(theta), matrices, y, mask, sizes=sizes)

        optimizer = ScipyLBFGSOptimizer(
            OptimizationConfig(max_iter=max_iterations, tolerance=tolerance)
        )
        opt_result = optimizer.minimize(
            objective_and_gradient, x0, bounds=self.get_parameter_bounds(design_matrices)
        )

        if not np.isfinite(opt_result.fun) or not np.all(np.isfinite(opt_result.x)):
            raise ConvergenceError(
                reason="non-finite log-likelihood at the optimum",
                optimizer=opt_result.strategy_used,
                iterations=opt_result.nit,
                final_loss=opt_result.fun,
            )

        if not opt_result.success:
            # Line-search failures at a stationary point still count as converged
            stationary = opt_result.gradient_norm is not None and opt_result.gradient_norm < 1e-3
            if opt_result.hit_iteration_limit or not stationary:
                raise ConvergenceError(
                    reason=opt_result.message,
                    optimizer=opt_result.strategy_used,
                    iterations=opt_result.nit,
                    final_loss=opt_result.fun,
                )

        hessian = np.asarray(
            _hessian(jnp.asarray(opt_result.x), matrices, y, mask, sizes=sizes)
        )
        covariance, warnings = covariance_from_hessian(hessian)
        quality = validate_hessian_quality(hessian)
        if np.isfinite(quality["condition_number"]) and quality["condition_number"] > 1e10:
            warnings.append("Hessian is ill-conditioned; standard errors may be unreliable")

        at_bound = np.isclose(np.abs(opt_result.x), COEFFICIENT_BOUNDS[1])
        if at_bound.any():
            warnings.append("Some coefficients are at the optimization bounds")

        names = self.get_parameter_names(design_matrices)
        result = ModelResult(
            formula_spec=formula_spec,
            model_name=formula_spec.name,
            status=OptimizationStatus.SUCCESS,
            parameters=np.asarray(opt_result.x),
            log_likelihood=-opt_result.fun,
            parameter_names=names,
            parameter_se=standard_errors_from_covariance(covariance),
            covariance=covariance,
            parameter_counts=dict(zip(self.parameter_order, sizes)),
            n_iterations=opt_result.nit,
            optimizer_used=opt_result.strategy_used,
            gradient_norm=opt_result.gradient_norm,
            warnings=warnings,
            fit_time=time.time() - start_time,
            data_hash=data.data_hash(),
            metadata={
                "optimization_message": opt_result.message,
                "n_function_evaluations": opt_result.nfev,
                "hessian_condition_number": quality["condition_number"],
            },
        )

        self.logger.debug(
            f"Fitted {formula_spec.name or 'model'}",
            log_likelihood=f"{result.log_likelihood:.3f}",
            aic=f"{result.aic:.3f}",
            iterations=result.n_iterations,
        )
        return result

    def predict(self, result: ModelResult, data: Any) -> Dict[str, np.ndarray]:
        """
        Per-site probabilities on the natural scale.

        Returns:
            Dictionary with ``psi`` (S), ``gamma`` and ``phi`` (S x (Y-1)) and
            ``p`` (S x Y x O)
        """
        design_matrices = self.build_design_matrices(result.formula_spec, data)
        matrices, _, _, sizes = self._likelihood_inputs(data, design_matrices)
        psi1, gamma, phi, eta_p = _probabilities(jnp.asarray(result.parameters), matrices, sizes)
        return {
            "psi": np.asarray(psi1),
            "gamma": np.asarray(gamma),
            "phi": np.asarray(phi),
            "p": np.asarray(inv_logit(eta_p)),
        }

    def projected(self, result: ModelResult, data: Any) -> np.ndarray:
        """Mean unconditional occupancy per year (length Y)."""
        probs = self.predict(result, data)
        return projected_occupancy(probs["psi"], probs["gamma"], probs["phi"]).mean(axis=0)

    def smoothed(self, result: ModelResult, data: Any) -> np.ndarray:
        """Mean posterior occupancy per year given the detection data (length Y)."""
        design_matrices = self.build_design_matrices(result.formula_spec, data)
        matrices, y, mask, sizes = self._likelihood_inputs(data, design_matrices)
        posterior = _smoothed_occupancy(jnp.asarray(result.parameters), matrices, y, mask, sizes=sizes)
        return np.asarray(posterior).mean(axis=0)

    def fitted(self, result: ModelResult, data: Any) -> np.ndarray:
        """Expected detection probability per survey, S x (Y * O)."""
        probs = self.predict(result, data)
        psi = projected_occupancy(probs["psi"], probs["gamma"], probs["phi"])
        expected = psi[:, :, None] * probs["p"]
        return expected.reshape(data.design.matrix_shape)

    def residuals(self, result: ModelResult, data: Any) -> np.ndarray:
        """Observed minus fitted, NaN where the survey is missing."""
        return data.y - self.fitted(result, data)

    def simulate(
        self, result: ModelResult, data: Any, rng: np.random.Generator
    ) -> np.ndarray:
        """
        Draw a new observation matrix from the fitted model.

        The missing-survey pattern of ``data`` is preserved.

        Returns:
            S x (Y * O) matrix of 0/1 with NaN for missing surveys
        """
        probs = self.predict(result, data)
        n_sites, n_years = data.n_sites, data.n_years

        z = np.zeros((n_sites, n_years), dtype=int)
        z[:, 0] = rng.binomial(1, probs["psi"])
        for t in range(1, n_years):
            prob = np.where(z[:, t - 1] == 1, probs["phi"][:, t - 1], probs["gamma"][:, t - 1])
            z[:, t] = rng.binomial(1, prob)

        y = rng.binomial(1, z[:, :, None] * probs["p"]).astype(float)
        y = y.reshape(data.design.matrix_shape)
        y[np.isnan(data.y)] = np.nan
        return y
