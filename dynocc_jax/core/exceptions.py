"""
Exception hierarchy for dynocc-jax.

Every error carries a short ``error_code`` and a list of suggestions; the
string form shows both so command-line users see what to change.
"""

from typing import List, Optional, Dict, Any, Tuple


class DynOccError(Exception):
    """
    Base class for all dynocc-jax errors.

    Attributes:
        message: One-line description without code or suggestions
        suggestions: Ordered hints for fixing the problem
        error_code: Stable identifier such as ``MODEL_SPEC``
        context: Structured details for programmatic inspection
    """

    code: Optional[str] = None
    default_suggestions: Tuple[str, ...] = ()

    def __init__(
        self,
        message: str,
        suggestions: Optional[List[str]] = None,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.suggestions = list(suggestions) if suggestions else list(self.default_suggestions)
        self.error_code = error_code or self.code
        self.context = context or {}

    def __str__(self) -> str:
        lines = [f"[{self.error_code}] {self.message}" if self.error_code else self.message]
        if self.suggestions:
            lines.append("")
            lines.append("Suggestions:")
            lines.extend(f"  {n}. {hint}" for n, hint in enumerate(self.suggestions, 1))
        return "\n".join(lines)


class DataShapeError(DynOccError):
    """Survey arrays disagree with the survey design or hold invalid values."""

    code = "DATA_SHAPE"
    default_suggestions = (
        "Detection arrays are site x year x occasion",
        "Observation matrices are site x (year * occasion), year-major",
        "Detections may only hold 0, 1 or NaN for unsurveyed occasions",
    )

    def __init__(
        self,
        name: str = "array",
        expected_shape: Optional[Tuple[int, ...]] = None,
        actual_shape: Optional[Tuple[int, ...]] = None,
        specific_issue: Optional[str] = None,
        **kwargs,
    ):
        if expected_shape is not None and actual_shape is not None:
            message = f"{name} has shape {tuple(actual_shape)}; the survey design needs {tuple(expected_shape)}"
        elif specific_issue:
            message = f"{name}: {specific_issue}"
        else:
            message = f"{name} does not match the survey design"

        kwargs.pop("suggestions", None)
        super().__init__(
            message,
            context={"name": name, "expected_shape": expected_shape, "actual_shape": actual_shape},
            **kwargs,
        )


class ModelSpecificationError(DynOccError):
    """A formula is malformed or uses covariates the data cannot supply."""

    code = "MODEL_SPEC"

    def __init__(
        self,
        formula: Optional[str] = None,
        parameter: Optional[str] = None,
        available_covariates: Optional[List[str]] = None,
        missing_covariates: Optional[List[str]] = None,
        suggestions: Optional[List[str]] = None,
        **kwargs,
    ):
        target = f" for {parameter}" if parameter else ""
        if missing_covariates and available_covariates is not None:
            message = f"Unknown covariates {sorted(missing_covariates)} in '{formula}'{target}"
            hints = [
                f"Known covariates: {', '.join(sorted(available_covariates)) or 'none'}",
                "Covariate names are case sensitive",
            ]
        elif formula:
            message = f"Cannot use formula '{formula}'{target}"
            hints = [
                "Write formulas as '~1', '~Xpsi1' or '~Xp + year'",
                "psi takes site covariates, gamma and phi site or yearly, p any level",
            ]
        else:
            message = f"Invalid model specification{target}"
            hints = ["Give one formula each for psi, gamma, phi and p"]

        super().__init__(
            message,
            suggestions=suggestions or hints,
            context={
                "formula": formula,
                "parameter": parameter,
                "missing_covariates": missing_covariates,
                "available_covariates": available_covariates,
            },
            **kwargs,
        )


class OptimizationError(DynOccError):
    """Maximum-likelihood fitting did not produce a usable optimum."""

    code = "OPTIMIZATION"
    default_suggestions = (
        "Drop covariates the data cannot support",
        "Check for sites that are never surveyed",
        "Raise analysis.max_iterations",
    )

    def __init__(
        self,
        optimizer: Optional[str] = None,
        reason: Optional[str] = None,
        iterations: Optional[int] = None,
        final_loss: Optional[float] = None,
        suggestions: Optional[List[str]] = None,
        **kwargs,
    ):
        message = "Fit failed"
        if optimizer:
            message += f" ({optimizer})"
        if reason:
            message += f": {reason}"
        if iterations is not None:
            message += f" after {iterations} iterations"

        super().__init__(
            message,
            suggestions=suggestions,
            context={
                "optimizer": optimizer,
                "reason": reason,
                "iterations": iterations,
                "final_loss": final_loss,
            },
            **kwargs,
        )


class ConvergenceError(OptimizationError):
    """The optimizer stopped before the convergence criteria were met."""

    default_suggestions = (
        "Raise analysis.max_iterations or loosen analysis.tolerance",
        "Coefficients near the logit bounds suggest an unidentifiable parameter",
        "Fit a simpler model to obtain starting values",
    )

    def __init__(self, reason: Optional[str] = None, **kwargs):
        super().__init__(reason=reason or "convergence criteria not met", **kwargs)


class NonNestedModelsError(DynOccError):
    """A likelihood-ratio test was requested for models that are not nested."""

    code = "NON_NESTED"
    default_suggestions = (
        "Each parameter formula of the simpler model must be contained in the richer one",
        "The richer model needs strictly more coefficients",
        "Both models must be present and converged",
        "Compare non-nested models by AIC instead",
    )

    def __init__(
        self,
        simpler: Optional[str] = None,
        richer: Optional[str] = None,
        reason: Optional[str] = None,
        **kwargs,
    ):
        message = f"Cannot test '{simpler}' against '{richer}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message,
            context={"simpler": simpler, "richer": richer, "reason": reason},
            **kwargs,
        )


class ConfigurationError(DynOccError):
    """A configuration value, file or environment variable is invalid."""

    code = "CONFIG"
    default_suggestions = (
        "Survey sizes, simulation counts and bootstrap trials must be positive",
        "Probability ranges must be increasing and inside [0, 1]",
        "Environment overrides use the DYNOCC_JAX_ prefix",
    )

    def __init__(
        self,
        config_key: Optional[str] = None,
        reason: Optional[str] = None,
        **kwargs,
    ):
        message = f"Setting '{config_key}' is invalid" if config_key else "Invalid configuration"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message,
            context={"config_key": config_key, "reason": reason},
            **kwargs,
        )
