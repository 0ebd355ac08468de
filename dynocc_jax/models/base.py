"""
Result type and abstract interface shared by occupancy models.

A ``ModelResult`` is the only thing downstream code (ranking, likelihood-ratio
tests, goodness of fit, export) sees of a fit. Failed fits are represented by
results with ``FAILED`` status rather than exceptions so a battery can carry
them through to the ranking table.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
from enum import Enum
import numpy as np
import pandas as pd
from scipy import stats

from ..formulas.spec import FormulaSpec
from ..formulas.design_matrix import DesignMatrixInfo
from ..utils.logging import get_logger


logger = get_logger(__name__)

COEFFICIENT_COLUMNS = ["estimate", "se", "z", "p_value"]


class OptimizationStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class ModelResult:
    """
    Maximum-likelihood fit of one candidate model.

    Coefficients are on the logit scale and stored as one flat vector in
    psi, gamma, phi, p order; ``parameter_counts`` records how many belong to
    each so ``split_parameters`` can recover the blocks.
    """

    formula_spec: FormulaSpec
    model_name: Optional[str] = None
    status: OptimizationStatus = OptimizationStatus.FAILED

    parameters: Optional[np.ndarray] = None
    parameter_names: Optional[List[str]] = None
    parameter_counts: Optional[Dict[str, int]] = None
    parameter_se: Optional[np.ndarray] = None
    covariance: Optional[np.ndarray] = None

    log_likelihood: Optional[float] = None
    n_parameters: Optional[int] = None
    aic: Optional[float] = None

    n_iterations: Optional[int] = None
    optimizer_used: Optional[str] = None
    gradient_norm: Optional[float] = None
    fit_time: Optional[float] = None

    warnings: List[str] = field(default_factory=list)
    error_message: Optional[str] = None
    data_hash: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.model_name = self.model_name or self.formula_spec.name
        if self.parameters is not None:
            self.parameters = np.asarray(self.parameters, dtype=float)
            if self.n_parameters is None:
                self.n_parameters = int(self.parameters.size)
        if self.aic is None and self.log_likelihood is not None and self.n_parameters is not None:
            self.aic = 2.0 * self.n_parameters - 2.0 * float(self.log_likelihood)

    @classmethod
    def failed(
        cls,
        formula_spec: FormulaSpec,
        model_name: str,
        error_message: str,
        data_hash: Optional[str] = None,
    ) -> "ModelResult":
        """A placeholder for a model that could not be fitted."""
        return cls(
            formula_spec=formula_spec,
            model_name=model_name,
            status=OptimizationStatus.FAILED,
            error_message=error_message,
            data_hash=data_hash,
        )

    @property
    def success(self) -> bool:
        return self.status == OptimizationStatus.SUCCESS

    def split_parameters(self) -> Dict[str, np.ndarray]:
        """Coefficient blocks keyed by psi, gamma, phi and p."""
        if self.parameters is None or not self.parameter_counts:
            return {}
        bounds = np.cumsum([0] + list(self.parameter_counts.values()))
        return {
            name: self.parameters[bounds[i]:bounds[i + 1]]
            for i, name in enumerate(self.parameter_counts)
        }

    def coefficient_table(self) -> pd.DataFrame:
        """
        Logit-scale estimates with Wald z statistics and two-sided p-values.

        Coefficients without a standard error get NaN for ``se``, ``z`` and
        ``p_value``.
        """
        if self.parameters is None:
            return pd.DataFrame(columns=COEFFICIENT_COLUMNS)

        se = np.full(self.parameters.shape, np.nan)
        if self.parameter_se is not None:
            se = np.asarray(self.parameter_se, dtype=float)
        with np.errstate(divide="ignore", invalid="ignore"):
            z = self.parameters / se

        table = pd.DataFrame(
            {"estimate": self.parameters, "se": se, "z": z, "p_value": 2.0 * stats.norm.sf(np.abs(z))},
            index=pd.Index(self.parameter_names, name="parameter"),
        )
        return table[COEFFICIENT_COLUMNS]

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly summary of the fit."""
        summary: Dict[str, Any] = {
            "model_name": self.model_name,
            "status": self.status.value,
            "success": self.success,
            "formulas": self.formula_spec.to_dict(),
            "data_hash": self.data_hash,
        }
        if not self.success:
            summary["error"] = self.error_message
            return summary

        table = self.coefficient_table()
        summary["parameters"] = table["estimate"].to_dict()
        summary["standard_errors"] = table["se"].to_dict()
        summary.update(
            log_likelihood=float(self.log_likelihood),
            aic=float(self.aic),
            n_parameters=self.n_parameters,
            n_iterations=self.n_iterations,
            gradient_norm=None if self.gradient_norm is None else float(self.gradient_norm),
            fit_time=self.fit_time,
        )
        if self.warnings:
            summary["warnings"] = list(self.warnings)
        return summary


class OccupancyModel(ABC):
    """Interface implemented by occupancy models fitted from a FormulaSpec."""

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)

    @abstractmethod
    def build_design_matrices(
        self, formula_spec: FormulaSpec, data: Any
    ) -> Dict[str, DesignMatrixInfo]:
        """One design matrix per model parameter."""

    @abstractmethod
    def get_initial_parameters(
        self, data: Any, design_matrices: Dict[str, DesignMatrixInfo]
    ) -> np.ndarray:
        ...

    @abstractmethod
    def log_likelihood(
        self, parameters, data: Any, design_matrices: Dict[str, DesignMatrixInfo]
    ) -> float:
        ...

    @abstractmethod
    def fit(self, formula_spec: FormulaSpec, data: Any, **kwargs) -> ModelResult:
        ...

    def validate_formula(self, formula_spec: FormulaSpec, data: Any) -> None:
        """
        Check that every covariate named in the formulas exists in ``data``.

        Raises:
            ModelSpecificationError: If a covariate is missing
        """
        formula_spec.validate_all_covariates(data.covariate_names)
