"""
Formula specification classes for dynocc-jax.

Defines the structure and validation of dynamic occupancy model formulas.
"""

from dataclasses import dataclass, field
from typing import List, Dict, Optional, Any, Set
from enum import Enum

from .terms import Term, parse_terms
from ..core.exceptions import ModelSpecificationError


class ParameterType(str, Enum):
    """Parameters of the dynamic occupancy model."""

    PSI = "psi"  # Initial occupancy
    GAMMA = "gamma"  # Colonization
    PHI = "phi"  # Persistence
    P = "p"  # Detection


@dataclass
class ParameterFormula:
    """
    Formula specification for a single parameter.

    Examples:
        psi ~ 1                    # Intercept only
        gamma ~ Xgamma             # Yearly covariate
        p ~ Xp + year              # Observation covariate plus year effects
    """

    parameter: ParameterType
    formula_string: str
    terms: List[Term] = field(default_factory=list)
    has_intercept: bool = True

    def __post_init__(self):
        self.parameter = ParameterType(self.parameter)
        if not self.formula_string or not self.formula_string.strip():
            raise ModelSpecificationError(
                formula=self.formula_string,
                parameter=self.parameter.value,
                suggestions=[
                    "Provide a non-empty formula",
                    "Use '~1' for intercept-only models",
                ],
            )
        self.terms = parse_terms(self.formula_string)
        self.has_intercept = any(term.is_intercept() for term in self.terms)

    @property
    def covariates(self) -> Set[str]:
        """Names of all covariates referenced by the formula."""
        names: Set[str] = set()
        for term in self.terms:
            names.update(term.get_variable_names())
        return names

    @property
    def term_labels(self) -> List[str]:
        return [term.to_string() for term in self.terms]

    def validate_covariates(self, available_covariates: List[str]) -> None:
        """
        Validate that all covariates in formula are available.

        Raises:
            ModelSpecificationError: If missing covariates found
        """
        missing = self.covariates - set(available_covariates)
        if missing:
            raise ModelSpecificationError(
                formula=self.formula_string,
                parameter=self.parameter.value,
                available_covariates=list(available_covariates),
                missing_covariates=list(missing),
            )

    def is_nested_in(self, other: "ParameterFormula") -> bool:
        """True when every term of this formula also appears in ``other``."""
        return set(self.term_labels) <= set(other.term_labels)


@dataclass
class FormulaSpec:
    """
    Complete model formula specification.

    Dynamic occupancy models need one formula each for psi (initial
    occupancy), gamma (colonization), phi (persistence) and p (detection).
    """

    psi: ParameterFormula
    gamma: ParameterFormula
    phi: ParameterFormula
    p: ParameterFormula

    name: Optional[str] = None
    description: Optional[str] = None

    def __post_init__(self):
        for param in ParameterType:
            formula = getattr(self, param.value)
            if isinstance(formula, str):
                formula = ParameterFormula(param, formula)
                setattr(self, param.value, formula)
            if formula.parameter != param:
                raise ModelSpecificationError(
                    formula=formula.formula_string,
                    parameter=param.value,
                    suggestions=[
                        f"Formula for '{param.value}' was declared for '{formula.parameter.value}'",
                    ],
                )

    @property
    def formulas(self) -> Dict[ParameterType, ParameterFormula]:
        """Parameter formulas in model order (psi, gamma, phi, p)."""
        return {param: getattr(self, param.value) for param in ParameterType}

    def covariates_for(self, parameter) -> Set[str]:
        return getattr(self, ParameterType(parameter).value).covariates

    def validate_all_covariates(self, available_covariates: List[str]) -> None:
        for formula in self.formulas.values():
            formula.validate_covariates(available_covariates)

    def is_nested_in(self, other: "FormulaSpec") -> bool:
        """True when each parameter formula is nested in the matching formula of ``other``."""
        return all(
            formula.is_nested_in(other.formulas[param])
            for param, formula in self.formulas.items()
        )

    def get_parameter_names(self) -> List[str]:
        return [param.value for param in ParameterType]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        result: Dict[str, Any] = {
            param.value: formula.formula_string for param, formula in self.formulas.items()
        }
        if self.name:
            result["name"] = self.name
        if self.description:
            result["description"] = self.description
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FormulaSpec":
        """
        Create FormulaSpec from dictionary.

        Missing parameters default to '~1'.

        Examples:
            {"psi": "~Xpsi1", "gamma": "~1", "phi": "~1", "p": "~1"}
            {"gamma": "~Xgamma", "name": "gam"}
        """
        unknown = set(data) - {param.value for param in ParameterType} - {"name", "description"}
        if unknown:
            raise ModelSpecificationError(
                formula=str(data),
                suggestions=[
                    f"Unknown parameters: {sorted(unknown)}",
                    "Valid parameters are psi, gamma, phi and p",
                ],
            )
        return cls(
            **{
                param.value: ParameterFormula(param, data.get(param.value, "~1"))
                for param in ParameterType
            },
            name=data.get("name"),
            description=data.get("description"),
        )

    def __str__(self) -> str:
        formula_str = ", ".join(
            f"{param.value}{formula.formula_string}" for param, formula in self.formulas.items()
        )
        if self.name:
            return f"{self.name}: {formula_str}"
        return formula_str
