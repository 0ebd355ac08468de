"""
Design matrix construction for dynocc-jax.

Each parameter gets a design array at its own level:

- psi:   sites (S x k)
- gamma: sites x transitions (S x (Y-1) x k)
- phi:   sites x transitions (S x (Y-1) x k)
- p:     sites x years x occasions (S x Y x O x k)

Site covariates broadcast to every lower level.
"""

import numpy as np
import jax.numpy as jnp
from typing import Dict, List, Tuple, Any
from dataclasses import dataclass

from .terms import Term, InterceptTerm, VariableTerm, InteractionTerm
from .spec import ParameterFormula, FormulaSpec, ParameterType
from ..core.exceptions import ModelSpecificationError
from ..utils.logging import get_logger


logger = get_logger(__name__)

# Covariate levels usable by each parameter
ALLOWED_LEVELS = {
    ParameterType.PSI: {"site"},
    ParameterType.GAMMA: {"site", "yearly"},
    ParameterType.PHI: {"site", "yearly"},
    ParameterType.P: {"site", "yearly", "observation"},
}


@dataclass
class DesignMatrixInfo:
    """Information about a constructed design matrix."""
    parameter: ParameterType
    matrix: jnp.ndarray
    column_names: List[str]
    has_intercept: bool
    formula_string: str

    @property
    def parameter_count(self) -> int:
        return len(self.column_names)


class DesignMatrixBuilder:
    """Builds level-aware design arrays from formula terms and a MultiSeasonData."""

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)

    def target_shape(self, parameter: ParameterType, data: Any) -> Tuple[int, ...]:
        S, Y, O = data.n_sites, data.n_years, data.n_occasions
        if parameter == ParameterType.PSI:
            return (S,)
        if parameter in (ParameterType.GAMMA, ParameterType.PHI):
            return (S, Y - 1)
        return (S, Y, O)

    def build_matrix(self, formula: ParameterFormula, data: Any) -> DesignMatrixInfo:
        """
        Build the design array for a parameter formula.

        Raises:
            ModelSpecificationError: For unknown covariates, covariates at a level
                the parameter cannot use, or formulas with no columns
        """
        parameter = formula.parameter
        formula.validate_covariates(data.covariate_names)

        wrong_level = sorted(
            name for name in formula.covariates
            if data.covariate_level(name) not in ALLOWED_LEVELS[parameter]
        )
        if wrong_level:
            raise ModelSpecificationError(
                formula=formula.formula_string,
                parameter=parameter.value,
                suggestions=[
                    f"Covariates {wrong_level} cannot be used for {parameter.value}",
                    f"{parameter.value} accepts {sorted(ALLOWED_LEVELS[parameter])} covariates",
                ],
            )

        shape = self.target_shape(parameter, data)
        columns: List[np.ndarray] = []
        column_names: List[str] = []
        for term in formula.terms:
            term_columns, names = self._build_term_columns(term, parameter, data, shape)
            columns.extend(term_columns)
            column_names.extend(names)

        if not columns:
            raise ModelSpecificationError(
                formula=formula.formula_string,
                parameter=parameter.value,
                suggestions=[
                    "Formula produced no design matrix columns",
                    "Use '~1' for intercept-only models",
                ],
            )

        matrix = jnp.asarray(np.stack(columns, axis=-1))

        self.logger.debug(
            f"Built design matrix for {parameter.value}: {matrix.shape}",
            columns=column_names,
        )

        return DesignMatrixInfo(
            parameter=parameter,
            matrix=matrix,
            column_names=column_names,
            has_intercept=formula.has_intercept,
            formula_string=formula.formula_string,
        )

    def _build_term_columns(
        self, term: Term, parameter: ParameterType, data: Any, shape: Tuple[int, ...]
    ) -> Tuple[List[np.ndarray], List[str]]:
        if isinstance(term, InterceptTerm):
            return [np.ones(shape)], ["(Intercept)"]

        if isinstance(term, VariableTerm):
            return self._build_variable_columns(term.variable_name, parameter, data, shape)

        if isinstance(term, InteractionTerm):
            columns, names = [np.ones(shape)], [""]
            for variable in term.variables:
                var_columns, var_names = self._build_variable_columns(
                    variable, parameter, data, shape
                )
                columns = [c * v for c in columns for v in var_columns]
                names = [f"{n}:{m}" if n else m for n in names for m in var_names]
            return columns, names

        raise ModelSpecificationError(
            formula=f"Unknown term type: {type(term).__name__}",
            suggestions=["Supported terms: intercept, variable, interaction"],
        )

    def _broadcast(self, name: str, parameter: ParameterType, data: Any, shape) -> np.ndarray:
        """Covariate values expanded to the parameter's level."""
        level = data.covariate_level(name)
        if level == "site":
            values = data.site_covariates[name]
            return np.broadcast_to(values.reshape((-1,) + (1,) * (len(shape) - 1)), shape)

        if level == "yearly":
            if parameter == ParameterType.P:
                values = data.yearly_site_covariates[name]
                if values.shape[1] != data.n_years:
                    raise ModelSpecificationError(
                        formula=name,
                        parameter=parameter.value,
                        suggestions=[
                            f"Covariate '{name}' has one value per transition",
                            "Detection covariates need one value per year",
                        ],
                    )
                return np.broadcast_to(values[:, :, None], shape)
            return data.transition_covariate(name)

        return data.observation_covariates[name]

    def _build_variable_columns(
        self, name: str, parameter: ParameterType, data: Any, shape
    ) -> Tuple[List[np.ndarray], List[str]]:
        values = np.asarray(self._broadcast(name, parameter, data, shape), dtype=float)
        info = data.covariate_info[name]

        if not info.is_categorical:
            return [values.copy()], [name]

        # Dummy coding against the first level present at this parameter's level
        codes = np.unique(values[~np.isnan(values)])
        columns, names = [], []
        for code in codes[1:]:
            label = info.levels[int(code)] if info.levels else int(code)
            columns.append((values == code).astype(float))
            names.append(f"{name}_{label}")
        return columns, names


def build_design_matrix(formula: ParameterFormula, data: Any) -> DesignMatrixInfo:
    """
    Convenience function to build one design matrix.

    Args:
        formula: ParameterFormula object
        data: MultiSeasonData with covariates

    Returns:
        DesignMatrixInfo with the constructed array
    """
    return DesignMatrixBuilder().build_matrix(formula, data)


def build_design_matrices(spec: FormulaSpec, data: Any) -> Dict[ParameterType, DesignMatrixInfo]:
    """Design matrices for every parameter of a model specification."""
    builder = DesignMatrixBuilder()
    return {param: builder.build_matrix(formula, data) for param, formula in spec.formulas.items()}
