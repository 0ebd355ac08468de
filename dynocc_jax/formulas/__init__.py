"""
Formula system for dynocc-jax.

Provides R-style formula parsing and level-aware design matrix construction.
"""

from .parser import FormulaParser, parse_formula, create_formula_spec, parse_formula_list
from .terms import Term, InterceptTerm, VariableTerm, InteractionTerm
from .design_matrix import (
    DesignMatrixBuilder,
    DesignMatrixInfo,
    build_design_matrix,
    build_design_matrices,
)
from .spec import FormulaSpec, ParameterFormula, ParameterType

__all__ = [
    # Main API
    "parse_formula",
    "build_design_matrix",
    "build_design_matrices",
    "create_formula_spec",
    "parse_formula_list",
    # Core classes
    "FormulaParser",
    "DesignMatrixBuilder",
    "DesignMatrixInfo",
    "FormulaSpec",
    "ParameterFormula",
    "ParameterType",
    # Term types
    "Term",
    "InterceptTerm",
    "VariableTerm",
    "InteractionTerm",
]
