"""
Formula term representations for dynocc-jax.

Defines the term types that can appear in occupancy model formulas.
"""

from abc import ABC, abstractmethod
from typing import List, Set
from dataclasses import dataclass
import itertools
import re

from ..core.exceptions import ModelSpecificationError


@dataclass(frozen=True)
class Term(ABC):
    """Abstract base class for formula terms."""

    @abstractmethod
    def get_variable_names(self) -> Set[str]:
        """Get all variable names used in this term."""

    @abstractmethod
    def to_string(self) -> str:
        """Convert term to string representation."""

    def is_intercept(self) -> bool:
        return False


@dataclass(frozen=True)
class InterceptTerm(Term):
    """Intercept term (constant)."""

    def get_variable_names(self) -> Set[str]:
        return set()

    def to_string(self) -> str:
        return "1"

    def is_intercept(self) -> bool:
        return True


@dataclass(frozen=True)
class VariableTerm(Term):
    """Simple variable term."""

    variable_name: str

    def __post_init__(self):
        if not self.variable_name or not self.variable_name.isidentifier():
            raise ModelSpecificationError(
                formula=f"Invalid variable name: {self.variable_name!r}",
                suggestions=[
                    "Variable names must be valid identifiers",
                    "Examples: 'Xpsi1', 'Xgamma', 'year'",
                ],
            )

    def get_variable_names(self) -> Set[str]:
        return {self.variable_name}

    def to_string(self) -> str:
        return self.variable_name


@dataclass(frozen=True)
class InteractionTerm(Term):
    """Interaction between variables (e.g., Xphi:year)."""

    variables: tuple

    def __post_init__(self):
        if len(self.variables) < 2:
            raise ModelSpecificationError(
                formula=f"Interaction requires at least 2 variables: {list(self.variables)}",
                suggestions=[
                    "Use format 'var1:var2' or 'var1 * var2'",
                    "For single variables, use a plain term",
                ],
            )

        if len(set(self.variables)) != len(self.variables):
            raise ModelSpecificationError(
                formula=f"Duplicate variables in interaction: {list(self.variables)}",
                suggestions=["Each variable should appear once per interaction"],
            )

        for name in self.variables:
            VariableTerm(name)

    def get_variable_names(self) -> Set[str]:
        return set(self.variables)

    def to_string(self) -> str:
        return ":".join(self.variables)


def create_term(term_string: str) -> Term:
    """
    Create the Term object for a single additive component.

    Examples:
        "1" -> InterceptTerm()
        "Xpsi1" -> VariableTerm("Xpsi1")
        "Xphi:year" -> InteractionTerm(("Xphi", "year"))
    """
    term_string = term_string.strip()

    if term_string == "1":
        return InterceptTerm()

    if ":" in term_string:
        return InteractionTerm(tuple(var.strip() for var in term_string.split(":")))

    if term_string.isidentifier():
        return VariableTerm(term_string)

    raise ModelSpecificationError(
        formula=term_string,
        suggestions=[
            "Supported terms: 1, variables, 'a:b' and 'a * b' interactions",
            "Use '-1' or '+0' to drop the intercept",
        ],
    )


def _expand_star(term_string: str) -> List[Term]:
    """Expand 'a * b' into a, b and a:b (all lower-order terms for more factors)."""
    variables = [var.strip() for var in term_string.split("*")]
    if not all(variables):
        raise ModelSpecificationError(formula=term_string)

    return [
        create_term(":".join(combo))
        for size in range(1, len(variables) + 1)
        for combo in itertools.combinations(variables, size)
    ]


def parse_terms(formula_string: str) -> List[Term]:
    """
    Parse the right-hand side of a formula into terms.

    Examples:
        "1" -> [InterceptTerm()]
        "Xpsi1" -> [InterceptTerm(), VariableTerm("Xpsi1")]
        "a * b" -> [InterceptTerm(), a, b, a:b]
        "-1 + a" -> [VariableTerm("a")]
    """
    if "~" in formula_string:
        formula_string = formula_string.split("~", 1)[1]
    formula_string = formula_string.strip()

    if not formula_string:
        raise ModelSpecificationError(formula=formula_string)

    # "-1" anywhere or a standalone "0" term drops the intercept
    has_intercept = True
    minus_one = r"-\s*1\s*(?=\+|$)"
    zero = r"(^|\+)\s*0\s*(?=\+|$)"
    if re.search(minus_one, formula_string) or re.search(zero, formula_string):
        has_intercept = False
        formula_string = re.sub(minus_one, "", formula_string)
        formula_string = re.sub(zero, r"\1", formula_string)

    terms: List[Term] = [InterceptTerm()] if has_intercept else []

    for term_str in formula_string.split("+"):
        term_str = term_str.strip()
        if not term_str or term_str == "1":
            continue
        if "-" in term_str:
            raise ModelSpecificationError(
                formula=term_str,
                suggestions=["Only '-1' is supported for term removal"],
            )
        new_terms = _expand_star(term_str) if "*" in term_str else [create_term(term_str)]
        for term in new_terms:
            if term not in terms:
                terms.append(term)

    return terms
