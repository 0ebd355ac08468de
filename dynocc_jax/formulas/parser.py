"""
R-style formula parsing for dynocc-jax.

Formulas are one-sided (``~ Xgamma``) or name their parameter on the left
(``gamma ~ Xgamma``). The right-hand side accepts ``+``, ``:`` and ``*``
between covariate names and ``-1``/``0`` to drop the intercept.
"""

from typing import Any, List, Dict, Mapping, Optional
from dataclasses import dataclass

from .terms import Term, parse_terms
from .spec import FormulaSpec, ParameterType
from ..core.exceptions import ModelSpecificationError
from ..utils.logging import get_logger


logger = get_logger(__name__)


@dataclass
class ParsedFormula:
    response: Optional[str]
    terms: List[Term]
    has_intercept: bool
    original_string: str

    @property
    def covariates(self) -> List[str]:
        names: List[str] = []
        for term in self.terms:
            names.extend(n for n in term.get_variable_names() if n not in names)
        return names


class FormulaParser:
    """Turns formula strings and formula mappings into parsed objects."""

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)

    def parse(self, formula_string: str) -> ParsedFormula:
        """
        Split a formula into its response and right-hand-side terms.

        Examples:
            "~1" -> response=None, terms=[1]
            "gamma ~ Xgamma" -> response="gamma", terms=[1, Xgamma]

        Raises:
            ModelSpecificationError: If the formula is empty or malformed
        """
        text = (formula_string or "").strip()
        if not text:
            raise ModelSpecificationError(
                formula=text,
                suggestions=["Use '~1' for an intercept-only formula"],
            )

        lhs, _, rhs = text.rpartition("~") if "~" in text else ("", "", text)
        terms = parse_terms(rhs)
        parsed = ParsedFormula(
            response=lhs.strip() or None,
            terms=terms,
            has_intercept=any(term.is_intercept() for term in terms),
            original_string=text,
        )
        self.logger.debug(
            "Parsed formula",
            formula=text,
            terms=len(terms),
            intercept=parsed.has_intercept,
        )
        return parsed

    def parse_model_spec(
        self,
        spec_dict: Mapping[str, Any],
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> FormulaSpec:
        """
        Build a FormulaSpec from a mapping of parameter to formula.

        A formula whose left-hand side names a parameter must sit under
        that parameter's key, so ``{"psi": "gamma ~ Xgamma"}`` is rejected.
        """
        data = dict(spec_dict)
        for param in ParameterType:
            formula = data.get(param.value)
            if formula is None:
                continue
            response = self.parse(formula).response
            if response is not None and response != param.value:
                raise ModelSpecificationError(
                    formula=formula,
                    parameter=param.value,
                    suggestions=[f"Formula names '{response}' but was given for '{param.value}'"],
                )

        if name is not None:
            data["name"] = name
        if description is not None:
            data["description"] = description

        formula_spec = FormulaSpec.from_dict(data)
        self.logger.debug(f"Created model spec {formula_spec}")
        return formula_spec


def parse_formula(formula_string: str) -> ParsedFormula:
    return FormulaParser().parse(formula_string)


def create_formula_spec(
    psi: str = "~1",
    gamma: str = "~1",
    phi: str = "~1",
    p: str = "~1",
    name: Optional[str] = None,
) -> FormulaSpec:
    """
    Create a model specification from one formula per parameter.

    Examples:
        create_formula_spec(psi="~Xpsi1", name="psi")
        create_formula_spec("~Xpsi1", "~Xgamma", "~Xphi", "~1", name="true")
    """
    return FormulaParser().parse_model_spec(
        {"psi": psi, "gamma": gamma, "phi": phi, "p": p}, name=name
    )


def parse_formula_list(formulas: List[Dict[str, str]]) -> List[FormulaSpec]:
    """
    Parse several model specifications; unnamed entries become ``model_<i>``.

    Raises:
        ModelSpecificationError: If any entry is invalid
    """
    parser = FormulaParser()
    return [
        parser.parse_model_spec(entry, name=entry.get("name") or f"model_{position}")
        for position, entry in enumerate(formulas, start=1)
    ]
