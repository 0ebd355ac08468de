"""
Ordered collection of fitted models sharing one dataset.
"""

from collections import OrderedDict
from typing import Dict, Iterator, List, Optional

from .base import ModelResult
from ..core.exceptions import DynOccError


class ModelCollection:
    """
    Ordered mapping of model name to ModelResult.

    Insertion order is the order the specifications were given. Every
    successful fit in the collection must come from the same dataset.
    """

    def __init__(self, results: Optional[Dict[str, ModelResult]] = None, data_hash: Optional[str] = None):
        self._results: "OrderedDict[str, ModelResult]" = OrderedDict()
        self.data_hash = data_hash
        for name, result in (results or {}).items():
            self.add(name, result)

    def add(self, name: str, result: ModelResult) -> None:
        if name in self._results:
            raise DynOccError(
                f"Duplicate model name '{name}' in collection",
                suggestions=["Give every model specification a unique name"],
                error_code="DUPLICATE_MODEL",
            )
        if result.data_hash is not None:
            if self.data_hash is None:
                self.data_hash = result.data_hash
            elif result.data_hash != self.data_hash:
                raise DynOccError(
                    f"Model '{name}' was fitted to a different dataset",
                    suggestions=["Fit all models in a collection to the same data"],
                    error_code="DATA_MISMATCH",
                    context={"expected": self.data_hash, "actual": result.data_hash},
                )
        self._results[name] = result

    def __getitem__(self, name: str) -> ModelResult:
        return self._results[name]

    def __contains__(self, name: str) -> bool:
        return name in self._results

    def __iter__(self) -> Iterator[str]:
        return iter(self._results)

    def __len__(self) -> int:
        return len(self._results)

    def keys(self) -> List[str]:
        return list(self._results.keys())

    def items(self):
        return self._results.items()

    def values(self):
        return self._results.values()

    def get(self, name: str, default=None) -> Optional[ModelResult]:
        return self._results.get(name, default)

    def converged(self) -> Dict[str, ModelResult]:
        """Successfully fitted models, in insertion order."""
        return OrderedDict((k, v) for k, v in self._results.items() if v.success)

    def failed(self) -> Dict[str, ModelResult]:
        return OrderedDict((k, v) for k, v in self._results.items() if not v.success)

    def __repr__(self) -> str:
        return f"ModelCollection({self.keys()}, converged={len(self.converged())})"
