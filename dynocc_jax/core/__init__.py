"""Core functionality for dynocc-jax."""

from .exceptions import (
    DynOccError,
    DataShapeError,
    ModelSpecificationError,
    OptimizationError,
    ConvergenceError,
    NonNestedModelsError,
    ConfigurationError,
)

__all__ = [
    "DynOccError",
    "DataShapeError",
    "ModelSpecificationError",
    "OptimizationError",
    "ConvergenceError",
    "NonNestedModelsError",
    "ConfigurationError",
]
