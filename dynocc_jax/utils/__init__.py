"""Utility functions and classes for dynocc-jax."""

from .logging import get_logger, setup_logging, log_performance, log_stage
from .validation import (
    validate_array_dimensions,
    validate_binary_array,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "log_performance",
    "log_stage",
    "validate_array_dimensions",
    "validate_binary_array",
]
