"""
Validation utilities for dynocc-jax.

Provides common validation functions for survey arrays.
"""

import numpy as np
from typing import Optional, Sequence
from ..core.exceptions import DataShapeError


def validate_array_dimensions(
    array: np.ndarray,
    expected_shape: Optional[Sequence[Optional[int]]] = None,
    min_dims: Optional[int] = None,
    max_dims: Optional[int] = None,
    name: str = "array"
) -> None:
    """
    Validate array dimensions.

    Args:
        array: Array to validate
        expected_shape: Expected exact shape (None entries are ignored)
        min_dims: Minimum number of dimensions
        max_dims: Maximum number of dimensions
        name: Name for error messages

    Raises:
        DataShapeError: If validation fails
    """
    if not hasattr(array, 'shape'):
        raise DataShapeError(
            name=name,
            specific_issue=f"{name} must be an array-like object with a shape attribute",
        )

    shape = tuple(array.shape)
    ndims = len(shape)

    if min_dims is not None and ndims < min_dims:
        raise DataShapeError(
            name=name,
            specific_issue=f"{name} has {ndims} dimensions, expected at least {min_dims}",
        )

    if max_dims is not None and ndims > max_dims:
        raise DataShapeError(
            name=name,
            specific_issue=f"{name} has {ndims} dimensions, expected at most {max_dims}",
        )

    if expected_shape is not None:
        expected = tuple(expected_shape)
        mismatch = len(expected) != ndims or any(
            e is not None and a != e for a, e in zip(shape, expected)
        )
        if mismatch:
            raise DataShapeError(name=name, expected_shape=expected, actual_shape=shape)


def validate_binary_array(array: np.ndarray, name: str = "detections", allow_missing: bool = True) -> None:
    """
    Validate that an array holds only 0/1 values (and NaN when missing surveys are allowed).

    Raises:
        DataShapeError: If other values are present
    """
    values = np.asarray(array, dtype=float)
    observed = values[~np.isnan(values)] if allow_missing else values

    if not allow_missing and np.isnan(values).any():
        raise DataShapeError(name=name, specific_issue=f"{name} contains missing values")

    invalid = set(np.unique(observed).tolist()) - {0.0, 1.0}
    if invalid:
        raise DataShapeError(
            name=name,
            specific_issue=f"{name} contains values other than 0/1: {sorted(invalid)[:5]}",
        )

