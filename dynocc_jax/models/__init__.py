"""
Model implementations for dynocc-jax.
"""

from .base import OccupancyModel, ModelResult, OptimizationStatus
from .occupancy import DynamicOccupancyModel, projected_occupancy
from .collection import ModelCollection

__all__ = [
    "ModelCollection",
    "OccupancyModel",
    "ModelResult",
    "OptimizationStatus",
    "DynamicOccupancyModel",
    "projected_occupancy",
]
