"""Data containers, reshaping and simulation for dynocc-jax."""

from .adapters import (
    SurveyDesign,
    CovariateInfo,
    MultiSeasonData,
    reshape_detections,
    unreshape_detections,
    build_multiseason_data,
    load_multiseason_csv,
)
from .simulation import SimulatedData, simulate_dynocc

__all__ = [
    "SurveyDesign",
    "CovariateInfo",
    "MultiSeasonData",
    "reshape_detections",
    "unreshape_detections",
    "build_multiseason_data",
    "load_multiseason_csv",
    "SimulatedData",
    "simulate_dynocc",
]
