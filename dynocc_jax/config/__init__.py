"""Configuration management for dynocc-jax."""

from .settings import (
    DynOccConfig,
    SurveyConfig,
    SimulationConfig,
    AnalysisConfig,
    LoggingConfig,
    LogLevel,
    get_default_config,
)

__all__ = [
    "DynOccConfig",
    "SurveyConfig",
    "SimulationConfig",
    "AnalysisConfig",
    "LoggingConfig",
    "LogLevel",
    "get_default_config",
]
