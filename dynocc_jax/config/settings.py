"""
Configuration management system for dynocc-jax.

Provides a hierarchical configuration with support for YAML files,
environment variables, and runtime keyword overrides.
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, Union, Tuple
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from enum import Enum

from ..core.exceptions import ConfigurationError


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class SurveyConfig(BaseModel):
    """Survey design: sites, primary periods (years) and secondary occasions."""
    model_config = ConfigDict(validate_assignment=True)

    site_count: int = Field(100, gt=0)
    year_count: int = Field(10, ge=2)
    occasions_per_year: int = Field(3, gt=0)


class SimulationConfig(BaseModel):
    """Population parameters handed to the survey simulator."""
    model_config = ConfigDict(validate_assignment=True)

    mean_psi1: float = Field(0.6, gt=0.0, lt=1.0)
    range_phi: Tuple[float, float] = (0.7, 0.9)
    range_gamma: Tuple[float, float] = (0.1, 0.3)
    range_p: Tuple[float, float] = (0.3, 0.6)
    beta_xpsi1: float = 1.0
    beta_xphi: float = 1.0
    beta_xgamma: float = 1.0
    beta_xp: float = 0.0

    @field_validator("range_phi", "range_gamma", "range_p")
    @classmethod
    def validate_range(cls, v):
        low, high = v
        if not (0.0 < low <= high < 1.0):
            raise ValueError(f"range must satisfy 0 < low <= high < 1, got {v}")
        return v


class AnalysisConfig(BaseModel):
    """Model fitting, selection and bootstrap configuration."""
    model_config = ConfigDict(validate_assignment=True)

    gof_simulations: int = Field(100, gt=0)
    bootstrap_trials: int = Field(50, gt=0)
    n_workers: int = Field(1, ge=1)
    selected_model: str = "true"
    lrt_simpler: str = "true"
    lrt_richer: str = "global"
    max_iterations: int = Field(1000, gt=0)
    tolerance: float = Field(1e-8, gt=0.0)


class LoggingConfig(BaseModel):
    """Logging configuration."""
    model_config = ConfigDict(validate_assignment=True, use_enum_values=True, validate_default=True)

    level: LogLevel = LogLevel.INFO
    file_logging: bool = False
    log_file: Optional[Path] = None
    console_logging: bool = True
    format_string: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @model_validator(mode="after")
    def default_log_file(self):
        if self.file_logging and self.log_file is None:
            self.log_file = Path.home() / ".dynocc_jax" / "logs" / "dynocc_jax.log"
        return self


# Flat option names accepted by DynOccConfig.from_options
_OPTION_ALIASES = {
    "siteCount": ("survey", "site_count"),
    "yearCount": ("survey", "year_count"),
    "occasionsPerYear": ("survey", "occasions_per_year"),
    "bootstrapTrials": ("analysis", "bootstrap_trials"),
    "gofSimulations": ("analysis", "gof_simulations"),
    "seed": (None, "seed"),
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class DynOccConfig(BaseModel):
    """Main configuration class for dynocc-jax."""

    model_config = ConfigDict(validate_assignment=True, use_enum_values=True)

    seed: int = Field(102022, ge=0)
    output_directory: Path = Path("dynocc_output")

    survey: SurveyConfig = Field(default_factory=SurveyConfig)
    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def __init__(self, config_file: Optional[Union[str, Path]] = None, **kwargs):
        """
        Initialize configuration.

        Args:
            config_file: Path to YAML configuration file
            **kwargs: Override specific configuration values

        Raises:
            ConfigurationError: If any value fails validation
        """
        config_data: Dict[str, Any] = {}
        if config_file:
            config_data = self._load_config_file(config_file)

        config_data = _deep_merge(config_data, self._load_environment_variables())
        config_data = _deep_merge(config_data, kwargs)

        try:
            super().__init__(**config_data)
        except ValidationError as e:
            first = e.errors()[0]
            key = ".".join(str(part) for part in first["loc"])
            raise ConfigurationError(config_key=key, reason=first["msg"]) from e

    @classmethod
    def from_options(cls, **options) -> "DynOccConfig":
        """
        Build a configuration from flat named scalar options.

        Examples:
            >>> DynOccConfig.from_options(siteCount=100, yearCount=10,
            ...                           occasionsPerYear=3, seed=102022,
            ...                           bootstrapTrials=50)
        """
        nested: Dict[str, Any] = {}
        for name, value in options.items():
            if name not in _OPTION_ALIASES:
                raise ConfigurationError(
                    config_key=name,
                    reason=f"unknown option; expected one of {sorted(_OPTION_ALIASES)}",
                )
            section, key = _OPTION_ALIASES[name]
            if section is None:
                nested[key] = value
            else:
                nested.setdefault(section, {})[key] = value
        return cls(**nested)

    @staticmethod
    def _load_config_file(config_file: Union[str, Path]) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        config_path = Path(config_file)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, "r") as f:
            return yaml.safe_load(f) or {}

    @staticmethod
    def _load_environment_variables() -> Dict[str, Any]:
        """Load configuration from environment variables."""
        config: Dict[str, Any] = {}

        env_mappings = {
            "DYNOCC_JAX_LOG_LEVEL": ("logging", "level"),
            "DYNOCC_JAX_SEED": (None, "seed"),
            "DYNOCC_JAX_N_WORKERS": ("analysis", "n_workers"),
            "DYNOCC_JAX_OUTPUT_DIR": (None, "output_directory"),
        }

        for env_var, (section, key) in env_mappings.items():
            value = os.getenv(env_var)
            if value is None:
                continue

            if key in ("seed", "n_workers"):
                value = int(value)

            if section is None:
                config[key] = value
            else:
                config.setdefault(section, {})[key] = value

        return config

    def save_config(self, config_file: Union[str, Path]) -> None:
        """Save current configuration to YAML file."""
        config_path = Path(config_file)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "w") as f:
            yaml.safe_dump(self.model_dump(mode="json"), f, default_flow_style=False, indent=2)

    def update(self, **kwargs) -> None:
        """Update configuration values, accepting dotted keys for nested sections."""
        for key, value in kwargs.items():
            if "." in key:
                section, subkey = key.split(".", 1)
                section_obj = getattr(self, section, None)
                if section_obj is None or not hasattr(section_obj, subkey):
                    raise ConfigurationError(config_key=key, reason="unknown setting")
                target, attr = section_obj, subkey
            elif hasattr(self, key):
                target, attr = self, key
            else:
                raise ConfigurationError(config_key=key, reason="unknown setting")

            try:
                setattr(target, attr, value)
            except ValidationError as e:
                raise ConfigurationError(config_key=key, reason=e.errors()[0]["msg"]) from e


# Default configuration instance
_default_config: Optional[DynOccConfig] = None


def get_default_config() -> DynOccConfig:
    """Get the default configuration instance."""
    global _default_config
    if _default_config is None:
        _default_config = DynOccConfig()
    return _default_config
