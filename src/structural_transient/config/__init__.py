"""Configuration loading and validation utilities."""

from .loader import ConfigError, build_simulation_params, load_simulation_config, load_simulation_params
from .models import SimulationConfig

__all__ = [
    "ConfigError",
    "SimulationConfig",
    "build_simulation_params",
    "load_simulation_config",
    "load_simulation_params",
]
