"""Numerical core: lumping, damping, step estimate, factorization, time loop."""

from .errors import (
    EigenNotConvergedError,
    InvalidConfigurationError,
    SimulationError,
    SingularMassError,
    SingularSystemError,
)

__all__ = [
    "EigenNotConvergedError",
    "InvalidConfigurationError",
    "SimulationError",
    "SingularMassError",
    "SingularSystemError",
]
