"""Mass-proportional (Rayleigh) damping."""

from __future__ import annotations

import math

import scipy.sparse as sp

from .errors import InvalidConfigurationError
from .system import as_csc


def rayleigh_mass_coefficient(loss_tangent: float, frequency: float) -> float:
    """
    Mass-proportional coefficient matching a loss tangent at one frequency.

        α = 2·η·ω,  ω = 2π·f

    Args:
        loss_tangent: Target loss tangent η (dimensionless)
        frequency: Frequency f [Hz] at which η is matched
    """
    if loss_tangent < 0.0:
        raise InvalidConfigurationError("loss_tangent must be >= 0", stage="damping")
    if frequency <= 0.0:
        raise InvalidConfigurationError("frequency must be > 0", stage="damping")
    return 2.0 * loss_tangent * (2.0 * math.pi * frequency)


def mass_proportional_damping(M, alpha: float) -> sp.csc_matrix:
    """C = α·M.  α = 0 yields an all-zero matrix with M's shape."""
    if alpha < 0.0:
        raise InvalidConfigurationError(
            f"damping coefficient must be >= 0, got {alpha}", stage="damping"
        )
    return as_csc(M, "mass") * float(alpha)
