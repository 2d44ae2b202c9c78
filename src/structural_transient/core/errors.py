"""Exception taxonomy for the transient pipeline.

Every error is fatal for the current run: the caller may fix its inputs and
restart the whole pipeline, but nothing is retried or partially reused.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class SimulationError(RuntimeError):
    """Base class carrying optional diagnostics about where a run failed."""

    def __init__(
        self,
        message: str,
        *,
        stage: Optional[str] = None,
        t: Optional[float] = None,
        dt: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.stage = stage
        self.t = t
        self.dt = dt
        self.details = dict(details or {})

    def to_diagnostics_dict(self) -> Dict[str, Any]:
        diag: Dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": str(self),
            "stage": self.stage,
            "t_last": self.t,
            "dt": self.dt,
        }
        diag.update(self.details)
        return diag


class SingularMassError(SimulationError):
    """Lumping hit a zero diagonal sum or failed to conserve mass."""


class EigenNotConvergedError(SimulationError):
    """The iterative dominant-eigenvalue solve ran out of iterations."""


class SingularSystemError(SimulationError):
    """The dynamic stiffness is not positive definite or a solve failed."""


class InvalidConfigurationError(SimulationError, ValueError):
    """Inputs are inconsistent (non-positive dt or t_end, shape mismatch, ...)."""
