"""Automatic time-step estimate from the dominant eigenvalue of (K, M).

The trapezoidal rule is unconditionally stable, so the estimate controls
accuracy rather than stability.  ``2 / sqrt(λ_max)`` approximates the
period scale of the highest mode of the mesh; the multiplier says how many
of those the step may span.  Large multipliers (hundreds) are common when
only the low-frequency response is of interest.
"""

from __future__ import annotations

import logging
import math
from typing import Optional

import numpy as np
import scipy.linalg
from scipy.sparse.linalg import ArpackNoConvergence, eigsh

from .errors import EigenNotConvergedError, InvalidConfigurationError, SingularMassError
from .system import as_csc, check_same_size

logger = logging.getLogger(__name__)

# ARPACK needs k < n; tiny systems go through the dense solver instead
MIN_ITERATIVE_SIZE = 3


class StableStepEstimator:
    """Estimate dt = multiplier · 2 / sqrt(λ_max).

    Parameters
    ----------
    multiplier : float
        Safety multiplier s > 0.  Values well above 1 are typical.
    maxiter : int, optional
        Lanczos iteration budget (ARPACK default when None).
    tol : float
        Relative eigenvalue accuracy; 0 means machine precision.
    """

    def __init__(self, multiplier: float = 1.0, maxiter: Optional[int] = None, tol: float = 0.0):
        if multiplier <= 0.0:
            raise InvalidConfigurationError(
                f"step multiplier must be > 0, got {multiplier}", stage="step_estimate"
            )
        self.multiplier = float(multiplier)
        self.maxiter = maxiter
        self.tol = float(tol)
        self.lambda_max: Optional[float] = None

    def dominant_eigenvalue(self, K, M) -> float:
        K = as_csc(K, "stiffness")
        M = as_csc(M, "mass")
        n = K.shape[0]
        check_same_size(n, mass=M)

        if n < MIN_ITERATIVE_SIZE:
            try:
                vals = scipy.linalg.eigh(K.toarray(), M.toarray(), eigvals_only=True)
            except np.linalg.LinAlgError as exc:
                raise SingularMassError(
                    "mass matrix is not positive definite", stage="step_estimate"
                ) from exc
        else:
            try:
                vals = eigsh(
                    K,
                    k=1,
                    M=M,
                    which="LM",
                    maxiter=self.maxiter,
                    tol=self.tol,
                    return_eigenvectors=False,
                )
            except ArpackNoConvergence as exc:
                raise EigenNotConvergedError(
                    f"dominant eigenvalue did not converge within maxiter={self.maxiter}",
                    stage="step_estimate",
                    details={"maxiter": self.maxiter, "n_dof": n},
                ) from exc
            except RuntimeError as exc:
                # Raised when the mass matrix cannot be inverted
                raise SingularMassError(
                    f"mass matrix cannot be factorized: {exc}", stage="step_estimate"
                ) from exc

        lam = float(np.max(np.real(vals)))
        if not np.isfinite(lam) or lam <= 0.0:
            raise InvalidConfigurationError(
                f"dominant eigenvalue must be positive, got {lam}", stage="step_estimate"
            )
        self.lambda_max = lam
        return lam

    def estimate(self, K, M) -> float:
        lam = self.dominant_eigenvalue(K, M)
        dt = self.multiplier * 2.0 / math.sqrt(lam)
        logger.info(
            "Step estimate: lambda_max=%.6e, omega_max=%.6e rad/s, dt=%.6e s (multiplier %.3g)",
            lam,
            math.sqrt(lam),
            dt,
            self.multiplier,
        )
        return dt


def estimate_time_step(K, M, multiplier: float = 1.0, maxiter: Optional[int] = None) -> float:
    """Functional shortcut for :class:`StableStepEstimator`."""
    return StableStepEstimator(multiplier, maxiter=maxiter).estimate(K, M)
