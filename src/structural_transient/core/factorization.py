"""Factorized dynamic stiffness D = M + (dt/2)·C + (dt/2)²·K."""

from __future__ import annotations

import logging

import numpy as np
import scipy.sparse as sp
from scipy.sparse.linalg import splu

from .errors import InvalidConfigurationError, SingularSystemError
from .system import as_csc, check_same_size

logger = logging.getLogger(__name__)


def dynamic_stiffness_matrix(M, C, K, dt: float) -> sp.csc_matrix:
    """Assemble D for the trapezoidal rule with step ``dt``."""
    if not dt > 0.0:
        raise InvalidConfigurationError(f"dt must be > 0, got {dt}", stage="factorization")
    M = as_csc(M, "mass")
    K = as_csc(K, "stiffness")
    n = M.shape[0]
    C = as_csc(C, "damping") if C is not None else sp.csc_matrix((n, n))
    check_same_size(n, damping=C, stiffness=K)
    h = 0.5 * dt
    return sp.csc_matrix(M + h * C + (h * h) * K)


class DynamicStiffness:
    """Owns the factorization of D for one step length.

    The factorization is a sparse LU with a symmetric fill-reducing ordering
    and diagonal pivoting only, which for a symmetric matrix is an LDLᵀ
    decomposition; D is positive definite exactly when every pivot is
    positive.

    Attributes
    ----------
    dt : float
        Step length D was built for
    matrix : scipy.sparse.csc_matrix
        The assembled operator D
    n_solves : int
        Number of solves performed with this factorization
    """

    def __init__(self, M, C, K, dt: float):
        self.dt = float(dt)
        self.matrix = dynamic_stiffness_matrix(M, C, K, self.dt)
        self.n = self.matrix.shape[0]
        self.n_solves: int = 0

        if not np.all(np.isfinite(self.matrix.data)):
            raise SingularSystemError(
                "dynamic stiffness has non-finite entries",
                stage="factorization",
                dt=self.dt,
            )

        try:
            self._lu = splu(
                self.matrix,
                permc_spec="MMD_AT_PLUS_A",
                diag_pivot_thresh=0.0,
                options={"SymmetricMode": True},
            )
        except RuntimeError as exc:
            raise SingularSystemError(
                f"dynamic stiffness is singular: {exc}",
                stage="factorization",
                dt=self.dt,
            ) from exc

        pivots = self._lu.U.diagonal()
        if not np.array_equal(self._lu.perm_r, self._lu.perm_c) or np.any(pivots <= 0.0):
            raise SingularSystemError(
                "dynamic stiffness is not positive definite",
                stage="factorization",
                dt=self.dt,
                details={"min_pivot": float(np.min(pivots))},
            )

        logger.debug(
            "Factorized dynamic stiffness: n=%d, nnz(D)=%d, nnz(L+U)=%d, dt=%.6e",
            self.n,
            self.matrix.nnz,
            self._lu.L.nnz + self._lu.U.nnz,
            self.dt,
        )

    def solve(self, b: np.ndarray) -> np.ndarray:
        """Return x with D·x = b."""
        b = np.asarray(b, dtype=float)
        if b.shape != (self.n,):
            raise InvalidConfigurationError(
                f"right-hand side has shape {b.shape}, expected {(self.n,)}",
                stage="solve",
            )
        x = self._lu.solve(b)
        self.n_solves += 1
        if not np.all(np.isfinite(x)):
            raise SingularSystemError("solve produced non-finite values", stage="solve", dt=self.dt)
        return x
