"""Shared checks and conversions for system matrices and state vectors."""

from __future__ import annotations

from typing import Optional

import numpy as np
import scipy.sparse as sp

from .errors import InvalidConfigurationError


def as_csc(A, name: str = "matrix") -> sp.csc_matrix:
    """Return ``A`` as a square float CSC matrix (dense input is accepted)."""
    if sp.issparse(A):
        out = sp.csc_matrix(A, dtype=float)
    else:
        arr = np.atleast_2d(np.asarray(A, dtype=float))
        out = sp.csc_matrix(arr)
    if out.shape[0] != out.shape[1]:
        raise InvalidConfigurationError(
            f"{name} must be square, got shape {out.shape}", stage="setup"
        )
    return out


def check_same_size(n: int, **matrices) -> None:
    for name, A in matrices.items():
        if A is None:
            continue
        if A.shape != (n, n):
            raise InvalidConfigurationError(
                f"{name} has shape {A.shape}, expected {(n, n)}", stage="setup"
            )


def as_vector(v, n: int, name: str, default: Optional[float] = 0.0) -> np.ndarray:
    """Coerce a scalar or sequence into a fresh float vector of length ``n``."""
    if v is None:
        if default is None:
            raise InvalidConfigurationError(f"{name} is required", stage="setup")
        return np.full(n, float(default))
    arr = np.asarray(v, dtype=float)
    if arr.ndim == 0:
        return np.full(n, float(arr))
    arr = arr.ravel().copy()
    if arr.size != n:
        raise InvalidConfigurationError(
            f"{name} has length {arr.size}, expected {n}", stage="setup"
        )
    return arr
