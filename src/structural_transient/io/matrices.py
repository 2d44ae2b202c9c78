"""Reading and writing system matrices produced by an external assembler."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import scipy.io
import scipy.sparse as sp

from ..core.errors import InvalidConfigurationError

SUPPORTED_SUFFIXES = (".npz", ".npy", ".mtx")


def load_matrix(path: Path) -> sp.csc_matrix:
    """Load a square matrix from ``.npz`` (scipy sparse), ``.npy`` or ``.mtx``."""
    path = Path(path)
    if not path.is_file():
        raise InvalidConfigurationError(f"Matrix file not found: {path}", stage="io")
    suffix = path.suffix.lower()
    if suffix == ".npz":
        A = sp.load_npz(path)
    elif suffix == ".npy":
        A = np.load(path, allow_pickle=False)
    elif suffix == ".mtx":
        A = scipy.io.mmread(str(path))
    else:
        raise InvalidConfigurationError(
            f"Unsupported matrix extension '{path.suffix}'. Use one of {SUPPORTED_SUFFIXES}.",
            stage="io",
        )
    A = sp.csc_matrix(A, dtype=float)
    if A.shape[0] != A.shape[1]:
        raise InvalidConfigurationError(f"{path.name}: matrix is not square {A.shape}", stage="io")
    return A


def save_matrix(path: Path, A) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    suffix = path.suffix.lower()
    if suffix == ".npz":
        sp.save_npz(path, sp.csc_matrix(A))
    elif suffix == ".npy":
        np.save(path, A.toarray() if sp.issparse(A) else np.asarray(A))
    elif suffix == ".mtx":
        scipy.io.mmwrite(str(path), sp.coo_matrix(A))
    else:
        raise InvalidConfigurationError(
            f"Unsupported matrix extension '{path.suffix}'. Use one of {SUPPORTED_SUFFIXES}.",
            stage="io",
        )
    return path
