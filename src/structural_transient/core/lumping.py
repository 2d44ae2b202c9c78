"""HRZ (Hinton-Rock-Zienkiewicz) diagonal mass lumping.

The consistent element mass matrices are condensed onto their diagonals.
Each element is treated independently: only the diagonal entries of the
element matrix are kept, and they are scaled so that their sum equals the
sum of *all* entries of the element matrix.  The total of the assembled
diagonal therefore equals the total of the consistent matrix, which for a
field with ``d`` components per node is ``d`` times the physical mass.

References
----------
.. [1] Hinton, E., Rock, T., and Zienkiewicz, O. C. "A note on mass lumping
       and related processes in the finite element method." Earthquake
       Engineering & Structural Dynamics 4.3 (1976): 245-249.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

import numpy as np
import scipy.sparse as sp

from .errors import InvalidConfigurationError, SingularMassError
from .system import as_csc

logger = logging.getLogger(__name__)

# Relative tolerance for the total-mass conservation check
MASS_CONSERVATION_RTOL = 1e-10


class HRZLumpingAssembler:
    """Assemble element mass matrices directly into a lumped diagonal.

    Parameters
    ----------
    n : int
        Number of free degrees of freedom in the global system.

    Notes
    -----
    DOF numbers below zero mark constrained degrees of freedom; their rows
    and columns contribute to the element scale factor but are not
    assembled.
    """

    def __init__(self, n: int):
        if n <= 0:
            raise InvalidConfigurationError(f"n must be > 0, got {n}", stage="lumping")
        self.n = int(n)
        self.diagonal = np.zeros(self.n)
        # Running totals used for the conservation check
        self.consistent_total = 0.0
        self.constrained_total = 0.0
        self.n_elements = 0

    def assemble(self, element_matrix, dofs: Sequence[int]) -> None:
        """Add one element's HRZ-lumped contribution."""
        me = np.asarray(element_matrix, dtype=float)
        dofs = np.asarray(dofs, dtype=int)
        if me.ndim != 2 or me.shape[0] != me.shape[1] or me.shape[0] != dofs.size:
            raise InvalidConfigurationError(
                f"element matrix of shape {me.shape} does not match {dofs.size} dofs",
                stage="lumping",
            )
        if np.any(dofs >= self.n):
            raise InvalidConfigurationError(
                f"element dofs {dofs.tolist()} exceed system size {self.n}",
                stage="lumping",
            )

        diag = np.diag(me)
        diag_sum = float(diag.sum())
        if diag_sum == 0.0:
            raise SingularMassError(
                f"element {self.n_elements} has a zero diagonal sum",
                stage="lumping",
                details={"element": self.n_elements},
            )
        scale = float(me.sum()) / diag_sum

        free = dofs >= 0
        np.add.at(self.diagonal, dofs[free], diag[free] * scale)
        self.consistent_total += float(me.sum())
        self.constrained_total += float(diag[~free].sum()) * scale
        self.n_elements += 1

    def make_matrix(self, check: bool = True) -> sp.csc_matrix:
        """Return the assembled diagonal mass matrix.

        The conservation check compares the lumped mass, including the share
        that fell on constrained DOFs, with the total of the element matrices.
        """
        if check:
            check_mass_conservation(
                self.diagonal.sum() + self.constrained_total, self.consistent_total
            )
        zero = np.count_nonzero(self.diagonal == 0.0)
        if zero:
            logger.warning(
                "Lumped mass matrix has %d zero diagonal entries; "
                "it is not positive definite.",
                zero,
            )
        return sp.diags(self.diagonal, format="csc")


def lump_hrz(
    element_matrices: Iterable,
    element_dofs: Iterable[Sequence[int]],
    n: int,
) -> sp.csc_matrix:
    """Lump a collection of element mass matrices into a global diagonal."""
    assembler = HRZLumpingAssembler(n)
    for me, dofs in zip(element_matrices, element_dofs):
        assembler.assemble(me, dofs)
    logger.debug("HRZ lumping of %d elements into %d dofs", assembler.n_elements, n)
    return assembler.make_matrix()


def lump_consistent(
    M_c,
    blocks: Optional[Iterable[Sequence[int]]] = None,
) -> sp.csc_matrix:
    """HRZ-lump an already assembled consistent mass matrix.

    Without ``blocks`` the whole matrix is scaled as a single block.  With
    ``blocks`` each index set is scaled on its own; indices not covered by
    any block keep their row sums.
    """
    M = as_csc(M_c, "consistent mass")
    n = M.shape[0]
    diag = M.diagonal().astype(float)
    row_sums = np.asarray(M.sum(axis=1)).ravel()

    if blocks is None:
        blocks = [np.arange(n)]

    lumped = row_sums.copy()
    covered = np.zeros(n, dtype=bool)
    for k, idx in enumerate(blocks):
        idx = np.asarray(idx, dtype=int)
        if np.any(covered[idx]):
            raise InvalidConfigurationError(
                f"lumping block {k} overlaps a previous block", stage="lumping"
            )
        covered[idx] = True
        denom = float(diag[idx].sum())
        if denom == 0.0:
            raise SingularMassError(
                f"lumping block {k} has a zero diagonal sum",
                stage="lumping",
                details={"block": k},
            )
        # Off-block coupling terms stay with the rows that carry them
        lumped[idx] = diag[idx] * (float(row_sums[idx].sum()) / denom)

    check_mass_conservation(lumped.sum(), float(M.sum()))
    return sp.diags(lumped, format="csc")


def check_mass_conservation(
    lumped_total: float,
    consistent_total: float,
    rtol: float = MASS_CONSERVATION_RTOL,
) -> None:
    scale = max(abs(consistent_total), np.finfo(float).tiny)
    if abs(lumped_total - consistent_total) > rtol * scale:
        raise SingularMassError(
            f"lumped mass {lumped_total:.12e} does not match consistent mass "
            f"{consistent_total:.12e}",
            stage="lumping",
            details={"lumped_total": lumped_total, "consistent_total": consistent_total},
        )


def total_mass(M, components: int = 1) -> float:
    """Physical mass represented by a mass matrix over ``components`` fields."""
    if components <= 0:
        raise InvalidConfigurationError("components must be > 0", stage="lumping")
    return float(M.sum()) / components
