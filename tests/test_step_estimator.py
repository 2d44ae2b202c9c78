from __future__ import annotations

import numpy as np
import pytest
import scipy.linalg
import scipy.sparse as sp
from scipy.sparse.linalg import ArpackNoConvergence

import structural_transient.core.stepping as stepping
from structural_transient.core.errors import EigenNotConvergedError, InvalidConfigurationError
from structural_transient.core.stepping import StableStepEstimator, estimate_time_step


def _fixed_free_chain(n: int, k: float = 1.0e4, m: float = 2.0):
    main = np.full(n, 2.0 * k)
    main[-1] = k
    K = sp.diags([main, np.full(n - 1, -k), np.full(n - 1, -k)], [0, -1, 1], format="csc")
    M = sp.diags(np.full(n, m), format="csc")
    return K, M


def test_single_dof_uses_exact_eigenvalue() -> None:
    est = StableStepEstimator(multiplier=1.0)
    dt = est.estimate(np.array([[8.0]]), np.array([[2.0]]))
    assert est.lambda_max == pytest.approx(4.0)
    assert dt == pytest.approx(1.0)


def test_multiplier_scales_step() -> None:
    K, M = _fixed_free_chain(10)
    dt1 = estimate_time_step(K, M, multiplier=1.0)
    dt350 = estimate_time_step(K, M, multiplier=350.0)
    assert dt350 == pytest.approx(350.0 * dt1)


def test_iterative_eigenvalue_matches_dense() -> None:
    K, M = _fixed_free_chain(40)
    est = StableStepEstimator()
    lam = est.dominant_eigenvalue(K, M)
    dense = scipy.linalg.eigh(K.toarray(), M.toarray(), eigvals_only=True)
    assert lam == pytest.approx(dense.max(), rel=1e-8)


def test_no_convergence_raises(monkeypatch) -> None:
    def _fail(*_args, **_kwargs):
        raise ArpackNoConvergence("ARPACK error -1: No convergence", np.array([]), np.array([]))

    monkeypatch.setattr(stepping, "eigsh", _fail)
    K, M = _fixed_free_chain(10)
    with pytest.raises(EigenNotConvergedError) as exc_info:
        StableStepEstimator(maxiter=3).estimate(K, M)
    assert exc_info.value.details["maxiter"] == 3
    assert exc_info.value.stage == "step_estimate"


def test_zero_stiffness_has_no_step() -> None:
    with pytest.raises(InvalidConfigurationError):
        estimate_time_step(np.zeros((1, 1)), np.eye(1))


def test_non_positive_multiplier_rejected() -> None:
    with pytest.raises(InvalidConfigurationError):
        StableStepEstimator(multiplier=0.0)
