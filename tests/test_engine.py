from __future__ import annotations

import math

import numpy as np
import pytest

from structural_transient.core.engine import (
    SimulationParams,
    TransientSimulator,
    get_default_simulation_params,
    run_simulation,
)
from structural_transient.core.errors import (
    InvalidConfigurationError,
    SimulationError,
    SingularMassError,
)


def test_two_to_eight_oscillator_follows_cosine() -> None:
    df = run_simulation(
        {"K": [[8.0]], "M": [[2.0]], "t_end": 2.0, "dt": 0.01, "u0": 1.0, "v0": 0.0, "response_dof": 0}
    )
    t = df["Time_s"].to_numpy()
    u = df["Response"].to_numpy()
    assert np.max(np.abs(u - np.cos(2.0 * t))) < 1e-3
    assert t[-1] == 2.0


def test_estimated_step_uses_dominant_eigenvalue() -> None:
    df = run_simulation(
        {"K": [[8.0]], "M": [[2.0]], "t_end": 1.0, "step_multiplier": 0.05, "u0": 1.0}
    )
    assert df.attrs["lambda_max"] == pytest.approx(4.0)
    assert df.attrs["dt"] == pytest.approx(0.05)
    assert df.attrs["n_steps"] == 20


def test_consistent_mass_is_lumped_before_integration() -> None:
    M_c = np.array([[2.0, 1.0], [1.0, 2.0]])
    K = np.array([[2.0, -1.0], [-1.0, 1.0]])
    sim = TransientSimulator(SimulationParams(K=K, M=M_c, t_end=1.0, dt=0.1))
    np.testing.assert_allclose(sim.M.toarray(), np.diag([3.0, 3.0]))
    assert sim.total_mass == pytest.approx(6.0)


def test_unlumped_mass_is_used_as_given() -> None:
    M_c = np.array([[2.0, 1.0], [1.0, 2.0]])
    sim = TransientSimulator(
        SimulationParams(K=np.eye(2), M=M_c, t_end=1.0, dt=0.1, mass_lumping="none")
    )
    np.testing.assert_allclose(sim.M.toarray(), M_c)


def test_damping_from_loss_tangent() -> None:
    sim = TransientSimulator(
        SimulationParams(
            K=[[1.0]], M=[[1.0]], t_end=1.0, dt=0.1, loss_tangent=0.01, frequency=10.0
        )
    )
    assert sim.alpha == pytest.approx(2 * 0.01 * 2 * math.pi * 10.0)
    assert sim.C.toarray()[0, 0] == pytest.approx(sim.alpha)


def test_linear_functional_response() -> None:
    df = run_simulation(
        {
            "K": np.diag([1.0, 4.0]),
            "M": np.eye(2),
            "t_end": 0.5,
            "dt": 0.05,
            "u0": [1.0, 2.0],
            "response_weights": [1.0, -1.0],
        }
    )
    assert df["Response"].iloc[0] == pytest.approx(-1.0)


def test_missing_inputs_are_reported() -> None:
    with pytest.raises(InvalidConfigurationError) as exc_info:
        run_simulation({"K": [[1.0]]})
    assert "M" in str(exc_info.value)
    assert "t_end" in str(exc_info.value)


def test_unknown_keys_are_ignored(caplog) -> None:
    df = run_simulation({"K": [[1.0]], "M": [[1.0]], "t_end": 0.2, "dt": 0.1, "flux": 3})
    assert len(df) == 3
    assert "flux" in caplog.text


@pytest.mark.parametrize(
    "override",
    [
        {"t_end": 0.0},
        {"dt": -1.0},
        {"response_dof": 5},
        {"response_weights": [1.0, 2.0, 3.0]},
        {"mass_lumping": "row_sum"},
        {"loss_tangent": 0.01},
    ],
)
def test_invalid_configuration(override) -> None:
    params = {"K": [[1.0]], "M": [[1.0]], "t_end": 1.0, "dt": 0.1}
    params.update(override)
    with pytest.raises(InvalidConfigurationError):
        run_simulation(params)


def test_zero_mass_block_fails_before_any_series() -> None:
    with pytest.raises(SingularMassError) as exc_info:
        run_simulation({"K": [[1.0, 0.0], [0.0, 1.0]], "M": [[0.0, 1.0], [1.0, 0.0]], "t_end": 1.0})
    assert isinstance(exc_info.value, SimulationError)
    assert exc_info.value.to_diagnostics_dict()["stage"] == "lumping"


def test_defaults_have_no_matrices() -> None:
    defaults = get_default_simulation_params()
    assert "K" not in defaults and "M" not in defaults
    assert defaults["terminal_step"] == "refactorize"
