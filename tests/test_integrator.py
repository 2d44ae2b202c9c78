"""
Tests for the trapezoidal time-marching loop.

Single-DOF oscillators are checked against closed-form solutions; the
loop mechanics (terminal step, buffer reuse, counters) on small chains.
"""

from __future__ import annotations

import numpy as np
import pytest
import scipy.sparse as sp

from structural_transient.core.collector import dof_response
from structural_transient.core.errors import InvalidConfigurationError, SingularSystemError
from structural_transient.core.integrator import IntegratorState, TrapezoidalIntegrator


def _chain(n: int = 5, k: float = 400.0, m: float = 1.0):
    main = np.full(n, 2.0 * k)
    main[-1] = k
    K = sp.diags([main, np.full(n - 1, -k), np.full(n - 1, -k)], [0, -1, 1], format="csc")
    M = sp.diags(np.full(n, m), format="csc")
    return M, K


def test_unit_oscillator_follows_sine() -> None:
    dt = 0.1
    integ = TrapezoidalIntegrator(
        [[1.0]], [[0.0]], [[1.0]], dt, 1.0, 0.0, 1.0,
        response=dof_response(0), track_energy=True,
    )
    series = integ.run()

    t = series.time
    assert t[0] == 0.0
    assert t[-1] == 1.0
    assert np.all(np.abs(series.values - np.sin(t)) <= dt**2)
    np.testing.assert_allclose(series.extras["E_total_J"], 0.5, atol=1e-6)


def test_initial_condition_is_first_sample() -> None:
    integ = TrapezoidalIntegrator(
        [[1.0]], None, [[1.0]], 0.1, 0.5, 0.25, 0.0, response=dof_response(0)
    )
    series = integ.run()
    assert series.time[0] == 0.0
    assert series.values[0] == 0.25


@pytest.mark.parametrize(
    "dt, t_end",
    [(0.3, 1.0), (0.1, 1.0), (0.07, 0.5), (0.013, 0.25), (2.0, 1.0), (1e-3, 0.0371)],
)
def test_last_sample_lands_on_t_end(dt: float, t_end: float) -> None:
    M, K = _chain()
    series = TrapezoidalIntegrator(M, None, K, dt, t_end, 0.0, 1.0, response=dof_response(4)).run()

    t = series.time
    assert t[-1] == t_end
    assert np.all(np.diff(t) > 0.0)
    assert np.max(np.diff(t)) <= dt * (1.0 + 1e-9)


def test_terminal_step_is_refactorized() -> None:
    M, K = _chain()
    integ = TrapezoidalIntegrator(M, None, K, 0.3, 1.0, 0.0, 1.0, track_energy=True)
    series = integ.run()

    assert integ.n_steps == 4
    assert integ.n_factorizations == 2
    assert integ.dt_last == pytest.approx(0.1)
    # A consistent operator on the short step keeps the energy exactly
    e = series.extras["E_total_J"]
    np.testing.assert_allclose(e, e[0], rtol=1e-10)


def test_terminal_step_reuse_keeps_one_factorization() -> None:
    M, K = _chain()
    integ = TrapezoidalIntegrator(M, None, K, 0.3, 1.0, 0.0, 1.0, terminal_step="reuse")
    series = integ.run()
    assert integ.n_factorizations == 1
    assert series.time[-1] == 1.0
    assert series.metadata["terminal_step"] == "reuse"


def test_exact_multiple_needs_no_extra_factorization() -> None:
    M, K = _chain()
    integ = TrapezoidalIntegrator(M, None, K, 0.1, 1.0, 0.0, 1.0)
    series = integ.run()
    assert integ.n_steps == 10
    assert len(series) == 11
    assert integ.n_factorizations == 1


def test_undamped_chain_conserves_energy_over_many_steps() -> None:
    M, K = _chain(n=8)
    u0 = np.linspace(0.0, 0.01, 8)
    integ = TrapezoidalIntegrator(M, None, K, 0.01, 20.0, u0, 0.0, track_energy=True)
    e = integ.run().extras["E_total_J"]
    assert np.max(np.abs(e - e[0])) / e[0] < 1e-9


def test_damped_chain_energy_decreases() -> None:
    M, K = _chain()
    C = 0.5 * M
    integ = TrapezoidalIntegrator(M, C, K, 0.01, 2.0, 0.0, 1.0, track_energy=True)
    e = integ.run().extras["E_total_J"]
    assert np.all(np.diff(e) <= 1e-12)
    assert e[-1] < 0.5 * e[0]


def test_constant_load_settles_on_static_solution() -> None:
    # k=4, m=1, c=2: damping ratio 0.5
    integ = TrapezoidalIntegrator(
        [[1.0]], [[2.0]], [[4.0]], 0.05, 20.0, 0.0, 0.0,
        force=lambda t: np.array([1.0]), response=dof_response(0),
    )
    series = integ.run()
    assert series.values[-1] == pytest.approx(0.25, abs=1e-6)


def test_force_schedule_is_evaluated_at_step_ends() -> None:
    calls = []

    def force(t):
        calls.append(t)
        return None

    TrapezoidalIntegrator([[1.0]], None, [[1.0]], 0.25, 1.0, 0.0, 1.0, force=force).run()
    assert calls == [0.0, 0.25, 0.5, 0.75, 1.0]


def test_runs_are_deterministic() -> None:
    M, K = _chain()

    def once():
        return TrapezoidalIntegrator(
            M, 0.1 * M, K, 0.013, 0.5, 0.0, 1.0, response=dof_response(2)
        ).run()

    a, b = once(), once()
    assert np.array_equal(a.time, b.time)
    assert np.array_equal(a.values, b.values)


def test_buffers_are_reused_between_steps() -> None:
    M, K = _chain()
    integ = TrapezoidalIntegrator(M, None, K, 0.05, 1.0, 0.0, 1.0)
    ids = {id(a) for a in integ._U + integ._V + integ._F}
    integ.run()
    assert {id(a) for a in integ._U + integ._V + integ._F} == ids


def test_step_by_step_state_machine() -> None:
    integ = TrapezoidalIntegrator([[1.0]], None, [[1.0]], 0.4, 1.0, 0.0, 1.0)
    assert integ.step() is IntegratorState.RUNNING
    assert integ.t == pytest.approx(0.4)
    with pytest.raises(InvalidConfigurationError):
        integ.series()
    assert integ.step() is IntegratorState.RUNNING
    assert integ.step() is IntegratorState.DONE
    assert integ.t == 1.0
    # Further steps are no-ops
    assert integ.step() is IntegratorState.DONE
    assert integ.n_steps == 3


def test_full_vector_response_by_default() -> None:
    M, K = _chain(n=3)
    series = TrapezoidalIntegrator(M, None, K, 0.1, 0.3, [0.0, 0.0, 0.1], 0.0).run()
    assert series.values.shape == (4, 3)
    np.testing.assert_allclose(series.values[0], [0.0, 0.0, 0.1])


@pytest.mark.parametrize(
    "kwargs",
    [
        {"dt": 0.0},
        {"dt": -0.1},
        {"t_end": 0.0},
        {"u0": [0.0, 1.0]},
        {"v0": [1.0, 2.0, 3.0, 4.0]},
        {"terminal_step": "skip"},
    ],
)
def test_invalid_configuration(kwargs) -> None:
    M, K = _chain(n=3)
    args = {"dt": 0.1, "t_end": 1.0, "u0": 0.0, "v0": 0.0}
    args.update(kwargs)
    terminal = args.pop("terminal_step", "refactorize")
    with pytest.raises(InvalidConfigurationError):
        TrapezoidalIntegrator(M, None, K, args["dt"], args["t_end"], args["u0"], args["v0"],
                              terminal_step=terminal)


def test_mismatched_matrices_rejected() -> None:
    M, K = _chain(n=3)
    with pytest.raises(InvalidConfigurationError):
        TrapezoidalIntegrator(M, None, sp.eye(4), 0.1, 1.0, 0.0, 0.0)


def test_indefinite_system_aborts_without_series() -> None:
    with pytest.raises(SingularSystemError):
        TrapezoidalIntegrator([[1.0]], None, [[-1000.0]], 0.5, 1.0, 0.0, 1.0)
