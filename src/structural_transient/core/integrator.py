"""Trapezoidal-rule (average acceleration) time integration.

This module advances the linear equations of motion

    M·ü + C·u̇ + K·u = F(t)

with the trapezoidal rule written in terms of the velocity unknown.  Given
the state (U0, V0, F0) at time t and the load F1 at t + dt:

    R  = M·V0 − C·(dt/2·V0) − K·((dt/2)²·V0 + dt·U0) + (dt/2)·(F0 + F1)
    V1 = D⁻¹·R,   D = M + (dt/2)·C + (dt/2)²·K
    U1 = U0 + (dt/2)·(V0 + V1)

D is constant for a fixed dt, so it is factorized once and reused for every
step; only the terminal step, shortened to land exactly on ``t_end``, may
need its own operator.
"""

from __future__ import annotations

import enum
import logging
from typing import Callable, Optional

import numpy as np
import scipy.sparse as sp

from .collector import ResponseFn, ResultCollector, ResultSeries
from .errors import InvalidConfigurationError
from .factorization import DynamicStiffness
from .system import as_csc, as_vector, check_same_size

logger = logging.getLogger(__name__)

ForceFn = Callable[[float], Optional[np.ndarray]]

TERMINAL_POLICIES = ("refactorize", "reuse")

# Overshoot below this fraction of dt is absorbed without a separate terminal operator
TIME_RTOL = 1e-9


class IntegratorState(enum.Enum):
    RUNNING = "running"
    DONE = "done"


class TrapezoidalIntegrator:
    """Time-marching loop with ping-pong state buffers.

    Parameters
    ----------
    M, C, K : sparse or dense matrices, shape (n, n)
        Mass, damping and stiffness over the free DOFs. ``C`` may be None.
    dt : float
        Nominal step length
    t_end : float
        Final time; the last recorded sample is taken exactly at ``t_end``
    u0, v0 : array_like
        Initial displacement and velocity, length n (scalars broadcast)
    force : callable, optional
        ``force(t)`` returning the load vector at time t, or None for zero
    response : callable, optional
        Reads the recorded quantity from the displacement vector; the full
        displacement vector is recorded when omitted
    terminal_step : {"refactorize", "reuse"}
        Operator used for a shortened terminal step. ``"refactorize"``
        builds D for the shortened step. ``"reuse"`` keeps the nominal D,
        which leaves that one step with an operator inconsistent with its
        own length.
    dynamic_stiffness : DynamicStiffness, optional
        Pre-factorized operator for ``dt``
    track_energy : bool
        Record kinetic, potential and total energy with each sample
    log_every : int
        Emit a progress record every this many steps (0 disables)
    t0 : float
        Initial time

    Attributes
    ----------
    state : IntegratorState
        RUNNING until the terminal step has been taken
    t : float
        Time of the current state
    n_steps : int
        Accepted steps
    n_factorizations : int
        Factorizations of D used in this run
    dt_last : float
        Length of the most recent step
    """

    def __init__(
        self,
        M,
        C,
        K,
        dt: float,
        t_end: float,
        u0,
        v0,
        *,
        force: Optional[ForceFn] = None,
        response: Optional[ResponseFn] = None,
        terminal_step: str = "refactorize",
        dynamic_stiffness: Optional[DynamicStiffness] = None,
        track_energy: bool = False,
        log_every: int = 25,
        t0: float = 0.0,
    ):
        self.M = as_csc(M, "mass")
        n = self.M.shape[0]
        self.K = as_csc(K, "stiffness")
        self.C = as_csc(C, "damping") if C is not None else sp.csc_matrix((n, n))
        check_same_size(n, damping=self.C, stiffness=self.K)
        self.n = n

        if not dt > 0.0:
            raise InvalidConfigurationError(f"dt must be > 0, got {dt}", stage="integrate")
        if not t_end > 0.0:
            raise InvalidConfigurationError(f"t_end must be > 0, got {t_end}", stage="integrate")
        if not t_end > t0:
            raise InvalidConfigurationError(
                f"t_end={t_end} must be greater than t0={t0}", stage="integrate"
            )
        if terminal_step not in TERMINAL_POLICIES:
            raise InvalidConfigurationError(
                f"terminal_step must be one of {TERMINAL_POLICIES}, got {terminal_step!r}",
                stage="integrate",
            )

        self.dt = float(dt)
        self.t0 = float(t0)
        self.t_end = float(t_end)
        self.terminal_step = terminal_step
        self.force = force
        self.response = response if response is not None else (lambda u: u)
        self.track_energy = bool(track_energy)
        self.log_every = int(log_every)

        # Two (U, V, F) slots; `_cur` indexes the current one
        self._U = [as_vector(u0, n, "initial displacement", default=None), np.zeros(n)]
        self._V = [as_vector(v0, n, "initial velocity", default=None), np.zeros(n)]
        self._F = [np.zeros(n), np.zeros(n)]
        self._cur = 0
        self._load(self.t0, self._F[0])

        if dynamic_stiffness is not None:
            if dynamic_stiffness.n != n or dynamic_stiffness.dt != self.dt:
                raise InvalidConfigurationError(
                    "supplied dynamic stiffness does not match the system size or dt",
                    stage="integrate",
                )
            self._D: Optional[DynamicStiffness] = dynamic_stiffness
        else:
            self._D = DynamicStiffness(self.M, self.C, self.K, self.dt)
        self._D_terminal: Optional[DynamicStiffness] = None

        self.collector = ResultCollector()
        self.state = IntegratorState.RUNNING
        self.t = self.t0
        self.n_steps: int = 0
        self.n_factorizations: int = 1
        self.n_solves: int = 0
        self.dt_last: float = self.dt

    # ----------------------------------------------------------------
    # STATE ACCESS
    # ----------------------------------------------------------------
    @property
    def displacement(self) -> np.ndarray:
        return self._U[self._cur]

    @property
    def velocity(self) -> np.ndarray:
        return self._V[self._cur]

    @property
    def load(self) -> np.ndarray:
        return self._F[self._cur]

    def energy(self) -> tuple[float, float]:
        """Kinetic ½VᵀMV and potential ½UᵀKU of the current state."""
        u, v = self.displacement, self.velocity
        return 0.5 * float(v @ (self.M @ v)), 0.5 * float(u @ (self.K @ u))

    # ----------------------------------------------------------------
    # STEPPING
    # ----------------------------------------------------------------
    def step(self) -> IntegratorState:
        """Record the current state and advance it by one step."""
        if self.state is IntegratorState.DONE:
            return self.state

        self._record()

        cur, nxt = self._cur, 1 - self._cur
        U0, V0, F0 = self._U[cur], self._V[cur], self._F[cur]
        U1, V1, F1 = self._U[nxt], self._V[nxt], self._F[nxt]

        h = self.dt
        D = self._D
        t_next = self.t0 + (self.n_steps + 1) * self.dt
        terminal = t_next >= self.t_end - TIME_RTOL * self.dt
        if terminal:
            h = self.t_end - self.t
            if abs(h - self.dt) > TIME_RTOL * self.dt:
                D = self._terminal_operator(h)
            t_next = self.t_end

        self._load(t_next, F1)

        hh = 0.5 * h
        R = (
            self.M @ V0
            - self.C @ (hh * V0)
            - self.K @ ((hh * hh) * V0 + h * U0)
            + hh * (F0 + F1)
        )
        V1[:] = D.solve(R)
        np.add(V0, V1, out=U1)
        U1 *= hh
        U1 += U0

        self.n_solves += 1
        self.n_steps += 1
        self.dt_last = h
        self.t = t_next
        self._cur = nxt

        if self.log_every and self.n_steps % self.log_every == 0:
            logger.debug("Step %d: t=%.6e", self.n_steps, self.t)

        if terminal:
            self._record()
            self._finish()
        return self.state

    def run(self) -> ResultSeries:
        """Step until ``t_end`` and return the recorded series."""
        while self.state is IntegratorState.RUNNING:
            self.step()
        return self.series()

    def series(self) -> ResultSeries:
        if self.state is not IntegratorState.DONE:
            raise InvalidConfigurationError(
                "series requested before the integration reached t_end",
                stage="collect",
                t=self.t,
            )
        return self.collector.freeze(
            dt=self.dt,
            dt_last=self.dt_last,
            t_end=self.t_end,
            n_steps=self.n_steps,
            n_factorizations=self.n_factorizations,
            n_solves=self.n_solves,
            terminal_step=self.terminal_step,
        )

    # ----------------------------------------------------------------
    # INTERNALS
    # ----------------------------------------------------------------
    def _record(self) -> None:
        value = self.response(self.displacement)
        if self.track_energy:
            e_kin, e_pot = self.energy()
            self.collector.record(
                self.t, value, E_kin_J=e_kin, E_pot_J=e_pot, E_total_J=e_kin + e_pot
            )
        else:
            self.collector.record(self.t, value)

    def _load(self, t: float, out: np.ndarray) -> None:
        f = self.force(t) if self.force is not None else None
        if f is None:
            out.fill(0.0)
        else:
            out[:] = as_vector(f, self.n, "force")

    def _terminal_operator(self, h: float) -> DynamicStiffness:
        if self.terminal_step == "reuse":
            logger.warning(
                "Terminal step dt=%.6e reuses D factorized for dt=%.6e", h, self.dt
            )
            return self._D
        logger.info("Refactorizing dynamic stiffness for terminal step dt=%.6e", h)
        self._D_terminal = DynamicStiffness(self.M, self.C, self.K, h)
        self.n_factorizations += 1
        return self._D_terminal

    def _finish(self) -> None:
        self.state = IntegratorState.DONE
        # Factorizations are released once the run is over
        self._D = None
        self._D_terminal = None
        logger.info(
            "Integration done: %d steps to t=%.6e (%d factorizations)",
            self.n_steps,
            self.t,
            self.n_factorizations,
        )
