"""Engine for structural transient simulations.

This module is UI-agnostic: it chains the pipeline

    consistent mass → HRZ lumping → Rayleigh damping → step estimate
    → factorized dynamic stiffness → trapezoidal time loop → result series

and returns the recorded response as a pandas DataFrame.

Use from the CLI, studies or tests as:

    from structural_transient.core.engine import SimulationParams, run_simulation

    df = run_simulation({"K": K, "M": M_consistent, "t_end": 0.013, "v0": v0})
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from .collector import dof_response, linear_functional
from .damping import mass_proportional_damping, rayleigh_mass_coefficient
from .errors import InvalidConfigurationError
from .factorization import DynamicStiffness
from .integrator import TERMINAL_POLICIES, TrapezoidalIntegrator
from .lumping import lump_consistent, total_mass
from .stepping import StableStepEstimator
from .system import as_csc, check_same_size

logger = logging.getLogger(__name__)


# ====================================================================
# CONFIGURATION & DATA CLASSES
# ====================================================================

@dataclass
class SimulationParams:
    """Container for all simulation inputs."""
    # System matrices over the free DOFs
    K: Any
    M: Any

    # Time span
    t_end: float
    dt: Optional[float] = None          # None: estimate from lambda_max
    step_multiplier: float = 1.0        # dt = multiplier * 2 / sqrt(lambda_max)
    eigen_maxiter: Optional[int] = None
    eigen_tol: float = 0.0
    terminal_step: str = "refactorize"  # or "reuse"

    # Mass treatment: "hrz" lumps M, "none" uses it as given
    mass_lumping: str = "hrz"
    mass_blocks: Optional[List[Sequence[int]]] = None
    field_components: int = 1           # nodal components, for the physical mass

    # Mass-proportional damping: explicit alpha or a loss tangent at a frequency
    rayleigh_mass: float = 0.0
    loss_tangent: Optional[float] = None
    frequency: Optional[float] = None

    # Initial conditions (scalars broadcast)
    u0: Any = 0.0
    v0: Any = 0.0

    # Load schedule F(t); None for free vibration
    force: Optional[Callable[[float], Any]] = None

    # Recorded response: a DOF, a linear functional, or the full vector
    response_dof: Optional[int] = None
    response_weights: Optional[Sequence[float]] = None

    track_energy: bool = True
    log_every: int = 25
    metadata: Dict[str, Any] = field(default_factory=dict)


class TransientSimulator:
    """Build the discrete operators once, then march to ``t_end``."""

    def __init__(self, params: SimulationParams):
        self.params = params
        self.setup()

    # ----------------------------------------------------------------
    # SETUP
    # ----------------------------------------------------------------
    def setup(self):
        p = self.params

        if p.mass_lumping not in ("hrz", "none"):
            raise InvalidConfigurationError(
                f"mass_lumping must be 'hrz' or 'none', got {p.mass_lumping!r}", stage="setup"
            )
        if p.terminal_step not in TERMINAL_POLICIES:
            raise InvalidConfigurationError(
                f"terminal_step must be one of {TERMINAL_POLICIES}", stage="setup"
            )
        if not p.t_end > 0.0:
            raise InvalidConfigurationError(f"t_end must be > 0, got {p.t_end}", stage="setup")

        self.K = as_csc(p.K, "stiffness")
        n = self.K.shape[0]
        M_in = as_csc(p.M, "mass")
        check_same_size(n, mass=M_in)
        self.n = n

        # Mass
        if p.mass_lumping == "hrz":
            self.M = lump_consistent(M_in, blocks=p.mass_blocks)
        else:
            self.M = M_in
        self.total_mass = total_mass(self.M, p.field_components)
        logger.info("Mass: %d dofs, total %.6e", n, self.total_mass)

        # Damping
        if p.loss_tangent is not None:
            if p.frequency is None:
                raise InvalidConfigurationError(
                    "loss_tangent requires frequency", stage="setup"
                )
            self.alpha = rayleigh_mass_coefficient(p.loss_tangent, p.frequency)
        else:
            self.alpha = float(p.rayleigh_mass)
        self.C = mass_proportional_damping(self.M, self.alpha)

        # Time step
        self.lambda_max: Optional[float] = None
        if p.dt is None:
            estimator = StableStepEstimator(
                p.step_multiplier, maxiter=p.eigen_maxiter, tol=p.eigen_tol
            )
            self.dt = estimator.estimate(self.K, self.M)
            self.lambda_max = estimator.lambda_max
        else:
            self.dt = float(p.dt)
            if not self.dt > 0.0:
                raise InvalidConfigurationError(f"dt must be > 0, got {self.dt}", stage="setup")

        # Response
        if p.response_weights is not None:
            if len(p.response_weights) != n:
                raise InvalidConfigurationError(
                    f"response_weights has length {len(p.response_weights)}, expected {n}",
                    stage="setup",
                )
            self.response = linear_functional(p.response_weights)
        elif p.response_dof is not None:
            if not 0 <= int(p.response_dof) < n:
                raise InvalidConfigurationError(
                    f"response_dof {p.response_dof} outside 0..{n - 1}", stage="setup"
                )
            self.response = dof_response(p.response_dof)
        else:
            self.response = None

    # ----------------------------------------------------------------
    # RUN
    # ----------------------------------------------------------------
    def run(self) -> pd.DataFrame:
        p = self.params
        D = DynamicStiffness(self.M, self.C, self.K, self.dt)
        integrator = TrapezoidalIntegrator(
            self.M,
            self.C,
            self.K,
            self.dt,
            p.t_end,
            p.u0,
            p.v0,
            force=p.force,
            response=self.response,
            terminal_step=p.terminal_step,
            dynamic_stiffness=D,
            track_energy=p.track_energy,
            log_every=p.log_every,
        )
        series = integrator.run()

        df = series.to_frame()
        df.attrs.update(p.metadata)
        df.attrs["n_dof"] = self.n
        df.attrs["total_mass"] = self.total_mass
        df.attrs["rayleigh_mass"] = self.alpha
        df.attrs["lambda_max"] = self.lambda_max
        df.attrs["dt"] = self.dt
        return df


# ====================================================================
# PUBLIC ENTRY POINT
# ====================================================================

def get_default_simulation_params() -> dict:
    """
    Baseline settings, returned as a plain dict so they can be updated from
    YAML/JSON configs and then passed into SimulationParams(**params).

    The system matrices and ``t_end`` have no defaults.
    """
    return {
        "dt": None,
        "step_multiplier": 1.0,
        "eigen_maxiter": None,
        "eigen_tol": 0.0,
        "terminal_step": "refactorize",
        "mass_lumping": "hrz",
        "mass_blocks": None,
        "field_components": 1,
        "rayleigh_mass": 0.0,
        "loss_tangent": None,
        "frequency": None,
        "u0": 0.0,
        "v0": 0.0,
        "force": None,
        "response_dof": None,
        "response_weights": None,
        "track_energy": True,
        "log_every": 25,
        "metadata": {},
    }


def run_simulation(params: SimulationParams | Dict[str, Any]) -> pd.DataFrame:
    """
    High-level convenience wrapper.

    A dict may contain only overrides; missing fields are filled from
    get_default_simulation_params().  Unknown keys are ignored with a
    warning.
    """
    if isinstance(params, SimulationParams):
        sim_params = params
    else:
        raw = get_default_simulation_params()
        raw.update(params or {})

        allowed = {f.name for f in fields(SimulationParams)}
        unknown = sorted(set(raw) - allowed)
        if unknown:
            logger.warning(
                "Ignoring %d unknown SimulationParams key(s): %s",
                len(unknown),
                ", ".join(unknown),
            )
            raw = {k: v for k, v in raw.items() if k in allowed}

        missing = [k for k in ("K", "M", "t_end") if raw.get(k) is None]
        if missing:
            raise InvalidConfigurationError(
                f"missing required simulation input(s): {', '.join(missing)}", stage="setup"
            )
        sim_params = SimulationParams(**raw)

    simulator = TransientSimulator(sim_params)
    return simulator.run()


def energy_drift(df: pd.DataFrame) -> float:
    """Largest relative deviation of the recorded total energy from its start value."""
    if "E_total_J" not in df.columns or df.empty:
        return float("nan")
    e = df["E_total_J"].to_numpy(dtype=float)
    e0 = e[0]
    return float(np.max(np.abs(e - e0)) / (abs(e0) + 1e-300))
