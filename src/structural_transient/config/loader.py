from __future__ import annotations

from copy import deepcopy
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import numpy as np
import yaml

from ..core.engine import SimulationParams
from ..core.errors import InvalidConfigurationError
from ..io.matrices import load_matrix
from .models import LoadSpec, SimulationConfig, VectorSpec, format_validation_error


class ConfigError(InvalidConfigurationError):
    pass


def load_simulation_config(path: Path) -> SimulationConfig:
    raw = _load_raw_config(path)
    return normalize_config_dict(raw, filename=path.name)


def _load_raw_config(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}", stage="config")
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in {".yaml", ".yml", ".json"}:
        data = yaml.safe_load(text)
    else:
        raise ConfigError(f"Unsupported config extension '{path.suffix}'.", stage="config")
    if not isinstance(data, dict):
        raise ConfigError(f"{path.name}: configuration must be a mapping", stage="config")
    return data


def normalize_config_dict(config: Dict[str, Any], *, filename: str) -> SimulationConfig:
    raw = deepcopy(config)
    try:
        return SimulationConfig.model_validate(raw)
    except Exception as exc:
        if hasattr(exc, "errors"):
            raise ConfigError(format_validation_error(exc, filename=filename), stage="config") from exc
        raise


def expand_vector(spec: VectorSpec, n: int, name: str) -> np.ndarray:
    """Scalar, full list, or sparse ``{dof: value}`` mapping to a length-n vector."""
    if isinstance(spec, dict):
        out = np.zeros(n)
        for dof, value in spec.items():
            if not 0 <= int(dof) < n:
                raise ConfigError(f"{name}: dof {dof} outside 0..{n - 1}", stage="config")
            out[int(dof)] = float(value)
        return out
    arr = np.asarray(spec, dtype=float)
    if arr.ndim == 0:
        return np.full(n, float(arr))
    if arr.size != n:
        raise ConfigError(f"{name}: expected {n} values, got {arr.size}", stage="config")
    return arr.astype(float)


def build_load_schedule(spec: Optional[LoadSpec], n: int) -> Optional[Callable[[float], np.ndarray]]:
    """Constant nodal loads, optionally ramped linearly from zero over ``ramp_time``."""
    if spec is None or not spec.values:
        return None
    amplitude = expand_vector(spec.values, n, "load.values")
    ramp = float(spec.ramp_time)

    def force(t: float) -> np.ndarray:
        if ramp > 0.0 and t < ramp:
            return amplitude * (t / ramp)
        return amplitude

    return force


def build_simulation_params(cfg: SimulationConfig, *, config_dir: Path) -> SimulationParams:
    """Load the matrices referenced by ``cfg`` and assemble engine inputs."""
    K = load_matrix((config_dir / cfg.matrices.stiffness).resolve())
    M = load_matrix((config_dir / cfg.matrices.mass).resolve())
    n = K.shape[0]
    if M.shape != K.shape:
        raise ConfigError(
            f"mass {M.shape} and stiffness {K.shape} matrices differ in shape", stage="config"
        )

    return SimulationParams(
        K=K,
        M=M,
        t_end=cfg.time.t_end,
        dt=cfg.time.dt,
        step_multiplier=cfg.time.step_multiplier,
        eigen_maxiter=cfg.time.eigen_maxiter,
        eigen_tol=cfg.time.eigen_tol,
        terminal_step=cfg.time.terminal_step,
        mass_lumping=cfg.matrices.lumping,
        mass_blocks=cfg.matrices.blocks,
        field_components=cfg.matrices.field_components,
        rayleigh_mass=cfg.damping.rayleigh_mass,
        loss_tangent=cfg.damping.loss_tangent,
        frequency=cfg.damping.frequency,
        u0=expand_vector(cfg.initial.displacement, n, "initial.displacement"),
        v0=expand_vector(cfg.initial.velocity, n, "initial.velocity"),
        force=build_load_schedule(cfg.load, n),
        response_dof=cfg.response.dof,
        response_weights=cfg.response.weights,
        track_energy=cfg.track_energy,
        log_every=cfg.log_every,
        metadata={"case_name": cfg.case_name},
    )


def load_simulation_params(path: Path) -> SimulationParams:
    cfg = load_simulation_config(path)
    return build_simulation_params(cfg, config_dir=path.parent)
