"""
Studies framework: reproducible time-step convergence and parameter sweeps.

Studies operate on raw configuration mappings (as loaded from YAML) so that
every run goes through the same validation as a single `transient-sim run`.
"""
from __future__ import annotations

from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Tuple
import copy
import json
import re
import subprocess

import numpy as np
import pandas as pd

SimFunc = Callable[[Dict[str, Any]], pd.DataFrame]

# ----------------------------
# Path helpers (dot + [idx])
# ----------------------------

_TOKEN_RE = re.compile(r"([A-Za-z_][A-Za-z0-9_]*)(\[(\d+)\])?$")


def _parse_path_tokens(path: str) -> List[Tuple[str, int | None]]:
    """
    Parse parameter paths:
      - 'time.dt' -> [('time', None), ('dt', None)]
      - 'response.weights[2]' -> [('response', None), ('weights', 2)]
    """
    tokens: List[Tuple[str, int | None]] = []
    for part in path.split("."):
        m = _TOKEN_RE.fullmatch(part.strip())
        if not m:
            raise ValueError(
                f"Invalid param path token: {part!r} (full path: {path!r}). "
                "Use dot notation and optional [index], e.g. 'time.dt' or 'response.weights[0]'."
            )
        key = m.group(1)
        idx = int(m.group(3)) if m.group(3) is not None else None
        tokens.append((key, idx))
    return tokens


def get_by_path(cfg: Dict[str, Any], path: str) -> Any:
    """Get cfg value using dot + [idx] path."""
    d: Any = cfg
    for key, idx in _parse_path_tokens(path):
        if not isinstance(d, dict) or key not in d:
            raise KeyError(f"Path '{path}' not found at key '{key}'")
        d = d[key]
        if idx is not None:
            if not isinstance(d, (list, tuple)):
                raise TypeError(f"Path '{path}' expects list at '{key}', got {type(d)}")
            try:
                d = d[idx]
            except IndexError as e:
                raise IndexError(f"Path '{path}' index {idx} out of range for '{key}'") from e
    return d


def set_by_path(cfg: Dict[str, Any], path: str, value: Any) -> Dict[str, Any]:
    """
    Return a deep-copied cfg where the nested path is set to `value`.
    Creates intermediate sections as needed; list indices must exist.
    """
    new_cfg = copy.deepcopy(cfg)
    d: Any = new_cfg
    tokens = _parse_path_tokens(path)
    for key, idx in tokens[:-1]:
        if key not in d or not isinstance(d[key], (dict, list)):
            d[key] = {}
        d = d[key]
        if idx is not None:
            if not isinstance(d, list):
                raise TypeError(f"Path '{path}' expects list at '{key}', got {type(d)}")
            d = d[idx]

    last_key, last_idx = tokens[-1]
    if last_idx is None:
        d[last_key] = value
    else:
        if not isinstance(d.get(last_key), list):
            raise TypeError(f"Path '{path}' expects list at '{last_key}', got {type(d.get(last_key))}")
        if last_idx >= len(d[last_key]):
            raise IndexError(f"Path '{path}' index {last_idx} out of range for '{last_key}'")
        d[last_key][last_idx] = value
    return new_cfg


# ----------------------------
# Running configs
# ----------------------------

def config_simulator(config_dir: Path) -> SimFunc:
    """Return a function running a raw config mapping resolved against `config_dir`."""
    from structural_transient.config.loader import build_simulation_params, normalize_config_dict
    from structural_transient.core.engine import run_simulation

    def _simulate(cfg: Dict[str, Any]) -> pd.DataFrame:
        model = normalize_config_dict(cfg, filename="study")
        return run_simulation(build_simulation_params(model, config_dir=config_dir))

    return _simulate


def extract_metrics(df: pd.DataFrame) -> Dict[str, float]:
    """Summary metrics of a scalar response series."""
    from structural_transient.core.engine import energy_drift

    y = df["Response"].to_numpy(dtype=float) if "Response" in df.columns else np.array([np.nan])
    return {
        "t_final_s": float(df["Time_s"].iloc[-1]) if len(df) else float("nan"),
        "peak_abs_response": float(np.nanmax(np.abs(y))),
        "final_response": float(y[-1]),
        "energy_drift_rel": energy_drift(df),
    }


# ----------------------------
# Reproducibility utilities
# ----------------------------

def get_git_hash() -> str:
    """Return current git hash (or 'unknown')."""
    try:
        proc = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            capture_output=True,
            text=True,
            check=True,
            timeout=5,
        )
        return proc.stdout.strip()
    except (OSError, subprocess.SubprocessError):
        return "unknown"


def _json_default(obj: Any) -> Any:
    if is_dataclass(obj):
        return asdict(obj)
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return str(obj)


def save_study_metadata(output_dir: Path, *, metadata: Dict[str, Any]) -> None:
    """Write metadata JSON file to output directory."""
    output_dir.mkdir(parents=True, exist_ok=True)
    payload = {
        "git_hash": get_git_hash(),
        **metadata,
    }
    (output_dir / "run_metadata.json").write_text(
        json.dumps(payload, indent=2, default=_json_default),
        encoding="utf-8",
    )
