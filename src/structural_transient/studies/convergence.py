"""
Time-step convergence study.
"""
from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd
import yaml

from . import SimFunc, extract_metrics, save_study_metadata, set_by_path


def run_convergence_study(
    cfg: Dict[str, Any],
    dt_values: Iterable[float],
    *,
    simulate_func: SimFunc,
    out_dir: Optional[Path] = None,
    save_timeseries: bool = False,
) -> pd.DataFrame:
    """
    Sweep ``time.dt`` and report how the response settles.

    Parameters
    ----------
    cfg:
        Raw configuration mapping (as loaded from YAML).
    dt_values:
        Iterable of time steps in seconds.
    simulate_func:
        Runs one configuration mapping; see `config_simulator`.
    out_dir:
        If provided, write summary CSV + metadata.
    save_timeseries:
        If True, also save each run DataFrame as CSV.

    Returns
    -------
    pd.DataFrame with one row per dt, largest dt first.
    """
    dt_values = [float(dt) for dt in dt_values]
    rows: List[Dict[str, Any]] = []

    for dt in sorted(dt_values, reverse=True):
        run_cfg = set_by_path(cfg, "time.dt", dt)

        t0 = time.perf_counter()
        df = simulate_func(run_cfg)
        wall = time.perf_counter() - t0

        rows.append(
            {
                "dt_s": dt,
                "n_steps": int(df.attrs.get("n_steps", len(df) - 1)),
                "n_factorizations": int(df.attrs.get("n_factorizations", 0)),
                "wall_time_s": float(wall),
                **extract_metrics(df),
            }
        )

        if out_dir and save_timeseries:
            out_dir.mkdir(parents=True, exist_ok=True)
            df.to_csv(out_dir / f"timeseries_dt_{dt:.3e}.csv", index=False)

    summary = pd.DataFrame(rows)
    # Change of the final response relative to the next-coarser step
    summary["relative_change_final_pct"] = (
        100.0 * summary["final_response"].diff().abs() / summary["final_response"].shift().abs()
    )

    if out_dir:
        out_dir.mkdir(parents=True, exist_ok=True)
        summary.to_csv(out_dir / "convergence_summary.csv", index=False)
        (out_dir / "config.yml").write_text(yaml.safe_dump(cfg, sort_keys=False), encoding="utf-8")
        save_study_metadata(
            out_dir,
            metadata={
                "study_type": "convergence",
                "dt_values": dt_values,
                "save_timeseries": bool(save_timeseries),
            },
        )
    return summary
