"""
Single-parameter sensitivity study (e.g. damping coefficient or step multiplier).
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd
import yaml

from . import SimFunc, extract_metrics, get_by_path, save_study_metadata, set_by_path


def run_sensitivity_study(
    cfg: Dict[str, Any],
    *,
    param_path: str,
    values: Iterable[float],
    simulate_func: SimFunc,
    out_dir: Optional[Path] = None,
    save_timeseries: bool = False,
) -> pd.DataFrame:
    """Run one simulation per value of `param_path` and tabulate the metrics."""
    try:
        base_value = get_by_path(cfg, param_path)
    except KeyError:
        base_value = None

    values = [float(v) for v in values]
    rows: List[Dict[str, Any]] = []
    for value in values:
        df = simulate_func(set_by_path(cfg, param_path, value))
        rows.append(
            {
                "param_path": param_path,
                "value": value,
                "dt_s": float(df.attrs.get("dt", float("nan"))),
                "n_steps": int(df.attrs.get("n_steps", len(df) - 1)),
                **extract_metrics(df),
            }
        )
        if out_dir and save_timeseries:
            out_dir.mkdir(parents=True, exist_ok=True)
            safe = param_path.replace(".", "_").replace("[", "_").replace("]", "")
            df.to_csv(out_dir / f"timeseries_{safe}_{value:.6g}.csv", index=False)

    summary = pd.DataFrame(rows)

    if out_dir:
        out_dir.mkdir(parents=True, exist_ok=True)
        summary.to_csv(out_dir / "sensitivity_summary.csv", index=False)
        (out_dir / "config.yml").write_text(yaml.safe_dump(cfg, sort_keys=False), encoding="utf-8")
        save_study_metadata(
            out_dir,
            metadata={
                "study_type": "sensitivity",
                "param_path": param_path,
                "base_value": base_value,
                "values": values,
            },
        )
    return summary
