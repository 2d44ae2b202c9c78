"""
Typer CLI commands for studies.

Imported and registered from `structural_transient.cli`.
"""
from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Dict, List

import typer
import yaml


def _parse_floats_csv(s: str) -> List[float]:
    """Parse comma/space-separated floats, e.g. "1e-4,5e-5"."""
    s = (s or "").strip()
    if not s:
        return []
    parts = [p for p in re.split(r"[\s,]+", s) if p]
    try:
        return [float(p) for p in parts]
    except ValueError as e:
        raise typer.BadParameter(f"Could not parse floats from: {s!r}") from e


def _load_config(path: Path) -> Dict[str, Any]:
    cfg = yaml.safe_load(path.read_text(encoding="utf-8"))
    if cfg is None:
        return {}
    if not isinstance(cfg, dict):
        raise typer.BadParameter("YAML config must be a mapping/dict at the top level.")
    return cfg


def register_study_commands(app: typer.Typer) -> None:
    @app.command("convergence")
    def convergence_cmd(
        config: Path = typer.Option(..., "--config", "-c", exists=True, readable=True, help="Base config YAML"),
        dts: str = typer.Option(..., "--dts", help="Comma/space-separated dt values [s]"),
        out: Path = typer.Option(..., "--out", "-o", help="Output directory"),
        save_timeseries: bool = typer.Option(False, "--save-timeseries", help="Save timeseries CSVs for each run"),
    ) -> None:
        """Run time-step convergence study."""
        from . import config_simulator
        from .convergence import run_convergence_study

        cfg = _load_config(config)
        summary = run_convergence_study(
            cfg,
            _parse_floats_csv(dts),
            simulate_func=config_simulator(config.parent),
            out_dir=out,
            save_timeseries=save_timeseries,
        )
        typer.echo(summary.to_string(index=False))
        typer.echo(f"Saved to: {out}")

    @app.command("sensitivity")
    def sensitivity_cmd(
        config: Path = typer.Option(..., "--config", "-c", exists=True, readable=True, help="Base config YAML"),
        param_path: str = typer.Argument(..., help="Parameter path, e.g. damping.rayleigh_mass"),
        values: str = typer.Option(..., "--values", help="Comma/space-separated values"),
        out: Path = typer.Option(..., "--out", "-o", help="Output directory"),
        save_timeseries: bool = typer.Option(False, "--save-timeseries", help="Save timeseries CSVs for each run"),
    ) -> None:
        """Run single-parameter sensitivity study."""
        from . import config_simulator
        from .sensitivity import run_sensitivity_study

        cfg = _load_config(config)
        summary = run_sensitivity_study(
            cfg,
            param_path=param_path,
            values=_parse_floats_csv(values),
            simulate_func=config_simulator(config.parent),
            out_dir=out,
            save_timeseries=save_timeseries,
        )
        typer.echo(summary.to_string(index=False))
        typer.echo(f"Saved to: {out}")
