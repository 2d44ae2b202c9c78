# src/structural_transient/cli.py

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Dict

import pandas as pd
import typer

from .config.loader import load_simulation_config, build_simulation_params
from .core.engine import energy_drift, run_simulation
from .core.errors import SimulationError

app = typer.Typer(
    add_completion=False,
    help=(
        "Structural transient dynamics CLI\n\n"
        "Trapezoidal-rule time integration of M·ü + C·u̇ + K·u = F(t) with\n"
        "HRZ-lumped mass, mass-proportional damping and a reused factorization\n"
        "of the dynamic stiffness.  Use 'run' for a single case, 'lump' to\n"
        "inspect the lumped mass, or the study commands for sweeps."
    ),
)

# Studies commands (convergence / sensitivity)
from .studies.cli import register_study_commands
register_study_commands(app)


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------


def _ensure_output_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def _setup_logger(output_dir: Path, log_stem: str) -> logging.Logger:
    """
    Set up a per-run log file at <output_dir>/<log_stem>.log.

    The handler is attached to the package logger so that messages from the
    engine, lumping and factorization modules land in the same file.
    """
    _ensure_output_dir(output_dir)
    logger = logging.getLogger("structural_transient")
    logger.setLevel(logging.INFO)
    logger.handlers.clear()

    log_file = output_dir / f"{log_stem}.log"
    handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    return logging.getLogger(f"structural_transient.cli.{log_stem}")


def _print_and_log(logger: logging.Logger, msg: str) -> None:
    typer.echo(msg)
    logger.info(msg)


def _compute_single_run_performance(results_df: pd.DataFrame, wall_time: float) -> Dict[str, Any]:
    attrs = results_df.attrs
    t = results_df["Time_s"].to_numpy()
    span = float(t[-1] - t[0]) if len(t) else 0.0
    return {
        "wall_time": wall_time,
        "t_end": span,
        "steps": int(attrs.get("n_steps", 0)),
        "dt": float(attrs.get("dt", float("nan"))),
        "dt_last": float(attrs.get("dt_last", float("nan"))),
        "factorizations": int(attrs.get("n_factorizations", 0)),
        "n_dof": int(attrs.get("n_dof", 0)),
        "total_mass": float(attrs.get("total_mass", float("nan"))),
        "energy_drift": energy_drift(results_df),
        "real_time_factor": span / wall_time if wall_time > 0 else float("inf"),
    }


def _print_performance_metrics(perf: Dict[str, Any], logger: logging.Logger) -> None:
    typer.echo("")
    typer.echo("Single-run performance:")
    typer.echo(f"  Wall-clock time       : {perf['wall_time']:.3f} s")
    typer.echo(f"  Simulated time span   : {perf['t_end']:.6e} s")
    typer.echo(f"  Time steps            : {perf['steps']}")
    typer.echo(f"  Δt / last Δt          : {perf['dt']:.6e} s / {perf['dt_last']:.6e} s")
    typer.echo(f"  Factorizations        : {perf['factorizations']}, n_dof = {perf['n_dof']}")
    typer.echo(f"  Total mass            : {perf['total_mass']:.6e}")
    typer.echo(f"  Energy drift (rel.)   : {perf['energy_drift']:.3e}")
    typer.echo(f"  Real-time factor      : {perf['real_time_factor']:.2f}x")

    logger.info("Single-run performance: %s", perf)


def _show_matplotlib_plot(results_df: pd.DataFrame) -> None:
    import matplotlib.pyplot as plt

    t = results_df["Time_s"].to_numpy()
    cols = [c for c in results_df.columns if c.startswith("Response")]
    fig, ax = plt.subplots()
    for col in cols[:8]:
        ax.plot(t, results_df[col].to_numpy(), label=col)
    ax.set_xlabel("Time [s]")
    ax.set_ylabel("Response")
    ax.set_title("Response vs time")
    ax.grid(True)
    ax.set_xlim(left=0)
    ax.legend()
    plt.show()


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------

@app.command()
def run(
    config: Path = typer.Option(
        ...,
        "--config",
        "-c",
        exists=True,
        readable=True,
        help="YAML/JSON configuration file (matrices, time span, damping, ...).",
    ),
    output_dir: Path = typer.Option(
        Path("results"),
        "--output-dir",
        "-o",
        help="Directory for result files.",
    ),
    prefix: str = typer.Option(
        "",
        "--prefix",
        "-p",
        help="Optional filename prefix for output files.",
    ),
    plot: bool = typer.Option(
        False,
        "--plot",
        help="Show a matplotlib window with the response vs time.",
    ),
) -> None:
    """
    Run a single transient simulation.

    Example
    -------
        transient-sim run --config configs/cantilever.yml --output-dir results/cantilever
    """
    _ensure_output_dir(output_dir)
    filename_prefix = f"{prefix}_" if prefix else ""
    log_stem = f"{filename_prefix}run"
    logger = _setup_logger(output_dir, log_stem)

    _print_and_log(logger, f"Loading config: {config}")
    try:
        cfg = load_simulation_config(config)
        params = build_simulation_params(cfg, config_dir=config.parent)

        _print_and_log(logger, "Running simulation ...")
        t0 = time.perf_counter()
        results_df = run_simulation(params)
        wall_time = time.perf_counter() - t0
    except SimulationError as exc:
        logger.error("Simulation aborted: %s", json.dumps(exc.to_diagnostics_dict(), default=str))
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1)

    csv_path = output_dir / f"{filename_prefix}results.csv"
    _print_and_log(logger, f"Writing time history to {csv_path}")
    results_df.to_csv(csv_path, index=False)

    perf = _compute_single_run_performance(results_df, wall_time)
    _print_performance_metrics(perf, logger)

    if plot:
        _show_matplotlib_plot(results_df)

    typer.echo(f"\nDetailed log written to {output_dir / f'{log_stem}.log'}")
    logger.info("Run completed.")


@app.command()
def lump(
    mass: Path = typer.Argument(..., exists=True, readable=True, help="Consistent mass matrix (.npz/.npy/.mtx)."),
    out: Path = typer.Option(..., "--out", "-o", help="Output file for the lumped matrix."),
    components: int = typer.Option(1, "--components", help="Field components per node."),
) -> None:
    """HRZ-lump a consistent mass matrix and report its total mass."""
    from .core.lumping import lump_consistent, total_mass
    from .io.matrices import load_matrix, save_matrix

    try:
        M_c = load_matrix(mass)
        M_d = lump_consistent(M_c)
    except SimulationError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1)

    save_matrix(out, M_d)
    typer.echo(f"Consistent total : {float(M_c.sum()):.12e}")
    typer.echo(f"Lumped total     : {float(M_d.sum()):.12e}")
    typer.echo(f"Physical mass    : {total_mass(M_d, components):.12e}")
    typer.echo(f"Saved to: {out}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
