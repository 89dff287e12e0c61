"""Simulation output: Zarr snapshots for restart, CSV logs via pandas.

Layout of an output directory::

    <dir>/grid/{x,y,z}.zarr         cell edges
    <dir>/<step:07d>/q.zarr         fluxes
    <dir>/<step:07d>/lambda.zarr    Lagrange vector (pressure, forces)
    <dir>/iterations.csv            per-step iteration counts and divergence
    <dir>/forces.csv                per-step body forces (immersed bodies only)
    <dir>/performance.csv           stage-timer summary
"""

import logging
import shutil
from pathlib import Path

import numpy as np
import zarr

log = logging.getLogger(__name__)

DIRECTIONS = ("x", "y", "z")


def ensure_output_dir(directory) -> Path:
    """Create `directory` (and parents) if needed and return it as a Path."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def snapshot_dir(directory, step) -> Path:
    return Path(directory) / f"{int(step):07d}"


def write_grid(directory, mesh):
    """Save the cell edges of every direction."""
    grid = Path(directory) / "grid"
    if grid.exists():
        shutil.rmtree(grid)
    ensure_output_dir(grid)
    for d in range(mesh.dim):
        zarr.save(str(grid / f"{DIRECTIONS[d]}.zarr"), mesh.edges[d])
    return grid


def save_simulation_data(directory, step, q, lambda_):
    """Write a snapshot of the flux and Lagrange vectors at `step`."""
    path = snapshot_dir(directory, step)
    if path.exists():
        shutil.rmtree(path)
    ensure_output_dir(path)
    zarr.save(str(path / "q.zarr"), np.asarray(q))
    zarr.save(str(path / "lambda.zarr"), np.asarray(lambda_))
    log.info(f"Saved snapshot at step {step} to {path}")
    return path


def load_simulation_data(directory, step):
    """Read the flux and Lagrange vectors written at `step`.

    Raises
    ------
    FileNotFoundError
        If no snapshot exists for `step`.
    """
    path = snapshot_dir(directory, step)
    if not (path / "q.zarr").exists():
        raise FileNotFoundError(f"No snapshot for step {step} in {directory}")
    q = np.asarray(zarr.load(str(path / "q.zarr")))
    lambda_ = np.asarray(zarr.load(str(path / "lambda.zarr")))
    log.info(f"Loaded snapshot at step {step} from {path}")
    return q, lambda_


def _append_csv(path, df):
    df.to_csv(path, mode="a", header=not Path(path).exists(), index=False)


def write_time_series(directory, time_series, restart=False):
    """Write iteration counts (and body forces) as CSV.

    On restart the rows are appended to the existing files.
    """
    directory = ensure_output_dir(directory)
    df = time_series.to_dataframe()
    force_cols = [c for c in df.columns if c.startswith("body")]
    iterations = df.drop(columns=force_cols)
    paths = {"iterations": directory / "iterations.csv"}
    if force_cols:
        paths["forces"] = directory / "forces.csv"

    for name, frame in (("iterations", iterations), ("forces", df[["step"] + force_cols])):
        if name not in paths:
            continue
        if restart:
            _append_csv(paths[name], frame)
        else:
            frame.to_csv(paths[name], index=False)
    return paths


def write_performance_summary(directory, timers):
    path = ensure_output_dir(directory) / "performance.csv"
    timers.to_dataframe().to_csv(path, index=False)
    return path
