"""
Fractional-Step Solver Runner - Hydra + MLflow integration.

Single runs:
    # Lid-driven cavity (plain Navier-Stokes)
    uv run python run_solver.py

    # Flow past a cylinder (Taira-Colonius immersed boundary)
    uv run python run_solver.py +experiment=cylinder

    # Restart a run from a saved time step
    uv run python run_solver.py simulation.start_step=500 output_dir=outputs/cavity

Parameter sweeps (multirun mode):
    uv run python run_solver.py -m mesh.x.segments.0.cells=32,64,128

    Multirun mode automatically creates a parent MLflow run per solver type
    and nests every job under it.

MLflow modes:
    files   - file-based ./mlruns (default)
    remote  - tracking server (requires .env with credentials)
    mlflow.enabled=false disables tracking altogether.

Setup for remote MLflow:
    cp .env.template .env
    # Edit .env with your credentials
"""

import logging
import os
import sys
from pathlib import Path

import hydra
import mlflow
from dotenv import load_dotenv
from hydra.core.hydra_config import HydraConfig
from omegaconf import DictConfig, OmegaConf

# Load .env file (for MLflow credentials)
load_dotenv()

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent / "src"))

from meshing import CartesianMesh  # noqa: E402
from solvers import (  # noqa: E402
    ConfigurationError,
    FlowDescription,
    ImmersedBody,
    SimulationParameters,
    SolverDivergedError,
    create_solver,
)
from utilities.mlflow import (  # noqa: E402
    log_fields,
    log_metrics_and_timeseries,
    log_output_dir,
    log_params,
    setup_mlflow_tracking,
)

log = logging.getLogger(__name__)


# =============================================================================
# Solver Factory
# =============================================================================


def build_bodies(cfg_bodies):
    """Immersed bodies from the ``bodies`` list of the config."""
    bodies = []
    for entry in cfg_bodies:
        entry = dict(entry)
        kind = entry.pop("type", "circle")
        if kind == "circle":
            bodies.append(ImmersedBody.circle(**entry))
        elif kind == "file":
            bodies.append(ImmersedBody.from_file(entry["path"], name=entry.get("name")))
        else:
            raise ConfigurationError(f"Unknown body type: {kind}")
    return bodies


def create_solver_from_config(cfg: DictConfig, directory):
    """Build mesh, flow, parameters and bodies, then select the variant."""
    flow = FlowDescription.from_dict(OmegaConf.to_container(cfg.flow, resolve=True))
    params = SimulationParameters.from_dict(OmegaConf.to_container(cfg.simulation, resolve=True))

    mesh_cfg = OmegaConf.to_container(cfg.mesh, resolve=True)
    mesh_cfg["periodic"] = list(flow.periodic)
    mesh = CartesianMesh.from_config(mesh_cfg, size=cfg.partitions)

    bodies_cfg = cfg.get("bodies")
    bodies = build_bodies(OmegaConf.to_container(bodies_cfg, resolve=True) if bodies_cfg is not None else [])
    return create_solver(mesh, flow, params, bodies=bodies, directory=directory)


def output_directory(cfg: DictConfig) -> Path:
    if cfg.get("output_dir"):
        return Path(cfg.output_dir)
    return Path(HydraConfig.get().runtime.output_dir) / "output"


def run(solver):
    """Initialize, advance and finalize; finalize also runs on failure."""
    with solver:
        solver.solve()
    log.info(
        f"Done: {solver.metrics.steps} steps to step {solver.metrics.final_step}, "
        f"max divergence={solver.metrics.max_divergence:.3e}, "
        f"time={solver.metrics.wall_time_seconds:.2f}s"
    )


# =============================================================================
# Main Entry Point
# =============================================================================


@hydra.main(config_path="conf", config_name="config", version_base=None)
def main(cfg: DictConfig) -> None:
    """Hydra entry point - runs solver with MLflow tracking."""
    directory = output_directory(cfg)
    solver = create_solver_from_config(cfg, directory)
    log.info(f"Solver: {cfg.simulation.solver_type}, output: {directory}")

    if not cfg.mlflow.enabled:
        try:
            run(solver)
        except SolverDivergedError as exc:
            log.error(f"Aborting: {exc}")
            sys.exit(1)
        return

    experiment_name = setup_mlflow_tracking(cfg)
    log.info(f"MLflow experiment: {experiment_name}")

    # Check for parent run (from sweep callback)
    parent_run_id = os.environ.get("MLFLOW_PARENT_RUN_ID")
    run_tags = {"solver": cfg.simulation.solver_type}
    nested = False
    if parent_run_id:
        run_tags["mlflow.parentRunId"] = parent_run_id
        run_tags["parent_run_id"] = parent_run_id
        run_tags["sweep"] = "child"
        nested = True  # Required when parent run is active in same process

    run_name = f"{cfg.simulation.solver_type.lower()}_{'x'.join(str(n) for n in solver.mesh.n)}"
    with mlflow.start_run(run_name=run_name, tags=run_tags, nested=nested) as mlflow_run:
        log_params(solver)
        mlflow.log_dict(OmegaConf.to_container(cfg), "config.yaml")

        try:
            run(solver)
        except SolverDivergedError as exc:
            mlflow.set_tag("diverged", f"{exc.system}:{exc.reason}@{exc.step}")
            log_output_dir(directory)
            log.error(f"Aborting: {exc}")
            sys.exit(1)

        log_metrics_and_timeseries(solver, mlflow_run.info.run_id)
        log_fields(solver)
        log_output_dir(directory)


if __name__ == "__main__":
    main()
