"""MLflow I/O utilities for experiment tracking."""

import logging
import os
import tempfile
from pathlib import Path

import mlflow
import zarr
from mlflow.tracking import MlflowClient

log = logging.getLogger(__name__)


def experiment_name_from_config(cfg) -> str:
    """Experiment name with the optional project prefix."""
    experiment_name = cfg.experiment_name
    project_prefix = cfg.mlflow.get("project_prefix", "")
    if project_prefix and not experiment_name.startswith("/"):
        experiment_name = f"{project_prefix}/{experiment_name}"
    return experiment_name


def setup_mlflow_tracking(cfg) -> str:
    """Configure the tracking URI and experiment; return the experiment name."""
    tracking_uri = cfg.mlflow.get("tracking_uri", "./mlruns")
    # Remote servers are configured through .env
    if str(cfg.mlflow.get("mode", "files")).lower() == "remote":
        tracking_uri = os.environ.get("MLFLOW_TRACKING_URI", tracking_uri)
    os.environ["MLFLOW_TRACKING_URI"] = str(tracking_uri)
    mlflow.set_tracking_uri(tracking_uri)

    experiment_name = experiment_name_from_config(cfg)
    try:
        mlflow.set_experiment(experiment_name)
    except Exception as exc:
        # If experiment was previously deleted, fall back to a new name
        fallback = f"{experiment_name}-restored"
        log.warning(
            "MLflow set_experiment failed for '%s' (%s); falling back to '%s'",
            experiment_name,
            exc,
            fallback,
        )
        experiment_name = fallback
        mlflow.set_experiment(experiment_name)
    return experiment_name


def log_params(solver):
    """Log flow and simulation parameters using the dataclass to_mlflow methods."""
    params = dict(solver.flow.to_mlflow())
    params.update(solver.params.to_mlflow())
    params["mesh.n"] = "x".join(str(n) for n in solver.mesh.n)
    params["mesh.partitions"] = solver.mesh.size
    mlflow.log_params(params)


def log_metrics_and_timeseries(solver, run_id: str):
    """Log final metrics and the per-step history to MLflow."""
    mlflow.log_metrics(solver.metrics.to_mlflow())

    batch_metrics = solver.time_series.to_mlflow_batch()
    # log_batch accepts at most 1000 metrics per call
    for start in range(0, len(batch_metrics), 1000):
        MlflowClient().log_batch(run_id=run_id, metrics=batch_metrics[start:start + 1000])


def log_fields(solver):
    """Save the final fluxes, Lagrange vector and grid as zarr artifacts."""
    with tempfile.TemporaryDirectory() as tmpdir:
        arrays = {"q": solver.q, "lambda": solver.lambda_}
        for d in range(solver.mesh.dim):
            arrays["xyz"[d]] = solver.mesh.edges[d]
        for name, arr in arrays.items():
            zarr_path = Path(tmpdir) / f"{name}.zarr"
            zarr.save(str(zarr_path), arr)
            mlflow.log_artifact(str(zarr_path), artifact_path="fields")

    log.info(f"Logged fields: {', '.join(arrays)} (zarr)")


def log_output_dir(directory):
    """Upload the CSV logs of an output directory."""
    for path in sorted(Path(directory).glob("*.csv")):
        mlflow.log_artifact(str(path), artifact_path="logs")
