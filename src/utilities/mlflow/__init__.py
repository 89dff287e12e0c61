"""MLflow utilities for experiment tracking and artifact management."""

from .io import (
    experiment_name_from_config,
    log_fields,
    log_metrics_and_timeseries,
    log_output_dir,
    log_params,
    setup_mlflow_tracking,
)

__all__ = [
    "experiment_name_from_config",
    "log_fields",
    "log_metrics_and_timeseries",
    "log_output_dir",
    "log_params",
    "setup_mlflow_tracking",
]
