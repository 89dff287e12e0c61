"""Hydra callback grouping multirun jobs under MLflow parent runs."""

import logging
import os
from typing import Dict, Optional

from hydra.experimental.callback import Callback
from omegaconf import DictConfig, OmegaConf

log = logging.getLogger(__name__)

PARENT_ENV = "MLFLOW_PARENT_RUN_ID"
ACTIVE_ENV = "MLFLOW_SWEEP_ACTIVE"


def parent_run_name(template: str, config: DictConfig) -> str:
    """Expand ``{solver}`` in the sweep name with the job's solver type."""
    return template.replace("{solver}", str(config.simulation.solver_type).lower())


class MLflowSweepCallback(Callback):
    """Creates or reuses one parent run per solver type during a sweep.

    Each job of ``python run_solver.py -m ...`` reads the parent id from
    the ``MLFLOW_PARENT_RUN_ID`` environment variable and opens a nested
    child run under it.
    """

    def __init__(self) -> None:
        self._client = None
        self._experiment_id: Optional[str] = None
        self._template = "sweep"
        self._parents: Dict[str, str] = {}

    def _existing_parent(self, name: str) -> Optional[str]:
        runs = self._client.search_runs(
            experiment_ids=[self._experiment_id],
            filter_string=f"tags.sweep = 'parent' AND tags.`mlflow.runName` = '{name}'",
            order_by=["attributes.start_time DESC"],
            max_results=1,
        )
        return runs[0].info.run_id if runs else None

    def _parent_for(self, name: str, config: DictConfig) -> str:
        if name in self._parents:
            return self._parents[name]

        run_id = self._existing_parent(name)
        if run_id:
            log.info(f"Reusing parent run '{name}': {run_id}")
        else:
            run = self._client.create_run(
                self._experiment_id,
                run_name=name,
                tags={"sweep": "parent", "solver": str(config.simulation.solver_type)},
            )
            run_id = run.info.run_id
            self._client.log_dict(run_id, OmegaConf.to_container(config, resolve=True), "sweep_config.yaml")
            self._client.set_terminated(run_id)
            log.info(f"Created parent run '{name}': {run_id}")
        self._parents[name] = run_id
        return run_id

    def on_multirun_start(self, config: DictConfig, **kwargs) -> None:
        if not config.mlflow.get("enabled", True):
            return

        import mlflow
        from dotenv import load_dotenv
        from mlflow.tracking import MlflowClient

        from utilities.mlflow.io import setup_mlflow_tracking

        load_dotenv()
        experiment_name = setup_mlflow_tracking(config)
        self._experiment_id = mlflow.get_experiment_by_name(experiment_name).experiment_id
        self._client = MlflowClient()
        self._template = config.get("sweep_name", "sweep")
        os.environ[ACTIVE_ENV] = "1"
        log.info(f"Sweep tracking in experiment '{experiment_name}'")

    def on_job_start(self, config: DictConfig, **kwargs) -> None:
        if os.environ.get(ACTIVE_ENV) != "1":
            return
        os.environ[PARENT_ENV] = self._parent_for(parent_run_name(self._template, config), config)

    def on_multirun_end(self, config: DictConfig, **kwargs) -> None:
        if os.environ.pop(ACTIVE_ENV, None) is None:
            return
        os.environ.pop(PARENT_ENV, None)
        log.info(f"Sweep finished: {len(self._parents)} parent run(s)")
