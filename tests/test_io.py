"""Tests for snapshot and CSV output."""

import numpy as np
import pandas as pd
import pytest

from meshing import CartesianMesh
from solvers import StageTimers, TimeSeries
from solvers.instrumentation import STAGES
from utilities.io import (
    load_simulation_data,
    save_simulation_data,
    snapshot_dir,
    write_grid,
    write_performance_summary,
    write_time_series,
)


def test_snapshot_round_trip(tmp_path):
    q = np.linspace(0.0, 1.0, 17)
    lambda_ = np.arange(5, dtype=np.float64)
    path = save_simulation_data(tmp_path, 40, q, lambda_)
    assert path == tmp_path / "0000040"

    q_loaded, lambda_loaded = load_simulation_data(tmp_path, 40)
    np.testing.assert_array_equal(q_loaded, q)
    np.testing.assert_array_equal(lambda_loaded, lambda_)


def test_snapshot_overwritten(tmp_path):
    save_simulation_data(tmp_path, 3, np.zeros(4), np.zeros(2))
    save_simulation_data(tmp_path, 3, np.ones(6), np.ones(3))
    q, lambda_ = load_simulation_data(tmp_path, 3)
    assert q.shape == (6,) and lambda_.shape == (3,)


def test_missing_snapshot(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_simulation_data(tmp_path, 12)


def test_snapshot_dir_name():
    assert snapshot_dir("out", 7).name == "0000007"


def test_write_grid(tmp_path):
    mesh = CartesianMesh.uniform((4, 3))
    grid = write_grid(tmp_path, mesh)
    assert (grid / "x.zarr").exists() and (grid / "y.zarr").exists()
    assert not (grid / "z.zarr").exists()


class TestTimeSeries:
    def series(self, steps, forces=False):
        ts = TimeSeries()
        for s in steps:
            f = np.array([[0.1 * s, -0.2 * s]]) if forces else None
            ts.append(s, 3, 7, 1e-9, f)
        return ts

    def test_iterations_only(self, tmp_path):
        paths = write_time_series(tmp_path, self.series([1, 2]))
        assert set(paths) == {"iterations"}
        df = pd.read_csv(paths["iterations"])
        assert list(df.columns) == ["step", "velocity_iterations", "poisson_iterations", "divergence"]
        assert not (tmp_path / "forces.csv").exists()

    def test_forces_file(self, tmp_path):
        paths = write_time_series(tmp_path, self.series([1, 2], forces=True))
        forces = pd.read_csv(paths["forces"])
        assert list(forces.columns) == ["step", "body0_fx", "body0_fy"]
        np.testing.assert_allclose(forces["body0_fy"], [-0.2, -0.4])
        assert "body0_fx" not in pd.read_csv(paths["iterations"]).columns

    def test_restart_appends(self, tmp_path):
        write_time_series(tmp_path, self.series([1, 2]))
        write_time_series(tmp_path, self.series([3]), restart=True)
        df = pd.read_csv(tmp_path / "iterations.csv")
        assert df["step"].tolist() == [1, 2, 3]

    def test_fresh_run_overwrites(self, tmp_path):
        write_time_series(tmp_path, self.series([1, 2]))
        write_time_series(tmp_path, self.series([1]))
        assert pd.read_csv(tmp_path / "iterations.csv")["step"].tolist() == [1]


def test_performance_summary(tmp_path):
    timers = StageTimers()
    with timers.stage("solvePoisson"):
        pass
    with timers.stage("solvePoisson"):
        pass
    path = write_performance_summary(tmp_path, timers)
    df = pd.read_csv(path).set_index("stage")
    assert df.loc["solvePoisson", "calls"] == 2
    assert set(STAGES) <= set(df.index)
