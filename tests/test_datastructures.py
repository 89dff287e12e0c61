"""Tests for configuration dataclasses and result containers."""

import numpy as np
import pytest

from solvers import (
    BoundaryCondition,
    ConfigurationError,
    FlowDescription,
    LinearSolverParameters,
    Metrics,
    SimulationParameters,
    TimeSeries,
)


class TestBoundaryCondition:
    def test_unknown_type(self):
        with pytest.raises(ConfigurationError):
            BoundaryCondition("ROBIN", 1.0)

    def test_defaults_to_no_slip(self):
        flow = FlowDescription(dim=2)
        assert flow.bc("xMinus", 0) == BoundaryCondition("DIRICHLET", 0.0)
        assert flow.bc(3, 1).type == "DIRICHLET"


class TestFlowDescription:
    def test_wrong_number_of_components(self):
        with pytest.raises(ConfigurationError):
            FlowDescription(dim=2, boundary_conditions={"xMinus": [BoundaryCondition()]})

    def test_one_sided_periodic(self):
        periodic = [BoundaryCondition("PERIODIC")] * 2
        with pytest.raises(ConfigurationError):
            FlowDescription(dim=2, boundary_conditions={"xMinus": periodic})

    def test_periodic_flags(self):
        periodic = [BoundaryCondition("PERIODIC")] * 2
        flow = FlowDescription(dim=2, boundary_conditions={"xMinus": periodic, "xPlus": periodic})
        assert flow.periodic == (True, False)

    def test_negative_viscosity(self):
        with pytest.raises(ConfigurationError):
            FlowDescription(nu=-1.0)

    def test_initial_velocity_padded_to_dim(self):
        assert FlowDescription(dim=3, initial_velocity=(1.0,)).initial_velocity == (1.0, 0.0, 0.0)
        assert FlowDescription(dim=2, initial_velocity=(1.0, 2.0, 3.0)).initial_velocity == (1.0, 2.0)

    def test_from_dict(self):
        cfg = {
            "dim": 2,
            "nu": 0.1,
            "initial_velocity": [1.0, 0.0],
            "boundary_conditions": {
                "xPlus": [{"type": "CONVECTIVE", "value": 1.0}, {"type": "CONVECTIVE", "value": 1.0}],
            },
        }
        flow = FlowDescription.from_dict(cfg)
        assert flow.nu == 0.1
        assert flow.bc("xPlus", 1) == BoundaryCondition("CONVECTIVE", 1.0)
        assert flow.bc("yPlus", 0).type == "DIRICHLET"
        assert flow.to_mlflow()["bc.xPlus.u"] == "CONVECTIVE:1"


class TestSimulationParameters:
    @pytest.mark.parametrize(
        "scheme,expected", [("EULER_EXPLICIT", (1.0, 0.0)), ("ADAMS_BASHFORTH_2", (1.5, -0.5))]
    )
    def test_convection_weights(self, scheme, expected):
        params = SimulationParameters(convection_scheme=scheme)
        assert (params.gamma, params.zeta) == expected

    @pytest.mark.parametrize(
        "scheme,expected",
        [("EULER_EXPLICIT", (0.0, 1.0)), ("EULER_IMPLICIT", (1.0, 0.0)), ("CRANK_NICOLSON", (0.5, 0.5))],
    )
    def test_diffusion_weights(self, scheme, expected):
        params = SimulationParameters(diffusion_scheme=scheme)
        assert (params.alpha_implicit, params.alpha_explicit) == expected

    @pytest.mark.parametrize(
        "overrides",
        [
            {"dt": 0.0},
            {"nsave": 0},
            {"solver_type": "LATTICE_BOLTZMANN"},
            {"convection_scheme": "QUICK"},
            {"diffusion_scheme": "RK4"},
        ],
    )
    def test_invalid(self, overrides):
        with pytest.raises(ConfigurationError):
            SimulationParameters(**overrides)

    def test_nested_solver_settings(self):
        params = SimulationParameters.from_dict(
            {"dt": 0.5, "poisson_solver": {"method": "direct", "preconditioner": "none"}}
        )
        assert isinstance(params.poisson_solver, LinearSolverParameters)
        assert params.poisson_solver.method == "direct"
        flat = params.to_mlflow()
        assert flat["poisson_solver.method"] == "direct"
        assert flat["dt"] == 0.5

    def test_unknown_backend(self):
        with pytest.raises(ConfigurationError):
            LinearSolverParameters(backend="trilinos")


class TestResults:
    def test_time_series_force_columns(self):
        ts = TimeSeries()
        ts.append(1, 2, 3, 0.0, np.array([[1.0, 2.0], [3.0, 4.0]]))
        df = ts.to_dataframe()
        assert list(df.columns[4:]) == ["body0_fx", "body0_fy", "body1_fx", "body1_fy"]
        assert df["body1_fx"].iloc[0] == 3.0

    def test_time_series_without_forces(self):
        ts = TimeSeries()
        ts.append(1, 2, 3, 0.0)
        assert len(ts.to_dataframe().columns) == 4

    def test_metrics_to_mlflow(self):
        metrics = Metrics(steps=4, poisson_iterations=12)
        flat = metrics.to_mlflow()
        assert flat["steps"] == 4.0
        assert all(isinstance(v, float) for v in flat.values())

    def test_time_series_mlflow_batch(self):
        ts = TimeSeries()
        ts.append(1, 2, 3, 1e-12)
        ts.append(2, 4, 5, 2e-12)
        batch = ts.to_mlflow_batch()
        keys = {m.key for m in batch}
        assert keys == {"velocity_iterations", "poisson_iterations", "divergence"}
        poisson = sorted((m.step, m.value) for m in batch if m.key == "poisson_iterations")
        assert poisson == [(1, 3.0), (2, 5.0)]
        assert len({m.timestamp for m in batch}) == 1
