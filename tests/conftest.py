"""Pytest configuration and fixtures for the fractional-step solver tests."""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from meshing import CartesianMesh  # noqa: E402
from solvers import (  # noqa: E402
    BoundaryCondition,
    FlowDescription,
    LinearSolverParameters,
    SimulationParameters,
)


def dirichlet(u, v):
    return [BoundaryCondition("DIRICHLET", u), BoundaryCondition("DIRICHLET", v)]


def stretched_edges(start, end, n, ratio):
    """Geometric cell edges on [start, end]."""
    widths = ratio ** np.arange(n)
    return start + (end - start) * np.concatenate(([0.0], np.cumsum(widths))) / widths.sum()


@pytest.fixture
def cavity_flow():
    """Lid-driven cavity: u = 1 on yPlus, no-slip elsewhere."""
    return FlowDescription(
        dim=2,
        nu=0.01,
        boundary_conditions={
            "xMinus": dirichlet(0.0, 0.0),
            "xPlus": dirichlet(0.0, 0.0),
            "yMinus": dirichlet(0.0, 0.0),
            "yPlus": dirichlet(1.0, 0.0),
        },
    )


@pytest.fixture
def freestream_flow():
    """Uniform stream u = 1 imposed on every face."""
    return FlowDescription(
        dim=2,
        nu=0.05,
        initial_velocity=(1.0, 0.0),
        boundary_conditions={face: dirichlet(1.0, 0.0) for face in ("xMinus", "xPlus", "yMinus", "yPlus")},
    )


@pytest.fixture
def channel_flow():
    """Channel at rest: unit inflow on xMinus, convective outflow on xPlus, no-slip walls."""
    return FlowDescription(
        dim=2,
        nu=0.01,
        initial_velocity=(0.0, 0.0),
        boundary_conditions={
            "xMinus": dirichlet(1.0, 0.0),
            "xPlus": [BoundaryCondition("CONVECTIVE", 1.0)] * 2,
            "yMinus": dirichlet(0.0, 0.0),
            "yPlus": dirichlet(0.0, 0.0),
        },
    )


@pytest.fixture
def cavity_mesh():
    return CartesianMesh.uniform((12, 10), bounds=[(0.0, 1.0), (0.0, 1.0)])


@pytest.fixture
def stretched_mesh():
    """Non-uniform 2D mesh (different stretching per direction)."""
    return CartesianMesh([stretched_edges(0.0, 1.0, 9, 1.15), stretched_edges(-1.0, 1.0, 7, 0.85)])


@pytest.fixture
def make_params():
    """Factory for SimulationParameters with tight linear solver tolerances."""

    def _make(**overrides):
        tight = dict(method="cg", preconditioner="jacobi", rtol=1e-12, max_iterations=50000)
        cfg = dict(
            dt=0.01,
            nt=3,
            nsave=1,
            convection_scheme="EULER_EXPLICIT",
            diffusion_scheme="CRANK_NICOLSON",
            velocity_solver=LinearSolverParameters(**tight),
            poisson_solver=LinearSolverParameters(**tight),
        )
        cfg.update(overrides)
        return SimulationParameters(**cfg)

    return _make
