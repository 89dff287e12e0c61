"""Data structures for solver configuration and results.

This module defines the configuration and result data structures
for the fractional-step solvers (plain Navier-Stokes and Taira-Colonius).

Structure:
- BoundaryCondition / FlowDescription: physics of the flow (borrowed by the solver)
- LinearSolverParameters / SimulationParameters: time stepping and solver settings
- ImmersedBody: Lagrangian markers of an immersed boundary
- Metrics: Output results (logged to MLflow at end)
- TimeSeries: Per-step history (iteration counts, divergence, forces)
"""

import time
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from .errors import ConfigurationError

FACES = ("xMinus", "xPlus", "yMinus", "yPlus", "zMinus", "zPlus")
BC_TYPES = ("DIRICHLET", "NEUMANN", "CONVECTIVE", "PERIODIC")


def _flatten(prefix, values):
    return {f"{prefix}.{k}": v for k, v in values.items()}


# ========================================================
# Flow Description (physics)
# ========================================================


@dataclass(frozen=True)
class BoundaryCondition:
    """Boundary condition for one velocity component on one domain face.

    DIRICHLET: value is the velocity on the boundary.
    NEUMANN: value is the derivative along the positive axis direction.
    CONVECTIVE: value is the advection speed of the outflow condition.
    PERIODIC: value is ignored.
    """

    type: str = "DIRICHLET"
    value: float = 0.0

    def __post_init__(self):
        if self.type not in BC_TYPES:
            raise ConfigurationError(f"Unknown boundary condition type: {self.type}")


@dataclass
class FlowDescription:
    """Viscosity, initial velocity and boundary conditions of the flow."""

    dim: int = 2
    nu: float = 0.01
    initial_velocity: tuple = (0.0, 0.0, 0.0)
    boundary_conditions: Dict[str, List[BoundaryCondition]] = field(default_factory=dict)

    def __post_init__(self):
        if self.dim not in (2, 3):
            raise ConfigurationError(f"Flow dimension must be 2 or 3, got {self.dim}")
        if self.nu < 0.0:
            raise ConfigurationError(f"Viscosity must be non-negative, got {self.nu}")

        faces = FACES[: 2 * self.dim]
        bcs = {}
        for face in faces:
            entries = self.boundary_conditions.get(face, [BoundaryCondition()] * self.dim)
            entries = [e if isinstance(e, BoundaryCondition) else BoundaryCondition(**e) for e in entries]
            if len(entries) != self.dim:
                raise ConfigurationError(f"{face}: expected {self.dim} boundary conditions, got {len(entries)}")
            bcs[face] = entries
        self.boundary_conditions = bcs

        velocity = tuple(float(v) for v in self.initial_velocity)
        self.initial_velocity = (velocity + (0.0,) * 3)[: self.dim]

        # Periodicity must be declared on both faces for every component
        for d in range(self.dim):
            types = {bc.type == "PERIODIC" for face in faces[2 * d: 2 * d + 2] for bc in bcs[face]}
            if len(types) > 1:
                raise ConfigurationError(
                    f"Periodic boundary along {'xyz'[d]} must apply to both faces and all components"
                )

    @property
    def periodic(self):
        """Periodicity flag per direction."""
        return tuple(self.bc(2 * d, 0).type == "PERIODIC" for d in range(self.dim))

    def bc(self, face, component):
        """Boundary condition on `face` (name or index) for `component`."""
        if not isinstance(face, str):
            face = FACES[face]
        return self.boundary_conditions[face][component]

    @classmethod
    def from_dict(cls, cfg):
        cfg = dict(cfg)
        bcs = {
            face: [BoundaryCondition(**dict(entry)) for entry in entries]
            for face, entries in dict(cfg.pop("boundary_conditions", {})).items()
        }
        return cls(boundary_conditions=bcs, **cfg)

    def to_mlflow(self):
        params = {"flow.dim": self.dim, "flow.nu": self.nu}
        for face, entries in self.boundary_conditions.items():
            for c, bc in enumerate(entries):
                params[f"bc.{face}.{'uvw'[c]}"] = f"{bc.type}:{bc.value:g}"
        return params


# ========================================================
# Simulation Parameters (time stepping and linear solvers)
# ========================================================


CONVECTION_SCHEMES = {
    # name: (gamma, zeta) weights of H^n and H^{n-1}
    "EULER_EXPLICIT": (1.0, 0.0),
    "ADAMS_BASHFORTH_2": (1.5, -0.5),
}

DIFFUSION_SCHEMES = {
    # name: (alpha_implicit, alpha_explicit)
    "EULER_EXPLICIT": (0.0, 1.0),
    "EULER_IMPLICIT": (1.0, 0.0),
    "CRANK_NICOLSON": (0.5, 0.5),
}

SOLVER_TYPES = ("NAVIER_STOKES", "TAIRA_COLONIUS")


@dataclass
class LinearSolverParameters:
    """Settings of one linear system (velocity or Poisson)."""

    backend: str = "scipy"  # "scipy" or "petsc"
    method: str = "cg"  # cg, bicgstab, gmres, direct
    preconditioner: str = "jacobi"  # none, jacobi, ilu, amg (petsc: any PC name)
    rtol: float = 1e-5
    atol: float = 0.0
    max_iterations: int = 10000

    def __post_init__(self):
        if self.backend not in ("scipy", "petsc"):
            raise ConfigurationError(f"Unknown linear solver backend: {self.backend}")
        if self.rtol < 0.0 or self.atol < 0.0 or self.max_iterations <= 0:
            raise ConfigurationError("Linear solver tolerances must be non-negative and max_iterations positive")


@dataclass
class SimulationParameters:
    """Time stepping, schemes and linear solver settings."""

    dt: float = 0.01
    start_step: int = 0
    nt: int = 100
    nsave: int = 10
    solver_type: str = "NAVIER_STOKES"
    convection_scheme: str = "EULER_EXPLICIT"
    diffusion_scheme: str = "CRANK_NICOLSON"
    velocity_solver: LinearSolverParameters = field(default_factory=LinearSolverParameters)
    poisson_solver: LinearSolverParameters = field(
        default_factory=lambda: LinearSolverParameters(preconditioner="amg")
    )

    def __post_init__(self):
        if self.dt <= 0.0:
            raise ConfigurationError(f"Time-step size must be positive, got {self.dt}")
        if self.nt < 0 or self.start_step < 0:
            raise ConfigurationError("start_step and nt must be non-negative")
        if self.nsave <= 0:
            raise ConfigurationError(f"Save interval must be positive, got {self.nsave}")
        if self.solver_type not in SOLVER_TYPES:
            raise ConfigurationError(f"Unknown solver type: {self.solver_type}")
        if self.convection_scheme not in CONVECTION_SCHEMES:
            raise ConfigurationError(f"Unknown convection scheme: {self.convection_scheme}")
        if self.diffusion_scheme not in DIFFUSION_SCHEMES:
            raise ConfigurationError(f"Unknown diffusion scheme: {self.diffusion_scheme}")
        if isinstance(self.velocity_solver, dict):
            self.velocity_solver = LinearSolverParameters(**self.velocity_solver)
        if isinstance(self.poisson_solver, dict):
            self.poisson_solver = LinearSolverParameters(**self.poisson_solver)

    @property
    def gamma(self):
        return CONVECTION_SCHEMES[self.convection_scheme][0]

    @property
    def zeta(self):
        return CONVECTION_SCHEMES[self.convection_scheme][1]

    @property
    def alpha_implicit(self):
        return DIFFUSION_SCHEMES[self.diffusion_scheme][0]

    @property
    def alpha_explicit(self):
        return DIFFUSION_SCHEMES[self.diffusion_scheme][1]

    @classmethod
    def from_dict(cls, cfg):
        return cls(**dict(cfg))

    def to_mlflow(self):
        params = {k: v for k, v in asdict(self).items() if not isinstance(v, dict)}
        params.update(_flatten("velocity_solver", asdict(self.velocity_solver)))
        params.update(_flatten("poisson_solver", asdict(self.poisson_solver)))
        return params

    def to_dataframe(self):
        return pd.DataFrame([self.to_mlflow()])


# ========================================================
# Immersed Bodies
# ========================================================


@dataclass
class ImmersedBody:
    """Lagrangian markers of one immersed boundary.

    `velocity` is the prescribed velocity at each marker (zero for a body
    at rest); markers do not move.
    """

    coordinates: np.ndarray
    velocity: Optional[np.ndarray] = None
    name: str = "body"

    def __post_init__(self):
        self.coordinates = np.atleast_2d(np.asarray(self.coordinates, dtype=np.float64))
        if self.velocity is None:
            self.velocity = np.zeros_like(self.coordinates)
        self.velocity = np.broadcast_to(
            np.asarray(self.velocity, dtype=np.float64), self.coordinates.shape
        ).copy()

    @property
    def n_markers(self):
        return self.coordinates.shape[0]

    @property
    def dim(self):
        return self.coordinates.shape[1]

    @classmethod
    def circle(cls, center, radius, n_markers, angular_velocity=0.0, name="circle"):
        """Circular body in the xy-plane, optionally spinning about its centre."""
        theta = 2.0 * np.pi * np.arange(n_markers) / n_markers
        xy = np.column_stack((np.cos(theta), np.sin(theta)))
        coordinates = np.asarray(center[:2], dtype=np.float64) + radius * xy
        velocity = angular_velocity * radius * np.column_stack((-xy[:, 1], xy[:, 0]))
        if len(center) == 3:
            coordinates = np.column_stack((coordinates, np.full(n_markers, center[2])))
            velocity = np.column_stack((velocity, np.zeros(n_markers)))
        return cls(coordinates=coordinates, velocity=velocity, name=name)

    @classmethod
    def from_file(cls, filepath, name=None):
        """Read markers from a body file (first line: count, then coordinates)."""
        filepath = Path(filepath)
        coordinates = np.loadtxt(filepath, skiprows=1, ndmin=2)
        with filepath.open() as f:
            n_markers = int(f.readline().split()[0])
        if coordinates.shape[0] != n_markers:
            raise ConfigurationError(
                f"{filepath}: header announces {n_markers} markers, found {coordinates.shape[0]}"
            )
        return cls(coordinates=coordinates, name=name or filepath.stem)


# ========================================================
# Metrics (Output Results)
# ========================================================


@dataclass
class Metrics:
    """Solver metrics - output results computed during/after time stepping."""

    steps: int = 0
    final_step: int = 0
    wall_time_seconds: float = 0.0
    velocity_iterations: int = 0
    poisson_iterations: int = 0
    max_divergence: float = 0.0

    def to_dataframe(self):
        return pd.DataFrame([asdict(self)])

    def to_mlflow(self):
        return {k: float(v) for k, v in asdict(self).items()}


# ========================================================
# Time Series (per-step history)
# ========================================================


@dataclass
class TimeSeries:
    """History recorded after every time step."""

    step: List[int] = field(default_factory=list)
    velocity_iterations: List[int] = field(default_factory=list)
    poisson_iterations: List[int] = field(default_factory=list)
    divergence: List[float] = field(default_factory=list)
    forces: List[np.ndarray] = field(default_factory=list)

    def append(self, step, velocity_iterations, poisson_iterations, divergence, forces=None):
        self.step.append(int(step))
        self.velocity_iterations.append(int(velocity_iterations))
        self.poisson_iterations.append(int(poisson_iterations))
        self.divergence.append(float(divergence))
        if forces is not None:
            self.forces.append(np.asarray(forces, dtype=np.float64))

    def to_dataframe(self) -> pd.DataFrame:
        """Convert to DataFrame with one row per time step."""
        df = pd.DataFrame(
            {
                "step": self.step,
                "velocity_iterations": self.velocity_iterations,
                "poisson_iterations": self.poisson_iterations,
                "divergence": self.divergence,
            }
        )
        if self.forces:
            forces = np.stack(self.forces)  # (n_steps, n_bodies, dim)
            for b in range(forces.shape[1]):
                for c in range(forces.shape[2]):
                    df[f"body{b}_f{'xyz'[c]}"] = forces[:, b, c]
        return df

    def to_mlflow_batch(self):
        """Metrics for `MlflowClient.log_batch`."""
        from mlflow.entities import Metric

        timestamp = int(time.time() * 1000)
        df = self.to_dataframe()
        return [
            Metric(key=col, value=float(value), timestamp=timestamp, step=int(step))
            for col in df.columns
            if col != "step"
            for step, value in zip(df["step"], df[col])
        ]
