"""Fractional-step Navier-Stokes solver framework.

Solver Hierarchy:
-----------------
FractionalStepSolver (time-advancement engine)
└── SolverVariant (abstract extension point)
    ├── NavierStokesVariant (lambda = pressure, Q = G)
    └── TairaColoniusVariant (lambda = pressure + forces, Q = [G, E^T])
"""

from .base import LambdaLayout, SolverVariant
from .datastructures import (
    BoundaryCondition,
    FlowDescription,
    ImmersedBody,
    LinearSolverParameters,
    Metrics,
    SimulationParameters,
    TimeSeries,
)
from .errors import AssemblyError, ConfigurationError, SolverDivergedError
from .factory import create_solver
from .fractional_step import FractionalStepSolver, State
from .instrumentation import StageTimers
from .navier_stokes import NavierStokesVariant
from .taira_colonius import TairaColoniusVariant


__all__ = [
    # Engine
    "FractionalStepSolver",
    "State",
    "create_solver",
    "StageTimers",
    # Variants
    "SolverVariant",
    "LambdaLayout",
    "NavierStokesVariant",
    "TairaColoniusVariant",
    # Data structures
    "BoundaryCondition",
    "FlowDescription",
    "ImmersedBody",
    "LinearSolverParameters",
    "SimulationParameters",
    "Metrics",
    "TimeSeries",
    # Errors
    "AssemblyError",
    "ConfigurationError",
    "SolverDivergedError",
]
