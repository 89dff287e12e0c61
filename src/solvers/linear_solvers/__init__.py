"""Linear solvers for the fractional-step method.

The PETSc backend is imported on demand so that petsc4py stays optional.
"""

from .linear_system import LinearSystem, LinearSystems, pin_null_space
from .reasons import ConvergenceReason
from .scipy_solver import build_preconditioner, scipy_solver

__all__ = [
    "ConvergenceReason",
    "LinearSystem",
    "LinearSystems",
    "build_preconditioner",
    "pin_null_space",
    "scipy_solver",
]
