"""Linear System Orchestrator: the two systems solved at every time step.

System 1:  A q* = rhs1           (intermediate fluxes)
System 2:  QT BN Q lambda = rhs2  (pressure and, with bodies, forces)

Each system keeps its solver handle (preconditioner, factorization or KSP)
for the whole run. System 2 is singular; its normalized null-space vector is
projected out of every right-hand side and every solution.
"""

import logging

import numpy as np
from scipy.sparse import diags

from ..errors import SolverDivergedError
from .reasons import describe
from .scipy_solver import build_preconditioner, scipy_solver

log = logging.getLogger(__name__)


def pin_null_space(A_csr, null_vector):
    """Replace row/column `pin` by the identity so a direct solve is regular.

    `pin` is the first index where the null vector is non-zero. For a
    right-hand side orthogonal to the null space (and zero at `pin`), the
    pinned solution solves the original system.
    """
    pin = int(np.flatnonzero(null_vector)[0])
    keep = np.ones(A_csr.shape[0])
    keep[pin] = 0.0
    D = diags(keep)
    e = np.zeros(A_csr.shape[0])
    e[pin] = 1.0
    pinned = (D @ A_csr @ D + diags(e)).tocsr()
    pinned.eliminate_zeros()
    return pinned, pin


class LinearSystem:
    """One linear system with a persistent solver handle.

    Parameters
    ----------
    name : str
        "velocity" or "poisson" (used in logs and errors).
    matrix : csr_matrix
        System matrix, constant for the whole run.
    settings : LinearSolverParameters
        Backend, method, preconditioner and tolerances.
    null_vector : np.ndarray, optional
        Normalized null-space vector of `matrix`.
    """

    def __init__(self, name, matrix, settings, null_vector=None):
        self.name = name
        self.settings = settings
        self.null_vector = null_vector
        self.matrix = matrix
        self.pin = None
        if settings.method == "direct" and null_vector is not None:
            self.matrix, self.pin = pin_null_space(matrix, null_vector)

        self.iterations = 0
        self.reason = None
        self._handle = self._setup()
        log.info(
            f"{name} system: {matrix.shape[0]} unknowns, {settings.backend}/"
            f"{settings.method}/{settings.preconditioner}, rtol={settings.rtol:g}"
        )

    def _setup(self):
        s = self.settings
        if s.backend == "petsc":
            from .petsc_solver import create_ksp

            null_vector = self.null_vector if self.pin is None else None
            return create_ksp(
                self.matrix, s.method, s.preconditioner, s.rtol, s.atol,
                s.max_iterations, null_vector,
            )
        if s.method != "direct" and s.preconditioner in (None, "none"):
            return None
        return build_preconditioner(self.matrix, s.method, s.preconditioner)

    def _project(self, vec):
        if self.null_vector is not None:
            vec -= self.null_vector.dot(vec) * self.null_vector
        return vec

    def solve(self, rhs, x, step):
        """Solve in place: `x` holds the initial guess and receives the solution.

        Raises
        ------
        SolverDivergedError
            If the backend reports a negative convergence reason.
        """
        s = self.settings
        b = self._project(np.array(rhs, dtype=np.float64))
        if self.pin is not None:
            b[self.pin] = 0.0

        if s.backend == "petsc":
            from .petsc_solver import petsc_solver

            x_new, self._handle, iterations, reason = petsc_solver(
                self.matrix, b, x0=x.copy(), ksp=self._handle
            )
        else:
            x_new, self._handle, iterations, reason = scipy_solver(
                self.matrix, b, x0=x.copy(), M=self._handle, method=s.method,
                preconditioner=s.preconditioner, rtol=s.rtol, atol=s.atol,
                max_iterations=s.max_iterations,
            )

        self.iterations = int(iterations)
        self.reason = int(reason)
        if self.reason < 0:
            log.critical(
                f"{self.name.capitalize()} solve diverged due to reason {self.reason} "
                f"({describe(self.reason)}) at time step {step}"
            )
            raise SolverDivergedError(self.name, self.reason, step)

        x[:] = self._project(x_new)
        log.debug(f"Step {step}: {self.name} solve, {self.iterations} iterations ({describe(self.reason)})")
        return self.iterations

    def close(self):
        if self._handle is not None and self.settings.backend == "petsc":
            from .petsc_solver import destroy_ksp

            destroy_ksp(self._handle)
        self._handle = None


class LinearSystems:
    """System 1 (velocity) and System 2 (Poisson/forces) of the engine."""

    def __init__(self, operators, params, null_vector):
        self.velocity = LinearSystem("velocity", operators.A, params.velocity_solver)
        self.poisson = LinearSystem(
            "poisson", operators.QTBNQ, params.poisson_solver, null_vector=null_vector
        )

    def solve_intermediate_velocity(self, rhs1, q_star, step):
        return self.velocity.solve(rhs1, q_star, step)

    def solve_poisson_system(self, rhs2, lambda_, step):
        return self.poisson.solve(rhs2, lambda_, step)

    @property
    def iterations(self):
        return self.velocity.iterations, self.poisson.iterations

    def close(self):
        self.velocity.close()
        self.poisson.close()
