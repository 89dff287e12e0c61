"""Exceptions raised by the fractional-step solver."""


class ConfigurationError(ValueError):
    """Invalid flow description, simulation parameters or mesh/flow mismatch."""


class AssemblyError(RuntimeError):
    """Sparse assembly wrote outside the preallocated non-zero pattern."""


class SolverDivergedError(RuntimeError):
    """A linear solve returned a negative convergence reason.

    Parameters
    ----------
    system : str
        Name of the linear system ("velocity" or "poisson").
    reason : int
        Convergence reason code (PETSc convention, negative on divergence).
    step : int
        Time step at which the solve diverged.
    """

    def __init__(self, system, reason, step):
        self.system = system
        self.reason = int(reason)
        self.step = int(step)
        super().__init__(
            f"{system.capitalize()} solve diverged due to reason {self.reason} "
            f"at time step {self.step}"
        )
