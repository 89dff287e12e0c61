"""Select the solver variant from the simulation parameters."""

from .errors import ConfigurationError
from .fractional_step import FractionalStepSolver
from .navier_stokes import NavierStokesVariant
from .taira_colonius import TairaColoniusVariant


def create_solver(mesh, flow, params, bodies=None, directory=None, timers=None):
    """Create a FractionalStepSolver for `params.solver_type`.

    Parameters
    ----------
    bodies : list of ImmersedBody, optional
        Required by TAIRA_COLONIUS, rejected by NAVIER_STOKES.
    """
    if params.solver_type == "NAVIER_STOKES":
        if bodies:
            raise ConfigurationError("Immersed bodies require solver_type TAIRA_COLONIUS")
        variant = NavierStokesVariant()
    elif params.solver_type == "TAIRA_COLONIUS":
        variant = TairaColoniusVariant(bodies or [])
    else:
        raise ConfigurationError(f"Unknown solver type: {params.solver_type}")
    return FractionalStepSolver(mesh, flow, params, variant=variant, timers=timers, directory=directory)
