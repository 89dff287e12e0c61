"""Convergence reasons shared by every backend (PETSc KSPConvergedReason codes)."""

from enum import IntEnum


class ConvergenceReason(IntEnum):
    CONVERGED_RTOL = 2
    CONVERGED_ATOL = 3
    CONVERGED_ITS = 4
    DIVERGED_NULL = -2
    DIVERGED_ITS = -3
    DIVERGED_DTOL = -4
    DIVERGED_BREAKDOWN = -5
    DIVERGED_NANORINF = -9


def describe(reason):
    """Name of a reason code, or the bare code for values outside the enum."""
    try:
        return ConvergenceReason(reason).name
    except ValueError:
        return str(int(reason))
