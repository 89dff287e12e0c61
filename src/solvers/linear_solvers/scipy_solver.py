"""Scipy-based linear solvers with PyAMG/ILU/Jacobi preconditioning."""

import numpy as np
import pyamg
from scipy.sparse import csr_matrix
from scipy.sparse.linalg import LinearOperator, bicgstab, cg, gmres, spilu, splu

from ..errors import ConfigurationError
from .reasons import ConvergenceReason

METHODS = {"cg": cg, "bicgstab": bicgstab, "gmres": gmres}
GMRES_RESTART = 30


def build_preconditioner(A_csr: csr_matrix, method="cg", preconditioner="jacobi"):
    """Preconditioner (or LU factorization for `direct`) built once per matrix.

    Parameters
    ----------
    A_csr : csr_matrix
        System matrix.
    method : str
        Krylov method name, or "direct".
    preconditioner : str
        One of "none", "jacobi", "ilu", "amg".

    Returns
    -------
    M : LinearOperator or None
        For `direct`, a LinearOperator applying A^{-1} through a sparse LU.
    """
    shape = A_csr.shape
    if method == "direct":
        lu = splu(A_csr.tocsc())
        return LinearOperator(shape, matvec=lu.solve)
    if method not in METHODS:
        raise ConfigurationError(f"Unknown scipy method: {method}")

    if preconditioner in (None, "none"):
        return None
    if preconditioner == "jacobi":
        d = A_csr.diagonal()
        inv = np.divide(1.0, d, out=np.ones_like(d), where=d != 0.0)
        return LinearOperator(shape, matvec=lambda x: inv * x)
    if preconditioner == "ilu":
        ilu = spilu(A_csr.tocsc())
        return LinearOperator(shape, matvec=ilu.solve)
    if preconditioner == "amg":
        ml = pyamg.smoothed_aggregation_solver(A_csr, max_coarse=10)
        return ml.aspreconditioner()
    raise ConfigurationError(f"Unknown scipy preconditioner: {preconditioner}")


def scipy_solver(
    A_csr: csr_matrix,
    b_np: np.ndarray,
    x0=None,
    M=None,
    method="cg",
    preconditioner="jacobi",
    rtol=1e-5,
    atol=0.0,
    max_iterations=1000,
):
    """Solve A x = b with a scipy Krylov method or a direct factorization.

    Parameters
    ----------
    A_csr : csr_matrix
        Sparse matrix in CSR format.
    b_np : np.ndarray
        Right-hand side vector.
    x0 : np.ndarray, optional
        Initial guess.
    M : LinearOperator, optional
        Preconditioner (or factorization). If None, it is built here.
    method : str, optional
        "cg", "bicgstab", "gmres" or "direct" (default: "cg").
    preconditioner : str, optional
        Preconditioner name (default: "jacobi").
    rtol, atol : float, optional
        Stop when ||b - A x|| <= max(rtol ||b||, atol).
    max_iterations : int, optional
        Maximum iterations (default: 1000).

    Returns
    -------
    x_np : np.ndarray
        Solution vector.
    M : LinearOperator
        Preconditioner for reuse in subsequent solves.
    iterations : int
        Number of iterations performed.
    reason : ConvergenceReason
        PETSc-style convergence reason.
    """
    if M is None and not (method != "direct" and preconditioner in (None, "none")):
        M = build_preconditioner(A_csr, method, preconditioner)

    if method == "direct":
        x = M.matvec(b_np)
        if not np.all(np.isfinite(x)):
            return x, M, 1, ConvergenceReason.DIVERGED_NANORINF
        return x, M, 1, ConvergenceReason.CONVERGED_ITS

    counter = [0]

    def callback(_):
        counter[0] += 1

    kwargs = dict(x0=x0, rtol=rtol, atol=atol, M=M, callback=callback)
    if method == "gmres":
        restart = min(GMRES_RESTART, max_iterations)
        kwargs.update(
            restart=restart,
            maxiter=-(-max_iterations // restart),
            callback_type="pr_norm",
        )
    else:
        kwargs["maxiter"] = max_iterations

    x, info = METHODS[method](A_csr, b_np, **kwargs)
    iterations = counter[0]

    if not np.all(np.isfinite(x)):
        reason = ConvergenceReason.DIVERGED_NANORINF
    elif info > 0:
        reason = ConvergenceReason.DIVERGED_ITS
    elif info < 0:
        reason = ConvergenceReason.DIVERGED_BREAKDOWN
    elif np.linalg.norm(b_np - A_csr @ x) <= atol:
        reason = ConvergenceReason.CONVERGED_ATOL
    else:
        reason = ConvergenceReason.CONVERGED_RTOL

    return x, M, iterations, reason
