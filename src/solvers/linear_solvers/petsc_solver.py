"""PETSc-based linear solver with KSP reuse and MatNullSpace support."""

import numpy as np
from scipy.sparse import csr_matrix
from petsc4py import PETSc

KSP_TYPES = {"cg": "cg", "bicgstab": "bcgs", "gmres": "gmres", "direct": "preonly"}
PC_TYPES = {"none": "none", "jacobi": "jacobi", "ilu": "ilu", "amg": "gamg"}


def create_ksp(
    A_csr: csr_matrix,
    method="cg",
    preconditioner="gamg",
    rtol=1e-5,
    atol=0.0,
    max_iterations=1000,
    null_vector=None,
):
    """Create a KSP whose operator is set once and reused for every solve.

    Parameters
    ----------
    A_csr : csr_matrix
        Sparse matrix in CSR format.
    method : str, optional
        "cg", "bicgstab", "gmres", "direct" or any PETSc KSP type.
    preconditioner : str, optional
        "none", "jacobi", "ilu", "amg" or any PETSc PC type (default: "gamg").
    null_vector : np.ndarray, optional
        Normalized null-space vector attached to the operator.
    """
    A_petsc = PETSc.Mat().createAIJ(
        size=A_csr.shape, csr=(A_csr.indptr, A_csr.indices, A_csr.data)
    )
    A_petsc.assemble()

    if null_vector is not None:
        nullvec = A_petsc.createVecLeft()
        nullvec.setArray(null_vector)
        nullspace = PETSc.NullSpace().create(vectors=[nullvec])
        A_petsc.setNullSpace(nullspace)

    ksp = PETSc.KSP().create()
    ksp.setOperators(A_petsc)
    ksp.setType(KSP_TYPES.get(method, method))
    ksp.setTolerances(rtol=float(rtol), atol=float(atol), max_it=int(max_iterations))
    pc = ksp.getPC()
    if method == "direct":
        pc.setType("lu")
    else:
        pc.setType(PC_TYPES.get(preconditioner, preconditioner))
    ksp.setFromOptions()
    ksp.setUp()
    return ksp


def petsc_solver(
    A_csr: csr_matrix,
    b_np: np.ndarray,
    x0=None,
    ksp=None,
    **options,
):
    """Solve A x = b using PETSc with KSP reuse.

    Parameters
    ----------
    A_csr : csr_matrix
        Sparse matrix in CSR format (only used when `ksp` is None).
    b_np : np.ndarray
        Right-hand side vector.
    x0 : np.ndarray, optional
        Initial guess.
    ksp : PETSc.KSP, optional
        Reusable KSP solver object. If None, a new KSP is created.
    **options
        Passed to `create_ksp`.

    Returns
    -------
    x_np : np.ndarray
        Solution vector x.
    ksp : PETSc.KSP
        KSP solver (returned for reuse).
    iterations : int
        Number of iterations performed.
    reason : int
        KSPConvergedReason.
    """
    if ksp is None:
        ksp = create_ksp(A_csr, **options)

    b_petsc = PETSc.Vec().createWithArray(np.array(b_np, dtype=PETSc.ScalarType))
    if x0 is not None:
        x_petsc = PETSc.Vec().createWithArray(np.array(x0, dtype=PETSc.ScalarType))
        ksp.setInitialGuessNonzero(ksp.getType() != "preonly")
    else:
        x_petsc = b_petsc.duplicate()
        x_petsc.set(0.0)

    ksp.solve(b_petsc, x_petsc)

    x_np = x_petsc.getArray().copy()
    iterations = ksp.getIterationNumber()
    reason = ksp.getConvergedReason()

    b_petsc.destroy()
    x_petsc.destroy()
    return x_np, ksp, iterations, reason


def destroy_ksp(ksp):
    """Release a KSP and its operator."""
    A_petsc, _ = ksp.getOperators()
    ksp.destroy()
    A_petsc.destroy()
