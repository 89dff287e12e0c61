"""Tests for the linear system orchestrator and its backends."""

import numpy as np
import pytest
from scipy.sparse import diags

from meshing import CartesianMesh
from solvers import LinearSolverParameters, SolverDivergedError
from solvers.linear_solvers import ConvergenceReason, LinearSystem, pin_null_space, scipy_solver
from solvers.operators import generate_diagonal_matrices, generate_G, generate_QTBNQ


def laplacian_1d(n):
    """SPD tridiagonal matrix (Dirichlet 1D Laplacian)."""
    return diags([-np.ones(n - 1), 2.0 * np.ones(n), -np.ones(n - 1)], [-1, 0, 1]).tocsr()


@pytest.fixture
def poisson_matrix():
    mesh = CartesianMesh.uniform((10, 8))
    _, _, BN = generate_diagonal_matrices(mesh, 0.01)
    G, _ = generate_G(mesh)
    QTBNQ = generate_QTBNQ(G.T.tocsr(), (diags(BN) @ G).tocsr())
    null = np.ones(mesh.n_pressure) / np.sqrt(mesh.n_pressure)
    return QTBNQ, null


class TestScipySolver:
    @pytest.mark.parametrize(
        "method,preconditioner",
        [
            ("cg", "none"),
            ("cg", "jacobi"),
            ("cg", "amg"),
            ("bicgstab", "ilu"),
            ("gmres", "jacobi"),
            ("direct", "none"),
        ],
    )
    def test_solves_spd_system(self, method, preconditioner):
        A = laplacian_1d(50)
        x_true = np.sin(np.linspace(0.0, 3.0, 50))
        x, M, its, reason = scipy_solver(
            A, A @ x_true, method=method, preconditioner=preconditioner, rtol=1e-12, max_iterations=5000
        )
        assert reason > 0
        np.testing.assert_allclose(x, x_true, atol=1e-8)

    def test_iteration_limit_is_divergence(self):
        A = laplacian_1d(50)
        _, _, its, reason = scipy_solver(A, np.ones(50), method="cg", rtol=1e-14, max_iterations=2)
        assert reason == ConvergenceReason.DIVERGED_ITS
        assert its == 2

    def test_zero_rhs_converges_immediately(self):
        A = laplacian_1d(10)
        x, _, its, reason = scipy_solver(A, np.zeros(10), method="cg")
        assert reason > 0
        np.testing.assert_array_equal(x, 0.0)

    def test_preconditioner_reused(self):
        A = laplacian_1d(20)
        _, M, _, _ = scipy_solver(A, np.ones(20), preconditioner="amg")
        _, M2, _, _ = scipy_solver(A, np.ones(20), M=M, preconditioner="amg")
        assert M2 is M


class TestLinearSystem:
    def test_divergence_raises(self):
        settings = LinearSolverParameters(method="cg", preconditioner="none", rtol=1e-14, max_iterations=1)
        system = LinearSystem("velocity", laplacian_1d(30), settings)
        x = np.zeros(30)
        with pytest.raises(SolverDivergedError) as excinfo:
            system.solve(np.ones(30), x, step=7)
        err = excinfo.value
        assert err.system == "velocity"
        assert err.reason == ConvergenceReason.DIVERGED_ITS
        assert err.step == 7
        assert "reason -3 at time step 7" in str(err)

    def test_solution_in_place_and_iterations(self):
        settings = LinearSolverParameters(method="cg", preconditioner="jacobi", rtol=1e-10)
        A = laplacian_1d(25)
        system = LinearSystem("velocity", A, settings)
        x = np.zeros(25)
        its = system.solve(np.ones(25), x, step=1)
        assert its == system.iterations > 0
        np.testing.assert_allclose(A @ x, 1.0, atol=1e-8)

    @pytest.mark.parametrize("method,preconditioner", [("cg", "jacobi"), ("cg", "amg"), ("direct", "none")])
    def test_null_space_projected(self, poisson_matrix, method, preconditioner):
        QTBNQ, null = poisson_matrix
        settings = LinearSolverParameters(method=method, preconditioner=preconditioner, rtol=1e-10)
        system = LinearSystem("poisson", QTBNQ, settings, null_vector=null)
        rng = np.random.default_rng(1)
        rhs = rng.standard_normal(QTBNQ.shape[0])  # not in the range of QTBNQ
        x = np.zeros_like(rhs)
        system.solve(rhs, x, step=1)

        projected = rhs - null.dot(rhs) * null
        assert abs(null.dot(x)) < 1e-8 * np.abs(x).max()
        np.testing.assert_allclose(QTBNQ @ x, projected, atol=1e-6 * np.abs(projected).max())

    def test_direct_matches_iterative(self, poisson_matrix):
        QTBNQ, null = poisson_matrix
        rhs = np.linspace(-1.0, 1.0, QTBNQ.shape[0])
        x_cg = np.zeros_like(rhs)
        x_lu = np.zeros_like(rhs)
        LinearSystem("p", QTBNQ, LinearSolverParameters(rtol=1e-12), null).solve(rhs, x_cg, 0)
        LinearSystem("p", QTBNQ, LinearSolverParameters(method="direct"), null).solve(rhs, x_lu, 0)
        np.testing.assert_allclose(x_lu, x_cg, atol=1e-6 * np.abs(x_lu).max())

    def test_pin_null_space(self, poisson_matrix):
        QTBNQ, null = poisson_matrix
        pinned, pin = pin_null_space(QTBNQ, null)
        assert pin == 0
        assert pinned[0, 0] == 1.0
        assert pinned[0].nnz == 1 and pinned[:, 0].nnz == 1
        assert abs(pinned - pinned.T).max() < 1e-14


class TestPetscBackend:
    def test_petsc_solve(self, poisson_matrix):
        pytest.importorskip("petsc4py")
        QTBNQ, null = poisson_matrix
        settings = LinearSolverParameters(backend="petsc", method="cg", preconditioner="jacobi", rtol=1e-10)
        system = LinearSystem("poisson", QTBNQ, settings, null_vector=null)
        rhs = np.linspace(-1.0, 1.0, QTBNQ.shape[0])
        x = np.zeros_like(rhs)
        system.solve(rhs, x, step=1)
        system.close()
        projected = rhs - null.dot(rhs) * null
        np.testing.assert_allclose(QTBNQ @ x, projected, atol=1e-6 * np.abs(projected).max())
