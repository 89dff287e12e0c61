"""Plain incompressible Navier-Stokes: lambda is the pressure, Q = G."""

from ..base import LambdaLayout, SolverVariant


class NavierStokesVariant(SolverVariant):
    """No immersed bodies; no extra Lagrange blocks or residual."""

    name = "navier_stokes"
    solver_type = "NAVIER_STOKES"

    def assemble_lambda_layout(self, mesh):
        return LambdaLayout(names=("pressure",), sizes=(mesh.n_pressure,))

    def assemble_operators(self, mesh, G, BN, RInv):
        QT = G.T.tocsr()
        BNQ = self.scale_rows(BN, G)
        return QT, BNQ, {}

    def assemble_boundary_residual(self, layout, r2):
        return r2
