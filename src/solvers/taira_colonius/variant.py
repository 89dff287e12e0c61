"""Immersed-boundary projection method of Taira & Colonius (2007).

The Lagrange vector holds the pressure followed by one force block per
direction. With Q = [G, E^T] the projection enforces both continuity and
the no-slip condition E q = U_B at the markers; the marker velocities U_B
enter the force blocks of r2.
"""

import logging

import numpy as np
from scipy.sparse import hstack, vstack

from ..base import LambdaLayout, SolverVariant
from ..errors import ConfigurationError
from ..operators.immersed import generate_E

log = logging.getLogger(__name__)

FORCE_BLOCKS = ("force_x", "force_y", "force_z")


class TairaColoniusVariant(SolverVariant):
    """Variant carrying the immersed bodies.

    Parameters
    ----------
    bodies : list of ImmersedBody
        Bodies whose markers are stacked in order.
    """

    name = "taira_colonius"
    solver_type = "TAIRA_COLONIUS"

    def __init__(self, bodies):
        if not bodies:
            raise ConfigurationError("The Taira-Colonius solver needs at least one immersed body")
        dims = {body.dim for body in bodies}
        if len(dims) != 1:
            raise ConfigurationError(f"Immersed bodies have mixed dimensions: {sorted(dims)}")
        self.bodies = list(bodies)
        self.dim = dims.pop()
        self.markers = np.vstack([b.coordinates for b in self.bodies])
        self.marker_velocity = np.vstack([b.velocity for b in self.bodies])
        counts = [b.n_markers for b in self.bodies]
        self.body_offsets = np.concatenate(([0], np.cumsum(counts))).astype(int)
        self.E = None

    @property
    def n_markers(self):
        return self.markers.shape[0]

    def assemble_lambda_layout(self, mesh):
        if mesh.dim != self.dim:
            raise ConfigurationError(f"Bodies are {self.dim}D but the mesh is {mesh.dim}D")
        names = ("pressure",) + FORCE_BLOCKS[: mesh.dim]
        sizes = (mesh.n_pressure,) + (self.n_markers,) * mesh.dim
        return LambdaLayout(names=names, sizes=sizes)

    def assemble_operators(self, mesh, G, BN, RInv):
        E, e_pre = generate_E(mesh, self.markers, RInv)
        empty = np.flatnonzero(np.diff(E.indptr) == 0)
        if empty.size:
            k = int(empty[0] % self.n_markers)
            raise ConfigurationError(
                f"Marker {k} at {self.markers[k].tolist()} has no grid support inside the domain"
            )
        self.E = E

        Q = hstack([G, E.T]).tocsr()
        QT = vstack([G.T, E]).tocsr()
        BNQ = self.scale_rows(BN, Q)
        log.info(f"Immersed boundary: {len(self.bodies)} bodies, {self.n_markers} markers, E nnz={E.nnz}")
        return QT, BNQ, {"E": e_pre}

    def assemble_boundary_residual(self, layout, r2):
        for c, name in enumerate(layout.names[1:]):
            layout.block(r2, name)[:] = self.marker_velocity[:, c]
        return r2

    def body_forces(self, layout, lambda_):
        """Sum of the marker forces of each body, shape (n_bodies, dim)."""
        f = np.column_stack([layout.block(lambda_, name) for name in layout.names[1:]])
        return np.array(
            [f[self.body_offsets[b]:self.body_offsets[b + 1]].sum(axis=0) for b in range(len(self.bodies))]
        )

    def info(self):
        names = ", ".join(f"{b.name} ({b.n_markers})" for b in self.bodies)
        return f"Solver: {self.name}, bodies: {names}"
