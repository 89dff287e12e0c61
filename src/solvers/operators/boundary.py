"""Ghosted local velocity arrays and domain-boundary conditions.

Each velocity component is held in a local array padded with one ghost
layer per side. Ghost layers along a periodic direction are images of the
opposite interior layer; along other directions they store the boundary
value (normal component: the boundary face; tangential components: the
boundary itself, half a cell away from the first node).
"""

import numpy as np

from .laplacian import shifted


def create_local_arrays(mesh):
    """Zeroed ghosted arrays, one per velocity component."""
    return [np.zeros(tuple(n + 2 for n in shape)) for shape in mesh.velocity_shapes]


def scatter_fluxes(mesh, q, RInv, local):
    """Write the velocities RInv q into the interior of the local arrays."""
    u = RInv * q
    interior = shifted(mesh.dim, 0, 0)
    for c in range(mesh.dim):
        local[c][interior] = u[mesh.velocity_slice(c)].reshape(mesh.velocity_shapes[c])
    apply_periodic(mesh, local)


def apply_periodic(mesh, local):
    """Copy periodic images into the ghost layers (corners included)."""
    for c in range(mesh.dim):
        arr = local[c]
        for d in range(mesh.dim):
            if not mesh.periodic[d]:
                continue
            arr[_layer(mesh.dim, d, 0)] = arr[_layer(mesh.dim, d, -2)]
            arr[_layer(mesh.dim, d, -1)] = arr[_layer(mesh.dim, d, 1)]


def _layer(dim, d, i):
    index = [slice(None)] * dim
    index[d] = slice(i, i + 1 if i != -1 else None)
    return tuple(index)


def initialize_ghosts(mesh, flow, local):
    """Fill every ghost with the initial velocity, then apply the boundary conditions."""
    for c in range(mesh.dim):
        interior = local[c][shifted(mesh.dim, 0, 0)].copy()
        local[c][...] = flow.initial_velocity[c]
        local[c][shifted(mesh.dim, 0, 0)] = interior
    update_boundary_ghosts(mesh, flow, local, dt=0.0)


def update_boundary_ghosts(mesh, flow, local, dt):
    """Advance ghost values to the next time level.

    DIRICHLET:  ghost = value
    NEUMANN:    ghost = interior +/- value * distance
    CONVECTIVE: ghost -= value * dt * (d ghost / dn), one-sided along the axis,
                then shifted by conserve_outflow
    """
    for d in range(mesh.dim):
        if mesh.periodic[d]:
            continue
        for side, face in ((0, 2 * d), (1, 2 * d + 1)):
            ghost = _layer(mesh.dim, d, 0 if side == 0 else -1)
            inner = _layer(mesh.dim, d, 1 if side == 0 else -2)
            for c in range(mesh.dim):
                bc = flow.bc(face, c)
                arr = local[c]
                dist = mesh.spacings[c][d][0 if side == 0 else -1]
                sign = -1.0 if side == 0 else 1.0
                if bc.type == "DIRICHLET":
                    arr[ghost] = bc.value
                elif bc.type == "NEUMANN":
                    arr[ghost] = arr[inner] + sign * bc.value * dist
                elif bc.type == "CONVECTIVE":
                    gradient = sign * (arr[ghost] - arr[inner]) / dist
                    arr[ghost] = arr[ghost] - bc.value * dt * gradient
    conserve_outflow(mesh, flow, local)
    apply_periodic(mesh, local)


def net_boundary_outflow(mesh, local):
    """Total flux leaving the domain through its non-periodic faces."""
    total = 0.0
    for c in range(mesh.dim):
        if mesh.periodic[c]:
            continue
        area = mesh.boundary_face_areas(c)
        total += np.sum(local[c][_interior_layer(mesh.dim, c, -1)] * area)
        total -= np.sum(local[c][_interior_layer(mesh.dim, c, 0)] * area)
    return total


def conserve_outflow(mesh, flow, local):
    """Shift the normal velocity on convective faces so that no net mass enters.

    The same outward velocity correction is applied on every convective
    face; without convective faces the boundary data is left untouched.
    Returns the applied correction.
    """
    faces = []
    outflow_area = 0.0
    for c in range(mesh.dim):
        if mesh.periodic[c]:
            continue
        for side, face in ((0, 2 * c), (1, 2 * c + 1)):
            if flow.bc(face, c).type == "CONVECTIVE":
                faces.append((c, side))
                outflow_area += np.sum(mesh.boundary_face_areas(c))
    if not faces:
        return 0.0

    correction = -net_boundary_outflow(mesh, local) / outflow_area
    for c, side in faces:
        layer = _interior_layer(mesh.dim, c, 0 if side == 0 else -1)
        local[c][layer] += correction if side == 1 else -correction
    return correction


def boundary_flux_residual(mesh, local, out):
    """Add the domain-boundary normal fluxes to the pressure block of r2.

    With QT = G^T (the negative divergence over interior faces), the
    projected field satisfies QT q = r2; cells next to a boundary face
    receive -q_boundary on the minus side and +q_boundary on the plus side,
    so that the full divergence (boundary faces included) vanishes.
    """
    p = out.reshape(mesh.n)
    for c in range(mesh.dim):
        if mesh.periodic[c]:
            continue
        area = mesh.boundary_face_areas(c)
        minus = local[c][_interior_layer(mesh.dim, c, 0)]
        plus = local[c][_interior_layer(mesh.dim, c, -1)]
        p[_layer(mesh.dim, c, 0)] -= minus * area
        p[_layer(mesh.dim, c, -1)] += plus * area
    return out


def _interior_layer(dim, d, i):
    index = [slice(1, -1)] * dim
    index[d] = slice(i, i + 1 if i != -1 else None)
    return tuple(index)
