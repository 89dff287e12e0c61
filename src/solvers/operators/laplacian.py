"""Finite-volume Laplacian on the staggered grid and the implicit operator A.

The same stencil coefficients serve three purposes:
- `apply_laplacian` evaluates L u on a ghosted local array (explicit diffusion),
- `ghost_laplacian` keeps only the ghost contributions (boundary vector bc1),
- `laplacian_triplets` assembles L on interior unknowns (implicit operator A).
For every ghosted array: L_matrix @ interior + ghost_laplacian == apply_laplacian.
"""

import logging
from math import prod

import numpy as np

from .assembly import SparseAssembler

log = logging.getLogger(__name__)


def shifted(dim, d, k):
    """Slice of the interior of a ghosted array, shifted by k nodes along d."""
    def one(e):
        if e != d or k == 0:
            return slice(1, -1)
        return slice(1 + k, None if k == 1 else -1 + k)
    return tuple(one(e) for e in range(dim))


def stencil_coefficients(mesh, c, d):
    """East/west coefficients of the second derivative of component c along d."""
    dL = mesh.spacings[c][d]
    w = mesh.widths[c][d]
    return 1.0 / (w * dL[1:]), 1.0 / (w * dL[:-1])


def apply_laplacian(mesh, c, local):
    """L u for component c evaluated on its ghosted local array."""
    interior = shifted(mesh.dim, 0, 0)
    out = np.zeros(mesh.velocity_shapes[c])
    center = local[interior]
    for d in range(mesh.dim):
        east, west = stencil_coefficients(mesh, c, d)
        out += mesh.broadcast(east, d) * (local[shifted(mesh.dim, d, 1)] - center)
        out -= mesh.broadcast(west, d) * (center - local[shifted(mesh.dim, d, -1)])
    return out


def ghost_only(mesh, c, local):
    """Copy of a ghosted array with interior and periodic images zeroed."""
    ghosts = local.copy()
    ghosts[shifted(mesh.dim, 0, 0)] = 0.0
    for d in range(mesh.dim):
        if mesh.periodic[d]:
            index = [slice(None)] * mesh.dim
            index[d] = [0, -1]
            ghosts[tuple(index)] = 0.0
    return ghosts


def laplacian_packed(mesh, local):
    """Packed L u over all components."""
    return np.concatenate([apply_laplacian(mesh, c, local[c]).ravel() for c in range(mesh.dim)])


def ghost_laplacian(mesh, local):
    """Packed ghost contribution of L (boundary values only)."""
    return np.concatenate(
        [apply_laplacian(mesh, c, ghost_only(mesh, c, local[c])).ravel() for c in range(mesh.dim)]
    )


def laplacian_triplets(mesh, c):
    """COO triplets of L for component c on its interior unknowns.

    Ghost neighbours are dropped (they enter through bc1); periodic
    neighbours wrap around.
    """
    shape = mesh.velocity_shapes[c]
    idx = np.arange(prod(shape)).reshape(shape)
    diag = np.zeros(shape)
    rows, cols, vals = [], [], []

    for d in range(mesh.dim):
        east, west = stencil_coefficients(mesh, c, d)
        for k, coef in ((1, east), (-1, west)):
            coef_full = np.broadcast_to(mesh.broadcast(coef, d), shape)
            diag -= coef_full

            pos = np.arange(shape[d]) + k
            if mesh.periodic[d]:
                valid = np.ones(shape[d], dtype=bool)
            else:
                valid = (pos >= 0) & (pos < shape[d])
            valid_full = np.broadcast_to(mesh.broadcast(valid, d), shape)

            neighbor = np.roll(idx, -k, axis=d)
            rows.append(idx[valid_full])
            cols.append(neighbor[valid_full])
            vals.append(coef_full[valid_full])

    rows.append(idx.ravel())
    cols.append(idx.ravel())
    vals.append(diag.ravel())
    return np.concatenate(rows), np.concatenate(cols), np.concatenate(vals)


def generate_A(mesh, MHat, RInv, dt, nu, alpha_implicit):
    """Assemble A = MHat (I/dt - alpha_implicit nu L) RInv on the packed fluxes.

    Symmetric by construction: MHat L RInv only couples nodes through
    products of control-volume widths that are shared by both neighbours.
    """
    rows, cols, vals = [], [], []
    for c in range(mesh.dim):
        offset = int(mesh.velocity_offsets[c])
        r, k, v = laplacian_triplets(mesh, c)
        rows.append(r + offset)
        cols.append(k + offset)
        vals.append(v)
    rows = np.concatenate(rows)
    cols = np.concatenate(cols)
    vals = -alpha_implicit * nu * MHat[rows] * np.concatenate(vals) * RInv[cols]

    # Time-derivative part on the diagonal
    diag = np.arange(mesh.n_fluxes)
    rows = np.concatenate((rows, diag))
    cols = np.concatenate((cols, diag))
    vals = np.concatenate((vals, MHat * RInv / dt))

    assembler = SparseAssembler.for_mesh("A", mesh, (mesh.n_fluxes, mesh.n_fluxes))
    A = assembler.build(rows, cols, vals)
    log.debug(f"Assembled A: {A.shape[0]} rows, {A.nnz} non-zeros")
    return A, assembler.preallocation
