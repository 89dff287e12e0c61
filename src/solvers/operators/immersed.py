"""Regularization/interpolation between the grid and Lagrangian markers.

E interpolates grid velocities (from fluxes) to the markers with the
three-cell discrete delta of Roma, Peskin & Berger (1999):

    U(X_k) = sum_f delta_h(x_f - X_k) u_f V_f = (E q)_k
    E[k, f] = RInv_f * prod_d phi(|x_f,d - X_k,d| / w_f,d)

E^T is the matching regularization: in Q = [G, E^T] the force unknowns
enter the momentum equation as -BN E^T f, i.e. a body force -f_k delta_h on
the fluid, so that the force on body markers is sum_k f_k.
"""

import logging

import numpy as np
from numba import njit

from ..errors import ConfigurationError
from .assembly import SparseAssembler

log = logging.getLogger(__name__)


@njit
def roma_delta(r):
    """One-dimensional Roma kernel phi(r), support |r| < 1.5 (in cell widths)."""
    out = np.zeros(r.shape[0])
    for i in range(r.shape[0]):
        a = abs(r[i])
        if a <= 0.5:
            out[i] = (1.0 + np.sqrt(1.0 - 3.0 * a * a)) / 3.0
        elif a <= 1.5:
            out[i] = (5.0 - 3.0 * a - np.sqrt(1.0 - 3.0 * (1.0 - a) ** 2)) / 6.0
    return out


def _support(nodes, widths, X):
    """Node indices within the kernel support of X and their 1D weights."""
    r = (nodes - X) / widths
    idx = np.nonzero(np.abs(r) < 1.5)[0]
    return idx, roma_delta(np.ascontiguousarray(r[idx]))


def generate_E(mesh, markers, RInv):
    """Assemble E (dim * n_markers x n_fluxes).

    Rows are component-major: all markers for u, then v (then w).

    Parameters
    ----------
    mesh : CartesianMesh
        Staggered mesh.
    markers : np.ndarray
        Marker coordinates, shape (n_markers, dim).
    RInv : np.ndarray
        Inverse face areas (packed).
    """
    n_markers = markers.shape[0]
    rows, cols, vals = [], [], []
    for c in range(mesh.dim):
        nodes = mesh.velocity_nodes(c)
        shape = mesh.velocity_shapes[c]
        offset = int(mesh.velocity_offsets[c])
        for k in range(n_markers):
            support = [_support(nodes[d], mesh.widths[c][d], markers[k, d]) for d in range(mesh.dim)]
            if any(idx.size == 0 for idx, _ in support):
                continue
            grids = np.ix_(*[idx for idx, _ in support])
            weights = support[0][1]
            for _, phi in support[1:]:
                weights = np.multiply.outer(weights, phi)
            flat = offset + np.ravel_multi_index(grids, shape).ravel()
            rows.append(np.full(flat.size, c * n_markers + k))
            cols.append(flat)
            vals.append(weights.ravel() * RInv[flat])

    if not rows:
        raise ConfigurationError("No immersed-boundary marker lies inside the mesh")

    rows = np.concatenate(rows)
    cols = np.concatenate(cols)
    vals = np.concatenate(vals)
    shape = (mesh.dim * n_markers, mesh.n_fluxes)
    assembler = SparseAssembler.for_mesh("E", mesh, shape)
    E = assembler.build(rows, cols, vals)
    log.debug(f"Assembled E: {n_markers} markers, {E.nnz} non-zeros")
    return E, assembler.preallocation
