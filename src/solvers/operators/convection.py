"""Explicit convective term in conservative form, d(u_c u_d)/dx_d.

Second-order central differences on the staggered grid:
- d == c: u_c is averaged to the cell centres between two nodes
  (exact midpoint of the two faces) and squared.
- d != c: the product is formed at the cell edges; u_c is interpolated
  along d and u_d along c, both linearly with the local spacings.
Ghost layers must be up to date (boundary values and periodic images).
"""

import numpy as np


def _take(arr, axis, start, stop):
    index = [slice(None)] * arr.ndim
    index[axis] = slice(start, stop)
    return arr[tuple(index)]


def _interior_except(arr, keep):
    """Strip the ghost layers of every axis not listed in `keep`."""
    index = [slice(None) if e in keep else slice(1, -1) for e in range(arr.ndim)]
    return arr[tuple(index)]


def convection_component(mesh, c, local):
    """H_c = sum_d d(u_c u_d)/dx_d on the interior nodes of component c.

    `local` holds the ghosted arrays of every component.
    """
    dim = mesh.dim
    H = np.zeros(mesh.velocity_shapes[c])
    uc = local[c]

    for d in range(dim):
        if d == c:
            line = _interior_except(uc, keep=(c,))
            mid = 0.5 * (_take(line, c, 0, -1) + _take(line, c, 1, None))
            flux = mid * mid
            width = mesh.widths[c][c]
        else:
            ud = local[d]

            # u_c at the cell edges along d: linear between ghosted nodes k and k+1
            xc = mesh.coords[c][d]
            edges = mesh.edges[d]
            t = (edges - xc[:-1]) / (xc[1:] - xc[:-1])
            line_c = _interior_except(uc, keep=(d,))
            uc_edge = (
                (1.0 - mesh.broadcast(t, d)) * _take(line_c, d, 0, -1)
                + mesh.broadcast(t, d) * _take(line_c, d, 1, None)
            )

            # u_d at the faces of component c along c: between cells i and i+1
            w = mesh.cell_widths[c]
            n_nodes = mesh.velocity_shapes[c][c]
            w_next = np.roll(w, -1)[:n_nodes]
            s = w[:n_nodes] / (w[:n_nodes] + w_next)
            keep = (c, d)
            line_d = _interior_except(ud, keep=keep)
            line_d = _take(line_d, d, 0, mesh.n[d] + 1)
            ud_face = (
                (1.0 - mesh.broadcast(s, c)) * _take(line_d, c, 1, n_nodes + 1)
                + mesh.broadcast(s, c) * _take(line_d, c, 2, n_nodes + 2)
            )

            flux = uc_edge * ud_face
            width = mesh.cell_widths[d]

        H += (_take(flux, d, 1, None) - _take(flux, d, 0, -1)) / mesh.broadcast(width, d)

    return H


def convection_term(mesh, local):
    """Packed convective term over all components (velocity units)."""
    return np.concatenate([convection_component(mesh, c, local).ravel() for c in range(mesh.dim)])
