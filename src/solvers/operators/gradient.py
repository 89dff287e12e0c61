"""Discrete gradient G and the product QT BN Q."""

from math import prod

import numpy as np
from scipy.sparse import csr_matrix

from .assembly import SparseAssembler


def generate_G(mesh):
    """Assemble the gradient G (n_fluxes x n_pressure).

    The flux on the face between cells i and i+1 along c gets -1 on cell i
    and +1 on cell i+1 (wrapping for periodic directions). G^T is then the
    negative divergence of the interior fluxes.
    """
    cells = np.arange(mesh.n_pressure).reshape(mesh.n)
    rows, cols, vals = [], [], []
    for c in range(mesh.dim):
        shape = mesh.velocity_shapes[c]
        offset = int(mesh.velocity_offsets[c])
        flux = offset + np.arange(prod(shape)).reshape(shape)

        left = cells[tuple(slice(0, shape[d]) for d in range(mesh.dim))]
        right = np.roll(cells, -1, axis=c)[tuple(slice(0, shape[d]) for d in range(mesh.dim))]

        rows.extend([flux.ravel(), flux.ravel()])
        cols.extend([left.ravel(), right.ravel()])
        vals.extend([-np.ones(flux.size), np.ones(flux.size)])

    rows = np.concatenate(rows)
    cols = np.concatenate(cols)
    vals = np.concatenate(vals)
    assembler = SparseAssembler.for_mesh("G", mesh, (mesh.n_fluxes, mesh.n_pressure))
    return assembler.build(rows, cols, vals), assembler.preallocation


def generate_QTBNQ(QT, BNQ) -> csr_matrix:
    """Left-hand side of the Poisson/force system, QT @ BNQ."""
    QTBNQ = (QT @ BNQ).tocsr()
    QTBNQ.sum_duplicates()
    return QTBNQ
