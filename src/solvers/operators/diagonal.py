"""Diagonal operators MHat, RInv and BN."""

import numpy as np


def generate_diagonal_matrices(mesh, dt):
    """Compute the diagonal scaling vectors from the grid metrics.

    - MHat: control-volume width along the component direction
    - RInv: inverse face area, converts fluxes to velocities (u = RInv q)
    - BN:   first-order approximation of A^{-1}, dt / (MHat RInv)

    Parameters
    ----------
    mesh : CartesianMesh
        Staggered mesh.
    dt : float
        Time-step size.

    Returns
    -------
    MHat, RInv, BN : np.ndarray
        Packed vectors of length mesh.n_fluxes.
    """
    MHat = np.empty(mesh.n_fluxes)
    RInv = np.empty(mesh.n_fluxes)
    for c in range(mesh.dim):
        s = mesh.velocity_slice(c)
        shape = mesh.velocity_shapes[c]
        MHat[s] = np.broadcast_to(mesh.broadcast(mesh.widths[c][c], c), shape).ravel()
        RInv[s] = (1.0 / mesh.face_areas(c)).ravel()
    BN = dt / (MHat * RInv)
    return MHat, RInv, BN
