"""Build every operator of the fractional-step method for one mesh."""

import logging
from dataclasses import dataclass, field
from typing import Dict, List

import numpy as np
from scipy.sparse import csr_matrix

from .assembly import Preallocation
from .diagonal import generate_diagonal_matrices
from .gradient import generate_G, generate_QTBNQ
from .laplacian import generate_A

log = logging.getLogger(__name__)


@dataclass
class Operators:
    """Assembled operators (CSR) and diagonal vectors of one simulation."""

    MHat: np.ndarray
    RInv: np.ndarray
    BN: np.ndarray
    A: csr_matrix
    G: csr_matrix
    QT: csr_matrix
    BNQ: csr_matrix
    QTBNQ: csr_matrix
    preallocation: Dict[str, List[Preallocation]] = field(default_factory=dict)


class OperatorBuilder:
    """Assemble A, Q^T, BN Q and Q^T BN Q, with Q supplied by the variant.

    Parameters
    ----------
    mesh : CartesianMesh
        Staggered mesh.
    params : SimulationParameters
        Time-step size and diffusion scheme.
    nu : float
        Kinematic viscosity.
    """

    def __init__(self, mesh, params, nu):
        self.mesh = mesh
        self.params = params
        self.nu = nu

    def build(self, variant) -> Operators:
        mesh, dt = self.mesh, self.params.dt
        MHat, RInv, BN = generate_diagonal_matrices(mesh, dt)
        A, a_pre = generate_A(mesh, MHat, RInv, dt, self.nu, self.params.alpha_implicit)
        G, g_pre = generate_G(mesh)
        QT, BNQ, extra = variant.assemble_operators(mesh, G, BN, RInv)
        QTBNQ = generate_QTBNQ(QT, BNQ)

        preallocation = {"A": a_pre, "G": g_pre}
        preallocation.update(extra)
        log.info(
            f"Operators built: A {A.shape} nnz={A.nnz}, "
            f"QTBNQ {QTBNQ.shape} nnz={QTBNQ.nnz}"
        )
        return Operators(MHat, RInv, BN, A, G, QT, BNQ, QTBNQ, preallocation)
