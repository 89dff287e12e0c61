"""Extension point of the fractional-step engine.

A variant decides what the Lagrange vector holds, how Q is built and what
enters the right-hand side r2. Everything else (explicit terms, boundary
ghosts, System 1, projection, step counter) is shared by the engine.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Tuple

import numpy as np
from scipy.sparse import diags


@dataclass(frozen=True)
class LambdaLayout:
    """Named contiguous blocks of the Lagrange vector."""

    names: Tuple[str, ...]
    sizes: Tuple[int, ...]

    @property
    def offsets(self):
        return np.concatenate(([0], np.cumsum(self.sizes))).astype(int)

    @property
    def size(self):
        return int(sum(self.sizes))

    def slice(self, name):
        i = self.names.index(name)
        return slice(int(self.offsets[i]), int(self.offsets[i + 1]))

    def block(self, vec, name):
        """View of block `name` inside `vec`."""
        return vec[self.slice(name)]


class SolverVariant(ABC):
    """Abstract base of the solver variants.

    Subclasses must:
    - Set `name` and `solver_type`
    - Implement assemble_lambda_layout() - blocks of the Lagrange vector
    - Implement assemble_operators() - QT and BNQ from G and BN
    - Implement assemble_boundary_residual() - variant part of r2
    """

    name = "base"
    solver_type = None

    @abstractmethod
    def assemble_lambda_layout(self, mesh) -> LambdaLayout:
        pass

    @abstractmethod
    def assemble_operators(self, mesh, G, BN, RInv):
        """Return (QT, BNQ, preallocation dict of the extra operators)."""
        pass

    @abstractmethod
    def assemble_boundary_residual(self, layout, r2):
        """Fill the variant-specific blocks of r2 (pressure block is shared)."""
        pass

    def null_space(self, layout):
        """Normalized null-space vector of QTBNQ: constant pressure, zero elsewhere."""
        vec = np.zeros(layout.size)
        layout.block(vec, "pressure")[:] = 1.0
        return vec / np.linalg.norm(vec)

    def body_forces(self, layout, lambda_):
        """Forces on the immersed bodies, shape (n_bodies, dim); None without bodies."""
        return None

    def info(self):
        return f"Solver: {self.name}"

    @staticmethod
    def scale_rows(BN, Q):
        """BN Q with BN diagonal."""
        return (diags(BN) @ Q).tocsr()
