"""Sparse operators of the staggered fractional-step discretization."""

from .assembly import Preallocation, SparseAssembler, count_num_nonzeros
from .builder import OperatorBuilder, Operators
from .diagonal import generate_diagonal_matrices
from .gradient import generate_G, generate_QTBNQ
from .immersed import generate_E, roma_delta
from .laplacian import generate_A

__all__ = [
    "Preallocation",
    "SparseAssembler",
    "count_num_nonzeros",
    "OperatorBuilder",
    "Operators",
    "generate_diagonal_matrices",
    "generate_A",
    "generate_G",
    "generate_QTBNQ",
    "generate_E",
    "roma_delta",
]
