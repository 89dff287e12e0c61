"""Row-partitioned sparse assembly with exact preallocation.

Every operator is assembled in two passes, the way a distributed AIJ matrix is:
1. `preallocate` receives the stencil pattern (row, col pairs) and counts, for
   every partition, the non-zeros of each owned row that fall inside
   ("diagonal" block) and outside ("off-diagonal" block) the partition's
   column range.
2. `assemble` receives the values; an entry outside the preallocated pattern
   raises `AssemblyError`.
"""

from dataclasses import dataclass
from typing import List, Tuple

import numpy as np
from numba import njit
from scipy.sparse import coo_matrix, csr_matrix

from ..errors import AssemblyError


@njit
def count_num_nonzeros(cols, row_start, row_end):
    """Split the column indices of one row into owned and off-process counts.

    Parameters
    ----------
    cols : np.ndarray
        Column indices of the non-zeros of the row (int64).
    row_start, row_end : int
        Owned range [row_start, row_end) of the vector the row multiplies.

    Returns
    -------
    d_nnz, o_nnz : int
        Number of columns inside and outside the owned range.
    """
    d_nnz = 0
    o_nnz = 0
    for i in range(cols.shape[0]):
        if cols[i] >= row_start and cols[i] < row_end:
            d_nnz += 1
        else:
            o_nnz += 1
    return d_nnz, o_nnz


@njit
def _count_partition(indptr, indices, row_begin, row_end, col_start, col_end, d_nnz, o_nnz):
    for r in range(row_begin, row_end):
        d, o = count_num_nonzeros(indices[indptr[r]:indptr[r + 1]], col_start, col_end)
        d_nnz[r - row_begin] = d
        o_nnz[r - row_begin] = o


@dataclass
class Preallocation:
    """Per-row non-zero counts of one partition."""

    rows: Tuple[int, int]
    cols: Tuple[int, int]
    d_nnz: np.ndarray
    o_nnz: np.ndarray

    @property
    def nnz(self):
        return int(self.d_nnz.sum() + self.o_nnz.sum())


class SparseAssembler:
    """Assemble one operator over the row/column layouts of the mesh partitions.

    Parameters
    ----------
    name : str
        Operator name (used in error messages).
    shape : tuple of int
        Global shape of the operator.
    row_ranges, col_ranges : list of (int, int)
        Ownership ranges of the rows and of the vector the operator multiplies,
        one pair per partition.
    """

    def __init__(self, name, shape, row_ranges, col_ranges):
        if len(row_ranges) != len(col_ranges):
            raise AssemblyError(f"{name}: row and column layouts have different partition counts")
        self.name = name
        self.shape = tuple(int(s) for s in shape)
        self.row_ranges = row_ranges
        self.col_ranges = col_ranges
        self.pattern = None
        self.preallocation: List[Preallocation] = []

    @classmethod
    def for_mesh(cls, name, mesh, shape):
        return cls(name, shape, mesh.ownership_ranges(shape[0]), mesh.ownership_ranges(shape[1]))

    def preallocate(self, rows, cols):
        """Record the non-zero pattern and count d_nnz/o_nnz per partition."""
        rows = np.asarray(rows, dtype=np.int64)
        cols = np.asarray(cols, dtype=np.int64)
        ones = np.ones(rows.size, dtype=np.int8)
        pattern = coo_matrix((ones, (rows, cols)), shape=self.shape).tocsr()
        pattern.sum_duplicates()
        pattern.data[:] = 1
        self.pattern = pattern

        indptr = pattern.indptr.astype(np.int64)
        indices = pattern.indices.astype(np.int64)
        self.preallocation = []
        for (r0, r1), (c0, c1) in zip(self.row_ranges, self.col_ranges):
            d_nnz = np.zeros(r1 - r0, dtype=np.int64)
            o_nnz = np.zeros(r1 - r0, dtype=np.int64)
            _count_partition(indptr, indices, r0, r1, c0, c1, d_nnz, o_nnz)
            self.preallocation.append(Preallocation((r0, r1), (c0, c1), d_nnz, o_nnz))

        total = sum(p.nnz for p in self.preallocation)
        if total != pattern.nnz:
            raise AssemblyError(f"{self.name}: preallocated {total} non-zeros, pattern has {pattern.nnz}")
        return self.preallocation

    def assemble(self, rows, cols, values) -> csr_matrix:
        """Insert values (duplicates are summed) into the preallocated pattern."""
        if self.pattern is None:
            raise AssemblyError(f"{self.name}: assemble() called before preallocate()")

        rows = np.asarray(rows, dtype=np.int64)
        cols = np.asarray(cols, dtype=np.int64)
        # Structural check: every inserted (row, col) must belong to the pattern
        touched = coo_matrix((np.ones(rows.size, dtype=np.int8), (rows, cols)), shape=self.shape).tocsr()
        touched.sum_duplicates()
        touched.data[:] = 1
        outside = touched - touched.multiply(self.pattern)
        outside.eliminate_zeros()
        if outside.nnz > 0:
            r, c = outside.nonzero()
            raise AssemblyError(
                f"{self.name}: {outside.nnz} entries outside the preallocated pattern "
                f"(first at row {r[0]}, column {c[0]})"
            )

        matrix = coo_matrix((values, (rows, cols)), shape=self.shape).tocsr()
        matrix.sum_duplicates()
        return matrix

    def build(self, rows, cols, values) -> csr_matrix:
        """Preallocate from the entries' own pattern, then assemble."""
        self.preallocate(rows, cols)
        return self.assemble(rows, cols, values)
