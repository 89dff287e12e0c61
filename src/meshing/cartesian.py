"""
CartesianMesh: staggered Cartesian grid for the fractional-step solver (2D/3D).

Layout Conventions:
- Pressure lives at cell centres, shape (nx, ny[, nz]).
- Velocity component c lives on the faces normal to direction c.
    * Non-periodic c: the n_c - 1 interior faces are unknowns, the two boundary
      faces are ghosts.
    * Periodic c: n_c faces are unknowns (face n_c coincides with face 0).
- Every field is raveled in C order with index [i, j(, k)] = [x, y(, z)].

Ghosted Geometry (per component c and direction d):
- coords[c][d]  : node coordinates including one ghost on each side (n + 2)
- spacings[c][d]: distance between consecutive ghosted nodes (n + 1)
- widths[c][d]  : control-volume width of each interior node (n)
    * Tangential ghosts sit on the boundary itself, half a cell away.

Decomposition:
- `size` partitions share every global vector through contiguous
  PETSc-style ownership ranges. Partitioning only affects assembly layout.
"""

import logging
from math import prod

import numpy as np

log = logging.getLogger(__name__)

DIRECTIONS = ("x", "y", "z")


def segment_edges(start, segments):
    """Cell edges along one direction from a list of segments.

    Parameters
    ----------
    start : float
        Coordinate of the first edge.
    segments : list of dict
        Each segment has ``end``, ``cells`` and an optional ``stretch_ratio``
        (ratio between consecutive cell widths; values below one shrink the
        cells towards ``end``).

    Returns
    -------
    np.ndarray
        Monotonically increasing cell edges.
    """
    edges = [float(start)]
    for seg in segments:
        begin, end = edges[-1], float(seg["end"])
        n = int(seg["cells"])
        r = float(seg.get("stretch_ratio", 1.0))
        length = end - begin
        if n <= 0 or length <= 0.0:
            raise ValueError(f"Invalid segment [{begin}, {end}] with {n} cells")

        if abs(r - 1.0) < 1e-12:
            widths = np.full(n, length / n)
        else:
            h0 = length * (r - 1.0) / (r**n - 1.0)
            widths = h0 * r ** np.arange(n)

        seg_edges = begin + np.cumsum(widths)
        seg_edges[-1] = end  # kill round-off at segment joints
        edges.extend(seg_edges.tolist())
    return np.asarray(edges)


def ownership_ranges(n_global, size):
    """Split [0, n_global) into `size` contiguous ranges (PETSc default layout)."""
    base, extra = divmod(int(n_global), int(size))
    counts = [base + (1 if r < extra else 0) for r in range(size)]
    starts = np.concatenate(([0], np.cumsum(counts)))
    return [(int(starts[r]), int(starts[r + 1])) for r in range(size)]


class CartesianMesh:
    """Staggered Cartesian mesh.

    Parameters
    ----------
    edges : sequence of array_like
        Cell edges along each direction (2 or 3 directions).
    periodic : sequence of bool, optional
        Periodicity per direction (default: none).
    size : int, optional
        Number of cooperating partitions (default: 1).
    """

    def __init__(self, edges, periodic=None, size=1):
        self.dim = len(edges)
        if self.dim not in (2, 3):
            raise ValueError(f"Mesh dimension must be 2 or 3, got {self.dim}")
        if size < 1:
            raise ValueError(f"Number of partitions must be positive, got {size}")

        self.edges = [np.asarray(e, dtype=np.float64) for e in edges]
        self.cell_widths = [np.diff(e) for e in self.edges]
        for d, w in enumerate(self.cell_widths):
            if w.size < 2 or np.any(w <= 0.0):
                raise ValueError(
                    f"Spacing along {DIRECTIONS[d]} must be strictly positive "
                    f"with at least two cells"
                )

        self.cell_centers = [0.5 * (e[:-1] + e[1:]) for e in self.edges]
        self.lengths = [e[-1] - e[0] for e in self.edges]
        self.n = tuple(w.size for w in self.cell_widths)
        self.periodic = tuple(bool(p) for p in (periodic or [False] * self.dim))
        if len(self.periodic) != self.dim:
            raise ValueError("One periodicity flag per direction is required")

        self.size = int(size)
        self.rank = 0

        # --- Staggered layout ---
        self.velocity_shapes = [self._velocity_shape(c) for c in range(self.dim)]
        self.n_velocity = [prod(s) for s in self.velocity_shapes]
        self.velocity_offsets = np.concatenate(([0], np.cumsum(self.n_velocity)))
        self.n_fluxes = int(self.velocity_offsets[-1])
        self.n_pressure = prod(self.n)

        # --- Ghosted geometry ---
        self.coords = [[self._node_coords(c, d) for d in range(self.dim)] for c in range(self.dim)]
        self.spacings = [[np.diff(x) for x in row] for row in self.coords]
        self.widths = [[self._cv_widths(c, d) for d in range(self.dim)] for c in range(self.dim)]

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def uniform(cls, shape, bounds=None, periodic=None, size=1):
        """Uniform mesh with `shape` cells inside `bounds` ((lo, hi) per direction)."""
        if bounds is None:
            bounds = [(0.0, 1.0)] * len(shape)
        edges = [np.linspace(lo, hi, n + 1) for n, (lo, hi) in zip(shape, bounds)]
        return cls(edges, periodic=periodic, size=size)

    @classmethod
    def from_config(cls, cfg, size=1):
        """Build from a mapping with one entry per direction.

        Each entry holds ``start`` and ``segments``; an optional top-level
        ``periodic`` list sets periodicity.
        """
        directions = [d for d in DIRECTIONS if d in cfg]
        edges = [segment_edges(cfg[d]["start"], cfg[d]["segments"]) for d in directions]
        return cls(edges, periodic=cfg.get("periodic"), size=size)

    # ------------------------------------------------------------------
    # Geometry helpers
    # ------------------------------------------------------------------

    def _velocity_shape(self, c):
        return tuple(
            self.n[d] - 1 if (d == c and not self.periodic[d]) else self.n[d]
            for d in range(self.dim)
        )

    def _node_coords(self, c, d):
        e, xc, L = self.edges[d], self.cell_centers[d], self.lengths[d]
        if d == c:
            if self.periodic[d]:
                return np.concatenate(([e[0]], e[1:], [e[1] + L]))
            return e.copy()
        if self.periodic[d]:
            return np.concatenate(([xc[-1] - L], xc, [xc[0] + L]))
        return np.concatenate(([e[0]], xc, [e[-1]]))

    def _cv_widths(self, c, d):
        w = self.cell_widths[d]
        if d != c:
            return w.copy()
        if self.periodic[d]:
            return 0.5 * (w + np.roll(w, -1))
        return 0.5 * (w[:-1] + w[1:])

    def broadcast(self, values, d):
        """Reshape a 1D array along direction d for broadcasting."""
        shape = [1] * self.dim
        shape[d] = -1
        return np.reshape(values, shape)

    def velocity_slice(self, c):
        """Slice of component c inside the packed flux vector."""
        return slice(int(self.velocity_offsets[c]), int(self.velocity_offsets[c + 1]))

    def velocity_nodes(self, c):
        """Interior node coordinates of component c along each direction."""
        return [self.coords[c][d][1:-1] for d in range(self.dim)]

    def face_areas(self, c):
        """Area of the faces carrying component c, shape of the component."""
        area = np.ones(self.velocity_shapes[c])
        for d in range(self.dim):
            if d != c:
                area = area * self.broadcast(self.widths[c][d], d)
        return area

    def boundary_face_areas(self, c):
        """Area of the boundary faces normal to c (shape of a cell slab)."""
        area = np.ones([1 if d == c else self.n[d] for d in range(self.dim)])
        for d in range(self.dim):
            if d != c:
                area = area * self.broadcast(self.cell_widths[d], d)
        return area

    # ------------------------------------------------------------------
    # Decomposition
    # ------------------------------------------------------------------

    def ownership_ranges(self, n_global):
        """Contiguous ownership ranges of a global vector over all partitions."""
        return ownership_ranges(n_global, self.size)

    def __repr__(self):
        return (
            f"CartesianMesh(dim={self.dim}, n={self.n}, periodic={self.periodic}, "
            f"size={self.size})"
        )

    def info(self):
        """Human-readable summary of the mesh."""
        lines = [f"Mesh: {self.dim}D, {' x '.join(str(n) for n in self.n)} cells"]
        for d in range(self.dim):
            w = self.cell_widths[d]
            lines.append(
                f"  {DIRECTIONS[d]}: [{self.edges[d][0]:g}, {self.edges[d][-1]:g}], "
                f"h in [{w.min():.3e}, {w.max():.3e}], periodic={self.periodic[d]}"
            )
        lines.append(f"  fluxes: {self.n_fluxes}, pressure: {self.n_pressure}, partitions: {self.size}")
        return "\n".join(lines)
