"""Staggered Cartesian meshes."""

from .cartesian import CartesianMesh, ownership_ranges, segment_edges

__all__ = ["CartesianMesh", "ownership_ranges", "segment_edges"]
