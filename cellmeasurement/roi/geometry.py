"""
Geometry post-processing for cell boundaries.

Functions:
1. Validation - fix invalid polygons (self-intersections, etc.)
2. Boundary estimation - grow a nucleus outline into a synthetic cell
3. Half-plane construction used to split overlapping cells

All geometries are shapely objects in full-resolution pixel coordinates.
"""

from typing import Optional, Tuple

import numpy as np
from shapely import affinity
from shapely.geometry import Polygon
from shapely.geometry.base import BaseGeometry
from shapely.validation import make_valid


def validate_polygon(geometry: BaseGeometry, keep_largest: bool = True) -> Optional[BaseGeometry]:
    """
    Validate and fix a shapely geometry.

    Handles:
    - Self-intersecting polygons
    - GeometryCollection results (non-polygonal parts dropped)
    - MultiPolygon results (largest part kept when keep_largest is set)
    - Empty geometries

    Args:
        geometry: Shapely geometry
        keep_largest: Reduce MultiPolygons to their largest part

    Returns:
        Valid Polygon/MultiPolygon, or None if nothing polygonal remains
    """
    if geometry is None or geometry.is_empty:
        return None

    if not geometry.is_valid:
        geometry = make_valid(geometry)

    if geometry.geom_type == 'Polygon':
        return geometry
    if geometry.geom_type == 'MultiPolygon':
        if keep_largest:
            return max(geometry.geoms, key=lambda p: p.area)
        return geometry
    if geometry.geom_type == 'GeometryCollection':
        polys = []
        for g in geometry.geoms:
            if g.geom_type == 'Polygon':
                polys.append(g)
            elif g.geom_type == 'MultiPolygon':
                polys.extend(g.geoms)
        if not polys:
            return None
        return max(polys, key=lambda p: p.area)
    return None


def estimate_cell_boundary(
    nucleus: BaseGeometry,
    distance: float,
    nucleus_scale: float = 1.0,
) -> BaseGeometry:
    """
    Estimate a cell boundary by growing a nucleus outline.

    Args:
        nucleus: Nucleus geometry
        distance: Outward expansion in pixels
        nucleus_scale: When > 1, the expansion is also limited to the
            nucleus scaled by this factor about its centroid. Values <= 1
            leave the buffered outline unconstrained.

    Returns:
        Estimated cell geometry (the nucleus itself if expansion fails)
    """
    expanded = nucleus.buffer(distance)

    if nucleus_scale > 1.0 and not nucleus.is_empty:
        centroid = nucleus.centroid
        limit = affinity.scale(nucleus, xfact=nucleus_scale, yfact=nucleus_scale, origin=centroid)
        expanded = expanded.intersection(limit.buffer(0)).union(nucleus)

    expanded = validate_polygon(expanded)
    return expanded if expanded is not None else nucleus


def half_plane(
    origin: Tuple[float, float],
    toward: Tuple[float, float],
    extent: float,
) -> Optional[Polygon]:
    """
    Polygon covering the points closer to ``toward`` than to ``origin``.

    The half-plane is bounded by the perpendicular bisector of the two points
    and clipped to a square of size ``extent`` around the midpoint.

    Returns:
        Polygon, or None when the two points coincide
    """
    p = np.asarray(origin, dtype=float)
    q = np.asarray(toward, dtype=float)
    direction = q - p
    norm = float(np.hypot(direction[0], direction[1]))
    if norm == 0.0 or not np.isfinite(norm):
        return None

    n = direction / norm
    perp = np.array([-n[1], n[0]])
    mid = (p + q) / 2.0
    corners = [
        mid + perp * extent,
        mid + perp * extent + n * extent,
        mid - perp * extent + n * extent,
        mid - perp * extent,
    ]
    return Polygon([tuple(c) for c in corners])
