"""
Resolution of overlapping cell boundaries.

Whole-cell masks and estimated boundaries can overlap. For every pair of
overlapping cells the shared area is split along the perpendicular bisector
of the two nucleus centroids, and each cell keeps the side closer to its own
nucleus. Splits are computed against the original outlines, so the result
does not depend on the order of the cells.
"""

from typing import List, Sequence

from shapely.strtree import STRtree

from cellmeasurement.roi.geometry import half_plane, validate_polygon
from cellmeasurement.roi.regions import PairedCell, Region
from cellmeasurement.utils.logging import get_logger

logger = get_logger(__name__)


def _anchor(cell: PairedCell):
    if cell.nucleus is not None:
        return cell.nucleus.centroid
    return cell.membrane.centroid


def constrain_cell_overlaps(cells: Sequence[PairedCell]) -> List[PairedCell]:
    """
    Remove overlaps between neighbouring cell membranes.

    Args:
        cells: Paired cells (not modified)

    Returns:
        New list of cells in the same order. Cells without overlaps are
        returned unchanged; others get a trimmed membrane region that still
        contains their nucleus.
    """
    cells = list(cells)
    if len(cells) < 2:
        return cells

    geometries = [c.membrane.geometry for c in cells]
    tree = STRtree(geometries)

    resolved: List[PairedCell] = []
    n_adjusted = 0
    for i, cell in enumerate(cells):
        geom_i = geometries[i]
        if geom_i.is_empty:
            resolved.append(cell)
            continue

        trimmed = geom_i
        for j in tree.query(geom_i):
            j = int(j)
            if j == i:
                continue
            geom_j = geometries[j]
            shared = geom_i.intersection(geom_j)
            if shared.is_empty or shared.area <= 0:
                continue

            minx, miny, maxx, maxy = geom_i.union(geom_j).bounds
            extent = 2.0 * max(maxx - minx, maxy - miny, 1.0)
            other_side = half_plane(_anchor(cell), _anchor(cells[j]), extent)
            if other_side is None:
                # Coincident nuclei: no way to split, leave both intact
                continue
            trimmed = trimmed.difference(shared.intersection(other_side))

        if trimmed is geom_i:
            resolved.append(cell)
            continue

        if cell.nucleus is not None:
            trimmed = trimmed.union(cell.nucleus.geometry)
        trimmed = validate_polygon(trimmed)
        if trimmed is None:
            logger.warning(f"Cell {cell.index}: overlap resolution removed the membrane, keeping original")
            resolved.append(cell)
            continue

        n_adjusted += 1
        resolved.append(cell.with_membrane(Region.from_geometry(trimmed, label=cell.membrane.label)))

    logger.info(f"Constrained overlaps for {n_adjusted} of {len(cells)} cells")
    return resolved
