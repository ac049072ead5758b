"""
Calibrated shape measurements for cells and nuclei.

Geometries are in pixel units; ``pixel_size_um`` converts lengths to
micrometers and areas to square micrometers.
"""

import enum
import math
from typing import Dict, Iterable, Optional, Sequence

import numpy as np
from shapely.geometry.base import BaseGeometry

from cellmeasurement.processing.parallel import parallel_map
from cellmeasurement.roi.regions import PairedCell
from cellmeasurement.utils.logging import get_logger

logger = get_logger(__name__)


class ShapeFeature(enum.Enum):
    AREA = "area"
    LENGTH = "length"
    CIRCULARITY = "circularity"
    MAX_DIAMETER = "max_diameter"
    MIN_DIAMETER = "min_diameter"
    SOLIDITY = "solidity"
    NUCLEUS_CELL_RATIO = "nucleus_cell_ratio"

    @classmethod
    def parse(cls, value) -> "ShapeFeature":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())


ALL_SHAPE_FEATURES = tuple(ShapeFeature)


def max_diameter(geometry: BaseGeometry) -> float:
    """Largest distance between two vertices of the convex hull (pixels)."""
    hull = geometry.convex_hull
    if hull.is_empty or hull.geom_type == 'Point':
        return 0.0
    if hull.geom_type == 'Polygon':
        coords = np.asarray(hull.exterior.coords)
    else:
        coords = np.asarray(hull.coords)
    diffs = coords[:, np.newaxis, :] - coords[np.newaxis, :, :]
    return float(np.sqrt((diffs ** 2).sum(axis=-1)).max())


def min_diameter(geometry: BaseGeometry) -> float:
    """Smallest side of the minimum rotated bounding rectangle (pixels)."""
    rect = geometry.minimum_rotated_rectangle
    if rect.geom_type != 'Polygon':
        return 0.0
    coords = np.asarray(rect.exterior.coords)
    sides = np.hypot(*(coords[1:] - coords[:-1]).T)
    return float(sides[:2].min())


def _geometry_features(
    prefix: str,
    geometry: BaseGeometry,
    pixel_size_um: float,
    features: Iterable[ShapeFeature],
) -> Dict[str, float]:
    px = float(pixel_size_um)
    area = geometry.area
    perimeter = geometry.length
    out: Dict[str, float] = {}
    for feature in features:
        if feature is ShapeFeature.AREA:
            out[f"{prefix}: Area µm^2"] = area * px * px
        elif feature is ShapeFeature.LENGTH:
            out[f"{prefix}: Length µm"] = perimeter * px
        elif feature is ShapeFeature.CIRCULARITY:
            circ = 4.0 * math.pi * area / (perimeter * perimeter) if perimeter > 0 else 0.0
            out[f"{prefix}: Circularity"] = min(circ, 1.0)
        elif feature is ShapeFeature.MAX_DIAMETER:
            out[f"{prefix}: Max diameter µm"] = max_diameter(geometry) * px
        elif feature is ShapeFeature.MIN_DIAMETER:
            out[f"{prefix}: Min diameter µm"] = min_diameter(geometry) * px
        elif feature is ShapeFeature.SOLIDITY:
            hull_area = geometry.convex_hull.area
            out[f"{prefix}: Solidity"] = area / hull_area if hull_area > 0 else 0.0
    return out


def shape_measurements(
    cell: PairedCell,
    pixel_size_um: float,
    features: Sequence[ShapeFeature] = ALL_SHAPE_FEATURES,
) -> Dict[str, float]:
    """
    Shape measurements for one cell and its nucleus.

    Args:
        cell: Paired cell (not modified)
        pixel_size_um: Micrometers per full-resolution pixel
        features: Features to compute

    Returns:
        Entries prefixed "Cell:" and "Nucleus:", plus "Nucleus/Cell area ratio"

    Raises:
        ValueError: If pixel_size_um <= 0
    """
    if not pixel_size_um > 0:
        raise ValueError(f"pixel_size_um must be > 0, got {pixel_size_um}")

    features = [ShapeFeature.parse(f) for f in features]
    per_geometry = [f for f in features if f is not ShapeFeature.NUCLEUS_CELL_RATIO]

    out: Dict[str, float] = {}
    membrane = cell.membrane.geometry if cell.membrane is not None else None
    nucleus = cell.nucleus.geometry if cell.nucleus is not None else None

    if membrane is not None and not membrane.is_empty:
        out.update(_geometry_features("Cell", membrane, pixel_size_um, per_geometry))
    if nucleus is not None and not nucleus.is_empty:
        out.update(_geometry_features("Nucleus", nucleus, pixel_size_um, per_geometry))

    if ShapeFeature.NUCLEUS_CELL_RATIO in features and membrane is not None and nucleus is not None:
        if membrane.area > 0:
            out["Nucleus/Cell area ratio"] = min(nucleus.area / membrane.area, 1.0)
    return out


def add_shape_measurements(
    cells: Sequence[PairedCell],
    pixel_size_um: float,
    features: Sequence[ShapeFeature] = ALL_SHAPE_FEATURES,
    n_workers: int = 1,
    show_progress: bool = False,
) -> int:
    """
    Compute shape measurements for every cell and merge them in place.

    A cell whose geometry cannot be measured is logged and left without
    shape entries; the rest of the batch continues.

    Returns:
        Number of cells that received shape measurements

    Raises:
        ValueError: If pixel_size_um <= 0
    """
    if not pixel_size_um > 0:
        raise ValueError(f"pixel_size_um must be > 0, got {pixel_size_um}")
    features = [ShapeFeature.parse(f) for f in features]

    def measure_one(cell: PairedCell) -> Optional[Dict[str, float]]:
        try:
            return shape_measurements(cell, pixel_size_um, features)
        except Exception as e:
            logger.error(f"Cell {cell.index}: shape measurement failed: {e}")
            return None

    results = parallel_map(list(cells), measure_one, n_workers=n_workers,
                           show_progress=show_progress, desc="Measuring shapes")
    n_measured = 0
    for cell, entries in zip(cells, results):
        if entries is None:
            continue
        cell.merge_measurements(entries)
        n_measured += 1
    logger.info(f"Shape measurements added for {n_measured}/{len(results)} cells")
    return n_measured
