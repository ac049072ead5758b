"""
Matching of nuclear regions to whole-cell (membrane) regions.

Each nucleus is paired with the membrane region whose centroid is nearest,
provided the distance is strictly below the threshold. Nuclei without a
qualifying membrane get a synthetic membrane from boundary estimation, so
every nucleus yields exactly one PairedCell.

Matching does not mark membranes as claimed: a membrane region that is the
nearest candidate for two nuclei is paired with both. Among equidistant
candidates the first in input order wins.
"""

from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
from shapely.geometry.base import BaseGeometry

from cellmeasurement.processing.parallel import parallel_map
from cellmeasurement.roi.geometry import estimate_cell_boundary
from cellmeasurement.roi.overlap import constrain_cell_overlaps
from cellmeasurement.roi.regions import PairedCell, Region
from cellmeasurement.utils.logging import get_logger

logger = get_logger(__name__)

BoundaryEstimator = Callable[[BaseGeometry, float, float], BaseGeometry]


def _centroid_array(regions: Sequence[Region]) -> np.ndarray:
    if not regions:
        return np.empty((0, 2), dtype=np.float64)
    return np.asarray([r.centroid for r in regions], dtype=np.float64)


def find_nearest_region(
    centroid: Tuple[float, float],
    regions: Sequence[Region],
    dist_threshold: float,
    centroids: Optional[np.ndarray] = None,
) -> Optional[Region]:
    """
    Find the region whose centroid is nearest to ``centroid``.

    Args:
        centroid: (x, y) query point
        regions: Candidate regions
        dist_threshold: Only distances strictly below this qualify
        centroids: Precomputed (N, 2) centroid array for ``regions``

    Returns:
        Nearest qualifying region (first in input order on ties), or None
    """
    if not regions:
        return None
    if centroids is None:
        centroids = _centroid_array(regions)

    distances = np.hypot(centroids[:, 0] - centroid[0], centroids[:, 1] - centroid[1])
    # Degenerate (empty) regions have NaN centroids and never qualify
    distances = np.where(np.isnan(distances), np.inf, distances)

    idx = int(np.argmin(distances))
    if distances[idx] < dist_threshold:
        return regions[idx]
    return None


def match_rois(
    nuclear_regions: Sequence[Region],
    membrane_regions: Sequence[Region],
    dist_threshold: float,
    cell_expansion: float,
    n_workers: int = 1,
    nucleus_scale: float = 1.0,
    boundary_estimator: BoundaryEstimator = estimate_cell_boundary,
    show_progress: bool = False,
) -> List[PairedCell]:
    """
    Pair each nuclear region with its nearest membrane region.

    Args:
        nuclear_regions: Nuclear regions, processed in input order
        membrane_regions: Whole-cell regions (read-only, shared by all tasks)
        dist_threshold: Maximum centroid distance in pixels (exclusive)
        cell_expansion: Expansion distance for boundary estimation
        n_workers: Worker threads for per-nucleus matching
        nucleus_scale: Passed to the boundary estimator
        boundary_estimator: ``(geometry, distance, scale) -> geometry`` used
            when no membrane region qualifies
        show_progress: Show a progress bar

    Returns:
        One PairedCell per nuclear region, in input order
    """
    nuclear_regions = list(nuclear_regions)
    membrane_regions = list(membrane_regions)
    if not nuclear_regions:
        return []

    centroids = _centroid_array(membrane_regions)

    def match_one(task) -> PairedCell:
        index, nucleus = task
        membrane = find_nearest_region(nucleus.centroid, membrane_regions, dist_threshold, centroids)
        if membrane is not None:
            return PairedCell(membrane=membrane, nucleus=nucleus, index=index)

        geometry = boundary_estimator(nucleus.geometry, cell_expansion, nucleus_scale)
        estimated = Region.from_geometry(geometry, label=nucleus.label)
        return PairedCell(membrane=estimated, nucleus=nucleus, index=index, estimated=True)

    cells = parallel_map(list(enumerate(nuclear_regions)), match_one, n_workers=n_workers,
                         show_progress=show_progress, desc="Matching nuclei")

    n_estimated = sum(1 for c in cells if c.estimated)
    logger.info(f"Matched {len(cells) - n_estimated} nuclei to whole-cell regions, "
                f"estimated {n_estimated} cell boundaries")
    return cells


def make_cell_objects(
    membrane_regions: Sequence[Region],
    nuclear_regions: Sequence[Region],
    dist_threshold: float,
    cell_expansion: float,
    n_workers: int = 1,
    nucleus_scale: float = 1.0,
    resolve_overlaps: bool = True,
    show_progress: bool = False,
) -> List[PairedCell]:
    """
    Create cell objects from whole-cell and nuclear regions.

    Matching runs first; overlap resolution is applied once to the full
    matched list before any filtering.

    Returns:
        Paired cells in nuclear-region order
    """
    cells = match_rois(
        nuclear_regions,
        membrane_regions,
        dist_threshold,
        cell_expansion,
        n_workers=n_workers,
        nucleus_scale=nucleus_scale,
        show_progress=show_progress,
    )
    if resolve_overlaps and cells:
        cells = constrain_cell_overlaps(cells)
    return cells
