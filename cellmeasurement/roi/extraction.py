"""
Conversion of labeled masks into polygon regions.

Every non-zero label becomes one Region whose outline follows pixel edges
exactly (holes preserved, disconnected parts kept as a MultiPolygon). The
outline is built as the union of per-row pixel runs, which avoids the
half-pixel ambiguity of contour tracers.
"""

from typing import List, Optional

import numpy as np
from scipy import ndimage
from shapely import affinity
from shapely.geometry import box
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from cellmeasurement.processing.parallel import parallel_map
from cellmeasurement.roi.regions import Region
from cellmeasurement.utils.logging import get_logger

logger = get_logger(__name__)


class MaskFormatError(ValueError):
    """Raised when an input mask is not a single-channel label image."""


def check_label_image(labels: np.ndarray) -> np.ndarray:
    """
    Validate a label image and return it as a 2D integer array.

    Args:
        labels: Label image (H, W). Singleton dimensions are squeezed.

    Returns:
        (H, W) integer array

    Raises:
        MaskFormatError: For colour (RGB/RGBA) or non-integer input
    """
    labels = np.asarray(labels)
    if labels.ndim == 3 and labels.shape[-1] in (3, 4):
        raise MaskFormatError(f"RGB images are not supported (shape {labels.shape})")
    labels = np.squeeze(labels)
    if labels.ndim != 2:
        raise MaskFormatError(f"Label mask must be 2D, got shape {labels.shape}")

    if labels.dtype == bool:
        return labels.astype(np.int32)
    if np.issubdtype(labels.dtype, np.floating):
        if not np.all(np.isfinite(labels)) or not np.all(np.mod(labels, 1) == 0):
            raise MaskFormatError("Label mask contains non-integer values")
        return labels.astype(np.int64)
    if not np.issubdtype(labels.dtype, np.integer):
        raise MaskFormatError(f"Unsupported label mask dtype: {labels.dtype}")
    return labels


def mask_to_geometry(mask: np.ndarray, x_offset: int = 0, y_offset: int = 0) -> BaseGeometry:
    """
    Trace a binary mask into a pixel-edge polygon.

    Args:
        mask: (H, W) boolean mask
        x_offset: Column of mask[0, 0] in the parent image
        y_offset: Row of mask[0, 0] in the parent image

    Returns:
        Polygon or MultiPolygon (empty geometry for an empty mask)
    """
    boxes = []
    for row_idx, row in enumerate(np.asarray(mask, dtype=bool)):
        edges = np.diff(np.concatenate(([0], row.astype(np.int8), [0])))
        starts = np.flatnonzero(edges == 1)
        ends = np.flatnonzero(edges == -1)
        y = y_offset + row_idx
        for start, end in zip(starts, ends):
            boxes.append(box(x_offset + start, y, x_offset + end, y + 1))

    # simplify(0) drops the collinear vertices left along merged run edges
    return unary_union(boxes).simplify(0)


def extract_regions(
    labels: np.ndarray,
    downsample: float = 1.0,
    n_workers: int = 1,
    show_progress: bool = False,
) -> List[Region]:
    """
    Convert a label image into regions in full-resolution coordinates.

    Args:
        labels: (H, W) label image, 0 is background
        downsample: Full-resolution pixels per mask pixel; coordinates are
            scaled by this factor
        n_workers: Worker threads for per-label tracing
        show_progress: Show a progress bar

    Returns:
        One Region per present label, in ascending label order. Empty list
        when the mask has no labels.

    Raises:
        MaskFormatError: For colour or non-integer masks
    """
    labels = check_label_image(labels)

    n = int(labels.max()) if labels.size else 0
    if n <= 0:
        logger.info("No objects found in mask")
        return []

    slices = ndimage.find_objects(labels)
    tasks = [(label, sl) for label, sl in enumerate(slices, start=1) if sl is not None]

    def trace(task) -> Optional[Region]:
        label, sl = task
        geometry = mask_to_geometry(labels[sl] == label, sl[1].start, sl[0].start)
        if geometry.is_empty:
            return None
        if downsample != 1.0:
            geometry = affinity.scale(geometry, xfact=downsample, yfact=downsample, origin=(0, 0))
        return Region.from_geometry(geometry, label=label)

    regions = parallel_map(tasks, trace, n_workers=n_workers,
                           show_progress=show_progress, desc="Tracing labels")
    regions = [r for r in regions if r is not None]
    logger.info(f"Number of regions found: {len(regions)}")
    return regions
