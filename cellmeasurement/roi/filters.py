"""Filtering of paired cells against the image extent."""

from typing import List, Sequence

from cellmeasurement.roi.regions import PairedCell
from cellmeasurement.utils.logging import get_logger

logger = get_logger(__name__)


def is_within_bounds(cell: PairedCell, image_width: float, image_height: float) -> bool:
    """True if the cell's membrane bounding box lies inside [0, w] x [0, h]."""
    x, y, w, h = cell.membrane.bounds
    return (
        x >= 0
        and y >= 0
        and x + w <= image_width
        and y + h <= image_height
    )


def remove_out_of_bounds_cells(
    cells: Sequence[PairedCell],
    image_width: float,
    image_height: float,
) -> List[PairedCell]:
    """
    Drop cells whose membrane extends outside the image.

    The image boundary itself counts as inside. Order is preserved and the
    cells are not modified.
    """
    kept = [c for c in cells if is_within_bounds(c, image_width, image_height)]
    if len(kept) != len(cells):
        logger.info(f"Removed {len(cells) - len(kept)} cells outside the "
                    f"{image_width}x{image_height} image")
    return kept
