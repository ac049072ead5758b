"""
Coordinate handling utilities for cell measurement.

Convention: All stored coordinates are [x, y] (horizontal, vertical).

Coordinate System:
    - Origin: Top-left corner (0, 0)
    - X-axis: Horizontal, increases to the right (columns)
    - Y-axis: Vertical, increases downward (rows)

Key Conversions:
    - Region bounds are stored as (x, y, width, height) in full-resolution pixels
    - NumPy arrays are indexed as [row, col] = [y, x]
    - Pixel windows read at a downsample factor d have shape
      (max(1, round(height / d)), max(1, round(width / d)))
"""

import math
from typing import Optional, Tuple


class CoordinateValidationError(ValueError):
    """Exception raised for invalid coordinates."""
    pass


def downsampled_size(length: float, downsample: float) -> int:
    """Number of output pixels covering ``length`` full-resolution pixels."""
    return max(1, int(round(length / downsample)))


def compute_cell_window(
    bounds: Tuple[float, float, float, float],
    image_width: int,
    image_height: int,
) -> Optional[Tuple[int, int, int, int]]:
    """
    Integer pixel window enclosing a bounding box, clipped to the image.

    Args:
        bounds: (x, y, width, height) in full-resolution pixels
        image_width: Image width for clipping
        image_height: Image height for clipping

    Returns:
        (x, y, width, height) window, the full image if any bound is not
        finite, or None if the box lies entirely outside the image
    """
    if not all(math.isfinite(v) for v in bounds):
        return (0, 0, int(image_width), int(image_height))

    x, y, w, h = bounds
    x1 = max(0, int(math.floor(x)))
    y1 = max(0, int(math.floor(y)))
    x2 = min(int(image_width), int(math.ceil(x + w)))
    y2 = min(int(image_height), int(math.ceil(y + h)))

    if x2 <= x1 or y2 <= y1:
        return None
    return (x1, y1, x2 - x1, y2 - y1)


def validate_window(
    x: int,
    y: int,
    width: int,
    height: int,
    image_width: int,
    image_height: int,
    context: str = "",
) -> None:
    """
    Validate that a pixel window lies inside the image.

    Raises:
        CoordinateValidationError: If the window is empty or out of bounds
    """
    ctx = f" ({context})" if context else ""
    if width <= 0 or height <= 0:
        raise CoordinateValidationError(f"Empty window {width}x{height}{ctx}")
    if x < 0 or y < 0 or x + width > image_width or y + height > image_height:
        raise CoordinateValidationError(
            f"Window ({x}, {y}, {width}, {height}) outside image "
            f"{image_width}x{image_height}{ctx}"
        )
