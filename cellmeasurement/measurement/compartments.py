"""
Compartment mask generation for a single cell.

Masks are rasterized into the cell's pixel window:

    CELL       membrane region
    NUCLEUS    nucleus region
    CYTOPLASM  CELL with NUCLEUS pixels cleared
    MEMBRANE   CELL pixels with at least one 8-connected background neighbour

Only the masks needed for the requested compartments are computed.
"""

from typing import Iterable, Optional

import numpy as np
from scipy import ndimage

from cellmeasurement.roi.regions import Compartment, CompartmentMaskSet, RasterContext, Region

# 8-connectivity
_MEMBRANE_FOOTPRINT = np.ones((3, 3), dtype=bool)


def membrane_mask(cell_mask: np.ndarray) -> np.ndarray:
    """
    Boundary pixels of a cell mask.

    Pixels on the window edge count as boundary because everything outside
    the window is treated as background.
    """
    inside = cell_mask > 0
    interior = ndimage.binary_erosion(inside, structure=_MEMBRANE_FOOTPRINT, border_value=0)
    return np.where(inside & ~interior, 255, 0).astype(np.uint8)


def build_compartment_masks(
    membrane: Optional[Region],
    nucleus: Optional[Region],
    width: int,
    height: int,
    context: RasterContext,
    compartments: Iterable[Compartment],
) -> CompartmentMaskSet:
    """
    Build the requested compartment masks for one cell.

    Args:
        membrane: Whole-cell region (None gives an empty set)
        nucleus: Nucleus region, may be None
        width: Window width in pixels
        height: Window height in pixels
        context: Window origin and downsample
        compartments: Compartments to return

    Returns:
        CompartmentMaskSet containing only requested, computable masks.
        NUCLEUS and CYTOPLASM are omitted when there is no nucleus.
    """
    wanted = {Compartment.parse(c) for c in compartments}
    masks = CompartmentMaskSet(width, height)
    if membrane is None or not wanted:
        return masks

    cell = None
    if wanted - {Compartment.NUCLEUS}:
        cell = membrane.rasterize(width, height, context)

    nuc = None
    if nucleus is not None and wanted & {Compartment.NUCLEUS, Compartment.CYTOPLASM}:
        nuc = nucleus.rasterize(width, height, context)

    if Compartment.CELL in wanted:
        masks[Compartment.CELL] = cell
    if Compartment.NUCLEUS in wanted and nuc is not None:
        masks[Compartment.NUCLEUS] = nuc
    if Compartment.CYTOPLASM in wanted and nuc is not None:
        cyto = cell.copy()
        cyto[nuc > 0] = 0
        masks[Compartment.CYTOPLASM] = cyto
    if Compartment.MEMBRANE in wanted:
        masks[Compartment.MEMBRANE] = membrane_mask(cell)

    return masks
