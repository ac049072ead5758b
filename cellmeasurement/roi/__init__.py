"""
Region handling: value types, mask extraction, nucleus/cell matching,
overlap resolution and bounds filtering.
"""

from .regions import (
    Compartment,
    RasterContext,
    Region,
    PairedCell,
    CompartmentMaskSet,
    ChannelPixelWindow,
    rasterize_geometry,
)

from .extraction import (
    MaskFormatError,
    check_label_image,
    mask_to_geometry,
    extract_regions,
)

from .geometry import (
    validate_polygon,
    estimate_cell_boundary,
)

from .matching import (
    find_nearest_region,
    match_rois,
    make_cell_objects,
)

from .overlap import constrain_cell_overlaps

from .filters import (
    is_within_bounds,
    remove_out_of_bounds_cells,
)

__all__ = [
    # Value types
    'Compartment',
    'RasterContext',
    'Region',
    'PairedCell',
    'CompartmentMaskSet',
    'ChannelPixelWindow',
    'rasterize_geometry',
    # Extraction
    'MaskFormatError',
    'check_label_image',
    'mask_to_geometry',
    'extract_regions',
    # Geometry
    'validate_polygon',
    'estimate_cell_boundary',
    # Matching
    'find_nearest_region',
    'match_rois',
    'make_cell_objects',
    'constrain_cell_overlaps',
    # Filtering
    'is_within_bounds',
    'remove_out_of_bounds_cells',
]
