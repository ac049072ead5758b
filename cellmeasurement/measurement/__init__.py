"""
Per-cell measurements: compartment masks, intensity statistics and shape.
"""

from .compartments import (
    build_compartment_masks,
    membrane_mask,
)

from .intensity import (
    Statistic,
    compute_percentiles,
    compute_statistics,
    measure_cell,
    add_intensity_measurements,
    percentile_key,
    statistic_key,
)

from .shape import (
    ShapeFeature,
    ALL_SHAPE_FEATURES,
    shape_measurements,
    add_shape_measurements,
)

__all__ = [
    'build_compartment_masks',
    'membrane_mask',
    'Statistic',
    'compute_percentiles',
    'compute_statistics',
    'measure_cell',
    'add_intensity_measurements',
    'percentile_key',
    'statistic_key',
    'ShapeFeature',
    'ALL_SHAPE_FEATURES',
    'shape_measurements',
    'add_shape_measurements',
]
