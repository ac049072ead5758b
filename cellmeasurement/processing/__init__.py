"""
Processing utilities: worker-pool fan-out, window coordinates and the
end-to-end pipeline.

NOTE: pipeline is not imported here to avoid a circular import
(roi -> processing.parallel -> processing/__init__.py -> pipeline -> roi).
Import it directly:
    from cellmeasurement.processing.pipeline import CellMeasurementPipeline
"""

from .parallel import (
    parallel_map,
    validate_worker_count,
)

from .coordinates import (
    CoordinateValidationError,
    compute_cell_window,
    downsampled_size,
    validate_window,
)

__all__ = [
    'parallel_map',
    'validate_worker_count',
    'CoordinateValidationError',
    'compute_cell_window',
    'downsampled_size',
    'validate_window',
]
