"""
Cell measurement from paired nuclear and whole-cell segmentations.

Matches nuclei to whole-cell regions, derives compartments (cell, nucleus,
cytoplasm, membrane) and measures per-channel intensity statistics.

Usage:
    from cellmeasurement.roi import extract_regions, make_cell_objects
    from cellmeasurement.measurement import add_intensity_measurements
    from cellmeasurement.processing.pipeline import CellMeasurementPipeline
    from cellmeasurement.utils import get_logger, setup_logging, load_config
"""

# Version
__version__ = "0.1.0"

# Individual modules should be imported explicitly:
#   from cellmeasurement.roi import match_rois
#   from cellmeasurement.utils.logging import get_logger

__all__ = [
    "roi",
    "measurement",
    "processing",
    "io",
    "utils",
    "cli",
]
