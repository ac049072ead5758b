"""
Input/output: label masks, multi-channel images and GeoJSON export.
"""

from .mask_loader import load_label_mask

from .image_source import (
    ImageSourceError,
    TiffImageSource,
)

from .geojson_export import (
    annotation_feature,
    cell_to_feature,
    build_feature_collection,
    export_geojson,
    load_geojson_measurements,
    export_measurements_csv,
)

__all__ = [
    'load_label_mask',
    'ImageSourceError',
    'TiffImageSource',
    'annotation_feature',
    'cell_to_feature',
    'build_feature_collection',
    'export_geojson',
    'load_geojson_measurements',
    'export_measurements_csv',
]
