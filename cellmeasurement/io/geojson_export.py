"""
GeoJSON export of measured cells.

Output is a FeatureCollection whose first feature is a whole-image
rectangle annotation, followed by one feature per cell:

    {
      "type": "Feature",
      "id": "cell_0",
      "geometry": {... membrane ...},
      "properties": {
        "objectType": "cell",
        "index": 0,
        "nucleusGeometry": {... nucleus ...},
        "measurements": {"Cell: Area µm^2": 85.0, ...}
      }
    }
"""

import csv
from pathlib import Path
from typing import Any, Dict, List, Sequence, Union

from shapely.geometry import box, mapping

from cellmeasurement.roi.regions import PairedCell
from cellmeasurement.utils.json_utils import dump_feature_collection, load_json
from cellmeasurement.utils.logging import get_logger

logger = get_logger(__name__)


def annotation_feature(image_width: int, image_height: int) -> Dict[str, Any]:
    """Whole-image rectangle annotation."""
    return {
        "type": "Feature",
        "id": "annotation",
        "geometry": mapping(box(0, 0, image_width, image_height)),
        "properties": {
            "objectType": "annotation",
            "measurements": {},
        },
    }


def cell_to_feature(cell: PairedCell) -> Dict[str, Any]:
    """Convert a paired cell to a GeoJSON feature dict."""
    properties: Dict[str, Any] = {
        "objectType": "cell",
        "index": cell.index,
        "estimated": cell.estimated,
        "nucleusGeometry": mapping(cell.nucleus.geometry) if cell.nucleus is not None else None,
        "measurements": dict(cell.measurements),
    }
    if cell.membrane.label is not None:
        properties["label"] = int(cell.membrane.label)
    return {
        "type": "Feature",
        "id": f"cell_{cell.index}",
        "geometry": mapping(cell.membrane.geometry),
        "properties": properties,
    }


def build_feature_collection(
    cells: Sequence[PairedCell],
    image_width: int,
    image_height: int,
) -> Dict[str, Any]:
    features = [annotation_feature(image_width, image_height)]
    features.extend(cell_to_feature(c) for c in cells)
    return {"type": "FeatureCollection", "features": features}


def export_geojson(
    cells: Sequence[PairedCell],
    path: Union[str, Path],
    image_width: int,
    image_height: int,
    pretty: bool = True,
) -> Path:
    """
    Write cells as a GeoJSON FeatureCollection.

    Args:
        cells: Measured cells
        path: Output file path (parent directories are created)
        image_width: Width of the whole-image annotation
        image_height: Height of the whole-image annotation
        pretty: Indent the output

    Returns:
        Path of the written file
    """
    path = Path(path)
    collection = build_feature_collection(cells, image_width, image_height)
    dump_feature_collection(collection, path, pretty=pretty)
    logger.info(f"Exported {len(cells)} cells to {path}")
    return path


def load_geojson_measurements(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """
    Read per-cell measurement tables from an exported file.

    Returns:
        One dict per cell: ``{"index": ..., **measurements}``
    """
    data = load_json(path)

    rows = []
    for feature in data.get("features", []):
        props = feature.get("properties", {})
        if props.get("objectType") != "cell":
            continue
        row = {"index": props.get("index")}
        row.update(props.get("measurements", {}))
        rows.append(row)
    return rows


def export_measurements_csv(rows: Sequence[Dict[str, Any]], path: Union[str, Path]) -> Path:
    """
    Write measurement rows to CSV.

    Columns are the union of all row keys in first-seen order; missing
    values are left blank.
    """
    path = Path(path)
    fieldnames: List[str] = []
    for row in rows:
        for key in row:
            if key not in fieldnames:
                fieldnames.append(key)

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', newline='', encoding='utf-8') as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        for row in rows:
            writer.writerow({k: ("" if v is None else v) for k, v in row.items()})
    logger.info(f"Wrote {len(rows)} rows to {path}")
    return path
