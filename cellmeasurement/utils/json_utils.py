"""
JSON reading and writing for exported cells and run configs.

Measurements are float maps that may hold NaN (empty compartments, failed
statistics). GeoJSON has no NaN token, so values are converted to plain
Python types with NaN/Inf written as null before anything is serialized.
Files are written through a temporary file in the target directory and
moved into place, so a crashed run never leaves a truncated export.
"""

import json
import math
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Union

import numpy as np


def sanitize_for_json(obj: Any) -> Any:
    """
    Convert a nested structure to JSON-safe Python types.

    numpy scalars and arrays become Python numbers and lists; non-finite
    floats become None. Tuples (shapely coordinate pairs) become lists.
    """
    if isinstance(obj, dict):
        return {k: sanitize_for_json(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [sanitize_for_json(v) for v in obj]
    if isinstance(obj, np.ndarray):
        return sanitize_for_json(obj.tolist())
    if isinstance(obj, (bool, np.bool_)):
        return bool(obj)
    if isinstance(obj, (int, np.integer)):
        return int(obj)
    if isinstance(obj, (float, np.floating)):
        value = float(obj)
        return value if math.isfinite(value) else None
    return obj


def atomic_json_dump(data: Any, filepath: Union[str, Path], indent: int = None) -> Path:
    """
    Sanitize ``data`` and write it to ``filepath`` atomically.

    Parent directories are created. Non-ASCII keys such as "µm^2" are
    written as-is.

    Returns:
        Path of the written file
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    data = sanitize_for_json(data)
    separators = None if indent is not None else (",", ":")

    fd, tmp_path = tempfile.mkstemp(dir=filepath.parent, prefix=f".{filepath.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=indent, separators=separators, ensure_ascii=False, allow_nan=False)
        os.replace(tmp_path, filepath)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    return filepath


def load_json(filepath: Union[str, Path]) -> Any:
    """Read a UTF-8 JSON file."""
    with open(filepath, 'r', encoding='utf-8') as f:
        return json.load(f)


def dump_feature_collection(
    collection: Dict[str, Any],
    filepath: Union[str, Path],
    pretty: bool = True,
) -> Path:
    """
    Write a GeoJSON FeatureCollection.

    Args:
        collection: ``{"type": "FeatureCollection", "features": [...]}``
        filepath: Output path
        pretty: Indent with two spaces, else write compact JSON

    Raises:
        ValueError: If ``collection`` is not a FeatureCollection
    """
    if collection.get("type") != "FeatureCollection" or not isinstance(collection.get("features"), list):
        raise ValueError("Expected a GeoJSON FeatureCollection with a 'features' list")
    return atomic_json_dump(collection, filepath, indent=2 if pretty else None)
