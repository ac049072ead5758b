"""
Schema validation for exported cell feature collections.

Uses Pydantic for validation with clear error messages.

Usage:
    from cellmeasurement.utils.schemas import validate_geojson_file

    collection = validate_geojson_file("/path/to/cells.geojson")
    print(len(collection.cells()))
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# =============================================================================
# Geometry
# =============================================================================

class Geometry(BaseModel):
    """A GeoJSON geometry (Polygon or MultiPolygon)."""
    type: Literal["Polygon", "MultiPolygon"]
    coordinates: List[Any]

    @field_validator('coordinates')
    @classmethod
    def validate_coordinates(cls, v: List[Any]) -> List[Any]:
        if not v:
            raise ValueError("Geometry has no coordinates")
        return v


# =============================================================================
# Features
# =============================================================================

class FeatureProperties(BaseModel):
    """Properties of an exported object."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    object_type: Literal["annotation", "cell"] = Field(..., alias="objectType")
    index: Optional[int] = None
    nucleus_geometry: Optional[Geometry] = Field(None, alias="nucleusGeometry")
    measurements: Dict[str, Optional[float]] = Field(default_factory=dict)


class CellFeature(BaseModel):
    """A single GeoJSON feature (whole-image annotation or cell)."""
    type: Literal["Feature"]
    id: Optional[str] = None
    geometry: Geometry
    properties: FeatureProperties

    @model_validator(mode='after')
    def validate_cell_has_nucleus(self) -> "CellFeature":
        if self.properties.object_type == "cell" and self.properties.nucleus_geometry is None:
            raise ValueError(f"Cell feature {self.id} has no nucleusGeometry")
        return self


class CellFeatureCollection(BaseModel):
    """Exported FeatureCollection: one annotation followed by cells."""
    type: Literal["FeatureCollection"]
    features: List[CellFeature]

    @field_validator('features')
    @classmethod
    def validate_annotation_first(cls, v: List[CellFeature]) -> List[CellFeature]:
        if not v:
            raise ValueError("FeatureCollection must contain the whole-image annotation")
        if v[0].properties.object_type != "annotation":
            raise ValueError("First feature must be the whole-image annotation")
        return v

    def cells(self) -> List[CellFeature]:
        """Return only the cell features."""
        return [f for f in self.features if f.properties.object_type == "cell"]


# =============================================================================
# Validation Functions
# =============================================================================

def validate_json_file(
    file_path: Union[str, Path],
    schema: type[BaseModel],
    raise_on_error: bool = True
) -> Optional[BaseModel]:
    """
    Validate a JSON file against a schema.

    Args:
        file_path: Path to JSON file
        schema: Pydantic model class to validate against
        raise_on_error: If True, raise exception on validation error

    Returns:
        Validated model instance, or None if validation fails and raise_on_error=False
    """
    file_path = Path(file_path)

    if not file_path.exists():
        if raise_on_error:
            raise FileNotFoundError(f"File not found: {file_path}")
        return None

    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        return schema.model_validate(data)

    except json.JSONDecodeError as e:
        if raise_on_error:
            raise ValueError(f"Invalid JSON in {file_path}: {e}")
        return None

    except Exception as e:
        if raise_on_error:
            raise ValueError(f"Validation failed for {file_path}: {e}")
        return None


def validate_geojson_file(
    file_path: Union[str, Path],
    raise_on_error: bool = True
) -> Optional[CellFeatureCollection]:
    """Validate an exported *.geojson cell collection."""
    return validate_json_file(file_path, CellFeatureCollection, raise_on_error)
