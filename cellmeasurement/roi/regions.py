"""
Value types for regions, paired cells and per-cell compartment masks.

Coordinate convention: all geometries are in full-resolution image pixel
coordinates, [x, y] with the origin at the top-left corner. Region outlines
follow pixel edges, so the pixel at column i, row j covers the square
[i, i+1] x [j, j+1] and its centre is (i + 0.5, j + 0.5).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from shapely import affinity
from shapely.geometry import Polygon
from shapely.geometry.base import BaseGeometry
from skimage import draw


class Compartment(enum.Enum):
    """Spatial subsets of a cell used for localized statistics."""
    CELL = "cell"
    NUCLEUS = "nucleus"
    CYTOPLASM = "cytoplasm"
    MEMBRANE = "membrane"

    @property
    def display_name(self) -> str:
        """Name used in measurement keys, e.g. 'Nucleus'."""
        return self.name.lower().capitalize()

    @classmethod
    def parse(cls, value) -> "Compartment":
        """Accept a Compartment or a case-insensitive name."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ", ".join(c.value for c in cls)
            raise ValueError(f"Unknown compartment {value!r} (expected one of {valid})") from None


@dataclass(frozen=True)
class RasterContext:
    """
    Alignment between a local pixel window and full-resolution geometry.

    Attributes:
        x: Left edge of the window in full-resolution pixels
        y: Top edge of the window in full-resolution pixels
        downsample: Full-resolution pixels per window pixel
    """
    x: float = 0.0
    y: float = 0.0
    downsample: float = 1.0

    def to_local(self, geometry: BaseGeometry) -> BaseGeometry:
        """Transform a full-resolution geometry into window pixel coordinates."""
        d = float(self.downsample)
        return affinity.affine_transform(
            geometry, [1.0 / d, 0.0, 0.0, 1.0 / d, -self.x / d, -self.y / d]
        )


def _iter_polygons(geometry: BaseGeometry) -> Iterator[Polygon]:
    if geometry is None or geometry.is_empty:
        return
    if isinstance(geometry, Polygon):
        yield geometry
    elif hasattr(geometry, "geoms"):
        for part in geometry.geoms:
            yield from _iter_polygons(part)


# Sub-pixel shift of every ring (window pixels). A centre lying exactly on an
# edge then falls on one side only: it belongs to the region to its right
# (below, for horizontal edges), so regions sharing an edge never share a
# pixel. The x and y shifts differ so diagonal edges are split as well.
_EDGE_SHIFT_X = 1e-6
_EDGE_SHIFT_Y = 3e-7


def _ring_to_mask(coords: np.ndarray, shape: Tuple[int, int]) -> Tuple[np.ndarray, np.ndarray]:
    # Pixel (c, r) is inside when its centre (c + 0.5, r + 0.5) is inside
    coords = np.asarray(coords, dtype=np.float64)
    rows = coords[:, 1] - 0.5 - _EDGE_SHIFT_Y
    cols = coords[:, 0] - 0.5 - _EDGE_SHIFT_X
    return draw.polygon(rows, cols, shape=shape)


def rasterize_geometry(
    geometry: BaseGeometry,
    width: int,
    height: int,
    context: Optional[RasterContext] = None,
) -> np.ndarray:
    """
    Fill a geometry into a binary raster using pixel-centre sampling.

    Args:
        geometry: Polygon/MultiPolygon in full-resolution coordinates
        width: Raster width in window pixels
        height: Raster height in window pixels
        context: Window origin and downsample (identity if None)

    Returns:
        (height, width) uint8 array, 255 inside and 0 outside
    """
    mask = np.zeros((int(height), int(width)), dtype=np.uint8)
    if geometry is None or geometry.is_empty or mask.size == 0:
        return mask

    local = context.to_local(geometry) if context is not None else geometry
    for poly in _iter_polygons(local):
        part = np.zeros(mask.shape, dtype=bool)
        rr, cc = _ring_to_mask(np.asarray(poly.exterior.coords), mask.shape)
        part[rr, cc] = True
        for interior in poly.interiors:
            rr, cc = _ring_to_mask(np.asarray(interior.coords), mask.shape)
            part[rr, cc] = False
        mask[part] = 255
    return mask


@dataclass(frozen=True, eq=False)
class Region:
    """
    Immutable 2-D shape produced by mask extraction or boundary estimation.

    Identity is by reference: two regions with the same outline are
    still different regions.

    Attributes:
        geometry: Shapely polygon geometry in full-resolution pixels
        centroid: (x, y) centroid
        bounds: (x, y, width, height) axis-aligned bounding rectangle
        label: Source label value in the mask, if any
    """
    geometry: BaseGeometry
    centroid: Tuple[float, float]
    bounds: Tuple[float, float, float, float]
    label: Optional[int] = None

    @classmethod
    def from_geometry(cls, geometry: BaseGeometry, label: Optional[int] = None) -> "Region":
        """Build a region, deriving centroid and bounds from the geometry."""
        if geometry.is_empty:
            nan = float("nan")
            return cls(geometry, (nan, nan), (nan, nan, nan, nan), label)
        c = geometry.centroid
        minx, miny, maxx, maxy = geometry.bounds
        return cls(
            geometry=geometry,
            centroid=(float(c.x), float(c.y)),
            bounds=(float(minx), float(miny), float(maxx - minx), float(maxy - miny)),
            label=label,
        )

    @property
    def area(self) -> float:
        return float(self.geometry.area)

    def rasterize(self, width: int, height: int, context: Optional[RasterContext] = None) -> np.ndarray:
        """Fill this region into a (height, width) uint8 raster."""
        return rasterize_geometry(self.geometry, width, height, context)

    def expand(self, distance: float) -> "Region":
        """Return a new region grown outward by ``distance`` pixels."""
        return Region.from_geometry(self.geometry.buffer(distance), label=self.label)


@dataclass(eq=False)
class PairedCell:
    """
    A nucleus matched (or estimated) with a membrane region.

    Each cell owns its measurement map. Measurement functions return
    entries which are merged here, so nothing else writes to it.
    """
    membrane: Region
    nucleus: Optional[Region]
    index: int = -1
    estimated: bool = False
    measurements: Dict[str, float] = field(default_factory=dict)

    def merge_measurements(self, entries: Mapping[str, float]) -> None:
        for name, value in entries.items():
            self.measurements[name] = float(value)

    def with_membrane(self, membrane: Region) -> "PairedCell":
        """Copy of this cell with a replaced membrane region."""
        return replace(self, membrane=membrane, measurements=dict(self.measurements))


class CompartmentMaskSet:
    """
    Per-cell compartment masks aligned to one pixel window.

    Created fresh for each statistics pass and discarded afterwards.
    """

    def __init__(self, width: int, height: int, masks: Optional[Mapping[Compartment, np.ndarray]] = None):
        self.width = int(width)
        self.height = int(height)
        self._masks: Dict[Compartment, np.ndarray] = {}
        for compartment, mask in (masks or {}).items():
            self[compartment] = mask

    def __setitem__(self, compartment: Compartment, mask: np.ndarray) -> None:
        if mask.shape != (self.height, self.width):
            raise ValueError(
                f"{compartment.name} mask shape {mask.shape} != ({self.height}, {self.width})"
            )
        self._masks[compartment] = mask

    def __getitem__(self, compartment: Compartment) -> np.ndarray:
        return self._masks[compartment]

    def __contains__(self, compartment: object) -> bool:
        return compartment in self._masks

    def __len__(self) -> int:
        return len(self._masks)

    def __iter__(self) -> Iterator[Compartment]:
        return iter(self._masks)

    def get(self, compartment: Compartment, default=None):
        return self._masks.get(compartment, default)

    def keys(self) -> List[Compartment]:
        return list(self._masks)

    def items(self):
        return self._masks.items()


@dataclass(frozen=True)
class ChannelPixelWindow:
    """
    Per-cell multi-channel pixel block.

    ``pixels`` has shape (n_channels, height, width); pixel [x, y] of
    channel k is ``pixels[k].ravel()[y * width + x]``.
    """
    pixels: np.ndarray
    channel_names: Sequence[str]

    def __post_init__(self):
        if self.pixels.ndim != 3:
            raise ValueError(f"Expected (C, H, W) pixels, got shape {self.pixels.shape}")
        if len(self.channel_names) != self.pixels.shape[0]:
            raise ValueError(
                f"{len(self.channel_names)} channel names for {self.pixels.shape[0]} channels"
            )

    @property
    def n_channels(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def width(self) -> int:
        return int(self.pixels.shape[2])

    def channels(self) -> Iterable[Tuple[str, np.ndarray]]:
        """Yield (name, flat float32 array) per channel."""
        for name, plane in zip(self.channel_names, self.pixels):
            yield name, np.ascontiguousarray(plane, dtype=np.float32).ravel()
