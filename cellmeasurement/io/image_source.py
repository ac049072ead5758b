"""
Multi-channel TIFF image source.

Pixels are read once into RAM on first access and served as (C, H, W)
float32 windows, optionally area-averaged to a downsample factor.

Features:
- Channel axis detection from tifffile series axes ('C', else 'S', 'Q' or 'I')
- Channel names from OME-XML metadata, else "Channel 1..N"
- Thread-safe lazy loading: read_region may be called from worker threads
"""

import threading
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

import cv2
import numpy as np
import tifffile

from cellmeasurement.processing.coordinates import downsampled_size, validate_window
from cellmeasurement.utils.logging import get_logger

logger = get_logger(__name__)


class ImageSourceError(OSError):
    """Raised when image pixels or metadata cannot be read."""
    pass


_CHANNEL_AXES = ('C', 'S', 'Q', 'I')


def _channel_axis(axes: str) -> Optional[str]:
    for ax in _CHANNEL_AXES:
        if ax in axes:
            return ax
    return None


def _to_cyx(array: np.ndarray, axes: str) -> np.ndarray:
    """Reorder a tifffile series array to (C, Y, X), taking index 0 of other axes."""
    axes = axes.upper()
    if 'Y' not in axes or 'X' not in axes:
        raise ImageSourceError(f"Image has no Y/X axes (axes={axes!r})")

    channel_axis = _channel_axis(axes)
    index = []
    kept = []
    for ax in axes:
        if ax in ('Y', 'X') or ax == channel_axis:
            index.append(slice(None))
            kept.append(ax)
        else:
            index.append(0)
    array = array[tuple(index)]

    if channel_axis is None:
        array = array[np.newaxis]
        kept = ['C'] + kept
        channel_axis = 'C'
    order = [kept.index(channel_axis), kept.index('Y'), kept.index('X')]
    return np.transpose(array, order)


def _ome_channel_names(ome_xml: Optional[str]) -> List[str]:
    if not ome_xml:
        return []
    try:
        root = ET.fromstring(ome_xml)
    except ET.ParseError as e:
        logger.warning(f"Could not parse OME-XML metadata: {e}")
        return []
    names = []
    for elem in root.iter():
        if elem.tag.split('}')[-1] == 'Channel':
            names.append(elem.get('Name') or '')
    return names


class TiffImageSource:
    """
    Read-only multi-channel image backed by a TIFF/OME-TIFF file.

    Usage:
        with TiffImageSource('image.ome.tif') as source:
            pixels = source.read_region(1.0, x, y, w, h)   # (C, h, w) float32
    """

    def __init__(self, path: Union[str, Path], channel_names: Optional[Sequence[str]] = None):
        """
        Open a TIFF file and read its dimensions.

        Args:
            path: Path to the TIFF file
            channel_names: Override channel names (must match the channel count)

        Raises:
            FileNotFoundError: If path does not exist
            ImageSourceError: If the file cannot be parsed as an image
            ValueError: If channel_names has the wrong length
        """
        self.path = Path(path)
        if not self.path.exists():
            raise FileNotFoundError(f"Image file not found: {self.path}")

        try:
            with tifffile.TiffFile(str(self.path)) as tif:
                series = tif.series[0]
                self._axes = series.axes
                shape = dict(zip(series.axes.upper(), series.shape))
                ome_names = _ome_channel_names(tif.ome_metadata)
        except (OSError, ValueError, IndexError, tifffile.TiffFileError) as e:
            raise ImageSourceError(f"Cannot read image {self.path}: {e}") from e

        if 'X' not in shape or 'Y' not in shape:
            raise ImageSourceError(f"Image {self.path} has no Y/X axes (axes={self._axes!r})")

        self.width = int(shape['X'])
        self.height = int(shape['Y'])
        channel_axis = _channel_axis(self._axes.upper())
        self.n_channels = int(shape[channel_axis]) if channel_axis else 1

        if channel_names is not None:
            if len(channel_names) != self.n_channels:
                raise ValueError(
                    f"{len(channel_names)} channel names given for {self.n_channels} channels"
                )
            self._channel_names = [str(n) for n in channel_names]
        elif len(ome_names) == self.n_channels and all(ome_names):
            self._channel_names = ome_names
        else:
            self._channel_names = [f"Channel {i + 1}" for i in range(self.n_channels)]

        self._data: Optional[np.ndarray] = None
        self._load_lock = threading.Lock()
        logger.debug(f"Opened {self.path.name}: {self.width}x{self.height}, "
                     f"{self.n_channels} channels ({self._axes})")

    @property
    def channel_names(self) -> List[str]:
        return list(self._channel_names)

    def channel_name(self, index: int) -> str:
        return self._channel_names[index]

    @property
    def size(self) -> Tuple[int, int]:
        """Image dimensions (width, height)."""
        return (self.width, self.height)

    def _pixels(self) -> np.ndarray:
        if self._data is None:
            with self._load_lock:
                if self._data is None:
                    logger.info(f"Loading {self.path.name} into RAM ({self.width:,} x {self.height:,} px, "
                                f"{self.n_channels} channels)...")
                    try:
                        array = tifffile.imread(str(self.path), series=0)
                    except (OSError, ValueError, tifffile.TiffFileError) as e:
                        raise ImageSourceError(f"Cannot read pixels from {self.path}: {e}") from e
                    self._data = np.ascontiguousarray(_to_cyx(array, self._axes))
        return self._data

    def read_region(self, downsample: float, x: int, y: int, width: int, height: int) -> np.ndarray:
        """
        Read a window of all channels.

        Args:
            downsample: Full-resolution pixels per output pixel (>= 1 shrinks)
            x, y: Top-left corner in full-resolution pixels
            width, height: Window size in full-resolution pixels

        Returns:
            (C, h, w) float32 array with h = max(1, round(height / downsample))

        Raises:
            CoordinateValidationError: If the window is outside the image
            ImageSourceError: If pixels cannot be loaded
        """
        if not downsample > 0:
            raise ValueError(f"downsample must be > 0, got {downsample}")
        validate_window(x, y, width, height, self.width, self.height, context=self.path.name)

        window = self._pixels()[:, y:y + height, x:x + width].astype(np.float32)
        if downsample == 1.0:
            return window

        out_w = downsampled_size(width, downsample)
        out_h = downsampled_size(height, downsample)
        return np.stack([
            cv2.resize(plane, (out_w, out_h), interpolation=cv2.INTER_AREA)
            for plane in window
        ])

    def close(self):
        """Release loaded pixel data."""
        self._data = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __repr__(self) -> str:
        return (f"TiffImageSource('{self.path.name}', size={self.width}x{self.height}, "
                f"channels={self._channel_names})")
