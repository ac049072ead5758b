"""
Pytest fixtures for cellmeasurement tests.

Provides synthetic label masks, an in-memory image source, TIFF files on
disk and temporary directories.
"""

import shutil
import sys
import tempfile
from pathlib import Path

import numpy as np
import pytest
import tifffile
from shapely.geometry import box

sys.path.insert(0, str(Path(__file__).parent.parent))

from cellmeasurement.roi.regions import Region


def square_region(x0, y0, x1, y1, label=None):
    """Axis-aligned rectangular region [x0, x1] x [y0, y1]."""
    return Region.from_geometry(box(x0, y0, x1, y1), label=label)


def pixel_centers(x, y, width, height, downsample):
    """Full-resolution (xs, ys) centres of the pixels of a window read at ``downsample``."""
    d = float(downsample)
    xs = (x / d + np.arange(width) + 0.5) * d
    ys = (y / d + np.arange(height) + 0.5) * d
    return xs, ys


class FakeImageSource:
    """
    In-memory image source with the TiffImageSource interface.

    ``pixels`` is (C, H, W). Only downsample 1.0 is supported. Windows
    listed in ``fail_at`` (as (x, y) origins) raise OSError.
    """

    def __init__(self, pixels, channel_names=None, fail_at=()):
        self.pixels = np.asarray(pixels, dtype=np.float32)
        self.n_channels, self.height, self.width = self.pixels.shape
        self.channel_names = list(channel_names or [f"Channel {i + 1}" for i in range(self.n_channels)])
        self.fail_at = set(fail_at)
        self.calls = []

    def read_region(self, downsample, x, y, width, height):
        self.calls.append((downsample, x, y, width, height))
        if (x, y) in self.fail_at:
            raise OSError(f"simulated read failure at ({x}, {y})")
        if downsample != 1.0:
            raise ValueError("FakeImageSource only supports downsample 1.0")
        return self.pixels[:, y:y + height, x:x + width].copy()


@pytest.fixture
def nuclear_labels():
    """
    100x100 nuclear label mask.

    Contains:
    - Label 1: 10x10 nucleus at x 20-30, y 20-30
    - Label 2: 10x10 nucleus at x 60-70, y 60-70
    - Label 3: 4x4 nucleus at x 86-90, y 10-14 (no whole-cell region nearby)
    """
    labels = np.zeros((100, 100), dtype=np.uint16)
    labels[20:30, 20:30] = 1
    labels[60:70, 60:70] = 2
    labels[10:14, 86:90] = 3
    return labels


@pytest.fixture
def whole_cell_labels():
    """
    100x100 whole-cell label mask.

    Contains:
    - Label 1: 20x20 cell at x 15-35, y 15-35 around nucleus 1
    - Label 2: 20x20 cell at x 55-75, y 55-75 around nucleus 2
    """
    labels = np.zeros((100, 100), dtype=np.uint16)
    labels[15:35, 15:35] = 1
    labels[55:75, 55:75] = 2
    return labels


@pytest.fixture
def gradient_image():
    """
    Two-channel 100x100 image.

    Channel "DAPI" is 1.0 inside nuclei 1 and 2 and 0 elsewhere;
    channel "CD45" is the column index (x).
    """
    dapi = np.zeros((100, 100), dtype=np.float32)
    dapi[20:30, 20:30] = 1.0
    dapi[60:70, 60:70] = 1.0
    cd45 = np.tile(np.arange(100, dtype=np.float32), (100, 1))
    return np.stack([dapi, cd45])


@pytest.fixture
def fake_source(gradient_image):
    return FakeImageSource(gradient_image, channel_names=["DAPI", "CD45"])


@pytest.fixture
def temp_output_dir():
    """
    Temporary directory for test outputs.

    Yields:
        Path: Path to temporary directory
    """
    temp_dir = tempfile.mkdtemp(prefix="cellmeasurement_test_")
    yield Path(temp_dir)
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def tiff_inputs(temp_output_dir, nuclear_labels, whole_cell_labels, gradient_image):
    """
    Masks and image written to disk.

    Returns:
        dict with 'nuclear', 'whole_cell', 'image' and 'output' paths
    """
    nuclear_path = temp_output_dir / "nuclei.tif"
    cell_path = temp_output_dir / "cells.tif"
    image_path = temp_output_dir / "image.ome.tif"
    tifffile.imwrite(nuclear_path, nuclear_labels)
    tifffile.imwrite(cell_path, whole_cell_labels)
    tifffile.imwrite(
        image_path,
        gradient_image,
        ome=True,
        metadata={'axes': 'CYX', 'Channel': {'Name': ['DAPI', 'CD45']}},
    )
    return {
        'nuclear': nuclear_path,
        'whole_cell': cell_path,
        'image': image_path,
        'output': temp_output_dir / "out" / "cells.geojson",
    }
