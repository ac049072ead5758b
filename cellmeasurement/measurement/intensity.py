"""
Per-channel, per-compartment intensity statistics.

For every cell the pixel window enclosing its membrane is read from the
image source, compartment masks are rasterized into the same window, and
for each channel and compartment the masked pixel values are summarized.

Measurement keys:
    "{channel}: {Compartment}: Percentile: {p}"   e.g. "DAPI: Nucleus: Percentile: 95.0"
    "{channel}: {Compartment}: {Statistic}"       e.g. "DAPI: Cell: Mean"

Key order is channel -> compartment (in request order) -> statistics ->
percentiles.
"""

import enum
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np

from cellmeasurement.measurement.compartments import build_compartment_masks
from cellmeasurement.processing.coordinates import compute_cell_window
from cellmeasurement.processing.parallel import parallel_map
from cellmeasurement.roi.regions import (
    ChannelPixelWindow,
    Compartment,
    PairedCell,
    RasterContext,
)
from cellmeasurement.utils.logging import get_logger

logger = get_logger(__name__)


class Statistic(enum.Enum):
    """Summary statistics available besides percentiles."""
    MEAN = "mean"
    MEDIAN = "median"
    MIN = "min"
    MAX = "max"
    STD_DEV = "std_dev"

    @property
    def display_name(self) -> str:
        return _STATISTIC_LABELS[self]

    @classmethod
    def parse(cls, value) -> "Statistic":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ", ".join(s.value for s in cls)
            raise ValueError(f"Unknown statistic {value!r} (expected one of {valid})") from None


_STATISTIC_LABELS = {
    Statistic.MEAN: "Mean",
    Statistic.MEDIAN: "Median",
    Statistic.MIN: "Min",
    Statistic.MAX: "Max",
    Statistic.STD_DEV: "Std.Dev.",
}

_STATISTIC_FUNCS = {
    Statistic.MEAN: np.mean,
    Statistic.MEDIAN: np.median,
    Statistic.MIN: np.min,
    Statistic.MAX: np.max,
    Statistic.STD_DEV: np.std,
}


def percentile_key(channel: str, compartment: Compartment, percentile: float) -> str:
    return f"{channel}: {compartment.display_name}: Percentile: {float(percentile)}"


def statistic_key(channel: str, compartment: Compartment, statistic: Statistic) -> str:
    return f"{channel}: {compartment.display_name}: {statistic.display_name}"


def validate_percentiles(percentiles: Iterable[float]) -> List[float]:
    """
    Check percentile values.

    Raises:
        ValueError: If any value is outside [0, 100] or not a number
    """
    values = []
    for p in percentiles:
        p = float(p)
        if not 0.0 <= p <= 100.0:
            raise ValueError(f"Percentile must be in [0, 100], got {p}")
        values.append(p)
    return values


def compute_percentiles(values: np.ndarray, percentiles: Sequence[float]) -> List[float]:
    """
    Percentiles of a 1-D sample using linear interpolation.

    Args:
        values: Non-empty pixel values
        percentiles: Percentiles in [0, 100]

    Returns:
        One value per requested percentile
    """
    if len(percentiles) == 0:
        return []
    values = np.asarray(values, dtype=np.float64)
    result = np.percentile(values, list(percentiles))
    return [float(v) for v in np.atleast_1d(result)]


def compute_statistics(values: np.ndarray, statistics: Sequence[Statistic]) -> List[float]:
    """Summary statistics of a non-empty 1-D sample (population std)."""
    values = np.asarray(values, dtype=np.float64)
    return [float(_STATISTIC_FUNCS[Statistic.parse(s)](values)) for s in statistics]


def measure_cell(
    cell: PairedCell,
    image_source,
    downsample: float,
    percentiles: Sequence[float],
    compartments: Sequence[Compartment],
    statistics: Sequence[Statistic] = (),
) -> Dict[str, float]:
    """
    Compute intensity measurements for one cell.

    Args:
        cell: Paired cell (not modified)
        image_source: Object with ``width``, ``height``, ``channel_names`` and
            ``read_region(downsample, x, y, width, height)`` returning a
            (C, h, w) array
        downsample: Downsample factor for reading pixels
        percentiles: Percentiles in [0, 100]
        compartments: Compartments to measure, in key order
        statistics: Additional summary statistics

    Returns:
        Measurement entries; empty if the cell has no membrane, lies outside
        the image, or its pixels could not be read
    """
    if cell.membrane is None:
        return {}

    compartments = [Compartment.parse(c) for c in compartments]
    statistics = [Statistic.parse(s) for s in statistics]

    window = compute_cell_window(cell.membrane.bounds, image_source.width, image_source.height)
    if window is None:
        logger.warning(f"Cell {cell.index}: bounds {cell.membrane.bounds} outside image, skipping")
        return {}
    x, y, w, h = window

    try:
        pixels = image_source.read_region(downsample, x, y, w, h)
    except (OSError, ValueError) as e:
        logger.warning(f"Cell {cell.index}: failed to read pixels at ({x}, {y}, {w}, {h}): {e}")
        return {}
    if pixels is None:
        logger.warning(f"Cell {cell.index}: no pixels returned at ({x}, {y}, {w}, {h})")
        return {}

    pixels = np.asarray(pixels, dtype=np.float32)
    if pixels.ndim == 2:
        pixels = pixels[np.newaxis]
    window_pixels = ChannelPixelWindow(pixels, list(image_source.channel_names))

    masks = build_compartment_masks(
        cell.membrane,
        cell.nucleus,
        window_pixels.width,
        window_pixels.height,
        RasterContext(x, y, downsample),
        compartments,
    )

    results: Dict[str, float] = {}
    for channel, values in window_pixels.channels():
        for compartment in compartments:
            mask = masks.get(compartment)
            if mask is None:
                continue
            masked = values[mask.ravel() > 0]
            if masked.size == 0:
                continue
            for statistic, value in zip(statistics, compute_statistics(masked, statistics)):
                results[statistic_key(channel, compartment, statistic)] = value
            for p, value in zip(percentiles, compute_percentiles(masked, percentiles)):
                results[percentile_key(channel, compartment, p)] = value
    return results


def add_intensity_measurements(
    cells: Sequence[PairedCell],
    image_source,
    downsample: float,
    percentiles: Sequence[float],
    compartments: Sequence[Compartment],
    statistics: Sequence[Statistic] = (),
    n_workers: int = 1,
    show_progress: bool = False,
) -> int:
    """
    Measure all cells and merge the entries into each cell's measurements.

    A failure for one cell is logged and does not abort the batch.

    Returns:
        Number of cells that received at least one measurement
    """
    percentiles = validate_percentiles(percentiles)
    compartments = [Compartment.parse(c) for c in compartments]
    statistics = [Statistic.parse(s) for s in statistics]

    def measure_one(cell: PairedCell) -> Optional[Dict[str, float]]:
        try:
            return measure_cell(cell, image_source, downsample, percentiles, compartments, statistics)
        except Exception as e:
            logger.error(f"Cell {cell.index}: intensity measurement failed: {e}")
            return None

    results = parallel_map(list(cells), measure_one, n_workers=n_workers,
                           show_progress=show_progress, desc="Measuring intensities")

    n_measured = 0
    for cell, entries in zip(cells, results):
        if entries:
            cell.merge_measurements(entries)
            n_measured += 1

    logger.info(f"Intensity measurements added for {n_measured}/{len(results)} cells")
    return n_measured
