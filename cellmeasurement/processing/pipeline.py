"""
End-to-end cell measurement pipeline.

Stages:
    1. Load nuclear and whole-cell label masks
    2. Extract regions (scaled to full resolution by the downsample factor)
    3. Match nuclei to whole-cell regions, estimating missing boundaries
    4. Resolve overlaps between neighbouring cells
    5. Drop cells that extend outside the image
    6. Shape and intensity measurements (unless skip_measurements)
    7. GeoJSON export

Usage:
    from cellmeasurement.processing.pipeline import CellMeasurementPipeline

    pipeline = CellMeasurementPipeline(config={'threads': 8, 'percentiles': [50, 95]})
    result = pipeline.run('nuclei.tif', 'cells.tif', 'image.ome.tif', 'cells.geojson')
    print(result.n_cells)
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from cellmeasurement.io.geojson_export import export_geojson
from cellmeasurement.io.image_source import TiffImageSource
from cellmeasurement.io.mask_loader import load_label_mask
from cellmeasurement.measurement.intensity import add_intensity_measurements
from cellmeasurement.measurement.shape import add_shape_measurements
from cellmeasurement.processing.parallel import validate_worker_count
from cellmeasurement.roi.extraction import extract_regions
from cellmeasurement.roi.filters import remove_out_of_bounds_cells
from cellmeasurement.roi.matching import make_cell_objects
from cellmeasurement.roi.regions import Compartment, PairedCell, Region
from cellmeasurement.utils.config import create_run_config, validate_config
from cellmeasurement.utils.logging import ProcessingTimer, get_logger, log_run_config

logger = get_logger(__name__)


@dataclass
class PipelineResult:
    """Summary of one pipeline run."""
    cells: List[PairedCell] = field(default_factory=list)
    n_nuclei: int = 0
    n_membranes: int = 0
    n_estimated: int = 0
    n_out_of_bounds: int = 0
    n_measured: int = 0
    image_width: int = 0
    image_height: int = 0
    output_path: Optional[Path] = None
    timings: Dict[str, float] = field(default_factory=dict)

    @property
    def n_cells(self) -> int:
        return len(self.cells)

    def summary(self) -> Dict[str, Any]:
        return {
            "n_nuclei": self.n_nuclei,
            "n_membranes": self.n_membranes,
            "n_cells": self.n_cells,
            "n_estimated": self.n_estimated,
            "n_out_of_bounds": self.n_out_of_bounds,
            "n_measured": self.n_measured,
            "image_size": [self.image_width, self.image_height],
            "output_path": str(self.output_path) if self.output_path else None,
            "timings": dict(self.timings),
        }


class CellMeasurementPipeline:
    """
    Pair nuclei with whole-cell regions and measure them.

    Handles:
    - Mask loading and region extraction
    - ROI matching with boundary estimation
    - Overlap resolution and bounds filtering
    - Shape and per-compartment intensity measurements
    - GeoJSON export
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize the pipeline.

        Args:
            config: Configuration overrides merged over DEFAULT_CONFIG

        Raises:
            ConfigValidationError: If the configuration is invalid
        """
        self.config = create_run_config(**(config or {}))
        validate_config(self.config, raise_on_error=True)

        self.threads = validate_worker_count(int(self.config["threads"]))
        self.downsample = float(self.config["downsample_factor"])
        self.compartments = [Compartment.parse(c) for c in self.config["compartments"]]
        self.percentiles = [float(p) for p in self.config["percentiles"]]
        self.show_progress = bool(self.config.get("show_progress", False))

    def process_regions(
        self,
        nuclear_regions: Sequence[Region],
        membrane_regions: Sequence[Region],
        image_width: int,
        image_height: int,
        image_source=None,
    ) -> PipelineResult:
        """
        Run matching, filtering and measurements on already extracted regions.

        Args:
            nuclear_regions: Nuclear regions in full-resolution coordinates
            membrane_regions: Whole-cell regions in full-resolution coordinates
            image_width: Full-resolution image width
            image_height: Full-resolution image height
            image_source: Pixel source for intensity measurements; None skips
                intensity measurements

        Returns:
            PipelineResult with measured cells (output_path unset)
        """
        cfg = self.config
        result = PipelineResult(
            n_nuclei=len(nuclear_regions),
            n_membranes=len(membrane_regions),
            image_width=int(image_width),
            image_height=int(image_height),
        )

        with ProcessingTimer(logger, "ROI matching") as timer:
            cells = make_cell_objects(
                membrane_regions,
                nuclear_regions,
                float(cfg["dist_threshold"]),
                float(cfg["cell_expansion"]),
                n_workers=self.threads,
                nucleus_scale=float(cfg["nucleus_scale"]),
                resolve_overlaps=bool(cfg["resolve_overlaps"]),
                show_progress=self.show_progress,
            )
            n_matched = len(cells)
            cells = remove_out_of_bounds_cells(cells, image_width, image_height)
            result.n_out_of_bounds = n_matched - len(cells)
            result.n_estimated = sum(1 for c in cells if c.estimated)
            timer.record(nuclei=result.n_nuclei, cells=len(cells), estimated=result.n_estimated,
                         out_of_bounds=result.n_out_of_bounds)
        result.timings["matching"] = timer.duration

        if cfg["skip_measurements"]:
            logger.info("Skipping measurements")
            result.cells = cells
            return result

        with ProcessingTimer(logger, "Shape measurements") as timer:
            n_shaped = add_shape_measurements(cells, float(cfg["pixel_size_um"]),
                                              n_workers=self.threads, show_progress=self.show_progress)
            timer.record(measured=n_shaped, failed=len(cells) - n_shaped)
        result.timings["shape"] = timer.duration

        if image_source is not None and cells:
            with ProcessingTimer(logger, "Intensity measurements") as timer:
                result.n_measured = add_intensity_measurements(
                    cells,
                    image_source,
                    self.downsample,
                    self.percentiles,
                    self.compartments,
                    statistics=cfg["statistics"],
                    n_workers=self.threads,
                    show_progress=self.show_progress,
                )
                timer.record(measured=result.n_measured, skipped=len(cells) - result.n_measured)
            result.timings["intensity"] = timer.duration

        result.cells = cells
        return result

    def run(
        self,
        nuclear_mask_path: Union[str, Path],
        whole_cell_mask_path: Union[str, Path],
        image_path: Union[str, Path],
        output_path: Union[str, Path],
    ) -> PipelineResult:
        """
        Run the full pipeline from files to a GeoJSON export.

        Raises:
            FileNotFoundError: If an input file is missing
            MaskFormatError: If a mask is not a single-channel label image
            ImageSourceError: If the image cannot be opened
        """
        log_run_config(logger, {
            "nuclear_mask": nuclear_mask_path,
            "whole_cell_mask": whole_cell_mask_path,
            "image": image_path,
            "output": output_path,
        }, self.config)

        with ProcessingTimer(logger, "Region extraction") as timer:
            nuclear_labels = load_label_mask(nuclear_mask_path)
            membrane_labels = load_label_mask(whole_cell_mask_path)
            nuclear_regions = extract_regions(nuclear_labels, self.downsample, n_workers=self.threads,
                                              show_progress=self.show_progress)
            membrane_regions = extract_regions(membrane_labels, self.downsample, n_workers=self.threads,
                                               show_progress=self.show_progress)
            timer.record(nuclei=len(nuclear_regions), whole_cells=len(membrane_regions))
        extraction_time = timer.duration

        with TiffImageSource(image_path, channel_names=self.config.get("channel_names")) as source:
            result = self.process_regions(
                nuclear_regions,
                membrane_regions,
                source.width,
                source.height,
                image_source=source,
            )
        result.timings["extraction"] = extraction_time

        with ProcessingTimer(logger, "GeoJSON export") as timer:
            result.output_path = export_geojson(result.cells, output_path, result.image_width,
                                                result.image_height)
            timer.record(cells=result.n_cells)
        result.timings["export"] = timer.duration

        logger.info(f"Processed {result.n_nuclei} nuclei -> {result.n_cells} cells "
                    f"({result.n_estimated} estimated, {result.n_out_of_bounds} out of bounds)")
        return result
