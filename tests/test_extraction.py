"""
Tests for label mask conversion and region value types.

Tests cellmeasurement/roi/extraction.py and cellmeasurement/roi/regions.py.
"""

import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from cellmeasurement.roi.extraction import (
    MaskFormatError,
    check_label_image,
    extract_regions,
    mask_to_geometry,
)
from cellmeasurement.roi.regions import Compartment, RasterContext, rasterize_geometry
from conftest import square_region


class TestCheckLabelImage:
    """Tests for check_label_image input rejection."""

    def test_rgb_rejected(self):
        with pytest.raises(MaskFormatError, match="RGB"):
            check_label_image(np.zeros((10, 10, 3), dtype=np.uint8))

    def test_rgba_rejected(self):
        with pytest.raises(MaskFormatError):
            check_label_image(np.zeros((10, 10, 4), dtype=np.uint8))

    def test_non_integer_float_rejected(self):
        labels = np.zeros((5, 5), dtype=np.float32)
        labels[1, 1] = 1.5
        with pytest.raises(MaskFormatError):
            check_label_image(labels)

    def test_integer_valued_float_accepted(self):
        labels = np.zeros((5, 5), dtype=np.float32)
        labels[1, 1] = 2.0
        result = check_label_image(labels)
        assert np.issubdtype(result.dtype, np.integer)
        assert result[1, 1] == 2

    def test_singleton_dims_squeezed(self):
        result = check_label_image(np.zeros((1, 8, 6), dtype=np.uint8))
        assert result.shape == (8, 6)

    def test_bool_converted(self):
        result = check_label_image(np.ones((3, 3), dtype=bool))
        assert result.dtype == np.int32

    def test_mask_format_error_is_value_error(self):
        assert issubclass(MaskFormatError, ValueError)


class TestMaskToGeometry:
    """Tests for pixel-edge tracing."""

    def test_single_pixel_is_unit_square(self):
        mask = np.zeros((3, 3), dtype=bool)
        mask[1, 2] = True
        geom = mask_to_geometry(mask)
        assert geom.area == pytest.approx(1.0)
        assert geom.bounds == (2.0, 1.0, 3.0, 2.0)

    def test_offset_applied(self):
        geom = mask_to_geometry(np.ones((2, 3), dtype=bool), x_offset=10, y_offset=5)
        assert geom.bounds == (10.0, 5.0, 13.0, 7.0)

    def test_hole_preserved(self):
        mask = np.ones((5, 5), dtype=bool)
        mask[2, 2] = False
        geom = mask_to_geometry(mask)
        assert geom.area == pytest.approx(24.0)

    def test_empty_mask(self):
        assert mask_to_geometry(np.zeros((4, 4), dtype=bool)).is_empty


class TestExtractRegions:
    """Tests for extract_regions."""

    def test_empty_mask_returns_empty_list(self):
        assert extract_regions(np.zeros((20, 20), dtype=np.uint8)) == []

    def test_one_region_per_label_in_order(self, nuclear_labels):
        regions = extract_regions(nuclear_labels)
        assert [r.label for r in regions] == [1, 2, 3]

    def test_geometry_matches_pixels(self, nuclear_labels):
        first = extract_regions(nuclear_labels)[0]
        assert first.area == pytest.approx(100.0)
        assert first.centroid == pytest.approx((25.0, 25.0))
        assert first.bounds == pytest.approx((20.0, 20.0, 10.0, 10.0))

    def test_downsample_scales_to_full_resolution(self, nuclear_labels):
        first = extract_regions(nuclear_labels, downsample=2.0)[0]
        assert first.area == pytest.approx(400.0)
        assert first.bounds == pytest.approx((40.0, 40.0, 20.0, 20.0))

    def test_missing_labels_skipped(self):
        labels = np.zeros((10, 10), dtype=np.int32)
        labels[0:2, 0:2] = 1
        labels[5:7, 5:7] = 4
        assert [r.label for r in extract_regions(labels)] == [1, 4]

    def test_workers_give_identical_regions(self, nuclear_labels):
        serial = extract_regions(nuclear_labels, n_workers=1)
        threaded = extract_regions(nuclear_labels, n_workers=4)
        assert [r.label for r in serial] == [r.label for r in threaded]
        for a, b in zip(serial, threaded):
            assert a.geometry.equals(b.geometry)

    def test_rgb_rejected(self):
        with pytest.raises(MaskFormatError):
            extract_regions(np.zeros((10, 10, 3), dtype=np.uint8))


class TestRasterize:
    """Tests for pixel-centre rasterization."""

    def test_extracted_region_rasterizes_back_to_mask(self, nuclear_labels):
        for region in extract_regions(nuclear_labels):
            raster = region.rasterize(100, 100)
            np.testing.assert_array_equal(raster > 0, nuclear_labels == region.label)

    def test_raster_values(self):
        raster = square_region(1, 1, 3, 3).rasterize(4, 4)
        assert raster.dtype == np.uint8
        assert set(np.unique(raster)) == {0, 255}
        assert (raster > 0).sum() == 4

    def test_context_offset(self):
        region = square_region(10, 20, 14, 22)
        raster = region.rasterize(4, 2, RasterContext(10, 20, 1.0))
        assert (raster > 0).all()

    def test_context_downsample(self):
        region = square_region(0, 0, 8, 8)
        raster = region.rasterize(8, 8, RasterContext(0, 0, 2.0))
        assert (raster > 0).sum() == 16
        assert (raster[:4, :4] > 0).all()

    def test_empty_geometry(self):
        from shapely.geometry import Polygon
        assert rasterize_geometry(Polygon(), 5, 5).sum() == 0

    @pytest.mark.parametrize("left, right", [
        # Shared vertical edge at x=20 passes through the column-2 centres
        ((15, 15, 20, 35), (20, 15, 35, 35)),
        # Shared horizontal edge at y=20 passes through the row-2 centres
        ((15, 15, 35, 20), (15, 20, 35, 35)),
    ])
    def test_shared_edge_pixels_assigned_once(self, left, right):
        context = RasterContext(15, 15, 2.0)
        first = square_region(*left).rasterize(10, 10, context) > 0
        second = square_region(*right).rasterize(10, 10, context) > 0
        assert first.sum() == 20
        assert second.sum() == 80
        assert not (first & second).any()
        assert (first | second).all()

    def test_shared_diagonal_pixels_assigned_once(self):
        from shapely.geometry import Polygon
        upper = rasterize_geometry(Polygon([(0, 0), (4, 0), (4, 4)]), 4, 4) > 0
        lower = rasterize_geometry(Polygon([(0, 0), (4, 4), (0, 4)]), 4, 4) > 0
        assert not (upper & lower).any()
        assert (upper | lower).all()


class TestRegionTypes:
    """Tests for Region, PairedCell and Compartment."""

    def test_region_identity_by_reference(self):
        a = square_region(0, 0, 2, 2)
        b = square_region(0, 0, 2, 2)
        assert a != b
        assert a == a

    def test_expand(self):
        region = square_region(0, 0, 10, 10)
        grown = region.expand(2.0)
        assert grown.area > region.area
        assert region.area == pytest.approx(100.0)

    def test_compartment_display_names(self):
        assert Compartment.NUCLEUS.display_name == "Nucleus"
        assert Compartment.CYTOPLASM.display_name == "Cytoplasm"

    def test_compartment_parse(self):
        assert Compartment.parse("MEMBRANE") is Compartment.MEMBRANE
        assert Compartment.parse(Compartment.CELL) is Compartment.CELL
        with pytest.raises(ValueError):
            Compartment.parse("golgi")
