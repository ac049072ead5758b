"""
Tests for overlap resolution and the bounds filter.

Tests cellmeasurement/roi/overlap.py and cellmeasurement/roi/filters.py.
"""

import sys
from pathlib import Path
from unittest import TestCase

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from cellmeasurement.roi.filters import is_within_bounds, remove_out_of_bounds_cells
from cellmeasurement.roi.overlap import constrain_cell_overlaps
from cellmeasurement.roi.regions import PairedCell
from conftest import square_region


def _overlapping_pair():
    """Two cells overlapping on x 8-12, nuclei centred at x=4 and x=16."""
    a = PairedCell(membrane=square_region(0, 0, 12, 10), nucleus=square_region(2, 3, 6, 7), index=0)
    b = PairedCell(membrane=square_region(8, 0, 20, 10), nucleus=square_region(14, 3, 18, 7), index=1)
    return a, b


class TestConstrainCellOverlaps(TestCase):
    """Tests for constrain_cell_overlaps."""

    def test_overlap_split_along_bisector(self):
        a, b = _overlapping_pair()
        resolved = constrain_cell_overlaps([a, b])

        self.assertEqual(len(resolved), 2)
        self.assertAlmostEqual(resolved[0].membrane.area, 100.0)
        self.assertAlmostEqual(resolved[1].membrane.area, 100.0)
        self.assertAlmostEqual(resolved[0].membrane.bounds[2], 10.0)
        self.assertAlmostEqual(resolved[1].membrane.bounds[0], 10.0)
        overlap = resolved[0].membrane.geometry.intersection(resolved[1].membrane.geometry)
        self.assertAlmostEqual(overlap.area, 0.0)

    def test_order_independent(self):
        a, b = _overlapping_pair()
        forward = constrain_cell_overlaps([a, b])
        backward = constrain_cell_overlaps([b, a])

        self.assertIs(forward[0].nucleus, backward[1].nucleus)
        self.assertTrue(forward[0].membrane.geometry.equals(backward[1].membrane.geometry))
        self.assertTrue(forward[1].membrane.geometry.equals(backward[0].membrane.geometry))

    def test_inputs_not_modified(self):
        a, b = _overlapping_pair()
        original = a.membrane
        constrain_cell_overlaps([a, b])
        self.assertIs(a.membrane, original)
        self.assertAlmostEqual(a.membrane.area, 120.0)

    def test_non_overlapping_cells_unchanged(self):
        a = PairedCell(membrane=square_region(0, 0, 5, 5), nucleus=square_region(1, 1, 2, 2), index=0)
        b = PairedCell(membrane=square_region(10, 10, 15, 15), nucleus=square_region(11, 11, 12, 12), index=1)
        resolved = constrain_cell_overlaps([a, b])
        self.assertIs(resolved[0], a)
        self.assertIs(resolved[1], b)

    def test_touching_cells_unchanged(self):
        a = PairedCell(membrane=square_region(0, 0, 5, 5), nucleus=square_region(1, 1, 2, 2), index=0)
        b = PairedCell(membrane=square_region(5, 0, 10, 5), nucleus=square_region(7, 1, 8, 2), index=1)
        resolved = constrain_cell_overlaps([a, b])
        self.assertIs(resolved[0], a)
        self.assertIs(resolved[1], b)

    def test_nucleus_always_kept(self):
        # Nucleus of a lies on the far side of the bisector
        a = PairedCell(membrane=square_region(0, 0, 20, 10), nucleus=square_region(9, 3, 13, 7), index=0)
        b = PairedCell(membrane=square_region(8, 0, 20, 10), nucleus=square_region(12, 3, 14, 7), index=1)
        resolved = constrain_cell_overlaps([a, b])
        self.assertTrue(resolved[0].membrane.geometry.buffer(1e-9).contains(a.nucleus.geometry))

    def test_measurements_carried_over(self):
        a, b = _overlapping_pair()
        a.measurements["existing"] = 1.0
        resolved = constrain_cell_overlaps([a, b])
        self.assertEqual(resolved[0].measurements, {"existing": 1.0})
        self.assertEqual(resolved[0].index, 0)

    def test_empty_and_single(self):
        self.assertEqual(constrain_cell_overlaps([]), [])
        a, _ = _overlapping_pair()
        self.assertEqual(constrain_cell_overlaps([a]), [a])


class TestBoundsFilter:
    """Tests for remove_out_of_bounds_cells."""

    def _cell(self, x, y, w, h):
        return PairedCell(membrane=square_region(x, y, x + w, y + h), nucleus=None)

    def test_out_of_bounds_removed(self):
        outside = self._cell(95, 95, 20, 20)
        inside = self._cell(10, 10, 20, 20)
        assert remove_out_of_bounds_cells([outside, inside], 100, 100) == [inside]

    def test_boundary_is_inside(self):
        assert is_within_bounds(self._cell(0, 0, 100, 100), 100, 100)

    def test_negative_origin_removed(self):
        assert not is_within_bounds(self._cell(-1, 10, 5, 5), 100, 100)

    def test_order_preserved(self):
        cells = [self._cell(i * 10, 0, 5, 5) for i in range(5)]
        assert remove_out_of_bounds_cells(cells, 100, 100) == cells

    @pytest.mark.parametrize("width,height,expected", [
        (100, 100, 2),
        (25, 100, 1),
        (9, 9, 0),
    ])
    def test_image_size(self, width, height, expected):
        cells = [self._cell(0, 0, 10, 10), self._cell(20, 20, 10, 10)]
        assert len(remove_out_of_bounds_cells(cells, width, height)) == expected
