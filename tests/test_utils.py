"""
Tests for the logging and JSON helpers.

Tests the following modules:
- cellmeasurement/utils/logging.py - stage timing and run summaries
- cellmeasurement/utils/json_utils.py - GeoJSON and config file writing

Run with: pytest tests/test_utils.py -v
"""

import json
import logging
import sys
import tempfile
from pathlib import Path
from unittest import TestCase

import numpy as np

sys.path.insert(0, str(Path(__file__).parent.parent))

from cellmeasurement.utils.json_utils import (
    atomic_json_dump,
    dump_feature_collection,
    load_json,
)
from cellmeasurement.utils.logging import (
    ProcessingTimer,
    format_duration,
    log_run_config,
)

LOGGER_NAME = "cellmeasurement.tests"


# =============================================================================
# LOGGING MODULE TESTS
# =============================================================================

class TestProcessingTimer(TestCase):
    """Tests for ProcessingTimer stage reports."""

    def setUp(self):
        self.logger = logging.getLogger(LOGGER_NAME)

    def test_completed_line_reports_counts(self):
        with self.assertLogs(LOGGER_NAME, level="INFO") as logs:
            with ProcessingTimer(self.logger, "ROI matching") as timer:
                timer.record(nuclei=3, cells=3)
                timer.record(estimated=1)

        self.assertEqual(logs.output[0], f"INFO:{LOGGER_NAME}:Starting: ROI matching")
        self.assertIn("Completed: ROI matching in", logs.output[-1])
        self.assertTrue(logs.output[-1].endswith("(nuclei: 3, cells: 3, estimated: 1)"))
        self.assertEqual(timer.counts, {"nuclei": 3, "cells": 3, "estimated": 1})
        self.assertGreaterEqual(timer.duration, 0.0)

    def test_no_counts_no_suffix(self):
        with self.assertLogs(LOGGER_NAME, level="INFO") as logs:
            with ProcessingTimer(self.logger, "Export"):
                pass
        self.assertTrue(logs.output[-1].endswith(" s"))

    def test_failure_logged_and_raised(self):
        with self.assertLogs(LOGGER_NAME, level="INFO") as logs:
            with self.assertRaises(RuntimeError):
                with ProcessingTimer(self.logger, "Shape measurements") as timer:
                    timer.record(measured=1)
                    raise RuntimeError("boom")

        self.assertTrue(logs.output[-1].startswith(f"ERROR:{LOGGER_NAME}:Failed: Shape measurements after"))
        self.assertTrue(logs.output[-1].endswith(": boom"))
        self.assertFalse(any("Completed" in line for line in logs.output))
        self.assertIsNotNone(timer.duration)


class TestLogRunConfig(TestCase):
    """Tests for log_run_config."""

    def test_inputs_and_settings_logged(self):
        logger = logging.getLogger(LOGGER_NAME)
        with self.assertLogs(LOGGER_NAME, level="INFO") as logs:
            log_run_config(
                logger,
                {"image": "slide.ome.tif"},
                {"percentiles": [5, 50], "channel_names": None, "compartments": []},
            )

        messages = [record.getMessage() for record in logs.records]
        self.assertEqual(messages[0], "Cell measurement run")
        self.assertIn("  Inputs:", messages)
        self.assertIn("  Settings:", messages)
        self.assertTrue(any(m.strip().startswith("image") and m.endswith("slide.ome.tif") for m in messages))
        self.assertTrue(any(m.endswith("5, 50") for m in messages))
        self.assertTrue(any(m.endswith("(default)") for m in messages))
        self.assertTrue(any(m.endswith("(none)") for m in messages))


class TestFormatDuration(TestCase):
    def test_units(self):
        self.assertEqual(format_duration(2.04), "2.0 s")
        self.assertEqual(format_duration(90), "1.5 min")
        self.assertEqual(format_duration(5400), "1.5 h")


# =============================================================================
# JSON UTILS TESTS
# =============================================================================

class TestFeatureCollectionWriting(TestCase):
    """Tests for dump_feature_collection and load_json."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmpdir = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def test_nan_measurements_written_as_null(self):
        collection = {
            "type": "FeatureCollection",
            "features": [{"type": "Feature", "properties": {
                "measurements": {"DAPI: Nucleus: Mean": np.float32(np.nan), "Cell: Area µm^2": np.float64(4.0)},
            }}],
        }
        path = dump_feature_collection(collection, self.tmpdir / "cells.geojson")

        text = path.read_text(encoding="utf-8")
        self.assertIn("µm^2", text)
        measurements = load_json(path)["features"][0]["properties"]["measurements"]
        self.assertIsNone(measurements["DAPI: Nucleus: Mean"])
        self.assertEqual(measurements["Cell: Area µm^2"], 4.0)

    def test_pretty_and_compact(self):
        collection = {"type": "FeatureCollection", "features": []}
        pretty = dump_feature_collection(collection, self.tmpdir / "pretty.geojson")
        compact = dump_feature_collection(collection, self.tmpdir / "compact.geojson", pretty=False)
        self.assertIn("\n", pretty.read_text(encoding="utf-8"))
        self.assertEqual(compact.read_text(encoding="utf-8"), '{"type":"FeatureCollection","features":[]}')

    def test_not_a_feature_collection(self):
        with self.assertRaises(ValueError):
            dump_feature_collection({"type": "Feature"}, self.tmpdir / "one.geojson")
        with self.assertRaises(ValueError):
            dump_feature_collection({"type": "FeatureCollection"}, self.tmpdir / "none.geojson")
        self.assertEqual(list(self.tmpdir.iterdir()), [])

    def test_creates_parent_directories(self):
        path = atomic_json_dump({"threads": 2}, self.tmpdir / "runs" / "a" / "config.json", indent=2)
        self.assertEqual(json.loads(path.read_text(encoding="utf-8")), {"threads": 2})
