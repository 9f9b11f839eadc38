"""Tests for directory scanning and batch audit summaries."""

import json
import os
import shutil
import tempfile
import unittest

from NormalAudit.batch import BatchAuditor, format_value
from NormalAudit.config import AuditConfig
from NormalAudit.core import output_path_for, scan_images

from synthetic import flat_buffer, wave_buffer, write_png16


class TestScanning(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def _touch(self, rel):
        path = os.path.join(self.tmpdir, rel)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(b"")

    def test_sorted_relative_paths_filtered_by_extension(self):
        for rel in ("b/z_n.PNG", "a_n.tga", "notes.txt", "b/a_n.png"):
            self._touch(rel)
        found = scan_images(self.tmpdir, [".png", ".tga"])
        self.assertEqual(found, ["a_n.tga", "b/a_n.png", "b/z_n.PNG"])

    @unittest.skipUnless(hasattr(os, "symlink"), "symlinks unavailable")
    def test_symlink_escape_skipped(self):
        outside = tempfile.mkdtemp()
        try:
            with open(os.path.join(outside, "secret.png"), "wb") as f:
                f.write(b"")
            try:
                os.symlink(os.path.join(outside, "secret.png"),
                           os.path.join(self.tmpdir, "link.png"))
            except OSError:
                self.skipTest("symlink creation not permitted")
            self.assertEqual(scan_images(self.tmpdir, [".png"]), [])
        finally:
            shutil.rmtree(outside, ignore_errors=True)

    def test_output_path_for(self):
        self.assertEqual(
            output_path_for("brick/wall_n.png", "out", "-report", ".json"),
            os.path.join("out", "brick", "wall_n-report.json"),
        )
        self.assertEqual(
            output_path_for("wall_n.png", "out", "-report", ".hdr"),
            os.path.join("out", "", "wall_n-report.hdr"),
        )
        with self.assertRaises(ValueError):
            output_path_for("../wall_n.png", "out", "-report", ".json")


class TestFormatValue(unittest.TestCase):
    def test_formats(self):
        self.assertEqual(format_value(None), "")
        self.assertEqual(format_value(float("nan")), "")
        self.assertEqual(format_value(0.123456), "0.123")
        self.assertEqual(format_value(1234.5), "1.23e+03")
        self.assertEqual(format_value(True), "x")
        self.assertEqual(format_value("a.png"), "a.png")


class TestBatchAuditor(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.config = AuditConfig()
        self.config.batch.input_dir = os.path.join(self.tmpdir, "in")
        self.config.batch.output_dir = os.path.join(self.tmpdir, "out")
        self.config.batch.max_workers = 2
        os.makedirs(self.config.batch.input_dir)
        write_png16(os.path.join(self.config.batch.input_dir, "wave_n.png"),
                    wave_buffer(amplitude=0.4))
        write_png16(os.path.join(self.config.batch.input_dir, "flat_n.png"),
                    flat_buffer(with_height=False))

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_reports_written_per_image(self):
        reports = BatchAuditor(self.config).run()
        self.assertEqual([r.image for r in reports], ["flat_n.png", "wave_n.png"])
        out = self.config.batch.output_dir
        with open(os.path.join(out, "flat_n-report.json"), encoding="utf-8") as f:
            flat = json.load(f)
        self.assertTrue(flat["error_heightmap_missing"])
        self.assertIsNone(flat["normalmap_R_2"])
        self.assertTrue(os.path.exists(os.path.join(out, "wave_n-report.hdr")))

    def test_summary_json(self):
        with open(os.path.join(self.config.batch.input_dir, "broken.png"), "wb") as f:
            f.write(b"garbage")
        batch = BatchAuditor(self.config)
        batch.run()
        self.assertIn("broken.png", batch.failures)
        with open(os.path.join(self.config.batch.output_dir, "audit_summary.json"),
                  encoding="utf-8") as f:
            summary = json.load(f)
        self.assertEqual(summary["total"], 3)
        self.assertEqual(summary["flagged"], 1)
        self.assertEqual(len(summary["reports"]), 2)
        self.assertEqual(summary["failures"][0]["filename"], "broken.png")

    def test_summary_table(self):
        self.config.batch.write_diagnostics = False
        BatchAuditor(self.config).run()
        path = os.path.join(self.config.batch.output_dir, "audit_summary.txt")
        with open(path, encoding="utf-8") as f:
            rows = [line.split("\t") for line in f.read().splitlines()]
        header = rows[0]
        self.assertEqual(header[:2], ["filename", "errors"])
        self.assertEqual(header[2:], sorted(header[2:]))
        self.assertNotIn("image", header)
        self.assertFalse(any(h.startswith("error_") for h in header))

        flat = dict(zip(header, rows[1]))
        self.assertEqual(flat["filename"], "flat_n.png")
        self.assertEqual(flat["errors"], "heightmap_missing")
        self.assertEqual(flat["normalmap_R_2"], "")
        self.assertEqual(flat["heightmap_R_2"], "")
        self.assertFalse(os.path.exists(
            os.path.join(self.config.batch.output_dir, "flat_n-report.hdr")))


if __name__ == "__main__":
    unittest.main(verbosity=2)
