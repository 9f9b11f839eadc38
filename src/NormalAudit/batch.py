"""Audit every normal map under a directory and summarize the results.

Each image gets its own JSON report (and optionally a diagnostic image);
the run also writes a machine-readable summary and a plain-text table that
lists raised flags and metrics side by side.
"""

import json
import logging
import math
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional

from tqdm import tqdm

from .audit import ConsistencyReport, NormalMapAuditor
from .config import AuditConfig
from .core import ImageDecodeError, DiagnosticWriteError, scan_images, output_path_for

logger = logging.getLogger("normal_audit.batch")

# Report fields that are not metrics and stay out of the summary table.
_HIDDEN_FIELDS = {
    "image", "output_name",
    "output_channel_r", "output_channel_g", "output_channel_b",
}


def format_value(value) -> str:
    """Format one report value for the summary table."""
    if value is None:
        return ""
    if value is True:
        return "x"
    if isinstance(value, float):
        if not math.isfinite(value):
            return ""
        return f"{value:.3g}"
    return str(value)


class BatchAuditor:
    """Audit a directory of images with one shared configuration."""

    def __init__(self, config: AuditConfig):
        """Validate config and create the per-image auditor."""
        self.config = config
        self.cfg = config.batch
        self.auditor = NormalMapAuditor(config)
        self.reports: List[ConsistencyReport] = []
        self.failures: Dict[str, str] = {}

    def audit_one(self, rel_path: str) -> dict:
        """Audit one input-relative image path; never raises for image errors."""
        result = {"filename": rel_path, "report": None, "report_path": None, "error": None}
        src = os.path.join(self.cfg.input_dir, rel_path)
        diag_path = None
        if self.cfg.write_diagnostics:
            diag_path = output_path_for(
                rel_path, self.cfg.output_dir, "-report", self.cfg.diagnostic_ext,
            )

        try:
            audit = self.auditor.audit_file(src, diagnostic_path=diag_path, image_name=rel_path)
            report = audit.report
        except DiagnosticWriteError as e:
            report = e.result.report
            result["error"] = str(e)
        except (ImageDecodeError, ValueError) as e:
            logger.error("Audit failed for %s: %s", rel_path, e)
            result["error"] = str(e)
            return result

        result["report"] = report
        report_path = output_path_for(rel_path, self.cfg.output_dir, "-report", ".json")
        try:
            os.makedirs(os.path.dirname(report_path) or ".", exist_ok=True)
            with open(report_path, "w", encoding="utf-8") as f:
                report.write(f)
        except OSError as e:
            logger.error("Failed to write report '%s': %s", report_path, e)
            result["error"] = f"Could not write report to {report_path}: {e}"
            return result
        result["report_path"] = report_path
        return result

    def run(self, images: Optional[List[str]] = None) -> List[ConsistencyReport]:
        """Audit every image and write the summary files."""
        if images is None:
            images = scan_images(self.cfg.input_dir, self.cfg.supported_formats)
        os.makedirs(self.cfg.output_dir, exist_ok=True)

        results = []
        workers = min(self.cfg.max_workers, max(len(images), 1))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {executor.submit(self.audit_one, rel): rel for rel in images}
            with tqdm(total=len(futures), desc="Auditing") as pbar:
                for future in as_completed(futures):
                    results.append(future.result())
                    pbar.update(1)

        results.sort(key=lambda r: r["filename"])
        self.reports = [r["report"] for r in results if r["report"] is not None]
        self.failures = {r["filename"]: r["error"] for r in results if r["error"]}

        self.write_summary_json(os.path.join(self.cfg.output_dir, "audit_summary.json"))
        self.write_summary_table(os.path.join(self.cfg.output_dir, "audit_summary.txt"))
        logger.info(
            "Batch audit finished: %d report(s), %d failure(s)",
            len(self.reports), len(self.failures),
        )
        return self.reports

    def write_summary_json(self, output_path: str):
        """Write all reports and failures to one JSON file (NaN as null)."""
        payload = {
            "total": len({r.image for r in self.reports} | set(self.failures)),
            "flagged": sum(1 for r in self.reports if not r.passed),
            "reports": [r.to_dict() for r in self.reports],
            "failures": [
                {"filename": name, "error": err}
                for name, err in sorted(self.failures.items())
            ],
        }
        os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, allow_nan=False)
        logger.info("Audit summary saved: %s", output_path)

    def write_summary_table(self, output_path: str):
        """Write a tab-separated table: filename, flags, then sorted metrics."""
        columns = sorted({
            name
            for report in self.reports
            for name in report.keys()
            if name not in _HIDDEN_FIELDS and not name.startswith("error_")
        })
        lines = ["\t".join(["filename", "errors"] + columns)]
        for report in self.reports:
            errors = ",".join(name[len("error_"):] for name in report.errors)
            row = [report.image, errors]
            row += [format_value(report.get(name)) for name in columns]
            lines.append("\t".join(row))
        for name, err in sorted(self.failures.items()):
            lines.append(f"{name}\tFAILED: {err}")

        os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            f.write("\n".join(lines) + "\n")
        logger.info("Audit table saved: %s", output_path)
