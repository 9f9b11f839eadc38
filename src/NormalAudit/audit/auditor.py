"""Audit a normal map (and optional height channel) for self-consistency.

The audit makes two full passes over the texels. Pass 1 gathers the
least-squares sums; pass 2 measures every residual against the resulting
global fits, so it cannot start before pass 1 is complete.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..config import AuditConfig
from ..core import (
    PixelBuffer, DiagnosticWriteError, load_texels, save_diagnostic_image,
)
from .curl import block_integrals
from .decode import decode_normals
from .regression import FitParameters, RegressionAccumulator
from .report import ConsistencyReport, aggregate
from .uncertainty import (
    ErrorBound, ResidualSums, block_residuals, diagnostic_channels,
)

logger = logging.getLogger("normal_audit.audit")


@dataclass
class AuditResult:
    """Report plus the optional per-texel diagnostic buffer."""

    report: ConsistencyReport
    diagnostics: Optional[np.ndarray] = None
    fit: Optional[FitParameters] = None


class NormalMapAuditor:
    """Run consistency audits with one configuration."""

    def __init__(self, config: AuditConfig = None):
        """Validate and keep the configuration used for every audit."""
        self.config = config or AuditConfig()
        self.config.validate()
        enc = self.config.encoding
        self.center, self.value_range = enc.resolve()
        self.bound = ErrorBound.from_encoding(
            self.config.analysis.roundoff_discount, self.value_range, enc.max_code,
        )
        self.nearest = self.config.analysis.nearest_integration
        self.band_rows = self.config.analysis.band_rows

    def decode(self, buffer: PixelBuffer) -> PixelBuffer:
        """Decode stored channel values into normals, in place."""
        return decode_normals(
            buffer, self.center, self.value_range, self.config.encoding.invert_y,
        )

    def fit_pass(self, buffer: PixelBuffer) -> FitParameters:
        """Pass 1: accumulate least-squares sums and derive global fits."""
        acc = RegressionAccumulator()
        for y0, y1 in buffer.bands(self.band_rows):
            acc.add(block_integrals(buffer.corners(y0, y1), self.nearest))
        return acc.fit()

    def residual_pass(self, buffer: PixelBuffer, fit: FitParameters,
                      output: Optional[np.ndarray] = None,
                      post_correction: bool = False) -> ResidualSums:
        """Pass 2: accumulate unexplained residuals against ``fit``.

        When ``output`` is an (H, W, 3) array it receives the diagnostic
        channels of every texel.
        """
        sums = ResidualSums()
        for y0, y1 in buffer.bands(self.band_rows):
            corners = buffer.corners(y0, y1)
            residuals = block_residuals(
                corners, block_integrals(corners, self.nearest), fit, self.bound,
            )
            sums.add(residuals)
            if output is not None:
                output[y0:y1] = diagnostic_channels(residuals, post_correction)
        logger.debug(
            "Residual pass over %d texels: height_ss=%.6g escher_ss=%.6g length2_ss=%.6g",
            sums.count, sums.height_ss, sums.escher_ss, sums.length2_ss,
        )
        return sums

    def audit_buffer(self, buffer: PixelBuffer, image_name: str = "",
                     with_diagnostics: bool = False,
                     output_name: Optional[str] = None,
                     decoded: bool = False) -> AuditResult:
        """Audit a texel buffer.

        The buffer is decoded in place unless ``decoded`` is True. A
        diagnostic buffer is produced when ``with_diagnostics`` is True or an
        ``output_name`` is given.
        """
        if not decoded:
            self.decode(buffer)

        fit = self.fit_pass(buffer)

        post_correction = self.config.output.post_correction
        diagnostics = None
        if with_diagnostics or output_name is not None:
            diagnostics = np.zeros((buffer.height, buffer.width, 3), dtype=np.float32)
        sums = self.residual_pass(buffer, fit, diagnostics, post_correction)

        report = aggregate(
            image_name, buffer.has_height, fit, sums,
            thresholds=self.config.thresholds,
            output_name=output_name,
            post_correction=post_correction,
        )
        logger.info(
            "Audited %s (%dx%d): %s", image_name or "<buffer>",
            buffer.width, buffer.height,
            ", ".join(report.errors) if report.errors else "no flags raised",
        )
        return AuditResult(report=report, diagnostics=diagnostics, fit=fit)

    def audit_file(self, path: str, diagnostic_path: Optional[str] = None,
                   image_name: Optional[str] = None) -> AuditResult:
        """Load, audit, and optionally write the diagnostic image for one file.

        Raises ImageDecodeError before any analysis when the input cannot be
        read, and DiagnosticWriteError (with the finished result attached as
        ``exc.result``) when the diagnostic image cannot be written.
        """
        buffer = load_texels(path, max_pixels=self.config.max_image_pixels)
        result = self.audit_buffer(
            buffer,
            image_name=image_name if image_name is not None else path,
            output_name=diagnostic_path,
        )
        if diagnostic_path:
            try:
                save_diagnostic_image(result.diagnostics, diagnostic_path)
            except DiagnosticWriteError as e:
                logger.error("Failed to write diagnostic image '%s': %s", diagnostic_path, e)
                e.result = result
                raise
            except OSError as e:
                logger.error("Failed to write diagnostic image '%s': %s", diagnostic_path, e)
                err = DiagnosticWriteError(f"Could not write image to {diagnostic_path}: {e}")
                err.result = result
                raise err from e
        return result


def audit_file(path: str, config: AuditConfig = None) -> ConsistencyReport:
    """Audit one image with ``config`` and return its report."""
    config = config or AuditConfig()
    auditor = NormalMapAuditor(config)
    diagnostic_path = config.output.diagnostic_path if config.wants_diagnostics else None
    return auditor.audit_file(path, diagnostic_path=diagnostic_path).report
