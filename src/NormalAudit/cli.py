"""Command-line interface for the normal map auditor."""

import argparse
import logging
import os
import sys

from .config import AuditConfig
from .core import setup_logging, ImageDecodeError, DiagnosticWriteError

logger = logging.getLogger("normal_audit")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="normal-audit",
        description="Audit a normal map (and optional height channel) for consistency",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  normal-audit brick_n.png
  normal-audit -8 -y brick_n.png
  normal-audit -c -o brick_n-report.hdr brick_n.png
  normal-audit --config audit.yaml --batch ./textures --output-dir ./audit
  normal-audit --generate-config audit.yaml
        """
    )
    parser.add_argument("infile", nargs="?", help="Normal map to audit (RGB or RGBA)")

    encoding = parser.add_mutually_exclusive_group()
    encoding.add_argument("-7", dest="symmetric8", action="store_true",
                          help="Normals stored as 127 +- 127 (center 127/255)")
    encoding.add_argument("-8", dest="fullrange8", action="store_true",
                          help="Normals stored as 128 +- 127 (center 128/255)")
    parser.add_argument("--center", type=float, help="Custom encoding center in [0, 1]")
    parser.add_argument("--range", dest="value_range", type=float,
                        help="Custom encoding range (> 0)")
    parser.add_argument("-y", dest="invert_y", action="store_true",
                        help="Green channel stores -Y")
    parser.add_argument("-n", dest="nearest", action="store_true",
                        help="Use nearest (average) integration instead of the exact form")
    parser.add_argument("-r", dest="roundoff_discount", type=float,
                        help="Round-off discount factor (default 1.0)")
    parser.add_argument("--bits", type=int, help="Bits per stored channel (default 8)")
    parser.add_argument("-c", dest="post_correction", action="store_true",
                        help="Write post-correction residuals (requires -o)")
    parser.add_argument("-o", dest="output", help="Diagnostic image (.hdr, .exr, .tif)")

    parser.add_argument("--config", help="Path to config YAML")
    parser.add_argument("--log-level",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    parser.add_argument("--log-file", help="Rotating log file path")

    parser.add_argument("--batch", metavar="DIR", help="Audit every image under DIR")
    parser.add_argument("--output-dir", help="Batch output directory")
    parser.add_argument("--workers", type=int, help="Max parallel batch workers")
    parser.add_argument("--no-diagnostics", action="store_true",
                        help="Skip per-image diagnostic images in batch mode")
    parser.add_argument("--generate-config", nargs="?", const="normal_audit.yaml",
                        metavar="PATH", help="Write a default config YAML and exit")
    return parser


def apply_overrides(config: AuditConfig, args: argparse.Namespace):
    """Apply command-line flags on top of a loaded configuration."""
    enc = config.encoding
    if args.symmetric8:
        enc.preset = "symmetric8"
    elif args.fullrange8:
        enc.preset = "fullrange8"
    if args.center is not None or args.value_range is not None:
        center, value_range = enc.resolve()
        enc.preset = "custom"
        enc.center = args.center if args.center is not None else center
        enc.value_range = args.value_range if args.value_range is not None else value_range
    if args.invert_y:
        enc.invert_y = True
    if args.bits is not None:
        enc.bits = args.bits

    if args.nearest:
        config.analysis.nearest_integration = True
    if args.roundoff_discount is not None:
        config.analysis.roundoff_discount = args.roundoff_discount

    if args.output:
        config.output.diagnostic_path = args.output
    if args.post_correction:
        config.output.post_correction = True

    if args.log_level:
        config.log_level = args.log_level
    if args.log_file:
        config.log_file = args.log_file

    if args.batch:
        config.batch.input_dir = args.batch
    if args.output_dir:
        config.batch.output_dir = args.output_dir
    if args.workers is not None:
        config.batch.max_workers = args.workers
    if args.no_diagnostics:
        config.batch.write_diagnostics = False


def _run_batch(config: AuditConfig) -> int:
    from .batch import BatchAuditor

    if not os.path.isdir(config.batch.input_dir):
        logger.error("Input directory invalid or not found: %s", config.batch.input_dir)
        print(f"Error: Input directory not found: {config.batch.input_dir}", file=sys.stderr)
        return 1

    batch = BatchAuditor(config)
    reports = batch.run()
    flagged = sum(1 for r in reports if not r.passed)
    print(
        f"Audited {len(reports)} image(s): {flagged} flagged, "
        f"{len(batch.failures)} failed. Summary in {config.batch.output_dir}"
    )
    return 1 if batch.failures else 0


def _run_single(config: AuditConfig, infile: str) -> int:
    from .audit import NormalMapAuditor

    auditor = NormalMapAuditor(config)
    diagnostic_path = config.output.diagnostic_path if config.wants_diagnostics else None
    try:
        result = auditor.audit_file(infile, diagnostic_path=diagnostic_path)
    except ImageDecodeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except DiagnosticWriteError as e:
        # The analysis finished; the report is still worth emitting.
        e.result.report.write(sys.stdout)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    result.report.write(sys.stdout)
    return 0


def main(argv=None) -> int:
    """Parse CLI arguments, run the audit, and return the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.generate_config:
        config = AuditConfig()
        dest = args.generate_config
        if os.path.isdir(dest):
            dest = os.path.join(dest, "normal_audit.yaml")
        config.to_yaml(dest)
        logger.info("Generated default %s", dest)
        print(f"Generated default {dest}")
        return 0

    # Ensure early validation warnings from from_yaml() are visible on stderr
    # before the configured logging is installed.
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s")

    if args.config:
        if not os.path.exists(args.config):
            logger.error("Config file not found: %s", args.config)
            print(f"Error: Config file not found: {args.config}", file=sys.stderr)
            return 1
        try:
            config = AuditConfig.from_yaml(args.config)
        except ValueError as e:
            logger.error("Invalid config file '%s': %s", args.config, e)
            print(f"Error: Invalid config: {e}", file=sys.stderr)
            return 1
    else:
        config = AuditConfig()

    apply_overrides(config, args)
    setup_logging(config.log_level, config.log_file or None)

    try:
        config.validate()
    except ValueError as e:
        logger.error(str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not args.batch and not args.infile:
        parser.print_usage(sys.stderr)
        print("Error: an input image or --batch DIR is required", file=sys.stderr)
        return 1

    try:
        if args.batch:
            return _run_batch(config)
        return _run_single(config, args.infile)
    except KeyboardInterrupt:
        logger.warning("Interrupted by user.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
