"""Entrypoint for `python -m NormalAudit`.

Usage:
  - Single image: `python -m NormalAudit [options] infile`
  - Directory:    `python -m NormalAudit --batch DIR [options]`
"""
import logging
import sys

logger = logging.getLogger("normal_audit")


def _run_cli():
    from .cli import main as cli_main
    logger.debug("Dispatching to CLI entrypoint.")
    sys.exit(cli_main())


if __name__ == "__main__":
    _run_cli()
