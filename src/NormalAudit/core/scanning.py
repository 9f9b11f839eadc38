"""Discover auditable images under a directory and name their outputs."""

import logging
import os
from pathlib import Path, PurePosixPath
from typing import Iterable, List

logger = logging.getLogger("normal_audit.scanning")


def scan_images(input_dir: str, supported_formats: Iterable[str]) -> List[str]:
    """Return sorted relative paths of supported images under ``input_dir``.

    Files reached through symlinks that leave the input root are skipped.
    """
    supported = {ext.lower() for ext in supported_formats}
    input_root_real = os.path.realpath(input_dir)
    found = []

    for root, dirs, files in os.walk(input_dir):
        dirs.sort()
        for fname in sorted(files):
            ext = Path(fname).suffix.lower()
            if ext not in supported:
                continue

            fpath = os.path.join(root, fname)
            real_fpath = os.path.realpath(fpath)
            try:
                if os.path.commonpath([input_root_real, real_fpath]) != input_root_real:
                    logger.warning(
                        "Skipping file outside input root via symlink/path traversal: %s",
                        fpath,
                    )
                    continue
            except ValueError:
                logger.warning("Skipping file with incompatible path root: %s", fpath)
                continue

            rel_path = os.path.relpath(fpath, input_dir).replace("\\", "/")
            found.append(rel_path)

    logger.info("Found %d image(s) to audit under %s", len(found), input_dir)
    return found


def output_path_for(rel_path: str, output_dir: str, suffix: str, ext: str) -> str:
    """Map an input-relative image path to an output file.

    ``brick/wall_n.png`` with suffix ``-report`` and ext ``.json`` becomes
    ``<output_dir>/brick/wall_n-report.json``.
    """
    p = PurePosixPath(str(rel_path).replace("\\", "/"))
    if p.is_absolute() or ".." in p.parts:
        raise ValueError(f"Image path must stay inside the input root: {rel_path}")
    parent = "" if str(p.parent) == "." else str(p.parent)
    return os.path.join(output_dir, parent, p.stem + suffix + ext)
