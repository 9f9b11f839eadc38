"""Provide package metadata and top-level entry points for `NormalAudit`."""

import logging as _logging

__version__ = "1.0.0"
_logger = _logging.getLogger("normal_audit")

from .audit import NormalMapAuditor, ConsistencyReport, audit_file  # noqa: E402
from .config import AuditConfig  # noqa: E402

__all__ = [
    "__version__",
    "AuditConfig",
    "NormalMapAuditor",
    "ConsistencyReport",
    "audit_file",
]
