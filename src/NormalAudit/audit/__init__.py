"""Normal map consistency auditing engine."""

from .decode import decode_normals, encode_normals
from .curl import integrate, block_integrals, BlockIntegrals
from .regression import (
    LeastSquaresSums, RegressionAccumulator, FitParameters, area_preserving_fit,
)
from .uncertainty import (
    ErrorBound, ResidualSums, ratio_e, fabs_without_explained_error,
)
from .report import ConsistencyReport, ReportBuilder, aggregate, r_squared
from .auditor import AuditResult, NormalMapAuditor, audit_file

__all__ = [
    "decode_normals", "encode_normals",
    "integrate", "block_integrals", "BlockIntegrals",
    "LeastSquaresSums", "RegressionAccumulator", "FitParameters",
    "area_preserving_fit",
    "ErrorBound", "ResidualSums", "ratio_e", "fabs_without_explained_error",
    "ConsistencyReport", "ReportBuilder", "aggregate", "r_squared",
    "AuditResult", "NormalMapAuditor", "audit_file",
]
