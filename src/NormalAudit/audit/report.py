"""Turn fit and residual statistics into a named-metric report.

Metrics that cannot be computed (zero-variance denominators) stay NaN or
infinite and are written as JSON null, so "not computable" is never confused
with "computed and clean". Flags are only present when raised.
"""

import io
import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..config import ThresholdConfig
from .regression import FitParameters, divide
from .uncertainty import ResidualSums

logger = logging.getLogger("normal_audit.report")

_CHANNEL_LABELS = {
    False: ("heightmap_error", "length_error", "normalmap_error"),
    True: ("heightmap_scale_error", "length_error", "normalmap_fix_error"),
}


class ReportBuilder:
    """Write one JSON object field by field to a text stream."""

    def __init__(self, stream):
        self._stream = stream
        self._first = True

    def begin(self):
        self._first = True
        self._stream.write("{")

    def add_field(self, key: str, value: Any):
        sep = "\n" if self._first else ",\n"
        self._first = False
        self._stream.write(f"{sep}  {json.dumps(key)}: {self.encode_value(value)}")

    def end(self):
        self._stream.write("\n}\n" if not self._first else "}\n")

    @staticmethod
    def encode_value(value: Any) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)):
            if not math.isfinite(value):
                return "null"
            return repr(float(value))
        return json.dumps(str(value))


@dataclass(frozen=True)
class ConsistencyReport:
    """Immutable, ordered audit result for one image."""

    fields: Tuple[Tuple[str, Any], ...]

    def __getitem__(self, key: str) -> Any:
        for name, value in self.fields:
            if name == key:
                return value
        raise KeyError(key)

    def __contains__(self, key: str) -> bool:
        return any(name == key for name, _ in self.fields)

    def get(self, key: str, default: Any = None) -> Any:
        try:
            return self[key]
        except KeyError:
            return default

    def keys(self) -> List[str]:
        return [name for name, _ in self.fields]

    @property
    def image(self) -> str:
        return self["image"]

    @property
    def errors(self) -> List[str]:
        """Names of every raised flag."""
        return [name for name, value in self.fields if name.startswith("error_") and value]

    @property
    def passed(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        """Return fields as a plain dict, with non-finite numbers as None."""
        out = {}
        for name, value in self.fields:
            if isinstance(value, float) and not math.isfinite(value):
                value = None
            out[name] = value
        return out

    def write(self, stream):
        builder = ReportBuilder(stream)
        builder.begin()
        for name, value in self.fields:
            builder.add_field(name, value)
        builder.end()

    def to_json(self) -> str:
        buf = io.StringIO()
        self.write(buf)
        return buf.getvalue()


def r_squared(unexplained_ss: float, total_ss: float) -> float:
    """Coefficient of determination; NaN/inf when ``total_ss`` is zero."""
    return 1.0 - divide(unexplained_ss, total_ss)


def _outside(ratio: float, th: ThresholdConfig) -> bool:
    """True when |ratio| falls outside [scale_ratio_min, scale_ratio_max]."""
    return abs(ratio) < th.scale_ratio_min or abs(ratio) > th.scale_ratio_max


def aggregate(image_name: str, has_height: bool, fit: FitParameters,
              sums: ResidualSums, thresholds: Optional[ThresholdConfig] = None,
              output_name: Optional[str] = None,
              post_correction: bool = False) -> ConsistencyReport:
    """Build the report record from pass-1 fits and pass-2 residual sums.

    Note: normalmap_fix_R_2 is not guaranteed to be >= normalmap_R_2. After
    a nonuniform rescale the dependent variance changes too, so minimizing the
    RMS residual does not maximize R^2 under the original scale.
    """
    th = thresholds or ThresholdConfig()
    fields: List[Tuple[str, Any]] = [("image", image_name)]

    def flag(name: str, raised: bool):
        if raised:
            logger.warning("%s: %s", image_name, name)
            fields.append((name, True))

    if has_height:
        height_R_2 = r_squared(sums.height_ss, fit.height_syy)
        height_x_R_2 = r_squared(sums.height_x_ss, fit.height_x_syy)
        height_y_R_2 = r_squared(sums.height_y_ss, fit.height_y_syy)
        xy_scale = divide(fit.height_x_m, fit.height_y_m)
        fields += [
            ("heightmap_scale", fit.height_m),
            ("heightmap_R_2", height_R_2),
            ("heightmap_x_scale", fit.height_x_m),
            ("heightmap_x_R_2", height_x_R_2),
            ("heightmap_y_scale", fit.height_y_m),
            ("heightmap_y_R_2", height_y_R_2),
            ("heightmap_normalmap_scale", xy_scale),
        ]
        flag("error_heightmap_normalmap_inverted", fit.height_x_m < 0)
        flag("error_heightmap_normalmap_inverted_y", fit.height_x_m * fit.height_y_m < 0)
        flag("error_heightmap_normalmap_nonuniform_scaling", _outside(xy_scale, th))
        flag("error_heightmap_inconsistent", height_R_2 < th.min_r_2)
    else:
        flag("error_heightmap_missing", True)

    escher_R_2 = r_squared(sums.escher_ss, fit.escher_syy)
    escher_xy_R_2 = r_squared(sums.escher_xy_ss, fit.escher_xy_syy)
    fix_scale = divide(fit.escher_mx, fit.escher_my)
    length_var = divide(sums.length2_ss, sums.count) * 0.5
    fields += [
        ("normalmap_R_2", escher_R_2),
        ("normalmap_fix_scale", fix_scale),
        ("normalmap_fix_R_2", escher_xy_R_2),
        ("normalmap_length_var", length_var),
    ]
    flag("error_normalmap_inverted_y", fit.escher_mx * fit.escher_my < 0)
    flag("error_normalmap_nonuniform_scaling", _outside(fix_scale, th))
    flag("error_normalmap_inconsistent", escher_R_2 < th.min_r_2)
    flag("error_normalmap_denormalized", length_var > th.max_length_var)

    for name, value in fields:
        if isinstance(value, float) and not math.isfinite(value):
            logger.warning("%s: %s could not be computed (zero variance)", image_name, name)

    if output_name is not None:
        r, g, b = _CHANNEL_LABELS[bool(post_correction)]
        fields += [
            ("output_name", output_name),
            ("output_channel_r", r),
            ("output_channel_g", g),
            ("output_channel_b", b),
        ]

    return ConsistencyReport(fields=tuple(fields))
