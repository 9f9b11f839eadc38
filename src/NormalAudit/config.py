"""Define typed configuration models for normal map audits.

Use `AuditConfig` to load, validate, and persist runtime settings.
"""

import dataclasses
import logging
import os
import threading
from dataclasses import dataclass, field
from typing import List, Tuple

import yaml

logger = logging.getLogger("normal_audit.config")


# name -> (center, range) in normalized [0, 1] channel units
ENCODING_PRESETS = {
    "default": (0.5, 0.5),
    "symmetric8": (127.0 / 255.0, 127.0 / 255.0),
    "fullrange8": (128.0 / 255.0, 127.0 / 255.0),
}

# Formats that keep float values above 1.0 when written.
HDR_EXTENSIONS = (".hdr", ".exr", ".tif", ".tiff")


@dataclass
class EncodingConfig:
    """Describe how normal components were stored in the source image."""

    preset: str = "default"  # default | symmetric8 | fullrange8 | custom
    center: float = 0.5
    value_range: float = 0.5
    invert_y: bool = False
    bits: int = 8

    def resolve(self) -> Tuple[float, float]:
        """Return the (center, range) pair used by the texel decoder."""
        if self.preset == "custom":
            return float(self.center), float(self.value_range)
        return ENCODING_PRESETS[self.preset]

    @property
    def max_code(self) -> float:
        """Largest integer code of one stored channel."""
        return float((1 << int(self.bits)) - 1)


@dataclass
class AnalysisConfig:
    """Store settings for the curl and regression passes."""

    nearest_integration: bool = False
    roundoff_discount: float = 1.0
    band_rows: int = 256


@dataclass
class ThresholdConfig:
    """Decision thresholds that raise report flags."""

    scale_ratio_min: float = 0.8
    scale_ratio_max: float = 1.25
    min_r_2: float = 0.5
    max_length_var: float = 0.001


@dataclass
class OutputConfig:
    """Store settings for the optional diagnostic image."""

    diagnostic_path: str = ""
    post_correction: bool = False


@dataclass
class BatchConfig:
    """Store settings for auditing every image under a directory."""

    input_dir: str = "./normalmaps"
    output_dir: str = "./audit"
    supported_formats: List[str] = field(default_factory=lambda: [
        ".png", ".tga", ".bmp", ".tif", ".tiff", ".hdr", ".exr",
    ])
    max_workers: int = 4
    write_diagnostics: bool = True
    diagnostic_ext: str = ".hdr"


_SUPPORTED_CONFIG_VERSION = 1
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_CHANNEL_BITS = (8, 10, 12, 16, 32)


@dataclass
class AuditConfig:
    """Master audit configuration."""

    config_version: int = 1
    log_level: str = "INFO"
    log_file: str = ""
    max_image_pixels: int = 67108864  # 8192x8192

    encoding: EncodingConfig = field(default_factory=EncodingConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    thresholds: ThresholdConfig = field(default_factory=ThresholdConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)

    @classmethod
    def from_yaml(cls, path: str) -> "AuditConfig":
        """Load a config file, falling back to defaults when it does not exist.

        Unknown keys and mistyped values are logged and ignored. Raises
        ValueError for unparseable YAML or values that fail validation.
        """
        config = cls()
        if not os.path.exists(path):
            logger.info("Config file '%s' not found. Using defaults.", path)
            config.validate()
            return config

        with open(path, "r", encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as exc:
                raise ValueError(f"Failed to parse YAML config '{path}': {exc}") from exc
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(
                f"Config file '{path}' must contain a YAML mapping, "
                f"got {type(data).__name__}"
            )

        version = data.get("config_version", _SUPPORTED_CONFIG_VERSION)
        if isinstance(version, int) and version > _SUPPORTED_CONFIG_VERSION:
            logger.warning(
                "Config file '%s' declares config_version=%d; newest supported is %d.",
                path, version, _SUPPORTED_CONFIG_VERSION,
            )

        _merge_dict_to_dataclass(config, data)
        try:
            config.validate()
        except ValueError as exc:
            raise ValueError(f"{path}: {exc}") from exc
        return config

    def to_yaml(self, path: str):
        """Write the config as YAML, replacing ``path`` atomically."""
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        tmp_path = f"{path}.tmp.{os.getpid()}.{threading.get_ident()}"
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                yaml.safe_dump(dataclasses.asdict(self), f,
                               default_flow_style=False, sort_keys=False)
            os.replace(tmp_path, path)
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

    @property
    def wants_diagnostics(self) -> bool:
        """Whether a single-image run should write a diagnostic image."""
        return bool(self.output.diagnostic_path)

    def validate(self):
        """Check every setting; raise ValueError listing all problems found."""
        errors = []

        if self.log_level.upper() not in _LOG_LEVELS:
            errors.append(
                f"log_level must be one of {sorted(_LOG_LEVELS)}, got '{self.log_level}'"
            )
        if self.max_image_pixels < 0:
            errors.append("max_image_pixels must be >= 0 (0 = unlimited)")

        enc = self.encoding
        presets = sorted(set(ENCODING_PRESETS) | {"custom"})
        if enc.preset not in presets:
            errors.append(f"encoding.preset must be one of {presets}, got '{enc.preset}'")
        if enc.value_range <= 0.0:
            errors.append("encoding.value_range must be > 0")
        if not 0.0 <= enc.center <= 1.0:
            errors.append("encoding.center must be in [0, 1]")
        if enc.bits not in _CHANNEL_BITS:
            errors.append(f"encoding.bits must be one of {list(_CHANNEL_BITS)}, got {enc.bits}")

        if self.analysis.roundoff_discount < 0.0:
            errors.append("analysis.roundoff_discount must be >= 0")
        if self.analysis.band_rows < 1:
            errors.append("analysis.band_rows must be >= 1")

        th = self.thresholds
        if th.scale_ratio_min <= 0.0:
            errors.append("thresholds.scale_ratio_min must be > 0")
        if th.scale_ratio_max <= th.scale_ratio_min:
            errors.append("thresholds.scale_ratio_max must be > thresholds.scale_ratio_min")
        if th.max_length_var < 0.0:
            errors.append("thresholds.max_length_var must be >= 0")

        out = self.output
        if out.post_correction and not out.diagnostic_path:
            errors.append(
                "output.post_correction requires output.diagnostic_path "
                "(post-correction only changes the diagnostic image)"
            )
        if out.diagnostic_path:
            ext = os.path.splitext(out.diagnostic_path)[1].lower()
            if ext not in HDR_EXTENSIONS:
                errors.append(
                    f"output.diagnostic_path must use an HDR-capable format "
                    f"{list(HDR_EXTENSIONS)}, got '{ext or '<none>'}'"
                )

        batch = self.batch
        if not 1 <= batch.max_workers <= 128:
            errors.append(f"batch.max_workers must be in [1, 128], got {batch.max_workers}")
        if not batch.supported_formats:
            errors.append("batch.supported_formats must not be empty")
        if batch.diagnostic_ext.lower() not in HDR_EXTENSIONS:
            errors.append(
                f"batch.diagnostic_ext must be one of {list(HDR_EXTENSIONS)}, "
                f"got '{batch.diagnostic_ext}'"
            )

        if errors:
            raise ValueError(
                "Configuration validation failed:\n" +
                "\n".join(f"  - {e}" for e in errors)
            )


def _coerce(value, default, key: str):
    """Return ``value`` converted to the type of ``default``, or raise TypeError.

    int -> float is always allowed; float -> int only for integral values.
    bool is never accepted where a number is expected.
    """
    expected = type(default)
    if isinstance(value, bool) and expected is not bool:
        raise TypeError(key)
    if isinstance(value, expected):
        return value
    if expected is float and isinstance(value, int):
        return float(value)
    if expected is int and isinstance(value, float) and value.is_integer():
        return int(value)
    raise TypeError(key)


def _merge_dict_to_dataclass(obj, data: dict, _path: str = ""):
    """Copy matching keys of ``data`` onto the dataclass tree ``obj``."""
    for key, value in data.items():
        full_key = f"{_path}{key}"
        if not hasattr(obj, key):
            logger.warning("Unknown config key ignored: '%s'", full_key)
            continue

        current = getattr(obj, key)
        if dataclasses.is_dataclass(current):
            if isinstance(value, dict):
                _merge_dict_to_dataclass(current, value, f"{full_key}.")
            else:
                logger.warning(
                    "Config section '%s' must be a mapping, got %s. Using defaults.",
                    full_key, type(value).__name__,
                )
            continue

        if value is None:
            logger.warning("Config key '%s' is null. Using default value.", full_key)
            continue
        try:
            setattr(obj, key, _coerce(value, current, full_key))
        except TypeError:
            logger.warning(
                "Config type mismatch for '%s': expected %s, got %s (%r). "
                "Using default value.",
                full_key, type(current).__name__, type(value).__name__, value,
            )
