"""Image I/O utilities -- load texel buffers and write float diagnostic images."""

import logging
import os
import threading
from pathlib import Path

# OpenEXR codecs are disabled in OpenCV builds unless requested before import.
os.environ.setdefault("OPENCV_IO_ENABLE_OPENEXR", "1")

import cv2  # noqa: E402
import numpy as np  # noqa: E402
from PIL import Image  # noqa: E402

from .buffer import PixelBuffer  # noqa: E402

# Pixel-count validation happens per call in load_image() instead.
Image.MAX_IMAGE_PIXELS = None

logger = logging.getLogger("normal_audit.io")

# Decoded through OpenCV so 16-bit and float channels are kept intact.
_CV2_LOAD_EXTENSIONS = (".png", ".hdr", ".exr", ".tif", ".tiff")


class ImageDecodeError(IOError):
    """Raised when an input image cannot be decoded into texels."""


class DiagnosticWriteError(IOError):
    """Raised when the diagnostic image cannot be encoded or written."""


def _check_pixel_budget(path: str, width: int, height: int, max_pixels: int):
    if max_pixels > 0 and width * height > max_pixels:
        logger.warning(
            "Image %s exceeds max_pixels: %d > %d",
            path, width * height, max_pixels,
        )
        raise ValueError(
            f"Image too large: {width}x{height} = {width * height:,} "
            f"pixels (max {max_pixels:,}). Resize input or increase max_image_pixels."
        )


def _load_with_cv2(path: str, max_pixels: int) -> np.ndarray:
    """Load PNG/HDR/EXR/TIFF through OpenCV, normalizing integer data to [0, 1]."""
    # cv2.imread reports every failure as None; surface missing or unreadable
    # files with their OS error first.
    with open(path, "rb"):
        pass
    raw = cv2.imread(path, cv2.IMREAD_UNCHANGED)
    if raw is None:
        raise IOError("OpenCV could not decode the file")
    _check_pixel_budget(path, raw.shape[1], raw.shape[0], max_pixels)

    if np.issubdtype(raw.dtype, np.integer):
        scale = float(np.iinfo(raw.dtype).max)
        arr = raw.astype(np.float32) / scale
        logger.debug("Loaded %s via cv2 as %s, scaled by 1/%.0f", path, raw.dtype, scale)
    else:
        arr = raw.astype(np.float32, copy=False)
        logger.debug("Loaded %s via cv2 as float data", path)

    if arr.ndim == 2:
        return arr
    if arr.shape[-1] == 4:
        return arr[:, :, [2, 1, 0, 3]]  # BGRA -> RGBA
    if arr.shape[-1] == 3:
        return arr[:, :, ::-1]  # BGR -> RGB
    return arr


def load_image(path: str, max_pixels: int = 0) -> np.ndarray:
    """Load image as float32 numpy array, keeping its channel count.

    Integer formats are normalized to [0, 1]. Float formats keep absolute
    values. Grayscale images are returned as 2D arrays.
    """
    ext = Path(path).suffix.lower()

    try:
        if ext in _CV2_LOAD_EXTENSIONS:
            return _load_with_cv2(path, max_pixels)

        with Image.open(path) as img:
            _check_pixel_budget(path, img.width, img.height, max_pixels)

            if img.mode == "P":
                target = "RGBA" if "transparency" in img.info else "RGB"
                logger.debug("Converting palette image '%s' from P->%s", path, target)
                with img.convert(target) as converted:
                    arr = np.asarray(converted, dtype=np.float32) / 255.0
            elif img.mode == "LA":
                logger.debug("Converting LA image '%s' from LA->RGBA", path)
                with img.convert("RGBA") as converted:
                    arr = np.asarray(converted, dtype=np.float32) / 255.0
            elif img.mode == "CMYK":
                logger.debug("Converting CMYK image '%s' to RGB", path)
                with img.convert("RGB") as converted:
                    arr = np.asarray(converted, dtype=np.float32) / 255.0
            else:
                logger.debug(
                    "Loading image '%s' using default ndarray path for mode %s",
                    path, img.mode,
                )
                arr = np.asarray(img, dtype=np.float32) / 255.0
            return arr.astype(np.float32, copy=False)
    except ValueError:
        raise
    except Exception as e:
        logger.error("Failed to open image '%s' (ext=%s): %s", path, ext, e)
        raise ImageDecodeError(f"Could not load image from {path}: {e}") from e


def source_channel_count(path: str, decoded: np.ndarray) -> int:
    """Return how many channels the file itself stores.

    Decoders widen some layouts (gray+alpha comes back as RGBA), so the
    header mode is read with Pillow. Palette images count as 4 channels only
    when they carry transparency. Formats Pillow cannot identify (HDR, EXR,
    float TIFF) fall back to the decoded channel count.
    """
    try:
        with Image.open(path) as img:
            if img.mode == "P":
                return 4 if "transparency" in img.info else 3
            return len(img.getbands())
    except OSError:
        return 1 if decoded.ndim == 2 else int(decoded.shape[-1])


def load_texels(path: str, max_pixels: int = 0) -> PixelBuffer:
    """Load an image as a 4-channel texel buffer.

    Channel 3 carries height only when the source had a fourth channel;
    otherwise it is zero-filled and ``has_height`` is False.
    """
    try:
        arr = load_image(path, max_pixels=max_pixels)
    except ValueError as e:
        raise ImageDecodeError(f"Could not load image from {path}: {e}") from e

    if arr.ndim == 2:
        arr = arr[:, :, None]
    h, w, channels = arr.shape
    if h == 0 or w == 0:
        raise ImageDecodeError(f"Could not load image from {path}: empty image")

    texels = np.zeros((h, w, 4), dtype=np.float64)
    if channels >= 3:
        texels[:, :, :3] = arr[:, :, :3]
    else:
        texels[:, :, :3] = arr[:, :, :1]
    has_height = channels >= 4 and source_channel_count(path, arr) >= 4
    if has_height:
        texels[:, :, 3] = arr[:, :, 3]

    logger.debug(
        "Loaded texels from %s: %dx%d, %d decoded channels, has_height=%s",
        path, w, h, channels, has_height,
    )
    return PixelBuffer(texels, has_height=has_height)


def save_diagnostic_image(arr: np.ndarray, path: str):
    """Save an unclamped float RGB array to an HDR-capable format.

    Uses atomic write (temp file + ``os.replace``) to prevent truncated
    output on crash. Values above 1.0 are kept as-is.
    """
    if arr.ndim != 3 or arr.shape[-1] != 3 or arr.size == 0:
        raise DiagnosticWriteError(
            f"Cannot save diagnostic array of shape {arr.shape} to {path}"
        )

    ext = Path(path).suffix.lower()
    parent_dir = os.path.dirname(path) or "."
    os.makedirs(parent_dir, exist_ok=True)

    # Keep original extension so cv2 can infer the format.
    tmp_path = f"{path}.tmp.{os.getpid()}.{threading.get_ident()}{ext}"
    bgr = np.ascontiguousarray(arr[:, :, ::-1], dtype=np.float32)
    try:
        try:
            ok = cv2.imwrite(tmp_path, bgr)
        except cv2.error as e:
            raise DiagnosticWriteError(
                f"Could not write image to {path}: {e}"
            ) from e
        if not ok:
            raise DiagnosticWriteError(
                f"Could not write image to {path}: encoder rejected format '{ext}'"
            )
        os.replace(tmp_path, path)
        logger.debug("Saved diagnostic image: %s (%s, float32)", path, arr.shape)
    finally:
        if os.path.exists(tmp_path):
            try:
                os.remove(tmp_path)
            except OSError:
                pass
