"""Pillow-backed codec adapter.

Pure functions over in-memory pixel buffers (``PIL.Image.Image``).  The
transcoder is the only caller; nothing here knows about configuration,
storage or HTTP.

Every failure is re-raised as one of the typed errors from
:mod:`pixelrelay.core.errors` with the Pillow exception chained.  Crop boxes
are checked against the source bounds here because Pillow itself pads
out-of-bounds crops with black instead of failing.
"""

from __future__ import annotations

import io
import logging

from PIL import Image, UnidentifiedImageError, features

from pixelrelay.core.errors import DecodeError, EncodeError, OperationError
from pixelrelay.core.models import ImageEncoding

logger = logging.getLogger(__name__)

# Cubic convolution with a = -0.5 (Catmull-Rom).  Not configurable per request.
RESAMPLE_FILTER = Image.Resampling.BICUBIC

# Pillow "features" names for encodings that depend on optional libraries.
_FEATURE_NAMES: dict[ImageEncoding, str] = {
    ImageEncoding.AVIF: "avif",
    ImageEncoding.JPEG: "jpg",
    ImageEncoding.PNG: "zlib",
}


def supports(encoding: ImageEncoding) -> bool:
    """Return ``True`` if this Pillow build can decode and encode *encoding*."""
    Image.init()
    return bool(features.check(_FEATURE_NAMES[encoding])) and encoding.pillow_format in Image.SAVE


def detect_format(data: bytes) -> str | None:
    """Identify the image format from its leading bytes.

    Only the header is parsed; pixel data is not decoded.

    Args:
        data: Raw file content.

    Returns:
        The Pillow format name (``"PNG"``, ``"JPEG"``, ``"AVIF"``, ``"GIF"``...)
        or ``None`` when the content is not recognised.

    Raises:
        DecodeError: The header declares more pixels than Pillow's
            decompression-bomb limit allows.
    """
    if not data:
        return None
    try:
        with Image.open(io.BytesIO(data)) as probe:
            return probe.format
    except Image.DecompressionBombError as exc:
        raise DecodeError(f"Image exceeds the decompression size limit: {exc}") from exc
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        logger.debug("Format sniffing failed: %s", exc)
        return None


def decode(data: bytes, format_name: str) -> Image.Image:
    """Decode *data* as *format_name* into a fully loaded pixel buffer.

    Raises:
        DecodeError: The bytes are not a valid image of that format.
    """
    try:
        image = Image.open(io.BytesIO(data), formats=[format_name])
        image.load()
    except Exception as exc:
        raise DecodeError(f"Cannot decode image as {format_name}: {exc}") from exc
    return image


def resize_exact(image: Image.Image, width: int, height: int) -> Image.Image:
    """Resize to exactly ``width`` x ``height``, ignoring aspect ratio.

    Raises:
        OperationError: Either dimension is not positive.
    """
    if width <= 0 or height <= 0:
        raise OperationError(f"Resize target must be positive, got {width}x{height}")
    try:
        return image.resize((width, height), RESAMPLE_FILTER)
    except (ValueError, OSError) as exc:
        raise OperationError(f"Resize to {width}x{height} failed: {exc}") from exc


def crop(image: Image.Image, x: int, y: int, width: int, height: int) -> Image.Image:
    """Cut the ``width`` x ``height`` box whose top-left corner is ``(x, y)``.

    Raises:
        OperationError: The box is empty or extends past the image bounds.
    """
    if x < 0 or y < 0 or width <= 0 or height <= 0:
        raise OperationError(f"Invalid crop box ({x}, {y}, {width}x{height})")
    if x + width > image.width or y + height > image.height:
        raise OperationError(
            f"Crop box ({x}, {y}, {width}x{height}) exceeds image bounds "
            f"{image.width}x{image.height}"
        )
    return image.crop((x, y, x + width, y + height))


def convert(image: Image.Image, mode: str) -> Image.Image:
    """Return *image* in pixel mode *mode*.

    Raises:
        EncodeError: Pillow cannot convert between the two modes.
    """
    try:
        return image.convert(mode)
    except (ValueError, OSError) as exc:
        raise EncodeError(f"Cannot convert {image.mode} image to {mode}: {exc}") from exc


def encode(image: Image.Image, format_name: str) -> bytes:
    """Encode the pixel buffer as *format_name*.

    Raises:
        EncodeError: Pillow rejected the buffer or has no encoder for the format.
    """
    buffer = io.BytesIO()
    try:
        image.save(buffer, format=format_name)
    except Exception as exc:
        raise EncodeError(f"Cannot encode {image.mode} image as {format_name}: {exc}") from exc
    return buffer.getvalue()
