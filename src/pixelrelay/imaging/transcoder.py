"""Image transcoding: detect, decode, transform, re-encode.

:class:`Transcoder` orchestrates the calls into :mod:`pixelrelay.imaging.codec`.
A transcode is all-or-nothing: either the fully encoded target bytes are
returned or a :class:`~pixelrelay.core.errors.TranscodeError` is raised.

Algorithm
---------
1. Sniff the source format from the content.  When sniffing fails, fall back
   to the extension hint mapped through :class:`ImageEncoding`'s alias table.
   If both fail, raise :class:`UnsupportedFormatError`.
2. Decode.
3. Apply the operations in list order.
4. Adapt the pixel mode to the target (JPEG always gets RGB; alpha is dropped
   without error).
5. Encode and return the bytes.

Usage
-----
::

    from pixelrelay.imaging.transcoder import Resize, Transcoder

    data = Transcoder().transcode(
        raw,
        "png",
        ImageEncoding.JPEG,
        [Resize(PixelSize(320, 200))],
    )
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from PIL import Image

from pixelrelay.core.errors import UnsupportedFormatError
from pixelrelay.core.models import ImageEncoding, PixelSize, Position
from pixelrelay.imaging import codec

logger = logging.getLogger(__name__)

# Modes each encoder writes without conversion.
_PNG_MODES = frozenset({"1", "L", "LA", "I", "I;16", "P", "RGB", "RGBA"})
_AVIF_MODES = frozenset({"RGB", "RGBA"})


@dataclass(frozen=True)
class Resize:
    """Exact, non-proportional resize to ``size``."""

    size: PixelSize


@dataclass(frozen=True)
class Crop:
    """Cut ``size`` starting at ``position``."""

    position: Position
    size: PixelSize


Operation = Resize | Crop


def _apply(image: Image.Image, operation: Operation) -> Image.Image:
    if isinstance(operation, Resize):
        return codec.resize_exact(image, operation.size.width, operation.size.height)
    if isinstance(operation, Crop):
        return codec.crop(
            image,
            operation.position.x,
            operation.position.y,
            operation.size.width,
            operation.size.height,
        )
    raise TypeError(f"Unknown operation: {operation!r}")


def _prepare_for(image: Image.Image, target: ImageEncoding) -> Image.Image:
    """Convert the pixel mode to one the target encoder accepts."""
    if target is ImageEncoding.JPEG:
        # JPEG has no alpha channel.
        return image if image.mode == "RGB" else codec.convert(image, "RGB")

    allowed = _AVIF_MODES if target is ImageEncoding.AVIF else _PNG_MODES
    if image.mode in allowed:
        return image
    return codec.convert(image, "RGBA" if image.has_transparency_data else "RGB")


class Transcoder:
    """Converts encoded image bytes into another encoding.

    The class holds no state; one instance is shared by the ingestion watcher
    and every delivery request.
    """

    def resolve_source_format(self, data: bytes, extension_hint: str | None) -> str:
        """Determine the format to decode *data* with.

        Args:
            data: Raw source bytes.
            extension_hint: Filename extension of the source, used only when
                content sniffing fails.

        Returns:
            A Pillow format name.

        Raises:
            UnsupportedFormatError: Neither sniffing nor the hint succeeded.
        """
        detected = codec.detect_format(data)
        if detected is not None:
            return detected

        fallback = ImageEncoding.from_extension(extension_hint)
        if fallback is None:
            raise UnsupportedFormatError(
                f"Cannot identify image format from content or extension {extension_hint!r}"
            )
        logger.warning(
            "Could not sniff image format, falling back to extension %r", extension_hint
        )
        return fallback.pillow_format

    def transcode(
        self,
        data: bytes,
        extension_hint: str | None,
        target: ImageEncoding,
        operations: Sequence[Operation] | None = None,
    ) -> bytes:
        """Re-encode *data* as *target*, applying *operations* first.

        Args:
            data: Encoded source image.
            extension_hint: Source filename extension (fallback for detection).
            target: Output encoding.
            operations: Resize/crop steps applied left to right.

        Returns:
            The encoded target image.

        Raises:
            UnsupportedFormatError: The source format cannot be determined.
            DecodeError: The source bytes do not decode.
            OperationError: A resize or crop was rejected.
            EncodeError: Encoding to the target failed.
        """
        operations = list(operations or ())
        source_format = self.resolve_source_format(data, extension_hint)

        image = codec.decode(data, source_format)
        for operation in operations:
            image = _apply(image, operation)

        image = _prepare_for(image, target)
        output = codec.encode(image, target.pillow_format)

        logger.debug(
            "Transcoded %s -> %s (%d operations, %d -> %d bytes)",
            source_format,
            target.value,
            len(operations),
            len(data),
            len(output),
        )
        return output
