"""Shared value types for PixelRelay.

These types travel through every layer of the pipeline: configuration
parsing, transcoding, storage naming and request handling.

Types
-----
ImageEncoding
    Closed set of output encodings (AVIF, JPEG, PNG) with their MIME
    content-type, filename extension and Pillow format name.
PixelSize
    Width and height in pixels.  Axes are independent; resizing to a
    ``PixelSize`` is exact and does not preserve aspect ratio.
Position
    Top-left offset used for cropping.
"""

from __future__ import annotations

from enum import Enum
from typing import NamedTuple


class ImageEncoding(str, Enum):
    """Image encodings that PixelRelay can store and serve.

    Values are the lowercase encoding names.  Construction is
    case-insensitive and accepts the common aliases, so all of the following
    resolve to :attr:`JPEG`::

        ImageEncoding("jpeg")
        ImageEncoding("JPG")
        ImageEncoding(".jpg")

    Unknown names raise :class:`ValueError`.  Use :meth:`from_extension` when
    an unknown value is an expected outcome.
    """

    AVIF = "avif"
    JPEG = "jpeg"
    PNG = "png"

    @classmethod
    def _missing_(cls, value: object) -> ImageEncoding | None:
        if not isinstance(value, str):
            return None
        key = value.strip().lower().lstrip(".")
        return _ALIASES.get(key)

    @classmethod
    def from_extension(cls, extension: str | None) -> ImageEncoding | None:
        """Map a filename extension (or encoding name) to an encoding.

        Args:
            extension: Extension with or without a leading dot, any case.

        Returns:
            The matching encoding, or ``None`` if the text is not recognised.
        """
        if not extension:
            return None
        try:
            return cls(extension)
        except ValueError:
            return None

    @property
    def content_type(self) -> str:
        """MIME type sent in the ``Content-Type`` header."""
        return _CONTENT_TYPES[self]

    @property
    def extension(self) -> str:
        """Canonical filename extension, without the leading dot."""
        return _EXTENSIONS[self]

    @property
    def pillow_format(self) -> str:
        """Format name understood by ``PIL.Image.save``."""
        return self.name


_ALIASES: dict[str, ImageEncoding] = {
    "avif": ImageEncoding.AVIF,
    "jpeg": ImageEncoding.JPEG,
    "jpg": ImageEncoding.JPEG,
    "png": ImageEncoding.PNG,
}

_CONTENT_TYPES: dict[ImageEncoding, str] = {
    ImageEncoding.AVIF: "image/avif",
    ImageEncoding.JPEG: "image/jpeg",
    ImageEncoding.PNG: "image/png",
}

_EXTENSIONS: dict[ImageEncoding, str] = {
    ImageEncoding.AVIF: "avif",
    ImageEncoding.JPEG: "jpg",
    ImageEncoding.PNG: "png",
}


class PixelSize(NamedTuple):
    """Target dimensions in pixels."""

    width: int
    height: int


class Position(NamedTuple):
    """Top-left corner of a crop box."""

    x: int
    y: int
