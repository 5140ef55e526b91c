"""On-demand delivery of stored images.

:class:`RequestProcessor` turns a delivery request ``(name, extension,
size)`` into response bytes.  It is transport-agnostic: the FastAPI routes in
:mod:`pixelrelay.api.main` only translate URLs into calls and
:class:`~pixelrelay.core.errors.RequestError` subclasses into status codes.

Steps
-----
1. Parse the requested extension (``None`` means the canonical storage
   format).  Unknown extensions raise :class:`BadRequestError`.
2. Reject extensions outside the configured allow-list.
3. Resolve filename templates.  A matched template overrides the requested
   format and size with its own.
4. Read the canonical file from flat storage.
5. Return the canonical bytes untouched when the target format is the
   storage format and there is nothing to resize; otherwise transcode.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from pixelrelay.core.config import RelayConfig
from pixelrelay.core.errors import (
    BadRequestError,
    ImageNotFoundError,
    ProcessingError,
    StorageError,
    StoredFileNotFoundError,
    TranscodeError,
)
from pixelrelay.core.models import ImageEncoding, PixelSize
from pixelrelay.core.templates import resolve_template
from pixelrelay.imaging.transcoder import Operation, Resize, Transcoder
from pixelrelay.storage.disk import DiskStorage, StoredFile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessedImage:
    """Response payload for a delivery request."""

    data: bytes
    encoding: ImageEncoding

    @property
    def content_type(self) -> str:
        return self.encoding.content_type


class RequestProcessor:
    """Serves canonical images in the requested format and size.

    Attributes:
        config: Process configuration (read only).
        storage: Flat canonical storage.
        transcoder: Shared transcoder.
    """

    def __init__(
        self, config: RelayConfig, storage: DiskStorage, transcoder: Transcoder
    ) -> None:
        self.config = config
        self.storage = storage
        self.transcoder = transcoder

    def _requested_encoding(self, extension: str | None) -> ImageEncoding:
        if extension is None:
            return self.config.image.storage_format

        encoding = ImageEncoding.from_extension(extension)
        if encoding is None:
            raise BadRequestError(f"Unsupported image format: {extension!r}")

        allowed = self.config.image.formats
        if allowed and encoding not in allowed:
            raise BadRequestError(f"Image format not allowed: {extension!r}")
        return encoding

    def process(
        self,
        name: str,
        extension: str | None = None,
        size: PixelSize | None = None,
    ) -> ProcessedImage:
        """Produce the bytes for one delivery request.

        Args:
            name: Requested image name, possibly carrying a template token.
            extension: Requested output extension; ``None`` for the canonical
                storage format.
            size: Explicit exact resize, ignored when a template matches.
                Each side must not exceed ``image.max_dimension``.

        Returns:
            The encoded image and its encoding.

        Raises:
            BadRequestError: Unknown or disallowed extension, or a resize
                larger than ``image.max_dimension``.
            ImageNotFoundError: No canonical image under the resolved name.
            ProcessingError: Reading or transcoding failed.
        """
        target = self._requested_encoding(extension)
        storage_format = self.config.image.storage_format

        operations: list[Operation] = []
        match = resolve_template(name, self.config.templates)
        if match is not None:
            image_name = match.image_name
            target = match.template.format
            operations.append(Resize(match.template.size))
            logger.debug("'%s' matched template '%s'", name, match.template.name)
        else:
            image_name = name
            if size is not None:
                limit = self.config.image.max_dimension
                if size.width > limit or size.height > limit:
                    raise BadRequestError(
                        f"Requested size {size.width}x{size.height} exceeds {limit}px"
                    )
                operations.append(Resize(size))

        canonical = StoredFile(image_name, storage_format.extension)
        try:
            data = self.storage.read_file(canonical)
        except StoredFileNotFoundError as exc:
            raise ImageNotFoundError(f"Image not found: {image_name!r}") from exc
        except StorageError as exc:
            logger.error("Failed reading image file %s: %s", canonical.file_name, exc)
            raise ProcessingError("Failed reading image file") from exc

        if target is storage_format and not operations:
            return ProcessedImage(data, target)

        try:
            output = self.transcoder.transcode(
                data, storage_format.extension, target, operations
            )
        except TranscodeError as exc:
            logger.error("Failed to encode image %r to %s: %s", image_name, target.value, exc)
            raise ProcessingError("Failed to encode image") from exc
        return ProcessedImage(output, target)
