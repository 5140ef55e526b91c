"""Exception hierarchy for PixelRelay.

Lower layers (codec, transcoder, storage) raise the typed errors below and
chain the underlying exception with ``raise ... from exc``.  The request
processor translates them into :class:`RequestError` subclasses, which the
HTTP layer maps onto status codes.  The ingestion watcher logs every error
and keeps running.

Hierarchy
---------
::

    PixelRelayError
    ├── ConfigurationError
    ├── TranscodeError
    │   ├── UnsupportedFormatError
    │   ├── DecodeError
    │   ├── EncodeError
    │   └── OperationError
    ├── StorageError
    │   └── StoredFileNotFoundError
    ├── IngestError
    │   └── EmptySourceError
    └── RequestError
        ├── BadRequestError
        ├── ImageNotFoundError
        └── ProcessingError
"""

from __future__ import annotations


class PixelRelayError(Exception):
    """Base class for every error raised by PixelRelay."""


class ConfigurationError(PixelRelayError):
    """Configuration could not be loaded or failed validation.

    Only raised at startup; the process exits.
    """


# ---------------------------------------------------------------------------
# Transcoding.
# ---------------------------------------------------------------------------


class TranscodeError(PixelRelayError):
    """Base class for codec-level failures."""


class UnsupportedFormatError(TranscodeError):
    """Neither content sniffing nor the extension hint identified a format."""


class DecodeError(TranscodeError):
    """The source bytes could not be decoded."""


class EncodeError(TranscodeError):
    """The pixel buffer could not be encoded to the target format."""


class OperationError(TranscodeError):
    """A resize or crop operation was rejected (e.g. crop out of bounds)."""


# ---------------------------------------------------------------------------
# Storage.
# ---------------------------------------------------------------------------


class StorageError(PixelRelayError):
    """A read, write or delete on disk storage failed."""


class StoredFileNotFoundError(StorageError):
    """The requested stored file does not exist."""


# ---------------------------------------------------------------------------
# Ingestion.
# ---------------------------------------------------------------------------


class IngestError(PixelRelayError):
    """A dropped file could not be ingested."""


class EmptySourceError(IngestError):
    """The dropped file stayed empty for every read attempt."""


# ---------------------------------------------------------------------------
# Delivery requests.
# ---------------------------------------------------------------------------


class RequestError(PixelRelayError):
    """Base class for delivery failures surfaced to HTTP clients."""

    status_code: int = 500


class BadRequestError(RequestError):
    """Unknown or disallowed output format."""

    status_code = 400


class ImageNotFoundError(RequestError):
    """No canonical image exists under the requested name."""

    status_code = 404


class ProcessingError(RequestError):
    """Reading or transcoding the canonical image failed."""

    status_code = 500
