"""Disk storage for canonical and archived images.

Two placement strategies live here:

:class:`DiskStorage`
    Flat layout.  A :class:`StoredFile` ``(name, extension)`` maps to
    ``<base>/<name>.<extension>``.  This is the canonical store: ingestion
    writes to it and delivery requests read from it by name.

:class:`BucketedStorage`
    Time-ordered layout.  The base directory holds buckets named by UUIDv7
    identifiers; each file is written under a fresh UUIDv7 name inside the
    newest bucket::

        <base>/0190a1c2-.../0190a1c2-...-....png

    There is no rotation policy: once a bucket exists, every later write goes
    to the newest one.

Both strategies create their base directory on construction (an existing
directory is fine).  Writes are plain ``create + write`` with no fsync; two
writers racing on the same path leave the last write on disk.  Every OS
failure surfaces as :class:`~pixelrelay.core.errors.StorageError`.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path

from uuid6 import uuid7

from pixelrelay.core.errors import StorageError, StoredFileNotFoundError

logger = logging.getLogger(__name__)


def _ensure_directory(path: Path) -> None:
    if not path.exists():
        logger.info("Path '%s' not found. Creating entire path.", path)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise StorageError(f"Cannot create storage directory {path}: {exc}") from exc


def _write(path: Path, data: bytes) -> None:
    try:
        with open(path, "wb") as handle:
            handle.write(data)
    except OSError as exc:
        raise StorageError(f"Cannot write {path}: {exc}") from exc


@dataclass(frozen=True)
class StoredFile:
    """Logical identity of a file in flat storage."""

    name: str
    extension: str

    @property
    def file_name(self) -> str:
        return f"{self.name}.{self.extension}"


class DiskStorage:
    """Flat ``<base>/<name>.<extension>`` storage.

    Attributes:
        base_path: Directory every file is placed in.
    """

    def __init__(self, base_path: str | Path) -> None:
        self.base_path = Path(base_path)
        logger.info("Initializing disk storage at: %s", self.base_path)
        _ensure_directory(self.base_path)

    def path_for(self, file: StoredFile) -> Path:
        """Return the physical path of *file* (whether or not it exists)."""
        return self.base_path / file.file_name

    def add_new_file(self, file: StoredFile, data: bytes) -> Path:
        """Write *data* as *file*, replacing any existing content.

        Returns:
            The path written.

        Raises:
            StorageError: The write failed.
        """
        path = self.path_for(file)
        _write(path, data)
        logger.debug("created new file at %s", path)
        return path

    def read_file(self, file: StoredFile) -> bytes:
        """Return the content of *file*.

        Raises:
            StoredFileNotFoundError: The file does not exist.
            StorageError: Any other read failure.
        """
        path = self.path_for(file)
        try:
            with open(path, "rb") as handle:
                data = handle.read()
        except FileNotFoundError as exc:
            raise StoredFileNotFoundError(f"No stored file at {path}") from exc
        except OSError as exc:
            raise StorageError(f"Cannot read {path}: {exc}") from exc
        logger.debug("Read %d bytes for %s", len(data), path)
        return data

    def exists(self, file: StoredFile) -> bool:
        return self.path_for(file).is_file()

    def delete_file(self, file: StoredFile) -> None:
        """Remove *file*.

        Deleting a file that does not exist is an error, not a no-op.

        Raises:
            StoredFileNotFoundError: The file does not exist.
            StorageError: Any other delete failure.
        """
        path = self.path_for(file)
        try:
            path.unlink()
        except FileNotFoundError as exc:
            raise StoredFileNotFoundError(f"No stored file at {path}") from exc
        except OSError as exc:
            raise StorageError(f"Cannot delete {path}: {exc}") from exc
        logger.debug("deleted file at %s", path)


class BucketedStorage:
    """UUIDv7-bucketed storage.

    On construction the base directory is scanned once.  Subdirectories named
    by a canonical UUID string (lowercase, hyphenated) become known buckets;
    everything else, including other spellings of a UUID, is ignored.

    Attributes:
        base_path: Directory holding the buckets.
        buckets: Known bucket identifiers, oldest first.
    """

    def __init__(self, base_path: str | Path) -> None:
        self.base_path = Path(base_path)
        logger.info("Initializing bucketed storage at: %s", self.base_path)
        _ensure_directory(self.base_path)
        self.buckets: list[uuid.UUID] = self._scan_buckets()

    def _scan_buckets(self) -> list[uuid.UUID]:
        buckets = []
        try:
            entries = list(self.base_path.iterdir())
        except OSError as exc:
            raise StorageError(f"Cannot list {self.base_path}: {exc}") from exc

        for entry in entries:
            if not entry.is_dir():
                continue
            try:
                bucket = uuid.UUID(entry.name)
            except ValueError:
                logger.debug("Ignoring non-bucket directory %s", entry)
                continue
            # Paths are rebuilt from str(bucket), so only the canonical spelling counts.
            if str(bucket) != entry.name:
                logger.debug("Ignoring non-canonical bucket name %s", entry)
                continue
            buckets.append(bucket)
        buckets.sort()
        logger.debug("Found %d buckets in %s", len(buckets), self.base_path)
        return buckets

    @property
    def latest_bucket(self) -> uuid.UUID | None:
        """Most recently created bucket, or ``None`` when there are none."""
        return self.buckets[-1] if self.buckets else None

    def bucket_path(self, bucket: uuid.UUID) -> Path:
        return self.base_path / str(bucket)

    def _current_bucket(self) -> Path:
        bucket = self.latest_bucket
        if bucket is None:
            bucket = uuid.UUID(str(uuid7()))
            _ensure_directory(self.bucket_path(bucket))
            self.buckets.append(bucket)
            logger.info("Created bucket %s", bucket)
        return self.bucket_path(bucket)

    def add_new_file(self, data: bytes, extension: str) -> Path:
        """Write *data* under a fresh UUIDv7 name in the newest bucket.

        A bucket is created if none exists yet.

        Returns:
            The full path of the new file.

        Raises:
            StorageError: The bucket or file could not be written.
        """
        path = self._current_bucket() / f"{uuid7()}.{extension.lstrip('.')}"
        _write(path, data)
        logger.debug("created new file at %s", path)
        return path
