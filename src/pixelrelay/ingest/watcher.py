"""Ingestion of images dropped into the watched directory.

Two pieces cooperate here:

:class:`ImageIngestor`
    Synchronous, per-file work: read the dropped file (retrying while it is
    still empty), transcode it to the canonical storage format, write it to
    flat storage under the source file's stem, optionally archive the
    original bytes and delete the source.

:class:`ImageWatcher`
    The long-lived asyncio task.  A watchdog observer thread reports
    filesystem events; :class:`CreatedFileHandler` forwards file creations
    into a bounded :class:`asyncio.Queue` and the watcher consumes that queue
    one path at a time, in arrival order.

Event Policy
------------
- Only file creations are ingested.  Modify, delete, move and other events
  are logged at DEBUG and ignored, as are directory events.
- The queue is bounded.  When it is full the notification is dropped with a
  warning rather than blocking the observer thread.
- A failure while ingesting one file is logged with its traceback and the
  loop carries on with the next notification.

Startup
-------
When ``image.ingest_existing`` is enabled, files already present in the
input directory are ingested once (sorted by name) before notifications are
processed.  The observer is started first so files dropped during that scan
are still picked up.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from pathlib import Path

from watchdog.events import EVENT_TYPE_CREATED, FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from pixelrelay.core.config import RelayConfig
from pixelrelay.core.errors import EmptySourceError, IngestError
from pixelrelay.imaging.transcoder import Transcoder
from pixelrelay.storage.disk import BucketedStorage, DiskStorage, StoredFile

logger = logging.getLogger(__name__)


class ImageIngestor:
    """Normalises dropped files into canonical storage.

    Attributes:
        config: Process configuration.
        storage: Flat canonical storage.
        transcoder: Shared transcoder.
        archive: Optional bucketed storage receiving the original bytes.
    """

    def __init__(
        self,
        config: RelayConfig,
        storage: DiskStorage,
        transcoder: Transcoder,
        archive: BucketedStorage | None = None,
    ) -> None:
        self.config = config
        self.storage = storage
        self.transcoder = transcoder
        self.archive = archive

    def read_source(self, path: Path) -> bytes:
        """Read *path*, retrying while it is still empty.

        Writers commonly create a file and fill it afterwards, so a
        zero-length read is treated as "not ready yet" rather than as content.

        Raises:
            EmptySourceError: The file stayed empty for every attempt.
            IngestError: The file could not be opened or read.
        """
        attempts = self.config.image.read_retry_attempts
        interval = self.config.image.read_retry_interval

        for attempt in range(1, attempts + 1):
            try:
                with open(path, "rb") as handle:
                    data = handle.read()
            except OSError as exc:
                raise IngestError(f"failed to read file '{path}': {exc}") from exc
            if data:
                return data
            if attempt < attempts:
                time.sleep(interval)

        raise EmptySourceError(f"'{path}' is still empty after {attempts} reads")

    def ingest_file(self, path: str | Path) -> Path:
        """Ingest one dropped file.

        Args:
            path: Location of the new file.

        Returns:
            Path of the canonical file written.

        Raises:
            IngestError: The source could not be read.
            TranscodeError: The source is not a usable image.
            StorageError: Writing the result (or archiving) failed.
        """
        path = Path(path)
        data = self.read_source(path)

        storage_format = self.config.image.storage_format
        converted = self.transcoder.transcode(
            data, path.suffix.lstrip("."), storage_format
        )

        if self.archive is not None:
            archived = self.archive.add_new_file(data, path.suffix.lstrip(".") or "bin")
            logger.debug("'%s' archived at '%s'", path, archived)

        stored = self.storage.add_new_file(
            StoredFile(path.stem, storage_format.extension), converted
        )

        if self.config.delete_original_file:
            try:
                path.unlink()
            except OSError as exc:
                raise IngestError(f"failed to delete original '{path}': {exc}") from exc
            logger.debug("Deleted original '%s'", path)

        logger.info("'%s' stored at '%s'", path, stored)
        return stored

    def ingest_existing(self, directory: str | Path) -> list[Path]:
        """Ingest every regular file already present in *directory*.

        Failures are logged and skipped.

        Returns:
            Paths of the canonical files written.
        """
        directory = Path(directory)
        stored: list[Path] = []
        for entry in sorted(directory.iterdir()):
            if not entry.is_file():
                continue
            try:
                stored.append(self.ingest_file(entry))
            except Exception:
                logger.exception("Failed to ingest existing file '%s'", entry)
        logger.info("Loaded %d existing images from %s", len(stored), directory)
        return stored


class CreatedFileHandler(FileSystemEventHandler):
    """Forwards file-creation events from the observer thread to the loop.

    Runs on watchdog's observer thread; the only thing it touches on the
    event loop is :meth:`asyncio.Queue.put_nowait`, scheduled with
    ``call_soon_threadsafe``.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue[Path]) -> None:
        super().__init__()
        self._loop = loop
        self._queue = queue

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        if event.event_type != EVENT_TYPE_CREATED:
            logger.debug("not supported event: %r", event)
            return

        path = Path(os.fsdecode(event.src_path))
        try:
            self._loop.call_soon_threadsafe(self._offer, path)
        except RuntimeError:
            logger.warning("Event loop closed, dropping notification for '%s'", path)

    def _offer(self, path: Path) -> None:
        try:
            self._queue.put_nowait(path)
        except asyncio.QueueFull:
            logger.warning("Notification queue full, dropping '%s'", path)


class ImageWatcher:
    """Background task feeding new files in the input directory to the ingestor.

    Usage::

        watcher = ImageWatcher(config, ingestor)
        task = asyncio.create_task(watcher.run())
        ...
        task.cancel()
    """

    def __init__(self, config: RelayConfig, ingestor: ImageIngestor) -> None:
        self.config = config
        self.ingestor = ingestor
        self.input_path = Path(config.image.input_path)
        self._observer: Observer | None = None

    async def handle(self, path: Path) -> Path | None:
        """Ingest one notified path without letting failures escape.

        Returns:
            The stored path, or ``None`` if ingestion failed.
        """
        try:
            return await asyncio.to_thread(self.ingestor.ingest_file, path)
        except Exception:
            logger.exception("Failed to ingest '%s'", path)
            return None

    async def run(self) -> None:
        """Watch the input directory until cancelled."""
        self.input_path.mkdir(parents=True, exist_ok=True)

        queue: asyncio.Queue[Path] = asyncio.Queue(maxsize=self.config.image.watch_queue_size)
        handler = CreatedFileHandler(asyncio.get_running_loop(), queue)

        self._observer = Observer()
        self._observer.schedule(handler, str(self.input_path), recursive=False)
        self._observer.start()
        logger.info("Watching %s for new images", self.input_path)

        try:
            if self.config.image.ingest_existing:
                await asyncio.to_thread(self.ingestor.ingest_existing, self.input_path)

            while True:
                path = await queue.get()
                await self.handle(path)
                queue.task_done()
        finally:
            # join() blocks for up to five seconds; keep it off the event loop.
            await asyncio.to_thread(self.stop)

    def stop(self) -> None:
        """Stop the observer thread.  Safe to call more than once."""
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=5)
        self._observer = None
        logger.info("Stopped watching %s", self.input_path)
