"""Watched-folder ingestion."""

from pixelrelay.ingest.watcher import CreatedFileHandler, ImageIngestor, ImageWatcher

__all__ = ["CreatedFileHandler", "ImageIngestor", "ImageWatcher"]
