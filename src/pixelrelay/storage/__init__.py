"""Disk storage strategies (flat and UUIDv7-bucketed)."""

from pixelrelay.storage.disk import BucketedStorage, DiskStorage, StoredFile

__all__ = ["BucketedStorage", "DiskStorage", "StoredFile"]
