"""Shared pytest fixtures for PixelRelay tests."""

import io
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from pixelrelay.api.main import create_app
from pixelrelay.core.config import RelayConfig
from pixelrelay.core.processor import RequestProcessor
from pixelrelay.imaging.transcoder import Transcoder
from pixelrelay.storage.disk import DiskStorage


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host environment variables out of configuration under test."""
    for name in ("DELETE_ORIGINAL_FILE", "PIXELRELAY_DELETE_ORIGINAL_FILE", "PIXELRELAY_CONFIG_FILE"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def make_image() -> Callable[..., bytes]:
    """Factory producing encoded test images in memory.

    Returns:
        ``make_image(fmt="PNG", size=(40, 30), mode="RGB")`` returning bytes.
        The image is a horizontal gradient so resizes are not trivially
        uniform.
    """

    def _make(fmt: str = "PNG", size: tuple[int, int] = (40, 30), mode: str = "RGB") -> bytes:
        image = Image.new(mode, size)
        width, height = size
        for x in range(width):
            shade = int(255 * x / max(width - 1, 1))
            colour = {
                "RGB": (shade, 64, 255 - shade),
                "RGBA": (shade, 64, 255 - shade, 128),
                "L": shade,
                "LA": (shade, 200),
            }[mode]
            for y in range(height):
                image.putpixel((x, y), colour)
        buffer = io.BytesIO()
        image.save(buffer, format=fmt)
        return buffer.getvalue()

    return _make


@pytest.fixture
def test_config(temp_dir: Path) -> RelayConfig:
    """Create a test configuration with temporary directories.

    Canonical storage is PNG so the tests do not depend on AVIF support.
    Clients may request PNG and JPEG only.  Two templates are configured:
    ``large_<name>`` (64x48 JPEG) and ``<name>_full`` (32x32 PNG).
    """
    return RelayConfig(
        _env_file=None,
        image={
            "formats": ["png", "jpeg"],
            "storage_format": "png",
            "input_path": str(temp_dir / "in"),
            "output_path": str(temp_dir / "out"),
            "read_retry_attempts": 3,
            "read_retry_interval": 0.01,
        },
        templates=[
            {"location": "prefix", "name": "large", "size": [64, 48], "format": "jpeg"},
            {"location": "suffix", "name": "full", "size": [32, 32], "format": "png"},
        ],
        watcher_enabled=False,
    )


@pytest.fixture
def storage(test_config: RelayConfig) -> DiskStorage:
    """Flat canonical storage rooted at the test output path."""
    return DiskStorage(test_config.image.output_path)


@pytest.fixture
def transcoder() -> Transcoder:
    return Transcoder()


@pytest.fixture
def processor(test_config: RelayConfig, storage: DiskStorage, transcoder: Transcoder) -> RequestProcessor:
    return RequestProcessor(test_config, storage, transcoder)


@pytest.fixture
def test_client(test_config: RelayConfig) -> Generator[TestClient, None, None]:
    """FastAPI TestClient with the lifespan hook run.

    The watcher is disabled in ``test_config`` so no observer thread starts.
    """
    with TestClient(create_app(test_config)) as client:
        yield client
