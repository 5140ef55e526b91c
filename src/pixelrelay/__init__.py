"""PixelRelay - watched-folder image ingestion with on-demand transcoding."""

__version__ = "0.1.0"

from pixelrelay.core.config import RelayConfig, load_config
from pixelrelay.core.models import ImageEncoding, PixelSize, Position
from pixelrelay.imaging.transcoder import Crop, Resize, Transcoder

__all__ = [
    "Crop",
    "ImageEncoding",
    "PixelSize",
    "Position",
    "RelayConfig",
    "Resize",
    "Transcoder",
    "load_config",
]
