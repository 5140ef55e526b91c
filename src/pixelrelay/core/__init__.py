"""Core pipeline logic for PixelRelay.

Modules
-------
models
    Shared value types: :class:`ImageEncoding`, :class:`PixelSize`,
    :class:`Position`.
errors
    The exception hierarchy rooted at :class:`PixelRelayError`.
config
    Pydantic Settings configuration and :func:`load_config`.
templates
    Filename template resolution (prefix/suffix presets).
processor
    :class:`RequestProcessor`, the transport-agnostic delivery logic.

``templates`` and ``processor`` are not re-exported here so that importing
the configuration does not pull in the imaging and storage layers.
"""

from pixelrelay.core.config import (
    ImageSettings,
    RelayConfig,
    ServerSettings,
    TemplateLocation,
    TemplateSettings,
    load_config,
)
from pixelrelay.core.models import ImageEncoding, PixelSize, Position

__all__ = [
    "ImageEncoding",
    "ImageSettings",
    "PixelSize",
    "Position",
    "RelayConfig",
    "ServerSettings",
    "TemplateLocation",
    "TemplateSettings",
    "load_config",
]
