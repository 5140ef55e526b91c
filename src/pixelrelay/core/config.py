"""Configuration management for PixelRelay.

This module provides configuration loading using Pydantic Settings.  The
configuration is a single immutable :class:`RelayConfig` value built once at
process start by :func:`load_config` and handed to every component that
needs it.  There is no module-level configuration instance.

Configuration Sources
---------------------
Values are resolved in the following priority order:

1. Environment variables (``PIXELRELAY_*`` prefix, ``__`` for nesting)
2. ``.env`` file in the working directory
3. The TOML configuration file (``pixelrelay.toml`` by default)
4. Default values defined on the models below

Example ``pixelrelay.toml``::

    [server]
    port = 8080
    host = "0.0.0.0"

    [image]
    formats = ["avif", "jpeg", "png"]
    storage_format = "avif"
    input_path = "/srv/pixelrelay/in"
    output_path = "/srv/pixelrelay/out"

    [[templates]]
    location = "prefix"
    name = "large"
    size = [1920, 1080]
    format = "jpeg"

    [[templates]]
    location = "suffix"
    name = "thumb"
    size = [160, 160]
    format = "png"

Example environment overrides::

    PIXELRELAY_CONFIG_FILE=/etc/pixelrelay.toml
    PIXELRELAY_SERVER__PORT=9000
    PIXELRELAY_IMAGE__STORAGE_FORMAT=png
    DELETE_ORIGINAL_FILE=1

Enum values (``location``, ``format``, ``formats``, ``storage_format``) are
case-insensitive, and ``jpg`` is accepted for ``jpeg``.

Failure Policy
--------------
A missing configuration file is not an error: the defaults apply (port 3000
on the loopback interface, AVIF storage, ``/tmp/watch-in`` and
``/tmp/watch-out``).  A file that exists but cannot be parsed, or values that
fail validation, raise :class:`~pixelrelay.core.errors.ConfigurationError`.
The CLI entry point treats that as fatal.
"""

from __future__ import annotations

import logging
import os
import tomllib
from enum import Enum
from ipaddress import IPv4Address
from pathlib import Path
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from pixelrelay.core.errors import ConfigurationError
from pixelrelay.core.models import ImageEncoding, PixelSize

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path("pixelrelay.toml")
CONFIG_FILE_ENV = "PIXELRELAY_CONFIG_FILE"


def _parse_encoding(value: Any) -> Any:
    # Normalise aliases and case before pydantic's enum validation runs.
    if isinstance(value, str):
        return ImageEncoding(value)
    return value


class TemplateLocation(str, Enum):
    """Where a template name sits in a requested filename."""

    PREFIX = "prefix"
    SUFFIX = "suffix"

    @classmethod
    def _missing_(cls, value: object) -> TemplateLocation | None:
        if isinstance(value, str):
            for member in cls:
                if member.value == value.strip().lower():
                    return member
        return None


class ServerSettings(BaseModel):
    """Bind address for the HTTP delivery server."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    port: int = Field(default=3000, ge=1, le=65535, description="TCP port")
    host: IPv4Address = Field(
        default=IPv4Address("127.0.0.1"),
        description="IPv4 address to bind (loopback by default)",
    )


class ImageSettings(BaseModel):
    """Ingestion and storage settings.

    Attributes:
        formats: Allow-list of encodings clients may request.  An empty list
            disables the check.
        storage_format: Canonical encoding every ingested image is stored in.
        input_path: Directory watched for new images.
        output_path: Canonical storage directory.
        archive_path: Optional directory receiving the original bytes of every
            ingested file, partitioned into time-ordered UUID buckets.
        ingest_existing: Ingest files already present in ``input_path`` before
            watching for new ones.
        read_retry_attempts: How many times an empty source file is re-read
            before the file is given up on.
        read_retry_interval: Seconds to wait between read attempts.
        watch_queue_size: Capacity of the notification queue between the
            filesystem observer and the ingestion loop.
        max_dimension: Largest width or height a client may request in a
            resize.  Template sizes come from configuration and are not capped.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    formats: tuple[ImageEncoding, ...] = Field(
        default=(ImageEncoding.AVIF, ImageEncoding.JPEG, ImageEncoding.PNG),
        description="Encodings clients may request",
    )
    storage_format: ImageEncoding = Field(
        default=ImageEncoding.AVIF,
        description="Canonical on-disk encoding",
    )
    input_path: Path = Field(default=Path("/tmp/watch-in"))
    output_path: Path = Field(default=Path("/tmp/watch-out"))
    archive_path: Path | None = Field(default=None)
    ingest_existing: bool = Field(default=True)
    read_retry_attempts: int = Field(default=50, ge=1)
    read_retry_interval: float = Field(default=0.1, ge=0.0)
    watch_queue_size: int = Field(default=64, ge=1)
    max_dimension: int = Field(default=8192, ge=1)

    @field_validator("storage_format", mode="before")
    @classmethod
    def _normalise_storage_format(cls, value: Any) -> Any:
        return _parse_encoding(value)

    @field_validator("formats", mode="before")
    @classmethod
    def _normalise_formats(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            return tuple(_parse_encoding(item) for item in value)
        return value


class TemplateSettings(BaseModel):
    """A named, fixed-size rendition triggered by a filename convention.

    ``location=prefix, name="large"`` matches ``large_photo``;
    ``location=suffix, name="full"`` matches ``photo_full``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    location: TemplateLocation
    name: str = Field(min_length=1)
    size: PixelSize
    format: ImageEncoding

    @field_validator("location", mode="before")
    @classmethod
    def _normalise_location(cls, value: Any) -> Any:
        if isinstance(value, str):
            return TemplateLocation(value)
        return value

    @field_validator("format", mode="before")
    @classmethod
    def _normalise_format(cls, value: Any) -> Any:
        return _parse_encoding(value)

    @field_validator("size")
    @classmethod
    def _positive_size(cls, value: PixelSize) -> PixelSize:
        if value.width <= 0 or value.height <= 0:
            raise ValueError(f"template size must be positive, got {tuple(value)}")
        return value


class RelayConfig(BaseSettings):
    """Complete PixelRelay configuration.

    Instances are frozen.  Build one with :func:`load_config` (which reads the
    TOML file) or construct it directly, e.g. in tests::

        >>> cfg = RelayConfig(
        ...     image={"storage_format": "png", "output_path": "/tmp/out"},
        ...     watcher_enabled=False,
        ...     _env_file=None,
        ... )
        >>> cfg.image.storage_format
        <ImageEncoding.PNG: 'png'>

    Attributes:
        server: HTTP bind settings.
        image: Ingestion and storage settings.
        templates: Ordered template list.  Order matters: the first matching
            template wins.
        delete_original_file: Delete source files after a successful ingest.
            Also read from the bare ``DELETE_ORIGINAL_FILE`` variable.
        watcher_enabled: Start the ingestion watcher with the HTTP server.
        log_level: Root logging level used by the CLI entry point.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PIXELRELAY_",
        env_nested_delimiter="__",
        case_sensitive=False,
        frozen=True,
    )

    server: ServerSettings = Field(default_factory=ServerSettings)
    image: ImageSettings = Field(default_factory=ImageSettings)
    templates: tuple[TemplateSettings, ...] = Field(default=())
    delete_original_file: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "delete_original_file",
            "PIXELRELAY_DELETE_ORIGINAL_FILE",
            "DELETE_ORIGINAL_FILE",
        ),
    )
    watcher_enabled: bool = Field(default=True)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO"
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.upper()
        return value

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # File values arrive as init kwargs; the environment overrides them.
        return env_settings, dotenv_settings, init_settings, file_secret_settings


def _read_config_file(path: Path) -> dict[str, Any]:
    """Parse a TOML configuration file.

    Args:
        path: Location of the TOML document.

    Returns:
        The parsed document, or an empty dict when the file does not exist.

    Raises:
        ConfigurationError: The file exists but cannot be read or parsed.
    """
    try:
        with open(path, "rb") as handle:
            return tomllib.load(handle)
    except FileNotFoundError:
        logger.info("Configuration file %s not found, using defaults", path)
        return {}
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"Malformed configuration file {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigurationError(f"Cannot read configuration file {path}: {exc}") from exc


def load_config(config_file: str | Path | None = None) -> RelayConfig:
    """Load the process configuration.

    Args:
        config_file: TOML file to read.  Defaults to ``$PIXELRELAY_CONFIG_FILE``
            or ``pixelrelay.toml`` in the working directory.

    Returns:
        A frozen :class:`RelayConfig`.

    Raises:
        ConfigurationError: The file is malformed or a value is invalid.
    """
    if config_file is None:
        config_file = os.environ.get(CONFIG_FILE_ENV) or DEFAULT_CONFIG_FILE
    path = Path(config_file)

    data = _read_config_file(path)

    try:
        config = RelayConfig(**data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration in {path}: {exc}") from exc

    logger.debug(
        "Loaded configuration: storage=%s formats=%s templates=%d",
        config.image.storage_format.value,
        [f.value for f in config.image.formats],
        len(config.templates),
    )
    return config
