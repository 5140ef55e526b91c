"""PixelRelay — FastAPI delivery application.

This module builds the FastAPI application and provides the ``main()`` CLI
function that launches the uvicorn server.

Architecture
------------
- **Configuration** is loaded once by :func:`main` (or passed to
  :func:`create_app` directly, e.g. in tests) and stored on ``app.state``.
- **Delivery** is delegated to :class:`~pixelrelay.core.processor.RequestProcessor`.
  Image routes are plain ``def`` functions, so FastAPI runs them in its worker
  threadpool and concurrent requests transcode in parallel.
- **Ingestion** runs as a background task started by the lifespan hook when
  ``watcher_enabled`` is set.

Endpoints
---------
========  =========================================  ==============================
Method    Path                                       Purpose
========  =========================================  ==============================
GET       ``/``                                      Service banner
GET       ``/health``                                Liveness, version, watcher
GET       ``/{name}``                                Canonical format
GET       ``/{name}/{extension}``                    Explicit format
GET       ``/{width}/{height}/{name}/{extension}``   Explicit format + exact resize
========  =========================================  ==============================

Status codes: ``400`` unknown/disallowed format or malformed path,
``404`` image not found, ``500`` read or transcode failure.
``/health`` answers ``503`` once the ingestion watcher has died.

Usage
-----
CLI (installed entry point)::

    pixelrelay

Direct invocation::

    python -m pixelrelay.api.main
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi import Path as PathParam
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from pixelrelay import __version__
from pixelrelay.core.config import RelayConfig, load_config
from pixelrelay.core.errors import ConfigurationError, RequestError
from pixelrelay.core.models import PixelSize
from pixelrelay.core.processor import RequestProcessor
from pixelrelay.imaging.transcoder import Transcoder
from pixelrelay.ingest.watcher import ImageIngestor, ImageWatcher
from pixelrelay.storage.disk import BucketedStorage, DiskStorage

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Messages returned to clients; internal error detail stays in the logs.
_STATUS_MESSAGES = {
    400: "Bad request",
    404: "Image not found",
    500: "Internal server error",
}


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for the server process."""
    logging.basicConfig(level=level, format=LOG_FORMAT)


# ---------------------------------------------------------------------------
# Application lifecycle.
# ---------------------------------------------------------------------------


def _report_watcher_exit(task: asyncio.Task) -> None:
    """Log a watcher task that ended with an exception."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Ingestion watcher failed; new files will not be ingested", exc_info=exc)


def watcher_state(app: FastAPI) -> str:
    """Return ``"disabled"``, ``"running"`` or ``"failed"`` for the watcher task."""
    task = getattr(app.state, "watcher_task", None)
    if task is None:
        return "disabled"
    if task.done():
        return "failed"
    return "running"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the pipeline components and run the ingestion watcher.

    On startup:
        Creates the canonical storage, the transcoder and the request
        processor and stores them on ``app.state``.  Starts the watcher task
        when ``watcher_enabled`` is set; a watcher that dies is logged at
        ERROR and reported by ``/health``.

    On shutdown:
        Cancels the watcher task, which stops the observer thread.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control back to the application for the duration of its lifetime.
    """
    # --- Startup -----------------------------------------------------------
    config: RelayConfig = app.state.config
    storage = DiskStorage(config.image.output_path)
    transcoder = Transcoder()
    app.state.processor = RequestProcessor(config, storage, transcoder)

    watcher_task: asyncio.Task | None = None
    if config.watcher_enabled:
        archive = (
            BucketedStorage(config.image.archive_path)
            if config.image.archive_path is not None
            else None
        )
        ingestor = ImageIngestor(config, storage, transcoder, archive)
        watcher_task = asyncio.create_task(ImageWatcher(config, ingestor).run())
        watcher_task.add_done_callback(_report_watcher_exit)
        logger.info("Ingestion watcher started.")
    app.state.watcher_task = watcher_task

    yield  # Application runs here.

    # --- Shutdown ----------------------------------------------------------
    if watcher_task is not None:
        watcher_task.cancel()
        # wait() never raises; a failure was already reported by the callback.
        await asyncio.wait([watcher_task])
        logger.info("Ingestion watcher stopped.")


# ---------------------------------------------------------------------------
# Dependencies and error mapping.
# ---------------------------------------------------------------------------


def get_processor(request: Request) -> RequestProcessor:
    return request.app.state.processor


ProcessorDep = Annotated[RequestProcessor, Depends(get_processor)]


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.debug("Rejected %s: %s", request.url.path, exc.errors())
    return JSONResponse(status_code=400, content={"detail": _STATUS_MESSAGES[400]})


def _deliver(
    processor: RequestProcessor,
    name: str,
    extension: str | None = None,
    size: PixelSize | None = None,
) -> Response:
    """Run the processor and convert the outcome into an HTTP response."""
    try:
        result = processor.process(name, extension, size)
    except RequestError as exc:
        if exc.status_code >= 500:
            logger.error("Failed to serve %r as %r: %s", name, extension, exc)
        else:
            logger.info("Rejected %r as %r: %s", name, extension, exc)
        raise HTTPException(
            status_code=exc.status_code,
            detail=_STATUS_MESSAGES.get(exc.status_code, _STATUS_MESSAGES[500]),
        ) from exc
    return Response(content=result.data, media_type=result.content_type)


# ---------------------------------------------------------------------------
# Application factory.
# ---------------------------------------------------------------------------


def create_app(config: RelayConfig) -> FastAPI:
    """Build the FastAPI application around *config*.

    Args:
        config: Frozen process configuration.

    Returns:
        The configured application.  Components are created by the lifespan
        hook, so the app must be run (or entered with ``TestClient``) before
        serving requests.
    """
    app = FastAPI(
        title="PixelRelay",
        description="Watched-folder image ingestion with on-demand transcoding.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.add_exception_handler(RequestValidationError, _validation_error_handler)

    @app.get("/", response_class=PlainTextResponse)
    async def index() -> str:
        return "PixelRelay image server"

    @app.get("/health")
    async def health(request: Request) -> JSONResponse:
        watcher = watcher_state(request.app)
        healthy = watcher != "failed"
        return JSONResponse(
            status_code=200 if healthy else 503,
            content={
                "status": "ok" if healthy else "degraded",
                "version": __version__,
                "watcher": watcher,
            },
        )

    @app.get("/{name}")
    def serve_default(name: str, processor: ProcessorDep) -> Response:
        """Serve *name* in the canonical storage format."""
        return _deliver(processor, name)

    @app.get("/{name}/{extension}")
    def serve_image(name: str, extension: str, processor: ProcessorDep) -> Response:
        """Serve *name* encoded as *extension*."""
        return _deliver(processor, name, extension)

    @app.get("/{width}/{height}/{name}/{extension}")
    def serve_resized(
        width: Annotated[int, PathParam(gt=0)],
        height: Annotated[int, PathParam(gt=0)],
        name: str,
        extension: str,
        processor: ProcessorDep,
    ) -> Response:
        """Serve *name* encoded as *extension*, resized to exactly width x height."""
        return _deliver(processor, name, extension, PixelSize(width, height))

    return app


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Load configuration and launch the uvicorn ASGI server.

    The configuration file defaults to ``pixelrelay.toml`` and can be moved
    with ``PIXELRELAY_CONFIG_FILE``.  An invalid configuration terminates the
    process with exit status 1.

    This function is registered as the ``pixelrelay`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    try:
        config = load_config()
    except ConfigurationError as exc:
        configure_logging()
        logger.critical("%s", exc)
        sys.exit(1)

    configure_logging(config.log_level)
    logger.info("Starting PixelRelay %s on %s:%d", __version__, config.server.host, config.server.port)

    uvicorn.run(
        create_app(config),
        host=str(config.server.host),
        port=config.server.port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
