"""ImageGate — FastAPI Application.

This module defines the application factory, all REST API routes, and the
``main()`` CLI function that launches the uvicorn server.

Architecture
------------
The application is stateless between requests:

- **Configuration** is loaded from the environment by
  :func:`~imagegate.core.config.load_config` when the process starts.
- **Models** live in a :class:`~imagegate.core.registry.ModelRegistry`
  created by the factory and stored on ``app.state``.
- **Generation** is delegated to
  :class:`~imagegate.core.orchestrator.GenerationOrchestrator`, which
  validates, submits to the remote API, and polls asynchronous jobs.
- **Errors** are rendered as a uniform ``{status, message, code}`` envelope
  by the exception handlers registered here.

Endpoints
---------
========  ============================  ====================================
Method    Path                          Purpose
========  ============================  ====================================
POST      ``/api/v6/images/text2img``   Generate images from a prompt
GET       ``/health``                   Liveness probe
GET       ``/models``                   Registered models and their limits
========  ============================  ====================================

Usage
-----
CLI (installed entry point)::

    imagegate

Direct invocation::

    python -m imagegate.api.main
"""

from __future__ import annotations

import asyncio
import logging
import sys
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress
from datetime import datetime, timezone

import pydantic
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from imagegate import __version__
from imagegate.api.models import (
    ErrorResponse,
    GenerationResponse,
    HealthResponse,
    ModelInfo,
    ModelsResponse,
    Text2ImgRequest,
)
from imagegate.core.config import GatewayConfig, load_config
from imagegate.core.errors import GatewayError, InternalServerError
from imagegate.core.orchestrator import GenerationOrchestrator
from imagegate.core.registry import ModelRegistry, create_default_registry
from imagegate.core.remote_client import RemoteClient

logger = logging.getLogger(__name__)

DISCONNECT_CHECK_INTERVAL = 0.5


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once at process start."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _error_response(error: GatewayError) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content=error.to_envelope())


async def _watch_disconnect(request: Request, cancelled: asyncio.Event) -> None:
    """Set ``cancelled`` once the HTTP client goes away."""
    while not cancelled.is_set():
        if await request.is_disconnected():
            logger.info(f"Client disconnected: {request.url.path}")
            cancelled.set()
            return
        await asyncio.sleep(DISCONNECT_CHECK_INTERVAL)


class RequestLoggingMiddleware:
    """Log each request and turn unexpected exceptions into a 500 envelope.

    Written as plain ASGI so the endpoint keeps the server's ``receive``
    channel and can observe ``http.disconnect``.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        method, path = scope["method"], scope["path"]
        start = time.perf_counter()
        status_code = 500
        response_started = False

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code, response_started
            if message["type"] == "http.response.start":
                response_started = True
                status_code = message["status"]
            await send(message)

        logger.info(f"Request started: {method} {path}")
        try:
            await self.app(scope, receive, send_wrapper)
        except Exception:
            logger.exception(f"Unhandled error: {method} {path}")
            if response_started:
                raise
            response = _error_response(InternalServerError("Internal server error"))
            await response(scope, receive, send_wrapper)

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"Request completed: {method} {path} "
            f"status={status_code} duration={duration_ms:.1f}ms"
        )


def create_app(
    config: GatewayConfig | None = None,
    *,
    registry: ModelRegistry | None = None,
    client: RemoteClient | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: Gateway configuration; loaded from the environment when
            omitted
        registry: Model registry; the built-in models when omitted
        client: Remote API client; built from ``config`` when omitted

    Returns:
        The configured application.  Its registry, client and orchestrator
        are available on ``app.state``.
    """
    if config is None:
        config = load_config()
    if registry is None:
        registry = create_default_registry()
    if client is None:
        client = RemoteClient(
            config.modelslab_base_url,
            config.modelslab_api_key,
            max_retries=config.modelslab_max_retries,
            timeout=config.modelslab_timeout,
            api_key_in_header=config.modelslab_key_in_header,
        )

    orchestrator = GenerationOrchestrator(
        registry,
        client,
        poll_interval=config.poll_interval,
        max_poll_attempts=config.poll_max_attempts,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Log startup and release the HTTP connection pool on shutdown."""
        logger.info(
            f"ImageGate {__version__} ready: {len(registry)} models, "
            f"remote={config.modelslab_base_url}"
        )

        yield  # Application runs here.

        await client.aclose()
        logger.info("Remote client closed on shutdown.")

    app = FastAPI(
        title="ImageGate",
        description="Text-to-image gateway with model validation and job polling.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.registry = registry
    app.state.client = client
    app.state.orchestrator = orchestrator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_allow_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    # -----------------------------------------------------------------------
    # Middleware and exception handlers.
    # -----------------------------------------------------------------------

    app.add_middleware(RequestLoggingMiddleware)

    @app.exception_handler(GatewayError)
    async def handle_gateway_error(request: Request, exc: GatewayError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{exc.code} on {request.url.path}: {exc}")
        else:
            logger.info(f"{exc.code} on {request.url.path}: {exc.message}")
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        reasons = [
            f"{'.'.join(str(part) for part in err['loc'] if part != 'body')}: {err['msg']}"
            for err in exc.errors()
        ]
        body = ErrorResponse(message="Invalid request body", code="INVALID_REQUEST", errors=reasons)
        return JSONResponse(status_code=400, content=body.model_dump())

    # -----------------------------------------------------------------------
    # Routes.
    # -----------------------------------------------------------------------

    @app.post(
        "/api/v6/images/text2img",
        responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
    )
    async def text2img(body: Text2ImgRequest, request: Request) -> GenerationResponse:
        """Generate images from a text prompt.

        Validates the request against the target model, submits it to the
        remote API and, if the remote job is asynchronous, polls until it
        finishes.  Polling stops early if the client disconnects.

        Returns:
            The completed generation with its output URLs.
        """
        cancelled = asyncio.Event()
        watcher = asyncio.create_task(_watch_disconnect(request, cancelled))
        try:
            result = await orchestrator.generate(body.model_dump(), cancelled=cancelled)
        finally:
            watcher.cancel()
            with suppress(asyncio.CancelledError):
                await watcher
        return GenerationResponse.from_result(result)

    @app.get("/health")
    async def health() -> HealthResponse:
        """Liveness probe."""
        return HealthResponse(
            status="ok",
            timestamp=datetime.now(timezone.utc),
            version=__version__,
        )

    @app.get("/models")
    async def list_models() -> ModelsResponse:
        """List registered models with their capabilities."""
        return ModelsResponse(models=[ModelInfo.from_model(m) for m in registry.list()])

    return app


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Loads :class:`~imagegate.core.config.GatewayConfig` from the environment
    and exits with status 1 if it is invalid (most commonly because
    ``MODELSLAB_API_KEY`` is not set).

    This function is registered as the ``imagegate`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    configure_logging()
    try:
        config = load_config()
    except pydantic.ValidationError as exc:
        logger.error(f"Failed to load configuration: {exc}")
        sys.exit(1)

    logging.getLogger().setLevel(config.log_level)
    logger.info(f"Starting ImageGate on {config.server_host}:{config.server_port}")

    uvicorn.run(
        create_app(config),
        host=config.server_host,
        port=config.server_port,
        timeout_keep_alive=int(config.server_read_timeout),
        timeout_graceful_shutdown=int(config.server_write_timeout),
    )


if __name__ == "__main__":
    main()
