# Use postponed evaluation of annotations so type hints stay as strings at runtime.
from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import AsyncIterator, Awaitable, Callable, Optional

# `FastAPI` exposes the aggregated snapshot as HTTP endpoints for map clients and the web UI.
from fastapi import FastAPI, Request
# Map clients (Google Maps, Leaflet pages on other hosts) fetch our KML/JSON cross-origin.
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from mendozabike.api.routes import FeedUnavailable, feed_unavailable_handler, kml_document, router
# `FeedService` wraps the snapshot cache and the two renderers.
from mendozabike.api.service import FeedService
# `AppConfig` is the typed config model so we can avoid globals and magic strings.
from mendozabike.config.models import AppConfig
# Central logging configuration keeps operational debugging consistent across scripts and the API.
from mendozabike.utils.logging import configure_logging


logger = logging.getLogger(__name__)


# This app factory builds the FastAPI application from a typed config.
# `service` can be injected (tests, scripts) instead of building one that talks to the real feed.
def create_app(config: AppConfig, *, service: Optional[FeedService] = None) -> FastAPI:
    # Configure logging early so every subsequent log line follows the same format/level.
    configure_logging(config.logging)

    feed_service = service or FeedService(config)

    # The cache (and its worker threads, HTTP session) lives exactly as long as the app.
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Serving %s (cache ttl=%ss)", config.app.name, config.cache.ttl_seconds)
        try:
            yield
        finally:
            feed_service.close()

    app = FastAPI(title=config.app.name, version=config.app.version, lifespan=lifespan)

    # Store the service on `app.state` so route handlers can access it without global variables.
    app.state.feed_service = feed_service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.web.cors_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Origin", "X-Requested-With", "Content-Type", "Accept", "Authorization"],
    )

    if "*" in config.web.cors_origins:
        # CORSMiddleware only answers requests that send `Origin`; server-side fetches of the
        # KML (Google Maps, other proxies) must see the header too.
        @app.middleware("http")
        async def allow_any_origin(
            request: Request, call_next: Callable[[Request], Awaitable[Response]]
        ) -> Response:
            response = await call_next(request)
            response.headers.setdefault("Access-Control-Allow-Origin", "*")
            return response

    app.add_exception_handler(FeedUnavailable, feed_unavailable_handler)  # type: ignore[arg-type]

    app.include_router(router)
    app.add_api_route(
        f"/{config.web.kml_filename}",
        kml_document,
        methods=["GET"],
        response_class=Response,
        summary="Station, repair point and bike path KML",
    )

    return app
