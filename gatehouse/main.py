"""Gatehouse API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map GatehouseError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - All handles (database, stores, services) built once in the lifespan and
      stored on app.state; shut down in reverse on exit
    - Every response carries an X-Request-ID (propagated from the request if sent)

Design Decisions:
    - create_app() factory: tests build an app around their own Services
      (in-memory database, fake transport) without touching globals
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
"""

import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from gatehouse import __version__
from gatehouse.api.error_handlers import register_error_handlers
from gatehouse.api.routes import auth, health
from gatehouse.bootstrap import Services, build_services
from gatehouse.config import Settings, get_settings
from gatehouse.infrastructure.observability import setup_logging

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def create_app(
    settings: Settings | None = None, services: Services | None = None,
) -> FastAPI:
    """Build the ASGI app. Pass `services` to reuse prebuilt handles (tests)."""
    settings = settings or (services.settings if services else get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup/shutdown lifecycle."""
        setup_logging(settings.log_level, settings.log_format)
        owned = services is None
        app.state.services = services or build_services(settings)
        logger.info("Gatehouse API started")
        yield
        logger.info("Gatehouse API shutting down")
        if owned:
            await app.state.services.close()

    app = FastAPI(title="Gatehouse API", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    if services is not None:
        app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    # Routes: explicit registration
    app.include_router(health.router)
    app.include_router(auth.router)

    register_error_handlers(app)
    return app


app = create_app()
