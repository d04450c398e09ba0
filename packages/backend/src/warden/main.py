"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown (logging, Redis, the service
container, the database engine). Tests pass a ready-made container and
skip the lifespan entirely.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from warden import __version__
from warden.api import api_router
from warden.api.errors import register_exception_handlers
from warden.bootstrap import ServiceContainer, build_container
from warden.config import Settings, settings as default_settings
from warden.logging import configure_logging

logger = structlog.get_logger()


def _make_lifespan(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Anything before `yield` runs at startup, after `yield` at shutdown."""
        configure_logging(settings.log_level, json_output=settings.log_json)
        logger.info(
            "warden.starting",
            version=__version__,
            environment=settings.environment,
            backend=settings.storage_backend,
            port=settings.port,
        )

        redis = None
        if getattr(app.state, "container", None) is None:
            if settings.storage_backend == "postgres":
                from warden.realtime.pubsub import init_redis

                # Unlike the memory backend, there is no fallback without Redis
                redis = await init_redis(settings.redis_url)
                logger.info("warden.redis_connected", url=settings.redis_url)
            app.state.container = build_container(settings, redis)

        yield

        logger.info("warden.shutdown")
        if redis is not None:
            from warden.db.engine import dispose_engine
            from warden.realtime.pubsub import close_redis

            await close_redis()
            await dispose_engine()

    return lifespan


def create_app(
    settings: Optional[Settings] = None,
    container: Optional[ServiceContainer] = None,
) -> FastAPI:
    """Build and return the FastAPI application."""
    settings = settings or default_settings
    app = FastAPI(
        title="Warden",
        description="Token lifecycle service — sessions, rotation, revocation, lockout",
        version=__version__,
        lifespan=_make_lifespan(settings),
    )
    app.state.container = container

    # ── Middleware stack ──────────────────────────────────────
    # Starlette middleware executes in reverse order of registration.
    # Request flow: RequestId → Security → CORS → handler

    from warden.middleware.request_id import RequestIdMiddleware
    from warden.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIdMiddleware)

    register_exception_handlers(app)
    app.include_router(api_router)
    return app


# Default app instance (used by uvicorn: warden.main:app)
app = create_app()
