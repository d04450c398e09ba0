"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running and the
backing stores are reachable. The memory backend has nothing to ping.
"""

from fastapi import APIRouter, Request
from sqlalchemy import text

from warden import __version__
from warden.config import settings

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Check server health and dependency connectivity."""
    container = request.app.state.container
    checks = {"server": "ok", "version": __version__, "backend": container.settings.storage_backend}

    if container.settings.storage_backend == "postgres":
        # Check Postgres
        try:
            from warden.db.engine import get_engine

            async with get_engine().connect() as conn:
                await conn.execute(text("SELECT 1"))
            checks["postgres"] = "ok"
        except Exception as e:
            checks["postgres"] = f"error: {e}"

        # Check Redis
        try:
            from warden.realtime.pubsub import get_redis

            await get_redis().ping()
            checks["redis"] = "ok"
        except Exception as e:
            checks["redis"] = f"error: {e}"

    status = "healthy" if all(
        v == "ok" for k, v in checks.items() if k in ("server", "postgres", "redis")
    ) else "degraded"

    return {"status": status, "environment": settings.environment, **checks}
