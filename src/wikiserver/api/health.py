"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running and the
database is reachable. Redis is reported too, but it is optional: the
wiki stays "healthy" without it, only live page events are lost.
"""

from fastapi import APIRouter
from sqlalchemy import text

from wikiserver import __version__
from wikiserver.db.engine import get_engine
from wikiserver.realtime.pubsub import get_redis

router = APIRouter()


@router.get("/health")
async def health_check():
    """Check server health and dependency connectivity."""
    checks = {"server": "ok", "version": __version__}

    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {e}"

    try:
        await get_redis().ping()
        checks["redis"] = "ok"
    except RuntimeError:
        checks["redis"] = "disabled"
    except Exception as e:
        checks["redis"] = f"error: {e}"

    status = "healthy" if checks["database"] == "ok" else "degraded"
    return {"status": status, **checks}
