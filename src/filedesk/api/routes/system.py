import logging
from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from filedesk.api.deps import get_bridge, get_registry, get_store
from filedesk.db import get_session
from filedesk.index_bridge import IndexBridge
from filedesk.storage import ObjectStore
from filedesk.upload_session import SessionRegistry

logger = logging.getLogger(__name__)
router = APIRouter(tags=["system"])


@router.get("/system/health")
async def health_check(
    session: AsyncSession = Depends(get_session),
    store: ObjectStore = Depends(get_store),
    bridge: IndexBridge = Depends(get_bridge),
    registry: SessionRegistry = Depends(get_registry),
) -> dict[str, Any]:
    """Check connectivity to Postgres, MinIO and the index service."""
    checks: dict[str, Any] = {}

    # PostgreSQL
    try:
        result = await session.execute(text("SELECT 1"))
        result.scalar()
        checks["postgres"] = "ok"
    except Exception as e:
        logger.error("Postgres health check failed: %s", e)
        checks["postgres"] = f"error: {e}"

    # MinIO
    try:
        store.client.bucket_exists(store.bucket)
        checks["minio"] = "ok"
    except Exception as e:
        logger.error("MinIO health check failed: %s", e)
        checks["minio"] = f"error: {e}"

    overall = all(v == "ok" for v in checks.values())

    # Optional; never degrades overall health
    if bridge.is_enabled:
        checks["index_service"] = "ok" if await bridge.ping() else "unreachable"
    else:
        checks["index_service"] = "disabled"

    return {
        "status": "healthy" if overall else "degraded",
        "checks": checks,
        "open_upload_sessions": len(registry),
    }
