import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from filedesk.config import get_settings
from filedesk.storage import get_object_store
from filedesk.upload_session import SessionRegistry
from filedesk.api.routes.files import router as files_router
from filedesk.api.routes.search import router as search_router
from filedesk.api.routes.system import router as system_router
from filedesk.api.routes.uploads import router as uploads_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    logger.info("Starting filedesk API")

    # Ensure MinIO bucket exists
    get_object_store().ensure_bucket_exists()

    if settings.index_service_url:
        logger.info("Index service enabled at %s", settings.index_service_url)
    else:
        logger.info("Index service not configured; notifications disabled")

    yield

    logger.info("Shutting down filedesk API")


def create_app() -> FastAPI:
    app = FastAPI(
        title="filedesk",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.upload_sessions = SessionRegistry(
        ttl_seconds=get_settings().upload_session_ttl_seconds,
    )
    app.include_router(system_router, prefix="/api")
    app.include_router(uploads_router, prefix="/api")
    app.include_router(files_router, prefix="/api")
    app.include_router(search_router, prefix="/api")
    return app


app = create_app()


def main():
    """Entry point for filedesk-api script."""
    uvicorn.run(
        "filedesk.api.app:app",
        host="0.0.0.0",
        port=8000,
        reload=False,
    )
