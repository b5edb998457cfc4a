import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

from volunteer_media import __version__
from volunteer_media.api.animals.routes import router as animals_router
from volunteer_media.api.animals.transfer import router as animal_transfer_router
from volunteer_media.api.auth.routes import router as auth_router
from volunteer_media.api.comments.routes import router as comments_router
from volunteer_media.api.errors import install_exception_handlers
from volunteer_media.api.feed.routes import router as feed_router
from volunteer_media.api.groups.routes import router as groups_router
from volunteer_media.api.media.routes import router as media_router
from volunteer_media.api.middleware import (
    AdvancedRateLimitMiddleware,
    LoggingMiddleware,
    MaxBodySizeMiddleware,
    RequestIDMiddleware,
    SecurityHeadersMiddleware,
)
from volunteer_media.api.protocols.routes import router as protocols_router
from volunteer_media.api.settings.routes import router as settings_router
from volunteer_media.api.statistics.routes import router as statistics_router
from volunteer_media.api.tags.routes import router as tags_router
from volunteer_media.api.users.routes import router as users_router
from volunteer_media.config import config
from volunteer_media.db import close_database, get_database, init_database, ping_database
from volunteer_media.maintenance import run_startup_maintenance
from volunteer_media.storage import get_storage_provider

logger = logging.getLogger(__name__)

API_PREFIX = "/api"

ROUTERS = (
    (auth_router, "Authentication"),
    (users_router, "Users"),
    (groups_router, "Groups"),
    (animal_transfer_router, "Animal import/export"),
    (animals_router, "Animals"),
    (comments_router, "Comments"),
    (tags_router, "Tags"),
    (protocols_router, "Protocols"),
    (feed_router, "Feed"),
    (media_router, "Media"),
    (settings_router, "Settings"),
    (statistics_router, "Statistics"),
)


def configure_logging(level: str = None):
    logging.basicConfig(
        level=(level or config.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, patch legacy data, and release connections on shutdown."""
    await init_database()
    database = await get_database()
    async with database.get_session() as session:
        await run_startup_maintenance(session)

    provider = await get_storage_provider()
    logger.info(f"Storage provider: {provider.name}")
    try:
        yield
    finally:
        close = getattr(provider, "close", None)
        if close is not None:
            await close()
        await close_database()
        logger.info("Shutdown complete")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _mount_frontend(app: FastAPI, dist_dir: str):
    """Serve the built SPA, falling back to index.html for client-side routes."""
    index_file = os.path.join(dist_dir, "index.html")
    assets_dir = os.path.join(dist_dir, "assets")
    if os.path.isdir(assets_dir):
        app.mount("/assets", StaticFiles(directory=assets_dir), name="assets")

    @app.get("/{full_path:path}", include_in_schema=False)
    async def spa_fallback(full_path: str):
        if full_path.startswith("api/"):
            return JSONResponse(status_code=404, content={"error": "Not found"})
        candidate = os.path.realpath(os.path.join(dist_dir, full_path))
        if full_path and candidate.startswith(os.path.realpath(dist_dir)) and os.path.isfile(candidate):
            return FileResponse(candidate)
        return FileResponse(index_file)

    logger.info(f"Serving frontend from {dist_dir}")


def create_app() -> FastAPI:
    docs_enabled = not config.is_production
    app = FastAPI(
        title="Volunteer Media API",
        description="Volunteer management portal for animal shelters",
        version=__version__,
        docs_url="/api/docs" if docs_enabled else None,
        redoc_url="/api/redoc" if docs_enabled else None,
        openapi_url="/api/openapi.json" if docs_enabled else None,
        lifespan=lifespan,
    )

    install_exception_handlers(app)

    # Added last runs first
    app.add_middleware(AdvancedRateLimitMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Requested-With", "X-Request-ID"],
        expose_headers=["X-Request-ID", "X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
    )
    app.add_middleware(MaxBodySizeMiddleware)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)

    for router, tag in ROUTERS:
        app.include_router(router, prefix=API_PREFIX, tags=[tag])

    @app.get("/health")
    @app.get("/healthz")
    async def health_check():
        return {"status": "healthy", "time": _now()}

    @app.get("/ready")
    async def readiness_check():
        try:
            await ping_database()
        except Exception as e:
            logger.warning(f"Readiness check failed: {e}")
            return JSONResponse(status_code=503, content={"status": "not ready", "error": str(e)})
        return {"status": "ready", "time": _now(), "database": "connected"}

    if config.frontend_dist_dir and os.path.isfile(os.path.join(config.frontend_dist_dir, "index.html")):
        _mount_frontend(app, config.frontend_dist_dir)

    return app


app = create_app()


def main():
    import uvicorn

    configure_logging()
    uvicorn.run(
        "volunteer_media.api.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8080")),
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
