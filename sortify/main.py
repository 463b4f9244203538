"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from reorder.sorting import configure_collation
from sortify.config import get_settings
from sortify.db import close_db, init_db
from sortify.errors import NotAuthenticatedError
from sortify.logging_config import configure_logging
from sortify.profiles import close_profiles

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle hook."""
    settings = get_settings()
    configure_logging()
    configure_collation(settings.collation_locale)
    await init_db()
    logger.info("DB ready at %s", settings.db_abs_path)
    yield
    close_profiles()
    await close_db()
    logger.info("DB closed")


app = FastAPI(
    title="sortify",
    version="0.1.0",
    lifespan=lifespan,
)

# Session middleware (signed cookie holding the profile id).
app.add_middleware(SessionMiddleware, secret_key=get_settings().secret_key)

# Routers
from sortify.routes_auth import router as auth_router  # noqa: E402
from sortify.routes_playlists import router as playlists_router  # noqa: E402

app.include_router(auth_router)
app.include_router(playlists_router)


@app.exception_handler(NotAuthenticatedError)
async def not_authenticated_handler(request: Request, exc: NotAuthenticatedError):
    return JSONResponse({"detail": str(exc)}, status_code=401)


@app.get("/health")
async def health():
    """Simple health-check endpoint."""
    return JSONResponse({"status": "ok", "version": app.version})
