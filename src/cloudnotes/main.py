# Main application entry point
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api import health_router, notes_router
from .config import Settings, get_settings
from .core.change_feed import build_change_feed
from .core.exceptions import StoreError
from .core.logging import LoggingMiddleware, get_logger, setup_logging
from .core.push_channel import PushChannelRegistry
from .core.schemas.common import ErrorResponse
from .core.store import NoteStore
from .database import Database

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the process-wide store, feed and channel registry; tear them down on exit."""
    settings: Settings = app.state.settings
    logger.info(
        "Starting Cloud Notes application",
        extra={"version": __version__, "environment": settings.environment, "debug": settings.debug},
    )

    database = Database(settings)
    if settings.create_tables_on_startup:
        try:
            await database.create_tables()
            logger.info("Database tables created/verified")
        except Exception as e:
            logger.error("Failed to create database tables", exc_info=e)
            raise

    change_feed = build_change_feed(settings)
    try:
        await change_feed.start()
    except Exception as e:
        logger.error(f"Change feed failed to start ({settings.change_feed_backend})", exc_info=e)
        await database.dispose()
        raise

    channels = PushChannelRegistry()
    app.state.database = database
    app.state.change_feed = change_feed
    app.state.channels = channels
    app.state.store = NoteStore(database.session_factory, change_feed)

    yield

    logger.info("Shutting down Cloud Notes application")
    closed = channels.close_all("shutdown")
    logger.info(f"Closed {closed} push channel(s)")
    await change_feed.stop()
    await database.dispose()


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]
    body = ErrorResponse(
        error="ValidationError",
        message=errors[0]["msg"] if errors else "Invalid request",
        details=errors,
    )
    return JSONResponse(status_code=400, content=body.model_dump(mode="json"))


async def _store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    logger.error(
        "Store operation failed",
        extra={"method": request.method, "path": request.url.path, "error": str(exc)},
    )
    body = ErrorResponse(error=type(exc).__name__, message=str(exc))
    return JSONResponse(status_code=500, content=body.model_dump(mode="json"))


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Application factory."""
    settings = settings or get_settings()
    setup_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        description="Short text notes with a live-update event stream",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(LoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(StoreError, _store_error_handler)

    app.include_router(notes_router)
    app.include_router(health_router)

    @app.get("/")
    async def root():
        return {"message": "Cloud Notes API is running!"}

    # Basic liveness endpoint
    @app.get("/health")
    async def basic_health():
        return {"status": "ok"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run("cloudnotes.main:app", host=settings.host, port=settings.port, reload=settings.reload)
