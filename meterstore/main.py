"""FastAPI application entrypoint."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from meterstore.api.v1 import v1_router
from meterstore.core.config import Settings, get_settings
from meterstore.core.database import Database
from meterstore.core.errors import StorageError
from meterstore.core.logging import configure_logging
from meterstore.services.storage import create_storage_adapter


async def storage_error_handler(_request: Request, exc: StorageError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.error_type.value, "detail": exc.message},
    )


def create_app(settings: Settings | None = None, database: Database | None = None) -> FastAPI:
    """Build the app around one Database that lives as long as the process."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    database = database or Database.from_settings(settings)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
        # Startup: ensure tables exist (the schema is owned outside this service)
        await database.create_all()
        yield
        await database.dispose()

    app = FastAPI(
        title=settings.api_title,
        version="0.1.0",
        description="Event storage and pricing engine for metered billing",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.database = database
    app.state.storage = create_storage_adapter(database)

    app.add_exception_handler(StorageError, storage_error_handler)
    app.include_router(v1_router)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict:
        return {"status": "ok", "backend": database.backend}

    return app
