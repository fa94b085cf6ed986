import logging
from contextlib import asynccontextmanager
from pathlib import Path

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from querynox.config import Settings, get_settings
from querynox.database import init_db, set_db_path
from querynox.errors import QueryNoxError
from querynox.routers import chat, health, public, user
from querynox.services.model_catalog import ModelCatalog
from querynox.services.providers.registry import ProviderRegistry
from querynox.services.storage import MEDIA_ROUTE, LocalObjectStorage
from querynox.services.turn_orchestrator import INTERNAL_ERROR_MESSAGE

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    logging.basicConfig(level=settings.log_level)

    # Ensure data directories exist
    Path(settings.database_url).parent.mkdir(parents=True, exist_ok=True)
    Path(settings.storage_dir).mkdir(parents=True, exist_ok=True)

    set_db_path(settings.database_url)
    await init_db()

    app.state.registry = ProviderRegistry(settings)
    app.state.catalog = ModelCatalog(settings)
    app.state.storage = LocalObjectStorage(settings.storage_dir, settings.public_base_url)
    app.state.http_client = httpx.AsyncClient()
    logger.info("QueryNox backend started")

    yield

    logger.info("QueryNox backend shutting down")
    await app.state.http_client.aclose()
    await app.state.registry.aclose()


async def querynox_error_handler(request: Request, exc: QueryNoxError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": INTERNAL_ERROR_MESSAGE})


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(
        title="QueryNox API",
        description="Multi-provider chat orchestration with retrieval and streaming",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.add_exception_handler(QueryNoxError, querynox_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # Routers
    app.include_router(health.router)
    app.include_router(chat.router)
    app.include_router(public.router)
    app.include_router(user.router)

    app.mount(
        MEDIA_ROUTE,
        StaticFiles(directory=settings.storage_dir, check_dir=False),
        name="media",
    )

    origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
    origins.extend(o.strip() for o in settings.allowed_origins.split(",") if o.strip())
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    return app


app = create_app()


@app.get("/")
async def read_root():
    return {
        "status": "ok",
        "message": "QueryNox backend is running",
        "docs": "/docs",
    }
