import logging
from contextlib import aclosing, asynccontextmanager

import aiosqlite
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from unitize.config import settings
from unitize.db import init_all_databases
from unitize.errors import UnitizeError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_all_databases(settings.data_dir)
    if settings.catalog_seed_path is not None:
        from unitize.db.sqlite import get_db
        from unitize.services.catalog_loader import load_catalog

        async with aclosing(get_db()) as connections:
            async for db in connections:
                await load_catalog(db, settings.catalog_seed_path)
    yield


async def _unitize_error_handler(request: Request, exc: UnitizeError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.code},
    )


async def _sqlite_error_handler(request: Request, exc: aiosqlite.Error) -> JSONResponse:
    logger.error("%s %s storage failure: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Could not save changes, please retry", "error": "storage_error"},
    )


def create_app() -> FastAPI:
    application = FastAPI(
        title="Unitize Backend", version="0.1.0", lifespan=lifespan
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.add_exception_handler(UnitizeError, _unitize_error_handler)
    application.add_exception_handler(aiosqlite.Error, _sqlite_error_handler)

    from unitize.routers import flashcards, health, review, units

    application.include_router(health.router)
    application.include_router(
        units.router, prefix="/units", tags=["catalog"]
    )
    application.include_router(
        flashcards.router, prefix="/flashcards", tags=["flashcards"]
    )
    application.include_router(
        review.router, prefix="/review", tags=["review"]
    )

    return application


app = create_app()
