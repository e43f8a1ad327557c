from typing import Callable

from fastapi import FastAPI
from contextlib import asynccontextmanager
from app.core.config import settings
from app.core.logging import get_logger, setup_logging
from app.apis.study.main import router as study_router
from app.apis.jobs.main import router as jobs_router
from app.apis.decks.main import router as decks_router
from app.core.services import Services, build_services

import uvicorn
from fastapi.middleware.cors import CORSMiddleware


logger = get_logger(__name__)


def create_app(services_factory: Callable[[], Services] = build_services) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        services = services_factory()
        if services.uses_database:
            from app.core.db.base import create_tables

            await create_tables()
        metrics = services.study_service.metrics
        if metrics is not None:
            metrics.open()
        app.state.study_service = services.study_service
        app.state.queue = services.queue
        app.state.metrics = metrics
        app.state.result_cache = services.result_cache
        await services.queue.start()
        try:
            yield
        finally:
            await services.queue.stop()
            if metrics is not None:
                metrics.close()
            if services.uses_database:
                from app.core.db.base import dispose_engine

                await dispose_engine()

    app = FastAPI(
        title=settings.app.name, version=settings.app.version, lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(study_router)
    app.include_router(jobs_router)
    app.include_router(decks_router)

    @app.get("/")
    async def root():
        return {
            "status": "ok",
            "app": settings.app.name,
            "version": settings.app.version,
        }

    return app


app = create_app()


if __name__ == "__main__":
    setup_logging()
    try:
        uvicorn.run(
            "main:app",
            host="0.0.0.0",
            port=settings.app.port,
            reload=not settings.app.is_production,
        )
    except Exception as e:
        logger.error(f"An error occurred when starting the server: {e}.")
