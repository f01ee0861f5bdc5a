"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable
    from contextlib import AbstractAsyncContextManager

    from medirunner.config import Settings
    from medirunner.ml.extractor import DescriptorExtractor

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from medirunner.api.errors import register_exception_handlers
from medirunner.api.routes import router
from medirunner.config import get_settings
from medirunner.db.session import Database
from medirunner.face.authentication import AuthenticationService
from medirunner.face.enrollment import EnrollmentService
from medirunner.face.store import SqlDescriptorStore
from medirunner.ml.capture import CapturePool

logger = logging.getLogger(__name__)


async def init_state(app: FastAPI, settings: Settings, extractor: DescriptorExtractor | None = None) -> None:
    """Build the database, services and capture pool and attach them to ``app.state``."""
    database = Database(settings.database_url)
    await database.init()
    store = SqlDescriptorStore(database)

    app.state.settings = settings
    app.state.database = database
    app.state.store = store
    app.state.enrollment = EnrollmentService(store)
    app.state.authentication = AuthenticationService(store, threshold=settings.match_threshold)
    app.state.capture_pool = CapturePool(settings)
    app.state.extractor = extractor


async def close_state(app: FastAPI) -> None:
    """Release what :func:`init_state` created."""
    app.state.capture_pool.shutdown()
    await app.state.database.dispose()


def _make_lifespan(
    extractor: DescriptorExtractor | None,
) -> Callable[[FastAPI], AbstractAsyncContextManager[None]]:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan: initialize on startup, clean up on shutdown."""
        settings = get_settings()

        logging.basicConfig(
            level=settings.log_level,
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )

        logger.info(
            "Starting Medi Runner face gate (threshold=%.2f, capture_timeout=%.1fs, max_concurrent=%s, extractor=%s)",
            settings.match_threshold,
            settings.capture_timeout,
            settings.max_concurrent,
            None if extractor is None else extractor.model_name,
        )

        await init_state(app, settings, extractor)

        logger.info("Medi Runner face gate ready")
        yield

        logger.info("Shutting down Medi Runner face gate")
        await close_state(app)
        logger.info("Medi Runner face gate shutdown complete")

    return lifespan


def create_app(extractor: DescriptorExtractor | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        extractor: Frame -> descriptor model used by the capture endpoints.
            Without one, those endpoints answer 501 and clients must submit
            descriptors they captured themselves.
    """
    application = FastAPI(
        title="Medi Runner Face Gate",
        description="Face-descriptor enrollment and matching for the Medi Runner console",
        version="0.1.0",
        lifespan=_make_lifespan(extractor),
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(application)
    application.include_router(router)
    return application


app = create_app()
