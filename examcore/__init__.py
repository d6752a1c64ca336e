"""
ExamCore Assessment Session and Scoring Engine

This package runs timed exams and mock-interview sessions:
1. Session lifecycle with scheduling, pause/resume and cancellation
2. Incremental answer recording with resumable progress
3. Per-kind grading (multiple choice, coding via an external runner, free form)
4. Result aggregation with category breakdowns and pass/fail verdicts
5. Definition cloning with collision-free copy titles
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from examcore.common.config import AppConfig, get_config
from examcore.common.logger import app_logger

logger = app_logger.getChild("app")


async def build_engine(config: AppConfig):
    """
    Build the assessment engine on the configured storage backend.

    Args:
        config: Application configuration

    Returns:
        AssessmentEngine instance
    """
    from examcore.assessments.base.services import AssessmentEngine

    if config.database.backend == "memory":
        from examcore.assessments.base.memory_repository import (
            MemoryDefinitionRepository,
            MemoryQuestionContentRepository,
            MemorySessionRepository
        )
        logger.info("Using in-memory storage")
        return AssessmentEngine(
            MemoryDefinitionRepository(),
            MemoryQuestionContentRepository(),
            MemorySessionRepository(),
            config=config
        )

    from examcore.database.init_db import get_session_factory, initialize_database
    from examcore.database.repositories import (
        SqlDefinitionRepository,
        SqlQuestionContentRepository,
        SqlSessionRepository
    )
    await initialize_database(config.database)
    factory = get_session_factory()
    return AssessmentEngine(
        SqlDefinitionRepository(factory),
        SqlQuestionContentRepository(factory),
        SqlSessionRepository(factory),
        config=config
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    FastAPI application lifespan context manager.

    Builds the engine on startup unless one was supplied to create_app, and
    releases database connections on shutdown.
    """
    logger.info("Application startup sequence initiated.")
    if getattr(app.state, "engine", None) is None:
        app.state.engine = await build_engine(app.state.config)
    logger.info("Application startup sequence complete. Yielding control.")

    yield

    logger.info("Application shutdown sequence initiated.")
    if app.state.config.database.backend == "sql":
        from examcore.database.init_db import close_database
        await close_database()
    logger.info("Application shutdown sequence complete.")


def create_app(
    engine=None,
    config: Optional[AppConfig] = None,
    app_name: str = "ExamCore Assessment Engine",
    app_description: str = "Timed exam and mock-interview sessions with scoring"
) -> FastAPI:
    """
    Create and configure a FastAPI application instance.

    Args:
        engine: Prebuilt AssessmentEngine; built at startup when omitted
        config: Application configuration; defaults to the loaded config
        app_name: The name of the application
        app_description: Description of the application

    Returns:
        Configured FastAPI application
    """
    config = config or get_config()

    app = FastAPI(
        title=app_name,
        description=app_description,
        version=config.version,
        debug=config.api.debug,
        lifespan=lifespan
    )
    app.state.config = config
    app.state.engine = engine

    from fastapi.exceptions import RequestValidationError
    from examcore.api import (
        examcore_exception_handler,
        main_router,
        validation_exception_handler
    )
    from examcore.common.error_handling import ExamCoreError

    _register_assessment_modules()
    app.include_router(main_router, prefix=config.api.prefix)

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ExamCoreError, examcore_exception_handler)

    logger.info(f"Application created with {len(app.routes)} routes")
    return app


def _register_assessment_modules() -> None:
    """Register the assessment routers with the main router."""
    from examcore.api import register_assessment_module
    from examcore.assessments.base.controllers import router as assessments_router

    register_assessment_module(name="assessments", router=assessments_router)
