"""
Main application entry point for the placement test backend.

Usage:
    - Direct: python -m placement.main
    - ASGI server: uvicorn placement.main:app
"""

import os
from typing import Optional
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from placement import __version__
from placement.config import Settings, settings
from placement.api import build_api_router, validation_exception_handler
from placement.common.logger import app_logger, configure_logger, APP_LOGGER_NAME
from placement.database.init_db import initialize_database, close_database
from placement.assessments.placement_test.service import (
    PlacementTestService,
    create_placement_test_service
)

# Setup module logger
logger = app_logger.getChild("main")


def create_app(
    service: Optional[PlacementTestService] = None,
    config: Optional[Settings] = None
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        service: Pre-built service to use; when omitted the service is
            created on startup from the settings
        config: Settings to use, defaults to the global settings

    Returns:
        Configured application
    """
    config = config or settings

    configure_logger(
        name=APP_LOGGER_NAME,
        level=config.LOG_LEVEL,
        use_json=config.LOG_JSON,
        log_file=config.LOG_FILE
    )

    app = FastAPI(
        title=f"{config.PROJECT_NAME} API",
        description="Timed, level-gated placement test API",
        version=__version__
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.include_router(build_api_router(), prefix=config.API_PREFIX)
    app.state.placement_test_service = service

    @app.on_event("startup")
    async def startup_event():
        """Initialize storage and the service on application startup."""
        if app.state.placement_test_service is not None:
            return
        try:
            if config.STORAGE_BACKEND == "sql":
                await initialize_database(
                    database_url=config.DATABASE_URL,
                    echo=config.SQL_ECHO,
                    pool_size=config.DB_POOL_SIZE,
                    max_overflow=config.DB_MAX_OVERFLOW,
                    pool_timeout=config.DB_POOL_TIMEOUT,
                    create_schema=config.DATABASE_URL.startswith("sqlite")
                )

            placement_service = create_placement_test_service(config)
            await placement_service.seed_questions(config.QUESTION_BANK_PATH)
            app.state.placement_test_service = placement_service

            logger.info("Application startup complete")
        except Exception as e:
            logger.error(f"Failed to initialize application: {str(e)}")
            raise

    @app.on_event("shutdown")
    async def shutdown_event():
        """Cleanup services on application shutdown."""
        try:
            if config.STORAGE_BACKEND == "sql":
                await close_database()
            logger.info("Application shutdown complete")
        except Exception as e:
            logger.error(f"Error during application shutdown: {str(e)}")
            raise

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "ok",
            "version": __version__,
            "service_ready": app.state.placement_test_service is not None
        }

    logger.info(f"Application initialized with {len(app.routes)} routes")
    return app


app = create_app()

# Entry point for running the application directly
if __name__ == "__main__":
    import uvicorn

    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", 8000))
    reload_enabled = os.environ.get("RELOAD", "false").lower() == "true"

    logger.info(f"Starting server on {host}:{port} (reload: {reload_enabled})")

    uvicorn.run(
        "placement.main:app",
        host=host,
        port=port,
        reload=reload_enabled,
        log_level="info"
    )
