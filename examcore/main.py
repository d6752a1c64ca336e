"""
Main application entry point for the assessment engine.

Usage:
    - Direct: python -m examcore.main
    - ASGI server: uvicorn examcore.main:app
"""

import os

from examcore import create_app
from examcore.common.config import get_config
from examcore.common.logger import app_logger, configure_logger

config = get_config()

configure_logger(
    name="examcore",
    level=config.logging.level,
    use_json=config.logging.use_json,
    log_file=config.logging.file_path
)

# Setup module logger
logger = app_logger.getChild("main")

# Create the FastAPI application
app = create_app(config=config)


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": f"Welcome to {config.app_name}", "version": config.version}


logger.info(f"Environment: {config.environment.env}")

# Entry point for running the application directly
if __name__ == "__main__":
    import uvicorn

    reload_enabled = os.environ.get("RELOAD", "false").lower() == "true"
    logger.info(f"Starting server on {config.api.host}:{config.api.port} (reload: {reload_enabled})")

    uvicorn.run(
        "examcore.main:app",
        host=config.api.host,
        port=config.api.port,
        reload=reload_enabled,
        log_level=config.logging.level.lower()
    )
