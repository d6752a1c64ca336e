"""
Central API router and utilities for the assessment engine.

This module provides:
- A central router that includes all assessment module routers
- Exception handlers mapping engine errors to HTTP responses
- The standard response envelope
"""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Dict, Any

from examcore.common.error_handling import ExamCoreError, ValidationError, error_response, log_error
from examcore.common.logger import app_logger

logger = app_logger.getChild("api")

# Create main API router
main_router = APIRouter()

# Version prefix for all API routes
API_VERSION = "v1"

# Dictionary to track registered assessment modules
registered_modules: Dict[str, APIRouter] = {}


def register_assessment_module(name: str, router: APIRouter) -> None:
    """
    Register an assessment module router with the main API router.

    Args:
        name: Name of the assessment module
        router: FastAPI router for the assessment module
    """
    if name in registered_modules:
        logger.warning(f"Assessment module '{name}' already registered, skipping")
        return

    main_router.include_router(
        router,
        prefix=f"/{API_VERSION}/{name}",
        tags=[name]
    )

    registered_modules[name] = router
    logger.info(f"Registered assessment module: {name} with {len(router.routes)} routes")


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Report malformed request bodies in the same shape as engine validation errors.

    Each problem becomes ``{"field", "message"}`` with the field as a dotted
    path inside the body.
    """
    errors = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        errors.append({"field": ".".join(location), "message": error.get("msg", "Invalid value")})

    failure = ValidationError(
        message=f"Invalid request: {len(errors)} error(s)",
        details={"data_type": "request", "errors": errors}
    )
    return JSONResponse(status_code=failure.http_status, content=error_response(failure))


async def examcore_exception_handler(request: Request, exc: ExamCoreError) -> JSONResponse:
    """
    Map an engine error to its HTTP status with the standard error body.

    Args:
        request: The incoming request
        exc: The engine error

    Returns:
        A JSON response carrying the stable error code
    """
    status_code = exc.http_status
    if status_code >= 500:
        log_error(exc, context={"path": request.url.path})
    else:
        logger.info(f"{request.method} {request.url.path} -> {status_code} {exc.code.value}")

    return JSONResponse(status_code=status_code, content=error_response(exc))


# Standard API response model
class APIResponse:
    """Standard API response structure"""

    @staticmethod
    def success(data: Any = None, message: str = "Success") -> Dict[str, Any]:
        """
        Create a success response.

        Args:
            data: Response data
            message: Success message

        Returns:
            Response dictionary
        """
        return {
            "status": "success",
            "message": message,
            "data": data
        }

