"""
Error Handling System for the Assessment Engine

This module provides the error handling framework including:
1. Custom exception hierarchy with stable error codes
2. Retry mechanism with backoff for transient storage failures
3. Structured error logging
4. Error response generation for the API layer
"""

import logging
import traceback
import asyncio
import random
import functools
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type, TypeVar, Union, cast
from datetime import datetime
from pydantic import BaseModel, Field

F = TypeVar('F', bound=Callable[..., Awaitable[Any]])

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Severity levels for errors"""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCode(Enum):
    """Stable error kinds surfaced to callers"""
    # General errors
    UNKNOWN_ERROR = "unknown_error"
    VALIDATION_ERROR = "validation_error"
    NOT_FOUND_ERROR = "not_found_error"

    # Assessment errors
    DEFINITION_NOT_FOUND = "definition_not_found"
    SOURCE_NOT_FOUND = "source_not_found"
    SESSION_NOT_FOUND = "session_not_found"
    RESULT_NOT_FOUND = "result_not_found"
    UNKNOWN_QUESTION = "unknown_question"
    INVALID_TRANSITION = "invalid_transition"
    SESSION_NOT_ACTIVE = "session_not_active"
    TITLE_CONFLICT = "title_conflict"
    GRADING_PENDING = "grading_pending"

    # Storage errors
    DUPLICATE_ERROR = "duplicate_error"
    DATABASE_ERROR = "database_error"

    # External service errors
    EXTERNAL_SERVICE_ERROR = "external_service_error"
    EXTERNAL_SERVICE_TIMEOUT = "external_service_timeout"


# HTTP status used by the API layer for each error kind
HTTP_STATUS_BY_CODE: Dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 422,
    ErrorCode.NOT_FOUND_ERROR: 404,
    ErrorCode.DEFINITION_NOT_FOUND: 404,
    ErrorCode.SOURCE_NOT_FOUND: 404,
    ErrorCode.SESSION_NOT_FOUND: 404,
    ErrorCode.RESULT_NOT_FOUND: 404,
    ErrorCode.UNKNOWN_QUESTION: 404,
    ErrorCode.INVALID_TRANSITION: 409,
    ErrorCode.SESSION_NOT_ACTIVE: 409,
    ErrorCode.TITLE_CONFLICT: 409,
    ErrorCode.DUPLICATE_ERROR: 409,
    ErrorCode.EXTERNAL_SERVICE_TIMEOUT: 504,
}


class ErrorInfo(BaseModel):
    """Structured information about an error"""
    code: ErrorCode
    message: str
    timestamp: datetime = Field(default_factory=datetime.now)
    severity: ErrorSeverity = ErrorSeverity.ERROR
    details: Optional[Dict[str, Any]] = None
    exception_type: Optional[str] = None
    exception_message: Optional[str] = None
    stack_trace: Optional[List[str]] = None
    context: Optional[Dict[str, Any]] = None

    class Config:
        use_enum_values = True


class ExamCoreError(Exception):
    """Base exception class for all engine errors"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.severity = severity
        self.details = details or {}
        self.cause = cause
        self.context = context or {}
        self.timestamp = datetime.now()

    @property
    def http_status(self) -> int:
        """HTTP status code the API layer reports for this error"""
        return HTTP_STATUS_BY_CODE.get(self.code, 500)

    def to_error_info(self, include_stack_trace: bool = False) -> ErrorInfo:
        """Convert the exception to an ErrorInfo object"""
        stack_trace = None
        if include_stack_trace:
            stack_trace = traceback.format_exc().splitlines()

        details = dict(self.details)
        if self.cause is not None:
            details["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause)
            }

        return ErrorInfo(
            code=self.code,
            message=self.message,
            timestamp=self.timestamp,
            severity=self.severity,
            details=details,
            exception_type=type(self).__name__,
            exception_message=str(self),
            stack_trace=stack_trace,
            context=self.context
        )

    def __str__(self) -> str:
        base_str = f"{self.code.value}: {self.message}"
        if self.details:
            base_str += f" (details: {self.details})"
        if self.cause:
            base_str += f" caused by {type(self.cause).__name__}: {str(self.cause)}"
        return base_str


class ValidationError(ExamCoreError):
    """Error raised when input validation fails, before any state change"""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code=ErrorCode.VALIDATION_ERROR,
            severity=ErrorSeverity.WARNING,
            details=details,
            cause=cause,
            context=context
        )


class NotFoundError(ExamCoreError):
    """Error raised when a requested resource is not found"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.NOT_FOUND_ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code=code,
            severity=ErrorSeverity.WARNING,
            details=details,
            cause=cause,
            context=context
        )


class DefinitionNotFoundError(NotFoundError):
    """Error raised when an assessment definition is not found"""

    def __init__(self, definition_id: str, details: Optional[Dict[str, Any]] = None):
        details = details or {}
        details["definition_id"] = definition_id
        super().__init__(
            message=f"Assessment definition with ID {definition_id} not found",
            code=ErrorCode.DEFINITION_NOT_FOUND,
            details=details
        )


class SourceNotFoundError(NotFoundError):
    """Error raised when the definition to duplicate does not exist"""

    def __init__(self, definition_id: str, details: Optional[Dict[str, Any]] = None):
        details = details or {}
        details["definition_id"] = definition_id
        super().__init__(
            message=f"Source definition with ID {definition_id} not found",
            code=ErrorCode.SOURCE_NOT_FOUND,
            details=details
        )


class SessionNotFoundError(NotFoundError):
    """Error raised when a session is not found"""

    def __init__(self, session_id: str, details: Optional[Dict[str, Any]] = None):
        details = details or {}
        details["session_id"] = session_id
        super().__init__(
            message=f"Session with ID {session_id} not found",
            code=ErrorCode.SESSION_NOT_FOUND,
            details=details
        )


class ResultNotFoundError(NotFoundError):
    """Error raised when no result has been recorded for a session"""

    def __init__(self, session_id: str, details: Optional[Dict[str, Any]] = None):
        details = details or {}
        details["session_id"] = session_id
        super().__init__(
            message=f"No result recorded for session {session_id}",
            code=ErrorCode.RESULT_NOT_FOUND,
            details=details
        )


class UnknownQuestionError(NotFoundError):
    """Error raised when an answer targets a question outside the session's definition"""

    def __init__(self, question_ref_id: str, session_id: str, details: Optional[Dict[str, Any]] = None):
        details = details or {}
        details["question_ref_id"] = question_ref_id
        details["session_id"] = session_id
        super().__init__(
            message=f"Question {question_ref_id} is not part of session {session_id}",
            code=ErrorCode.UNKNOWN_QUESTION,
            details=details
        )


class InvalidTransitionError(ExamCoreError):
    """Error raised when a lifecycle move is not allowed; the session is left untouched"""

    def __init__(
        self,
        session_id: str,
        current_state: str,
        target_state: str,
        code: ErrorCode = ErrorCode.INVALID_TRANSITION,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        details.update({
            "session_id": session_id,
            "current_state": current_state,
            "target_state": target_state
        })
        super().__init__(
            message=message or f"Session {session_id} cannot move from {current_state} to {target_state}",
            code=code,
            severity=ErrorSeverity.WARNING,
            details=details
        )
        self.current_state = current_state
        self.target_state = target_state


class SessionNotActiveError(InvalidTransitionError):
    """Error raised when answers are submitted to a session that is not in progress"""

    def __init__(self, session_id: str, current_state: str):
        super().__init__(
            session_id=session_id,
            current_state=current_state,
            target_state=current_state,
            code=ErrorCode.SESSION_NOT_ACTIVE,
            message=f"Session {session_id} is {current_state}; answers are only accepted while in_progress"
        )


class DuplicateError(ExamCoreError):
    """Error raised by a store when a uniqueness constraint is violated"""

    def __init__(self, resource_type: str, identifier: Any, cause: Optional[Exception] = None):
        super().__init__(
            message=f"Duplicate {resource_type} with identifier {identifier}",
            code=ErrorCode.DUPLICATE_ERROR,
            severity=ErrorSeverity.WARNING,
            details={"resource_type": resource_type, "identifier": identifier},
            cause=cause
        )
        self.resource_type = resource_type
        self.identifier = identifier


class TitleConflictError(ExamCoreError):
    """Error raised when a unique clone title could not be claimed within the retry bound"""

    def __init__(self, base_title: str, attempts: int, last_title: Optional[str] = None):
        super().__init__(
            message=f"Could not claim a unique copy title for '{base_title}' after {attempts} attempts",
            code=ErrorCode.TITLE_CONFLICT,
            severity=ErrorSeverity.WARNING,
            details={"base_title": base_title, "attempts": attempts, "last_title": last_title}
        )


class GradingPendingError(ExamCoreError):
    """
    Raised by a grader when an answer cannot be graded yet.

    Never escapes finalize: the scoring engine records it on the answer as
    ``pending_review`` and the result carries ``has_pending_grading``.
    """

    def __init__(self, question_ref_id: str, reason: str, cause: Optional[Exception] = None):
        super().__init__(
            message=f"Grading pending for question {question_ref_id}: {reason}",
            code=ErrorCode.GRADING_PENDING,
            severity=ErrorSeverity.INFO,
            details={"question_ref_id": question_ref_id, "reason": reason},
            cause=cause
        )
        self.reason = reason


class DatabaseError(ExamCoreError):
    """Error raised when the storage layer fails"""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        details = {}
        if operation is not None:
            details["operation"] = operation
        super().__init__(
            message=f"Database error: {message}",
            code=ErrorCode.DATABASE_ERROR,
            severity=ErrorSeverity.ERROR,
            details=details,
            cause=cause,
            context=context
        )


class ExternalServiceError(ExamCoreError):
    """Error raised by an external collaborator such as the code runner"""

    def __init__(
        self,
        service_name: str,
        message: str,
        code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_ERROR,
        cause: Optional[Exception] = None
    ):
        super().__init__(
            message=f"{service_name}: {message}",
            code=code,
            severity=ErrorSeverity.WARNING,
            details={"service_name": service_name},
            cause=cause
        )
        self.service_name = service_name


def convert_exception(
    exception: Exception,
    default_message: str = "An unexpected error occurred",
    default_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
    default_severity: ErrorSeverity = ErrorSeverity.ERROR,
    context: Optional[Dict[str, Any]] = None
) -> ExamCoreError:
    """
    Convert a standard exception to an ExamCoreError.

    Args:
        exception: The exception to convert
        default_message: Default message if the exception has no message
        default_code: Default error code
        default_severity: Default error severity
        context: Optional additional context

    Returns:
        Converted ExamCoreError
    """
    if isinstance(exception, ExamCoreError):
        if context:
            exception.context.update(context)
        return exception

    message = str(exception) or default_message

    return ExamCoreError(
        message=message,
        code=default_code,
        severity=default_severity,
        cause=exception,
        context=context
    )


def retry(
    max_retries: int = 3,
    retry_delay: float = 1.0,
    backoff_factor: float = 2.0,
    jitter: float = 0.1,
    retry_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    ignore_exceptions: Tuple[Type[Exception], ...] = ()
) -> Callable[[F], F]:
    """
    Retry a coroutine function with exponential backoff.

    Only apply this to idempotent operations such as storage reads; writes
    are never retried blindly.

    Args:
        max_retries: Retries after the first attempt
        retry_delay: Delay before the first retry in seconds
        backoff_factor: Multiplier applied to the delay after each retry
        jitter: Relative random spread added to each delay
        retry_exceptions: Exception types that trigger a retry
        ignore_exceptions: Exception types re-raised at once, even when
            they also match ``retry_exceptions``
    """
    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            attempt = 0
            delay = retry_delay
            while True:
                try:
                    return await func(*args, **kwargs)
                except ignore_exceptions:
                    raise
                except retry_exceptions as e:
                    attempt += 1
                    if attempt > max_retries:
                        raise
                    pause = max(0.0, delay * (1 + random.uniform(-jitter, jitter)))
                    logger.warning(
                        f"Retry {attempt}/{max_retries} for {func.__name__} "
                        f"in {pause:.2f}s after {type(e).__name__}: {e}"
                    )
                    await asyncio.sleep(pause)
                    delay *= backoff_factor

        return cast(F, wrapper)
    return decorator


def error_response(
    error: Union[ExamCoreError, Exception],
    include_details: bool = True,
    include_stack_trace: bool = False
) -> Dict[str, Any]:
    """
    Generate a standardized API error response.

    Args:
        error: The error to generate a response for
        include_details: Whether to include error details
        include_stack_trace: Whether to include stack trace

    Returns:
        Standardized error response dictionary
    """
    if not isinstance(error, ExamCoreError):
        error = convert_exception(error)

    error_info = error.to_error_info(include_stack_trace=include_stack_trace)

    response = {
        "status": "error",
        "code": error_info.code,
        "message": error_info.message
    }

    if include_details and error_info.details:
        response["details"] = error_info.details

    return response


def log_error(
    error: Union[ExamCoreError, Exception],
    level: int = logging.ERROR,
    include_stack_trace: bool = True,
    context: Optional[Dict[str, Any]] = None
) -> None:
    """
    Log an error with standardized format.

    Args:
        error: The error to log
        level: Logging level
        include_stack_trace: Whether to include stack trace
        context: Additional context to include
    """
    if not isinstance(error, ExamCoreError):
        error = convert_exception(error, context=context)
    elif context:
        error.context.update(context)

    message = f"ERROR [{error.code.value}]: {error.message}"

    if error.context:
        context_str = ", ".join(f"{k}={v}" for k, v in error.context.items())
        message += f" (context: {context_str})"

    if error.cause:
        message += f" caused by {type(error.cause).__name__}: {str(error.cause)}"

    if include_stack_trace:
        message += f"\n{traceback.format_exc()}"

    logger.log(level, message)
