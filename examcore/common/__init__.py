"""
Common Components for the Assessment Engine

This package contains infrastructure shared across the engine.

Key components:
1. Logging - Centralized logging configuration
2. Configuration - Pydantic settings sections
3. Error Handling - Error taxonomy, retry and API error responses
4. Validation - Definition validation before any state change
"""

# Initialize logging
from examcore.common.logger import app_logger

from examcore.common.config import AppConfig, get_config, reload_config

from examcore.common.error_handling import (
    ErrorCode, ErrorSeverity, ExamCoreError, ValidationError, NotFoundError,
    DefinitionNotFoundError, SourceNotFoundError, SessionNotFoundError,
    ResultNotFoundError, UnknownQuestionError, InvalidTransitionError,
    SessionNotActiveError, DuplicateError, TitleConflictError,
    GradingPendingError, DatabaseError, ExternalServiceError,
    retry, error_response, log_error
)

__all__ = [
    'app_logger',
    'AppConfig', 'get_config', 'reload_config',
    'ErrorCode', 'ErrorSeverity', 'ExamCoreError', 'ValidationError', 'NotFoundError',
    'DefinitionNotFoundError', 'SourceNotFoundError', 'SessionNotFoundError',
    'ResultNotFoundError', 'UnknownQuestionError', 'InvalidTransitionError',
    'SessionNotActiveError', 'DuplicateError', 'TitleConflictError',
    'GradingPendingError', 'DatabaseError', 'ExternalServiceError',
    'retry', 'error_response', 'log_error',
]
