"""
Definition Validation Utilities

This module validates assessment definitions before they reach the store:
1. Title length bounds
2. Passing score range
3. Per-question time limits and points
4. Uniqueness of question references within a definition

Validation collects every problem into a ValidationResult so callers can
report all of them at once; nothing is written when validation fails.
"""

import logging
from typing import Any, Dict, List, Optional

from examcore.assessments.base.models import AssessmentDefinition
from examcore.common.config import SessionConfig, get_config
from examcore.common.error_handling import ValidationError

logger = logging.getLogger(__name__)


class ValidationResult:
    """Result of a validation operation"""

    def __init__(self, errors: Optional[List[Dict[str, Any]]] = None):
        """
        Initialize validation result.

        Args:
            errors: List of validation errors
        """
        self.errors = errors or []

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def __bool__(self) -> bool:
        """Allow using the result in boolean context"""
        return self.is_valid

    def add(self, field: str, message: str, value: Any = None) -> None:
        """Record a validation error for a field"""
        self.errors.append({"field": field, "message": message, "value": value})

    def to_dict(self) -> Dict[str, Any]:
        """Convert validation result to a dictionary"""
        return {"is_valid": self.is_valid, "errors": self.errors}

    def raise_if_invalid(self, data_type: str = "data") -> None:
        """
        Raise an exception if validation failed.

        Args:
            data_type: Type of data being validated

        Raises:
            ValidationError: If validation failed
        """
        if not self.is_valid:
            raise ValidationError(
                message=f"Invalid {data_type}: {len(self.errors)} error(s)",
                details={"data_type": data_type, "errors": self.errors}
            )


def validate_definition(
    definition: AssessmentDefinition,
    rules: Optional[SessionConfig] = None
) -> ValidationResult:
    """
    Validate an assessment definition.

    Args:
        definition: Definition to validate
        rules: Bounds to apply; defaults to the loaded session config

    Returns:
        Validation result listing every problem found
    """
    rules = rules or get_config().session
    result = ValidationResult()

    title = (definition.title or "").strip()
    if not rules.title_min_length <= len(title) <= rules.title_max_length:
        result.add(
            "title",
            f"Title must be between {rules.title_min_length} and {rules.title_max_length} characters",
            definition.title
        )

    if not 0 <= definition.passing_score_percent <= 100:
        result.add(
            "passing_score_percent",
            "Passing score must be between 0 and 100",
            definition.passing_score_percent
        )

    if definition.duration_minutes is not None and definition.duration_minutes <= 0:
        result.add("duration_minutes", "Duration must be positive", definition.duration_minutes)

    seen = set()
    for position, ref in enumerate(definition.questions):
        prefix = f"questions[{position}]"
        if ref.points < 0:
            result.add(f"{prefix}.points", "Points must not be negative", ref.points)
        if ref.time_limit_seconds is not None and not (
            rules.question_min_time_seconds <= ref.time_limit_seconds <= rules.question_max_time_seconds
        ):
            result.add(
                f"{prefix}.time_limit_seconds",
                f"Time limit must be between {rules.question_min_time_seconds} "
                f"and {rules.question_max_time_seconds} seconds",
                ref.time_limit_seconds
            )
        key = (ref.question_id, ref.kind)
        if key in seen:
            result.add(
                f"{prefix}.question_id",
                "Question is referenced more than once with the same kind",
                ref.question_id
            )
        seen.add(key)

    if not result:
        logger.debug(f"Definition '{definition.title}' failed validation: {result.errors}")
    return result
