"""
Answer Recorder

Records answers as the user works through a session. Each call upserts one
answer (last write wins per question) and persists the partial state, so a
resumed session picks up its answers and position.
"""

import datetime
import math
from typing import Any, Callable, Optional

from examcore.assessments.base.models import Answer, SessionState
from examcore.assessments.base.repositories import SessionRepository
from examcore.assessments.sessions.lifecycle import touch
from examcore.assessments.sessions.locks import KeyedLockRegistry
from examcore.common.error_handling import (
    SessionNotActiveError,
    SessionNotFoundError,
    UnknownQuestionError,
    ValidationError
)
from examcore.common.logger import app_logger

logger = app_logger.getChild("sessions.recorder")


def has_non_finite_number(value: Any) -> bool:
    """Whether ``value`` holds NaN or an infinity at any depth."""
    if isinstance(value, float):
        return not math.isfinite(value)
    if isinstance(value, dict):
        return any(has_non_finite_number(v) for v in value.values())
    if isinstance(value, (list, tuple)):
        return any(has_non_finite_number(v) for v in value)
    return False


class AnswerRecorder:
    """Upserts answers into in-progress sessions."""

    def __init__(
        self,
        sessions: SessionRepository,
        locks: KeyedLockRegistry,
        clock: Optional[Callable[[], datetime.datetime]] = None
    ):
        self.sessions = sessions
        self.locks = locks
        self.clock = clock or datetime.datetime.utcnow

    async def record_answer(
        self,
        session_id: str,
        question_ref_id: str,
        raw_answer: Any,
        time_spent_seconds: int = 0,
        current_question_index: Optional[int] = None
    ) -> Answer:
        """
        Record or replace the answer to one question.

        Args:
            session_id: The session being answered
            question_ref_id: The question reference within the session
            raw_answer: The answer as submitted
            time_spent_seconds: Time the user spent on the question
            current_question_index: Position to resume from; defaults to the
                position of the answered question

        Returns:
            The stored answer

        Raises:
            ValidationError: If the time spent, question index or answer is invalid
            SessionNotFoundError: If the session does not exist
            SessionNotActiveError: If the session is not in progress
            UnknownQuestionError: If the question is not part of the session
        """
        if time_spent_seconds is None or time_spent_seconds < 0:
            raise ValidationError(
                "time_spent_seconds must not be negative",
                details={"time_spent_seconds": time_spent_seconds}
            )
        if has_non_finite_number(raw_answer):
            raise ValidationError(
                "Answer must not contain NaN or infinite numbers",
                details={"question_ref_id": question_ref_id}
            )

        async with self.locks.hold(session_id):
            session = await self.sessions.get_by_id(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            if session.state != SessionState.IN_PROGRESS:
                raise SessionNotActiveError(session_id, session.state.value)

            ref = session.get_question(question_ref_id)
            if ref is None:
                raise UnknownQuestionError(question_ref_id, session_id)

            if current_question_index is None:
                current_question_index = session.questions.index(ref)
            elif not 0 <= current_question_index < len(session.questions):
                raise ValidationError(
                    f"Question index {current_question_index} is out of range",
                    details={"current_question_index": current_question_index,
                             "total_questions": len(session.questions)}
                )

            now = self.clock()
            answer = Answer(
                question_ref_id=question_ref_id,
                raw_answer=raw_answer,
                time_spent_seconds=int(time_spent_seconds),
                answered_at=now
            )
            session.answers[question_ref_id] = answer
            session.last_question_index = current_question_index
            touch(session, now)
            await self.sessions.save(session)

        logger.debug(f"Recorded answer for {question_ref_id} in session {session_id}")
        return answer
