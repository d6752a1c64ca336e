"""
Result Aggregator

Finalizes sessions: grades them, totals the points, builds the category
breakdown and pass/fail verdict, and persists the result together with the
session's move to ``completed`` in one atomic repository call.

Finalize is idempotent. A second call on a completed session returns the
stored result without grading again.
"""

import asyncio
import datetime
from typing import Callable, Dict, List, Optional

from examcore.assessments.base.models import (
    CategoryScore,
    QuestionResult,
    Result,
    Session,
    SessionState
)
from examcore.assessments.base.repositories import SessionRepository
from examcore.assessments.scoring.engine import ScoringEngine
from examcore.assessments.sessions.lifecycle import close_segment, touch
from examcore.assessments.sessions.locks import KeyedLockRegistry
from examcore.common.error_handling import (
    InvalidTransitionError,
    ResultNotFoundError,
    SessionNotFoundError
)
from examcore.common.logger import LoggerAdapter, app_logger
from examcore.common.utils import format_duration, percentage_of

logger = app_logger.getChild("results.aggregator")


def category_breakdown(question_results: List[QuestionResult]) -> Dict[str, CategoryScore]:
    """
    Group earned and available points by category.

    Args:
        question_results: Graded questions carrying their resolved category

    Returns:
        Scores keyed by category name
    """
    categories: Dict[str, CategoryScore] = {}
    for item in question_results:
        score = categories.setdefault(item.category, CategoryScore())
        score.earned += item.points_earned
        score.total += item.points
    for score in categories.values():
        score.percentage = percentage_of(score.earned, score.total)
    return categories


class ResultAggregator:
    """Turns a finished session into its immutable result."""

    def __init__(
        self,
        sessions: SessionRepository,
        scoring_engine: ScoringEngine,
        locks: KeyedLockRegistry,
        clock: Optional[Callable[[], datetime.datetime]] = None
    ):
        self.sessions = sessions
        self.scoring_engine = scoring_engine
        self.locks = locks
        self.clock = clock or datetime.datetime.utcnow

    async def finalize(self, session_id: str, end_time: Optional[datetime.datetime] = None) -> Result:
        """
        Finalize a session.

        Once started, finalize runs to completion even if the caller goes
        away.

        Args:
            session_id: The session to finalize
            end_time: When the attempt ended; defaults to now

        Returns:
            The result stored for the session

        Raises:
            SessionNotFoundError: If the session does not exist
            InvalidTransitionError: If the session was cancelled
        """
        return await asyncio.shield(self._finalize(session_id, end_time))

    async def _finalize(self, session_id: str, end_time: Optional[datetime.datetime]) -> Result:
        async with self.locks.hold(session_id):
            session = await self.sessions.get_by_id(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)

            if session.state == SessionState.COMPLETED:
                stored = await self.sessions.get_result(session_id)
                if stored is None:
                    raise ResultNotFoundError(session_id)
                logger.debug(f"Session {session_id} already completed; returning stored result")
                return stored

            if session.state == SessionState.CANCELLED:
                raise InvalidTransitionError(
                    session_id, session.state.value, SessionState.COMPLETED.value
                )

            end_time = end_time or self.clock()
            result = await self._build_result(session, end_time)
            stored = await self.sessions.complete_session(session, result)

        session_log = LoggerAdapter(logger, {"session_id": session_id, "user_id": stored.user_id})
        session_log.info(
            f"Finalized session {session_id}: {stored.total_score}/{stored.max_score} "
            f"({stored.percentage}%), passed={stored.passed}, "
            f"time {format_duration(stored.time_spent_seconds)}"
            f"{', pending review' if stored.has_pending_grading else ''}"
        )
        return stored

    async def _build_result(self, session: Session, end_time: datetime.datetime) -> Result:
        """Grade the session and move it to completed in memory."""
        start_time = session.start_time or end_time
        raw_seconds = (end_time - start_time).total_seconds()
        time_clamped = raw_seconds < 0
        if time_clamped:
            logger.warning(
                f"End time {end_time.isoformat()} precedes start {start_time.isoformat()} "
                f"for session {session.id}; time spent clamped to 0"
            )
        time_spent = max(0, int(raw_seconds))

        score = await self.scoring_engine.score(session)
        total_score = score.total_score
        graded_max = session.max_score - score.pending_points
        graded_percentage = percentage_of(total_score, graded_max)

        result = Result(
            session_id=session.id,
            user_id=session.user_id,
            definition_id=session.definition_id,
            total_score=total_score,
            max_score=session.max_score,
            percentage=percentage_of(total_score, session.max_score),
            graded_percentage=graded_percentage,
            passed=graded_percentage >= session.passing_score_percent,
            time_spent_seconds=time_spent,
            completed_at=end_time,
            category_scores=category_breakdown(score.question_results),
            question_results=score.question_results,
            time_clamped=time_clamped,
            has_pending_grading=score.has_pending_grading
        )

        if session.start_time is None:
            session.start_time = start_time
        close_segment(session, end_time)
        session.answers.update(score.graded_answers)
        session.state = SessionState.COMPLETED
        session.end_time = end_time
        touch(session, self.clock())
        return result

    async def get_result(self, session_id: str) -> Result:
        """
        Retrieve the result of a completed session.

        Raises:
            ResultNotFoundError: If no result has been recorded
        """
        result = await self.sessions.get_result(session_id)
        if result is None:
            raise ResultNotFoundError(session_id)
        return result
