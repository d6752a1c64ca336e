"""
Session Lifecycle Manager

Creates, resumes, pauses and cancels sessions. The lifecycle graph is:

    scheduled -> in_progress <-> paused -> completed
    any non-terminal state -> cancelled

``completed`` is only reached through finalize. Every mutation of a session
runs under that session's lock, and a rejected move leaves the session
untouched.
"""

import datetime
from dataclasses import dataclass
from typing import Callable, List, Optional, Union

from examcore.assessments.base.models import (
    Session,
    SessionState,
    can_transition
)
from examcore.assessments.base.repositories import DefinitionRepository, SessionRepository
from examcore.assessments.sessions.locks import KeyedLockRegistry
from examcore.common.error_handling import (
    DefinitionNotFoundError,
    InvalidTransitionError,
    SessionNotFoundError,
    ValidationError
)
from examcore.common.logger import app_logger

logger = app_logger.getChild("sessions.lifecycle")

Clock = Callable[[], datetime.datetime]


def close_segment(session: Session, now: datetime.datetime) -> None:
    """Fold the open activity segment, if any, into ``elapsed_seconds``."""
    if session.segment_started_at is not None:
        seconds = (now - session.segment_started_at).total_seconds()
        session.elapsed_seconds += max(0, int(seconds))
        session.segment_started_at = None


def touch(session: Session, now: datetime.datetime) -> None:
    """Bump the version counter and modification time before a save."""
    session.version += 1
    session.updated_at = now


def parse_state(value: Union[str, SessionState]) -> SessionState:
    if isinstance(value, SessionState):
        return value
    try:
        return SessionState(value)
    except ValueError:
        raise ValidationError(
            f"Unknown session state: {value}",
            details={"state": value, "allowed": [s.value for s in SessionState]}
        )


@dataclass
class ResumeOutcome:
    """Session returned by resume_or_create and whether it was just created."""

    session: Session
    created: bool


class SessionLifecycleManager:
    """Owns session creation and state transitions other than completion."""

    def __init__(
        self,
        definitions: DefinitionRepository,
        sessions: SessionRepository,
        locks: KeyedLockRegistry,
        clock: Optional[Clock] = None
    ):
        self.definitions = definitions
        self.sessions = sessions
        self.locks = locks
        self.clock = clock or datetime.datetime.utcnow

    async def create(
        self,
        user_id: str,
        definition_id: str,
        scheduled_at: Optional[datetime.datetime] = None
    ) -> Session:
        """
        Create a session for a user.

        Without ``scheduled_at`` the session starts immediately; otherwise it
        waits in ``scheduled`` until started.

        Args:
            user_id: The user taking the assessment
            definition_id: The definition to take
            scheduled_at: Optional planned start

        Returns:
            The stored session

        Raises:
            DefinitionNotFoundError: If the definition does not exist
            ValidationError: If the definition is inactive
        """
        if not user_id:
            raise ValidationError("user_id is required")

        definition = await self.definitions.get_by_id(definition_id)
        if definition is None:
            raise DefinitionNotFoundError(definition_id)
        if not definition.is_active:
            raise ValidationError(
                f"Assessment definition {definition_id} is not active",
                details={"definition_id": definition_id}
            )

        now = self.clock()
        if scheduled_at is None:
            session = Session.from_definition(
                user_id,
                definition,
                state=SessionState.IN_PROGRESS,
                start_time=now,
                segment_started_at=now,
                created_at=now,
                updated_at=now
            )
        else:
            session = Session.from_definition(
                user_id,
                definition,
                state=SessionState.SCHEDULED,
                scheduled_at=scheduled_at,
                created_at=now,
                updated_at=now
            )

        stored = await self.sessions.save(session)
        logger.info(
            f"Created session {stored.id} for user {user_id} on definition {definition_id} "
            f"({stored.state.value}, max score {stored.max_score})"
        )
        return stored

    async def resume_or_create(self, user_id: str, definition_id: str) -> ResumeOutcome:
        """
        Return the user's open session for a definition, creating one if none exists.

        Calls for the same (user, definition) pair are serialized so two
        concurrent calls cannot both create a session.
        """
        async with self.locks.hold(("resume", user_id, definition_id)):
            existing = await self.sessions.find_resumable(user_id, definition_id)
            if existing is not None:
                logger.debug(f"Resuming session {existing.id} at question {existing.last_question_index}")
                return ResumeOutcome(session=existing, created=False)
            session = await self.create(user_id, definition_id)
            return ResumeOutcome(session=session, created=True)

    async def transition(self, session_id: str, target: Union[str, SessionState]) -> Session:
        """
        Move a session along the lifecycle graph.

        Args:
            session_id: The session to move
            target: The target state; ``completed`` must go through finalize

        Returns:
            The updated session

        Raises:
            SessionNotFoundError: If the session does not exist
            InvalidTransitionError: If the move is not allowed
        """
        target = parse_state(target)
        async with self.locks.hold(session_id):
            session = await self.sessions.get_by_id(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)

            current = session.state
            if target == SessionState.COMPLETED:
                raise InvalidTransitionError(
                    session_id,
                    current.value,
                    target.value,
                    message=f"Session {session_id} can only be completed through finalize"
                )
            if not can_transition(current, target):
                raise InvalidTransitionError(session_id, current.value, target.value)

            now = self.clock()
            if current == SessionState.SCHEDULED and target == SessionState.IN_PROGRESS:
                session.start_time = now
                session.segment_started_at = now
            elif target == SessionState.IN_PROGRESS:
                session.segment_started_at = now
            elif target == SessionState.PAUSED:
                close_segment(session, now)
            elif target == SessionState.CANCELLED:
                close_segment(session, now)
                session.end_time = now

            session.state = target
            touch(session, now)
            stored = await self.sessions.save(session)

        logger.info(f"Session {session_id} moved from {current.value} to {target.value}")
        return stored

    async def get_session(self, session_id: str) -> Session:
        session = await self.sessions.get_by_id(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def list_sessions(
        self,
        user_id: str,
        definition_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[Session]:
        """List a user's sessions, newest first, optionally for one definition."""
        return await self.sessions.list_for_user(user_id, definition_id, limit=limit, offset=offset)
