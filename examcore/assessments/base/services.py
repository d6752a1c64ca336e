"""
Assessment Engine Service

This module provides the service facade that coordinates the engine's
components: the session lifecycle manager, the answer recorder, the scoring
engine, the result aggregator and the definition duplicator. Exams and
interviews go through the same code paths.
"""

import datetime
from typing import Any, List, Optional, Union

from examcore.assessments.base.models import (
    Answer,
    AssessmentDefinition,
    Result,
    Session,
    SessionState
)
from examcore.assessments.base.repositories import (
    DefinitionRepository,
    QuestionContentRepository,
    SessionRepository
)
from examcore.assessments.duplication.duplicator import DefinitionDuplicator
from examcore.assessments.results.aggregator import ResultAggregator
from examcore.assessments.scoring.code_runner import CodeRunner
from examcore.assessments.scoring.engine import ScoringEngine
from examcore.assessments.scoring.graders import GraderRegistry
from examcore.assessments.sessions.lifecycle import (
    ResumeOutcome,
    SessionLifecycleManager,
    parse_state
)
from examcore.assessments.sessions.locks import KeyedLockRegistry
from examcore.assessments.sessions.recorder import AnswerRecorder
from examcore.common.config import AppConfig, get_config
from examcore.common.error_handling import DefinitionNotFoundError, InvalidTransitionError
from examcore.common.logger import app_logger
from examcore.common.validation import validate_definition

logger = app_logger.getChild("assessments.service")


class AssessmentEngine:
    """
    Service facade for assessment sessions and scoring.

    All collaborators share one lock registry, so recorder writes,
    transitions and finalize on the same session are serialized.
    """

    def __init__(
        self,
        definitions: DefinitionRepository,
        contents: QuestionContentRepository,
        sessions: SessionRepository,
        code_runner: Optional[CodeRunner] = None,
        config: Optional[AppConfig] = None,
        graders: Optional[GraderRegistry] = None,
        clock=None
    ):
        """
        Initialize the engine.

        Args:
            definitions: Definition store
            contents: Question content catalog
            sessions: Session and result store
            code_runner: External runner for coding answers
            config: Application configuration; defaults to the loaded config
            graders: Grader registry; defaults to the standard graders
            clock: Callable returning the current UTC time
        """
        self.config = config or get_config()
        self.definitions = definitions
        self.contents = contents
        self.sessions = sessions
        self.locks = KeyedLockRegistry()

        self.graders = graders or GraderRegistry.default(self.config.scoring, code_runner)
        self.scoring_engine = ScoringEngine(self.graders, contents)
        self.lifecycle = SessionLifecycleManager(definitions, sessions, self.locks, clock=clock)
        self.recorder = AnswerRecorder(sessions, self.locks, clock=clock)
        self.aggregator = ResultAggregator(sessions, self.scoring_engine, self.locks, clock=clock)
        self.duplicator = DefinitionDuplicator(
            definitions, max_retries=self.config.session.duplication_max_retries
        )

    # Definitions

    async def create_definition(self, definition: AssessmentDefinition) -> AssessmentDefinition:
        """
        Validate and store a new definition.

        Raises:
            ValidationError: If the definition breaks a rule; nothing is stored
            DuplicateError: If the title is already in use
        """
        validate_definition(definition, self.config.session).raise_if_invalid("assessment definition")
        stored = await self.definitions.create(definition)
        logger.info(f"Created definition {stored.id} '{stored.title}' with {stored.total_questions} questions")
        return stored

    async def get_definition(self, definition_id: str) -> AssessmentDefinition:
        definition = await self.definitions.get_by_id(definition_id)
        if definition is None:
            raise DefinitionNotFoundError(definition_id)
        return definition

    async def duplicate_definition(
        self,
        definition_id: str,
        created_by: Optional[str] = None
    ) -> AssessmentDefinition:
        """Clone a definition under the next free ``(Copy <n>)`` title."""
        return await self.duplicator.duplicate(definition_id, created_by=created_by)

    # Sessions

    async def create_session(
        self,
        user_id: str,
        definition_id: str,
        scheduled_at: Optional[datetime.datetime] = None
    ) -> Session:
        return await self.lifecycle.create(user_id, definition_id, scheduled_at)

    async def resume_or_create_session(self, user_id: str, definition_id: str) -> ResumeOutcome:
        return await self.lifecycle.resume_or_create(user_id, definition_id)

    async def get_session(self, session_id: str) -> Session:
        return await self.lifecycle.get_session(session_id)

    async def list_sessions(
        self,
        user_id: str,
        definition_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[Session]:
        return await self.lifecycle.list_sessions(user_id, definition_id, limit=limit, offset=offset)

    async def transition(
        self,
        session_id: str,
        target: Union[str, SessionState],
        end_time: Optional[datetime.datetime] = None
    ) -> Session:
        """
        Move a session to a new state.

        A move to ``completed`` is carried out by finalize. Unlike
        ``finalize_session``, it is rejected for a session that is already
        completed.

        Returns:
            The session after the move

        Raises:
            InvalidTransitionError: If the move is not allowed
        """
        target = parse_state(target)
        if target == SessionState.COMPLETED:
            current = await self.lifecycle.get_session(session_id)
            if current.state == SessionState.COMPLETED:
                raise InvalidTransitionError(session_id, current.state.value, target.value)
            await self.finalize_session(session_id, end_time)
            return await self.lifecycle.get_session(session_id)
        return await self.lifecycle.transition(session_id, target)

    async def record_answer(
        self,
        session_id: str,
        question_ref_id: str,
        raw_answer: Any,
        time_spent_seconds: int = 0,
        current_question_index: Optional[int] = None
    ) -> Answer:
        return await self.recorder.record_answer(
            session_id,
            question_ref_id,
            raw_answer,
            time_spent_seconds,
            current_question_index=current_question_index
        )

    # Results

    async def finalize_session(
        self,
        session_id: str,
        end_time: Optional[datetime.datetime] = None
    ) -> Result:
        return await self.aggregator.finalize(session_id, end_time)

    async def get_result(self, session_id: str) -> Result:
        return await self.aggregator.get_result(session_id)
