"""
Memory Repository Module

In-memory implementations of the repository interfaces for development
and testing. Entities are deep-copied on the way in and out so callers
never share state with the store.
"""

import asyncio
import copy
import logging
from typing import Dict, List, Optional, Tuple

from examcore.assessments.base.models import (
    AssessmentDefinition,
    CodingProblem,
    FreeFormQuestion,
    McqQuestion,
    QuestionKind,
    Result,
    Session
)
from examcore.assessments.base.repositories import (
    DefinitionRepository,
    QuestionContent,
    QuestionContentRepository,
    SessionRepository,
    TITLE_RESOURCE
)
from examcore.common.error_handling import DefinitionNotFoundError, DuplicateError

logger = logging.getLogger(__name__)


class MemoryDefinitionRepository(DefinitionRepository):
    """
    In-memory definition store with a title uniqueness constraint.
    """

    def __init__(self, initial_data: Optional[List[AssessmentDefinition]] = None):
        self._definitions: Dict[str, AssessmentDefinition] = {}
        self._lock = asyncio.Lock()

        if initial_data:
            for definition in initial_data:
                self._definitions[definition.id] = copy.deepcopy(definition)

    def _title_taken(self, title: str, exclude_id: Optional[str] = None) -> bool:
        return any(
            d.title == title and not d.is_deleted and d.id != exclude_id
            for d in self._definitions.values()
        )

    @staticmethod
    def _check_refs(definition: AssessmentDefinition) -> None:
        seen = set()
        for ref in definition.questions:
            if ref.identity in seen:
                raise DuplicateError("question_ref", f"{ref.question_id}/{ref.kind.value}")
            seen.add(ref.identity)

    async def get_by_id(self, definition_id: str) -> Optional[AssessmentDefinition]:
        definition = self._definitions.get(definition_id)
        if definition is None or definition.is_deleted:
            return None
        return copy.deepcopy(definition)

    async def create(self, definition: AssessmentDefinition) -> AssessmentDefinition:
        async with self._lock:
            if definition.id in self._definitions:
                raise DuplicateError("definition", definition.id)
            if self._title_taken(definition.title):
                raise DuplicateError(TITLE_RESOURCE, definition.title)
            self._check_refs(definition)
            self._definitions[definition.id] = copy.deepcopy(definition)
        logger.debug(f"Stored definition {definition.id} titled '{definition.title}'")
        return copy.deepcopy(definition)

    async def update(self, definition: AssessmentDefinition) -> AssessmentDefinition:
        async with self._lock:
            existing = self._definitions.get(definition.id)
            if existing is None or existing.is_deleted:
                raise DefinitionNotFoundError(definition.id)
            if self._title_taken(definition.title, exclude_id=definition.id):
                raise DuplicateError(TITLE_RESOURCE, definition.title)
            self._check_refs(definition)
            self._definitions[definition.id] = copy.deepcopy(definition)
        return copy.deepcopy(definition)

    async def delete(self, definition_id: str) -> bool:
        async with self._lock:
            definition = self._definitions.get(definition_id)
            if definition is None or definition.is_deleted:
                return False
            definition.is_deleted = True
            return True

    async def list_titles(self, prefix: Optional[str] = None) -> List[str]:
        return [
            d.title for d in self._definitions.values()
            if not d.is_deleted and (prefix is None or d.title.startswith(prefix))
        ]

    async def title_exists(self, title: str) -> bool:
        return self._title_taken(title)

    def get_all(self) -> List[AssessmentDefinition]:
        """
        Get all non-deleted definitions.

        Specific to the memory implementation.
        """
        return [copy.deepcopy(d) for d in self._definitions.values() if not d.is_deleted]


class MemoryQuestionContentRepository(QuestionContentRepository):
    """In-memory content catalog keyed by (kind, question id)."""

    _KIND_BY_TYPE = {
        McqQuestion: QuestionKind.MULTIPLE_CHOICE,
        CodingProblem: QuestionKind.CODING,
        FreeFormQuestion: QuestionKind.FREE_FORM,
    }

    def __init__(self, initial_data: Optional[List[QuestionContent]] = None):
        self._content: Dict[Tuple[QuestionKind, str], QuestionContent] = {}
        for item in initial_data or []:
            self.add(item)

    def add(self, content: QuestionContent) -> None:
        """Register question content under the kind matching its type."""
        kind = self._KIND_BY_TYPE[type(content)]
        self._content[(kind, content.id)] = content

    async def get_content(self, kind: QuestionKind, question_id: str) -> Optional[QuestionContent]:
        return self._content.get((kind, question_id))


class MemorySessionRepository(SessionRepository):
    """
    In-memory session and result store.

    ``complete_session`` writes the result and the session under one lock,
    which is the atomic unit finalize relies on.
    """

    def __init__(self):
        self._sessions: Dict[str, Session] = {}
        self._results: Dict[str, Result] = {}
        self._lock = asyncio.Lock()

    async def get_by_id(self, session_id: str) -> Optional[Session]:
        session = self._sessions.get(session_id)
        return copy.deepcopy(session) if session else None

    async def save(self, session: Session) -> Session:
        async with self._lock:
            self._sessions[session.id] = copy.deepcopy(session)
        return copy.deepcopy(session)

    async def find_resumable(self, user_id: str, definition_id: str) -> Optional[Session]:
        candidates = [
            s for s in self._sessions.values()
            if s.user_id == user_id
            and s.definition_id == definition_id
            and s.state.is_resumable
        ]
        if not candidates:
            return None
        latest = max(candidates, key=lambda s: s.created_at)
        return copy.deepcopy(latest)

    async def list_for_user(
        self,
        user_id: str,
        definition_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[Session]:
        sessions = [
            s for s in self._sessions.values()
            if s.user_id == user_id
            and (definition_id is None or s.definition_id == definition_id)
        ]
        sessions.sort(key=lambda s: s.created_at, reverse=True)
        return [copy.deepcopy(s) for s in sessions[offset:offset + limit]]

    async def get_result(self, session_id: str) -> Optional[Result]:
        result = self._results.get(session_id)
        return copy.deepcopy(result) if result else None

    async def complete_session(self, session: Session, result: Result) -> Result:
        async with self._lock:
            existing = self._results.get(session.id)
            if existing is not None:
                return copy.deepcopy(existing)
            self._results[session.id] = copy.deepcopy(result)
            self._sessions[session.id] = copy.deepcopy(session)
        return copy.deepcopy(result)

    def clear(self) -> None:
        """
        Clear all sessions and results.

        Specific to the memory implementation.
        """
        self._sessions.clear()
        self._results.clear()
