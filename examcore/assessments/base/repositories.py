"""
Base Assessment Repositories

This module defines the repository interfaces the engine depends on. The
storage engine behind them is an external collaborator; the engine only
relies on get/put/list/delete by key and on the store enforcing title
uniqueness.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Union

from examcore.assessments.base.models import (
    AssessmentDefinition,
    CodingProblem,
    FreeFormQuestion,
    McqQuestion,
    QuestionKind,
    Result,
    Session
)

QuestionContent = Union[McqQuestion, CodingProblem, FreeFormQuestion]

# Resource type carried by DuplicateError when a definition title is taken
TITLE_RESOURCE = "definition_title"


class DefinitionRepository(ABC):
    """
    Repository interface for assessment definitions.

    Implementations must reject a second non-deleted definition with the
    same title by raising ``DuplicateError``; the duplication retry loop
    depends on it.
    """

    @abstractmethod
    async def get_by_id(self, definition_id: str) -> Optional[AssessmentDefinition]:
        """
        Retrieve a non-deleted definition by its ID.

        Args:
            definition_id: The unique identifier for the definition

        Returns:
            The definition if found, None otherwise
        """
        pass

    @abstractmethod
    async def create(self, definition: AssessmentDefinition) -> AssessmentDefinition:
        """
        Insert a new definition with its question refs.

        Args:
            definition: The definition to insert

        Returns:
            The stored definition

        Raises:
            DuplicateError: If the title or a question ref is already taken
        """
        pass

    @abstractmethod
    async def update(self, definition: AssessmentDefinition) -> AssessmentDefinition:
        """
        Replace an existing definition.

        Raises:
            DuplicateError: If the new title collides with another definition
            DefinitionNotFoundError: If the definition does not exist
        """
        pass

    @abstractmethod
    async def delete(self, definition_id: str) -> bool:
        """
        Soft-delete a definition, releasing its title.

        Returns:
            True if a definition was deleted, False otherwise
        """
        pass

    @abstractmethod
    async def list_titles(self, prefix: Optional[str] = None) -> List[str]:
        """
        List titles of non-deleted definitions, optionally filtered by prefix.
        """
        pass

    @abstractmethod
    async def title_exists(self, title: str) -> bool:
        """Check whether a non-deleted definition already uses the title."""
        pass


class QuestionContentRepository(ABC):
    """Read-only access to the content catalog that owns question bodies."""

    @abstractmethod
    async def get_content(self, kind: QuestionKind, question_id: str) -> Optional[QuestionContent]:
        """
        Retrieve question content by kind and ID.

        Args:
            kind: The question kind tag from the reference
            question_id: The content catalog identifier

        Returns:
            The content if found, None otherwise
        """
        pass


class SessionRepository(ABC):
    """
    Repository interface for sessions and their results.

    Sessions are additionally indexed by ``(user_id, definition_id)``.
    """

    @abstractmethod
    async def get_by_id(self, session_id: str) -> Optional[Session]:
        """
        Retrieve a session, including its answer map, by ID.
        """
        pass

    @abstractmethod
    async def save(self, session: Session) -> Session:
        """
        Insert or update a session and its answers.

        Returns:
            The stored session
        """
        pass

    @abstractmethod
    async def find_resumable(self, user_id: str, definition_id: str) -> Optional[Session]:
        """
        Find the most recently created in-progress or paused session
        for a user and definition.
        """
        pass

    @abstractmethod
    async def list_for_user(
        self,
        user_id: str,
        definition_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[Session]:
        """
        List a user's sessions, newest first.
        """
        pass

    @abstractmethod
    async def get_result(self, session_id: str) -> Optional[Result]:
        """
        Retrieve the result recorded for a session.
        """
        pass

    @abstractmethod
    async def complete_session(self, session: Session, result: Result) -> Result:
        """
        Persist the result and the completed session as one atomic unit.

        Either both are stored or neither is. If a result already exists
        for the session, nothing is written and the stored result is
        returned.

        Args:
            session: The session, already moved to ``completed``
            result: The freshly computed result

        Returns:
            The result that is stored for the session
        """
        pass
