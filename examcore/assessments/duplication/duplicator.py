"""
Definition Duplicator

Clones an assessment definition under a fresh ``(Copy <n>)`` title. The
scan of existing titles and the insert are not atomic, so the store's
title uniqueness constraint is the arbiter: on a conflict the next number
is computed and the insert retried, up to a bounded number of attempts.
"""

import datetime
from typing import Optional, Set

from examcore.assessments.base.models import AssessmentDefinition, AssessmentQuestionRef
from examcore.assessments.base.repositories import DefinitionRepository, TITLE_RESOURCE
from examcore.assessments.duplication.namer import next_unique_title, root_title
from examcore.common.error_handling import DuplicateError, SourceNotFoundError, TitleConflictError
from examcore.common.logger import app_logger

logger = app_logger.getChild("duplication.duplicator")


def build_clone(
    source: AssessmentDefinition,
    title: str,
    created_by: Optional[str] = None
) -> AssessmentDefinition:
    """
    Copy a definition under a new title.

    Question refs get new ids but keep question, kind, order, points, time
    limit and category. The clone is always inactive and private.
    """
    now = datetime.datetime.utcnow()
    refs = [
        AssessmentQuestionRef(
            question_id=ref.question_id,
            kind=ref.kind,
            points=ref.points,
            order=ref.order,
            time_limit_seconds=ref.time_limit_seconds,
            category=ref.category
        )
        for ref in source.questions
    ]
    return AssessmentDefinition(
        title=title,
        questions=refs,
        passing_score_percent=source.passing_score_percent,
        kind=source.kind,
        category=source.category,
        description=source.description,
        duration_minutes=source.duration_minutes,
        is_active=False,
        is_public=False,
        created_by=created_by or source.created_by,
        created_at=now,
        updated_at=now
    )


class DefinitionDuplicator:
    """Clones definitions with collision-free titles."""

    def __init__(self, definitions: DefinitionRepository, max_retries: int = 5):
        self.definitions = definitions
        self.max_retries = max_retries

    async def duplicate(self, definition_id: str, created_by: Optional[str] = None) -> AssessmentDefinition:
        """
        Duplicate a definition.

        Args:
            definition_id: The definition to copy
            created_by: Author of the copy; defaults to the source's author

        Returns:
            The stored clone

        Raises:
            SourceNotFoundError: If the source definition does not exist
            TitleConflictError: If no free title was claimed within the retry bound
        """
        source = await self.definitions.get_by_id(definition_id)
        if source is None:
            raise SourceNotFoundError(definition_id)

        root = root_title(source.title)
        taken: Set[str] = set(await self.definitions.list_titles(prefix=root))
        title = None

        for attempt in range(1, self.max_retries + 1):
            title = next_unique_title(source.title, taken)

            if await self.definitions.title_exists(title):
                logger.debug(f"Title '{title}' taken before insert (attempt {attempt})")
                taken.add(title)
                continue

            try:
                clone = await self.definitions.create(build_clone(source, title, created_by))
            except DuplicateError as e:
                if e.resource_type != TITLE_RESOURCE:
                    raise
                logger.warning(
                    f"Title '{title}' claimed concurrently while duplicating {definition_id} "
                    f"(attempt {attempt}/{self.max_retries})"
                )
                taken.add(title)
                taken.update(await self.definitions.list_titles(prefix=root))
                continue

            logger.info(f"Duplicated definition {definition_id} as {clone.id} titled '{title}'")
            return clone

        raise TitleConflictError(source.title, self.max_retries, last_title=title)
