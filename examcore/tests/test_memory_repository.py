"""
Tests for the in-memory repositories.
"""

import datetime

import pytest

from examcore.assessments.base.memory_repository import MemoryDefinitionRepository, MemorySessionRepository
from examcore.assessments.base.models import (
    AssessmentDefinition,
    AssessmentQuestionRef,
    QuestionKind,
    Result,
    Session,
    SessionState
)
from examcore.assessments.base.repositories import TITLE_RESOURCE
from examcore.common.error_handling import DefinitionNotFoundError, DuplicateError
from examcore.tests.factories import START, mcq_definition


def make_session(definition, user_id="user-1", state=SessionState.IN_PROGRESS, minutes=0):
    created = START + datetime.timedelta(minutes=minutes)
    return Session.from_definition(user_id, definition, state=state, created_at=created, updated_at=created)


def make_result(session, total=3):
    return Result(
        session_id=session.id,
        user_id=session.user_id,
        definition_id=session.definition_id,
        total_score=total,
        max_score=session.max_score,
        percentage=60,
        graded_percentage=60,
        passed=True,
        time_spent_seconds=120,
        completed_at=START
    )


@pytest.mark.asyncio
async def test_titles_are_unique_among_live_definitions():
    repo = MemoryDefinitionRepository()
    first = await repo.create(mcq_definition(title="Data Structures"))

    with pytest.raises(DuplicateError) as exc_info:
        await repo.create(mcq_definition(title="Data Structures"))
    assert exc_info.value.resource_type == TITLE_RESOURCE

    assert await repo.delete(first.id) is True
    assert await repo.delete(first.id) is False
    assert await repo.get_by_id(first.id) is None
    assert await repo.title_exists("Data Structures") is False
    assert repo.get_all() == []

    second = await repo.create(mcq_definition(title="Data Structures"))
    assert await repo.list_titles(prefix="Data") == ["Data Structures"]
    assert [d.id for d in repo.get_all()] == [second.id]


@pytest.mark.asyncio
async def test_repeated_question_reference_rejected():
    repo = MemoryDefinitionRepository()
    definition = AssessmentDefinition(
        title="Repeated Question",
        questions=[
            AssessmentQuestionRef(question_id="mcq-1", kind=QuestionKind.MULTIPLE_CHOICE, points=1, order=0),
            AssessmentQuestionRef(question_id="mcq-1", kind=QuestionKind.MULTIPLE_CHOICE, points=1, order=1),
        ]
    )

    with pytest.raises(DuplicateError) as exc_info:
        await repo.create(definition)
    assert exc_info.value.resource_type == "question_ref"


@pytest.mark.asyncio
async def test_update_checks_existence_and_title():
    repo = MemoryDefinitionRepository()
    await repo.create(mcq_definition(title="Taken Title"))
    other = await repo.create(mcq_definition(title="Other Title"))

    other.title = "Taken Title"
    with pytest.raises(DuplicateError):
        await repo.update(other)

    with pytest.raises(DefinitionNotFoundError):
        await repo.update(mcq_definition(title="Never Stored"))


@pytest.mark.asyncio
async def test_returned_entities_are_copies():
    repo = MemoryDefinitionRepository()
    stored = await repo.create(mcq_definition())

    stored.title = "Changed Locally"

    assert (await repo.get_by_id(stored.id)).title == "Python Basics"


@pytest.mark.asyncio
async def test_find_resumable_prefers_latest_open_session():
    repo = MemorySessionRepository()
    definition = mcq_definition()
    await repo.save(make_session(definition, minutes=0))
    latest = await repo.save(make_session(definition, state=SessionState.PAUSED, minutes=5))
    await repo.save(make_session(definition, state=SessionState.COMPLETED, minutes=10))
    await repo.save(make_session(definition, user_id="user-2", minutes=15))

    found = await repo.find_resumable("user-1", definition.id)

    assert found.id == latest.id
    assert await repo.find_resumable("user-3", definition.id) is None


@pytest.mark.asyncio
async def test_list_for_user_pages_newest_first():
    repo = MemorySessionRepository()
    definition = mcq_definition()
    saved = [await repo.save(make_session(definition, minutes=m)) for m in range(4)]

    page = await repo.list_for_user("user-1", limit=2, offset=1)

    assert [s.id for s in page] == [saved[2].id, saved[1].id]


@pytest.mark.asyncio
async def test_complete_session_keeps_first_result():
    repo = MemorySessionRepository()
    session = await repo.save(make_session(mcq_definition()))
    session.state = SessionState.COMPLETED

    first = await repo.complete_session(session, make_result(session, total=3))
    second = await repo.complete_session(session, make_result(session, total=5))

    assert second.id == first.id
    assert second.total_score == 3
    assert (await repo.get_by_id(session.id)).state == SessionState.COMPLETED

    repo.clear()
    assert await repo.get_result(session.id) is None
