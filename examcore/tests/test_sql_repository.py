"""
Tests for the SQLAlchemy repositories.

These tests run against a file-backed SQLite database through aiosqlite and
cover:
1. Definition storage, title uniqueness and soft deletion
2. Question content encoding
3. Session and answer persistence
4. Atomic completion with a stored result
5. A full exam run through the engine on SQL storage
"""

import datetime

import pytest
import pytest_asyncio

from examcore.assessments.base.models import (
    Answer,
    AssessmentDefinition,
    AssessmentQuestionRef,
    CategoryScore,
    GradingStatus,
    QuestionKind,
    Result,
    Session,
    SessionState
)
from examcore.assessments.base.repositories import TITLE_RESOURCE
from examcore.assessments.base.services import AssessmentEngine
from examcore.common.config import AppConfig, DatabaseConfig
from examcore.common.error_handling import DuplicateError
from examcore.database.init_db import close_database, get_session_factory, initialize_database
from examcore.database.repositories import (
    SqlDefinitionRepository,
    SqlQuestionContentRepository,
    SqlSessionRepository
)
from examcore.tests.factories import START, FakeClock, catalog, mcq_definition


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    config = DatabaseConfig(backend="sql", url=f"sqlite+aiosqlite:///{tmp_path / 'examcore.db'}")
    await initialize_database(config)
    yield get_session_factory()
    await close_database()


@pytest.mark.asyncio
async def test_definition_round_trip(session_factory):
    repo = SqlDefinitionRepository(session_factory)
    definition = mcq_definition([2, 3])
    definition.questions[1].category = "algorithms"

    await repo.create(definition)
    loaded = await repo.get_by_id(definition.id)

    assert loaded.title == definition.title
    assert loaded.total_questions == 2
    assert loaded.max_score == 5
    assert [ref.id for ref in loaded.questions] == [ref.id for ref in definition.questions]
    assert loaded.questions[1].category == "algorithms"
    assert loaded.questions[0].definition_id == definition.id


@pytest.mark.asyncio
async def test_title_uniqueness_and_soft_delete(session_factory):
    repo = SqlDefinitionRepository(session_factory)
    first = await repo.create(mcq_definition(title="Networking 101"))

    with pytest.raises(DuplicateError) as exc_info:
        await repo.create(mcq_definition(title="Networking 101"))
    assert exc_info.value.resource_type == TITLE_RESOURCE
    assert await repo.title_exists("Networking 101") is True

    assert await repo.delete(first.id) is True
    assert await repo.get_by_id(first.id) is None
    assert await repo.title_exists("Networking 101") is False

    await repo.create(mcq_definition(title="Networking 101"))
    assert await repo.list_titles() == ["Networking 101"]


@pytest.mark.asyncio
async def test_repeated_question_reference_rejected(session_factory):
    repo = SqlDefinitionRepository(session_factory)
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
    assert await repo.get_by_id(definition.id) is None


@pytest.mark.asyncio
async def test_list_titles_prefix_is_literal(session_factory):
    repo = SqlDefinitionRepository(session_factory)
    await repo.create(mcq_definition(title="100% Python"))
    await repo.create(mcq_definition(title="100 Python Drills"))

    assert await repo.list_titles(prefix="100%") == ["100% Python"]


@pytest.mark.asyncio
async def test_content_round_trip(session_factory):
    repo = SqlQuestionContentRepository(session_factory)
    for item in catalog():
        await repo.add(item)

    mcq = await repo.get_content(QuestionKind.MULTIPLE_CHOICE, "mcq-2")
    problem = await repo.get_content(QuestionKind.CODING, "code-1")
    prompt = await repo.get_content(QuestionKind.FREE_FORM, "free-1")

    assert mcq.correct_index == 1
    assert mcq.options == ["a", "b", "c", "d"]
    assert len(problem.test_cases) == 4
    assert problem.test_cases[3].expected_output == "6"
    assert prompt.prompt.startswith("Describe")
    assert await repo.get_content(QuestionKind.CODING, "mcq-2") is None


@pytest.mark.asyncio
async def test_session_and_answers_round_trip(session_factory):
    definitions = SqlDefinitionRepository(session_factory)
    repo = SqlSessionRepository(session_factory)
    definition = await definitions.create(mcq_definition())

    session = Session.from_definition(
        "user-1", definition, start_time=START, segment_started_at=START, created_at=START, updated_at=START
    )
    first, second, _ = session.questions
    session.answers[first.id] = Answer(first.id, 1, time_spent_seconds=20, answered_at=START)
    await repo.save(session)

    session.answers[first.id] = Answer(first.id, 2, time_spent_seconds=25, answered_at=START)
    session.answers[second.id] = Answer(second.id, ["x", 3], answered_at=START)
    session.last_question_index = 1
    session.version = 2
    await repo.save(session)

    loaded = await repo.get_by_id(session.id)
    assert loaded.to_dict() == session.to_dict()
    assert await repo.get_by_id("missing") is None


@pytest.mark.asyncio
async def test_find_resumable_and_listing(session_factory):
    definitions = SqlDefinitionRepository(session_factory)
    repo = SqlSessionRepository(session_factory)
    definition = await definitions.create(mcq_definition())

    def at(minutes, state):
        created = START + datetime.timedelta(minutes=minutes)
        return Session.from_definition("user-1", definition, state=state, created_at=created, updated_at=created)

    older = await repo.save(at(0, SessionState.PAUSED))
    newer = await repo.save(at(5, SessionState.IN_PROGRESS))
    done = await repo.save(at(10, SessionState.COMPLETED))

    assert (await repo.find_resumable("user-1", definition.id)).id == newer.id
    assert await repo.find_resumable("user-2", definition.id) is None
    listed = await repo.list_for_user("user-1", definition_id=definition.id)
    assert [s.id for s in listed] == [done.id, newer.id, older.id]
    assert [s.id for s in await repo.list_for_user("user-1", limit=1, offset=1)] == [newer.id]


@pytest.mark.asyncio
async def test_complete_session_is_atomic_and_idempotent(session_factory):
    definitions = SqlDefinitionRepository(session_factory)
    repo = SqlSessionRepository(session_factory)
    definition = await definitions.create(mcq_definition())
    session = await repo.save(Session.from_definition("user-1", definition, start_time=START))

    session.state = SessionState.COMPLETED
    session.end_time = START + datetime.timedelta(minutes=5)
    result = Result(
        session_id=session.id,
        user_id="user-1",
        definition_id=definition.id,
        total_score=3,
        max_score=5,
        percentage=60,
        graded_percentage=60,
        passed=True,
        time_spent_seconds=300,
        completed_at=session.end_time,
        category_scores={"python": CategoryScore(earned=3, total=5, percentage=60)}
    )

    stored = await repo.complete_session(session, result)
    again = await repo.complete_session(session, Result(**{**result.__dict__, "id": "other", "total_score": 5}))

    assert again.to_dict() == stored.to_dict()
    assert (await repo.get_result(session.id)).category_scores["python"].percentage == 60
    assert (await repo.get_by_id(session.id)).state == SessionState.COMPLETED


@pytest.mark.asyncio
async def test_engine_runs_exam_on_sql_storage(session_factory):
    contents = SqlQuestionContentRepository(session_factory)
    for item in catalog():
        await contents.add(item)
    clock = FakeClock()
    engine = AssessmentEngine(
        SqlDefinitionRepository(session_factory),
        contents,
        SqlSessionRepository(session_factory),
        config=AppConfig(database=DatabaseConfig(backend="sql")),
        clock=clock
    )

    definition = await engine.create_definition(mcq_definition([2, 2, 1]))
    session = await engine.create_session("user-1", definition.id)
    for ref, choice in zip(session.questions, [1, 0, 1]):
        await engine.record_answer(session.id, ref.id, choice, time_spent_seconds=30)
    clock.advance(240)
    result = await engine.finalize_session(session.id)

    assert (result.total_score, result.percentage, result.passed) == (3, 60, True)
    stored = await engine.get_result(session.id)
    assert stored.to_dict() == result.to_dict()
    completed = await engine.get_session(session.id)
    assert completed.state == SessionState.COMPLETED
    assert completed.answers[session.questions[1].id].grading_status == GradingStatus.GRADED

    clone = await engine.duplicate_definition(definition.id)
    assert clone.title == "Python Basics (Copy 1)"
