"""
Tests for answer recording.
"""

import asyncio

import pytest

from examcore.common.error_handling import (
    SessionNotActiveError,
    SessionNotFoundError,
    UnknownQuestionError,
    ValidationError
)
from examcore.tests.factories import START, mcq_definition


@pytest.fixture
def definition():
    return mcq_definition()


async def start_session(engine, definition, **kwargs):
    await engine.create_definition(definition)
    return await engine.create_session("user-1", definition.id, **kwargs)


@pytest.mark.asyncio
async def test_record_answer_persists_progress(engine, definition, clock):
    session = await start_session(engine, definition)
    second = session.questions[1]

    clock.advance(45)
    answer = await engine.record_answer(session.id, second.id, 1, time_spent_seconds=40)

    assert answer.answered_at == clock.now
    stored = await engine.get_session(session.id)
    assert stored.answers[second.id].raw_answer == 1
    assert stored.answers[second.id].time_spent_seconds == 40
    assert stored.last_question_index == 1
    assert stored.version == session.version + 1


@pytest.mark.asyncio
async def test_last_write_wins(engine, definition):
    session = await start_session(engine, definition)
    ref = session.questions[0]

    await engine.record_answer(session.id, ref.id, 0)
    await engine.record_answer(session.id, ref.id, 2)

    stored = await engine.get_session(session.id)
    assert len(stored.answers) == 1
    assert stored.answers[ref.id].raw_answer == 2


@pytest.mark.asyncio
async def test_explicit_question_index(engine, definition):
    session = await start_session(engine, definition)
    ref = session.questions[0]

    await engine.record_answer(session.id, ref.id, 1, current_question_index=2)
    assert (await engine.get_session(session.id)).last_question_index == 2

    with pytest.raises(ValidationError):
        await engine.record_answer(session.id, ref.id, 1, current_question_index=3)


@pytest.mark.asyncio
@pytest.mark.parametrize("time_spent", [-1, None])
async def test_invalid_time_spent(engine, definition, time_spent):
    session = await start_session(engine, definition)

    with pytest.raises(ValidationError):
        await engine.record_answer(session.id, session.questions[0].id, 1, time_spent_seconds=time_spent)

    assert (await engine.get_session(session.id)).answers == {}


@pytest.mark.asyncio
async def test_rejects_answers_outside_in_progress(engine, definition):
    scheduled = await start_session(engine, definition, scheduled_at=START)
    with pytest.raises(SessionNotActiveError):
        await engine.record_answer(scheduled.id, scheduled.questions[0].id, 1)

    session = await engine.create_session("user-2", definition.id)
    await engine.transition(session.id, "paused")
    with pytest.raises(SessionNotActiveError):
        await engine.record_answer(session.id, session.questions[0].id, 1)

    await engine.transition(session.id, "in_progress")
    await engine.finalize_session(session.id)
    with pytest.raises(SessionNotActiveError):
        await engine.record_answer(session.id, session.questions[0].id, 1)


@pytest.mark.asyncio
async def test_unknown_question_and_session(engine, definition):
    session = await start_session(engine, definition)

    with pytest.raises(UnknownQuestionError):
        await engine.record_answer(session.id, "not-a-ref", 1)
    with pytest.raises(SessionNotFoundError):
        await engine.record_answer("missing", session.questions[0].id, 1)


@pytest.mark.asyncio
async def test_concurrent_answers_are_all_kept(engine, definition):
    session = await start_session(engine, definition)

    await asyncio.gather(*[
        engine.record_answer(session.id, ref.id, 1, time_spent_seconds=10)
        for ref in session.questions
    ])

    stored = await engine.get_session(session.id)
    assert set(stored.answers) == {ref.id for ref in session.questions}
    assert stored.version == session.version + len(session.questions)


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", [
    float("inf"),
    float("nan"),
    [1, float("-inf")],
    {"choice": float("inf")},
])
async def test_rejects_non_finite_answers(engine, definition, raw):
    session = await start_session(engine, definition)

    with pytest.raises(ValidationError):
        await engine.record_answer(session.id, session.questions[0].id, raw)

    stored = await engine.get_session(session.id)
    assert stored.answers == {}
    assert stored.version == session.version
