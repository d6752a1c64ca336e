"""
Tests for grading and score arithmetic.

These tests cover:
1. Round-half-up arithmetic used for points and percentages
2. The multiple-choice, coding and free-form graders
3. The scoring engine's handling of blank answers and missing content
"""

import asyncio

import pytest

from examcore.assessments.base.models import (
    Answer,
    AssessmentDefinition,
    AssessmentQuestionRef,
    CodingProblem,
    CodingTestCase,
    FreeFormQuestion,
    GradingStatus,
    McqQuestion,
    QuestionKind,
    Session
)
from examcore.assessments.base.memory_repository import MemoryQuestionContentRepository
from examcore.assessments.scoring import (
    CodeRunner,
    CodeRunReport,
    CodingGrader,
    FreeFormGrader,
    GraderRegistry,
    MultipleChoiceGrader,
    QueuedCodeRunner,
    ScoringEngine,
    StaticCodeRunner
)
from examcore.common.config import ScoringConfig
from examcore.common.error_handling import GradingPendingError
from examcore.common.utils import percentage_of, round_half_up, scaled_points

from examcore.tests.factories import catalog

MCQ = McqQuestion(id="mcq-1", options=["a", "b", "c"], correct_index=1)
PROBLEM = CodingProblem(id="code-1", test_cases=[CodingTestCase(input="1", expected_output="2")])
PROMPT = FreeFormQuestion(id="free-1", prompt="Tell me about yourself.")


def ref(kind: QuestionKind, points: int, question_id: str = "q") -> AssessmentQuestionRef:
    return AssessmentQuestionRef(question_id=question_id, kind=kind, points=points)


def answer(raw) -> Answer:
    return Answer(question_ref_id="r", raw_answer=raw)


class SlowRunner(CodeRunner):
    async def run(self, problem, source):
        await asyncio.sleep(5)


class BrokenRunner(CodeRunner):
    async def run(self, problem, source):
        raise RuntimeError("sandbox unavailable")


# Arithmetic

@pytest.mark.parametrize("value,expected", [
    (2.5, 3),
    (0.5, 1),
    (14.5, 15),
    (1.4999, 1),
    (66.66666666666667, 67),
    (0, 0),
])
def test_round_half_up(value, expected):
    assert round_half_up(value) == expected


def test_percentage_of():
    assert percentage_of(3, 5) == 60
    assert percentage_of(1, 3) == 33
    assert percentage_of(2, 3) == 67
    assert percentage_of(0, 0) == 0


def test_scaled_points():
    assert scaled_points(5, 2, 3) == 3
    assert scaled_points(5, 1, 2) == 3
    assert scaled_points(3, 0.5, 1) == 2
    assert scaled_points(4, 1, 0) == 0


# Multiple choice

@pytest.mark.asyncio
@pytest.mark.parametrize("raw,points,correct", [
    (1, 2, True),
    ("1", 2, True),
    (1.0, 2, True),
    (0, 0, False),
    (1.5, 0, False),
    ("1.0", 2, True),
    (" 1 ", 2, True),
    ("1.5", 0, False),
    ("b", 0, False),
    ("inf", 0, False),
    (float("inf"), 0, False),
    (float("-inf"), 0, False),
    (float("nan"), 0, False),
    ([1], 0, False),
])
async def test_mcq_grader(raw, points, correct):
    grade = await MultipleChoiceGrader().grade(ref(QuestionKind.MULTIPLE_CHOICE, 2), answer(raw), MCQ)

    assert grade.points_earned == points
    assert grade.is_correct is correct
    assert grade.grading_status == GradingStatus.GRADED


# Coding

@pytest.mark.asyncio
async def test_coding_grader_partial_credit():
    runner = StaticCodeRunner()
    runner.record("code-1", "solution", CodeRunReport.from_flags([True, True, False]))
    grader = CodingGrader(runner, timeout_seconds=1)

    grade = await grader.grade(ref(QuestionKind.CODING, 5), answer("solution"), PROBLEM)

    assert grade.points_earned == 3
    assert grade.is_correct is False
    assert grade.feedback == "2/3 test cases passed"


@pytest.mark.asyncio
async def test_coding_grader_all_cases_pass():
    runner = StaticCodeRunner()
    runner.record("code-1", "solution", CodeRunReport.from_flags([True, True]))

    grade = await CodingGrader(runner, 1).grade(ref(QuestionKind.CODING, 4), answer("solution"), PROBLEM)

    assert grade.points_earned == 4
    assert grade.is_correct is True


@pytest.mark.asyncio
@pytest.mark.parametrize("runner", [
    QueuedCodeRunner(),
    SlowRunner(),
    BrokenRunner(),
    StaticCodeRunner({("code-1", "solution"): CodeRunReport.from_flags([])}),
])
async def test_coding_grader_pending_without_usable_report(runner):
    grader = CodingGrader(runner, timeout_seconds=0.05)

    with pytest.raises(GradingPendingError):
        await grader.grade(ref(QuestionKind.CODING, 5), answer("solution"), PROBLEM)


# Free form

@pytest.mark.asyncio
async def test_free_form_partial_credit():
    grade = await FreeFormGrader(0.5).grade(ref(QuestionKind.FREE_FORM, 3), answer("I led a team"), PROMPT)

    assert grade.points_earned == 2
    assert grade.is_correct is False


@pytest.mark.asyncio
async def test_free_form_full_credit_is_correct():
    grade = await FreeFormGrader(1.0).grade(ref(QuestionKind.FREE_FORM, 3), answer("I led a team"), PROMPT)

    assert grade.points_earned == 3
    assert grade.is_correct is True


def test_registry_covers_every_kind():
    registry = GraderRegistry.default(ScoringConfig())

    for kind in QuestionKind:
        assert registry.get(kind).kind == kind


def test_registry_unknown_kind():
    with pytest.raises(KeyError):
        GraderRegistry().get(QuestionKind.CODING)


# Scoring engine

def make_session(refs) -> Session:
    definition = AssessmentDefinition(title="Mixed Interview", category="backend", questions=refs)
    return Session.from_definition("user-1", definition)


@pytest.fixture
def scoring_engine():
    runner = StaticCodeRunner()
    runner.record("code-1", "solution", CodeRunReport.from_flags([True, False]))
    return ScoringEngine(
        GraderRegistry.default(ScoringConfig(free_form_credit_ratio=0.5), runner),
        MemoryQuestionContentRepository(catalog())
    )


@pytest.mark.asyncio
async def test_engine_grades_each_kind(scoring_engine):
    session = make_session([
        AssessmentQuestionRef(question_id="mcq-1", kind=QuestionKind.MULTIPLE_CHOICE, points=2, order=0),
        AssessmentQuestionRef(question_id="code-1", kind=QuestionKind.CODING, points=5, order=1),
        AssessmentQuestionRef(question_id="free-1", kind=QuestionKind.FREE_FORM, points=3, order=2),
    ])
    mcq, code, free = session.questions
    session.answers = {
        mcq.id: Answer(mcq.id, 1),
        code.id: Answer(code.id, "solution"),
        free.id: Answer(free.id, "I once mediated a dispute."),
    }

    score = await scoring_engine.score(session)

    assert [r.points_earned for r in score.question_results] == [2, 3, 2]
    assert score.total_score == 7
    assert not score.has_pending_grading
    assert score.graded_answers[code.id].feedback == "1/2 test cases passed"
    # Scoring leaves the session untouched
    assert session.answers[mcq.id].grading_status == GradingStatus.UNGRADED


@pytest.mark.asyncio
async def test_engine_blank_and_missing_answers_score_zero(scoring_engine):
    session = make_session([
        AssessmentQuestionRef(question_id="mcq-1", kind=QuestionKind.MULTIPLE_CHOICE, points=2, order=0),
        AssessmentQuestionRef(question_id="free-1", kind=QuestionKind.FREE_FORM, points=3, order=1),
    ])
    _, free = session.questions
    session.answers = {free.id: Answer(free.id, "   ")}

    score = await scoring_engine.score(session)

    assert score.total_score == 0
    assert all(r.grading_status == GradingStatus.GRADED for r in score.question_results)
    assert all(r.feedback == "Not answered" for r in score.question_results)
    assert list(score.graded_answers) == [free.id]


@pytest.mark.asyncio
async def test_engine_leaves_unavailable_content_pending(scoring_engine):
    session = make_session([
        AssessmentQuestionRef(question_id="mcq-404", kind=QuestionKind.MULTIPLE_CHOICE, points=2, order=0),
        AssessmentQuestionRef(question_id="code-1", kind=QuestionKind.CODING, points=5, order=1),
    ])
    missing, code = session.questions
    session.answers = {
        missing.id: Answer(missing.id, 1),
        code.id: Answer(code.id, "not recorded"),
    }

    score = await scoring_engine.score(session)

    assert score.has_pending_grading
    assert score.pending_points == 7
    assert score.total_score == 0
    assert {r.grading_status for r in score.question_results} == {GradingStatus.PENDING_REVIEW}


@pytest.mark.parametrize("raw,blank", [
    (None, True),
    ("  ", True),
    ([], True),
    ({}, True),
    ((), True),
    (0, False),
    ([""], False),
    ("ok", False),
])
def test_answer_blankness(raw, blank):
    assert answer(raw).is_blank is blank


@pytest.mark.asyncio
async def test_engine_gives_no_credit_for_empty_free_form_containers(scoring_engine):
    session = make_session([
        AssessmentQuestionRef(question_id="free-1", kind=QuestionKind.FREE_FORM, points=3, order=0),
    ])
    free = session.questions[0]
    session.answers = {free.id: Answer(free.id, [])}

    score = await scoring_engine.score(session)

    assert score.total_score == 0
    assert score.question_results[0].feedback == "Not answered"


class ExplodingGrader(MultipleChoiceGrader):
    async def grade(self, ref, answer, content):
        raise ArithmeticError("grader bug")


@pytest.mark.asyncio
async def test_engine_leaves_failing_grader_pending(scoring_engine):
    scoring_engine.graders.register(ExplodingGrader())
    session = make_session([
        AssessmentQuestionRef(question_id="mcq-1", kind=QuestionKind.MULTIPLE_CHOICE, points=2, order=0),
        AssessmentQuestionRef(question_id="free-1", kind=QuestionKind.FREE_FORM, points=2, order=1),
    ])
    mcq, free = session.questions
    session.answers = {mcq.id: Answer(mcq.id, 1), free.id: Answer(free.id, "Because it scales.")}

    score = await scoring_engine.score(session)

    first, second = score.question_results
    assert first.grading_status == GradingStatus.PENDING_REVIEW
    assert first.feedback == "Grading failed: ArithmeticError"
    assert second.points_earned == 1
    assert score.pending_points == 2
