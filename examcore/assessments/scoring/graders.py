"""
Question Graders

Every question kind is graded through one ``Gradable`` interface, so exams
and interviews share the same rules. A grader either returns a ``Grade`` or
raises ``GradingPendingError`` when the answer cannot be graded yet.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from examcore.assessments.base.models import (
    Answer,
    AssessmentQuestionRef,
    CodingProblem,
    FreeFormQuestion,
    GradingStatus,
    McqQuestion,
    QuestionKind
)
from examcore.assessments.scoring.code_runner import CodeRunner, QueuedCodeRunner, run_with_timeout
from examcore.common.config import ScoringConfig
from examcore.common.error_handling import ExternalServiceError, GradingPendingError
from examcore.common.logger import app_logger
from examcore.common.utils import scaled_points

logger = app_logger.getChild("scoring.graders")


def option_index(raw: Any) -> Optional[int]:
    """
    Normalize a submitted choice to an option index.

    Integers, integral floats and numeric strings such as ``"1"`` or
    ``"1.0"`` are accepted. Anything else, including non-finite and
    fractional numbers, gives ``None``.
    """
    if isinstance(raw, str):
        try:
            raw = float(raw.strip())
        except ValueError:
            return None
    if isinstance(raw, float):
        if not math.isfinite(raw) or not raw.is_integer():
            return None
        return int(raw)
    if isinstance(raw, int):
        return raw
    return None


@dataclass
class Grade:
    """Outcome of grading one answer."""

    points_earned: int
    is_correct: bool
    grading_status: GradingStatus = GradingStatus.GRADED
    feedback: Optional[str] = None


class Gradable(ABC):
    """
    Grading capability for one question kind.

    Implementations receive an answer that is present and non-blank, along
    with the question content it refers to.
    """

    kind: QuestionKind

    @abstractmethod
    async def grade(self, ref: AssessmentQuestionRef, answer: Answer, content: Any) -> Grade:
        """
        Grade an answer.

        Args:
            ref: The question reference, carrying the points available
            answer: The recorded answer
            content: The question content for ``ref``

        Returns:
            The grade

        Raises:
            GradingPendingError: If the answer cannot be graded yet
        """
        pass


class MultipleChoiceGrader(Gradable):
    """Full points when the chosen option index equals the correct index, else 0."""

    kind = QuestionKind.MULTIPLE_CHOICE

    async def grade(self, ref: AssessmentQuestionRef, answer: Answer, content: McqQuestion) -> Grade:
        chosen = option_index(answer.raw_answer)
        if chosen is None:
            return Grade(points_earned=0, is_correct=False, feedback="Answer is not an option index")

        if chosen == int(content.correct_index):
            return Grade(points_earned=ref.points, is_correct=True)
        return Grade(points_earned=0, is_correct=False)


class CodingGrader(Gradable):
    """
    Points in proportion to the share of passing test cases.

    Correct only when every case passes. When the runner has no result,
    times out or fails, the answer is left pending review.
    """

    kind = QuestionKind.CODING

    def __init__(self, runner: CodeRunner, timeout_seconds: float):
        self.runner = runner
        self.timeout_seconds = timeout_seconds

    async def grade(self, ref: AssessmentQuestionRef, answer: Answer, content: CodingProblem) -> Grade:
        source = str(answer.raw_answer)
        try:
            report = await run_with_timeout(self.runner, content, source, self.timeout_seconds)
        except ExternalServiceError as e:
            raise GradingPendingError(ref.id, e.message, cause=e)

        if report is None:
            raise GradingPendingError(ref.id, "no code runner result available")
        if report.total == 0:
            raise GradingPendingError(ref.id, "code runner reported no test cases")

        points = scaled_points(ref.points, report.passed, report.total)
        return Grade(
            points_earned=points,
            is_correct=report.all_passed,
            feedback=f"{report.passed}/{report.total} test cases passed"
        )


class FreeFormGrader(Gradable):
    """
    Fixed partial credit for any non-empty free-form answer.

    The credit ratio comes from deployment configuration.
    """

    kind = QuestionKind.FREE_FORM

    def __init__(self, credit_ratio: float):
        self.credit_ratio = credit_ratio

    async def grade(self, ref: AssessmentQuestionRef, answer: Answer, content: FreeFormQuestion) -> Grade:
        points = scaled_points(ref.points, self.credit_ratio, 1)
        return Grade(
            points_earned=points,
            is_correct=points == ref.points and ref.points > 0,
            feedback="Partial credit awarded pending review" if points < ref.points else None
        )


class GraderRegistry:
    """Maps each question kind to its grader."""

    def __init__(self):
        self._graders: Dict[QuestionKind, Gradable] = {}

    def register(self, grader: Gradable) -> None:
        self._graders[grader.kind] = grader
        logger.debug(f"Registered grader {type(grader).__name__} for {grader.kind.value}")

    def get(self, kind: QuestionKind) -> Gradable:
        try:
            return self._graders[kind]
        except KeyError:
            raise KeyError(f"No grader registered for question kind {kind.value}")

    @classmethod
    def default(
        cls,
        scoring: ScoringConfig,
        runner: Optional[CodeRunner] = None
    ) -> 'GraderRegistry':
        """
        Build the registry with the standard graders.

        Args:
            scoring: Grading policy
            runner: Code runner for coding questions; coding answers stay
                pending review when omitted

        Returns:
            A registry covering every question kind
        """
        registry = cls()
        registry.register(MultipleChoiceGrader())
        registry.register(CodingGrader(runner or QueuedCodeRunner(), scoring.code_runner_timeout_seconds))
        registry.register(FreeFormGrader(scoring.free_form_credit_ratio))
        return registry
