"""
Scoring Engine

Grades every question of a session snapshot against the recorded answers.
Scoring has no side effects: it returns graded copies of the answers and
leaves the session untouched, so it can be re-run until the result is
committed.
"""

import copy
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from examcore.assessments.base.models import (
    Answer,
    AssessmentQuestionRef,
    GradingStatus,
    QuestionResult,
    Session
)
from examcore.assessments.base.repositories import QuestionContentRepository
from examcore.assessments.scoring.graders import Grade, GraderRegistry
from examcore.common.error_handling import GradingPendingError
from examcore.common.logger import app_logger, log_execution_time

logger = app_logger.getChild("scoring.engine")


@dataclass
class SessionScore:
    """Graded view of one session."""

    question_results: List[QuestionResult] = field(default_factory=list)
    graded_answers: Dict[str, Answer] = field(default_factory=dict)

    @property
    def total_score(self) -> int:
        return sum(item.points_earned for item in self.question_results)

    @property
    def pending_points(self) -> int:
        """Points of questions awaiting review, excluded from the pass denominator."""
        return sum(
            item.points for item in self.question_results
            if item.grading_status == GradingStatus.PENDING_REVIEW
        )

    @property
    def has_pending_grading(self) -> bool:
        return any(
            item.grading_status == GradingStatus.PENDING_REVIEW
            for item in self.question_results
        )


class ScoringEngine:
    """Grades sessions with one grader per question kind."""

    def __init__(self, graders: GraderRegistry, content_repository: QuestionContentRepository):
        self.graders = graders
        self.content_repository = content_repository

    @log_execution_time(logger)
    async def score(self, session: Session) -> SessionScore:
        """
        Grade every question in the session's snapshot.

        Args:
            session: The session to grade; it is not modified

        Returns:
            Per-question results and graded answer copies
        """
        result = SessionScore()
        for ref in session.questions:
            answer = session.answers.get(ref.id)
            grade = await self._grade_one(ref, answer)

            if answer is not None:
                graded = copy.deepcopy(answer)
                graded.points_earned = grade.points_earned
                graded.is_correct = grade.is_correct
                graded.grading_status = grade.grading_status
                graded.feedback = grade.feedback
                result.graded_answers[ref.id] = graded

            result.question_results.append(QuestionResult(
                question_ref_id=ref.id,
                question_id=ref.question_id,
                kind=ref.kind,
                category=session.category_for(ref),
                points=ref.points,
                points_earned=grade.points_earned,
                is_correct=grade.is_correct,
                grading_status=grade.grading_status,
                raw_answer=answer.raw_answer if answer else None,
                feedback=grade.feedback
            ))

        logger.debug(
            f"Scored session {session.id}: {result.total_score}/{session.max_score}"
            f"{' (pending review)' if result.has_pending_grading else ''}"
        )
        return result

    async def _grade_one(self, ref: AssessmentQuestionRef, answer: Optional[Answer]) -> Grade:
        if answer is None or answer.is_blank:
            return Grade(points_earned=0, is_correct=False, feedback="Not answered")

        content = await self.content_repository.get_content(ref.kind, ref.question_id)
        try:
            if content is None:
                raise GradingPendingError(ref.id, f"content for {ref.kind.value} question {ref.question_id} unavailable")
            return await self.graders.get(ref.kind).grade(ref, answer, content)
        except GradingPendingError as e:
            logger.info(f"Question {ref.id} left pending review: {e.reason}")
            return Grade(
                points_earned=0,
                is_correct=False,
                grading_status=GradingStatus.PENDING_REVIEW,
                feedback=e.reason
            )
        except Exception as e:
            logger.exception(f"Grader for {ref.kind.value} failed on question {ref.id}; leaving it pending review")
            return Grade(
                points_earned=0,
                is_correct=False,
                grading_status=GradingStatus.PENDING_REVIEW,
                feedback=f"Grading failed: {type(e).__name__}"
            )
