"""
Base Assessment Models

This module defines the core data models for the assessment engine:
definitions and their question references, question content, sessions,
answers, and finalized results.
"""

import copy
import uuid
import enum
import datetime
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field


def _new_id() -> str:
    return str(uuid.uuid4())


def _parse_datetime(value: Any) -> Optional[datetime.datetime]:
    if value is None or isinstance(value, datetime.datetime):
        return value
    return datetime.datetime.fromisoformat(value)


def _format_datetime(value: Optional[datetime.datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class DefinitionKind(enum.Enum):
    """Kinds of assessment definition."""
    EXAM = "exam"
    INTERVIEW = "interview"


class QuestionKind(enum.Enum):
    """Kinds of question a definition can reference."""
    MULTIPLE_CHOICE = "mcq"
    CODING = "coding"
    FREE_FORM = "free_form"


class SessionState(enum.Enum):
    """State of an assessment session."""
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.CANCELLED)

    @property
    def is_resumable(self) -> bool:
        return self in (SessionState.IN_PROGRESS, SessionState.PAUSED)


# Lifecycle graph; COMPLETED is only reachable through finalize
ALLOWED_TRANSITIONS: Dict[SessionState, frozenset] = {
    SessionState.SCHEDULED: frozenset({SessionState.IN_PROGRESS, SessionState.CANCELLED}),
    SessionState.IN_PROGRESS: frozenset({
        SessionState.PAUSED, SessionState.COMPLETED, SessionState.CANCELLED
    }),
    SessionState.PAUSED: frozenset({
        SessionState.IN_PROGRESS, SessionState.COMPLETED, SessionState.CANCELLED
    }),
    SessionState.COMPLETED: frozenset(),
    SessionState.CANCELLED: frozenset(),
}


def can_transition(current: SessionState, target: SessionState) -> bool:
    """Check whether the lifecycle graph allows moving from current to target."""
    return target in ALLOWED_TRANSITIONS[current]


class GradingStatus(enum.Enum):
    """Grading state of a recorded answer."""
    UNGRADED = "ungraded"
    GRADED = "graded"
    PENDING_REVIEW = "pending_review"


@dataclass
class AssessmentQuestionRef:
    """
    A definition's reference to a question owned by the content catalog.

    ``category`` overrides the definition's category for breakdowns.
    """

    question_id: str
    kind: QuestionKind
    points: int
    order: int = 0
    time_limit_seconds: Optional[int] = None
    category: Optional[str] = None
    definition_id: str = ""
    id: str = field(default_factory=_new_id)

    def __post_init__(self):
        if isinstance(self.kind, str):
            self.kind = QuestionKind(self.kind)

    @property
    def identity(self) -> tuple:
        """Key that must be unique within one definition."""
        return (self.definition_id, self.question_id, self.kind)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "definition_id": self.definition_id,
            "question_id": self.question_id,
            "kind": self.kind.value,
            "points": self.points,
            "order": self.order,
            "time_limit_seconds": self.time_limit_seconds,
            "category": self.category,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AssessmentQuestionRef':
        return cls(
            id=data["id"],
            definition_id=data.get("definition_id", ""),
            question_id=data["question_id"],
            kind=QuestionKind(data["kind"]),
            points=int(data["points"]),
            order=int(data.get("order", 0)),
            time_limit_seconds=data.get("time_limit_seconds"),
            category=data.get("category"),
        )


@dataclass
class AssessmentDefinition:
    """
    A reusable assessment blueprint (exam or interview template).

    The title is unique across all non-deleted definitions; the store
    enforces it.
    """

    title: str
    questions: List[AssessmentQuestionRef] = field(default_factory=list)
    passing_score_percent: float = 60.0
    kind: DefinitionKind = DefinitionKind.EXAM
    category: str = "general"
    description: str = ""
    duration_minutes: Optional[int] = None
    total_questions: int = 0
    is_active: bool = True
    is_public: bool = False
    is_deleted: bool = False
    created_by: Optional[str] = None
    id: str = field(default_factory=_new_id)
    created_at: datetime.datetime = field(default_factory=datetime.datetime.utcnow)
    updated_at: datetime.datetime = field(default_factory=datetime.datetime.utcnow)

    def __post_init__(self):
        if isinstance(self.kind, str):
            self.kind = DefinitionKind(self.kind)
        self.questions = sorted(self.questions, key=lambda ref: ref.order)
        for ref in self.questions:
            ref.definition_id = self.id
        self.total_questions = len(self.questions)

    @property
    def max_score(self) -> int:
        return sum(ref.points for ref in self.questions)

    def get_question(self, question_ref_id: str) -> Optional[AssessmentQuestionRef]:
        for ref in self.questions:
            if ref.id == question_ref_id:
                return ref
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "kind": self.kind.value,
            "category": self.category,
            "duration_minutes": self.duration_minutes,
            "passing_score_percent": self.passing_score_percent,
            "total_questions": self.total_questions,
            "is_active": self.is_active,
            "is_public": self.is_public,
            "is_deleted": self.is_deleted,
            "created_by": self.created_by,
            "created_at": _format_datetime(self.created_at),
            "updated_at": _format_datetime(self.updated_at),
            "questions": [ref.to_dict() for ref in self.questions],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AssessmentDefinition':
        return cls(
            id=data["id"],
            title=data["title"],
            description=data.get("description", ""),
            kind=DefinitionKind(data.get("kind", DefinitionKind.EXAM.value)),
            category=data.get("category", "general"),
            duration_minutes=data.get("duration_minutes"),
            passing_score_percent=float(data.get("passing_score_percent", 60.0)),
            is_active=data.get("is_active", True),
            is_public=data.get("is_public", False),
            is_deleted=data.get("is_deleted", False),
            created_by=data.get("created_by"),
            created_at=_parse_datetime(data.get("created_at")) or datetime.datetime.utcnow(),
            updated_at=_parse_datetime(data.get("updated_at")) or datetime.datetime.utcnow(),
            questions=[AssessmentQuestionRef.from_dict(q) for q in data.get("questions", [])],
        )


@dataclass
class McqQuestion:
    """Multiple-choice question content."""

    id: str
    options: List[str]
    correct_index: int
    text: str = ""


@dataclass
class CodingTestCase:
    """One input/expected-output pair for a coding problem."""

    input: str
    expected_output: str
    hidden: bool = False


@dataclass
class CodingProblem:
    """Coding problem content."""

    id: str
    test_cases: List[CodingTestCase]
    language: str = "python"
    title: str = ""


@dataclass
class FreeFormQuestion:
    """Free-form or behavioral prompt."""

    id: str
    prompt: str
    rubric: Optional[str] = None


@dataclass
class Answer:
    """
    A user's answer to one question of a session.

    Grading fields stay at their defaults until finalize.
    """

    question_ref_id: str
    raw_answer: Any
    time_spent_seconds: int = 0
    answered_at: datetime.datetime = field(default_factory=datetime.datetime.utcnow)
    grading_status: GradingStatus = GradingStatus.UNGRADED
    is_correct: Optional[bool] = None
    points_earned: int = 0
    feedback: Optional[str] = None

    @property
    def is_blank(self) -> bool:
        if self.raw_answer is None:
            return True
        if isinstance(self.raw_answer, str):
            return not self.raw_answer.strip()
        if isinstance(self.raw_answer, (list, tuple, dict)):
            return not self.raw_answer
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question_ref_id": self.question_ref_id,
            "raw_answer": self.raw_answer,
            "time_spent_seconds": self.time_spent_seconds,
            "answered_at": _format_datetime(self.answered_at),
            "grading_status": self.grading_status.value,
            "is_correct": self.is_correct,
            "points_earned": self.points_earned,
            "feedback": self.feedback,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Answer':
        return cls(
            question_ref_id=data["question_ref_id"],
            raw_answer=data.get("raw_answer"),
            time_spent_seconds=int(data.get("time_spent_seconds", 0)),
            answered_at=_parse_datetime(data.get("answered_at")) or datetime.datetime.utcnow(),
            grading_status=GradingStatus(data.get("grading_status", GradingStatus.UNGRADED.value)),
            is_correct=data.get("is_correct"),
            points_earned=int(data.get("points_earned", 0)),
            feedback=data.get("feedback"),
        )


@dataclass
class Session:
    """
    One user's attempt at a definition.

    ``questions``, ``max_score``, ``passing_score_percent`` and
    ``default_category`` are a snapshot taken at creation, so later edits
    to the definition never change an in-flight session.
    """

    user_id: str
    definition_id: str
    questions: List[AssessmentQuestionRef]
    max_score: int
    passing_score_percent: float
    default_category: str = "general"
    state: SessionState = SessionState.IN_PROGRESS
    scheduled_at: Optional[datetime.datetime] = None
    start_time: Optional[datetime.datetime] = None
    end_time: Optional[datetime.datetime] = None
    elapsed_seconds: int = 0
    segment_started_at: Optional[datetime.datetime] = None
    last_question_index: int = 0
    answers: Dict[str, Answer] = field(default_factory=dict)
    version: int = 0
    id: str = field(default_factory=_new_id)
    created_at: datetime.datetime = field(default_factory=datetime.datetime.utcnow)
    updated_at: datetime.datetime = field(default_factory=datetime.datetime.utcnow)

    def __post_init__(self):
        if isinstance(self.state, str):
            self.state = SessionState(self.state)

    @classmethod
    def from_definition(
        cls,
        user_id: str,
        definition: AssessmentDefinition,
        **kwargs
    ) -> 'Session':
        """Create a session holding a snapshot of the definition's questions."""
        return cls(
            user_id=user_id,
            definition_id=definition.id,
            questions=[copy.deepcopy(ref) for ref in definition.questions],
            max_score=definition.max_score,
            passing_score_percent=definition.passing_score_percent,
            default_category=definition.category,
            **kwargs
        )

    def get_question(self, question_ref_id: str) -> Optional[AssessmentQuestionRef]:
        for ref in self.questions:
            if ref.id == question_ref_id:
                return ref
        return None

    def category_for(self, ref: AssessmentQuestionRef) -> str:
        return ref.category or self.default_category

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "definition_id": self.definition_id,
            "state": self.state.value,
            "questions": [ref.to_dict() for ref in self.questions],
            "max_score": self.max_score,
            "passing_score_percent": self.passing_score_percent,
            "default_category": self.default_category,
            "scheduled_at": _format_datetime(self.scheduled_at),
            "start_time": _format_datetime(self.start_time),
            "end_time": _format_datetime(self.end_time),
            "elapsed_seconds": self.elapsed_seconds,
            "segment_started_at": _format_datetime(self.segment_started_at),
            "last_question_index": self.last_question_index,
            "answers": {ref_id: answer.to_dict() for ref_id, answer in self.answers.items()},
            "version": self.version,
            "created_at": _format_datetime(self.created_at),
            "updated_at": _format_datetime(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Session':
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            definition_id=data["definition_id"],
            state=SessionState(data["state"]),
            questions=[AssessmentQuestionRef.from_dict(q) for q in data.get("questions", [])],
            max_score=int(data["max_score"]),
            passing_score_percent=float(data["passing_score_percent"]),
            default_category=data.get("default_category", "general"),
            scheduled_at=_parse_datetime(data.get("scheduled_at")),
            start_time=_parse_datetime(data.get("start_time")),
            end_time=_parse_datetime(data.get("end_time")),
            elapsed_seconds=int(data.get("elapsed_seconds", 0)),
            segment_started_at=_parse_datetime(data.get("segment_started_at")),
            last_question_index=int(data.get("last_question_index", 0)),
            answers={
                ref_id: Answer.from_dict(answer)
                for ref_id, answer in data.get("answers", {}).items()
            },
            version=int(data.get("version", 0)),
            created_at=_parse_datetime(data.get("created_at")) or datetime.datetime.utcnow(),
            updated_at=_parse_datetime(data.get("updated_at")) or datetime.datetime.utcnow(),
        )


@dataclass
class QuestionResult:
    """Graded outcome of one question, kept on the result."""

    question_ref_id: str
    question_id: str
    kind: QuestionKind
    category: str
    points: int
    points_earned: int
    is_correct: bool
    grading_status: GradingStatus
    raw_answer: Any = None
    feedback: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question_ref_id": self.question_ref_id,
            "question_id": self.question_id,
            "kind": self.kind.value,
            "category": self.category,
            "points": self.points,
            "points_earned": self.points_earned,
            "is_correct": self.is_correct,
            "grading_status": self.grading_status.value,
            "raw_answer": self.raw_answer,
            "feedback": self.feedback,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'QuestionResult':
        return cls(
            question_ref_id=data["question_ref_id"],
            question_id=data["question_id"],
            kind=QuestionKind(data["kind"]),
            category=data["category"],
            points=int(data["points"]),
            points_earned=int(data["points_earned"]),
            is_correct=bool(data["is_correct"]),
            grading_status=GradingStatus(data["grading_status"]),
            raw_answer=data.get("raw_answer"),
            feedback=data.get("feedback"),
        )


@dataclass
class CategoryScore:
    """Earned versus available points for one category."""

    earned: int = 0
    total: int = 0
    percentage: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"earned": self.earned, "total": self.total, "percentage": self.percentage}


@dataclass
class Result:
    """
    Finalized outcome of one completed session.

    Created once at finalize and never mutated afterwards.
    """

    session_id: str
    user_id: str
    definition_id: str
    total_score: int
    max_score: int
    percentage: int
    graded_percentage: int
    passed: bool
    time_spent_seconds: int
    completed_at: datetime.datetime
    category_scores: Dict[str, CategoryScore] = field(default_factory=dict)
    question_results: List[QuestionResult] = field(default_factory=list)
    time_clamped: bool = False
    has_pending_grading: bool = False
    id: str = field(default_factory=_new_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "user_id": self.user_id,
            "definition_id": self.definition_id,
            "total_score": self.total_score,
            "max_score": self.max_score,
            "percentage": self.percentage,
            "graded_percentage": self.graded_percentage,
            "passed": self.passed,
            "time_spent_seconds": self.time_spent_seconds,
            "time_clamped": self.time_clamped,
            "has_pending_grading": self.has_pending_grading,
            "completed_at": _format_datetime(self.completed_at),
            "category_scores": {
                name: score.to_dict() for name, score in self.category_scores.items()
            },
            "question_results": [item.to_dict() for item in self.question_results],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Result':
        return cls(
            id=data["id"],
            session_id=data["session_id"],
            user_id=data["user_id"],
            definition_id=data["definition_id"],
            total_score=int(data["total_score"]),
            max_score=int(data["max_score"]),
            percentage=int(data["percentage"]),
            graded_percentage=int(data.get("graded_percentage", data["percentage"])),
            passed=bool(data["passed"]),
            time_spent_seconds=int(data["time_spent_seconds"]),
            time_clamped=bool(data.get("time_clamped", False)),
            has_pending_grading=bool(data.get("has_pending_grading", False)),
            completed_at=_parse_datetime(data["completed_at"]),
            category_scores={
                name: CategoryScore(**score)
                for name, score in data.get("category_scores", {}).items()
            },
            question_results=[
                QuestionResult.from_dict(item) for item in data.get("question_results", [])
            ],
        )
