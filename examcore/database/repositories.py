"""
SQLAlchemy Repositories

Async SQLAlchemy implementations of the repository interfaces. Structured
fields are encoded to JSON here and nowhere else. Uniqueness violations
surface as ``DuplicateError``; other storage failures as ``DatabaseError``.

Reads are retried once with backoff on transient connection errors. Writes
are never retried here; ``complete_session`` is idempotent through its
existing-result check instead.
"""

import asyncio
import functools
import json
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from examcore.assessments.base.models import (
    Answer,
    AssessmentDefinition,
    AssessmentQuestionRef,
    CategoryScore,
    CodingProblem,
    CodingTestCase,
    DefinitionKind,
    FreeFormQuestion,
    GradingStatus,
    McqQuestion,
    QuestionKind,
    QuestionResult,
    Result,
    Session,
    SessionState
)
from examcore.assessments.base.repositories import (
    DefinitionRepository,
    QuestionContent,
    QuestionContentRepository,
    SessionRepository,
    TITLE_RESOURCE
)
from examcore.common.config import get_config
from examcore.common.error_handling import (
    DatabaseError,
    DefinitionNotFoundError,
    DuplicateError,
    ExamCoreError,
    retry
)
from examcore.common.logger import app_logger
from examcore.common.utils import serialize_datetime
from examcore.database.models import (
    AnswerRecord,
    AssessmentDefinitionRecord,
    QuestionContentRecord,
    QuestionRefRecord,
    ResultRecord,
    SessionRecord
)

logger = app_logger.getChild("database.repositories")

TRANSIENT_ERRORS = (OperationalError, InterfaceError, ConnectionError, asyncio.TimeoutError)

_db_config = get_config().database

read_retry = retry(
    max_retries=_db_config.read_retries,
    retry_delay=_db_config.read_retry_delay,
    retry_exceptions=TRANSIENT_ERRORS,
    ignore_exceptions=(ExamCoreError,)
)


def storage_operation(operation: str) -> Callable:
    """Translate SQLAlchemy failures of an operation into DatabaseError."""
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except ExamCoreError:
                raise
            except SQLAlchemyError as e:
                raise DatabaseError(str(e), operation=operation, cause=e)
        return wrapper
    return decorator


def _dumps(value: Any) -> str:
    return json.dumps(value, default=serialize_datetime)


def _loads(value: Optional[str]) -> Any:
    return json.loads(value) if value is not None else None


# Definitions

def _ref_record(ref: AssessmentQuestionRef, definition_id: str) -> QuestionRefRecord:
    return QuestionRefRecord(
        id=ref.id,
        definition_id=definition_id,
        question_id=ref.question_id,
        kind=ref.kind.value,
        points=ref.points,
        position=ref.order,
        time_limit_seconds=ref.time_limit_seconds,
        category=ref.category
    )


def _apply_definition(record: AssessmentDefinitionRecord, definition: AssessmentDefinition) -> None:
    record.title = definition.title
    record.description = definition.description
    record.kind = definition.kind.value
    record.category = definition.category
    record.duration_minutes = definition.duration_minutes
    record.passing_score_percent = definition.passing_score_percent
    record.total_questions = definition.total_questions
    record.is_active = definition.is_active
    record.is_public = definition.is_public
    record.is_deleted = definition.is_deleted
    record.created_by = definition.created_by
    record.created_at = definition.created_at
    record.updated_at = definition.updated_at


def _definition_from_records(
    record: AssessmentDefinitionRecord,
    refs: Iterable[QuestionRefRecord]
) -> AssessmentDefinition:
    return AssessmentDefinition(
        id=record.id,
        title=record.title,
        description=record.description,
        kind=DefinitionKind(record.kind),
        category=record.category,
        duration_minutes=record.duration_minutes,
        passing_score_percent=record.passing_score_percent,
        is_active=record.is_active,
        is_public=record.is_public,
        is_deleted=record.is_deleted,
        created_by=record.created_by,
        created_at=record.created_at,
        updated_at=record.updated_at,
        questions=[
            AssessmentQuestionRef(
                id=ref.id,
                question_id=ref.question_id,
                kind=QuestionKind(ref.kind),
                points=ref.points,
                order=ref.position,
                time_limit_seconds=ref.time_limit_seconds,
                category=ref.category
            )
            for ref in refs
        ]
    )


def _duplicate_from_integrity(error: IntegrityError, definition: AssessmentDefinition) -> DuplicateError:
    message = str(error.orig)
    if "question_refs" in message:
        return DuplicateError("question_ref", definition.id, cause=error)
    if "title" in message:
        return DuplicateError(TITLE_RESOURCE, definition.title, cause=error)
    return DuplicateError("definition", definition.id, cause=error)


class SqlDefinitionRepository(DefinitionRepository):
    """Definition store backed by SQLAlchemy."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    @storage_operation("get_definition")
    @read_retry
    async def get_by_id(self, definition_id: str) -> Optional[AssessmentDefinition]:
        async with self.session_factory() as db:
            record = await db.get(AssessmentDefinitionRecord, definition_id)
            if record is None or record.is_deleted:
                return None
            refs = (await db.execute(
                select(QuestionRefRecord)
                .where(QuestionRefRecord.definition_id == definition_id)
                .order_by(QuestionRefRecord.position)
            )).scalars().all()
            return _definition_from_records(record, refs)

    @storage_operation("create_definition")
    async def create(self, definition: AssessmentDefinition) -> AssessmentDefinition:
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    record = AssessmentDefinitionRecord(id=definition.id)
                    _apply_definition(record, definition)
                    db.add(record)
                    await db.flush()
                    db.add_all([_ref_record(ref, definition.id) for ref in definition.questions])
        except IntegrityError as e:
            raise _duplicate_from_integrity(e, definition)

        logger.debug(f"Stored definition {definition.id} titled '{definition.title}'")
        return definition

    @storage_operation("update_definition")
    async def update(self, definition: AssessmentDefinition) -> AssessmentDefinition:
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    record = await db.get(AssessmentDefinitionRecord, definition.id)
                    if record is None or record.is_deleted:
                        raise DefinitionNotFoundError(definition.id)
                    _apply_definition(record, definition)
                    await db.execute(
                        delete(QuestionRefRecord).where(QuestionRefRecord.definition_id == definition.id)
                    )
                    await db.flush()
                    db.add_all([_ref_record(ref, definition.id) for ref in definition.questions])
        except IntegrityError as e:
            raise _duplicate_from_integrity(e, definition)
        return definition

    @storage_operation("delete_definition")
    async def delete(self, definition_id: str) -> bool:
        async with self.session_factory() as db:
            async with db.begin():
                record = await db.get(AssessmentDefinitionRecord, definition_id)
                if record is None or record.is_deleted:
                    return False
                record.is_deleted = True
        return True

    @storage_operation("list_titles")
    @read_retry
    async def list_titles(self, prefix: Optional[str] = None) -> List[str]:
        query = select(AssessmentDefinitionRecord.title).where(
            AssessmentDefinitionRecord.is_deleted.is_(False)
        )
        if prefix is not None:
            query = query.where(AssessmentDefinitionRecord.title.startswith(prefix, autoescape=True))
        async with self.session_factory() as db:
            return list((await db.execute(query)).scalars().all())

    @storage_operation("title_exists")
    @read_retry
    async def title_exists(self, title: str) -> bool:
        query = select(func.count()).select_from(AssessmentDefinitionRecord).where(
            AssessmentDefinitionRecord.title == title,
            AssessmentDefinitionRecord.is_deleted.is_(False)
        )
        async with self.session_factory() as db:
            return (await db.execute(query)).scalar_one() > 0


# Question content

def _content_payload(content: QuestionContent) -> Dict[str, Any]:
    if isinstance(content, McqQuestion):
        return {"options": content.options, "correct_index": content.correct_index, "text": content.text}
    if isinstance(content, CodingProblem):
        return {
            "language": content.language,
            "title": content.title,
            "test_cases": [
                {"input": case.input, "expected_output": case.expected_output, "hidden": case.hidden}
                for case in content.test_cases
            ],
        }
    return {"prompt": content.prompt, "rubric": content.rubric}


def _content_kind(content: QuestionContent) -> QuestionKind:
    if isinstance(content, McqQuestion):
        return QuestionKind.MULTIPLE_CHOICE
    if isinstance(content, CodingProblem):
        return QuestionKind.CODING
    return QuestionKind.FREE_FORM


def _content_from_payload(kind: QuestionKind, question_id: str, payload: Dict[str, Any]) -> QuestionContent:
    if kind == QuestionKind.MULTIPLE_CHOICE:
        return McqQuestion(
            id=question_id,
            options=list(payload.get("options", [])),
            correct_index=int(payload["correct_index"]),
            text=payload.get("text", "")
        )
    if kind == QuestionKind.CODING:
        return CodingProblem(
            id=question_id,
            language=payload.get("language", "python"),
            title=payload.get("title", ""),
            test_cases=[CodingTestCase(**case) for case in payload.get("test_cases", [])]
        )
    return FreeFormQuestion(id=question_id, prompt=payload.get("prompt", ""), rubric=payload.get("rubric"))


class SqlQuestionContentRepository(QuestionContentRepository):
    """Content catalog backed by SQLAlchemy."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    @storage_operation("get_content")
    @read_retry
    async def get_content(self, kind: QuestionKind, question_id: str) -> Optional[QuestionContent]:
        async with self.session_factory() as db:
            record = await db.get(QuestionContentRecord, (kind.value, question_id))
            if record is None:
                return None
            return _content_from_payload(kind, question_id, _loads(record.payload))

    @storage_operation("add_content")
    async def add(self, content: QuestionContent) -> None:
        """Insert or replace question content."""
        async with self.session_factory() as db:
            async with db.begin():
                await db.merge(QuestionContentRecord(
                    kind=_content_kind(content).value,
                    question_id=content.id,
                    payload=_dumps(_content_payload(content))
                ))


# Sessions and results

def _answer_from_record(record: AnswerRecord) -> Answer:
    return Answer(
        question_ref_id=record.question_ref_id,
        raw_answer=_loads(record.raw_answer),
        time_spent_seconds=record.time_spent_seconds,
        answered_at=record.answered_at,
        grading_status=GradingStatus(record.grading_status),
        is_correct=record.is_correct,
        points_earned=record.points_earned,
        feedback=record.feedback
    )


def _apply_answer(record: AnswerRecord, answer: Answer) -> None:
    record.raw_answer = _dumps(answer.raw_answer) if answer.raw_answer is not None else None
    record.time_spent_seconds = answer.time_spent_seconds
    record.answered_at = answer.answered_at
    record.grading_status = answer.grading_status.value
    record.is_correct = answer.is_correct
    record.points_earned = answer.points_earned
    record.feedback = answer.feedback


def _session_from_records(record: SessionRecord, answers: Iterable[AnswerRecord]) -> Session:
    return Session(
        id=record.id,
        user_id=record.user_id,
        definition_id=record.definition_id,
        state=SessionState(record.state),
        questions=[AssessmentQuestionRef.from_dict(item) for item in _loads(record.questions)],
        max_score=record.max_score,
        passing_score_percent=record.passing_score_percent,
        default_category=record.default_category,
        scheduled_at=record.scheduled_at,
        start_time=record.start_time,
        end_time=record.end_time,
        elapsed_seconds=record.elapsed_seconds,
        segment_started_at=record.segment_started_at,
        last_question_index=record.last_question_index,
        answers={answer.question_ref_id: _answer_from_record(answer) for answer in answers},
        version=record.version,
        created_at=record.created_at,
        updated_at=record.updated_at
    )


def _result_record(result: Result) -> ResultRecord:
    return ResultRecord(
        id=result.id,
        session_id=result.session_id,
        user_id=result.user_id,
        definition_id=result.definition_id,
        total_score=result.total_score,
        max_score=result.max_score,
        percentage=result.percentage,
        graded_percentage=result.graded_percentage,
        passed=result.passed,
        time_spent_seconds=result.time_spent_seconds,
        time_clamped=result.time_clamped,
        has_pending_grading=result.has_pending_grading,
        completed_at=result.completed_at,
        category_scores=_dumps({name: score.to_dict() for name, score in result.category_scores.items()}),
        question_results=_dumps([item.to_dict() for item in result.question_results])
    )


def _result_from_record(record: ResultRecord) -> Result:
    return Result(
        id=record.id,
        session_id=record.session_id,
        user_id=record.user_id,
        definition_id=record.definition_id,
        total_score=record.total_score,
        max_score=record.max_score,
        percentage=record.percentage,
        graded_percentage=record.graded_percentage,
        passed=record.passed,
        time_spent_seconds=record.time_spent_seconds,
        time_clamped=record.time_clamped,
        has_pending_grading=record.has_pending_grading,
        completed_at=record.completed_at,
        category_scores={
            name: CategoryScore(**score) for name, score in _loads(record.category_scores).items()
        },
        question_results=[QuestionResult.from_dict(item) for item in _loads(record.question_results)]
    )


class SqlSessionRepository(SessionRepository):
    """Session and result store backed by SQLAlchemy."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    async def _load(self, db, records: List[SessionRecord]) -> List[Session]:
        if not records:
            return []
        answers = (await db.execute(
            select(AnswerRecord).where(AnswerRecord.session_id.in_([r.id for r in records]))
        )).scalars().all()
        by_session: Dict[str, List[AnswerRecord]] = {}
        for answer in answers:
            by_session.setdefault(answer.session_id, []).append(answer)
        return [_session_from_records(r, by_session.get(r.id, [])) for r in records]

    async def _write(self, db, session: Session) -> None:
        record = await db.get(SessionRecord, session.id)
        if record is None:
            record = SessionRecord(id=session.id)
            db.add(record)
        record.user_id = session.user_id
        record.definition_id = session.definition_id
        record.state = session.state.value
        record.scheduled_at = session.scheduled_at
        record.start_time = session.start_time
        record.end_time = session.end_time
        record.elapsed_seconds = session.elapsed_seconds
        record.segment_started_at = session.segment_started_at
        record.last_question_index = session.last_question_index
        record.max_score = session.max_score
        record.passing_score_percent = session.passing_score_percent
        record.default_category = session.default_category
        record.questions = _dumps([ref.to_dict() for ref in session.questions])
        record.version = session.version
        record.created_at = session.created_at
        record.updated_at = session.updated_at
        await db.flush()

        existing = {
            answer.question_ref_id: answer
            for answer in (await db.execute(
                select(AnswerRecord).where(AnswerRecord.session_id == session.id)
            )).scalars().all()
        }
        for ref_id, answer in session.answers.items():
            answer_record = existing.get(ref_id)
            if answer_record is None:
                answer_record = AnswerRecord(session_id=session.id, question_ref_id=ref_id)
                db.add(answer_record)
            _apply_answer(answer_record, answer)

    @storage_operation("get_session")
    @read_retry
    async def get_by_id(self, session_id: str) -> Optional[Session]:
        async with self.session_factory() as db:
            record = await db.get(SessionRecord, session_id)
            if record is None:
                return None
            return (await self._load(db, [record]))[0]

    @storage_operation("save_session")
    async def save(self, session: Session) -> Session:
        async with self.session_factory() as db:
            async with db.begin():
                await self._write(db, session)
        return session

    @storage_operation("find_resumable_session")
    @read_retry
    async def find_resumable(self, user_id: str, definition_id: str) -> Optional[Session]:
        query = (
            select(SessionRecord)
            .where(
                SessionRecord.user_id == user_id,
                SessionRecord.definition_id == definition_id,
                SessionRecord.state.in_([SessionState.IN_PROGRESS.value, SessionState.PAUSED.value])
            )
            .order_by(SessionRecord.created_at.desc())
            .limit(1)
        )
        async with self.session_factory() as db:
            record = (await db.execute(query)).scalars().first()
            if record is None:
                return None
            return (await self._load(db, [record]))[0]

    @storage_operation("list_sessions")
    @read_retry
    async def list_for_user(
        self,
        user_id: str,
        definition_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[Session]:
        query = select(SessionRecord).where(SessionRecord.user_id == user_id)
        if definition_id is not None:
            query = query.where(SessionRecord.definition_id == definition_id)
        query = query.order_by(SessionRecord.created_at.desc()).limit(limit).offset(offset)
        async with self.session_factory() as db:
            records = list((await db.execute(query)).scalars().all())
            return await self._load(db, records)

    @storage_operation("get_result")
    @read_retry
    async def get_result(self, session_id: str) -> Optional[Result]:
        async with self.session_factory() as db:
            record = (await db.execute(
                select(ResultRecord).where(ResultRecord.session_id == session_id)
            )).scalars().first()
            return _result_from_record(record) if record else None

    @storage_operation("complete_session")
    async def complete_session(self, session: Session, result: Result) -> Result:
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    existing = (await db.execute(
                        select(ResultRecord).where(ResultRecord.session_id == session.id)
                    )).scalars().first()
                    if existing is not None:
                        return _result_from_record(existing)
                    await self._write(db, session)
                    db.add(_result_record(result))
        except IntegrityError:
            # Another process committed a result for this session first
            stored = await self.get_result(session.id)
            if stored is None:
                raise
            logger.info(f"Result for session {session.id} already committed; using stored result")
            return stored
        return result
