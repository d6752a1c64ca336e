"""
Assessment Controllers

This module implements the API layer for the assessment engine: request
models, a controller that turns engine calls into response dictionaries,
and the router endpoints that delegate to it.

Engine errors propagate as ``ExamCoreError`` and are turned into HTTP
responses by the application's exception handlers.
"""

import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel, Field

from examcore.api import APIResponse
from examcore.assessments.base.models import (
    AssessmentDefinition,
    AssessmentQuestionRef,
    DefinitionKind,
    QuestionKind,
    SessionState
)
from examcore.assessments.base.services import AssessmentEngine
from examcore.common.logger import app_logger

logger = app_logger.getChild("assessments.controller")

router = APIRouter()


def as_naive_utc(value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    """Timestamps are stored as naive UTC; convert aware input accordingly."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(datetime.timezone.utc).replace(tzinfo=None)


# Request Models
class QuestionRefPayload(BaseModel):
    question_id: str = Field(..., description="Content catalog identifier")
    kind: QuestionKind = Field(..., description="Question kind")
    points: int = Field(..., description="Points available")
    order: int = Field(0, description="Position within the definition")
    time_limit_seconds: Optional[int] = Field(None, description="Per-question time limit")
    category: Optional[str] = Field(None, description="Category override")


class CreateDefinitionRequest(BaseModel):
    title: str
    description: str = ""
    kind: DefinitionKind = DefinitionKind.EXAM
    category: str = "general"
    duration_minutes: Optional[int] = None
    passing_score_percent: float = 60.0
    is_active: bool = True
    is_public: bool = False
    created_by: Optional[str] = None
    questions: List[QuestionRefPayload] = Field(default_factory=list)


class DuplicateDefinitionRequest(BaseModel):
    created_by: Optional[str] = Field(None, description="Author of the copy")


class CreateSessionRequest(BaseModel):
    user_id: str = Field(..., description="User taking the assessment")
    definition_id: str = Field(..., description="Definition to take")
    scheduled_at: Optional[datetime.datetime] = Field(None, description="Planned start; omit to start now")


class ResumeSessionRequest(BaseModel):
    user_id: str
    definition_id: str


class RecordAnswerRequest(BaseModel):
    answer: Any = Field(None, description="Raw answer as submitted")
    time_spent_seconds: int = Field(0, description="Seconds spent on the question")
    current_question_index: Optional[int] = Field(None, description="Position to resume from")


class TransitionRequest(BaseModel):
    target_state: SessionState
    end_time: Optional[datetime.datetime] = Field(None, description="Used when completing")


class CompleteSessionRequest(BaseModel):
    end_time: Optional[datetime.datetime] = None


class AssessmentController:
    """Adapts engine operations to API responses."""

    def __init__(self, engine: AssessmentEngine):
        self._engine = engine

    @property
    def service(self) -> AssessmentEngine:
        return self._engine

    async def create_definition(self, request: CreateDefinitionRequest) -> Dict[str, Any]:
        definition = AssessmentDefinition(
            title=request.title,
            description=request.description,
            kind=request.kind,
            category=request.category,
            duration_minutes=request.duration_minutes,
            passing_score_percent=request.passing_score_percent,
            is_active=request.is_active,
            is_public=request.is_public,
            created_by=request.created_by,
            questions=[
                AssessmentQuestionRef(
                    question_id=item.question_id,
                    kind=item.kind,
                    points=item.points,
                    order=item.order,
                    time_limit_seconds=item.time_limit_seconds,
                    category=item.category
                )
                for item in request.questions
            ]
        )
        stored = await self.service.create_definition(definition)
        return APIResponse.success(stored.to_dict(), "Definition created")

    async def get_definition(self, definition_id: str) -> Dict[str, Any]:
        definition = await self.service.get_definition(definition_id)
        return APIResponse.success(definition.to_dict())

    async def duplicate_definition(self, definition_id: str, created_by: Optional[str]) -> Dict[str, Any]:
        clone = await self.service.duplicate_definition(definition_id, created_by=created_by)
        return APIResponse.success(clone.to_dict(), "Definition duplicated")

    async def create_session(self, request: CreateSessionRequest) -> Dict[str, Any]:
        session = await self.service.create_session(
            request.user_id, request.definition_id, as_naive_utc(request.scheduled_at)
        )
        return APIResponse.success(session.to_dict(), "Session created")

    async def resume_or_create_session(self, request: ResumeSessionRequest) -> Dict[str, Any]:
        outcome = await self.service.resume_or_create_session(request.user_id, request.definition_id)
        session = outcome.session.to_dict()
        return APIResponse.success({
            "session": session,
            "created": outcome.created,
            "last_question_index": outcome.session.last_question_index,
            "answers": session["answers"],
        })

    async def get_session(self, session_id: str) -> Dict[str, Any]:
        session = await self.service.get_session(session_id)
        return APIResponse.success(session.to_dict())

    async def list_sessions(
        self,
        user_id: str,
        definition_id: Optional[str],
        limit: int,
        offset: int
    ) -> Dict[str, Any]:
        sessions = await self.service.list_sessions(user_id, definition_id, limit=limit, offset=offset)
        return APIResponse.success([session.to_dict() for session in sessions])

    async def record_answer(
        self,
        session_id: str,
        question_ref_id: str,
        request: RecordAnswerRequest
    ) -> Dict[str, Any]:
        answer = await self.service.record_answer(
            session_id,
            question_ref_id,
            request.answer,
            request.time_spent_seconds,
            current_question_index=request.current_question_index
        )
        return APIResponse.success(answer.to_dict(), "Answer recorded")

    async def transition(self, session_id: str, request: TransitionRequest) -> Dict[str, Any]:
        session = await self.service.transition(session_id, request.target_state, end_time=as_naive_utc(request.end_time))
        return APIResponse.success(session.to_dict(), f"Session is {session.state.value}")

    async def complete_session(self, session_id: str, end_time: Optional[datetime.datetime]) -> Dict[str, Any]:
        result = await self.service.finalize_session(session_id, as_naive_utc(end_time))
        return APIResponse.success(result.to_dict(), "Session completed")

    async def get_result(self, session_id: str) -> Dict[str, Any]:
        result = await self.service.get_result(session_id)
        return APIResponse.success(result.to_dict())


def get_controller(request: Request) -> AssessmentController:
    """Controller bound to the engine created at application startup."""
    return AssessmentController(request.app.state.engine)


# Register routes with the router
@router.post("/definitions", status_code=status.HTTP_201_CREATED)
async def create_definition_endpoint(
    request: CreateDefinitionRequest,
    controller: AssessmentController = Depends(get_controller)
) -> Dict[str, Any]:
    return await controller.create_definition(request)


@router.get("/definitions/{definition_id}")
async def get_definition_endpoint(
    definition_id: str,
    controller: AssessmentController = Depends(get_controller)
) -> Dict[str, Any]:
    return await controller.get_definition(definition_id)


@router.post("/definitions/{definition_id}/duplicate", status_code=status.HTTP_201_CREATED)
async def duplicate_definition_endpoint(
    definition_id: str,
    request: Optional[DuplicateDefinitionRequest] = None,
    controller: AssessmentController = Depends(get_controller)
) -> Dict[str, Any]:
    """Clone a definition under the next free copy title."""
    created_by = request.created_by if request else None
    return await controller.duplicate_definition(definition_id, created_by)


@router.post("/sessions", status_code=status.HTTP_201_CREATED)
async def create_session_endpoint(
    request: CreateSessionRequest,
    controller: AssessmentController = Depends(get_controller)
) -> Dict[str, Any]:
    return await controller.create_session(request)


@router.post("/sessions/resume")
async def resume_session_endpoint(
    request: ResumeSessionRequest,
    controller: AssessmentController = Depends(get_controller)
) -> Dict[str, Any]:
    """Return the user's open session for a definition, creating one if needed."""
    return await controller.resume_or_create_session(request)


@router.get("/sessions")
async def list_sessions_endpoint(
    user_id: str = Query(..., description="Owner of the sessions"),
    definition_id: Optional[str] = Query(None, description="Restrict to one definition"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    controller: AssessmentController = Depends(get_controller)
) -> Dict[str, Any]:
    return await controller.list_sessions(user_id, definition_id, limit, offset)


@router.get("/sessions/{session_id}")
async def get_session_endpoint(
    session_id: str,
    controller: AssessmentController = Depends(get_controller)
) -> Dict[str, Any]:
    return await controller.get_session(session_id)


@router.put("/sessions/{session_id}/answers/{question_ref_id}")
async def record_answer_endpoint(
    session_id: str,
    question_ref_id: str,
    request: RecordAnswerRequest,
    controller: AssessmentController = Depends(get_controller)
) -> Dict[str, Any]:
    return await controller.record_answer(session_id, question_ref_id, request)


@router.post("/sessions/{session_id}/transition")
async def transition_session_endpoint(
    session_id: str,
    request: TransitionRequest,
    controller: AssessmentController = Depends(get_controller)
) -> Dict[str, Any]:
    return await controller.transition(session_id, request)


@router.post("/sessions/{session_id}/complete")
async def complete_session_endpoint(
    session_id: str,
    request: Optional[CompleteSessionRequest] = None,
    controller: AssessmentController = Depends(get_controller)
) -> Dict[str, Any]:
    """Finalize a session; repeated calls return the stored result."""
    end_time = request.end_time if request else None
    return await controller.complete_session(session_id, end_time)


@router.get("/sessions/{session_id}/result")
async def get_result_endpoint(
    session_id: str,
    controller: AssessmentController = Depends(get_controller)
) -> Dict[str, Any]:
    return await controller.get_result(session_id)
