"""
Base Assessment Architecture

This package defines the core assessment architecture shared by exams and
interviews: models, repository interfaces, the in-memory repositories, the
service facade and the API controller.
"""

from examcore.assessments.base.models import (
    AssessmentDefinition,
    AssessmentQuestionRef,
    Answer,
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
    QuestionContentRepository,
    SessionRepository
)

__all__ = [
    # Models
    'AssessmentDefinition',
    'AssessmentQuestionRef',
    'Answer',
    'CategoryScore',
    'CodingProblem',
    'CodingTestCase',
    'DefinitionKind',
    'FreeFormQuestion',
    'GradingStatus',
    'McqQuestion',
    'QuestionKind',
    'QuestionResult',
    'Result',
    'Session',
    'SessionState',

    # Repositories
    'DefinitionRepository',
    'QuestionContentRepository',
    'SessionRepository',
]
