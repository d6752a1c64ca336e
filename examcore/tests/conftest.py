"""
Shared fixtures for the assessment engine tests.

Provides a controllable clock, seeded in-memory repositories and an
AssessmentEngine wired to them.
"""

import pytest

from examcore.assessments.base.memory_repository import (
    MemoryDefinitionRepository,
    MemoryQuestionContentRepository,
    MemorySessionRepository
)
from examcore.assessments.base.services import AssessmentEngine
from examcore.assessments.scoring.code_runner import StaticCodeRunner
from examcore.common.config import AppConfig, DatabaseConfig, ScoringConfig
from examcore.tests.factories import FakeClock, catalog


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def app_config():
    return AppConfig(
        database=DatabaseConfig(backend="memory"),
        scoring=ScoringConfig(free_form_credit_ratio=0.5, code_runner_timeout_seconds=0.5)
    )


@pytest.fixture
def definitions():
    return MemoryDefinitionRepository()


@pytest.fixture
def contents():
    return MemoryQuestionContentRepository(catalog())


@pytest.fixture
def sessions():
    return MemorySessionRepository()


@pytest.fixture
def code_runner():
    return StaticCodeRunner()


@pytest.fixture
def engine(definitions, contents, sessions, code_runner, app_config, clock):
    return AssessmentEngine(
        definitions,
        contents,
        sessions,
        code_runner=code_runner,
        config=app_config,
        clock=clock
    )
