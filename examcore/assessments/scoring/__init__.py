"""
Scoring

Per-kind graders, the external code runner interface and the scoring engine.
"""

from examcore.assessments.scoring.code_runner import (
    CaseOutcome,
    CodeRunReport,
    CodeRunner,
    QueuedCodeRunner,
    StaticCodeRunner
)
from examcore.assessments.scoring.graders import (
    CodingGrader,
    FreeFormGrader,
    Gradable,
    Grade,
    GraderRegistry,
    MultipleChoiceGrader
)
from examcore.assessments.scoring.engine import ScoringEngine, SessionScore

__all__ = [
    'CaseOutcome',
    'CodeRunReport',
    'CodeRunner',
    'QueuedCodeRunner',
    'StaticCodeRunner',
    'CodingGrader',
    'FreeFormGrader',
    'Gradable',
    'Grade',
    'GraderRegistry',
    'MultipleChoiceGrader',
    'ScoringEngine',
    'SessionScore',
]
