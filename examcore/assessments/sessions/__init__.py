"""
Sessions

Lifecycle management, answer recording and the per-key lock registry that
serializes session mutations.
"""

from examcore.assessments.sessions.locks import KeyedLockRegistry
from examcore.assessments.sessions.lifecycle import ResumeOutcome, SessionLifecycleManager
from examcore.assessments.sessions.recorder import AnswerRecorder

__all__ = [
    'KeyedLockRegistry',
    'ResumeOutcome',
    'SessionLifecycleManager',
    'AnswerRecorder',
]
