"""
Code Runner Interface

Coding answers are executed by an external code runner that reports
pass/fail per test case. The engine never executes submitted programs
itself; it only calls the runner with a timeout and interprets the report.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from examcore.assessments.base.models import CodingProblem
from examcore.common.error_handling import ErrorCode, ExternalServiceError
from examcore.common.logger import app_logger

logger = app_logger.getChild("scoring.code_runner")

SERVICE_NAME = "code_runner"


@dataclass
class CaseOutcome:
    """Pass/fail outcome of one test case."""

    index: int
    passed: bool
    message: Optional[str] = None


@dataclass
class CodeRunReport:
    """Per-case outcomes the runner reported for one submission."""

    outcomes: List[CaseOutcome] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def passed(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.passed)

    @property
    def all_passed(self) -> bool:
        return self.total > 0 and self.passed == self.total

    @classmethod
    def from_flags(cls, flags: List[bool]) -> 'CodeRunReport':
        """Build a report from a plain list of pass/fail flags."""
        return cls(outcomes=[CaseOutcome(index=i, passed=bool(flag)) for i, flag in enumerate(flags)])


class CodeRunner(ABC):
    """
    Abstract interface for the external code runner.

    ``run`` returns ``None`` when no result is available yet, for example
    because execution was queued.
    """

    @abstractmethod
    async def run(self, problem: CodingProblem, source: str) -> Optional[CodeRunReport]:
        """
        Run a submission against the problem's test cases.

        Args:
            problem: The coding problem with its test cases
            source: The submitted program

        Returns:
            The per-case report, or None if no result is available
        """
        pass


class QueuedCodeRunner(CodeRunner):
    """Runner used when no execution backend is configured; every run stays queued."""

    async def run(self, problem: CodingProblem, source: str) -> Optional[CodeRunReport]:
        logger.debug(f"No code runner configured; submission for {problem.id} left queued")
        return None


class StaticCodeRunner(CodeRunner):
    """
    Runner that answers from pre-recorded reports keyed by (problem id, source).

    Useful for development and for replaying reports delivered out of band.
    """

    def __init__(self, reports: Optional[Dict[Tuple[str, str], CodeRunReport]] = None):
        self._reports: Dict[Tuple[str, str], CodeRunReport] = dict(reports or {})

    def record(self, problem_id: str, source: str, report: CodeRunReport) -> None:
        self._reports[(problem_id, source)] = report

    async def run(self, problem: CodingProblem, source: str) -> Optional[CodeRunReport]:
        return self._reports.get((problem.id, source))


async def run_with_timeout(
    runner: CodeRunner,
    problem: CodingProblem,
    source: str,
    timeout: float
) -> Optional[CodeRunReport]:
    """
    Call the runner, bounding the wait.

    Args:
        runner: The code runner to call
        problem: The coding problem
        source: The submitted program
        timeout: Seconds to wait before giving up

    Returns:
        The runner's report, or None if no result is available

    Raises:
        ExternalServiceError: If the runner times out or fails
    """
    try:
        return await asyncio.wait_for(runner.run(problem, source), timeout=timeout)
    except asyncio.TimeoutError as e:
        logger.warning(f"Code runner timed out after {timeout}s for problem {problem.id}")
        raise ExternalServiceError(
            SERVICE_NAME,
            f"timed out after {timeout}s",
            code=ErrorCode.EXTERNAL_SERVICE_TIMEOUT,
            cause=e
        )
    except ExternalServiceError:
        raise
    except Exception as e:
        logger.warning(f"Code runner failed for problem {problem.id}: {e}")
        raise ExternalServiceError(SERVICE_NAME, str(e) or type(e).__name__, cause=e)
