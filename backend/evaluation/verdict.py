"""Turning per-case results into a verdict, and a passing verdict into progress."""

import logging
from typing import Callable, Union

from pydantic import BaseModel

from .models import TestResult, TurtleTestResult

logger = logging.getLogger(__name__)


class Verdict(BaseModel):
    all_passed: bool
    first_failure_index: int | None = None
    passed_count: int = 0
    total_count: int = 0
    results: list[Union[TestResult, TurtleTestResult]] = []


def build_verdict(results: list[TestResult] | list[TurtleTestResult]) -> Verdict:
    """Summarize an evaluated run. A run with no results does not pass."""
    first_failure = next((i for i, r in enumerate(results) if not r.passed), None)
    passed_count = sum(1 for r in results if r.passed)
    return Verdict(
        all_passed=bool(results) and first_failure is None,
        first_failure_index=first_failure,
        passed_count=passed_count,
        total_count=len(results),
        results=list(results),
    )


def summarize(verdict: Verdict) -> str:
    return f"{verdict.passed_count} of {verdict.total_count} passed"


class ProgressReporter:
    """Records completed sections and notices when a whole lesson is done.

    ``required_sections`` maps a lesson id to the section ids that must be
    complete for the lesson to count as finished.
    """

    def __init__(self, store, required_sections: Callable[[str], list[str]]):
        self._store = store
        self._required_sections = required_sections
        self._lesson_callbacks: list[Callable[[str], None]] = []

    def on_lesson_complete(self, callback: Callable[[str], None]) -> None:
        self._lesson_callbacks.append(callback)

    def mark_section_completed(self, section_id: str, lesson_id: str) -> None:
        if self._store.mark_section_completed(section_id, lesson_id):
            self._check_lesson(lesson_id)

    def report_if_complete(self, section_id: str, lesson_id: str, verdict: Verdict) -> bool:
        """Record completion iff every case passed. Returns the section's completion state."""
        if verdict.all_passed:
            self.mark_section_completed(section_id, lesson_id)
        return self._store.is_section_complete(section_id, lesson_id)

    def _check_lesson(self, lesson_id: str) -> None:
        required = self._required_sections(lesson_id)
        if not required:
            return
        if all(self._store.is_section_complete(s, lesson_id) for s in required):
            logger.info("Lesson %s complete", lesson_id)
            for callback in self._lesson_callbacks:
                callback(lesson_id)
