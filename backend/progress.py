"""Section completion and coverage-challenge state for the current learner.

Completion is append-only: the first time a section is completed its
timestamp is recorded, and nothing afterwards changes or removes it.
"""

import logging
import time
from pathlib import Path

from pydantic import BaseModel

from config import settings
from evaluation.models import CoverageChallengeState

logger = logging.getLogger(__name__)


class ProgressSnapshot(BaseModel):
    # lesson_id -> section_id -> first completion time (unix seconds)
    completions: dict[str, dict[str, float]] = {}
    # lesson_id -> section_id -> challenge_id -> last submitted state
    coverage: dict[str, dict[str, dict[str, CoverageChallengeState]]] = {}


class ProgressStore:
    def __init__(self, path: str | Path | None = None):
        self._path = Path(path) if path else None
        self._data = ProgressSnapshot()
        if self._path is not None and self._path.exists():
            self._data = ProgressSnapshot.model_validate_json(self._path.read_text(encoding="utf-8"))
            logger.info("Loaded progress from %s", self._path)

    # ------------------------------------------------------------------
    # Section completion
    # ------------------------------------------------------------------

    def mark_section_completed(self, section_id: str, lesson_id: str) -> bool:
        """Record completion. Returns False when the section was already complete."""
        sections = self._data.completions.setdefault(lesson_id, {})
        if section_id in sections:
            return False
        sections[section_id] = time.time()
        logger.info(f"Section {section_id} of lesson {lesson_id} completed")
        self._save()
        return True

    def is_section_complete(self, section_id: str, lesson_id: str) -> bool:
        return section_id in self._data.completions.get(lesson_id, {})

    def completed_at(self, section_id: str, lesson_id: str) -> float | None:
        return self._data.completions.get(lesson_id, {}).get(section_id)

    # ------------------------------------------------------------------
    # Coverage challenge state
    # ------------------------------------------------------------------

    def save_coverage_state(self, lesson_id: str, section_id: str, state: CoverageChallengeState) -> None:
        section = self._data.coverage.setdefault(lesson_id, {}).setdefault(section_id, {})
        section[state.challenge_id] = state
        self._save()

    def get_coverage_state(self, lesson_id: str, section_id: str) -> dict[str, CoverageChallengeState]:
        return dict(self._data.coverage.get(lesson_id, {}).get(section_id, {}))

    def _save(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(self._data.model_dump_json(indent=2), encoding="utf-8")
        tmp.replace(self._path)


_store: ProgressStore | None = None


def get_progress_store() -> ProgressStore:
    global _store
    if _store is None:
        _store = ProgressStore(settings.progress_file or None)
    return _store
