"""Shared fixtures for backend tests."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from evaluation.evaluator import SectionEvaluator
from evaluation.verdict import ProgressReporter
from interpreter import InterpreterSession, SubprocessBackend
from lessons import get_lesson_by_id
from main import app, get_evaluator
from progress import ProgressStore


def _required_sections(lesson_id: str) -> list[str]:
    lesson = get_lesson_by_id(lesson_id)
    return lesson.gradable_section_ids if lesson else []


@pytest.fixture(autouse=True)
def _reset_overrides():
    yield
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def session():
    """A real interpreter session backed by local subprocesses."""
    s = InterpreterSession(SubprocessBackend(), timeout_seconds=10.0)
    yield s
    await s.close()


@pytest.fixture
def store():
    return ProgressStore()


@pytest.fixture
def reporter(store):
    return ProgressReporter(store, _required_sections)


@pytest.fixture
def evaluator(session, reporter, store, tmp_path):
    return SectionEvaluator(session, reporter, store, assets_dir=tmp_path)


@pytest_asyncio.fixture
async def client(evaluator):
    """Async HTTP client against the FastAPI app, wired to a fresh evaluator."""
    app.dependency_overrides[get_evaluator] = lambda: evaluator
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac
