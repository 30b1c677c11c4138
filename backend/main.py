"""Lesson runner backend: FastAPI application."""

import asyncio
import logging

import sentry_sdk
import uvicorn
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from fastapi import Depends, FastAPI, HTTPException

logger = logging.getLogger(__name__)

# Ensure logger outputs to console
if not logger.handlers:
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)
    logger.setLevel(logging.INFO)
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from config import settings

if settings.sentry_dsn:
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
        ],
        traces_sample_rate=0.1,
        environment=settings.environment,
    )

from evaluation.errors import HarnessStartupError
from evaluation.evaluator import (
    CodeSubmission,
    CoverageReport,
    CoverageSubmission,
    ProgramRun,
    SectionEvaluator,
    TestingReport,
    TurtleReport,
)
from evaluation.verdict import ProgressReporter
from interpreter import get_session
from lessons import (
    CoverageSection,
    Lesson,
    TestingSection,
    TurtleSection,
    get_all_lessons,
    get_lesson_by_id,
)
from progress import get_progress_store

# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------

app = FastAPI(title="Lesson Runner", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


async def _warm_interpreter() -> None:
    try:
        await get_session().initialize()
    except HarnessStartupError as e:
        logger.error(f"Interpreter warm-up failed: {e}")


_warm_task: asyncio.Task | None = None


@app.on_event("startup")
async def _start_interpreter() -> None:
    """Boot the interpreter in the background so the first test run is fast."""
    global _warm_task
    _warm_task = asyncio.create_task(_warm_interpreter())


@app.on_event("shutdown")
async def _stop_interpreter() -> None:
    await get_session().close()


def _required_sections(lesson_id: str) -> list[str]:
    lesson = get_lesson_by_id(lesson_id)
    return lesson.gradable_section_ids if lesson else []


def _log_lesson_complete(lesson_id: str) -> None:
    logger.info(f"All sections of lesson {lesson_id} are complete")


_evaluator: SectionEvaluator | None = None


def get_evaluator() -> SectionEvaluator:
    global _evaluator
    if _evaluator is None:
        store = get_progress_store()
        reporter = ProgressReporter(store, _required_sections)
        reporter.on_lesson_complete(_log_lesson_complete)
        _evaluator = SectionEvaluator(get_session(), reporter, store)
    return _evaluator


# ---------------------------------------------------------------------------
# Request / response schemas
# ---------------------------------------------------------------------------


class RunTestsRequest(BaseModel):
    code: str


class CoverageRequest(BaseModel):
    inputs: dict[str, str] = {}


class RunCodeRequest(BaseModel):
    code: str
    input_values: list[str] = []


class HealthResponse(BaseModel):
    status: str
    interpreter: str
    interpreter_error: str | None = None


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


def _get_section(lesson_id: str, section_id: str):
    lesson = get_lesson_by_id(lesson_id)
    if lesson is None:
        raise HTTPException(status_code=404, detail="Lesson not found")
    section = lesson.get_section(section_id)
    if section is None:
        raise HTTPException(status_code=404, detail="Section not found")
    return section


@app.get("/api/health")
async def health(evaluator: SectionEvaluator = Depends(get_evaluator)) -> HealthResponse:
    session = evaluator.session
    return HealthResponse(
        status="ok",
        interpreter=session.status,
        interpreter_error=session.last_error,
    )


@app.get("/api/lessons")
async def list_lessons() -> list[Lesson]:
    return get_all_lessons()


@app.get("/api/lessons/{lesson_id}")
async def get_lesson(lesson_id: str) -> Lesson:
    lesson = get_lesson_by_id(lesson_id)
    if lesson is None:
        raise HTTPException(status_code=404, detail="Lesson not found")
    return lesson


@app.post("/api/lessons/{lesson_id}/sections/{section_id}/run-tests")
async def run_section_tests(
    lesson_id: str,
    section_id: str,
    req: RunTestsRequest,
    evaluator: SectionEvaluator = Depends(get_evaluator),
) -> TestingReport | TurtleReport:
    """Run the student's code against a Testing or Turtle section."""
    section = _get_section(lesson_id, section_id)
    if not isinstance(section, (TestingSection, TurtleSection)):
        raise HTTPException(status_code=400, detail="Section has no tests to run")
    return await evaluator.evaluate(lesson_id, section, CodeSubmission(code=req.code))


@app.post("/api/lessons/{lesson_id}/sections/{section_id}/coverage/{challenge_id}")
async def submit_coverage_challenge(
    lesson_id: str,
    section_id: str,
    challenge_id: str,
    req: CoverageRequest,
    evaluator: SectionEvaluator = Depends(get_evaluator),
) -> CoverageReport:
    section = _get_section(lesson_id, section_id)
    if not isinstance(section, CoverageSection):
        raise HTTPException(status_code=400, detail="Section is not a coverage section")
    if section.get_challenge(challenge_id) is None:
        raise HTTPException(status_code=404, detail="Challenge not found")
    return await evaluator.evaluate(
        lesson_id, section, CoverageSubmission(challenge_id=challenge_id, inputs=req.inputs)
    )


@app.post("/api/run-code")
async def run_code(
    req: RunCodeRequest,
    evaluator: SectionEvaluator = Depends(get_evaluator),
) -> ProgramRun:
    """Run a program as-is, the way the editor's Run button does."""
    return await evaluator.run_program(req.code, req.input_values)


if __name__ == "__main__":
    uvicorn.run("main:app", host=settings.host, port=settings.port)
