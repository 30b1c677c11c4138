"""Evaluates student submissions for each kind of gradable lesson section."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import sentry_sdk
from pydantic import BaseModel, TypeAdapter, ValidationError

from config import settings
from lessons import (
    CoverageSection,
    InformationSection,
    TestCase,
    TestingSection,
    TurtleSection,
)

from .coverage import is_section_complete, run_coverage_challenge
from .errors import (
    EvaluationError,
    HarnessError,
    HarnessStartupError,
    MalformedResultsError,
    StudentCodeError,
)
from .harness import build_program_harness, build_test_harness, build_turtle_harness, call_arguments
from .models import (
    CoverageChallengeState,
    Dot,
    EvaluationFailure,
    FillPolygon,
    PathSegment,
    TurtleTestResult,
)
from .results import extract_payload, parse, split_output
from .turtle_images import compare_images, image_to_data_url, load_reference_image, render_segments
from .turtle_validation import validate_shape
from .verdict import ProgressReporter, Verdict, build_verdict, summarize

logger = logging.getLogger(__name__)

_segments_adapter = TypeAdapter(list[PathSegment])
_fills_adapter = TypeAdapter(list[FillPolygon])
_dots_adapter = TypeAdapter(list[Dot])

INTERNAL_ERROR_MESSAGE = "Something went wrong while checking your code. This is not your fault; please try again."


@dataclass
class CodeSubmission:
    code: str
    input_values: list[str] = field(default_factory=list)


@dataclass
class CoverageSubmission:
    challenge_id: str
    inputs: dict[str, str] = field(default_factory=dict)


class TestingReport(BaseModel):
    __test__ = False

    verdict: Verdict | None = None
    failure: EvaluationFailure | None = None
    program_output: str = ""
    section_completed: bool = False
    summary: str = ""


class TurtleReport(BaseModel):
    verdict: Verdict | None = None
    failure: EvaluationFailure | None = None
    feedback: str = ""
    section_completed: bool = False
    summary: str = ""


class CoverageReport(BaseModel):
    challenge: CoverageChallengeState | None = None
    failure: EvaluationFailure | None = None
    challenges: dict[str, CoverageChallengeState] = {}
    section_completed: bool = False


class ProgramRun(BaseModel):
    output: str = ""
    error: str | None = None
    timed_out: bool = False


@dataclass
class _TurtleRun:
    segments: list[PathSegment]
    fills: list[FillPolygon]
    dots: list[Dot]
    background: str
    output: str

    def render(self, width: int, height: int):
        return render_segments(self.segments, width, height, self.background, self.fills, self.dots)


def to_failure(e: Exception) -> EvaluationFailure:
    """Map any evaluation exception to what the student gets to see.

    Must be called from inside the ``except`` block that caught ``e``.
    """
    if isinstance(e, MalformedResultsError) or not isinstance(e, EvaluationError):
        logger.exception("Internal error while evaluating a submission")
        sentry_sdk.capture_exception(e)
        return EvaluationFailure(kind="internal", message=INTERNAL_ERROR_MESSAGE)
    if isinstance(e, HarnessError):
        return EvaluationFailure(kind=e.kind, message=e.detail)
    return EvaluationFailure(kind=e.kind, message=str(e))


class SectionEvaluator:
    """Runs submissions through the interpreter and records completed sections.

    The evaluator never raises for anything the student did: every failure
    comes back as an ``EvaluationFailure`` on the report.
    """

    def __init__(self, session, reporter: ProgressReporter, store, assets_dir: Path | None = None):
        self.session = session
        self.reporter = reporter
        self.store = store
        self.assets_dir = Path(assets_dir or settings.assets_dir)

    async def evaluate(self, lesson_id: str, section, submission):
        if isinstance(section, TestingSection):
            return await self.run_tests(lesson_id, section, _expect(submission, CodeSubmission).code)
        elif isinstance(section, TurtleSection):
            return await self.run_turtle_tests(lesson_id, section, _expect(submission, CodeSubmission).code)
        elif isinstance(section, CoverageSection):
            return await self.run_coverage_challenge(lesson_id, section, _expect(submission, CoverageSubmission))
        elif isinstance(section, InformationSection):
            raise ValueError(f"Section {section.id} has nothing to evaluate")
        else:
            raise TypeError(f"Unsupported section type: {type(section).__name__}")

    # ------------------------------------------------------------------
    # Testing sections
    # ------------------------------------------------------------------

    async def run_tests(self, lesson_id: str, section: TestingSection, code: str) -> TestingReport:
        try:
            harness = build_test_harness(
                code,
                section.function_to_test,
                section.test_cases,
                section.test_mode,
                settings.numeric_rel_tol,
                settings.numeric_abs_tol,
            )
            raw_output = await self.session.run(harness)
            results = parse(raw_output)
            program_output, _ = split_output(raw_output)
        except Exception as e:
            return TestingReport(
                failure=to_failure(e),
                section_completed=self.store.is_section_complete(section.id, lesson_id),
            )

        verdict = build_verdict(results)
        completed = self.reporter.report_if_complete(section.id, lesson_id, verdict)
        logger.info(
            f"Lesson {lesson_id} section {section.id}: {summarize(verdict)}"
        )
        return TestingReport(
            verdict=verdict,
            program_output=program_output,
            section_completed=completed,
            summary=summarize(verdict),
        )

    # ------------------------------------------------------------------
    # Turtle sections
    # ------------------------------------------------------------------

    async def run_turtle_tests(self, lesson_id: str, section: TurtleSection, code: str) -> TurtleReport:
        try:
            await self.session.initialize()
        except HarnessStartupError as e:
            return TurtleReport(
                failure=to_failure(e),
                section_completed=self.store.is_section_complete(section.id, lesson_id),
            )

        results: list[TurtleTestResult] = []
        if section.validation_criteria is not None:
            results.append(await self._check_shape(section, code))
        for case in section.test_cases:
            # Without a reference image a case only supplies arguments for the shape check.
            if case.reference_image or section.validation_criteria is None:
                results.append(await self._check_image(section, case, code))

        verdict = build_verdict(results)
        completed = self.reporter.report_if_complete(section.id, lesson_id, verdict)
        return TurtleReport(
            verdict=verdict,
            feedback=section.feedback.correct if verdict.all_passed else section.feedback.incorrect,
            section_completed=completed,
            summary=summarize(verdict),
        )

    async def _run_turtle(self, section: TurtleSection, code: str, args: list[Any]) -> _TurtleRun:
        harness = build_turtle_harness(
            code,
            section.function_to_test,
            args,
            (settings.turtle_canvas_width, settings.turtle_canvas_height),
        )
        payload = extract_payload(await self.session.run(harness))
        if not isinstance(payload, dict) or "segments" not in payload:
            raise MalformedResultsError(f"Turtle results block has an unexpected shape: {payload!r:.200}")
        if payload.get("error"):
            raise StudentCodeError("Your drawing code raised an error.", payload["error"])
        try:
            segments = _segments_adapter.validate_python(payload["segments"])
            fills = _fills_adapter.validate_python(payload.get("fills", []))
            dots = _dots_adapter.validate_python(payload.get("dots", []))
        except ValidationError as e:
            raise MalformedResultsError(f"Recorded turtle path has an unexpected shape: {e}") from e
        return _TurtleRun(
            segments, fills, dots, payload.get("background") or "white", payload.get("output", "")
        )

    async def _check_shape(self, section: TurtleSection, code: str) -> TurtleTestResult:
        criteria = section.validation_criteria
        description = f"Draw a {criteria.shape}"
        args = call_arguments(section.test_cases[0].input) if section.test_cases else []
        try:
            run = await self._run_turtle(section, code, args)
            check = validate_shape(
                run.segments,
                criteria,
                settings.turtle_length_tolerance,
                settings.turtle_angle_tolerance,
            )
            image = run.render(settings.turtle_canvas_width, settings.turtle_canvas_height)
        except Exception as e:
            return TurtleTestResult(
                description=description, passed=False, similarity=0.0, error=to_failure(e).message
            )

        return TurtleTestResult(
            description=description,
            passed=check.passed,
            similarity=1.0 if check.passed else 0.0,
            student_image_data_url=image_to_data_url(image),
            failures=check.failures,
        )

    async def _check_image(self, section: TurtleSection, case: TestCase, code: str) -> TurtleTestResult:
        description = case.description or "Drawing matches the reference image"
        if not case.reference_image:
            logger.warning(f"Turtle section {section.id} has a test case without a reference image")
            return TurtleTestResult(
                description=description,
                passed=False,
                similarity=0.0,
                error="This test has no reference image to compare against.",
            )

        threshold = section.visual_threshold or settings.turtle_visual_threshold
        try:
            reference = await load_reference_image(case.reference_image, self.assets_dir)
            run = await self._run_turtle(section, code, call_arguments(case.input))
            student = run.render(reference.width, reference.height)
            comparison = compare_images(
                student,
                reference,
                threshold=threshold,
                pixel_threshold=settings.turtle_pixel_threshold,
                match_radius=settings.turtle_match_radius,
            )
        except Exception as e:
            return TurtleTestResult(
                description=description,
                passed=False,
                similarity=0.0,
                reference_image=case.reference_image,
                error=to_failure(e).message,
            )

        return TurtleTestResult(
            description=description,
            passed=comparison.passed,
            similarity=comparison.similarity,
            reference_image=case.reference_image,
            student_image_data_url=image_to_data_url(student),
            diff_image_data_url=comparison.diff_image_data_url,
        )

    # ------------------------------------------------------------------
    # Coverage sections
    # ------------------------------------------------------------------

    async def run_coverage_challenge(
        self,
        lesson_id: str,
        section: CoverageSection,
        submission: CoverageSubmission,
    ) -> CoverageReport:
        challenge = section.get_challenge(submission.challenge_id)
        if challenge is None:
            raise ValueError(f"Section {section.id} has no challenge {submission.challenge_id!r}")

        try:
            state = await run_coverage_challenge(self.session, section, challenge, submission.inputs)
        except Exception as e:
            return CoverageReport(
                failure=to_failure(e),
                challenges=self.store.get_coverage_state(lesson_id, section.id),
                section_completed=self.store.is_section_complete(section.id, lesson_id),
            )

        self.store.save_coverage_state(lesson_id, section.id, state)
        states = self.store.get_coverage_state(lesson_id, section.id)
        if is_section_complete(section, states):
            self.reporter.mark_section_completed(section.id, lesson_id)
        return CoverageReport(
            challenge=state,
            challenges=states,
            section_completed=self.store.is_section_complete(section.id, lesson_id),
        )

    # ------------------------------------------------------------------
    # Free-form "Run" button
    # ------------------------------------------------------------------

    async def run_program(self, code: str, input_values: list[str] | None = None) -> ProgramRun:
        try:
            harness = build_program_harness(code, input_values=input_values or [])
            payload = extract_payload(await self.session.run(harness))
        except Exception as e:
            failure = to_failure(e)
            return ProgramRun(error=failure.message, timed_out=failure.kind == "timeout")
        return ProgramRun(output=payload.get("output", ""), error=payload.get("error"))


def _expect(submission, kind):
    if not isinstance(submission, kind):
        raise TypeError(f"Expected a {kind.__name__}, got {type(submission).__name__}")
    return submission
