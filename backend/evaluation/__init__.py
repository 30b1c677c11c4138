"""Evaluation of student code for lesson sections.

This package contains:
- Harness synthesis and result parsing
- The comparison oracle
- Turtle path recording, shape checks and image comparison
- Verdicts and coverage challenges

The evaluator itself lives in ``evaluation.evaluator``; it depends on the
interpreter module and is imported from there directly.
"""

from .comparison import compare, outputs_match, values_match
from .errors import (
    EvaluationError,
    HarnessError,
    HarnessStartupError,
    HarnessTimeoutError,
    MalformedResultsError,
    StudentCodeError,
    StudentIndentationError,
    StudentSyntaxError,
    TurtleValidationError,
)
from .models import (
    CoverageChallengeState,
    Dot,
    EvaluationFailure,
    FillPolygon,
    PathSegment,
    TestResult,
    TurtleTestResult,
)
from .verdict import ProgressReporter, Verdict, build_verdict, summarize

__all__ = [
    "compare",
    "outputs_match",
    "values_match",
    "EvaluationError",
    "HarnessError",
    "HarnessStartupError",
    "HarnessTimeoutError",
    "MalformedResultsError",
    "StudentCodeError",
    "StudentIndentationError",
    "StudentSyntaxError",
    "TurtleValidationError",
    "CoverageChallengeState",
    "Dot",
    "EvaluationFailure",
    "FillPolygon",
    "PathSegment",
    "TestResult",
    "TurtleTestResult",
    "ProgressReporter",
    "Verdict",
    "build_verdict",
    "summarize",
]
