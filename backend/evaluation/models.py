"""Result types produced by the evaluator and rendered by the lesson UI."""

from typing import Any, Literal

from pydantic import BaseModel


class TestResult(BaseModel):
    __test__ = False

    input: Any = None
    expected: Any = None
    actual: Any = None
    passed: bool
    description: str = ""
    error: bool = False  # the student's code raised instead of producing a value


class PathSegment(BaseModel):
    """One pen-down stroke recorded from a turtle, in turtle coordinates."""

    start: tuple[float, float]
    end: tuple[float, float]
    length: float
    angle: float  # direction of travel, degrees counter-clockwise from east
    color: str = "black"
    width: float = 1.0


class FillPolygon(BaseModel):
    """Area painted between ``begin_fill`` and ``end_fill``."""

    points: list[tuple[float, float]]
    color: str = "black"


class Dot(BaseModel):
    center: tuple[float, float]
    size: float  # diameter in pixels
    color: str = "black"


class TurtleTestResult(BaseModel):
    description: str
    passed: bool
    similarity: float  # 0.0 to 1.0
    reference_image: str | None = None
    student_image_data_url: str | None = None
    diff_image_data_url: str | None = None
    failures: list[str] = []  # geometric checks that did not hold
    error: str | None = None


class EvaluationFailure(BaseModel):
    """A run that could not be graded case by case."""

    kind: Literal["startup", "syntax", "indentation", "runtime", "timeout", "internal"]
    message: str


class CoverageChallengeState(BaseModel):
    challenge_id: str
    inputs: dict[str, str] = {}
    actual_output: str | None = None
    is_correct: bool | None = None
