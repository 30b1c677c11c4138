"""Geometric checks over the path segments recorded from a turtle drawing."""

import math
from dataclasses import dataclass, field
from typing import Sequence

from lessons import ShapeCriteria

from .errors import TurtleValidationError
from .models import PathSegment

DEFAULT_LENGTH_TOLERANCE = 2.0
DEFAULT_ANGLE_TOLERANCE = 2.0

REGULAR_POLYGON_SIDES = {
    "triangle": 3,
    "pentagon": 5,
    "hexagon": 6,
    "octagon": 8,
}


@dataclass
class ShapeCheck:
    failures: list[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.failures


def _distance(a: Sequence[float], b: Sequence[float]) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])


def turn_delta(first: PathSegment, second: PathSegment) -> float:
    """Signed heading change between two segments, in (-180, 180]. Left is positive."""
    delta = (second.angle - first.angle) % 360.0
    return delta - 360.0 if delta > 180.0 else delta


def merge_colinear(
    segments: Sequence[PathSegment],
    tolerance: float = DEFAULT_LENGTH_TOLERANCE,
    angle_tolerance: float = DEFAULT_ANGLE_TOLERANCE,
) -> list[PathSegment]:
    """Join consecutive connected segments that continue in the same direction.

    ``forward(50); forward(50)`` then counts as one side of length 100.
    """
    merged: list[PathSegment] = []
    for segment in segments:
        if merged:
            previous = merged[-1]
            connected = _distance(previous.end, segment.start) <= tolerance
            if connected and abs(turn_delta(previous, segment)) <= angle_tolerance:
                merged[-1] = previous.model_copy(update={
                    "end": segment.end,
                    "length": _distance(previous.start, segment.end),
                })
                continue
        merged.append(segment)
    return merged


def _check_path(
    check: ShapeCheck,
    segments: Sequence[PathSegment],
    tolerance: float,
    angle_tolerance: float,
    turn: float,
    require_closed: bool,
) -> None:
    for i in range(1, len(segments)):
        gap = _distance(segments[i - 1].end, segments[i].start)
        if gap > tolerance:
            check.failures.append(
                f"Line {i + 1} does not start where line {i} ended (gap of {gap:.1f}px)."
            )

    pairs = list(zip(segments, segments[1:]))
    if require_closed:
        gap = _distance(segments[-1].end, segments[0].start)
        if gap > tolerance:
            check.failures.append(
                f"The shape is not closed: the last line ends {gap:.1f}px from where it started."
            )
        pairs.append((segments[-1], segments[0]))

    deltas = [turn_delta(a, b) for a, b in pairs]
    for i, delta in enumerate(deltas):
        if abs(abs(delta) - turn) > angle_tolerance:
            check.failures.append(
                f"Turn {i + 1} is {abs(delta):.1f} degrees; expected {turn:.1f} degrees."
            )
    if deltas and not (all(d > 0 for d in deltas) or all(d < 0 for d in deltas)):
        check.failures.append("The turtle should turn the same direction at every corner.")


def validate_regular_polygon(
    segments: Sequence[PathSegment],
    sides: int,
    side_length: float | None = None,
    tolerance: float = DEFAULT_LENGTH_TOLERANCE,
    angle_tolerance: float = DEFAULT_ANGLE_TOLERANCE,
    require_closed: bool = True,
) -> ShapeCheck:
    """Exactly ``sides`` equal sides with an exterior turn of 360/sides at each corner.

    Without ``side_length`` the sides only have to match each other.
    """
    if sides < 3:
        raise TurtleValidationError(f"a polygon needs at least 3 sides, got {sides}")

    check = ShapeCheck()
    if len(segments) != sides:
        check.failures.append(f"Expected {sides} lines but found {len(segments)}.")
        return check

    target = side_length if side_length is not None else segments[0].length
    for i, segment in enumerate(segments):
        if abs(segment.length - target) > tolerance:
            check.failures.append(
                f"Side {i + 1} is {segment.length:.1f}px long; expected {target:.1f}px."
            )

    _check_path(check, segments, tolerance, angle_tolerance, 360.0 / sides, require_closed)
    return check


def validate_rectangle(
    segments: Sequence[PathSegment],
    width: float,
    height: float,
    tolerance: float = DEFAULT_LENGTH_TOLERANCE,
    angle_tolerance: float = DEFAULT_ANGLE_TOLERANCE,
    require_closed: bool = True,
) -> ShapeCheck:
    """Four sides alternating width and height, starting with either, with right-angle corners."""
    check = ShapeCheck()
    if len(segments) != 4:
        check.failures.append(f"Expected 4 lines but found {len(segments)}.")
        return check

    lengths = [s.length for s in segments]

    def fits(first: float, second: float) -> bool:
        expected = [first, second, first, second]
        return all(abs(a - e) <= tolerance for a, e in zip(lengths, expected))

    if not (fits(width, height) or fits(height, width)):
        found = ", ".join(f"{length:.1f}" for length in lengths)
        check.failures.append(
            f"Side lengths are {found}px; expected a {width:g} by {height:g} rectangle."
        )

    _check_path(check, segments, tolerance, angle_tolerance, 90.0, require_closed)
    return check


def validate_shape(
    segments: Sequence[PathSegment],
    criteria: ShapeCriteria,
    tolerance: float = DEFAULT_LENGTH_TOLERANCE,
    angle_tolerance: float = DEFAULT_ANGLE_TOLERANCE,
) -> ShapeCheck:
    """Dispatch to the validator for ``criteria.shape``.

    Tolerances set on the criteria win over the ones passed in.
    """
    tolerance = criteria.tolerance if criteria.tolerance is not None else tolerance
    if criteria.angle_tolerance is not None:
        angle_tolerance = criteria.angle_tolerance

    if criteria.merge_colinear:
        segments = merge_colinear(segments, tolerance, angle_tolerance)

    shape = criteria.shape.lower()
    options = {
        "tolerance": tolerance,
        "angle_tolerance": angle_tolerance,
        "require_closed": criteria.require_closed,
    }

    if shape == "rectangle":
        if criteria.width is None or criteria.height is None:
            raise TurtleValidationError("rectangle criteria need both width and height")
        return validate_rectangle(segments, criteria.width, criteria.height, **options)

    if shape == "square":
        side = criteria.side_length if criteria.side_length is not None else criteria.width
        if side is None:
            raise TurtleValidationError("square criteria need sideLength or width")
        return validate_rectangle(segments, side, side, **options)

    if shape == "polygon":
        if criteria.sides is None:
            raise TurtleValidationError("polygon criteria need the number of sides")
        return validate_regular_polygon(segments, criteria.sides, criteria.side_length, **options)

    if shape in REGULAR_POLYGON_SIDES:
        return validate_regular_polygon(
            segments, REGULAR_POLYGON_SIDES[shape], criteria.side_length, **options
        )

    raise TurtleValidationError(f"unknown shape {criteria.shape!r}")
