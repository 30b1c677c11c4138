"""Exceptions raised while running and checking student code."""


class EvaluationError(Exception):
    """Base class for everything the evaluator can fail with."""

    kind = "internal"


class HarnessStartupError(EvaluationError):
    """The interpreter could not be booted. Code execution is unavailable."""

    kind = "startup"


class HarnessError(EvaluationError):
    """The synthesized harness never produced a results block.

    ``detail`` carries the interpreter's own error text so it can be shown
    to the student verbatim.
    """

    kind = "runtime"

    def __init__(self, message: str, detail: str = ""):
        super().__init__(message)
        self.detail = detail or message


class StudentSyntaxError(HarnessError):
    kind = "syntax"


class StudentIndentationError(StudentSyntaxError):
    kind = "indentation"


class StudentCodeError(HarnessError):
    """Student top-level code raised before any test case could run."""


class HarnessTimeoutError(HarnessError):
    kind = "timeout"


class MalformedResultsError(EvaluationError):
    """The results block could not be decoded. Always a defect on our side."""


class TurtleValidationError(EvaluationError):
    """A drawing could not be compared against its reference."""
