"""Parsing of the sentinel-delimited results block printed by harness programs."""

import json
import logging
from typing import Any

from pydantic import TypeAdapter, ValidationError

from .errors import (
    HarnessError,
    HarnessTimeoutError,
    MalformedResultsError,
    StudentCodeError,
    StudentIndentationError,
    StudentSyntaxError,
)
from .models import TestResult

logger = logging.getLogger(__name__)

BEGIN_SENTINEL = "===TEST_RESULTS_JSON==="
END_SENTINEL = "===END_TEST_RESULTS_JSON==="
ERROR_PREFIX = "Error: "

_results_adapter = TypeAdapter(list[TestResult])


def split_output(raw_output: str) -> tuple[str, str]:
    """Split interpreter output into (program output, JSON payload text).

    The last sentinel pair wins; anything printed before it is incidental
    program output.
    """
    begin = raw_output.rfind(BEGIN_SENTINEL)
    end = raw_output.find(END_SENTINEL, begin + 1) if begin != -1 else -1
    if begin == -1 or end == -1:
        raise _missing_block_error(raw_output)

    program_output = raw_output[:begin].rstrip("\n")
    payload = raw_output[begin + len(BEGIN_SENTINEL):end].strip()
    return program_output, payload


def extract_payload(raw_output: str) -> Any:
    _, payload = split_output(raw_output)
    try:
        return json.loads(payload)
    except json.JSONDecodeError as e:
        raise MalformedResultsError(f"Results block is not valid JSON: {e}") from e


def parse(raw_output: str) -> list[TestResult]:
    """Extract the list of test results from combined interpreter output."""
    payload = extract_payload(raw_output)

    if isinstance(payload, dict) and "harness_error" in payload:
        detail = str(payload["harness_error"])
        raise StudentCodeError("Your code raised an error before the tests could run.", detail)

    try:
        return _results_adapter.validate_python(payload)
    except ValidationError as e:
        raise MalformedResultsError(f"Results block has an unexpected shape: {e}") from e


def error_detail(raw_output: str) -> str:
    """The interpreter's error text from a failed run, without the prefix.

    Only an ``Error: `` at the start of a line counts, so the ``Error: `` inside
    ``SyntaxError: `` is never mistaken for the prefix.
    """
    if raw_output.startswith(ERROR_PREFIX):
        index = 0
    else:
        index = raw_output.rfind("\n" + ERROR_PREFIX)
        if index == -1:
            return raw_output.strip()
        index += 1
    return raw_output[index + len(ERROR_PREFIX):].strip()


def _missing_block_error(raw_output: str) -> HarnessError:
    detail = error_detail(raw_output) or "The program ended before the tests could run."
    last_line = detail.strip().splitlines()[-1] if detail.strip() else ""

    if last_line.startswith(("IndentationError", "TabError")):
        return StudentIndentationError("Your code has an indentation error.", detail)
    if last_line.startswith("SyntaxError"):
        return StudentSyntaxError("Your code has a syntax error.", detail)
    if last_line.startswith("TimeoutError"):
        return HarnessTimeoutError("Your code took too long to run. Check for an infinite loop.", detail)

    logger.debug("No results block in output: %s", raw_output[:500])
    return HarnessError("Could not find the test results in the program output.", detail)
