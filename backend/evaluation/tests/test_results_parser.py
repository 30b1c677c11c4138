"""Tests for extracting the results block from interpreter output."""

import json

import pytest

from evaluation.errors import (
    HarnessError,
    HarnessTimeoutError,
    MalformedResultsError,
    StudentCodeError,
    StudentIndentationError,
    StudentSyntaxError,
)
from evaluation.results import (
    BEGIN_SENTINEL,
    END_SENTINEL,
    error_detail,
    extract_payload,
    parse,
    split_output,
)


def _block(payload) -> str:
    return f"\n{BEGIN_SENTINEL}\n{json.dumps(payload)}\n{END_SENTINEL}\n"


RESULTS = [
    {"input": [2, 2], "expected": 5, "actual": 5, "passed": True, "description": "a"},
    {"input": [4, 2], "expected": 9, "actual": 5, "passed": False, "description": "b"},
]


def test_parse_returns_results_in_order():
    results = parse(_block(RESULTS))
    assert [r.passed for r in results] == [True, False]
    assert results[1].actual == 5
    assert results[1].error is False


def test_program_output_before_block_is_split_off():
    program_output, payload = split_output("hello\nworld" + _block(RESULTS))
    assert program_output == "hello\nworld"
    assert json.loads(payload) == RESULTS


def test_last_block_wins():
    fake = _block([{"passed": True}])
    results = parse("debug\n" + fake + _block(RESULTS))
    assert len(results) == 2


def test_missing_block_is_a_harness_error_not_a_failed_case():
    with pytest.raises(HarnessError):
        parse("some output but no results")


def test_syntax_error_is_classified():
    raw = (
        "\nError: "
        '  File "<student>", line 1\n'
        "    def f(:\n"
        "          ^\n"
        "SyntaxError: invalid syntax"
    )
    with pytest.raises(StudentSyntaxError) as exc_info:
        parse(raw)
    assert exc_info.value.kind == "syntax"
    assert "SyntaxError: invalid syntax" in exc_info.value.detail
    assert 'File "<student>", line 1' in exc_info.value.detail


def test_indentation_error_is_classified():
    raw = "Error: IndentationError: expected an indented block after function definition on line 1"
    with pytest.raises(StudentIndentationError) as exc_info:
        parse(raw)
    assert exc_info.value.kind == "indentation"


def test_timeout_is_classified():
    with pytest.raises(HarnessTimeoutError):
        parse("\nError: TimeoutError: program did not finish within 10 seconds")


def test_harness_error_payload_raises_student_code_error():
    raw = _block({"harness_error": "NameError: name 'x' is not defined"})
    with pytest.raises(StudentCodeError) as exc_info:
        parse(raw)
    assert "NameError" in exc_info.value.detail


def test_invalid_json_is_malformed():
    raw = f"{BEGIN_SENTINEL}\n[{{not json\n{END_SENTINEL}"
    with pytest.raises(MalformedResultsError):
        parse(raw)


def test_unexpected_shape_is_malformed():
    with pytest.raises(MalformedResultsError):
        parse(_block([1, 2, 3]))


def test_extract_payload_returns_any_json():
    assert extract_payload(_block({"output": "hi", "error": None})) == {"output": "hi", "error": None}


def test_error_detail_skips_error_inside_exception_names():
    raw = "printed\nError: Traceback...\nValueError: bad"
    assert error_detail(raw) == "Traceback...\nValueError: bad"
    assert error_detail("SyntaxError: oops") == "SyntaxError: oops"
