"""Synthesizes the self-contained Python programs that run student code.

Each builder returns source text for a fresh interpreter process. The
program loads the student's code, exercises it, and prints one
sentinel-delimited JSON block (see ``results.py``) as the very last thing
it writes to stdout.

Values are embedded as ``json.loads(<JSON string literal>)`` so that
``true``/``null`` and friends never leak into the generated Python.
"""

import ast
import json
import keyword
from pathlib import Path
from typing import Any, Sequence

from lessons import MAIN_TARGET, TestCase

from .comparison import DEFAULT_ABS_TOL, DEFAULT_REL_TOL
from .results import BEGIN_SENTINEL, END_SENTINEL

_HERE = Path(__file__).parent
_COMPARISON_SOURCE = (_HERE / "comparison.py").read_text(encoding="utf-8")
_TURTLE_SOURCE = (_HERE / "turtle_recorder.py").read_text(encoding="utf-8")

STUDENT_FILENAME = "<student>"

# Runtime shared by every harness. It is plain source text: the names it
# relies on (SOURCE, BEGIN_SENTINEL, ...) are bound by the generated header.
_PRELUDE = r'''
import builtins
import contextlib
import copy
import io
import json
import linecache
import sys
import traceback
import types

_oracle = {"__name__": "comparison"}
exec(compile(COMPARISON_SOURCE, "<comparison>", "exec"), _oracle)
values_match = _oracle["values_match"]
outputs_match = _oracle["outputs_match"]


def emit(payload):
    stream = sys.__stdout__
    stream.write("\n" + BEGIN_SENTINEL + "\n" + json.dumps(payload) + "\n" + END_SENTINEL + "\n")
    stream.flush()


def jsonable(value):
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return repr(value)
    return value


class ScriptedInput:
    """Replacement for input(): answers from a fixed list of lines."""

    def __init__(self, values):
        self._values = [str(v) for v in values]

    def __call__(self, prompt=""):
        sys.stdout.write(str(prompt))
        if not self._values:
            raise EOFError("EOF when reading a line")
        return self._values.pop(0)


def describe(exc):
    message = str(exc)
    return f"{type(exc).__name__}: {message}" if message else type(exc).__name__


def student_traceback(exc):
    frames = [
        frame for frame in traceback.extract_tb(exc.__traceback__)
        if frame.filename == STUDENT_FILENAME
    ]
    text = "".join(traceback.format_list(frames))
    if text:
        text = "Traceback (most recent call last):\n" + text
    return text + describe(exc)


def compile_student(source):
    linecache.cache[STUDENT_FILENAME] = (
        len(source), None, source.splitlines(True), STUDENT_FILENAME,
    )
    try:
        return compile(source, STUDENT_FILENAME, "exec")
    except SyntaxError as exc:
        sys.stderr.write("".join(traceback.format_exception_only(type(exc), exc)))
        sys.stderr.flush()
        sys.exit(1)


def fresh_namespace(name):
    return {"__name__": name, "__builtins__": builtins}


def run_program(code, namespace, input_values):
    """Exec a whole program with captured stdout. Returns (output, error)."""
    buffer = io.StringIO()
    builtins.input = ScriptedInput(input_values)
    error = None
    try:
        with contextlib.redirect_stdout(buffer):
            exec(code, namespace)
    except SystemExit:
        pass
    except Exception as exc:
        error = student_traceback(exc)
    return buffer.getvalue(), error
'''

_TEST_BODY = r'''

def call_arguments(value):
    if value is None:
        return []
    if isinstance(value, list):
        return copy.deepcopy(value)
    return [copy.deepcopy(value)]


def run_main_cases(code):
    results = []
    for case in TEST_CASES:
        output, error = run_program(code, fresh_namespace("__main__"), case["input_values"])
        if error is not None:
            results.append({
                "input": case["input"],
                "expected": case["expected"],
                "actual": error,
                "passed": False,
                "description": case["description"],
                "error": True,
            })
            continue
        results.append({
            "input": case["input"],
            "expected": case["expected"],
            "actual": output.strip(),
            "passed": outputs_match(output, case["expected"]),
            "description": case["description"],
            "error": False,
        })
    return results


def run_function_cases(code):
    namespace = fresh_namespace("__student__")
    builtins.input = ScriptedInput([])
    exec(code, namespace)

    function = namespace.get(FUNCTION_TO_TEST)
    if function is None:
        raise NameError(f"function '{FUNCTION_TO_TEST}' is not defined")
    if not callable(function):
        raise TypeError(f"'{FUNCTION_TO_TEST}' is not a function")

    results = []
    for case in TEST_CASES:
        buffer = io.StringIO()
        builtins.input = ScriptedInput(case["input_values"])
        try:
            with contextlib.redirect_stdout(buffer):
                returned = function(*call_arguments(case["input"]))
        except (Exception, SystemExit) as exc:
            results.append({
                "input": case["input"],
                "expected": case["expected"],
                "actual": describe(exc),
                "passed": False,
                "description": case["description"],
                "error": True,
            })
            continue

        # Returned objects run student code when compared or serialized.
        try:
            if TEST_MODE == "procedure":
                actual = buffer.getvalue().strip()
                passed = outputs_match(buffer.getvalue(), case["expected"])
            else:
                actual = jsonable(returned)
                passed = bool(values_match(returned, case["expected"], REL_TOL, ABS_TOL))
        except (Exception, SystemExit) as exc:
            results.append({
                "input": case["input"],
                "expected": case["expected"],
                "actual": describe(exc),
                "passed": False,
                "description": case["description"],
                "error": True,
            })
            continue
        results.append({
            "input": case["input"],
            "expected": case["expected"],
            "actual": actual,
            "passed": passed,
            "description": case["description"],
            "error": False,
        })
    return results


student_code = compile_student(SOURCE)
try:
    if FUNCTION_TO_TEST == MAIN_TARGET:
        emit(run_main_cases(student_code))
    else:
        emit(run_function_cases(student_code))
except (Exception, SystemExit) as exc:
    emit({"harness_error": student_traceback(exc)})
'''

_PROGRAM_BODY = r'''

student_code = compile_student(SOURCE)
namespace = fresh_namespace("__main__")
namespace.update(VARIABLES)
output, error = run_program(student_code, namespace, INPUT_VALUES)
emit({"output": output, "error": error})
'''

_TURTLE_BODY = r'''

turtle_module = types.ModuleType("turtle")
exec(compile(TURTLE_SOURCE, "<turtle>", "exec"), turtle_module.__dict__)
turtle_module.configure_canvas(CANVAS[0], CANVAS[1])
sys.modules["turtle"] = turtle_module

student_code = compile_student(SOURCE)
output = ""
error = None
try:
    if FUNCTION_TO_TEST == MAIN_TARGET:
        output, error = run_program(student_code, fresh_namespace("__main__"), [])
    else:
        namespace = fresh_namespace("__student__")
        output, error = run_program(student_code, namespace, [])
        if error is None:
            function = namespace.get(FUNCTION_TO_TEST)
            if not callable(function):
                error = f"NameError: function '{FUNCTION_TO_TEST}' is not defined"
            else:
                buffer = io.StringIO()
                try:
                    with contextlib.redirect_stdout(buffer):
                        function(*ARGS)
                except SystemExit:
                    pass
                except Exception as exc:
                    error = student_traceback(exc)
                output += buffer.getvalue()
except Exception as exc:
    error = describe(exc)

emit({
    "segments": turtle_module.recorded_segments(),
    "fills": turtle_module.recorded_fills(),
    "dots": turtle_module.recorded_dots(),
    "background": turtle_module.background_color(),
    "output": output,
    "error": error,
})
'''


def _literal(value: Any) -> str:
    return f"json.loads({json.dumps(json.dumps(value))})"


def _header(**values: Any) -> str:
    lines = ["import json", ""]
    for name, value in values.items():
        lines.append(f"{name} = {_literal(value)}")
    return "\n".join(lines) + "\n"


def _common_values() -> dict[str, Any]:
    return {
        "BEGIN_SENTINEL": BEGIN_SENTINEL,
        "END_SENTINEL": END_SENTINEL,
        "STUDENT_FILENAME": STUDENT_FILENAME,
        "MAIN_TARGET": MAIN_TARGET,
        "COMPARISON_SOURCE": _COMPARISON_SOURCE,
    }


def call_arguments(value: Any) -> list[Any]:
    """Positional arguments for a test input: lists spread, None means no arguments."""
    if value is None:
        return []
    if isinstance(value, list):
        return list(value)
    return [value]


def validate_target(function_to_test: str) -> str:
    """Reject anything that is neither ``__main__`` nor a plain identifier."""
    if function_to_test == MAIN_TARGET:
        return function_to_test
    if not function_to_test.isidentifier() or keyword.iskeyword(function_to_test):
        raise ValueError(f"{function_to_test!r} is not a valid function name")
    return function_to_test


def build_test_harness(
    source: str,
    function_to_test: str,
    test_cases: Sequence[TestCase],
    test_mode: str = "function",
    rel_tol: float = DEFAULT_REL_TOL,
    abs_tol: float = DEFAULT_ABS_TOL,
) -> str:
    """Build the program that runs every test case and prints the results block.

    In ``__main__`` mode the whole program runs once per case and its trimmed
    stdout is compared to ``expected``. Otherwise the named function is
    called with each case's ``input`` as positional arguments; its return
    value (``function`` mode) or its printed output (``procedure`` mode) is
    compared. A failing case never stops the remaining ones.
    """
    target = validate_target(function_to_test)
    if test_mode not in ("function", "procedure"):
        raise ValueError(f"unknown test mode {test_mode!r}")

    cases = [
        {
            "input": case.input,
            "expected": case.expected,
            "description": case.description,
            "input_values": list(case.input_values),
        }
        for case in test_cases
    ]
    header = _header(
        **_common_values(),
        SOURCE=source,
        FUNCTION_TO_TEST=target,
        TEST_CASES=cases,
        TEST_MODE=test_mode,
        REL_TOL=rel_tol,
        ABS_TOL=abs_tol,
    )
    return header + _PRELUDE + _TEST_BODY


def build_program_harness(
    source: str,
    variables: dict[str, Any] | None = None,
    input_values: Sequence[str] = (),
) -> str:
    """Build a program that runs ``source`` as ``__main__`` and reports its output.

    ``variables`` are bound in the program's namespace before it runs, so a
    coverage program sees them as ordinary globals.
    """
    variables = dict(variables or {})
    for name in variables:
        validate_target(name)
    header = _header(
        **_common_values(),
        SOURCE=source,
        VARIABLES=variables,
        INPUT_VALUES=[str(v) for v in input_values],
    )
    return header + _PRELUDE + _PROGRAM_BODY


def build_turtle_harness(
    source: str,
    function_to_test: str = MAIN_TARGET,
    args: Sequence[Any] | None = None,
    canvas: tuple[int, int] = (400, 300),
) -> str:
    """Build a program that runs turtle code against the recording turtle module."""
    target = validate_target(function_to_test)
    if target != MAIN_TARGET:
        source = strip_main_code(source)
    header = _header(
        **_common_values(),
        SOURCE=source,
        FUNCTION_TO_TEST=target,
        ARGS=list(args or []),
        CANVAS=list(canvas),
        TURTLE_SOURCE=_TURTLE_SOURCE,
    )
    return header + _PRELUDE + _TURTLE_BODY


def _is_main_guard(node: ast.stmt) -> bool:
    if not isinstance(node, ast.If):
        return False
    test = node.test
    return (
        isinstance(test, ast.Compare)
        and isinstance(test.left, ast.Name)
        and test.left.id == "__name__"
        and len(test.comparators) == 1
        and isinstance(test.comparators[0], ast.Constant)
        and test.comparators[0].value == "__main__"
    )


def strip_main_code(source: str) -> str:
    """Blank out the code that runs a program rather than defining it.

    ``if __name__ == "__main__":`` blocks are removed wherever they are, and
    every top-level statement after the last ``def``/``class`` is removed
    except imports. Setup such as ``t.speed(0)`` above the definitions
    survives. Removed lines are replaced by empty lines to keep tracebacks
    pointing at the student's own line numbers. Unparseable source is
    returned unchanged.
    """
    try:
        tree = ast.parse(source)
    except SyntaxError:
        return source

    last_definition = -1
    for index, node in enumerate(tree.body):
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            last_definition = index

    lines = source.splitlines()
    for index, node in enumerate(tree.body):
        trailing = index > last_definition >= 0 and not isinstance(node, (ast.Import, ast.ImportFrom))
        if _is_main_guard(node) or trailing:
            for lineno in range(node.lineno, node.end_lineno + 1):
                lines[lineno - 1] = ""
    return "\n".join(lines) + ("\n" if source.endswith("\n") else "")
