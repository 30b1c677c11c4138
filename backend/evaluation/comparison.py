"""Equality rules for comparing student results against expected values.

This module is embedded verbatim into synthesized harness programs, so it
must only depend on the standard library.
"""

import math

DEFAULT_REL_TOL = 0.01
DEFAULT_ABS_TOL = 1e-9


def normalize_output(text):
    """Trim the whole block only. Inner blank lines and spacing are significant."""
    return str(text).strip()


def outputs_match(actual, expected):
    """Exact comparison of printed output after trimming the whole block."""
    if actual is None or expected is None:
        return actual is expected
    return normalize_output(actual) == normalize_output(expected)


def _is_number(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def numbers_match(actual, expected, rel_tol=DEFAULT_REL_TOL, abs_tol=DEFAULT_ABS_TOL):
    if isinstance(actual, float) or isinstance(expected, float):
        return math.isclose(actual, expected, rel_tol=rel_tol, abs_tol=abs_tol)
    return actual == expected


def values_match(actual, expected, rel_tol=DEFAULT_REL_TOL, abs_tol=DEFAULT_ABS_TOL):
    """Type-aware equality between a returned value and the expected value."""
    if isinstance(expected, bool) or isinstance(actual, bool):
        return isinstance(actual, bool) and isinstance(expected, bool) and actual == expected
    if _is_number(expected) and _is_number(actual):
        return numbers_match(actual, expected, rel_tol, abs_tol)
    if isinstance(expected, str) or isinstance(actual, str):
        return isinstance(actual, str) and isinstance(expected, str) and outputs_match(actual, expected)
    if expected is None or actual is None:
        return actual is expected
    if isinstance(expected, (list, tuple)) and isinstance(actual, (list, tuple)):
        if len(actual) != len(expected):
            return False
        return all(values_match(a, e, rel_tol, abs_tol) for a, e in zip(actual, expected))
    if isinstance(expected, dict) and isinstance(actual, dict):
        if set(actual) != set(expected):
            return False
        return all(values_match(actual[k], expected[k], rel_tol, abs_tol) for k in expected)
    return actual == expected


compare = values_match
