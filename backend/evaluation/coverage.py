"""Coverage challenges: the student picks inputs that drive a fixed program to a given output."""

import logging
from typing import Any

from lessons import CoverageChallenge, CoverageSection, InputParam

from .comparison import outputs_match
from .harness import build_program_harness
from .models import CoverageChallengeState
from .results import extract_payload

logger = logging.getLogger(__name__)


def coerce_value(param: InputParam, raw: str | None) -> Any:
    """Typed value for one form field. Unparseable numbers become None."""
    if raw is None:
        return None
    if param.type == "number":
        text = raw.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            return None
    if param.type == "boolean":
        text = raw.strip().lower()
        if text in ("true", "false"):
            return text == "true"
        return None
    return raw


def coerce_inputs(params: list[InputParam], raw_inputs: dict[str, str]) -> dict[str, Any]:
    return {param.name: coerce_value(param, raw_inputs.get(param.name)) for param in params}


def build_coverage_program(section: CoverageSection, raw_inputs: dict[str, str]) -> str:
    """The section's program with the student's values bound as globals."""
    return build_program_harness(section.code, coerce_inputs(section.input_params, raw_inputs))


def grade_coverage_output(
    challenge: CoverageChallenge,
    raw_inputs: dict[str, str],
    raw_output: str,
) -> CoverageChallengeState:
    """Grade the output of a program built by ``build_coverage_program``."""
    payload = extract_payload(raw_output)
    output, error = payload.get("output", ""), payload.get("error")
    if error:
        actual = (output.rstrip("\n") + "\n" + error).lstrip("\n")
    else:
        actual = output.strip()
    return CoverageChallengeState(
        challenge_id=challenge.id,
        inputs=dict(raw_inputs),
        actual_output=actual,
        is_correct=error is None and outputs_match(output, challenge.expected_output),
    )


async def run_coverage_challenge(
    session,
    section: CoverageSection,
    challenge: CoverageChallenge,
    raw_inputs: dict[str, str],
) -> CoverageChallengeState:
    program = build_coverage_program(section, raw_inputs)
    raw_output = await session.run(program)
    state = grade_coverage_output(challenge, raw_inputs, raw_output)
    logger.debug("Coverage challenge %s correct=%s", challenge.id, state.is_correct)
    return state


def is_section_complete(section: CoverageSection, states: dict[str, CoverageChallengeState]) -> bool:
    """Complete only when every challenge's latest attempt is correct."""
    if not section.coverage_challenges:
        return False
    return all(
        challenge.id in states and bool(states[challenge.id].is_correct)
        for challenge in section.coverage_challenges
    )
