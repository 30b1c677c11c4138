"""Tests for coverage challenges."""

import pytest

from evaluation.coverage import (
    build_coverage_program,
    coerce_inputs,
    coerce_value,
    grade_coverage_output,
    is_section_complete,
    run_coverage_challenge,
)
from evaluation.models import CoverageChallengeState
from lessons import CoverageSection, InputParam


@pytest.fixture
def section() -> CoverageSection:
    return CoverageSection.model_validate({
        "id": "sum-coverage",
        "title": "Make it print",
        "code": "print(a + b)\n",
        "inputParams": [{"name": "a", "type": "number"}, {"name": "b", "type": "number"}],
        "coverageChallenges": [
            {"id": "ten", "expectedOutput": "10"},
            {"id": "negative", "expectedOutput": "-3"},
        ],
    })


class TestCoerce:
    @pytest.mark.parametrize("raw, expected", [("4", 4), (" -3 ", -3), ("2.5", 2.5), ("abc", None), ("", None)])
    def test_numbers(self, raw, expected):
        assert coerce_value(InputParam(name="n", type="number"), raw) == expected

    def test_integers_stay_integers(self):
        assert isinstance(coerce_value(InputParam(name="n", type="number"), "4"), int)

    @pytest.mark.parametrize("raw, expected", [("true", True), ("False", False), ("yes", None)])
    def test_booleans(self, raw, expected):
        assert coerce_value(InputParam(name="flag", type="boolean"), raw) is expected

    def test_text_is_kept_verbatim(self):
        assert coerce_value(InputParam(name="s"), ' it\'s "quoted" ') == ' it\'s "quoted" '

    def test_missing_fields_are_none(self, section):
        assert coerce_inputs(section.input_params, {"a": "1"}) == {"a": 1, "b": None}


class TestGrade:
    async def test_matching_output_is_correct(self, session, section):
        challenge = section.get_challenge("ten")
        state = await run_coverage_challenge(session, section, challenge, {"a": "4", "b": "6"})
        assert state.is_correct is True
        assert state.actual_output == "10"
        assert state.inputs == {"a": "4", "b": "6"}

    async def test_other_output_is_incorrect(self, session, section):
        challenge = section.get_challenge("ten")
        state = await run_coverage_challenge(session, section, challenge, {"a": "4", "b": "5"})
        assert state.is_correct is False
        assert state.actual_output == "9"

    async def test_runtime_error_is_incorrect_and_shown(self, session, section):
        challenge = section.get_challenge("ten")
        state = await run_coverage_challenge(session, section, challenge, {"a": "4", "b": "x"})
        assert state.is_correct is False
        assert "TypeError" in state.actual_output

    async def test_text_values_cannot_inject_code(self, session):
        section = CoverageSection.model_validate({
            "id": "echo",
            "title": "Echo",
            "code": "print(word)\n",
            "inputParams": [{"name": "word"}],
            "coverageChallenges": [{"id": "quote", "expectedOutput": "a'); print('b"}],
        })
        raw = await session.run(build_coverage_program(section, {"word": "a'); print('b"}))
        state = grade_coverage_output(section.get_challenge("quote"), {"word": "a'); print('b"}, raw)
        assert state.is_correct is True


class TestSectionComplete:
    def test_every_challenge_must_be_correct(self, section):
        states = {
            "ten": CoverageChallengeState(challenge_id="ten", is_correct=True),
            "negative": CoverageChallengeState(challenge_id="negative", is_correct=False),
        }
        assert not is_section_complete(section, states)
        states["negative"] = CoverageChallengeState(challenge_id="negative", is_correct=True)
        assert is_section_complete(section, states)

    def test_unattempted_challenge_blocks_completion(self, section):
        states = {"ten": CoverageChallengeState(challenge_id="ten", is_correct=True)}
        assert not is_section_complete(section, states)

    def test_section_without_challenges_never_completes(self, section):
        empty = section.model_copy(update={"coverage_challenges": []})
        assert not is_section_complete(empty, {})
