"""Lesson content model and the static lesson store."""

import json
import keyword
import logging
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from config import settings

logger = logging.getLogger(__name__)

MAIN_TARGET = "__main__"


class ContentModel(BaseModel):
    """Lesson content is authored in camelCase; Python code uses snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _check_identifier(name: str) -> str:
    if not name.isidentifier() or keyword.iskeyword(name):
        raise ValueError(f"{name!r} is not a valid Python identifier")
    return name


class TestCase(ContentModel):
    __test__ = False  # not a pytest class

    input: Any = None  # positional argument list, or None for __main__ mode
    expected: Any = None
    description: str = ""
    input_values: list[str] = []  # lines handed to input(), in order
    reference_image: str | None = None  # turtle cases only


class SectionExample(ContentModel):
    visualization: str = "console"
    initial_code: str = ""


class InformationSection(ContentModel):
    kind: Literal["Information"] = "Information"
    id: str
    title: str
    content: str = ""


class TestingSection(ContentModel):
    __test__ = False

    kind: Literal["Testing"] = "Testing"
    id: str
    title: str
    content: str = ""
    example: SectionExample | None = None
    test_cases: list[TestCase]
    function_to_test: str = MAIN_TARGET
    test_mode: Literal["function", "procedure"] = "function"

    @field_validator("function_to_test")
    @classmethod
    def _valid_target(cls, v: str) -> str:
        if v == MAIN_TARGET:
            return v
        return _check_identifier(v)


class ShapeCriteria(ContentModel):
    type: Literal["shape"] = "shape"
    shape: str  # rectangle, square, triangle, pentagon, hexagon, octagon, polygon
    width: float | None = None
    height: float | None = None
    side_length: float | None = None
    sides: int | None = None
    tolerance: float | None = None  # pixels; defaults to settings.turtle_length_tolerance
    angle_tolerance: float | None = None  # degrees
    require_closed: bool = True
    merge_colinear: bool = False


class Feedback(ContentModel):
    correct: str = "Great job!"
    incorrect: str = "Not quite. Check your drawing and try again."


class TurtleSection(ContentModel):
    kind: Literal["Turtle"] = "Turtle"
    id: str
    title: str
    content: str = ""
    instructions: str = ""
    initial_code: str = ""
    function_to_test: str = MAIN_TARGET
    test_cases: list[TestCase] = []
    validation_criteria: ShapeCriteria | None = None
    visual_threshold: float | None = None
    feedback: Feedback = Feedback()

    @field_validator("function_to_test")
    @classmethod
    def _valid_target(cls, v: str) -> str:
        if v == MAIN_TARGET:
            return v
        return _check_identifier(v)


class InputParam(ContentModel):
    name: str
    type: Literal["text", "number", "boolean"] = "text"
    placeholder: str = ""

    @field_validator("name")
    @classmethod
    def _valid_name(cls, v: str) -> str:
        return _check_identifier(v)


class CoverageChallenge(ContentModel):
    id: str
    expected_output: str
    hint: str | None = None


class CoverageSection(ContentModel):
    kind: Literal["Coverage"] = "Coverage"
    id: str
    title: str
    content: str = ""
    code: str
    input_params: list[InputParam]
    coverage_challenges: list[CoverageChallenge]

    def get_challenge(self, challenge_id: str) -> CoverageChallenge | None:
        for challenge in self.coverage_challenges:
            if challenge.id == challenge_id:
                return challenge
        return None


Section = Annotated[
    Union[InformationSection, TestingSection, TurtleSection, CoverageSection],
    Field(discriminator="kind"),
]

GRADABLE_SECTIONS = (TestingSection, TurtleSection, CoverageSection)


class Lesson(ContentModel):
    id: str
    title: str
    description: str = ""
    sections: list[Section]

    def get_section(self, section_id: str) -> Section | None:
        for section in self.sections:
            if section.id == section_id:
                return section
        return None

    @property
    def gradable_section_ids(self) -> list[str]:
        """Sections a student has to complete before the lesson counts as done."""
        return [s.id for s in self.sections if isinstance(s, GRADABLE_SECTIONS)]


# ---------------------------------------------------------------------------
# Lesson Loader
# ---------------------------------------------------------------------------


def load_lessons_from_json(path=None) -> list[Lesson]:
    """Load lessons from the local JSON file."""
    json_path = path or settings.lessons_file
    if not json_path.exists():
        logger.error(f"lessons file not found at {json_path}")
        return []

    with open(json_path, "r", encoding="utf-8") as f:
        data = json.load(f)
    lessons = [Lesson.model_validate(item) for item in data]
    logger.info("Loaded %d lesson(s) from %s", len(lessons), json_path)
    return lessons


# Load once at startup
ALL_LESSONS = load_lessons_from_json()


def get_all_lessons() -> list[Lesson]:
    return ALL_LESSONS


def get_lesson_by_id(lesson_id: str) -> Lesson | None:
    for lesson in ALL_LESSONS:
        if lesson.id == lesson_id:
            return lesson
    return None
