"""
Typed content model for a generated course.

Generators emit camelCase JSON (``mainContent``, ``speakerNotes``...), so every
model carries camelCase aliases while Python code uses snake_case names. All
fields default to empty values: a partially generated course must still load
so the scorer and gates can degrade scores instead of failing outright.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterator, List, Mapping, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel, to_snake

LOGGER = logging.getLogger(__name__)

MIN_SECTIONS = 5
MIN_LECTURES = 5

# "AI" as a word, or spelled out; plain substring matching would accept "detail".
DISCLOSURE_PATTERN = re.compile(r"\b(?:ai|artificial intelligence)\b", re.IGNORECASE)


class _ContentModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    @field_validator("*", mode="before")
    @classmethod
    def drop_nulls(cls, value: Any, info: Any) -> Any:
        # Generators sometimes emit explicit nulls for lists/strings; treat them as missing.
        if value is None:
            field = cls.model_fields.get(info.field_name)
            if field is not None and not field.is_required():
                return field.get_default(call_default_factory=True)
        return value


def _lift_assessment(data: Any) -> Any:
    # Writers group the final quiz and assignment under `assessment`.
    if not isinstance(data, Mapping) or not isinstance(data.get("assessment"), Mapping):
        return data
    payload = dict(data)
    assessment = payload.pop("assessment")
    for source, target in (("finalQuiz", "finalAssessment"), ("practicalAssignment", "practicalAssignment")):
        if source in assessment and not (payload.get(target) or payload.get(to_snake(target))):
            payload[target] = assessment[source]
    return payload


class ScriptSegment(_ContentModel):
    heading: str = Field(default="", validation_alias=AliasChoices("heading", "topic"))
    content: str = ""


class LectureScript(_ContentModel):
    opening: str = ""
    main_content: List[ScriptSegment] = Field(default_factory=list)
    summary: str = ""
    call_to_action: str = ""

    def text(self, *, include_call_to_action: bool = True) -> str:
        """Return the spoken parts of the script joined by blank lines."""

        parts = [self.opening]
        parts.extend(segment.content for segment in self.main_content)
        parts.append(self.summary)
        if include_call_to_action:
            parts.append(self.call_to_action)
        return "\n\n".join(part for part in parts if part)


class Slide(_ContentModel):
    title: str = ""
    bullets: List[str] = Field(default_factory=list, validation_alias=AliasChoices("bullets", "content"))
    speaker_notes: str = ""
    visual_type: str = "bullets"


class QuizQuestion(_ContentModel):
    question_number: Optional[int] = None
    question: str = ""
    type: str = "mcq"
    options: List[str] = Field(default_factory=list)
    correct_answer: str = ""
    explanation: str = ""
    difficulty: str = "medium"
    concept_tested: str = ""


class Quiz(_ContentModel):
    title: str = ""
    questions: List[QuizQuestion] = Field(default_factory=list)
    passing_score: int = 70
    needs_review: bool = False


class Lecture(_ContentModel):
    title: str = ""
    script: LectureScript = Field(default_factory=LectureScript)
    slides: List[Slide] = Field(default_factory=list)
    duration: Optional[float] = Field(default=None, description="Planned length in minutes.")

    def word_count(self) -> int:
        return len(self.script.text(include_call_to_action=False).split())


class Section(_ContentModel):
    title: str = ""
    lectures: List[Lecture] = Field(default_factory=list)
    quiz: Optional[Quiz] = None


class PracticalAssignment(_ContentModel):
    title: str = ""
    requirements: List[str] = Field(default_factory=list)
    deliverables: List[str] = Field(default_factory=list)


class CheatSheetSection(_ContentModel):
    heading: str = ""
    items: List[str] = Field(default_factory=list)


class CheatSheet(_ContentModel):
    title: str = ""
    sections: List[CheatSheetSection] = Field(default_factory=list)


class CourseMetadata(_ContentModel):
    title: str = ""
    description: str = ""
    objectives: List[str] = Field(default_factory=list)
    target_audience: str = ""
    keywords: List[str] = Field(default_factory=list)

    @field_validator("target_audience", mode="before")
    @classmethod
    def join_audience(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple)):
            return ", ".join(str(item) for item in value)
        return value

    @property
    def has_ai_disclosure(self) -> bool:
        return bool(DISCLOSURE_PATTERN.search(self.description))


class ContentArtifact(_ContentModel):
    """A complete generated course, as produced by the content generator."""

    metadata: CourseMetadata = Field(default_factory=CourseMetadata)
    sections: List[Section] = Field(default_factory=list)
    final_assessment: Optional[Quiz] = None
    practical_assignment: Optional[PracticalAssignment] = None
    cheat_sheet: Optional[CheatSheet] = None
    promotional_content: Dict[str, Any] = Field(default_factory=dict)
    generation_meta: Dict[str, Any] = Field(default_factory=dict, alias="_meta")

    @model_validator(mode="before")
    @classmethod
    def lift_assessment(cls, data: Any) -> Any:
        return _lift_assessment(data)

    def lectures(self) -> Iterator[Lecture]:
        for section in self.sections:
            yield from section.lectures

    @property
    def lecture_count(self) -> int:
        return sum(len(section.lectures) for section in self.sections)

    def all_questions(self) -> List[QuizQuestion]:
        """Final assessment questions followed by every section quiz question."""

        questions = list(self.final_assessment.questions) if self.final_assessment else []
        for section in self.sections:
            if section.quiz:
                questions.extend(section.quiz.questions)
        return questions

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)

    @classmethod
    def coerce(cls, data: "ContentArtifact | Mapping[str, Any] | None") -> "ContentArtifact":
        """Build an artifact from loosely-shaped input without raising.

        Top-level fields that fail validation are dropped one round at a time
        so a single malformed block (say, ``sections`` as a string) costs only
        that block.
        """

        if isinstance(data, ContentArtifact):
            return data
        if not isinstance(data, Mapping):
            LOGGER.warning("Content payload is %s, not a mapping; using an empty course", type(data).__name__)
            return cls()

        payload = dict(_lift_assessment(data))
        while True:
            try:
                return cls.model_validate(payload)
            except ValidationError as exc:
                invalid = cls._payload_keys({error["loc"][0] for error in exc.errors() if error.get("loc")})
                invalid &= set(payload)
                if not invalid:
                    LOGGER.warning("Content payload could not be salvaged: %s", exc)
                    return cls()
                LOGGER.warning("Dropping malformed content fields: %s", ", ".join(sorted(map(str, invalid))))
                for key in invalid:
                    payload.pop(key, None)

    @classmethod
    def _payload_keys(cls, locations: set[Any]) -> set[str]:
        """Expand error locations to both the field name and its alias."""

        keys = {str(location) for location in locations}
        for name, field in cls.model_fields.items():
            if name in keys or field.alias in keys:
                keys.add(name)
                if field.alias:
                    keys.add(field.alias)
        return keys


def structural_issues(artifact: ContentArtifact) -> List[str]:
    """Return violations of the minimum section/lecture structure.

    Both the generation retry loop and the curriculum gate call this, so the
    structural invariant is judged identically at both points.
    """

    issues: List[str] = []
    section_count = len(artifact.sections)
    lecture_count = artifact.lecture_count
    if section_count < MIN_SECTIONS:
        issues.append(f"Need {MIN_SECTIONS}+ sections (have {section_count})")
    if lecture_count < MIN_LECTURES:
        issues.append(f"Need {MIN_LECTURES}+ lectures (have {lecture_count})")
    return issues


__all__ = [
    "DISCLOSURE_PATTERN",
    "MIN_LECTURES",
    "MIN_SECTIONS",
    "CheatSheet",
    "CheatSheetSection",
    "ContentArtifact",
    "CourseMetadata",
    "Lecture",
    "LectureScript",
    "PracticalAssignment",
    "Quiz",
    "QuizQuestion",
    "ScriptSegment",
    "Section",
    "Slide",
    "structural_issues",
]
