"""Course writers: the LM-backed writer and an offline template writer."""

from __future__ import annotations

import json
import logging
from textwrap import dedent
from typing import Any, Dict, List

from coursemill.core.content import ContentArtifact

from ..catalog import CatalogEntry
from ..collaborators import RetryFeedback
from ..errors import CollaboratorError, ServiceUnavailableError
from .lm_json import call_lm_json

LOGGER = logging.getLogger(__name__)

COURSE_SCHEMA = {
    "metadata": {
        "title": "Course title (10-80 chars)",
        "description": "200+ chars, must state that the course was created with AI assistance",
        "objectives": ["4-6 items starting with an action verb"],
        "targetAudience": "Who the course is for",
        "keywords": ["SEO keywords"],
    },
    "sections": [
        {
            "title": "Section title",
            "lectures": [
                {
                    "title": "Lecture title",
                    "duration": 7,
                    "script": {
                        "opening": "Hook",
                        "mainContent": [{"heading": "Topic", "content": "Narration"}],
                        "summary": "Key takeaways",
                        "callToAction": "What to do next",
                    },
                    "slides": [
                        {"title": "Slide", "bullets": ["Point"], "speakerNotes": "Notes", "visualType": "bullets"}
                    ],
                }
            ],
            "quiz": {"title": "Section Quiz", "questions": []},
        }
    ],
    "assessment": {"finalQuiz": {"questions": []}, "practicalAssignment": {"requirements": [], "deliverables": []}},
    "cheatSheet": {"title": "Quick Reference", "sections": [{"heading": "Key Definitions", "items": []}]},
    "promotionalContent": {"welcomeMessage": "Welcome message"},
}


class LMCourseWriter:
    """Prompts the writer LM for a full course as JSON.

    Retry feedback from a rejected attempt is appended to the prompt so the
    next attempt can target the weak dimensions.
    """

    def __init__(self, lm: Any, *, provider: str = "dspy") -> None:
        self.lm = lm
        self.provider = provider

    def generate(self, entry: CatalogEntry, *, feedback: RetryFeedback | None = None) -> ContentArtifact:
        prompt = build_course_prompt(entry, feedback=feedback)
        try:
            payload = call_lm_json(self.lm, prompt)
        except ValueError as exc:
            raise CollaboratorError(f"Writer returned unusable output for {entry.id}: {exc}") from exc
        except Exception as exc:
            raise ServiceUnavailableError(f"Writer LM call failed for {entry.id}: {exc}") from exc
        payload.setdefault("_meta", {})
        payload["_meta"].update({"provider": self.provider, "retry_of": feedback.attempt if feedback else None})
        return ContentArtifact.coerce(payload)


def build_course_prompt(entry: CatalogEntry, *, feedback: RetryFeedback | None = None) -> str:
    details = "\n".join(
        line
        for line in (
            f"Title: {entry.title}",
            f"Category: {entry.category}",
            f"Subcategory: {entry.subcategory}" if entry.subcategory else "",
            f"Target audience: {entry.target_audience}",
            f"Skill level: {entry.skill_level}",
            f"Duration: {entry.duration} minutes",
            f"Objectives: {', '.join(entry.objectives)}" if entry.objectives else "",
            f"Prerequisites: {', '.join(entry.prerequisites)}" if entry.prerequisites else "",
        )
        if line
    )
    prompt = dedent(
        """
        You are an expert instructional designer. Write a complete {duration}-minute micro-course.

        Rules:
        - Only verifiable facts about established methods; no invented statistics or studies.
        - Write in second person, open every lecture with a hook, end with a next step.
        - At least 5 sections and 2 real-world examples per lecture.
        - Every lecture has 2+ slides with speaker notes; vary the visual types.
        - Final quiz of 15 questions with explanations and mixed difficulty.
        - The description must say the course was created with AI assistance.
        - Return ONLY valid JSON matching the schema.
        """
    ).strip().format(duration=entry.duration)
    prompt += f"\n\nCOURSE DETAILS\n{details}\n\nJSON SCHEMA\n{json.dumps(COURSE_SCHEMA, indent=2)}"
    if feedback is not None:
        prompt += f"\n\nFEEDBACK FROM THE PREVIOUS ATTEMPT\n{feedback.as_prompt()}\nFix every issue listed above."
    return prompt


class TemplateCourseWriter:
    """Deterministic, offline writer that lays out a course from the catalog entry alone.

    Used when no LM is configured; the text is scaffolding for editors, not
    finished course material.
    """

    SECTION_PLAN = ("Introduction", "Foundations", "Core Techniques", "Applying the Method", "Common Pitfalls", "Summary and Closing")
    VISUALS = ("title", "bullets", "diagram", "comparison")

    def __init__(self, *, lectures_per_section: int = 2, lecture_minutes: int = 5) -> None:
        self.lectures_per_section = lectures_per_section
        self.lecture_minutes = lecture_minutes

    def generate(self, entry: CatalogEntry, *, feedback: RetryFeedback | None = None) -> ContentArtifact:
        objectives = entry.objectives or [
            f"Understand the core ideas of {entry.title}",
            f"Apply {entry.title} to everyday work",
            f"Identify common mistakes in {entry.title}",
            f"Build a personal action plan for {entry.title}",
        ]
        sections: List[Dict[str, Any]] = []
        for number, heading in enumerate(self.SECTION_PLAN, start=1):
            lectures = [self._lecture(entry, heading, index) for index in range(1, self.lectures_per_section + 1)]
            sections.append({"title": f"{heading}", "lectures": lectures, "quiz": self._section_quiz(heading, number)})

        description = (
            f"{entry.title} is a practical {entry.duration}-minute course for {entry.target_audience.lower()}. "
            f"You will work through {len(self.SECTION_PLAN)} short sections covering the essentials of {entry.category}, "
            "with examples, a quick-reference sheet, and a final assessment. "
            "This course was created with AI assistance and reviewed against established sources."
        )
        payload = {
            "metadata": {
                "title": entry.title,
                "description": description,
                "objectives": objectives,
                "targetAudience": entry.target_audience,
                "keywords": entry.keywords or [entry.category, entry.title],
            },
            "sections": sections,
            "practicalAssignment": {
                "title": f"{entry.title} Project",
                "requirements": [f"Apply {entry.title} to a real situation", "Document each step you took"],
                "deliverables": ["A one-page summary of your results"],
            },
            "cheatSheet": {
                "title": f"{entry.title} Quick Reference",
                "sections": [{"heading": heading, "items": [f"Key point from {heading.lower()}"]} for heading in self.SECTION_PLAN],
            },
            "_meta": {"provider": "template", "retry_of": feedback.attempt if feedback else None},
        }
        return ContentArtifact.coerce(payload)

    def _lecture(self, entry: CatalogEntry, heading: str, index: int) -> Dict[str, Any]:
        topic = f"{heading}: part {index}"
        subject = entry.title
        segments = [
            {
                "heading": "Why it matters",
                "content": (
                    f"In this part you look at {heading.lower()} for {subject}. According to established practice, "
                    "small and steady changes last longer than big one-time efforts. When you understand the reason "
                    "behind a habit, you are far more likely to keep it. Think about the last time you changed how "
                    "you work and what made the change stick. Keep that memory in mind while you go through the "
                    "next few minutes, because you will reuse it in the exercise at the end."
                ),
            },
            {
                "heading": "How it works",
                "content": (
                    "For example, you can take one task you already do every week and apply the idea to it. Write "
                    "down what you do today, then mark the single step that costs you the most time. Change only "
                    "that step for one week and compare the result with your notes. Tools such as a shared "
                    "checklist or a simple calendar reminder make the comparison easy, and they give your team a "
                    "clear record of what changed."
                ),
            },
            {
                "heading": "Putting it into practice",
                "content": (
                    "Imagine you are explaining the method to a colleague, such as a new team member who joined "
                    "this month. You would keep it short, show one concrete case, and let them try it right away. "
                    "Do the same for yourself: pick the case, try the new step, and review how it went after a "
                    f"few days. Over time these reviews become the backbone of how you apply {subject}."
                ),
            },
        ]
        return {
            "title": topic,
            "duration": self.lecture_minutes,
            "script": {
                "opening": f"Welcome back. Have you ever wondered how {subject} works in practice?",
                "mainContent": segments,
                "summary": f"You now know the essentials of {heading.lower()}, and you can apply them right away.",
                "callToAction": "Try this on your next task before you move on.",
            },
            "slides": [
                {
                    "title": topic,
                    "bullets": [f"{heading} in brief", "Why it matters to you", "One step to try"],
                    "speakerNotes": f"Introduce {heading.lower()} and connect it to the learner's work.",
                    "visualType": self.VISUALS[(index - 1) % len(self.VISUALS)],
                },
                {
                    "title": "Key takeaways",
                    "bullets": ["Start small", "Use an example", "Review the result"],
                    "speakerNotes": "Recap the three takeaways.",
                    "visualType": self.VISUALS[(index + 1) % len(self.VISUALS)],
                },
            ],
        }

    @staticmethod
    def _section_quiz(heading: str, number: int) -> Dict[str, Any]:
        return {
            "title": f"{heading} Quiz",
            "questions": [
                {
                    "questionNumber": 1,
                    "question": f"What is the main idea of section {number}, {heading}?",
                    "type": "mcq",
                    "options": ["A) The key idea", "B) An unrelated idea", "C) A common mistake", "D) None of these"],
                    "correctAnswer": "A",
                    "explanation": f"Section {number} focuses on the key idea of {heading.lower()}.",
                    "difficulty": "easy",
                },
                {
                    "questionNumber": 2,
                    "question": f"True or false: {heading} applies to everyday work.",
                    "type": "truefalse",
                    "options": ["True", "False"],
                    "correctAnswer": "True",
                    "explanation": "The section shows how to apply the idea to everyday tasks.",
                    "difficulty": "medium",
                },
            ],
        }


__all__ = ["LMCourseWriter", "TemplateCourseWriter", "build_course_prompt"]
