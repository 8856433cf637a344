"""Final assessment authoring: LM-backed author plus a deterministic fallback."""

from __future__ import annotations

import logging
from textwrap import dedent
from typing import Any, List

from coursemill.core.content import ContentArtifact, Quiz, QuizQuestion

from .lm_json import call_lm_json

LOGGER = logging.getLogger(__name__)

FALLBACK_OPTIONS = ["A) Correct", "B) Incorrect", "C) Incorrect", "D) Incorrect"]
EASY_COUNT = 5
MEDIUM_COUNT = 7


def fallback_difficulty(index: int) -> str:
    """First 5 questions easy, next 7 medium, the rest hard."""

    if index < EASY_COUNT:
        return "easy"
    if index < EASY_COUNT + MEDIUM_COUNT:
        return "medium"
    return "hard"


def fallback_assessment(artifact: ContentArtifact, count: int) -> Quiz:
    """Placeholder questions cycling through section titles, flagged for human review."""

    titles = [section.title or f"Section {index + 1}" for index, section in enumerate(artifact.sections)]
    questions = [
        QuizQuestion(
            question_number=index + 1,
            question=f"Question about {titles[index % len(titles)] if titles else 'the course'}",
            type="mcq",
            options=list(FALLBACK_OPTIONS),
            correct_answer="A",
            explanation="Review course material.",
            difficulty=fallback_difficulty(index),
            concept_tested=titles[index % len(titles)] if titles else "",
        )
        for index in range(count)
    ]
    return Quiz(title="Final Assessment", questions=questions, passing_score=70, needs_review=True)


def validate_quiz(quiz: Quiz) -> List[str]:
    """Return problems that make a quiz unusable as-is."""

    if not quiz.questions:
        return ["No questions"]
    issues: List[str] = []
    for position, question in enumerate(quiz.questions, start=1):
        label = f"Q{question.question_number or position}"
        if len(question.question) < 10:
            issues.append(f"{label}: question too short")
        if question.type == "mcq" and len(question.options) < 2:
            issues.append(f"{label}: needs options")
        if not question.correct_answer:
            issues.append(f"{label}: no answer")
    return issues


class LMQuizAuthor:
    """Asks the quiz LM for a final assessment; falls back when the reply is unusable."""

    def __init__(self, lm: Any) -> None:
        self.lm = lm

    def final_assessment(self, artifact: ContentArtifact, count: int) -> Quiz:
        try:
            payload = call_lm_json(self.lm, self._prompt(artifact, count))
            quiz = Quiz(title="Final Assessment", passing_score=70, questions=payload.get("questions") or [])
        except Exception as exc:
            LOGGER.warning("Quiz LM call failed; using fallback assessment: %s", exc)
            return fallback_assessment(artifact, count)

        issues = validate_quiz(quiz)
        if issues:
            LOGGER.warning("Quiz LM reply rejected (%s); using fallback assessment", "; ".join(issues[:3]))
            return fallback_assessment(artifact, count)
        return quiz

    @staticmethod
    def _prompt(artifact: ContentArtifact, count: int) -> str:
        topics = "\n".join(
            f"- {section.title}: {', '.join(lecture.title for lecture in section.lectures)}" for section in artifact.sections
        )
        objectives = "\n".join(artifact.metadata.objectives)
        return dedent(
            f"""
            Generate a final assessment quiz. Return ONLY valid JSON.
            COURSE: {artifact.metadata.title or 'Course'}
            TOPICS:
            {topics}
            OBJECTIVES:
            {objectives}

            Generate {count} questions mixing mcq, truefalse and scenario types,
            spread across easy, medium and hard difficulty, each with an explanation.

            Return: {{"questions": [{{"questionNumber": 1, "question": "...", "type": "mcq|truefalse|scenario",
            "options": ["A) ...", "B) ...", "C) ...", "D) ..."], "correctAnswer": "A", "explanation": "...",
            "difficulty": "easy|medium|hard", "conceptTested": "..."}}]}}
            """
        ).strip()


__all__ = ["LMQuizAuthor", "fallback_assessment", "fallback_difficulty", "validate_quiz"]
