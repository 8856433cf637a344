from __future__ import annotations

import json
import subprocess
from pathlib import Path
from typing import Any, List

import httpx
import pytest
from PIL import Image

from apps.orchestrator.collaborators import AudioFile, RetryFeedback
from apps.orchestrator.errors import CollaboratorError, RenderError, ServiceUnavailableError
from apps.orchestrator.stages import (
    FFmpegRenderer,
    LMCourseWriter,
    LMQuizAuthor,
    MarkdownCheatSheetBuilder,
    MarkdownSlideMaker,
    SpeechNarrator,
    TemplateCourseWriter,
    WebhookNotifier,
)
from apps.orchestrator.stages.lm_json import extract_json
from apps.orchestrator.stages.narrator import chunk_text
from apps.orchestrator.stages.quiz import fallback_assessment, fallback_difficulty
from apps.orchestrator.stages.writer import build_course_prompt
from coursemill.core.config import NarrationConfig, RenderConfig
from coursemill.core.content import ContentArtifact
from tests.mocks.course_factory import build_course, catalog_entries, course_payload, make_orchestrator
from tests.mocks.services_api import FAKE_MP3, ServicesAPIMock


@pytest.fixture()
def services() -> ServicesAPIMock:
    server = ServicesAPIMock()
    try:
        yield server
    finally:
        server.close()


class _FakeLM:
    def __init__(self, replies: List[Any]) -> None:
        self.replies = list(replies)
        self.prompts: List[str] = []

    def __call__(self, *, prompt: str) -> Any:
        self.prompts.append(prompt)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


# ----------------------------------------------------------------------
# Writers


def test_lm_writer_parses_fenced_json_and_tags_meta() -> None:
    lm = _FakeLM([["```json\n" + json.dumps(course_payload()) + "\n```"]])
    entry = catalog_entries(1)[0]
    feedback = RetryFeedback(attempt=1, overall=80, failing_dimensions=("accuracy",), hints={"accuracy": ["Add sources"]})

    artifact = LMCourseWriter(lm).generate(entry, feedback=feedback)

    assert artifact.lecture_count == 8
    assert artifact.generation_meta == {"provider": "dspy", "retry_of": 1}
    assert "Improve accuracy: Add sources" in lm.prompts[0]
    assert "Attempt 1 was rejected." in lm.prompts[0]


def test_lm_writer_maps_failures_to_collaborator_errors() -> None:
    entry = catalog_entries(1)[0]
    with pytest.raises(CollaboratorError, match="unusable output"):
        LMCourseWriter(_FakeLM(["no json here"])).generate(entry)
    with pytest.raises(ServiceUnavailableError):
        LMCourseWriter(_FakeLM([ConnectionError("timeout")])).generate(entry)


def test_course_prompt_lists_entry_details() -> None:
    entry = catalog_entries(1)[0].model_copy(update={"objectives": ["Plan a week"], "duration": 45})
    prompt = build_course_prompt(entry)
    assert "Write a complete 45-minute micro-course" in prompt
    assert "Objectives: Plan a week" in prompt
    assert "FEEDBACK" not in prompt


def test_template_writer_is_deterministic_and_structured() -> None:
    entry = catalog_entries(1)[0]
    writer = TemplateCourseWriter()
    first = writer.generate(entry)
    assert first.to_json() == writer.generate(entry).to_json()
    assert len(first.sections) == 6
    assert first.lecture_count == 12
    assert all(lecture.word_count() >= 200 for lecture in first.lectures())
    assert first.metadata.has_ai_disclosure
    assert first.final_assessment is None


# ----------------------------------------------------------------------
# Quiz


def test_fallback_assessment_is_flagged_for_review() -> None:
    quiz = fallback_assessment(build_course(), 15)
    assert len(quiz.questions) == 15
    assert quiz.needs_review
    assert [fallback_difficulty(index) for index in (0, 4, 5, 11, 12)] == ["easy", "easy", "medium", "medium", "hard"]
    assert quiz.questions[6].concept_tested == "Introduction to Weekly Planning"


def test_lm_quiz_author_accepts_valid_reply() -> None:
    reply = {
        "questions": [
            {
                "questionNumber": 1,
                "question": "Which step comes first in weekly planning?",
                "type": "mcq",
                "options": ["A) Outcomes", "B) Email"],
                "correctAnswer": "A",
                "explanation": "Outcomes give the week a purpose.",
                "difficulty": "easy",
            }
        ]
    }
    quiz = LMQuizAuthor(_FakeLM([json.dumps(reply)])).final_assessment(build_course(), 1)
    assert not quiz.needs_review
    assert quiz.questions[0].correct_answer == "A"


def test_lm_quiz_author_falls_back_on_bad_reply() -> None:
    bad = {"questions": [{"question": "Short?", "type": "mcq", "options": []}]}
    quiz = LMQuizAuthor(_FakeLM([json.dumps(bad)])).final_assessment(build_course(), 10)
    assert quiz.needs_review
    assert len(quiz.questions) == 10
    assert LMQuizAuthor(_FakeLM([RuntimeError("rate limited")])).final_assessment(build_course(), 3).needs_review


def test_extract_json_ignores_surrounding_text() -> None:
    assert extract_json('Here you go: {"a": 1} thanks') == {"a": 1}
    assert extract_json("[1, 2]") is None
    assert extract_json("{broken") is None


# ----------------------------------------------------------------------
# Narration


def test_chunk_text_respects_sentence_boundaries() -> None:
    text = "First sentence here. Second one follows! Third? " + "x" * 25
    chunks = chunk_text(text, 24)
    assert chunks[0] == "First sentence here."
    assert all(len(chunk) <= 24 for chunk in chunks)
    assert "".join(chunks).replace(" ", "") == text.replace(" ", "")


def test_narrator_writes_audio_per_lecture(services: ServicesAPIMock, tmp_path: Path) -> None:
    config = NarrationConfig(max_chunk_chars=400, chunk_delay_seconds=0.25)
    sleeps: List[float] = []
    narrator = SpeechNarrator(config, client=services.build_httpx_client(), sleep=sleeps.append)

    result = narrator.narrate(build_course(), tmp_path)

    assert result.successful_count == result.total_count == 8
    assert [audio.path.name for audio in result.audio_files][:2] == ["lecture-01.mp3", "lecture-02.mp3"]
    assert result.audio_files[0].path.read_bytes().startswith(FAKE_MP3)
    assert len(services.speech_requests) > 8
    assert all(len(request["input"]) <= 400 for request in services.speech_requests)
    assert sleeps and set(sleeps) == {0.25}


def test_narrator_skips_failed_lectures(services: ServicesAPIMock, tmp_path: Path) -> None:
    payload = course_payload()
    payload["sections"][1]["lectures"][0]["script"]["opening"] = "Welcome to the FAIL-MARKER lecture."
    services.fail_when_input_contains = "FAIL-MARKER"
    narrator = SpeechNarrator(NarrationConfig(chunk_delay_seconds=0), client=services.build_httpx_client())

    result = narrator.narrate(ContentArtifact.coerce(payload), tmp_path)

    assert result.partial
    assert result.successful_count == 7
    assert 3 not in [audio.lecture_index for audio in result.audio_files]


def test_narrator_requires_a_healthy_service(services: ServicesAPIMock, tmp_path: Path) -> None:
    services.healthy = False
    narrator = SpeechNarrator(NarrationConfig(), client=services.build_httpx_client())
    assert not narrator.health()
    with pytest.raises(ServiceUnavailableError):
        narrator.narrate(build_course(), tmp_path)


# ----------------------------------------------------------------------
# Slides, cheat sheet, render


def test_slide_deck_and_thumbnail(tmp_path: Path) -> None:
    maker = MarkdownSlideMaker(thumbnail_size=(400, 225))
    artifact = build_course()

    deck = maker.present(artifact, tmp_path)
    thumbnail = maker.thumbnail(artifact.metadata, tmp_path)

    assert deck.slide_count == 16
    text = deck.path.read_text(encoding="utf-8")
    assert text.startswith("---\nmarp: true")
    assert "<!-- visual: diagram -->" in text
    with Image.open(thumbnail) as image:
        assert image.size == (400, 225)


def test_slide_maker_rejects_course_without_slides(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        MarkdownSlideMaker().present(ContentArtifact(), tmp_path)


def test_cheatsheet_uses_course_sheet_or_outline(tmp_path: Path) -> None:
    builder = MarkdownCheatSheetBuilder()
    path = builder.build(build_course(), tmp_path)
    assert path.read_text(encoding="utf-8").startswith("# Weekly Planning Quick Reference")

    derived = builder.build(build_course(cheatSheet=None), tmp_path)
    text = derived.read_text(encoding="utf-8")
    assert "## Objectives" in text
    assert "## Summary and Closing" in text


def test_renderer_runs_ffmpeg_per_audio_file(tmp_path: Path) -> None:
    commands: List[List[str]] = []

    def fake_run(cmd: List[str], **kwargs: Any) -> subprocess.CompletedProcess:
        commands.append(cmd)
        output = Path(cmd[-1])
        if "lecture-02" in output.name:
            return subprocess.CompletedProcess(cmd, 1, "", "encoder failed")
        output.write_bytes(b"mp4")
        return subprocess.CompletedProcess(cmd, 0, "", "")

    audio = [AudioFile(lecture_index=index, path=tmp_path / f"lecture-{index:02d}.mp3") for index in (1, 2, 3)]
    renderer = FFmpegRenderer(RenderConfig(width=640, height=360), run=fake_run, which=lambda name: f"/usr/bin/{name}")

    result = renderer.render(build_course(), tmp_path, audio)

    assert result.successful_count == 2
    assert result.total_count == 3
    assert [video.lecture_index for video in result.video_files] == [1, 3]
    assert commands[0][0] == "/usr/bin/ffmpeg"
    assert "scale=640:360" in commands[0]
    assert (tmp_path / "videos" / "lecture-01.png").exists()


def test_renderer_without_ffmpeg_raises(tmp_path: Path) -> None:
    renderer = FFmpegRenderer(RenderConfig(), which=lambda name: None)
    with pytest.raises(RenderError, match="ffmpeg binary not found"):
        renderer.render(build_course(), tmp_path, [AudioFile(lecture_index=1, path=tmp_path / "a.mp3")])


def test_renderer_timeout_skips_lecture(tmp_path: Path) -> None:
    def slow_run(cmd: List[str], **kwargs: Any) -> subprocess.CompletedProcess:
        raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

    renderer = FFmpegRenderer(RenderConfig(), run=slow_run, which=lambda name: name)
    result = renderer.render(build_course(), tmp_path, [AudioFile(lecture_index=1, path=tmp_path / "a.mp3")])
    assert result.successful_count == 0
    assert result.video_files == ()


# ----------------------------------------------------------------------
# Notifications


def test_webhook_notifier_posts_run_and_batch(services: ServicesAPIMock, tmp_path: Path) -> None:
    notifier = WebhookNotifier(services.webhook_url, client=services.build_httpx_client())
    orchestrator = make_orchestrator(tmp_path, notifier=notifier)

    result = orchestrator.run()

    assert services.webhooks[0]["event"] == "course_run"
    assert services.webhooks[0]["course_id"] == "c1"
    assert services.webhooks[0]["status"] == "completed"
    assert services.webhooks[0]["text"] == result.summary


def test_webhook_notifier_raises_on_http_error(tmp_path: Path) -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(500))
    notifier = WebhookNotifier("http://hooks.local/fail", client=httpx.Client(transport=transport))
    with pytest.raises(httpx.HTTPStatusError):
        notifier.notify(make_orchestrator(tmp_path).run())
