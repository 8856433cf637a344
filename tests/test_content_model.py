from __future__ import annotations

import json

from coursemill.core.content import ContentArtifact, CourseMetadata, structural_issues
from tests.mocks.course_factory import build_course, course_payload


def test_assessment_block_is_lifted_to_top_level_fields() -> None:
    artifact = build_course()
    assert artifact.final_assessment is not None
    assert len(artifact.final_assessment.questions) == 12
    assert artifact.practical_assignment is not None
    assert artifact.practical_assignment.deliverables == ["A one-page weekly plan"]


def test_camel_case_aliases_and_topic_heading_alias() -> None:
    artifact = ContentArtifact.model_validate(
        {
            "sections": [
                {
                    "title": "Intro",
                    "lectures": [
                        {
                            "title": "One",
                            "script": {"mainContent": [{"topic": "Basics", "content": "Text"}], "callToAction": "Go"},
                            "slides": [{"title": "S", "content": ["a"], "speakerNotes": "n", "visualType": "diagram"}],
                        }
                    ],
                }
            ]
        }
    )
    lecture = artifact.sections[0].lectures[0]
    assert lecture.script.main_content[0].heading == "Basics"
    assert lecture.slides[0].bullets == ["a"]
    assert lecture.slides[0].visual_type == "diagram"
    assert lecture.script.call_to_action == "Go"


def test_target_audience_list_is_joined() -> None:
    meta = CourseMetadata.model_validate({"targetAudience": ["Team leads", "Managers"]})
    assert meta.target_audience == "Team leads, Managers"


def test_word_count_excludes_call_to_action() -> None:
    lecture = build_course().sections[0].lectures[0]
    with_cta = len(lecture.script.text().split())
    assert lecture.word_count() == with_cta - len(lecture.script.call_to_action.split())
    assert lecture.word_count() >= 200


def test_disclosure_requires_ai_as_a_word() -> None:
    assert CourseMetadata(description="This course was created with AI assistance.").has_ai_disclosure
    assert CourseMetadata(description="Built with artificial intelligence tools.").has_ai_disclosure
    assert not CourseMetadata(description="Every detail was checked by a human editor.").has_ai_disclosure


def test_coerce_drops_only_malformed_blocks() -> None:
    payload = course_payload()
    payload["sections"] = "not a list"
    artifact = ContentArtifact.coerce(payload)
    assert artifact.sections == []
    assert artifact.metadata.title == "Weekly Planning for Busy Professionals"
    assert artifact.final_assessment is not None


def test_coerce_handles_non_mapping_and_nulls() -> None:
    assert ContentArtifact.coerce(None).lecture_count == 0
    assert ContentArtifact.coerce(["unexpected"]).sections == []
    artifact = ContentArtifact.coerce({"metadata": {"title": "T", "objectives": None}, "sections": None})
    assert artifact.metadata.objectives == []
    assert artifact.sections == []


def test_structural_issues_report_sections_and_lectures() -> None:
    assert structural_issues(build_course()) == []
    issues = structural_issues(ContentArtifact())
    assert issues == ["Need 5+ sections (have 0)", "Need 5+ lectures (have 0)"]


def test_to_json_keeps_camel_case_and_meta() -> None:
    artifact = ContentArtifact.coerce({**course_payload(), "_meta": {"provider": "stub"}})
    data = json.loads(artifact.to_json())
    assert data["_meta"] == {"provider": "stub"}
    assert "finalAssessment" in data
    assert "mainContent" in data["sections"][0]["lectures"][0]["script"]
