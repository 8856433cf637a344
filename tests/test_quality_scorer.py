from __future__ import annotations

import copy
from pathlib import Path

import pytest

from apps.orchestrator.quality import (
    DIMENSIONS,
    WEIGHTS,
    ProductionMeta,
    QualityScorer,
    aggregate,
    format_quality_report,
    improvement_hints,
    round_half_up,
)
from coursemill.core.config import QualityThresholds
from tests.mocks.course_factory import course_payload


@pytest.fixture()
def scorer() -> QualityScorer:
    return QualityScorer()


def test_weights_sum_to_one() -> None:
    assert sum(WEIGHTS.values()) == 1
    assert tuple(WEIGHTS) == DIMENSIONS


def test_reference_course_scores_full_marks(scorer: QualityScorer) -> None:
    evaluation = scorer.evaluate(course_payload())
    assert {name: evaluation.score(name) for name in DIMENSIONS} == {name: 100 for name in DIMENSIONS}
    assert evaluation.overall == 100
    assert evaluation.passing
    assert evaluation.meets_target
    assert evaluation.issues() == []


def test_evaluation_is_deterministic(scorer: QualityScorer) -> None:
    payload = course_payload()
    assert scorer.evaluate(payload).as_dict() == scorer.evaluate(copy.deepcopy(payload)).as_dict()


def test_single_weak_dimension_fails_despite_high_overall(scorer: QualityScorer) -> None:
    scores = {name: 100 for name in DIMENSIONS}
    scores["engagement_clarity"] = 84
    evaluation = scorer.from_scores(scores)
    assert evaluation.overall == 99
    assert not evaluation.passing
    assert evaluation.failing_dimensions == ("engagement_clarity",)
    assert "1 dimension(s) below 85" in evaluation.summary


def test_overall_rounds_half_up(scorer: QualityScorer) -> None:
    scores = {name: 80 for name in DIMENSIONS}
    scores["accuracy"] = 90
    assert scorer.from_scores(scores).overall == 83
    assert round_half_up(82.5) == 83
    assert round_half_up(2.5) == 3


def test_aggregate_treats_missing_dimensions_as_zero() -> None:
    assert aggregate({"accuracy": 100}) == 25


def test_empty_course_degrades_instead_of_raising(scorer: QualityScorer) -> None:
    evaluation = scorer.evaluate(None)
    assert evaluation.score("production_completeness") == 0
    assert not evaluation.passing
    assert "No lectures to produce" in evaluation.dimensions["production_completeness"].issues


def test_missing_audio_files_cost_production_points(scorer: QualityScorer, tmp_path: Path) -> None:
    production = ProductionMeta(
        audio_files=(tmp_path / "lecture-01.mp3", tmp_path / "lecture-02.mp3"),
        audio_requested=True,
        exists=lambda path: False,
    )
    evaluation = scorer.evaluate(course_payload(), production)
    assert evaluation.score("production_completeness") == 91
    assert "Only 0/2 audio files on disk" in evaluation.dimensions["production_completeness"].issues


def test_audio_on_disk_counts_as_present(scorer: QualityScorer, tmp_path: Path) -> None:
    audio = tmp_path / "lecture-01.mp3"
    audio.write_bytes(b"ID3")
    evaluation = scorer.evaluate(course_payload(), ProductionMeta(audio_files=(audio,)))
    assert evaluation.score("production_completeness") == 100


def test_speculative_phrase_lowers_accuracy(scorer: QualityScorer) -> None:
    payload = course_payload()
    payload["sections"][0]["lectures"][0]["script"]["summary"] = "This will maybe help you every week."
    evaluation = scorer.evaluate(payload)
    assert evaluation.score("accuracy") == 92
    assert evaluation.overall == 98
    assert evaluation.passing
    assert evaluation.meets_target
    assert improvement_hints(evaluation) == {"accuracy": ["1 speculative phrases found"]}


def test_missing_disclosure_fails_accuracy(scorer: QualityScorer) -> None:
    payload = course_payload()
    payload["metadata"]["description"] = "A practical course about planning your week." * 5
    evaluation = scorer.evaluate(payload)
    assert evaluation.score("accuracy") == 80
    assert "accuracy" in evaluation.failing_dimensions
    assert "Missing AI disclosure in description" in evaluation.dimensions["accuracy"].issues


def test_thresholds_change_passing_but_not_scores() -> None:
    strict = QualityScorer(QualityThresholds(target=99, acceptable=99, minimum=99))
    scores = {name: 98 for name in DIMENSIONS}
    lenient = QualityScorer().from_scores(scores)
    tight = strict.from_scores(scores)
    assert lenient.overall == tight.overall == 98
    assert lenient.passing and not tight.passing


def test_quality_report_lists_every_dimension(scorer: QualityScorer) -> None:
    report = format_quality_report(scorer.evaluate(course_payload()))
    assert "Overall: 100/100 (PASSED (100/100))" in report
    for name in DIMENSIONS:
        assert f"{name} (" in report
