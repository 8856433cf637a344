from __future__ import annotations

import json
from pathlib import Path

import pytest

from coursemill.cli import run_course

PIPELINE_YAML = """
batch:
  cooldown_seconds: 0
catalog:
  entries_path: config/catalog.yaml
  status_path: data/status.json
  courses_dir: data/courses
"""

CATALOG_YAML = """
courses:
  - id: "201"
    title: Weekly Planning Basics
    category: Productivity
    priority: 1
  - id: "202"
    title: Running Effective One-on-Ones
    category: Leadership
    priority: 2
"""


@pytest.fixture(autouse=True)
def clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("QUALITY_THRESHOLD_TARGET", "QUALITY_THRESHOLD_MINIMUM", "COURSEMILL_OFFLINE", "COURSEMILL_WEBHOOK_URL"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def repo(tmp_path: Path) -> Path:
    root = tmp_path / "repo"
    (root / "config").mkdir(parents=True)
    (root / "config" / "pipeline.yaml").write_text(PIPELINE_YAML, encoding="utf-8")
    (root / "config" / "catalog.yaml").write_text(CATALOG_YAML, encoding="utf-8")
    return root


def _status(repo: Path) -> dict:
    return json.loads((repo / "data" / "status.json").read_text(encoding="utf-8"))


def test_offline_single_course_run(repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = run_course.main(["--repo-root", str(repo), "--offline", "--course", "202", "--skip-cheatsheet"])

    assert exit_code == 0
    out = capsys.readouterr().out
    assert "[run] 202 'Running Effective One-on-Ones'" in out
    assert "cheatsheet  skipped" in out
    assert _status(repo)["202"]["status"] in {"completed", "needs_review"}
    assert "201" not in _status(repo)
    assert any((repo / "outputs" / "logs").glob("result-*.json"))


def test_offline_batch_run(repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = run_course.main(["--repo-root", str(repo), "--offline", "--batch", "5", "--quiet"])

    assert exit_code == 0
    assert capsys.readouterr().out == ""
    assert set(_status(repo)) == {"201", "202"}


def test_batch_respects_category(repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = run_course.main(["--repo-root", str(repo), "--offline", "--batch", "2", "--category", "Leadership"])

    assert exit_code == 0
    out = capsys.readouterr().out
    assert "[batch] Batch complete: 1/1 succeeded, 0 failed" in out
    assert set(_status(repo)) == {"202"}


def test_dry_run_does_not_touch_catalog(repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = run_course.main(["--repo-root", str(repo), "--offline", "--dry-run", "--skip-voice", "--skip-video"])

    assert exit_code == 0
    out = capsys.readouterr().out
    assert "[dry-run] course: 201: Weekly Planning Basics" in out
    assert "[dry-run] stages: slides, quiz, cheatsheet | offline=True" in out
    assert "target=95 acceptable=90 minimum=85" in out
    assert not (repo / "data" / "status.json").exists()


def test_dry_run_batch_lists_planned_courses(repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = run_course.main(["--repo-root", str(repo), "--offline", "--dry-run", "--batch", "1"])

    assert exit_code == 0
    out = capsys.readouterr().out
    assert "[dry-run] batch of 1 (requested 1, 2 pending)" in out
    assert "  - 201: Weekly Planning Basics" in out


def test_unknown_course_exits_with_selection_code(repo: Path, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = run_course.main(["--repo-root", str(repo), "--offline", "--course", "missing"])

    assert exit_code == 2
    assert "No catalog entry found for course 'missing'" in capsys.readouterr().err


def test_missing_config_is_a_usage_error(tmp_path: Path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        run_course.main(["--repo-root", str(tmp_path), "--offline"])
    assert excinfo.value.code == 2


def test_course_and_batch_are_mutually_exclusive(repo: Path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        run_course.main(["--repo-root", str(repo), "--course", "201", "--batch", "2"])
    assert excinfo.value.code == 2


def test_threshold_env_is_applied(repo: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.setenv("QUALITY_THRESHOLD_TARGET", "97")
    exit_code = run_course.main(["--repo-root", str(repo), "--offline", "--dry-run"])
    assert exit_code == 0
    assert "target=97" in capsys.readouterr().out
