from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from apps.orchestrator import eval_loop
from tests.mocks.course_factory import course_payload


@pytest.fixture(autouse=True)
def clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("QUALITY_THRESHOLD_TARGET", "QUALITY_THRESHOLD_MINIMUM", eval_loop.ENV_REPO_ROOT):
        monkeypatch.delenv(name, raising=False)


def _seed_workspace(tmp_path: Path, payload: dict | None = None, *, name: str = "c1-weekly-planning") -> Path:
    workspace = tmp_path / "courses" / name
    (workspace / "audio").mkdir(parents=True)
    (workspace / "content.json").write_text(json.dumps(payload or course_payload()), encoding="utf-8")
    return workspace


def test_score_workspace_passes(tmp_path: Path) -> None:
    workspace = _seed_workspace(tmp_path)
    (workspace / "audio" / "lecture-01.mp3").write_bytes(b"ID3")
    runner = CliRunner()

    result = runner.invoke(eval_loop.app, [str(workspace), "--repo-root", str(tmp_path)])

    assert result.exit_code == 0, result.output
    assert "Overall: 100/100" in result.output
    assert "Scored 1 course(s); 0 did not pass." in result.output


def test_score_writes_jsonl_records(tmp_path: Path) -> None:
    workspace = _seed_workspace(tmp_path)
    output_dir = tmp_path / "evaluations"
    runner = CliRunner()

    result = runner.invoke(
        eval_loop.app,
        [str(workspace / "content.json"), "--repo-root", str(tmp_path), "--output-dir", str(output_dir), "--quiet"],
    )

    assert result.exit_code == 0, result.output
    files = list(output_dir.glob("eval-*.jsonl"))
    assert len(files) == 1
    record = json.loads(files[0].read_text(encoding="utf-8").splitlines()[0])
    assert record["quality"]["overall"] == 100
    assert record["gates"]["passed"] is True
    assert record["gates"]["gates"][2]["status"] == "skipped"


def test_failing_course_sets_exit_code(tmp_path: Path) -> None:
    payload = course_payload()
    payload["metadata"]["description"] = "A practical course about planning your week. " * 6
    good = _seed_workspace(tmp_path)
    bad = _seed_workspace(tmp_path, payload, name="c2-no-disclosure")
    runner = CliRunner()

    result = runner.invoke(eval_loop.app, [str(good), str(bad), "--repo-root", str(tmp_path), "--quiet"])

    assert result.exit_code == 1
    assert "Scored 2 course(s); 1 did not pass." in result.output


def test_no_gates_scores_only(tmp_path: Path) -> None:
    payload = course_payload()
    for section in payload["sections"]:
        for lecture in section["lectures"]:
            lecture["duration"] = 20
    workspace = _seed_workspace(tmp_path, payload)
    runner = CliRunner()

    gated = runner.invoke(eval_loop.app, [str(workspace), "--repo-root", str(tmp_path), "--quiet"])
    ungated = runner.invoke(eval_loop.app, [str(workspace), "--repo-root", str(tmp_path), "--quiet", "--no-gates"])

    assert gated.exit_code == 1
    assert ungated.exit_code == 0


def test_missing_and_invalid_content(tmp_path: Path) -> None:
    runner = CliRunner()
    missing = runner.invoke(eval_loop.app, [str(tmp_path / "nowhere"), "--repo-root", str(tmp_path)])
    assert missing.exit_code == 1

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    invalid = runner.invoke(eval_loop.app, [str(broken), "--repo-root", str(tmp_path)])
    assert invalid.exit_code == 1


def test_invalid_config_exits_with_code_two(tmp_path: Path) -> None:
    workspace = _seed_workspace(tmp_path)
    config = tmp_path / "pipeline.yaml"
    config.write_text("quality:\n  target: 50\n  minimum: 90\n", encoding="utf-8")
    runner = CliRunner()

    result = runner.invoke(eval_loop.app, [str(workspace), "--config", str(config)])

    assert result.exit_code == 2


def test_repo_root_env_supplies_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "config").mkdir()
    (tmp_path / "config" / "pipeline.yaml").write_text("quality:\n  target: 100\n  acceptable: 100\n  minimum: 100\n", encoding="utf-8")
    payload = course_payload()
    payload["sections"][0]["lectures"][0]["script"]["summary"] = "This will maybe help you every week."
    workspace = _seed_workspace(tmp_path, payload)
    monkeypatch.setenv(eval_loop.ENV_REPO_ROOT, str(tmp_path))
    runner = CliRunner()

    result = runner.invoke(eval_loop.app, [str(workspace), "--quiet", "--no-gates"])

    assert result.exit_code == 1
