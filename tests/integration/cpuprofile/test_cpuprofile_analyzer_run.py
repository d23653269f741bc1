"""Integration test: analyzer runner composes config and writes report artifacts."""

from __future__ import annotations

import json
import logging
import warnings
from pathlib import Path

import pytest

from cpuprof_analyzer.runners.cpuprofile_analyzer import CpuProfileAnalyzer, CpuProfileAnalyzerConfig
from cpuprof_analyzer.runners.cpuprofile_analyzer_main import main


def _write_profile(path: Path) -> Path:
    doc = {
        "startTime": 0,
        "endTime": 4_000_000,
        "nodes": [
            {"id": 1, "callFrame": {"functionName": "(root)", "url": "", "lineNumber": -1}, "hitCount": 0, "children": [2, 5]},
            {"id": 2, "callFrame": {"functionName": "switchboard", "url": "file:///srv/app/index.js", "lineNumber": 11}, "hitCount": 1, "children": [3]},
            {"id": 3, "callFrame": {"functionName": "get", "url": "file:///srv/lib/filesystem.js", "lineNumber": 52}, "hitCount": 4, "children": [4]},
            {"id": 4, "callFrame": {"functionName": "readFileSync", "url": "node:fs", "lineNumber": 400}, "hitCount": 6, "children": []},
            {"id": 5, "callFrame": {"functionName": "(garbage collector)", "url": ""}, "hitCount": 2, "children": []},
        ],
        "samples": [3, 4, 4, 3, 5, 4, 2, 3, 4, 4, 5, 3, 4],
        "timeDeltas": [120, 90, 110, 100, 300, 95, 80, 130, 105, 100, 280, 90, 100],
    }
    path.write_text(json.dumps(doc), encoding="utf-8")
    return path


@pytest.mark.integration
def test_runner_writes_report_artifacts(tmp_path: Path) -> None:
    """Runner emits JSON/YAML/Markdown/config/log artifacts for a target."""

    profile_path = _write_profile(tmp_path / "app.cpuprofile")
    out_dir = tmp_path / "out"

    analyzer = CpuProfileAnalyzer()
    report = analyzer.run(
        cfg=CpuProfileAnalyzerConfig(run_id="it-run"),
        overrides=[
            f"profile_path={profile_path}",
            "analysis.function_name=get",
            "analysis.file_filter=filesystem.js",
            "analysis.top_n=5",
            f"output.dir={out_dir}",
            "output.print_text=false",
        ],
    )

    assert analyzer.last_output_dir == out_dir.resolve()
    for name in ("report.json", "report.yaml", "report.md", "config.yaml", "analyzer.log"):
        assert (out_dir / name).is_file(), name

    assert len(report.targets) == 1
    callers = report.targets[0].callers
    assert callers.total_samples == 10
    assert [f.function_name for f in callers.entries[0].frames] == ["(root)", "switchboard"]

    payload = json.loads((out_dir / "report.json").read_text(encoding="utf-8"))
    assert payload["targets_found"] == 1
    assert payload["targets"][0]["callees"][0]["function_name"] == "readFileSync"
    assert payload["targets"][0]["callees"][0]["sample_count"] == 6
    assert "Target Nodes Found: 1" in analyzer.last_text


@pytest.mark.integration
def test_cli_zero_matches_exits_cleanly(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    profile_path = _write_profile(tmp_path / "app.cpuprofile")
    rc = main([str(profile_path), "--function", "nothingMatches", "--output-dir", str(tmp_path / "out")])
    assert rc == 0
    out = capsys.readouterr().out
    assert "Target Nodes Found: 0" in out


@pytest.mark.integration
def test_cli_without_function_lists_top_functions(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    profile_path = _write_profile(tmp_path / "app.cpuprofile")
    rc = main([str(profile_path), "--top", "3", "--output-dir", str(tmp_path / "out")])
    assert rc == 0
    out = capsys.readouterr().out
    assert "Top 3 Functions by Hit Count:" in out
    assert "1. readFileSync - 6 hits (node:fs)" in out


@pytest.mark.integration
def test_cli_missing_profile_is_fatal(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    rc = main([str(tmp_path / "absent.cpuprofile"), "--output-dir", str(tmp_path / "out")])
    assert rc == 1
    assert "ERROR" in capsys.readouterr().err


@pytest.mark.integration
def test_cli_malformed_profile_is_fatal(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    bad = tmp_path / "bad.cpuprofile"
    bad.write_text("{ this is not json", encoding="utf-8")
    rc = main([str(bad), "--function", "get", "--output-dir", str(tmp_path / "out")])
    assert rc == 1
    assert "invalid profile JSON" in capsys.readouterr().err


@pytest.mark.integration
@pytest.mark.parametrize("name", ["a\\", "tpl${x}", "it's ${oc.env:HOME}", "=,[]"])
def test_cli_filters_are_plain_substrings(tmp_path: Path, capsys: pytest.CaptureFixture[str], name: str) -> None:
    """Filter text is matched literally; a name that matches nothing still exits cleanly."""

    profile_path = _write_profile(tmp_path / "app.cpuprofile")
    out_dir = tmp_path / "out"
    rc = main([str(profile_path), "--function", name, "--file", name, "--output-dir", str(out_dir)])
    assert rc == 0
    out = capsys.readouterr().out
    assert "Target Nodes Found: 0" in out
    assert f"Function: {name}" in out

    payload = json.loads((out_dir / "report.json").read_text(encoding="utf-8"))
    assert payload["function_name"] == name
    assert payload["file_filter"] == name
    assert (out_dir / "config.yaml").is_file()


@pytest.mark.integration
def test_cli_extra_overrides_reach_config(tmp_path: Path) -> None:
    profile_path = _write_profile(tmp_path / "app.cpuprofile")
    out_dir = tmp_path / "out"
    rc = main(
        [
            str(profile_path),
            "--function",
            "get",
            "--output-dir",
            str(out_dir),
            "--override",
            "output.write_yaml=false",
            "--override",
            "output.print_text=false",
        ]
    )
    assert rc == 0
    assert (out_dir / "report.json").is_file()
    assert not (out_dir / "report.yaml").exists()


@pytest.mark.integration
def test_runner_routes_python_warnings_to_logging(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    profile_path = _write_profile(tmp_path / "app.cpuprofile")
    CpuProfileAnalyzer().run(
        cfg=CpuProfileAnalyzerConfig(run_id="it-warn", output_dir=str(tmp_path / "out")),
        overrides=[f"profile_path={profile_path}", "output.print_text=false"],
    )
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("always")
            with caplog.at_level(logging.WARNING, logger="py.warnings"):
                warnings.warn("late warning", UserWarning)
        assert any(r.name == "py.warnings" and "late warning" in r.getMessage() for r in caplog.records)
    finally:
        logging.captureWarnings(False)
