"""CLI integration smoke tests for spreadsheet-merge."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pandas as pd
import pytest
from openpyxl import load_workbook
from typer.testing import CliRunner

import spreadsheet_merge.cli as cli_mod
from spreadsheet_merge import __version__
from spreadsheet_merge import oracle as oracle_mod
from spreadsheet_merge.cli import app
from spreadsheet_merge.config import Settings
from spreadsheet_merge.export import SHEET_NAME

runner = CliRunner()


def _write_csv(tmp_path: Path, name: str, rows: str) -> Path:
    path = tmp_path / name
    path.write_text(rows, encoding="utf-8")
    return path


@pytest.fixture
def inputs(tmp_path: Path) -> list[Path]:
    return [
        _write_csv(tmp_path, "File1.csv", "Name,Email\nAlice,a@x.com\n"),
        _write_csv(tmp_path, "File2.csv", "Name,E-mail\nBob,b@x.com\nCarol,c@x.com\n"),
    ]


@pytest.fixture
def no_api_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli_mod, "load_settings", lambda: Settings(api_key=None))


def _input_args(paths: list[Path]) -> list[str]:
    args: list[str] = []
    for path in paths:
        args += ["--input", str(path)]
    return args


def _read_json(path: Path) -> dict[str, Any]:
    return json.loads(path.read_text(encoding="utf-8"))


def test_identity_merge_writes_all_artifacts(tmp_path: Path, inputs: list[Path]) -> None:
    out_dir = tmp_path / "out"

    result = runner.invoke(app, ["merge", *_input_args(inputs), "--out-dir", str(out_dir), "--quiet"])

    assert result.exit_code == 0, result.stdout
    ws = load_workbook(out_dir / "merged_data.xlsx")[SHEET_NAME]
    assert [c.value for c in ws[1]] == ["Name", "Email", "E-mail"]
    assert ws.max_row == 4

    report = _read_json(out_dir / "merge_report.json")
    assert report["rows_in"] == report["rows_out"] == 3
    assert report["standard_headers"] == ["Name", "Email", "E-mail"]
    assert report["degraded"] is False

    manifest = _read_json(out_dir / "run_manifest.json")
    assert manifest["status"] == "success"
    assert [item["rows"] for item in manifest["inputs"]] == [1, 2]


def test_nonquiet_merge_shows_panels_and_preview(tmp_path: Path, inputs: list[Path]) -> None:
    result = runner.invoke(app, ["merge", *_input_args(inputs), "--out-dir", str(tmp_path / "o")])

    assert result.exit_code == 0
    assert "Merge Start" in result.stdout
    assert "Merged Result" in result.stdout
    assert "Merge Complete" in result.stdout
    assert "Alice" in result.stdout
    assert "File1.csv (0.0 KB): 1 rows x 2 columns" in result.stdout


def test_preview_can_be_disabled(tmp_path: Path, inputs: list[Path]) -> None:
    result = runner.invoke(
        app, ["merge", *_input_args(inputs), "--out-dir", str(tmp_path / "o"), "--preview-rows", "0"]
    )

    assert result.exit_code == 0
    assert "Merged Result" not in result.stdout


def test_semantic_without_api_key_degrades_to_identity(
    tmp_path: Path, inputs: list[Path], no_api_key: None
) -> None:
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        ["merge", *_input_args(inputs), "--strategy", "semantic", "--out-dir", str(out_dir), "--quiet"],
    )

    assert result.exit_code == 0
    report = _read_json(out_dir / "merge_report.json")
    assert report["degraded"] is True
    assert report["strategy"] == "semantic"
    assert report["standard_headers"] == ["Name", "Email", "E-mail"]
    assert any("fell back" in w for w in report["warnings"])


def test_semantic_merge_collapses_synonyms(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, inputs: list[Path]
) -> None:
    payload = {
        "standardHeaders": ["Name", "Email"],
        "mappingList": [
            {"original": "Name", "standard": "Name"},
            {"original": "Email", "standard": "Email"},
            {"original": "E-mail", "standard": "Email"},
        ],
    }

    class _Response:
        def raise_for_status(self) -> None:
            return None

        def json(self) -> Any:
            return {"candidates": [{"content": {"parts": [{"text": json.dumps(payload)}]}}]}

    monkeypatch.setattr(cli_mod, "load_settings", lambda: Settings(api_key="test-key"))
    monkeypatch.setattr(oracle_mod.requests, "post", lambda *_a, **_k: _Response())
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        ["merge", *_input_args(inputs), "-s", "semantic", "--out-dir", str(out_dir), "--quiet"],
    )

    assert result.exit_code == 0, result.stdout
    report = _read_json(out_dir / "merge_report.json")
    assert report["degraded"] is False
    assert report["standard_headers"] == ["Name", "Email"]
    ws = load_workbook(out_dir / "merged_data.xlsx")[SHEET_NAME]
    assert [[c.value for c in row] for row in ws.iter_rows()] == [
        ["Name", "Email"],
        ["Alice", "a@x.com"],
        ["Bob", "b@x.com"],
        ["Carol", "c@x.com"],
    ]


def test_csv_output_name(tmp_path: Path, inputs: list[Path]) -> None:
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        ["merge", *_input_args(inputs), "--out-dir", str(out_dir), "--output-name", "all.csv", "-q"],
    )

    assert result.exit_code == 0
    df = pd.read_csv(out_dir / "all.csv", dtype=str, keep_default_na=False)
    assert list(df.columns) == ["Name", "Email", "E-mail"]
    assert df["E-mail"].tolist() == ["", "b@x.com", "c@x.com"]


def test_parse_failure_rejects_whole_batch(tmp_path: Path, inputs: list[Path]) -> None:
    bad = _write_csv(tmp_path, "notes.txt", "not a spreadsheet")
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app, ["merge", *_input_args([*inputs, bad]), "--out-dir", str(out_dir), "--quiet"]
    )

    assert result.exit_code == 2
    assert "notes.txt" in result.stdout
    assert not (out_dir / "merged_data.xlsx").exists()
    assert not (out_dir / "merge_report.json").exists()
    manifest = _read_json(out_dir / "run_manifest.json")
    assert manifest["status"] == "failed"
    assert manifest["error_code"] == 2


def test_unsupported_output_name_fails_early(tmp_path: Path, inputs: list[Path]) -> None:
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app, ["merge", *_input_args(inputs), "--out-dir", str(out_dir), "--output-name", "x.json"]
    )

    assert result.exit_code == 2
    assert _read_json(out_dir / "run_manifest.json")["status"] == "failed"


def test_unexpected_export_error_exits_1(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, inputs: list[Path]
) -> None:
    def _boom(*_args: object, **_kwargs: object) -> Path:
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(cli_mod, "write_merged", _boom)
    out_dir = tmp_path / "out"

    result = runner.invoke(app, ["merge", *_input_args(inputs), "--out-dir", str(out_dir), "-q"])

    assert result.exit_code == 1
    manifest = _read_json(out_dir / "run_manifest.json")
    assert manifest["error_code"] == 1
    assert "disk on fire" in manifest["error_message"]


def test_headers_command_shows_mapping(inputs: list[Path], no_api_key: None) -> None:
    result = runner.invoke(app, ["headers", *_input_args(inputs), "--strategy", "semantic"])

    assert result.exit_code == 0
    assert "Header Mapping" in result.stdout
    assert "DEGRADED" in result.stdout


def test_headers_command_parse_failure(tmp_path: Path) -> None:
    bad = _write_csv(tmp_path, "notes.txt", "x")

    result = runner.invoke(app, ["headers", "--input", str(bad)])

    assert result.exit_code == 2


def test_version_flag() -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.stdout
