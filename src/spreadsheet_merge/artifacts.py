"""Merge report + run manifest persistence."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Any

from spreadsheet_merge import __version__
from spreadsheet_merge.io import write_json
from spreadsheet_merge.models import MergeReport, RunManifest, SourceFile
from spreadsheet_merge.utils import sha256_file


def write_merge_report(out_dir: Path, report: MergeReport) -> Path:
    """Write ``merge_report.json`` into *out_dir* and return the path."""
    return write_json(Path(out_dir) / "merge_report.json", report.to_dict())


def describe_inputs(
    paths: Sequence[Path], sources: Sequence[SourceFile] = ()
) -> list[dict[str, Any]]:
    """One manifest entry per input path; row counts when the batch was parsed."""
    row_counts: list[int | None] = [source.row_count for source in sources]
    if len(row_counts) != len(paths):
        row_counts = [None] * len(paths)
    inputs: list[dict[str, Any]] = []
    for path, rows in zip(paths, row_counts):
        path = Path(path)
        sha256 = ""
        try:
            sha256 = sha256_file(path)
        except OSError:
            pass
        inputs.append(
            {
                "path": str(path.resolve()),
                "sha256": sha256,
                "rows": rows,
            }
        )
    return inputs


def write_manifest(
    out_dir: Path,
    paths: Sequence[Path],
    created_at: str,
    *,
    strategy: str,
    sources: Sequence[SourceFile] = (),
    output_path: Path | None = None,
    rows_out: int = 0,
    status: str = "success",
    error_code: int | None = None,
    error_message: str = "",
) -> Path:
    """Write ``run_manifest.json`` into *out_dir* and return the path."""
    out_dir = Path(out_dir)
    manifest = RunManifest(
        version=__version__,
        created_at_utc=created_at,
        strategy=strategy,
        inputs=describe_inputs(paths, sources),
        output_path=str(output_path.resolve()) if output_path else "",
        rows_in=sum(source.row_count for source in sources),
        rows_out=rows_out,
        status=status,
        error_code=error_code,
        error_message=error_message,
    )
    return write_json(out_dir / "run_manifest.json", manifest.to_dict())
