"""CLI entry point for spreadsheet-merge."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table as RichTable

from spreadsheet_merge import __version__
from spreadsheet_merge.artifacts import write_manifest, write_merge_report
from spreadsheet_merge.config import load_settings
from spreadsheet_merge.export import DEFAULT_FILENAME, write_merged
from spreadsheet_merge.models import SchemaMapping
from spreadsheet_merge.normalize import Strategy
from spreadsheet_merge.session import BatchParseError, MergeResult, Session
from spreadsheet_merge.utils import configure_logging, utcnow_iso

app = typer.Typer(
    name="smerge",
    help="spreadsheet-merge — Reconcile headers across spreadsheets and merge them into one.",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()

EXPORT_SUFFIXES = (".xlsx", ".csv")


def _noop(*_args: object, **_kwargs: object) -> None:
    return None


def _printer(quiet: bool) -> Callable[..., None]:
    return _noop if quiet else console.print


def _err(msg: str) -> None:
    console.print(f"[red]x[/red] {escape(msg)}")


def _warn(msg: str) -> None:
    console.print(f"  [yellow]![/yellow] {escape(msg)}")


# ── Helpers ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"spreadsheet-merge v{__version__}")
        raise typer.Exit()


def _format_size(num_bytes: int) -> str:
    return f"{num_bytes / 1024:.1f} KB"


async def _load_and_merge(
    paths: Sequence[Path], strategy: Strategy
) -> tuple[Session, MergeResult]:
    session = Session(settings=load_settings())
    await session.add_files(paths)
    result = await session.merge(strategy)
    return session, result


def _report_batch_failure(exc: BatchParseError) -> None:
    for failure in exc.failures:
        _err(f"Failed to parse {failure}")
    _err("No files from this batch were loaded.")


def _mapping_table(mapping: SchemaMapping) -> RichTable:
    tbl = RichTable(title="Header Mapping", show_lines=False)
    tbl.add_column("Original header", style="bold")
    tbl.add_column("Standard header")
    for original, target in mapping.mapping.items():
        style = "" if original == target else "cyan"
        tbl.add_row(escape(original), escape(target), style=style or None)
    return tbl


def _preview_table(result: MergeResult, limit: int) -> RichTable:
    shown = result.rows[:limit]
    tbl = RichTable(
        title=f"Merged Result ({len(shown)} of {len(result.rows)} rows)",
        show_lines=False,
    )
    tbl.add_column("#", justify="right", style="dim")
    for header in result.standard_headers:
        tbl.add_column(escape(header))
    tbl.add_column("Source File", style="dim")
    for idx, row in enumerate(shown, start=1):
        cells = [escape(str(row.values.get(h, ""))) for h in result.standard_headers]
        tbl.add_row(str(idx), *cells, escape(row.source))
    return tbl


# ── Callbacks ────────────────────────────────────────────────────


@app.callback()
def main(
    version: bool | None = typer.Option(
        None, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """spreadsheet-merge CLI."""


# ── merge command ────────────────────────────────────────────────


@app.command()
def merge(
    input_files: list[Path] = typer.Option(
        ..., "--input", "-i",
        help="CSV or Excel file to merge. Repeat for every file.",
        exists=True, readable=True, dir_okay=False,
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for the merged file, report and manifest.",
    ),
    output_name: str = typer.Option(
        DEFAULT_FILENAME, "--output-name",
        help="File name of the merged export (.xlsx or .csv).",
    ),
    strategy: Strategy = typer.Option(
        Strategy.identity, "--strategy", "-s",
        help="Header matching: identity (exact names) or semantic (AI-assisted).",
    ),
    preview_rows: int = typer.Option(
        10, "--preview-rows",
        min=0,
        help="Rows to show in the preview table (0 disables the preview).",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes all artifacts.",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Show debug logging.",
    ),
) -> None:
    """Merge several spreadsheets into one file under a unified header set."""
    configure_logging(verbose=verbose)
    echo = _printer(quiet)
    created_at = utcnow_iso()
    out_dir.mkdir(parents=True, exist_ok=True)
    output_path = out_dir / output_name

    if output_path.suffix.lower() not in EXPORT_SUFFIXES:
        message = f"Unsupported export type: {output_path.suffix!r}. Use .xlsx or .csv"
        manifest_path = write_manifest(
            out_dir, input_files, created_at,
            strategy=strategy.value, status="failed", error_code=2, error_message=message,
        )
        _err(message)
        console.print(f"  Manifest -> {manifest_path}")
        raise typer.Exit(code=2)

    if not quiet:
        console.print(Panel(
            f"[bold]spreadsheet-merge[/bold] v{__version__}\n"
            f"Inputs:   {len(input_files)} file(s)\n"
            f"Strategy: {strategy.value}\nOutput:   {output_path}",
            title="Merge Start", border_style="blue",
        ))

    # ── Load + merge ─────────────────────────────────────────────
    echo(f"[blue]>[/blue] Loading {len(input_files)} input file(s) …")
    try:
        session, result = asyncio.run(_load_and_merge(input_files, strategy))
    except BatchParseError as exc:
        manifest_path = write_manifest(
            out_dir, input_files, created_at,
            strategy=strategy.value, status="failed", error_code=2, error_message=str(exc),
        )
        _report_batch_failure(exc)
        console.print(f"  Manifest -> {manifest_path}")
        raise typer.Exit(code=2)
    except Exception as exc:
        message = f"Unexpected internal error: {exc}"
        manifest_path = write_manifest(
            out_dir, input_files, created_at,
            strategy=strategy.value, status="failed", error_code=1, error_message=message,
        )
        _err(message)
        console.print(f"  Manifest -> {manifest_path}")
        raise typer.Exit(code=1)

    try:
        for source in session.files:
            echo(
                f"  {source.name} ({_format_size(source.size)}): "
                f"{source.row_count} rows x {len(source.headers)} columns"
            )
        echo(
            f"[blue]>[/blue] Resolved {len(result.mapping.mapping)} headers into "
            f"{len(result.standard_headers)} standard columns"
        )
        if not quiet:
            for w in result.report.warnings:
                _warn(w)
            if preview_rows and result.rows:
                console.print(_preview_table(result, preview_rows))

        # ── Export ───────────────────────────────────────────────
        echo(f"[blue]>[/blue] Writing {output_path.name} …")
        export_path = write_merged(output_path, result.rows, result.standard_headers)
        echo(f"  Export   -> {export_path}")

        report_path = write_merge_report(out_dir, result.report)
        echo(f"  Report   -> {report_path}")

        manifest_path = write_manifest(
            out_dir, input_files, created_at,
            strategy=strategy.value,
            sources=session.files,
            output_path=export_path,
            rows_out=len(result.rows),
        )
        echo(f"  Manifest -> {manifest_path}")

        if not quiet:
            mode = "[yellow]degraded to exact matching[/yellow]" if result.degraded else strategy.value
            console.print(Panel(
                f"[green]Done[/green] — {len(result.rows)} rows ({mode}) -> {export_path}",
                title="Merge Complete", border_style="green",
            ))
    except Exception as exc:
        message = f"Unexpected internal error: {exc}"
        manifest_path = write_manifest(
            out_dir, input_files, created_at,
            strategy=strategy.value,
            sources=session.files,
            status="failed",
            error_code=1,
            error_message=message,
        )
        _err(message)
        console.print(f"  Manifest -> {manifest_path}")
        raise typer.Exit(code=1)


# ── headers command ──────────────────────────────────────────────


@app.command()
def headers(
    input_files: list[Path] = typer.Option(
        ..., "--input", "-i",
        help="CSV or Excel file to inspect. Repeat for every file.",
        exists=True, readable=True, dir_okay=False,
    ),
    strategy: Strategy = typer.Option(
        Strategy.identity, "--strategy", "-s",
        help="Header matching: identity (exact names) or semantic (AI-assisted).",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Show debug logging.",
    ),
) -> None:
    """Show how headers would be reconciled, without writing anything."""
    configure_logging(verbose=verbose)
    try:
        _session, result = asyncio.run(_load_and_merge(input_files, strategy))
    except BatchParseError as exc:
        _report_batch_failure(exc)
        raise typer.Exit(code=2)
    except Exception as exc:
        _err(f"Unexpected internal error: {exc}")
        raise typer.Exit(code=1)

    console.print(_mapping_table(result.mapping))
    console.print(
        f"  {len(result.mapping.mapping)} headers -> "
        f"{len(result.standard_headers)} standard columns: "
        + ", ".join(result.standard_headers)
    )
    for w in result.report.warnings:
        _warn(w)
    status = "[yellow]DEGRADED[/yellow]" if result.degraded else "[green]OK[/green]"
    console.print(f"  Status: {status}")
