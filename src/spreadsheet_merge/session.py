"""Working set of source files and the merge computed from it."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from spreadsheet_merge.config import Settings
from spreadsheet_merge.io import SourceParseError, read_source
from spreadsheet_merge.merge import find_collisions, format_collision_warning, merge_rows
from spreadsheet_merge.models import MergedRow, MergeReport, SchemaMapping, SourceFile
from spreadsheet_merge.normalize import (
    HeaderClassifier,
    Strategy,
    build_classifier,
    header_universe,
    normalize,
)

logger = logging.getLogger(__name__)


class BatchParseError(Exception):
    """One or more files of an upload batch could not be parsed.

    The whole batch is rejected; ``failures`` holds every per-file error.
    """

    def __init__(self, failures: Sequence[SourceParseError]) -> None:
        self.failures = list(failures)
        details = "; ".join(str(f) for f in self.failures)
        super().__init__(f"Failed to parse {len(self.failures)} file(s): {details}")


@dataclass
class MergeResult:
    mapping: SchemaMapping
    rows: list[MergedRow]
    report: MergeReport
    generation: int = 0

    @property
    def degraded(self) -> bool:
        return self.report.degraded

    @property
    def standard_headers(self) -> tuple[str, ...]:
        return self.mapping.standard_headers


@dataclass
class Session:
    """In-memory working set for one merge session.

    Every change to ``files`` bumps ``generation`` and drops ``result``;
    a merge that finishes after such a change is returned but not kept.
    """

    files: list[SourceFile] = field(default_factory=list)
    result: MergeResult | None = None
    generation: int = 0
    settings: Settings | None = None

    def _invalidate(self) -> None:
        self.generation += 1
        self.result = None

    # ── Working set ──────────────────────────────────────────────

    async def add_files(self, paths: Sequence[Path]) -> list[SourceFile]:
        """Parse *paths* concurrently and admit them all, or none.

        Raises
        ------
        BatchParseError
            If any file fails to parse; no file of the batch is admitted.
        """
        if not paths:
            return []
        outcomes = await asyncio.gather(
            *(asyncio.to_thread(read_source, Path(p)) for p in paths),
            return_exceptions=True,
        )
        failures: list[SourceParseError] = []
        parsed: list[SourceFile] = []
        for outcome in outcomes:
            if isinstance(outcome, SourceParseError):
                failures.append(outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                parsed.append(outcome)
        if failures:
            logger.info("Rejected upload batch of %d file(s): %d failed", len(paths), len(failures))
            raise BatchParseError(failures)

        self.files.extend(parsed)
        self._invalidate()
        logger.info("Admitted %d file(s); working set now %d", len(parsed), len(self.files))
        return parsed

    def remove_file(self, file_id: str) -> SourceFile:
        """Drop the file with *file_id* from the working set."""
        for index, source in enumerate(self.files):
            if source.id == file_id:
                removed = self.files.pop(index)
                self._invalidate()
                return removed
        raise KeyError(file_id)

    def header_universe(self) -> list[str]:
        return header_universe(self.files)

    def is_current(self, result: MergeResult) -> bool:
        return result.generation == self.generation

    # ── Merge ────────────────────────────────────────────────────

    async def merge(
        self,
        strategy: Strategy = Strategy.identity,
        classifier: HeaderClassifier | None = None,
    ) -> MergeResult:
        """Reconcile headers and merge every row of the working set."""
        strategy = Strategy(strategy)
        generation = self.generation
        files = list(self.files)

        if not files:
            result = MergeResult(
                mapping=SchemaMapping(),
                rows=[],
                report=MergeReport(strategy=strategy.value),
                generation=generation,
            )
            self.result = result
            return result

        if classifier is None:
            classifier = build_classifier(strategy, self.settings)
        universe = header_universe(files)
        resolution = await asyncio.to_thread(normalize, universe, classifier)

        rows = merge_rows(files, resolution.mapping)
        warnings: list[str] = []
        if resolution.warning:
            warnings.append(resolution.warning)
        for source in files:
            collisions = find_collisions(source, resolution.mapping)
            if collisions:
                warnings.append(format_collision_warning(source.name, collisions))

        rows_by_source: dict[str, int] = {}
        for source in files:
            rows_by_source[source.name] = rows_by_source.get(source.name, 0) + source.row_count
        report = MergeReport(
            rows_in=sum(source.row_count for source in files),
            rows_out=len(rows),
            files=len(files),
            strategy=strategy.value,
            degraded=resolution.degraded,
            standard_headers=list(resolution.mapping.standard_headers),
            mapping=dict(resolution.mapping.mapping),
            rows_by_source=rows_by_source,
            warnings=warnings,
        )
        result = MergeResult(resolution.mapping, rows, report, generation=generation)

        if generation != self.generation:
            logger.warning("File set changed during merge; discarding stale result")
        else:
            self.result = result
        return result
