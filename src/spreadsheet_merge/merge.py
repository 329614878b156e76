"""Row merging — pure functions, no side effects."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from spreadsheet_merge.models import MergedRow, SchemaMapping, SourceFile

logger = logging.getLogger(__name__)


def merge_rows(sources: Sequence[SourceFile], mapping: SchemaMapping) -> list[MergedRow]:
    """Rewrite every row of every source under the standard headers.

    Output order is file order, then row order; no row is dropped.  Cells
    default to ``""``.  When several original headers in one row map to the
    same standard header, the one that comes later in the row wins.  Values
    under headers the mapping does not know are dropped.
    """
    merged: list[MergedRow] = []
    for source in sources:
        dropped: set[str] = set()
        for row in source.rows:
            values = {header: "" for header in mapping.standard_headers}
            for original, value in row.items():
                target = mapping.target_for(original)
                if target is None:
                    dropped.add(original)
                    continue
                values[target] = value
            merged.append(MergedRow(values=values, source=source.name))
        if dropped:
            logger.debug(
                "%s: dropped values of unmapped headers %s", source.name, ", ".join(sorted(dropped))
            )
    return merged


def find_collisions(source: SourceFile, mapping: SchemaMapping) -> dict[str, list[str]]:
    """Standard headers fed by more than one of *source*'s own headers.

    Returns ``{standard: [original, ...]}`` with originals in column order,
    so the last entry is the one whose value wins.
    """
    originals_by_target: dict[str, list[str]] = {}
    for header in source.headers:
        target = mapping.target_for(header)
        if target is not None:
            originals_by_target.setdefault(target, []).append(header)
    return {
        target: originals
        for target, originals in originals_by_target.items()
        if len(originals) > 1
    }


def format_collision_warning(source_name: str, collisions: dict[str, list[str]]) -> str:
    details = []
    for target, originals in collisions.items():
        joined = " + ".join(repr(o) for o in originals)
        details.append(f"{target!r} (from {joined}; {originals[-1]!r} is written last and wins)")
    return f"{source_name}: several columns map to the same header: {'; '.join(details)}"
