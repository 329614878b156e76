"""Data models used across the package."""

from __future__ import annotations

import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from numbers import Integral
from typing import Any, Union

from spreadsheet_merge import PROVENANCE_KEY

Scalar = Union[str, int, float, bool, None]


def _to_non_negative_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f"{field_name} must be an integer")
    result = int(value)
    if result < 0:
        raise ValueError(f"{field_name} must be >= 0")
    return result


def _to_string_list(values: Sequence[Any] | None, field_name: str) -> list[str]:
    if values is None:
        return []
    if isinstance(values, str):
        raise TypeError(f"{field_name} must be a sequence of strings")
    normalized: list[str] = []
    for item in values:
        if not isinstance(item, str):
            raise TypeError(f"{field_name} items must be strings")
        normalized.append(item)
    return normalized


def _new_file_id() -> str:
    return uuid.uuid4().hex[:12]


# ── Sources ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class SourceFile:
    """One parsed input file.

    ``headers`` keeps the order in which columns first appeared; every row
    is a mapping from original header to a scalar cell value.
    """

    name: str
    headers: tuple[str, ...] = ()
    rows: tuple[dict[str, Scalar], ...] = ()
    size: int = 0
    id: str = field(default_factory=_new_file_id)

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", tuple(_to_string_list(self.headers, "headers")))
        object.__setattr__(self, "rows", tuple(dict(row) for row in self.rows))
        object.__setattr__(self, "size", _to_non_negative_int(self.size, "size"))

    @property
    def row_count(self) -> int:
        return len(self.rows)


# ── Schema mapping ───────────────────────────────────────────────


@dataclass(frozen=True)
class SchemaMapping:
    """Total mapping from original headers to standard headers.

    Contract invariant: ``standard_headers`` is exactly the set of distinct
    mapping values, without duplicates, in order of first assignment.
    """

    standard_headers: tuple[str, ...] = ()
    mapping: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        standard = tuple(_to_string_list(self.standard_headers, "standard_headers"))
        mapping = dict(self.mapping)
        for original, target in mapping.items():
            if not isinstance(original, str) or not isinstance(target, str):
                raise TypeError("mapping keys and values must be strings")
        if len(set(standard)) != len(standard):
            raise ValueError("standard_headers must not contain duplicates")
        unknown = sorted(set(mapping.values()) - set(standard))
        if unknown:
            raise ValueError(f"mapping targets missing from standard_headers: {', '.join(unknown)}")
        unused = sorted(set(standard) - set(mapping.values()))
        if unused:
            raise ValueError(f"standard_headers without a mapped header: {', '.join(unused)}")
        object.__setattr__(self, "standard_headers", standard)
        object.__setattr__(self, "mapping", mapping)

    @classmethod
    def from_assignments(cls, assignments: Sequence[tuple[str, str]]) -> SchemaMapping:
        """Build a mapping from ``(original, standard)`` pairs, in order.

        A repeated original keeps its last target.  Standard headers are
        ordered by first assignment after repeats are resolved.
        """
        mapping: dict[str, str] = {}
        for original, target in assignments:
            mapping[original] = target
        standard: list[str] = []
        for target in mapping.values():
            if target not in standard:
                standard.append(target)
        return cls(standard_headers=tuple(standard), mapping=mapping)

    def target_for(self, header: str) -> str | None:
        return self.mapping.get(header)

    def covers(self, headers: Sequence[str]) -> bool:
        return all(h in self.mapping for h in headers)

    def to_dict(self) -> dict[str, Any]:
        return {
            "standard_headers": list(self.standard_headers),
            "mapping": dict(self.mapping),
        }


# ── Merge output ─────────────────────────────────────────────────


@dataclass
class MergedRow:
    """A schema-normalised row plus the name of the file it came from."""

    values: dict[str, Scalar]
    source: str

    def to_record(self, *, include_source: bool = True) -> dict[str, Scalar]:
        record = dict(self.values)
        if include_source:
            record[PROVENANCE_KEY] = self.source
        return record


@dataclass
class MergeReport:
    """Summary emitted alongside every merge.

    Contract invariant: ``rows_out == rows_in`` (no row is ever dropped).
    """

    rows_in: int = 0
    rows_out: int = 0
    files: int = 0
    strategy: str = "identity"
    degraded: bool = False
    standard_headers: list[str] = field(default_factory=list)
    mapping: dict[str, str] = field(default_factory=dict)
    rows_by_source: dict[str, int] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.rows_in = _to_non_negative_int(self.rows_in, "rows_in")
        self.rows_out = _to_non_negative_int(self.rows_out, "rows_out")
        self.files = _to_non_negative_int(self.files, "files")
        self.standard_headers = _to_string_list(self.standard_headers, "standard_headers")
        self.warnings = _to_string_list(self.warnings, "warnings")
        self.mapping = dict(self.mapping or {})
        self.rows_by_source = {
            name: _to_non_negative_int(count, f"rows_by_source[{name!r}]")
            for name, count in (self.rows_by_source or {}).items()
        }
        if self.rows_out != self.rows_in:
            raise ValueError("rows_out must equal rows_in")
        if self.rows_by_source and sum(self.rows_by_source.values()) != self.rows_in:
            raise ValueError("rows_by_source must sum to rows_in")

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows_in": self.rows_in,
            "rows_out": self.rows_out,
            "files": self.files,
            "strategy": self.strategy,
            "degraded": self.degraded,
            "standard_headers": list(self.standard_headers),
            "mapping": dict(self.mapping),
            "rows_by_source": dict(self.rows_by_source),
            "warnings": list(self.warnings),
        }


@dataclass
class RunManifest:
    """Audit-trail manifest for a single merge run."""

    tool: str = "spreadsheet-merge"
    version: str = ""
    created_at_utc: str = ""
    strategy: str = "identity"
    inputs: list[dict[str, Any]] = field(default_factory=list)
    output_path: str = ""
    rows_in: int = 0
    rows_out: int = 0
    status: str = "success"
    error_code: int | None = None
    error_message: str = ""

    def __post_init__(self) -> None:
        self.rows_in = _to_non_negative_int(self.rows_in, "rows_in")
        self.rows_out = _to_non_negative_int(self.rows_out, "rows_out")
        if self.status not in {"success", "failed"}:
            raise ValueError(f"status must be 'success' or 'failed', got {self.status!r}")
        if self.error_code is not None:
            self.error_code = _to_non_negative_int(self.error_code, "error_code")

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "version": self.version,
            "created_at_utc": self.created_at_utc,
            "strategy": self.strategy,
            "inputs": [dict(item) for item in self.inputs],
            "output_path": self.output_path,
            "rows_in": self.rows_in,
            "rows_out": self.rows_out,
            "status": self.status,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }
