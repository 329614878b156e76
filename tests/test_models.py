from __future__ import annotations

from dataclasses import FrozenInstanceError

import pytest

from spreadsheet_merge import PROVENANCE_KEY
from spreadsheet_merge.models import MergedRow, MergeReport, RunManifest, SchemaMapping, SourceFile


def test_source_file_freezes_headers_and_rows() -> None:
    source = SourceFile(name="a.csv", headers=["Name"], rows=[{"Name": "Alice"}], size=10)  # type: ignore[arg-type]

    assert source.headers == ("Name",)
    assert source.rows == ({"Name": "Alice"},)
    assert source.row_count == 1
    assert source.id
    with pytest.raises(FrozenInstanceError):
        source.name = "b.csv"  # type: ignore[misc]


def test_source_files_get_distinct_ids() -> None:
    assert SourceFile(name="a").id != SourceFile(name="a").id


def test_source_file_rejects_non_string_headers_and_negative_size() -> None:
    with pytest.raises(TypeError, match="headers"):
        SourceFile(name="a", headers=("ok", 3))  # type: ignore[arg-type]

    with pytest.raises(ValueError, match="size"):
        SourceFile(name="a", size=-1)


def test_schema_mapping_from_assignments_orders_by_first_assignment() -> None:
    mapping = SchemaMapping.from_assignments(
        [("E-mail", "Email"), ("Name", "Name"), ("Email", "Email")]
    )

    assert mapping.standard_headers == ("Email", "Name")
    assert mapping.mapping == {"E-mail": "Email", "Name": "Name", "Email": "Email"}


def test_schema_mapping_repeated_original_keeps_last_target() -> None:
    mapping = SchemaMapping.from_assignments([("Mail", "Mail"), ("Mail", "Email")])

    assert mapping.mapping == {"Mail": "Email"}
    assert mapping.standard_headers == ("Email",)


def test_schema_mapping_rejects_targets_outside_standard_headers() -> None:
    with pytest.raises(ValueError, match="missing from standard_headers"):
        SchemaMapping(standard_headers=("Name",), mapping={"Name": "Name", "Mail": "Email"})


def test_schema_mapping_rejects_unused_and_duplicate_standard_headers() -> None:
    with pytest.raises(ValueError, match="without a mapped header"):
        SchemaMapping(standard_headers=("Name", "Email"), mapping={"Name": "Name"})

    with pytest.raises(ValueError, match="duplicates"):
        SchemaMapping(standard_headers=("Name", "Name"), mapping={"Name": "Name"})


def test_schema_mapping_lookup_and_coverage() -> None:
    mapping = SchemaMapping.from_assignments([("Name", "Name")])

    assert mapping.target_for("Name") == "Name"
    assert mapping.target_for("Email") is None
    assert mapping.covers(["Name"])
    assert not mapping.covers(["Name", "Email"])
    assert mapping.to_dict() == {"standard_headers": ["Name"], "mapping": {"Name": "Name"}}


def test_empty_schema_mapping_is_valid() -> None:
    mapping = SchemaMapping()

    assert mapping.standard_headers == ()
    assert mapping.mapping == {}


def test_merged_row_record_includes_or_strips_provenance() -> None:
    row = MergedRow(values={"Name": "Alice"}, source="File1")

    assert row.to_record() == {"Name": "Alice", PROVENANCE_KEY: "File1"}
    assert row.to_record(include_source=False) == {"Name": "Alice"}


def test_merge_report_to_dict_returns_copies() -> None:
    report = MergeReport(
        rows_in=2,
        rows_out=2,
        files=1,
        standard_headers=["Name"],
        mapping={"Name": "Name"},
        rows_by_source={"a.csv": 2},
        warnings=["warn"],
    )

    payload = report.to_dict()
    payload["warnings"].append("another")
    payload["standard_headers"].append("Email")

    assert report.warnings == ["warn"]
    assert report.standard_headers == ["Name"]


def test_merge_report_requires_row_conservation() -> None:
    with pytest.raises(ValueError, match="rows_out must equal rows_in"):
        MergeReport(rows_in=3, rows_out=2)

    with pytest.raises(ValueError, match="rows_by_source"):
        MergeReport(rows_in=3, rows_out=3, rows_by_source={"a.csv": 1})


def test_merge_report_rejects_bad_counts_and_lists() -> None:
    with pytest.raises(ValueError, match="rows_in"):
        MergeReport(rows_in=-1)

    with pytest.raises(TypeError, match="files"):
        MergeReport(files=True)  # type: ignore[arg-type]

    with pytest.raises(TypeError, match="warnings"):
        MergeReport(warnings="oops")  # type: ignore[arg-type]


def test_run_manifest_rejects_non_integer_and_negative_counts() -> None:
    with pytest.raises(TypeError, match="rows_in"):
        RunManifest(rows_in=True)  # type: ignore[arg-type]

    with pytest.raises(ValueError, match="rows_out"):
        RunManifest(rows_out=-2)


def test_run_manifest_rejects_unknown_status() -> None:
    with pytest.raises(ValueError, match="status"):
        RunManifest(status="partial")
