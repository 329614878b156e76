"""spreadsheet-merge — Reconcile spreadsheet headers and merge files into one dataset."""

__version__ = "0.1.0"

PROVENANCE_KEY: str = "_source_file"
