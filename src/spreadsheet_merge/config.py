"""Runtime settings read from the environment (and an optional ``.env``)."""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta"


def _parse_float(value: str | None, default: float | None) -> float | None:
    if value is None or not value.strip():
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


@dataclass
class Settings:
    api_key: str | None = None
    model: str = DEFAULT_MODEL
    endpoint: str = DEFAULT_ENDPOINT
    # None means no timeout; a hung oracle call blocks that merge.
    oracle_timeout: float | None = None


def load_settings(*, dotenv: bool = True) -> Settings:
    """Build :class:`Settings` from the process environment.

    The API key is read from ``GEMINI_API_KEY`` and falls back to ``API_KEY``.
    A missing key is not an error here; the semantic classifier checks it
    when it is actually called.
    """
    if dotenv:
        load_dotenv()
    api_key = os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY") or None
    return Settings(
        api_key=api_key,
        model=os.getenv("GEMINI_MODEL", DEFAULT_MODEL),
        endpoint=os.getenv("GEMINI_ENDPOINT", DEFAULT_ENDPOINT).rstrip("/"),
        oracle_timeout=_parse_float(os.getenv("ORACLE_TIMEOUT_SECONDS"), None),
    )
