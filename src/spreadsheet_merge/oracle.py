"""Semantic header classification through the Gemini ``generateContent`` API."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Any

import requests

from spreadsheet_merge.config import DEFAULT_ENDPOINT, DEFAULT_MODEL, Settings
from spreadsheet_merge.models import SchemaMapping

logger = logging.getLogger(__name__)


class OracleError(RuntimeError):
    """The remote classifier could not produce a usable mapping."""


class MissingCredentialError(OracleError):
    """No API key is configured for the remote classifier."""


RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "standardHeaders": {
            "type": "ARRAY",
            "items": {"type": "STRING"},
            "description": "The list of unified, cleaned column names.",
        },
        "mappingList": {
            "type": "ARRAY",
            "description": "List of mappings from original header to standard header.",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "original": {"type": "STRING", "description": "The original header name."},
                    "standard": {
                        "type": "STRING",
                        "description": "The corresponding standard header name.",
                    },
                },
                "required": ["original", "standard"],
            },
        },
    },
    "required": ["standardHeaders", "mappingList"],
}


def build_prompt(headers: Sequence[str]) -> str:
    return (
        "You are a data processing expert. These column headers were collected "
        "from several spreadsheet files that need to be merged.\n\n"
        "Many headers name the same concept differently (e.g. \"Email\", "
        "\"E-mail Address\", \"Mail\"). Some headers are unique.\n\n"
        "1. Identify the standard, unified column names. Use the most common or "
        "professional name (e.g. prefer \"Email\" over \"Mail\").\n"
        "2. Map EVERY input header to exactly one of these standard headers.\n\n"
        f"Input headers:\n{json.dumps(list(headers), ensure_ascii=False)}\n"
    )


def parse_oracle_payload(payload: Any, headers: Sequence[str]) -> SchemaMapping:
    """Validate a raw oracle response and turn it into a :class:`SchemaMapping`.

    Targets missing from the declared ``standardHeaders`` are accepted and
    become standard headers themselves.  Standard headers are ordered by
    first assignment over *headers*; declared names nothing maps to are
    dropped.

    Raises
    ------
    OracleError
        If the payload is malformed or leaves a requested header unmapped.
    """
    if not isinstance(payload, dict):
        raise OracleError(f"Oracle response must be an object, got {type(payload).__name__}")

    declared = payload.get("standardHeaders")
    entries = payload.get("mappingList")
    if not isinstance(declared, list) or not all(isinstance(h, str) for h in declared):
        raise OracleError("Oracle response 'standardHeaders' must be a list of strings")
    if not isinstance(entries, list):
        raise OracleError("Oracle response 'mappingList' must be a list")
    if headers and not declared:
        raise OracleError("Oracle returned no standard headers")

    requested = set(headers)
    targets: dict[str, str] = {}
    for entry in entries:
        if not isinstance(entry, dict):
            raise OracleError("Oracle mapping entries must be objects")
        original = entry.get("original")
        standard = entry.get("standard")
        if not isinstance(original, str):
            raise OracleError("Oracle mapping entry has no 'original' string")
        if not isinstance(standard, str) or not standard.strip():
            raise OracleError(f"Oracle mapped {original!r} to an empty standard header")
        if original not in requested:
            logger.debug("Ignoring oracle mapping for unrequested header %r", original)
            continue
        targets[original] = standard

    missing = [h for h in headers if h not in targets]
    if missing:
        raise OracleError(f"Oracle left headers unmapped: {', '.join(missing)}")

    undeclared = sorted(set(targets.values()) - set(declared))
    if undeclared:
        logger.debug("Adding undeclared standard headers: %s", ", ".join(undeclared))

    return SchemaMapping.from_assignments([(h, targets[h]) for h in headers])


class RemoteSemanticClassifier:
    """Groups synonymous headers with one remote LLM call per invocation.

    No retries are attempted; any failure raises :class:`OracleError` and is
    left to the caller (normally a fallback classifier).
    """

    def __init__(
        self,
        api_key: str | None,
        model: str = DEFAULT_MODEL,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: float | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> RemoteSemanticClassifier:
        return cls(
            api_key=settings.api_key,
            model=settings.model,
            endpoint=settings.endpoint,
            timeout=settings.oracle_timeout,
        )

    @property
    def url(self) -> str:
        return f"{self.endpoint}/models/{self.model}:generateContent"

    def _request_body(self, headers: Sequence[str]) -> dict[str, Any]:
        return {
            "contents": [{"role": "user", "parts": [{"text": build_prompt(headers)}]}],
            "generationConfig": {
                "temperature": 0.0,
                "responseMimeType": "application/json",
                "responseSchema": RESPONSE_SCHEMA,
            },
        }

    def _post(self, headers: Sequence[str]) -> dict[str, Any]:
        try:
            response = requests.post(
                self.url,
                headers={"x-goog-api-key": self.api_key or "", "Content-Type": "application/json"},
                json=self._request_body(headers),
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as exc:
            raise OracleError(f"Oracle request failed: {exc}") from exc
        except ValueError as exc:
            raise OracleError("Oracle returned a non-JSON HTTP body") from exc
        if not isinstance(data, dict):
            raise OracleError("Oracle returned an unexpected HTTP body")
        return data

    @staticmethod
    def _response_text(data: dict[str, Any]) -> str:
        try:
            parts = data["candidates"][0]["content"]["parts"]
            return "".join(part.get("text", "") for part in parts)
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise OracleError("Oracle response has no candidate text") from exc

    def classify(self, headers: Sequence[str]) -> SchemaMapping:
        if not self.api_key:
            raise MissingCredentialError(
                "API key is missing. Set GEMINI_API_KEY (or API_KEY) in the environment."
            )
        unique = list(dict.fromkeys(headers))
        if not unique:
            return SchemaMapping()

        logger.info("Classifying %d headers with %s", len(unique), self.model)
        data = self._post(unique)
        text = self._response_text(data)
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise OracleError(f"Oracle response is not valid JSON: {text[:200]!r}") from exc
        return parse_oracle_payload(payload, unique)
