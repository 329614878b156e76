"""Header reconciliation — turn the header universe into a schema mapping."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from spreadsheet_merge.config import Settings, load_settings
from spreadsheet_merge.models import SchemaMapping, SourceFile
from spreadsheet_merge.oracle import RemoteSemanticClassifier

logger = logging.getLogger(__name__)


class Strategy(str, Enum):
    identity = "identity"
    semantic = "semantic"


class HeaderClassifier(Protocol):
    def classify(self, headers: Sequence[str]) -> SchemaMapping: ...


@dataclass(frozen=True)
class HeaderResolution:
    """Outcome of :func:`normalize`.

    ``degraded`` is true when the requested classifier failed and the
    identity mapping was used instead; ``warning`` then says why.
    """

    mapping: SchemaMapping
    degraded: bool = False
    warning: str | None = None


# ── Header universe ──────────────────────────────────────────────


def dedupe_headers(headers: Iterable[str]) -> list[str]:
    """Drop repeated headers, keeping first-seen order."""
    seen: set[str] = set()
    unique: list[str] = []
    for header in headers:
        if header not in seen:
            seen.add(header)
            unique.append(header)
    return unique


def header_universe(sources: Iterable[SourceFile]) -> list[str]:
    """All headers across *sources*, deduplicated in order of first occurrence."""
    return dedupe_headers(h for source in sources for h in source.headers)


# ── Classifiers ──────────────────────────────────────────────────


class IdentityClassifier:
    """Exact matching: every header is its own standard header."""

    def classify(self, headers: Sequence[str]) -> SchemaMapping:
        unique = dedupe_headers(headers)
        return SchemaMapping(standard_headers=tuple(unique), mapping={h: h for h in unique})


class FallbackClassifier:
    """Try *primary*; on any failure, use *fallback* over the same headers."""

    def __init__(
        self,
        primary: HeaderClassifier,
        fallback: HeaderClassifier | None = None,
    ) -> None:
        self.primary = primary
        self.fallback = fallback or IdentityClassifier()

    def resolve(self, headers: Sequence[str]) -> HeaderResolution:
        try:
            mapping = self.primary.classify(headers)
            missing = [h for h in headers if h not in mapping.mapping]
            if missing:
                raise ValueError(f"classifier left headers unmapped: {', '.join(missing)}")
        except Exception as exc:
            logger.info(
                "%s failed (%s: %s); falling back to %s",
                type(self.primary).__name__,
                type(exc).__name__,
                exc,
                type(self.fallback).__name__,
            )
            warning = (
                "Semantic header mapping failed "
                f"({type(exc).__name__}: {exc}); fell back to exact header matching."
            )
            return HeaderResolution(self.fallback.classify(headers), degraded=True, warning=warning)
        return HeaderResolution(mapping)

    def classify(self, headers: Sequence[str]) -> SchemaMapping:
        return self.resolve(headers).mapping


def build_classifier(strategy: Strategy, settings: Settings | None = None) -> HeaderClassifier:
    """Return the classifier implementing *strategy*."""
    strategy = Strategy(strategy)
    if strategy is Strategy.identity:
        return IdentityClassifier()
    return RemoteSemanticClassifier.from_settings(settings or load_settings())


# ── Entry point ──────────────────────────────────────────────────


def normalize(headers: Sequence[str], classifier: HeaderClassifier) -> HeaderResolution:
    """Resolve *headers* into a :class:`SchemaMapping` using *classifier*.

    The classifier always runs behind a :class:`FallbackClassifier` (one is
    added unless *classifier* already is one), so this never raises because
    of the classifier.  An empty header list returns an
    empty mapping without calling it.
    """
    unique = dedupe_headers(headers)
    if not unique:
        return HeaderResolution(SchemaMapping())
    resolver = classifier if isinstance(classifier, FallbackClassifier) else FallbackClassifier(classifier)
    resolution = resolver.resolve(unique)
    logger.debug(
        "Resolved %d headers into %d standard headers (degraded=%s)",
        len(unique),
        len(resolution.mapping.standard_headers),
        resolution.degraded,
    )
    return resolution
