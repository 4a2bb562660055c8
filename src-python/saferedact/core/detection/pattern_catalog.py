"""Pattern catalog — script-aware regex scanning with validators and context boosts.

The catalog combines the built-in definitions from ``regex_patterns``
with the user's words. The combined, compiled list is held in an
explicit :class:`PatternCache` tagged with the user-word registry's
generation; it is rebuilt only when the registry changed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, NamedTuple, Optional

from saferedact.core.detection.custom_words import UserWordRegistry
from saferedact.core.detection.regex_patterns import BUILTIN_PATTERNS, PatternDefinition
from saferedact.core.detection.scripts import ScriptClassifier
from saferedact.models.schemas import EntityType, Script

logger = logging.getLogger(__name__)


class PatternMatch(NamedTuple):
    """A single accepted pattern match."""
    start: int
    end: int
    text: str
    entity_type: EntityType
    confidence: float
    pattern_name: str


@dataclass
class PatternCache:
    """Compiled pattern list plus the registry generation it was built for."""
    patterns: list[PatternDefinition] = field(default_factory=list)
    generation: int = -1

    def is_valid_for(self, generation: int) -> bool:
        return self.generation == generation


def has_context_keyword(
    text: str, start: int, end: int, keywords: Iterable[str], window: int,
) -> bool:
    """True if any keyword occurs (case-insensitively) within *window* chars of the span."""
    lo = max(0, start - window)
    hi = min(len(text), end + window)
    haystack = text[lo:hi].lower()
    return any(kw.lower() in haystack for kw in keywords)


def compute_confidence(text: str, start: int, end: int, pattern: PatternDefinition) -> float:
    """Base confidence × keyword boost, capped at 1.0."""
    boost = 1.0
    if pattern.context_keywords and has_context_keyword(
        text, start, end, pattern.context_keywords, pattern.context_window,
    ):
        boost = pattern.confidence_boost
    return min(1.0, max(0.0, pattern.base_confidence * boost))


def filter_by_scripts(
    patterns: Iterable[PatternDefinition], scripts: list[Script],
) -> list[PatternDefinition]:
    """Keep universal patterns and those sharing a script with *scripts*."""
    return [p for p in patterns if p.applies_to(scripts)]


class PatternCatalog:
    """Built-in patterns plus user words, filtered per document script."""

    def __init__(
        self,
        registry: Optional[UserWordRegistry] = None,
        builtin: Iterable[PatternDefinition] = BUILTIN_PATTERNS,
        script_classifier: Optional[ScriptClassifier] = None,
    ) -> None:
        self.registry = registry if registry is not None else UserWordRegistry()
        self._builtin = list(builtin)
        self._scripts = script_classifier or ScriptClassifier()
        self._cache = PatternCache()

    @property
    def cache(self) -> PatternCache:
        return self._cache

    def all_patterns(self) -> list[PatternDefinition]:
        """Built-in plus user-word patterns, rebuilt only after registry changes."""
        generation = self.registry.generation
        if not self._cache.is_valid_for(generation):
            patterns = self._builtin + self.registry.patterns()
            self._cache = PatternCache(patterns=patterns, generation=generation)
            logger.debug(
                "Rebuilt pattern cache: %d patterns (generation %d)",
                len(patterns), generation,
            )
        return self._cache.patterns

    def invalidate(self) -> None:
        self._cache = PatternCache()

    def patterns_for_text(self, text: str) -> list[PatternDefinition]:
        scripts = self._scripts.classify(text)
        patterns = filter_by_scripts(self.all_patterns(), scripts)
        logger.debug(
            "Scripts %s → %d applicable patterns",
            [s.value for s in scripts], len(patterns),
        )
        return patterns

    def scan(
        self,
        text: str,
        enabled_types: Optional[Iterable[EntityType]] = None,
        scripts: Optional[list[Script]] = None,
    ) -> list[PatternMatch]:
        """Scan *text* with every applicable pattern.

        Args:
            text: The text to scan.
            enabled_types: Optional entity types to restrict to. None = all.
            scripts: Scripts to filter patterns by. None = classify *text*.

        Returns matches sorted by position. Overlapping matches from
        different patterns are all returned; deduplication happens in
        the reconciler.
        """
        if not text:
            return []
        allowed = set(enabled_types) if enabled_types is not None else None
        if scripts is None:
            patterns = self.patterns_for_text(text)
        else:
            patterns = filter_by_scripts(self.all_patterns(), scripts)

        matches: list[PatternMatch] = []
        for pattern in patterns:
            if allowed is not None and pattern.entity_type not in allowed:
                continue
            for m in pattern.matcher.finditer(text):
                matched_text = m.group()
                if not matched_text.strip():
                    continue

                # ── Validation gate ──
                if pattern.validator is not None and not pattern.validator(matched_text):
                    logger.debug("Validator rejected %s match at %d", pattern.name, m.start())
                    continue

                matches.append(PatternMatch(
                    start=m.start(),
                    end=m.end(),
                    text=matched_text,
                    entity_type=pattern.entity_type,
                    confidence=compute_confidence(text, m.start(), m.end(), pattern),
                    pattern_name=pattern.name,
                ))

        matches.sort(key=lambda pm: (pm.start, -pm.end))
        return matches
