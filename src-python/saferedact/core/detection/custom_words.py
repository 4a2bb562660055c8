"""User-defined words that are always detected.

Each word becomes a CUSTOM pattern with confidence 1.0. Characters may
be separated by spaces, tabs and at most one line break, so a word
that wraps or is letter-spaced in the extracted text still matches.
Matchers use the ``regex`` module for Unicode property classes.
"""

from __future__ import annotations

import logging
from typing import Optional

import regex

from saferedact.core.detection.detection_config import USER_WORD_CONFIDENCE
from saferedact.core.detection.regex_patterns import PatternDefinition
from saferedact.models.schemas import EntityType, UserWord

logger = logging.getLogger(__name__)


def _char_class(*ranges: tuple[int, int]) -> str:
    """Regex character-class body for inclusive codepoint ranges."""
    return "".join(
        regex.escape(chr(lo)) if lo == hi else f"{regex.escape(chr(lo))}-{regex.escape(chr(hi))}"
        for lo, hi in ranges
    )


# Combining marks allowed between characters, per script.
_ARABIC_MARKS = _char_class((0x064B, 0x065F), (0x0670, 0x0670))
_HEBREW_MARKS = _char_class((0x0591, 0x05C7))
_DEVANAGARI_MARKS = _char_class(
    (0x0900, 0x0903), (0x093A, 0x094F), (0x0951, 0x0957), (0x0962, 0x0963),
)
_THAI_MARKS = _char_class((0x0E31, 0x0E31), (0x0E34, 0x0E3A), (0x0E47, 0x0E4E))

# Whitespace or any Unicode punctuation, for word edges that are not
# themselves word characters.
_EDGE_CLASS = r"[\s\p{P}]"


def _marks_for(word: str) -> str:
    for ch in word:
        code = ord(ch)
        if 0x0600 <= code <= 0x08FF or 0xFB50 <= code <= 0xFEFF:
            return _ARABIC_MARKS
        if 0x0590 <= code <= 0x05FF:
            return _HEBREW_MARKS
        if 0x0900 <= code <= 0x097F:
            return _DEVANAGARI_MARKS
        if 0x0E00 <= code <= 0x0EFF:
            return _THAI_MARKS
    return ""


def build_word_regex(word: UserWord) -> regex.Pattern:
    """Compile the matcher for a user word."""
    marks = _marks_for(word.word)
    gap = f"[{marks} \\t]*\\n?[{marks} \\t]*"
    pattern = gap.join(regex.escape(ch) for ch in word.word)

    if word.whole_word:
        first, last = word.word[0], word.word[-1]
        start = r"(?<!\w)" if first.isalnum() or first == "_" else rf"(?:^|(?<={_EDGE_CLASS}))"
        end = r"(?!\w)" if last.isalnum() or last == "_" else rf"(?:$|(?={_EDGE_CLASS}))"
        pattern = f"{start}{pattern}{end}"

    flags = 0 if word.case_sensitive else regex.IGNORECASE
    return regex.compile(pattern, flags)


def word_to_pattern(word: UserWord) -> PatternDefinition:
    return PatternDefinition(
        name=f"User word: {word.word}",
        entity_type=EntityType.CUSTOM,
        matcher=build_word_regex(word),
        base_confidence=USER_WORD_CONFIDENCE,
    )


class UserWordRegistry:
    """In-memory registry of user words.

    ``generation`` increases on every change so that pattern caches can
    tell whether their compiled list is stale.
    """

    def __init__(self, words: Optional[list[UserWord]] = None) -> None:
        self._words: list[UserWord] = list(words or [])
        self.generation = 0

    def _bump(self) -> None:
        self.generation += 1

    def words(self) -> list[UserWord]:
        return list(self._words)

    def add(self, word: str, case_sensitive: bool = False, whole_word: bool = True) -> UserWord:
        """Register a word; raises ValueError on an exact duplicate."""
        if not word or not word.strip():
            raise ValueError("Word must not be empty")
        for existing in self._words:
            if (
                existing.word == word
                and existing.case_sensitive == case_sensitive
                and existing.whole_word == whole_word
            ):
                raise ValueError("This word with the same settings already exists")
        entry = UserWord(word=word, case_sensitive=case_sensitive, whole_word=whole_word)
        self._words.append(entry)
        self._bump()
        logger.info("Added user word %s (generation %d)", entry.id, self.generation)
        return entry

    def update(self, word_id: str, **changes: object) -> UserWord:
        for i, existing in enumerate(self._words):
            if existing.id == word_id:
                allowed = {k: v for k, v in changes.items() if k in ("word", "case_sensitive", "whole_word")}
                updated = UserWord.model_validate({**existing.model_dump(), **allowed})
                self._words[i] = updated
                self._bump()
                return updated
        raise KeyError(f"Word '{word_id}' not found")

    def remove(self, word_id: str) -> None:
        before = len(self._words)
        self._words = [w for w in self._words if w.id != word_id]
        if len(self._words) == before:
            raise KeyError(f"Word '{word_id}' not found")
        self._bump()

    def remove_many(self, word_ids: list[str]) -> None:
        ids = set(word_ids)
        self._words = [w for w in self._words if w.id not in ids]
        self._bump()

    def clear(self) -> None:
        self._words = []
        self._bump()

    def patterns(self) -> list[PatternDefinition]:
        return [word_to_pattern(w) for w in self._words]
