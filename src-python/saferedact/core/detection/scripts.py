"""Unicode-block based script classification.

Classifies the writing system(s) of a text sample so that the pattern
catalog can skip patterns that cannot apply (e.g. an 11-digit Chinese
mobile-number pattern in a purely Latin document).
"""

from __future__ import annotations

import logging
import unicodedata
from collections import Counter

from saferedact.core.detection.detection_config import (
    SCRIPT_MIN_CHARS,
    SCRIPT_SAMPLE_SIZE,
    SCRIPT_THRESHOLD,
    SCRIPT_THRESHOLD_DOMINANT,
    SCRIPT_THRESHOLD_JAPANESE,
    SCRIPT_THRESHOLD_LATIN,
    SCRIPT_THRESHOLD_MIXED_CJK,
)
from saferedact.models.schemas import Script

logger = logging.getLogger(__name__)

# Bucket name → inclusive codepoint ranges, checked in order.
_BLOCKS: tuple[tuple[str, tuple[tuple[int, int], ...]], ...] = (
    ("han", ((0x4E00, 0x9FFF), (0x3400, 0x4DBF))),
    ("japanese", ((0x3040, 0x309F), (0x30A0, 0x30FF))),
    ("korean", ((0xAC00, 0xD7AF), (0x1100, 0x11FF))),
    ("arabic", (
        (0x0600, 0x06FF), (0x0750, 0x077F), (0x08A0, 0x08FF),
        (0xFB50, 0xFDFF), (0xFE70, 0xFEFF),
    )),
    ("hebrew", ((0x0590, 0x05FF),)),
    ("devanagari", ((0x0900, 0x097F),)),
    ("thai", ((0x0E00, 0x0E7F), (0x0E80, 0x0EFF))),
    ("cyrillic", ((0x0400, 0x04FF),)),
    ("latin", ((0x0041, 0x005A), (0x0061, 0x007A), (0x00C0, 0x024F))),
)

# Scripts reported when their share crosses the standard threshold.
_STANDARD: tuple[tuple[str, Script], ...] = (
    ("korean", Script.KOREAN),
    ("han", Script.CHINESE),
    ("arabic", Script.ARABIC),
    ("hebrew", Script.HEBREW),
    ("devanagari", Script.DEVANAGARI),
    ("thai", Script.THAI),
    ("cyrillic", Script.CYRILLIC),
)

_BUCKET_SCRIPT: dict[str, Script] = {
    "han": Script.CJK,
    "japanese": Script.JAPANESE,
    "korean": Script.KOREAN,
    "arabic": Script.ARABIC,
    "hebrew": Script.HEBREW,
    "devanagari": Script.DEVANAGARI,
    "thai": Script.THAI,
    "cyrillic": Script.CYRILLIC,
    "latin": Script.LATIN,
}


def categorize_char(ch: str) -> str | None:
    """Return the bucket of *ch*, ``"other"``, or None for uncounted chars."""
    code = ord(ch)
    for bucket, ranges in _BLOCKS:
        for lo, hi in ranges:
            if lo <= code <= hi:
                return bucket
    if ch.isdigit() or ch.isspace() or unicodedata.category(ch).startswith("P"):
        return None
    return "other"


def script_shares(text: str) -> tuple[dict[str, float], int]:
    """Return (percentage share per bucket, counted characters) for a text sample."""
    counts: Counter[str] = Counter()
    for ch in text[:SCRIPT_SAMPLE_SIZE]:
        bucket = categorize_char(ch)
        if bucket is not None:
            counts[bucket] += 1
    total = sum(counts.values())
    if total == 0:
        return {}, 0
    return {k: v * 100.0 / total for k, v in counts.items()}, total


class ScriptClassifier:
    """Detect which writing systems a document uses."""

    def classify(self, text: str) -> list[Script]:
        """Return the detected scripts, or ``[Script.UNKNOWN]``."""
        shares, total = script_shares(text)
        if total < SCRIPT_MIN_CHARS:
            return [Script.UNKNOWN]

        scripts: list[Script] = []
        if shares.get("japanese", 0.0) > SCRIPT_THRESHOLD_JAPANESE:
            scripts.append(Script.JAPANESE)
        for bucket, script in _STANDARD:
            if shares.get(bucket, 0.0) > SCRIPT_THRESHOLD:
                scripts.append(script)
        if shares.get("latin", 0.0) > SCRIPT_THRESHOLD_LATIN:
            scripts.append(Script.LATIN)

        # Han characters mixed with a Latin majority, e.g. bilingual forms
        if (
            shares.get("han", 0.0) > SCRIPT_THRESHOLD_MIXED_CJK
            and shares.get("latin", 0.0) > SCRIPT_THRESHOLD_MIXED_CJK
            and Script.JAPANESE not in scripts
            and Script.CHINESE not in scripts
        ):
            scripts.append(Script.CJK)

        if not scripts:
            bucket, share = max(shares.items(), key=lambda kv: kv[1])
            if share > SCRIPT_THRESHOLD_DOMINANT and bucket != "other":
                scripts.append(_BUCKET_SCRIPT[bucket])

        if not scripts:
            return [Script.UNKNOWN]
        logger.debug("Detected scripts %s from %d chars", [s.value for s in scripts], total)
        return scripts


def detect_scripts(text: str) -> list[Script]:
    """Module-level convenience wrapper around :class:`ScriptClassifier`."""
    return ScriptClassifier().classify(text)
