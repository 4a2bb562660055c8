"""Declarative pattern definitions for sensitive-data detection.

This module contains the built-in pattern catalog in a purely
declarative format. Scanning, script filtering and the pattern cache
live in ``pattern_catalog.py``.

All matchers are compiled with ``re.ASCII`` so ``\\b`` and ``\\d`` behave
as in ASCII text: CJK characters count as boundaries, full-width digits
do not match.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, Optional, Union

import regex

from saferedact.core.detection.detection_config import (
    DEFAULT_CONFIDENCE_BOOST,
    DEFAULT_SEARCH_CONTEXT_WINDOW,
)
from saferedact.core.detection.validators import (
    luhn_check,
    validate_china_mobile,
    validate_chinese_id,
    validate_international_phone,
    validate_ssn,
    validate_us_phone,
)
from saferedact.models.schemas import EntityType, Script

_A = re.ASCII
_AI = re.ASCII | re.IGNORECASE


@dataclass(frozen=True)
class PatternDefinition:
    """One detection pattern: matcher, optional validator, context boost."""
    name: str
    entity_type: EntityType
    matcher: Union[re.Pattern, regex.Pattern]  # user words compile with `regex`
    base_confidence: float
    validator: Optional[Callable[[str], bool]] = None
    applicable_scripts: frozenset[Script] = field(default_factory=frozenset)
    context_keywords: tuple[str, ...] = ()
    context_window: int = DEFAULT_SEARCH_CONTEXT_WINDOW
    confidence_boost: float = DEFAULT_CONFIDENCE_BOOST

    @property
    def is_universal(self) -> bool:
        return not self.applicable_scripts

    def applies_to(self, scripts: list[Script]) -> bool:
        """True if the pattern has no script restriction or shares one with *scripts*."""
        return self.is_universal or any(s in self.applicable_scripts for s in scripts)


def _scripts(*names: Script) -> frozenset[Script]:
    return frozenset(names)


_LATIN = _scripts(Script.LATIN)
_CHINESE = _scripts(Script.CHINESE, Script.CJK)

# ═══════════════════════════════════════════════════════════════════════════
# Context keywords
# ═══════════════════════════════════════════════════════════════════════════

_SSN_KEYWORDS = ("ssn", "social security", "social security number", "ss#", "ss #")
_PHONE_KEYWORDS = ("phone", "tel", "telephone", "mobile", "cell", "contact", "call")
_CN_MOBILE_KEYWORDS = ("电话", "手机", "联系", "phone", "mobile", "tel", "contact")
_CN_LANDLINE_KEYWORDS = ("电话", "座机", "固话", "phone", "tel", "landline")
_CARD_KEYWORDS = (
    "card", "credit", "debit", "visa", "mastercard", "amex", "payment",
    "cc", "card number", "信用卡", "银行卡",
)
_CN_ID_KEYWORDS = ("身份证", "身份证号", "id", "id card", "identity", "national id", "证件")
_CN_PASSPORT_KEYWORDS = ("护照", "护照号", "passport", "passport number", "passport no")
_US_PASSPORT_KEYWORDS = ("passport", "passport number", "passport no", "passport #", "us passport")

_MONTHS = (
    "January|February|March|April|May|June|July|August|September|October|November|December"
)

# ═══════════════════════════════════════════════════════════════════════════
# Built-in catalog
# ═══════════════════════════════════════════════════════════════════════════

BUILTIN_PATTERNS: tuple[PatternDefinition, ...] = (
    # ── Identity numbers ──────────────────────────────────────────────────
    # Reserved ranges (000/666, 00, 0000) are rejected by the validator,
    # not the matcher, so they are suppressed rather than never matched.
    PatternDefinition(
        name="SSN (US)",
        entity_type=EntityType.SSN,
        matcher=re.compile(r"\b\d{3}[-\s]?\d{2}[-\s]?\d{4}\b", _A),
        base_confidence=0.85,
        validator=validate_ssn,
        applicable_scripts=_LATIN,
        context_keywords=_SSN_KEYWORDS,
        context_window=30,
        confidence_boost=1.15,
    ),
    # ── Contact ───────────────────────────────────────────────────────────
    PatternDefinition(
        name="Email",
        entity_type=EntityType.EMAIL,
        matcher=re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b", _A),
        base_confidence=0.95,
    ),
    PatternDefinition(
        name="Phone (US)",
        entity_type=EntityType.PHONE,
        matcher=re.compile(r"\b(?:\+?1[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}\b", _A),
        base_confidence=0.90,
        validator=validate_us_phone,
        applicable_scripts=_LATIN,
        context_keywords=_PHONE_KEYWORDS,
        context_window=40,
        confidence_boost=1.1,
    ),
    PatternDefinition(
        name="Phone (International)",
        entity_type=EntityType.PHONE,
        matcher=re.compile(r"\+\d{1,3}[-.\s]?\d{1,4}[-.\s]?\d{1,4}[-.\s]?\d{1,9}\b", _A),
        base_confidence=0.85,
        validator=validate_international_phone,
        context_keywords=_PHONE_KEYWORDS,
        context_window=40,
        confidence_boost=1.1,
    ),
    PatternDefinition(
        name="Phone (China Mobile)",
        entity_type=EntityType.PHONE,
        matcher=re.compile(r"\b1[3-9]\d[-\s]?\d{4}[-\s]?\d{4}\b", _A),
        base_confidence=0.90,
        validator=validate_china_mobile,
        applicable_scripts=_CHINESE,
        context_keywords=_CN_MOBILE_KEYWORDS,
        context_window=20,
        confidence_boost=1.15,
    ),
    PatternDefinition(
        name="Phone (China Landline)",
        entity_type=EntityType.PHONE,
        matcher=re.compile(r"\b0\d{2,3}[-\s]?\d{7,8}\b", _A),
        base_confidence=0.65,
        applicable_scripts=_CHINESE,
        context_keywords=_CN_LANDLINE_KEYWORDS,
        context_window=20,
        confidence_boost=1.2,
    ),
    # ── Payment cards ─────────────────────────────────────────────────────
    PatternDefinition(
        name="Credit Card (Generic)",
        entity_type=EntityType.CREDIT_CARD,
        matcher=re.compile(r"\b(?:\d[-\s]?){12,18}\d\b", _A),
        base_confidence=0.4,
        validator=luhn_check,
        context_keywords=_CARD_KEYWORDS,
        context_window=50,
        confidence_boost=2.0,
    ),
    PatternDefinition(
        name="Credit Card (Visa)",
        entity_type=EntityType.CREDIT_CARD,
        matcher=re.compile(r"\b4\d{3}[-\s]?\d{4}[-\s]?\d{4}[-\s]?(?:\d{4}|\d)\b", _A),
        base_confidence=0.6,
        validator=luhn_check,
    ),
    PatternDefinition(
        name="Credit Card (Mastercard)",
        entity_type=EntityType.CREDIT_CARD,
        matcher=re.compile(
            r"\b(?:5[1-5]\d{2}|222[1-9]|22[3-9]\d|2[3-6]\d{2}|27[01]\d|2720)"
            r"[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}\b",
            _A,
        ),
        base_confidence=0.6,
        validator=luhn_check,
    ),
    PatternDefinition(
        name="Credit Card (Amex)",
        entity_type=EntityType.CREDIT_CARD,
        matcher=re.compile(r"\b3[47]\d{2}[-\s]?\d{6}[-\s]?\d{5}\b", _A),
        base_confidence=0.6,
        validator=luhn_check,
    ),
    PatternDefinition(
        name="Credit Card (Discover)",
        entity_type=EntityType.CREDIT_CARD,
        matcher=re.compile(r"\b6(?:011|5\d{2})[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}\b", _A),
        base_confidence=0.6,
        validator=luhn_check,
    ),
    PatternDefinition(
        name="Credit Card (UnionPay)",
        entity_type=EntityType.CREDIT_CARD,
        matcher=re.compile(r"\b62\d{14,17}\b", _A),
        base_confidence=0.6,
        validator=luhn_check,
    ),
    # ── Dates ─────────────────────────────────────────────────────────────
    PatternDefinition(
        name="Date (MM/DD/YYYY)",
        entity_type=EntityType.DATE,
        matcher=re.compile(
            r"\b(?:0?[1-9]|1[0-2])/(?:0?[1-9]|[12][0-9]|3[01])/(?:19|20)\d{2}\b", _A,
        ),
        base_confidence=0.85,
    ),
    PatternDefinition(
        name="Date (YYYY-MM-DD)",
        entity_type=EntityType.DATE,
        matcher=re.compile(
            r"\b(?:19|20)\d{2}-(?:0?[1-9]|1[0-2])-(?:0?[1-9]|[12][0-9]|3[01])\b", _A,
        ),
        base_confidence=0.85,
    ),
    PatternDefinition(
        name="Date (Month DD, YYYY)",
        entity_type=EntityType.DATE,
        matcher=re.compile(rf"\b(?:{_MONTHS})\s+\d{{1,2}},\s+\d{{4}}\b", _AI),
        base_confidence=0.80,
    ),
    PatternDefinition(
        name="Date (Chinese)",
        entity_type=EntityType.DATE,
        matcher=re.compile(
            r"(?:19|20)\d{2}年(?:0?[1-9]|1[0-2])月(?:0?[1-9]|[12]\d|3[01])日", _A,
        ),
        base_confidence=0.90,
        applicable_scripts=_scripts(Script.CHINESE, Script.JAPANESE, Script.CJK),
    ),
    PatternDefinition(
        name="Date (DD/MM/YYYY)",
        entity_type=EntityType.DATE,
        matcher=re.compile(
            r"\b(?:0?[1-9]|[12][0-9]|3[01])/(?:0?[1-9]|1[0-2])/(?:19|20)\d{2}\b", _A,
        ),
        base_confidence=0.75,
    ),
    # ── National IDs and passports ────────────────────────────────────────
    PatternDefinition(
        name="Chinese National ID",
        entity_type=EntityType.CUSTOM,
        matcher=re.compile(
            r"\b[1-9]\d{5}(?:19|20)\d{2}(?:0[1-9]|1[0-2])(?:0[1-9]|[12]\d|3[01])\d{3}[\dXx]\b",
            _A,
        ),
        base_confidence=0.7,
        validator=validate_chinese_id,
        applicable_scripts=_CHINESE,
        context_keywords=_CN_ID_KEYWORDS,
        context_window=25,
        confidence_boost=1.2,
    ),
    PatternDefinition(
        name="Chinese Passport (Current)",
        entity_type=EntityType.CUSTOM,
        matcher=re.compile(r"\bE[A-HJ-NR-Z]\d{7}\b", _A),
        base_confidence=0.95,
        applicable_scripts=_CHINESE,
        context_keywords=_CN_PASSPORT_KEYWORDS,
        context_window=25,
        confidence_boost=1.05,
    ),
    PatternDefinition(
        name="Chinese Passport (Legacy)",
        entity_type=EntityType.CUSTOM,
        matcher=re.compile(r"\bE\d{8}\b", _A),
        base_confidence=0.90,
        applicable_scripts=_CHINESE,
        context_keywords=_CN_PASSPORT_KEYWORDS,
        context_window=25,
        confidence_boost=1.1,
    ),
    PatternDefinition(
        name="US Passport",
        entity_type=EntityType.CUSTOM,
        matcher=re.compile(r"\b[A-Z]\d{8}\b", _A),
        base_confidence=0.40,
        applicable_scripts=_LATIN,
        context_keywords=_US_PASSPORT_KEYWORDS,
        context_window=30,
        confidence_boost=2.0,
    ),
    # ── Network identifiers ───────────────────────────────────────────────
    PatternDefinition(
        name="IP Address (IPv4)",
        entity_type=EntityType.CUSTOM,
        matcher=re.compile(
            r"\b(?:(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\.){3}"
            r"(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\b",
            _A,
        ),
        base_confidence=0.95,
    ),
    PatternDefinition(
        name="IP Address (IPv6)",
        entity_type=EntityType.CUSTOM,
        matcher=re.compile(r"\b(?:[0-9a-fA-F]{1,4}:){7}[0-9a-fA-F]{1,4}\b", _A),
        base_confidence=0.90,
    ),
    PatternDefinition(
        name="URL (with protocol)",
        entity_type=EntityType.CUSTOM,
        matcher=re.compile(
            r"\bhttps?://[-a-zA-Z0-9@:%._+~#=]{1,256}\.[a-zA-Z]{2,6}\b"
            r"(?:[-a-zA-Z0-9()@:%_+.~#?&/=]*)",
            _A,
        ),
        base_confidence=0.95,
    ),
    PatternDefinition(
        name="URL (without protocol)",
        entity_type=EntityType.CUSTOM,
        matcher=re.compile(
            r"\bwww\.[-a-zA-Z0-9@:%._+~#=]{1,256}\.[a-zA-Z]{2,6}\b"
            r"(?:[-a-zA-Z0-9()@:%_+.~#?&/=]*)",
            _A,
        ),
        base_confidence=0.70,
    ),
    PatternDefinition(
        name="Crypto (Bitcoin)",
        entity_type=EntityType.CUSTOM,
        matcher=re.compile(r"\b(?:[13][a-km-zA-HJ-NP-Z1-9]{25,34}|bc1[a-z0-9]{39,59})\b", _A),
        base_confidence=0.85,
    ),
)


def get_pattern_by_name(name: str) -> Optional[PatternDefinition]:
    for pattern in BUILTIN_PATTERNS:
        if pattern.name == name:
            return pattern
    return None


def get_patterns_by_type(entity_type: EntityType) -> list[PatternDefinition]:
    return [p for p in BUILTIN_PATTERNS if p.entity_type == entity_type]
