"""Detection and redaction configuration constants.

This module centralizes the magic numbers used by the detection,
reconciliation and redaction stages. Each constant is documented with
its purpose and the effect of changing it.

Tuning Guide:
- Higher IoU threshold → fewer spatial merges (more near-duplicates survive)
- Larger position tolerance → more same-text detections collapse together
- Larger search-context window → more keyword boosts (more false positives)
"""

from __future__ import annotations

# =============================================================================
# SCRIPT CLASSIFICATION
# =============================================================================

SCRIPT_SAMPLE_SIZE: int = 10_000
"""Maximum number of characters inspected by the script classifier."""

SCRIPT_MIN_CHARS: int = 10
"""Below this many counted (non-digit, non-space, non-punctuation)
characters the script is reported as unknown."""

SCRIPT_THRESHOLD: float = 30.0
"""Percentage share a script needs to be reported (most scripts)."""

SCRIPT_THRESHOLD_LATIN: float = 20.0
"""Percentage share for the Latin baseline. Lower because Latin text
co-occurs with digits and punctuation in mixed documents."""

SCRIPT_THRESHOLD_JAPANESE: float = 5.0
"""Percentage share of kana needed to report Japanese. Kana are a small
fraction of Japanese text, which is mostly han characters."""

SCRIPT_THRESHOLD_MIXED_CJK: float = 20.0
"""Share of both han and Latin characters above which a document is
tagged as mixed CJK when neither Chinese nor Japanese was reported."""

SCRIPT_THRESHOLD_DOMINANT: float = 10.0
"""Fallback: the dominant script is reported when nothing crossed its
own threshold but the dominant share exceeds this percentage."""

# =============================================================================
# PATTERN MATCHING
# =============================================================================

DEFAULT_SEARCH_CONTEXT_WINDOW: int = 10
"""Characters on each side of a match searched for context keywords
when a pattern does not configure its own window."""

DEFAULT_CONFIDENCE_BOOST: float = 1.2
"""Multiplier applied on keyword hit when a pattern does not configure
its own boost."""

DISPLAY_CONTEXT_WINDOW: int = 50
"""Characters of surrounding text stored on each entity for review."""

USER_WORD_CONFIDENCE: float = 1.0
"""Confidence assigned to matches of user-defined words."""

# =============================================================================
# SPAN LOCATION
# =============================================================================

MAX_SEARCH_HITS: int = 100
"""Upper bound on hits requested from the backend's text search."""

QUAD_MERGE_VERTICAL_FACTOR: float = 2.0
"""Two quad groups of a multi-line match merge when their centers are
within this many average glyph heights vertically."""

QUAD_MERGE_HORIZONTAL_RATIO: float = 0.3
"""... and within this fraction of the page width horizontally."""

CHAR_PADDING_RATIO: float = 0.1
"""Padding (fraction of one average character width) added on each side
of a box estimated from a text run, to avoid clipping glyph edges."""

LINE_BREAK_Y_DELTA: float = 5.0
"""Vertical distance between consecutive runs above which page text
extraction inserts a line break instead of a space."""

# =============================================================================
# CLASSIFIER CHUNKING
# =============================================================================

CHUNK_SIZE: int = 2000
"""Characters per classifier input window."""

CHUNK_OVERLAP: int = 200
"""Characters shared by consecutive windows so no entity is cut at a
chunk boundary without appearing whole in the next window."""

MIN_ENTITY_LENGTH: int = 2
"""Aggregated classifier entities shorter than this (after trimming)
are discarded."""

# =============================================================================
# RECONCILIATION
# =============================================================================

IOU_THRESHOLD: float = 0.8
"""Intersection-over-union at or above which two boxes are the same
detection. Empirical; tunable per reconciler instance."""

POSITION_TOLERANCE: float = 5.0
"""Maximum per-dimension difference (points) for two same-text
detections to count as the same position. Empirical; tunable."""

IOU_EPSILON: float = 1e-9
"""Float tolerance for the IoU comparison so that boxes constructed to
overlap by exactly the threshold are merged."""

# =============================================================================
# REDACTION
# =============================================================================

REDACTION_MARGIN: float = 2.0
"""Points added on every side of a redaction rectangle so no glyph
sliver survives at the edges."""

FIELD_MATCH_TOLERANCE: float = 2.0
"""Maximum per-dimension difference (points) when matching a field
entity to a form widget by bounds."""
