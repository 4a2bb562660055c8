"""Pydantic data models for the redaction core."""

from __future__ import annotations

import enum
import time
import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class EntityType(str, enum.Enum):
    """Categories of sensitive information (closed set)."""
    PERSON = "PERSON"
    ORG = "ORG"
    LOC = "LOC"
    DATE = "DATE"
    SSN = "SSN"
    CREDIT_CARD = "CREDIT_CARD"
    PHONE = "PHONE"
    EMAIL = "EMAIL"
    CUSTOM = "CUSTOM"


class DetectionMethod(str, enum.Enum):
    """Which detection layer produced the entity."""
    PATTERN = "pattern"
    CLASSIFIER = "classifier"
    MANUAL = "manual"


class EntityStatus(str, enum.Enum):
    """Review state of a detected entity."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    MODIFIED = "modified"


class Script(str, enum.Enum):
    """Writing systems recognised by the script classifier."""
    LATIN = "latin"
    CHINESE = "chinese"
    JAPANESE = "japanese"
    KOREAN = "korean"
    ARABIC = "arabic"
    HEBREW = "hebrew"
    DEVANAGARI = "devanagari"
    THAI = "thai"
    CYRILLIC = "cyrillic"
    CJK = "cjk"
    UNKNOWN = "unknown"


class Aggressiveness(str, enum.Enum):
    """Confidence tier applied when filtering reconciled entities."""
    CONSERVATIVE = "conservative"   # keep >= high
    BALANCED = "balanced"           # keep >= medium
    AGGRESSIVE = "aggressive"       # keep >= low


class AggregationStrategy(str, enum.Enum):
    """How sub-word tokens are reduced to one word-level label."""
    FIRST = "first"
    MAX = "max"
    AVERAGE = "average"


class SaveMode(str, enum.Enum):
    INCREMENTAL = "incremental"
    FULL = "full"


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------

class BoundingBox(BaseModel):
    """Axis-aligned box in page coordinates (points, bottom-left origin)."""
    x: float
    y: float
    width: float = Field(default=0.0, ge=0.0)
    height: float = Field(default=0.0, ge=0.0)

    @property
    def x1(self) -> float:
        return self.x + self.width

    @property
    def y1(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        return self.width * self.height


class Position(BaseModel):
    """Where an entity lives in the document."""
    page_index: int = 0
    bounding_box: BoundingBox = Field(default_factory=lambda: BoundingBox(x=0, y=0))
    # Character index into the page text; -1 for form-field values.
    source_offset: int = -1
    source_field_id: Optional[str] = None

    @property
    def is_field(self) -> bool:
        return self.source_field_id is not None


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------

class Entity(BaseModel):
    """A single detected (or manually added) sensitive span."""
    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    text: str
    entity_type: EntityType
    confidence: float = 1.0
    position: Position = Field(default_factory=Position)
    detection_method: DetectionMethod = DetectionMethod.PATTERN
    status: EntityStatus = EntityStatus.PENDING
    context_snippet: str = ""

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: float) -> float:
        value = float(value)
        if value != value:  # NaN
            return 0.0
        return min(1.0, max(0.0, value))

    @field_validator("text")
    @classmethod
    def _text_not_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("entity text must not be empty")
        return value


class RawToken(BaseModel):
    """One token of raw classifier output (before aggregation)."""
    tag: str
    fragment: str
    score: float
    start: int
    end: int
    is_continuation: bool = False


# ---------------------------------------------------------------------------
# Page content (produced by a document backend)
# ---------------------------------------------------------------------------

class TextRun(BaseModel):
    """One extracted word/run, bottom-left page coordinates."""
    text: str
    x: float
    y: float
    width: float = 0.0
    height: float = 0.0


class FormField(BaseModel):
    """Interactive form field (widget) on a page."""
    id: str
    label: str = ""
    value: str = ""
    bounds: BoundingBox
    field_type: str = ""


class PageContent(BaseModel):
    """Text, runs and form fields of a single page."""
    page_index: int
    width: float
    height: float
    text: str = ""
    runs: list[TextRun] = Field(default_factory=list)
    form_fields: list[FormField] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# User-defined words
# ---------------------------------------------------------------------------

class UserWord(BaseModel):
    """A word the user always wants redacted."""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    word: str = Field(min_length=1)
    case_sensitive: bool = False
    whole_word: bool = True
    created_at: float = Field(default_factory=time.time)


# ---------------------------------------------------------------------------
# Detection settings
# ---------------------------------------------------------------------------

class ConfidenceThresholds(BaseModel):
    high: float = Field(default=0.90, ge=0.0, le=1.0)
    medium: float = Field(default=0.70, ge=0.0, le=1.0)
    low: float = Field(default=0.50, ge=0.0, le=1.0)


class DetectionSettings(BaseModel):
    """User-facing detection configuration (plain values only)."""
    enabled_entity_types: list[EntityType] = Field(
        default_factory=lambda: list(EntityType),
    )
    confidence_thresholds: ConfidenceThresholds = Field(default_factory=ConfidenceThresholds)
    aggressiveness: Aggressiveness = Aggressiveness.BALANCED
    use_classifier: bool = False
    sanitize: bool = True

    def min_confidence(self) -> float:
        """Return the threshold implied by the aggressiveness tier."""
        if self.aggressiveness == Aggressiveness.CONSERVATIVE:
            return self.confidence_thresholds.high
        if self.aggressiveness == Aggressiveness.AGGRESSIVE:
            return self.confidence_thresholds.low
        return self.confidence_thresholds.medium


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

class RedactionResult(BaseModel):
    """Outcome of a redaction job: either full success or full failure."""
    success: bool
    data: Optional[bytes] = None
    error: Optional[str] = None
    redacted_count: int = 0
    skipped_count: int = 0
    warnings: list[str] = Field(default_factory=list)
    elapsed_ms: float = 0.0


class DetectionProgress(BaseModel):
    """Snapshot passed to progress callbacks."""
    stage: str
    done: int
    total: int


# ---------------------------------------------------------------------------
# Review API
# ---------------------------------------------------------------------------

class JobResponse(BaseModel):
    """A detection job as returned by the review API."""
    job_id: str
    filename: str
    kind: str
    page_count: int = 0
    entities: list[Entity] = Field(default_factory=list)


class EntityIdsRequest(BaseModel):
    ids: list[str] = Field(default_factory=list)


class ReviewUpdateResponse(BaseModel):
    job_id: str
    updated: list[str]
