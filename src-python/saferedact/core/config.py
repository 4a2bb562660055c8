"""Global application configuration."""

from __future__ import annotations

import json
import logging
import os

from pydantic import BaseModel, Field

from saferedact.models.schemas import AggregationStrategy, DetectionSettings

logger = logging.getLogger(__name__)

_ENV_PREFIX = "SAFEREDACT_"


def _env(name: str, default: str) -> str:
    return os.environ.get(_ENV_PREFIX + name, default)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(_ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s%s=%r", _ENV_PREFIX, name, raw)
        return default


def _default_detection() -> DetectionSettings:
    """Build default detection settings, optionally from a JSON env var."""
    raw = os.environ.get(_ENV_PREFIX + "DETECTION")
    if not raw:
        return DetectionSettings()
    try:
        return DetectionSettings.model_validate(json.loads(raw))
    except (ValueError, TypeError) as exc:
        logger.warning("Invalid %sDETECTION settings, using defaults: %s", _ENV_PREFIX, exc)
        return DetectionSettings()


class AppConfig(BaseModel):
    """Application-wide settings — loaded once at startup."""

    # Logging
    log_format: str = Field(default_factory=lambda: _env("LOG_FORMAT", "text"))   # "text" | "json"
    log_level: str = Field(default_factory=lambda: _env("LOG_LEVEL", "INFO"))

    # Token classifier (optional)
    classifier_model: str = Field(
        default_factory=lambda: _env("CLASSIFIER_MODEL", "dslim/bert-base-NER"),
    )
    classifier_device: int = Field(default_factory=lambda: _env_int("CLASSIFIER_DEVICE", -1))  # -1 = CPU
    aggregation_strategy: AggregationStrategy = Field(
        default_factory=lambda: AggregationStrategy(_env("AGGREGATION", "first")),
    )
    chunk_size: int = Field(default_factory=lambda: _env_int("CHUNK_SIZE", 2000), gt=0)
    chunk_overlap: int = Field(default_factory=lambda: _env_int("CHUNK_OVERLAP", 200), ge=0)

    # Geometric search
    max_search_hits: int = Field(default_factory=lambda: _env_int("MAX_SEARCH_HITS", 100), gt=0)

    # Review API server
    host: str = Field(default_factory=lambda: _env("HOST", "127.0.0.1"))
    port: int = Field(default_factory=lambda: _env_int("PORT", 8920), ge=0, le=65535)
    max_upload_mb: int = Field(default_factory=lambda: _env_int("MAX_UPLOAD_MB", 50), gt=0)

    # Default detection settings for new jobs
    detection: DetectionSettings = Field(default_factory=_default_detection)

    def model_post_init(self, __context: object) -> None:
        if self.chunk_overlap >= self.chunk_size:
            logger.warning(
                "chunk_overlap (%d) >= chunk_size (%d); clamping overlap",
                self.chunk_overlap, self.chunk_size,
            )
            self.chunk_overlap = self.chunk_size // 10


# Singleton, importable from anywhere
config = AppConfig()
