"""Shared state and helpers used by all API routers."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional

from fastapi import HTTPException

from saferedact.core.config import config
from saferedact.core.detection.classifier import TokenClassifierService
from saferedact.core.detection.pattern_catalog import PatternCatalog
from saferedact.core.detection.pipeline import DetectionPipeline
from saferedact.core.detection.review import ReviewSet
from saferedact.models.schemas import DetectionProgress, JobResponse

logger = logging.getLogger(__name__)


@dataclass
class Job:
    """An uploaded document, its detections and their review state."""
    filename: str
    kind: str
    data: bytes
    page_count: int = 0
    review: ReviewSet = field(default_factory=ReviewSet)
    progress: Optional[DetectionProgress] = None
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    def to_response(self) -> JobResponse:
        return JobResponse(
            job_id=self.job_id,
            filename=self.filename,
            kind=self.kind,
            page_count=self.page_count,
            entities=self.review.entities(),
        )


# ---------------------------------------------------------------------------
# Singleton state  (set up by the server lifespan, read everywhere)
# ---------------------------------------------------------------------------
jobs: dict[str, Job] = {}
catalog = PatternCatalog()
classifier: Optional[TokenClassifierService] = None


def get_job(job_id: str) -> Job:
    if job_id not in jobs:
        raise HTTPException(status_code=404, detail=f"Job '{job_id}' not found")
    return jobs[job_id]


def build_pipeline() -> DetectionPipeline:
    """A pipeline wired to the shared catalog, classifier and config."""
    return DetectionPipeline(
        catalog=catalog,
        classifier=classifier,
        settings=config.detection,
        aggregation=config.aggregation_strategy,
        chunk_size=config.chunk_size,
        chunk_overlap=config.chunk_overlap,
        max_search_hits=config.max_search_hits,
    )
