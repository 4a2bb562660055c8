"""Detection jobs: upload, review (confirm/reject) and redaction."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from fastapi import APIRouter, File, HTTPException, UploadFile
from fastapi.responses import Response

from saferedact.api import deps
from saferedact.api.deps import Job, get_job
from saferedact.core.backend.pymupdf_backend import PyMuPDFBackend
from saferedact.core.config import config
from saferedact.core.detection.review import ReviewSet
from saferedact.core.errors import FatalBackendFailure
from saferedact.core.redaction.coordinator import RedactionCoordinator
from saferedact.core.redaction.docx_redactor import extract_docx_text
from saferedact.models.schemas import (
    DetectionProgress,
    EntityIdsRequest,
    JobResponse,
    ReviewUpdateResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["jobs"])

SUPPORTED_EXTENSIONS = {".pdf": "pdf", ".docx": "docx"}
MEDIA_TYPES = {
    "pdf": "application/pdf",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}


async def _detect(job: Job) -> None:
    def on_progress(progress: DetectionProgress) -> None:
        job.progress = progress

    pipeline = deps.build_pipeline()
    if job.kind == "pdf":
        backend = await asyncio.to_thread(PyMuPDFBackend.open, job.data)
        try:
            job.page_count = backend.page_count
            entities = await pipeline.detect_document(backend, progress=on_progress)
        finally:
            backend.close()
    else:
        text = await asyncio.to_thread(extract_docx_text, job.data)
        job.page_count = 1
        entities = await pipeline.detect_text(text, progress=on_progress)
    job.review = ReviewSet(entities)


@router.post("/jobs", response_model=JobResponse)
async def create_job(file: UploadFile = File(...)) -> JobResponse:
    """Upload a PDF or DOCX and run detection on it."""
    if not file.filename:
        raise HTTPException(400, "No filename provided")
    ext = Path(file.filename).suffix.lower()
    if ext not in SUPPORTED_EXTENSIONS:
        raise HTTPException(
            400,
            f"Unsupported file format '{ext}'. "
            f"Supported: {', '.join(sorted(SUPPORTED_EXTENSIONS))}",
        )

    data = await file.read()
    if len(data) > config.max_upload_mb * 1024 * 1024:
        raise HTTPException(413, f"File exceeds {config.max_upload_mb} MB")

    job = Job(filename=Path(file.filename).name, kind=SUPPORTED_EXTENSIONS[ext], data=data)
    try:
        await _detect(job)
    except FatalBackendFailure as exc:
        raise HTTPException(400, str(exc)) from exc

    deps.jobs[job.job_id] = job
    logger.info("Job %s: %d entities detected in %s", job.job_id, len(job.review), job.filename,
                extra={"job_id": job.job_id})
    return job.to_response()


@router.get("/jobs/{job_id}", response_model=JobResponse)
async def get_job_info(job_id: str) -> JobResponse:
    return get_job(job_id).to_response()


@router.post("/jobs/{job_id}/confirm", response_model=ReviewUpdateResponse)
async def confirm_entities(job_id: str, body: EntityIdsRequest) -> ReviewUpdateResponse:
    """Confirm the given entity ids; an empty list confirms everything not rejected."""
    job = get_job(job_id)
    updated = job.review.confirm(body.ids) if body.ids else job.review.confirm_all()
    return ReviewUpdateResponse(job_id=job_id, updated=updated)


@router.post("/jobs/{job_id}/reject", response_model=ReviewUpdateResponse)
async def reject_entities(job_id: str, body: EntityIdsRequest) -> ReviewUpdateResponse:
    job = get_job(job_id)
    return ReviewUpdateResponse(job_id=job_id, updated=job.review.reject(body.ids))


@router.post("/jobs/{job_id}/redact")
async def redact_job(job_id: str) -> Response:
    """Redact the confirmed entities and return the new file."""
    job = get_job(job_id)
    result = await RedactionCoordinator().redact(
        job.data, job.kind, job.review.confirmed(), sanitize=config.detection.sanitize,
    )
    if not result.success or result.data is None:
        raise HTTPException(
            status_code=422,
            detail={"error": result.error, "warnings": result.warnings},
        )

    stem = Path(job.filename).stem
    ext = Path(job.filename).suffix.lower()
    return Response(
        content=result.data,
        media_type=MEDIA_TYPES[job.kind],
        headers={
            "Content-Disposition": f'attachment; filename="{stem}_redacted{ext}"',
            "X-Redacted-Count": str(result.redacted_count),
            "X-Skipped-Count": str(result.skipped_count),
        },
    )
