"""Liveness endpoint."""

from __future__ import annotations

from fastapi import APIRouter

from saferedact import __version__
from saferedact.api import deps

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict:
    return {
        "status": "ok",
        "version": __version__,
        "classifier_ready": deps.classifier is not None and deps.classifier.ready,
        "jobs": len(deps.jobs),
    }
