"""FastAPI application — review API for saferedact."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from saferedact import __version__
from saferedact.api import deps
from saferedact.api.routers import health, jobs
from saferedact.core.config import config
from saferedact.core.detection.classifier import TokenClassifierService
from saferedact.core.errors import ClassifierUnavailable

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load the token classifier on startup when enabled; dispose it on shutdown."""
    if config.detection.use_classifier:
        service = TokenClassifierService(config.classifier_model, config.classifier_device)
        try:
            await service.ainitialize()
            deps.classifier = service
        except ClassifierUnavailable as exc:
            logger.warning("Classifier unavailable, running pattern-only: %s", exc)
    try:
        yield
    finally:
        if deps.classifier is not None:
            deps.classifier.dispose()
            deps.classifier = None
        deps.jobs.clear()


app = FastAPI(
    title="saferedact",
    version=__version__,
    description="Review API for sensitive-data detection and redaction",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(jobs.router)
