"""Cooperative cancellation for long-running async stages."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from saferedact.core.errors import DetectionCancelled
from saferedact.models.schemas import DetectionProgress

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[DetectionProgress], None]


class CancelToken:
    """Cancellation flag checked between pages and chunks.

    Cancelling never interrupts work in progress; the running stage
    raises :class:`DetectionCancelled` at its next check.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self.reason: str = ""

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._cancelled:
            logger.info("Cancellation requested: %s", reason)
        self._cancelled = True
        self.reason = reason

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise DetectionCancelled(self.reason)


def check_cancel(token: Optional[CancelToken]) -> None:
    if token is not None:
        token.raise_if_cancelled()


def report(progress: Optional[ProgressCallback], stage: str, done: int, total: int) -> None:
    """Invoke a progress callback; callback errors never abort the job."""
    if progress is None:
        return
    try:
        progress(DetectionProgress(stage=stage, done=done, total=total))
    except Exception:
        logger.exception("Progress callback failed (stage=%s)", stage)
