"""Exception hierarchy for detection and redaction.

Validator rejections are not represented here: a pattern hit whose
validator fails is simply not emitted (logged at debug level).
"""

from __future__ import annotations


class SafeRedactError(Exception):
    """Base class for all saferedact errors."""


class LocatorMiss(SafeRedactError):
    """No on-page position could be found for a text match."""

    def __init__(self, text: str, page_index: int, offset: int):
        self.text = text
        self.page_index = page_index
        self.offset = offset
        super().__init__(
            f"No position for {text!r} at offset {offset} on page {page_index}"
        )


class BackendOperationFailure(SafeRedactError):
    """A single field/annotation operation failed; the job continues."""


class FatalBackendFailure(SafeRedactError):
    """Loading or final serialization failed; the job aborts."""


class ClassifierUnavailable(SafeRedactError):
    """The token classifier is missing or failed to load."""


class DetectionCancelled(SafeRedactError):
    """A cooperative cancellation request was observed."""
