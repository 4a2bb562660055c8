"""Token classifier interface and the Hugging Face service implementation.

The detection pipeline depends only on :class:`TokenClassifier`. The
:class:`TokenClassifierService` owns a ``transformers`` token
classification pipeline and its lifecycle: create it, call
``initialize()`` (or ``await ainitialize()``), inject it, and
``dispose()`` it when done. ``transformers`` is imported lazily so
pattern-only detection never needs it installed.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Protocol, runtime_checkable

from saferedact.core.errors import ClassifierUnavailable
from saferedact.models.schemas import RawToken

logger = logging.getLogger(__name__)


@runtime_checkable
class TokenClassifier(Protocol):
    """Anything that labels the tokens of a text chunk."""

    @property
    def ready(self) -> bool: ...

    def classify(self, text: str) -> list[RawToken]: ...


def is_transformers_available() -> bool:
    """Check if the classifier stack can be imported (transformers installed)."""
    try:
        import transformers  # noqa: F401
        return True
    except ImportError:
        return False


def tokens_from_pipeline_output(results: list[dict[str, Any]], text: str) -> list[RawToken]:
    """Convert raw (non-aggregated) pipeline output to :class:`RawToken` records.

    With ``aggregation_strategy="none"`` each item has the keys
    ``entity``, ``score``, ``word``, ``start``, ``end`` (offsets may be
    None for slow tokenizers, in which case the token is skipped).
    """
    tokens: list[RawToken] = []
    for item in results:
        start = item.get("start")
        end = item.get("end")
        if start is None or end is None:
            continue
        fragment = item.get("word") or text[start:end]
        tokens.append(RawToken(
            tag=str(item.get("entity", "O")),
            fragment=str(fragment),
            score=float(item.get("score", 0.0)),
            start=int(start),
            end=int(end),
        ))
    return tokens


class TokenClassifierService:
    """Owns one Hugging Face token-classification pipeline."""

    def __init__(self, model_id: str, device: int = -1) -> None:
        self.model_id = model_id
        self.device = device
        self._pipeline: Optional[Any] = None

    @property
    def ready(self) -> bool:
        return self._pipeline is not None

    def initialize(self) -> None:
        """Load the model. Raises ClassifierUnavailable on any failure."""
        if self._pipeline is not None:
            return
        try:
            from transformers import pipeline as hf_pipeline
        except ImportError as exc:
            raise ClassifierUnavailable("transformers is not installed") from exc

        logger.info("Loading token classifier '%s' …", self.model_id)
        try:
            self._pipeline = hf_pipeline(
                "token-classification",
                model=self.model_id,
                aggregation_strategy="none",
                device=self.device,
            )
        except Exception as exc:
            raise ClassifierUnavailable(
                f"Failed to load classifier '{self.model_id}': {exc}"
            ) from exc
        logger.info("Token classifier '%s' loaded", self.model_id)

    async def ainitialize(self) -> None:
        """Load the model off the event loop."""
        await asyncio.to_thread(self.initialize)

    def dispose(self) -> None:
        """Free memory held by the model."""
        if self._pipeline is not None:
            self._pipeline = None
            logger.info("Token classifier '%s' disposed", self.model_id)

    def classify(self, text: str) -> list[RawToken]:
        if self._pipeline is None:
            raise ClassifierUnavailable("Classifier not initialized")
        if not text.strip():
            return []
        return tokens_from_pipeline_output(self._pipeline(text), text)
