"""Review state for a canonical entity list."""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from saferedact.models.schemas import (
    DetectionMethod,
    Entity,
    EntityStatus,
    EntityType,
    Position,
)

logger = logging.getLogger(__name__)


class ReviewSet:
    """Entities keyed by their stable id, with confirm/reject operations."""

    def __init__(self, entities: Iterable[Entity] = ()) -> None:
        self._entities: dict[str, Entity] = {}
        for entity in entities:
            self._entities[entity.id] = entity

    def __len__(self) -> int:
        return len(self._entities)

    def __iter__(self):
        return iter(self._entities.values())

    def get(self, entity_id: str) -> Optional[Entity]:
        return self._entities.get(entity_id)

    def entities(self) -> list[Entity]:
        return list(self._entities.values())

    def _set_status(self, ids: Iterable[str], status: EntityStatus) -> list[str]:
        changed: list[str] = []
        for entity_id in ids:
            entity = self._entities.get(entity_id)
            if entity is None:
                logger.debug("Skipping unknown entity id: %r", entity_id)
                continue
            entity.status = status
            changed.append(entity_id)
        return changed

    def confirm(self, ids: Iterable[str]) -> list[str]:
        """Mark entities confirmed; returns the ids that exist."""
        return self._set_status(ids, EntityStatus.CONFIRMED)

    def reject(self, ids: Iterable[str]) -> list[str]:
        return self._set_status(ids, EntityStatus.REJECTED)

    def confirm_all(self) -> list[str]:
        return self.confirm([e.id for e in self._entities.values() if e.status != EntityStatus.REJECTED])

    def modify(self, entity_id: str, **changes: object) -> Entity:
        """Apply user edits (text, type, position) and mark the entity modified."""
        entity = self._entities.get(entity_id)
        if entity is None:
            raise KeyError(f"Entity '{entity_id}' not found")
        updated = Entity.model_validate({
            **entity.model_dump(),
            **{k: v for k, v in changes.items() if k in ("text", "entity_type", "position")},
            "status": EntityStatus.MODIFIED,
        })
        self._entities[entity_id] = updated
        return updated

    def add_manual(
        self, text: str, entity_type: EntityType, position: Position,
    ) -> Entity:
        """Add a user-drawn entity; it starts confirmed."""
        entity = Entity(
            text=text,
            entity_type=entity_type,
            confidence=1.0,
            position=position,
            detection_method=DetectionMethod.MANUAL,
            status=EntityStatus.CONFIRMED,
        )
        self._entities[entity.id] = entity
        return entity

    def confirmed(self) -> list[Entity]:
        """Entities that will be redacted (confirmed or user-modified)."""
        return [
            e for e in self._entities.values()
            if e.status in (EntityStatus.CONFIRMED, EntityStatus.MODIFIED)
        ]
