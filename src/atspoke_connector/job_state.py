"""
Job state: where a run's entities and relationships are collected.

The hosting platform owns the real store. Steps only rely on the JobState
protocol below; InMemoryJobState implements it for local runs and tests.
"""

import threading
from typing import Any, Protocol

import structlog

from atspoke_connector.entity_builder import GraphEntity, GraphRelationship

logger = structlog.get_logger(__name__)


class JobState(Protocol):
    """Store contract the steps are written against."""

    def add_entity(self, entity: GraphEntity) -> GraphEntity:
        """Add `entity` unless its key is taken; return the stored entity."""
        ...

    def find_entity(self, key: str) -> GraphEntity | None:
        ...

    def has_key(self, key: str) -> bool:
        ...

    def add_relationship(self, relationship: GraphRelationship) -> GraphRelationship:
        ...


class InMemoryJobState:
    """
    Run-scoped, in-memory JobState.

    Entity and relationship registration is idempotent by key: adding a key
    a second time returns what is already stored and leaves it unchanged.
    """

    def __init__(self) -> None:
        self._entities: dict[str, GraphEntity] = {}
        self._relationships: dict[str, GraphRelationship] = {}
        self._lock = threading.Lock()
        self._duplicates = 0

    def add_entity(self, entity: GraphEntity) -> GraphEntity:
        with self._lock:
            existing = self._entities.get(entity.key)
            if existing is not None:
                self._duplicates += 1
                logger.debug("Entity key already present", key=entity.key, type=entity.type)
                return existing
            self._entities[entity.key] = entity
            return entity

    def find_entity(self, key: str) -> GraphEntity | None:
        with self._lock:
            return self._entities.get(key)

    def has_key(self, key: str) -> bool:
        with self._lock:
            return key in self._entities or key in self._relationships

    def add_relationship(self, relationship: GraphRelationship) -> GraphRelationship:
        with self._lock:
            existing = self._relationships.get(relationship.key)
            if existing is not None:
                self._duplicates += 1
                return existing
            self._relationships[relationship.key] = relationship
            return relationship

    @property
    def collected_entities(self) -> list[GraphEntity]:
        with self._lock:
            return list(self._entities.values())

    @property
    def collected_relationships(self) -> list[GraphRelationship]:
        with self._lock:
            return list(self._relationships.values())

    @property
    def encountered_types(self) -> set[str]:
        with self._lock:
            return {e.type for e in self._entities.values()} | {
                r.type for r in self._relationships.values()
            }

    def to_dict(self) -> dict[str, Any]:
        """JSON-serializable dump of everything collected."""
        return {
            "entities": [e.to_dict() for e in self.collected_entities],
            "relationships": [r.to_dict() for r in self.collected_relationships],
        }

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "entities": len(self._entities),
                "relationships": len(self._relationships),
                "duplicates_ignored": self._duplicates,
            }
