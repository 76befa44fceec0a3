"""
campaign_engine/repositories.py -- Entity and suggestion stores.

The orchestrator and the action service only talk to these two stores:

    EntityRepository        entities and their links
    SuggestionRepository    stamped suggestions, their lifecycle and the
                            bookkeeping of the last full analysis run

Both base classes keep everything in memory.  The ``Json*`` subclasses load
a JSON file on construction and rewrite it atomically after every change.
All methods are synchronous; callers get copies, never the stored objects.

Usage:
    from campaign_engine.repositories import JsonEntityRepository, JsonSuggestionRepository

    entities = JsonEntityRepository("campaign/entities.json")
    suggestions = JsonSuggestionRepository("campaign/suggestions.json")
    pending = suggestions.get_active()
"""

from __future__ import annotations

import logging
from datetime import datetime

from pydantic import ValidationError

from campaign_engine.models.base import (
    SUGGESTION_STATUSES,
    SUGGESTION_TYPES,
    AnalysisRunRecord,
    Entity,
    Link,
    StoredSuggestion,
    SuggestionQueryFilters,
    SuggestionStats,
)
from campaign_engine.utils import now_utc, safe_read_json, safe_write_json

logger = logging.getLogger(__name__)


class EntityNotFoundError(LookupError):
    """Raised when an operation names an entity ID that does not exist."""

    def __init__(self, entity_id: str):
        super().__init__(f"Entity not found: {entity_id}")
        self.entity_id = entity_id


def _load_records(raw, key: str) -> list:
    """Accept either a bare list or ``{key: [...]}`` as file content."""
    if isinstance(raw, list):
        return raw
    if isinstance(raw, dict) and isinstance(raw.get(key), list):
        return raw[key]
    return []


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------

class EntityRepository:
    """In-memory entity store.  Preserves insertion order."""

    def __init__(self, entities=None):
        self._entities: dict[str, Entity] = {}
        self._add_records(entities or [], "entity list")

    def _add_records(self, records, source: str) -> None:
        """Add *records*, skipping the ones that fail validation."""
        for raw in records:
            if isinstance(raw, Entity):
                self._entities[raw.id] = raw
                continue
            try:
                entity = Entity.model_validate(raw)
            except ValidationError as exc:
                logger.warning("Skipping invalid entity record in %s: %s", source, exc)
                continue
            self._entities[entity.id] = entity

    def _persist(self) -> None:
        """Hook for file-backed subclasses."""

    def _require(self, entity_id: str) -> Entity:
        entity = self._entities.get(entity_id)
        if entity is None:
            raise EntityNotFoundError(entity_id)
        return entity

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_all(self) -> list[Entity]:
        return [e.model_copy(deep=True) for e in self._entities.values()]

    def get_by_id(self, entity_id: str) -> Entity | None:
        entity = self._entities.get(entity_id)
        return entity.model_copy(deep=True) if entity is not None else None

    def get_by_ids(self, entity_ids) -> list[Entity]:
        """Entities for *entity_ids*, in the given order, unknown IDs skipped."""
        return [
            self._entities[eid].model_copy(deep=True)
            for eid in entity_ids
            if eid in self._entities
        ]

    def get_entities_linking_to(self, entity_id: str) -> list[Entity]:
        return [
            e.model_copy(deep=True)
            for e in self._entities.values()
            if any(link.target_id == entity_id for link in e.links)
        ]

    def count(self) -> int:
        return len(self._entities)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save(self, entity: Entity) -> Entity:
        """Insert or replace *entity*, stamping ``created_at``/``updated_at``."""
        now = now_utc()
        existing = self._entities.get(entity.id)
        created_at = entity.created_at or (existing.created_at if existing else None) or now
        stored = entity.model_copy(deep=True, update={"created_at": created_at, "updated_at": now})
        self._entities[stored.id] = stored
        self._persist()
        return stored.model_copy(deep=True)

    def delete(self, entity_id: str) -> bool:
        """Remove an entity and every link pointing at it."""
        if self._entities.pop(entity_id, None) is None:
            return False
        for other_id, other in list(self._entities.items()):
            kept = [link for link in other.links if link.target_id != entity_id]
            if len(kept) != len(other.links):
                self._entities[other_id] = other.model_copy(update={"links": kept})
        self._persist()
        return True

    def add_link(self, source_id: str, link: Link) -> Link:
        source = self._require(source_id)
        self._entities[source_id] = source.model_copy(
            update={"links": [*source.links, link], "updated_at": now_utc()},
        )
        self._persist()
        return link

    def remove_link(self, source_id: str, link_id: str) -> bool:
        source = self._require(source_id)
        kept = [link for link in source.links if link.id != link_id]
        if len(kept) == len(source.links):
            return False
        self._entities[source_id] = source.model_copy(update={"links": kept, "updated_at": now_utc()})
        self._persist()
        return True


class JsonEntityRepository(EntityRepository):
    """Entity store backed by a JSON export file.

    The file holds either a list of entities or ``{"entities": [...]}``.
    Records that fail validation are skipped with a warning.
    """

    def __init__(self, path):
        self.path = str(path)
        super().__init__()
        self._add_records(_load_records(safe_read_json(self.path, default=[]), "entities"), self.path)
        logger.debug("Loaded %d entities from %s", len(self._entities), self.path)

    def _persist(self) -> None:
        data = {
            "entities": [
                e.model_dump(by_alias=True, mode="json", exclude_none=True)
                for e in self._entities.values()
            ],
        }
        safe_write_json(self.path, data)


# ---------------------------------------------------------------------------
# Suggestions
# ---------------------------------------------------------------------------

class SuggestionRepository:
    """In-memory suggestion store.  Preserves insertion order."""

    def __init__(self):
        self._suggestions: dict[str, StoredSuggestion] = {}
        self._last_run: AnalysisRunRecord | None = None

    def _persist(self) -> None:
        """Hook for file-backed subclasses."""

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def add(self, suggestion: StoredSuggestion) -> None:
        if suggestion.id in self._suggestions:
            raise ValueError(f"Suggestion {suggestion.id} already exists")
        self._suggestions[suggestion.id] = suggestion.model_copy(deep=True)
        self._persist()

    def bulk_add(self, suggestions) -> None:
        """Add several suggestions in one write.  Nothing is added on a duplicate ID."""
        suggestions = list(suggestions)
        ids = [s.id for s in suggestions]
        duplicates = [sid for sid in ids if sid in self._suggestions]
        if duplicates or len(set(ids)) != len(ids):
            raise ValueError(f"Duplicate suggestion ids: {duplicates or ids}")
        for suggestion in suggestions:
            self._suggestions[suggestion.id] = suggestion.model_copy(deep=True)
        self._persist()

    def get_by_id(self, suggestion_id: str) -> StoredSuggestion | None:
        suggestion = self._suggestions.get(suggestion_id)
        return suggestion.model_copy(deep=True) if suggestion is not None else None

    def get_all(self) -> list[StoredSuggestion]:
        return [s.model_copy(deep=True) for s in self._suggestions.values()]

    def update(self, suggestion_id: str, **changes) -> StoredSuggestion:
        """Apply *changes* to a stored suggestion.

        Raises
        ------
        KeyError
            If no suggestion has *suggestion_id*.
        """
        existing = self._suggestions.get(suggestion_id)
        if existing is None:
            raise KeyError(f"Suggestion with id {suggestion_id} not found")
        updated = StoredSuggestion.model_validate({**existing.model_dump(), **changes})
        self._suggestions[suggestion_id] = updated
        self._persist()
        return updated.model_copy(deep=True)

    def delete(self, suggestion_id: str) -> bool:
        if self._suggestions.pop(suggestion_id, None) is None:
            return False
        self._persist()
        return True

    def clear_all(self) -> None:
        self._suggestions.clear()
        self._persist()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def accept(self, suggestion_id: str) -> StoredSuggestion:
        return self.update(suggestion_id, status="accepted")

    def dismiss(self, suggestion_id: str) -> StoredSuggestion:
        return self.update(suggestion_id, status="dismissed")

    @staticmethod
    def is_expired(suggestion: StoredSuggestion, now: datetime | None = None) -> bool:
        return suggestion.is_expired(now)

    def get_expired(self, now: datetime | None = None) -> list[StoredSuggestion]:
        now = now or now_utc()
        return [s.model_copy(deep=True) for s in self._suggestions.values() if s.is_expired(now)]

    def delete_expired(self, now: datetime | None = None) -> int:
        """Delete expired suggestions and return how many were removed."""
        now = now or now_utc()
        expired = [sid for sid, s in self._suggestions.items() if s.is_expired(now)]
        for sid in expired:
            del self._suggestions[sid]
        if expired:
            logger.info("Deleted %d expired suggestions", len(expired))
            self._persist()
        return len(expired)

    def get_active(self, now: datetime | None = None) -> list[StoredSuggestion]:
        """Pending suggestions that have not expired."""
        now = now or now_utc()
        return [
            s.model_copy(deep=True)
            for s in self._suggestions.values()
            if s.status == "pending" and not s.is_expired(now)
        ]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_by_status(self, status: str) -> list[StoredSuggestion]:
        return [s.model_copy(deep=True) for s in self._suggestions.values() if s.status == status]

    def get_pending_count(self) -> int:
        return sum(1 for s in self._suggestions.values() if s.status == "pending")

    def get_by_type(self, suggestion_type: str) -> list[StoredSuggestion]:
        return [s.model_copy(deep=True) for s in self._suggestions.values() if s.type == suggestion_type]

    def get_by_affected_entity(self, entity_id: str) -> list[StoredSuggestion]:
        return [
            s.model_copy(deep=True)
            for s in self._suggestions.values()
            if entity_id in s.affected_entity_ids
        ]

    def get_by_affected_entities(self, entity_ids) -> list[StoredSuggestion]:
        """Suggestions touching any of *entity_ids*, each listed once."""
        wanted = set(entity_ids)
        if not wanted:
            return []
        return [
            s.model_copy(deep=True)
            for s in self._suggestions.values()
            if wanted.intersection(s.affected_entity_ids)
        ]

    def query(self, filters: SuggestionQueryFilters | dict | None = None, now: datetime | None = None) -> list[StoredSuggestion]:
        """Combine type, status, entity, relevance and expiry filters."""
        if filters is None:
            filters = SuggestionQueryFilters()
        elif isinstance(filters, dict):
            filters = SuggestionQueryFilters.model_validate(filters)
        now = now or now_utc()

        types = set(filters.types)
        statuses = set(filters.statuses)
        entity_ids = set(filters.affected_entity_ids)

        results = []
        for suggestion in self._suggestions.values():
            if types and suggestion.type not in types:
                continue
            if statuses and suggestion.status not in statuses:
                continue
            if entity_ids and not entity_ids.intersection(suggestion.affected_entity_ids):
                continue
            if filters.min_relevance_score is not None and suggestion.relevance_score < filters.min_relevance_score:
                continue
            if not filters.include_expired and suggestion.is_expired(now):
                continue
            results.append(suggestion.model_copy(deep=True))
        return results

    def get_stats(self, now: datetime | None = None) -> SuggestionStats:
        now = now or now_utc()
        by_status = dict.fromkeys(SUGGESTION_STATUSES, 0)
        by_type = dict.fromkeys(SUGGESTION_TYPES, 0)
        expired = 0
        for suggestion in self._suggestions.values():
            by_status[suggestion.status] += 1
            by_type[suggestion.type] += 1
            if suggestion.is_expired(now):
                expired += 1
        return SuggestionStats(
            total=len(self._suggestions),
            by_status=by_status,
            by_type=by_type,
            expired_count=expired,
        )

    # ------------------------------------------------------------------
    # Run bookkeeping
    # ------------------------------------------------------------------

    def record_run(self, record: AnalysisRunRecord) -> None:
        self._last_run = record
        self._persist()

    def get_last_run(self) -> AnalysisRunRecord | None:
        return self._last_run


class JsonSuggestionRepository(SuggestionRepository):
    """Suggestion store backed by a JSON file.

    Layout::

        {"suggestions": [...], "lastRun": {"ranAt": ..., "entityCount": ...}}
    """

    def __init__(self, path):
        self.path = str(path)
        super().__init__()
        raw = safe_read_json(self.path, default={})
        for record in _load_records(raw, "suggestions"):
            try:
                suggestion = StoredSuggestion.model_validate(record)
            except ValidationError as exc:
                logger.warning("Skipping invalid suggestion record in %s: %s", self.path, exc)
                continue
            self._suggestions[suggestion.id] = suggestion

        last_run = raw.get("lastRun") if isinstance(raw, dict) else None
        if last_run:
            try:
                self._last_run = AnalysisRunRecord.model_validate(last_run)
            except ValidationError as exc:
                logger.warning("Ignoring invalid last-run record in %s: %s", self.path, exc)
        logger.debug("Loaded %d suggestions from %s", len(self._suggestions), self.path)

    def _persist(self) -> None:
        data = {
            "suggestions": [
                s.model_dump(by_alias=True, mode="json") for s in self._suggestions.values()
            ],
            "lastRun": (
                self._last_run.model_dump(by_alias=True, mode="json")
                if self._last_run is not None else None
            ),
        }
        safe_write_json(self.path, data)
