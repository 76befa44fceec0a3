"""
campaign_engine/action_service.py -- Apply a suggestion's one-click action.

Executes the ``suggested_action`` of a stored suggestion against the entity
store, marks the suggestion accepted on success and records every attempt in
an action history so that successful actions can be undone.

Supported action types:

    create-relationship   add a link (and the reverse link if bidirectional)
    edit-entity           apply ``updates`` to an entity
    create-entity         create a new entity
    flag-for-review       set review flags in the metadata of entities

Usage:
    from campaign_engine.action_service import SuggestionActionService

    actions = SuggestionActionService(entity_repo, suggestion_repo)
    result = actions.execute_action(suggestion)
    if result.success:
        entry = actions.get_action_history()[-1]
        actions.undo_action(entry.id)
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any

from pydantic import Field, ValidationError
from pydantic.alias_generators import to_snake

from campaign_engine.models.base import DEFAULT_RELATIONSHIP, CampaignModel, Entity, Link, StoredSuggestion
from campaign_engine.repositories import EntityRepository, SuggestionRepository
from campaign_engine.utils import generate_id, now_utc, safe_read_json, safe_write_json

logger = logging.getLogger(__name__)

REVIEW_KEYS = ("flaggedForReview", "reviewReason", "reviewPriority")
EDITABLE_ATTRIBUTES = frozenset({
    "type", "name", "description", "summary", "tags", "fields", "notes", "metadata",
})


class ActionResult(CampaignModel):
    success: bool
    message: str = ""
    affected_entity_ids: list[str] = Field(default_factory=list)


class ActionHistoryEntry(CampaignModel):
    """One execution attempt, with what is needed to revert it."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    suggestion_id: str
    action_type: str
    timestamp: datetime = Field(default_factory=now_utc)
    result: ActionResult
    undone: bool = False
    undo_data: dict[str, Any] = Field(default_factory=dict)


def _failure(message: str) -> ActionResult:
    return ActionResult(success=False, message=message)


class SuggestionActionService:
    """Executes and undoes suggested actions.

    Parameters
    ----------
    entity_repository : EntityRepository
    suggestion_repository : SuggestionRepository
    history_path : str, optional
        JSON file the action history is kept in.  In memory only when omitted.
    """

    def __init__(
        self,
        entity_repository: EntityRepository,
        suggestion_repository: SuggestionRepository,
        history_path: str | None = None,
    ):
        self._entities = entity_repository
        self._suggestions = suggestion_repository
        self._history_path = str(history_path) if history_path else None
        self._history: list[ActionHistoryEntry] = self._load_history()

    @property
    def suggestions(self) -> SuggestionRepository:
        return self._suggestions

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def _load_history(self) -> list[ActionHistoryEntry]:
        if not self._history_path:
            return []
        history = []
        for raw in safe_read_json(self._history_path, default=[]) or []:
            try:
                history.append(ActionHistoryEntry.model_validate(raw))
            except ValidationError as exc:
                logger.warning("Skipping invalid action history entry: %s", exc)
        return history

    def _save_history(self) -> None:
        if not self._history_path:
            return
        safe_write_json(
            self._history_path,
            [entry.model_dump(by_alias=True, mode="json") for entry in self._history],
        )

    def get_action_history(self) -> list[ActionHistoryEntry]:
        return [entry.model_copy(deep=True) for entry in self._history]

    def clear_action_history(self) -> None:
        self._history = []
        self._save_history()

    # ------------------------------------------------------------------
    # Execute
    # ------------------------------------------------------------------

    def execute_action(self, suggestion: StoredSuggestion) -> ActionResult:
        """Run the suggestion's action and record the attempt.

        Invalid action data and missing entities produce a failed result;
        they never raise.
        """
        action = suggestion.suggested_action
        entry = ActionHistoryEntry(
            suggestion_id=suggestion.id,
            action_type=action.action_type if action else "unknown",
            result=_failure(""),
        )

        if action is None:
            entry.result = _failure("No action specified in suggestion")
        else:
            handler = {
                "create-relationship": self._create_relationship,
                "edit-entity": self._edit_entity,
                "create-entity": self._create_entity,
                "flag-for-review": self._flag_for_review,
            }.get(action.action_type)
            if handler is None:
                entry.result = _failure(f"Unknown action type: {action.action_type}")
            else:
                try:
                    entry.result = handler(action.action_data, entry)
                except (LookupError, ValueError) as exc:
                    logger.warning("Action %s failed for suggestion %s", action.action_type, suggestion.id, exc_info=True)
                    entry.result = _failure(f"Failed to execute action: {exc}")

        if entry.result.success:
            try:
                self._suggestions.accept(suggestion.id)
            except KeyError:
                logger.warning("Executed action for unknown suggestion %s", suggestion.id)

        self._history.append(entry)
        self._save_history()
        logger.info("Action %s for suggestion %s: %s", entry.action_type, suggestion.id, entry.result.message)
        return entry.result.model_copy()

    def _create_relationship(self, data: dict, entry: ActionHistoryEntry) -> ActionResult:
        source_id = data.get("sourceId")
        target_id = data.get("targetId")
        relationship = data.get("relationship") or DEFAULT_RELATIONSHIP
        if not source_id or not target_id:
            return _failure("Invalid or missing required fields for relationship creation")

        source = self._entities.get_by_id(source_id)
        target = self._entities.get_by_id(target_id)
        if source is None or target is None:
            missing = source_id if source is None else target_id
            return _failure(f"Entity not found: {missing}")

        bidirectional = bool(data.get("bidirectional", False))
        reverse = data.get("reverseRelationship") or None
        created: list[list[str]] = []

        link = Link(
            target_id=target_id,
            target_type=data.get("targetType") or target.type,
            relationship=relationship,
            bidirectional=bidirectional,
            reverse_relationship=reverse,
            notes=data.get("notes"),
        )
        self._entities.add_link(source_id, link)
        created.append([source_id, link.id])

        if bidirectional:
            back_relationship = reverse or relationship
            has_back = any(
                back.target_id == source_id and back.relationship == back_relationship
                for back in target.links
            )
            if not has_back:
                back = Link(
                    target_id=source_id,
                    target_type=source.type,
                    relationship=back_relationship,
                    bidirectional=True,
                    reverse_relationship=relationship,
                )
                self._entities.add_link(target_id, back)
                created.append([target_id, back.id])

        entry.undo_data = {"createdLinks": created}
        return ActionResult(
            success=True,
            message="Relationship created successfully",
            affected_entity_ids=[source_id, target_id],
        )

    def _edit_entity(self, data: dict, entry: ActionHistoryEntry) -> ActionResult:
        entity_id = data.get("entityId")
        updates = data.get("updates")
        if not entity_id or not isinstance(updates, dict) or not updates:
            return _failure("Invalid or missing required fields for entity edit")

        entity = self._entities.get_by_id(entity_id)
        if entity is None:
            return _failure(f"Entity not found: {entity_id}")

        current = entity.model_dump()
        changes: dict[str, Any] = {}
        for key, value in updates.items():
            name = to_snake(key)
            if name not in EDITABLE_ATTRIBUTES:
                return _failure(f"Field cannot be edited: {key}")
            if name == "fields" and isinstance(value, dict):
                value = {**current["fields"], **value}
            changes[name] = value

        updated = Entity.model_validate({**current, **changes})
        entry.undo_data = {
            "entityId": entity_id,
            "original": {name: current[name] for name in changes},
        }
        self._entities.save(updated)
        return ActionResult(success=True, message="Entity updated successfully", affected_entity_ids=[entity_id])

    def _create_entity(self, data: dict, entry: ActionHistoryEntry) -> ActionResult:
        entity_type = data.get("type")
        name = data.get("name")
        if not entity_type or not name:
            return _failure("Invalid or missing required fields for entity creation")

        fields = data.get("fields") or {}
        entity = Entity.model_validate({
            "id": generate_id(name),
            "type": entity_type,
            "name": name,
            "description": data.get("description") or fields.get("description", ""),
            "tags": data.get("tags") or fields.get("tags") or [],
            "fields": fields,
            "links": data.get("links") or [],
        })
        saved = self._entities.save(entity)
        entry.undo_data = {"createdEntityId": saved.id}
        return ActionResult(success=True, message="Entity created successfully", affected_entity_ids=[saved.id])

    def _flag_for_review(self, data: dict, entry: ActionHistoryEntry) -> ActionResult:
        entity_ids = data.get("entityIds")
        if not isinstance(entity_ids, list) or not entity_ids:
            return _failure("Invalid or missing entity IDs for review flagging")

        flagged = []
        previous: dict[str, dict] = {}
        for entity in self._entities.get_by_ids(entity_ids):
            previous[entity.id] = {key: entity.metadata[key] for key in REVIEW_KEYS if key in entity.metadata}
            metadata = {**entity.metadata, "flaggedForReview": True, "reviewReason": data.get("reason")}
            if data.get("priority") is not None:
                metadata["reviewPriority"] = data["priority"]
            self._entities.save(entity.model_copy(update={"metadata": metadata}))
            flagged.append(entity.id)

        if not flagged:
            return _failure("None of the entities to flag exist")

        entry.undo_data = {"previousReviewState": previous}
        return ActionResult(
            success=True,
            message="Entities flagged for review successfully",
            affected_entity_ids=flagged,
        )

    # ------------------------------------------------------------------
    # Undo
    # ------------------------------------------------------------------

    def undo_action(self, entry_id: str) -> bool:
        """Revert a successful, not yet undone action.

        The suggestion goes back to ``pending``.  Returns ``False`` when the
        entry is unknown, already undone, failed, or cannot be reverted.
        """
        entry = next((e for e in self._history if e.id == entry_id), None)
        if entry is None or entry.undone or not entry.result.success:
            return False

        undo = entry.undo_data
        try:
            if entry.action_type == "create-relationship":
                for source_id, link_id in reversed(undo.get("createdLinks", [])):
                    self._entities.remove_link(source_id, link_id)

            elif entry.action_type == "edit-entity":
                entity = self._entities.get_by_id(undo["entityId"])
                if entity is not None:
                    restored = Entity.model_validate({**entity.model_dump(), **undo["original"]})
                    self._entities.save(restored)

            elif entry.action_type == "create-entity":
                self._entities.delete(undo["createdEntityId"])

            elif entry.action_type == "flag-for-review":
                for entity_id, previous in undo.get("previousReviewState", {}).items():
                    entity = self._entities.get_by_id(entity_id)
                    if entity is None:
                        continue
                    metadata = {k: v for k, v in entity.metadata.items() if k not in REVIEW_KEYS}
                    metadata.update(previous)
                    self._entities.save(entity.model_copy(update={"metadata": metadata}))
        except (LookupError, ValueError):
            logger.warning("Failed to undo action %s", entry_id, exc_info=True)
            return False

        try:
            self._suggestions.update(entry.suggestion_id, status="pending")
        except KeyError:
            logger.warning("Undid action for unknown suggestion %s", entry.suggestion_id)

        entry.undone = True
        self._save_history()
        logger.info("Undid action %s (%s)", entry_id, entry.action_type)
        return True
