"""
campaign_engine/models/base.py -- Record types shared by every analyzer.

Entities and links come from the persistence layer as JSON with camelCase
keys (``targetId``, ``createdAt``); the models expose snake_case attributes
and accept either spelling.  Serialise with ``model_dump(by_alias=True,
mode="json")`` to get the storage shape back.

The entity models are deliberately forgiving: user-authored records are
often half-filled, so ``None`` collections become empty ones and links
without a target are dropped at the boundary instead of failing the whole
record.  Analyzers can then read every attribute without guarding.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from campaign_engine.models.heuristics import HeuristicTables
from campaign_engine.utils import as_utc, clamp_score, now_utc

logger = logging.getLogger(__name__)

SuggestionType = Literal[
    "relationship", "plot_thread", "inconsistency", "enhancement", "recommendation",
]
SuggestionStatus = Literal["pending", "accepted", "dismissed"]
ActionType = Literal["create-relationship", "edit-entity", "create-entity", "flag-for-review"]

SUGGESTION_TYPES: tuple[str, ...] = SuggestionType.__args__
SUGGESTION_STATUSES: tuple[str, ...] = SuggestionStatus.__args__

DEFAULT_RELATIONSHIP = "related_to"


class CampaignModel(BaseModel):
    """Base for records persisted with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------

class Link(CampaignModel):
    """Directed, typed edge owned by its source entity."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    target_id: str
    target_type: str = ""
    relationship: str = DEFAULT_RELATIONSHIP
    bidirectional: bool = False
    reverse_relationship: str | None = None
    notes: str | None = None

    @field_validator("target_type", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return value or ""

    @field_validator("relationship", mode="before")
    @classmethod
    def _default_relationship(cls, value):
        if value is None or not str(value).strip():
            return DEFAULT_RELATIONSHIP
        return value

    @field_validator("bidirectional", mode="before")
    @classmethod
    def _none_to_false(cls, value):
        return bool(value)


class Entity(CampaignModel):
    """A user-authored campaign object (character, location, faction, ...)."""

    id: str
    type: str = ""
    name: str = ""
    description: str = ""
    summary: str | None = None
    tags: list[str] = Field(default_factory=list)
    fields: dict[str, Any] = Field(default_factory=dict)
    links: list[Link] = Field(default_factory=list)
    notes: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("type", "name", "description", "notes", mode="before")
    @classmethod
    def _text_or_empty(cls, value):
        return "" if value is None else value

    @field_validator("tags", mode="before")
    @classmethod
    def _clean_tags(cls, value):
        if not value:
            return []
        if isinstance(value, str):
            value = [value]
        return [str(tag) for tag in value if tag is not None and str(tag).strip()]

    @field_validator("fields", "metadata", mode="before")
    @classmethod
    def _mapping_or_empty(cls, value):
        return value if isinstance(value, dict) else {}

    @field_validator("links", mode="before")
    @classmethod
    def _drop_broken_links(cls, value):
        if not value:
            return []
        kept = []
        for link in value:
            if isinstance(link, Link):
                kept.append(link)
            elif isinstance(link, dict) and (link.get("targetId") or link.get("target_id")):
                kept.append(link)
            else:
                logger.warning("Dropping malformed link %r", link)
        return kept

    @property
    def has_summary(self) -> bool:
        return bool(self.summary and self.summary.strip())

    def has_tag(self, tag: str) -> bool:
        tag = tag.lower()
        return any(t.lower() == tag for t in self.tags)


# ---------------------------------------------------------------------------
# Suggestions
# ---------------------------------------------------------------------------

class SuggestedAction(CampaignModel):
    """A follow-up the user can apply with one click."""

    action_type: ActionType
    action_data: dict[str, Any] = Field(default_factory=dict)


class Suggestion(CampaignModel):
    """An analyzer finding before it is stamped and persisted."""

    type: SuggestionType
    title: str
    description: str = ""
    relevance_score: float
    affected_entity_ids: list[str] = Field(min_length=1)
    suggested_action: SuggestedAction | None = None

    @field_validator("relevance_score")
    @classmethod
    def _clamp(cls, value: float) -> float:
        return clamp_score(value)

    def stamp(self, created_at: datetime, expiration_days: float) -> StoredSuggestion:
        """Return a persisted copy with id, status and expiry filled in."""
        return StoredSuggestion(
            **self.model_dump(),
            id=uuid.uuid4().hex,
            status="pending",
            created_at=created_at,
            expires_at=created_at + timedelta(days=expiration_days),
        )


class StoredSuggestion(Suggestion):
    id: str
    status: SuggestionStatus = "pending"
    created_at: datetime = Field(default_factory=now_utc)
    expires_at: datetime | None = None

    @field_validator("created_at", "expires_at")
    @classmethod
    def _assume_utc(cls, value):
        return as_utc(value)

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at < as_utc(now or now_utc())


# ---------------------------------------------------------------------------
# Analysis configuration and results
# ---------------------------------------------------------------------------

class AnalysisConfig(BaseModel):
    """Per-run analysis settings.  Immutable once built."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_suggestions_per_type: int = Field(default=10, ge=0)
    min_relevance_score: float = Field(default=30, ge=0, le=100)
    enable_ai_analysis: bool = True
    rate_limit_ms: int = Field(default=1000, ge=0)
    expiration_days: float = Field(default=7, ge=0)
    heuristics: HeuristicTables = Field(default_factory=HeuristicTables)

    def merged(self, overrides: AnalysisConfig | dict | None = None) -> AnalysisConfig:
        """Return a new config with *overrides* layered over this one."""
        if overrides is None:
            return self
        if isinstance(overrides, AnalysisConfig):
            return overrides
        return AnalysisConfig(**{**dict(self), **overrides})


class AnalysisResult(CampaignModel):
    type: SuggestionType
    suggestions: list[Suggestion] = Field(default_factory=list)
    analysis_time_ms: float = 0.0
    api_calls_made: int = 0


class FullAnalysisResult(CampaignModel):
    results: list[AnalysisResult] = Field(default_factory=list)
    total_suggestions: int = 0
    total_api_calls: int = 0
    total_time_ms: float = 0.0
    errors: list[str] = Field(default_factory=list)


class SuggestionStats(CampaignModel):
    total: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    by_type: dict[str, int] = Field(default_factory=dict)
    expired_count: int = 0


class AnalysisRunRecord(CampaignModel):
    """Bookkeeping for the most recent full analysis run."""

    ran_at: datetime
    entity_count: int
    total_suggestions: int = 0

    @field_validator("ran_at")
    @classmethod
    def _assume_utc(cls, value):
        return as_utc(value)


class SuggestionQueryFilters(CampaignModel):
    """Filters for ``SuggestionRepository.query``.  Empty lists match everything."""

    types: list[SuggestionType] = Field(default_factory=list)
    statuses: list[SuggestionStatus] = Field(default_factory=list)
    affected_entity_ids: list[str] = Field(default_factory=list)
    min_relevance_score: float | None = None
    include_expired: bool = False
