"""
campaign_engine/models/heuristics.py -- Lookup tables behind the analyzers.

Every keyword list, tag list and per-type schema the analyzers consult lives
here as data on a frozen ``HeuristicTables`` model.  ``AnalysisConfig``
carries an instance, so a caller can extend a table (a new past-tense verb,
a custom entity type with its own core fields) without touching analyzer
logic::

    tables = HeuristicTables().with_type_schema(
        EntityTypeSchema(entity_type="ship", core_fields=("captain", "home_port")),
    )
    config = AnalysisConfig(heuristics=tables)
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class EntityTypeSchema(BaseModel):
    """Declared schema for one entity type.

    ``core_fields`` drives the completeness check; ``importance`` is the base
    importance score for entities of this type; ``orphan_exempt`` marks types
    that are naturally unconnected (sessions, notes).
    """

    model_config = ConfigDict(frozen=True)

    entity_type: str
    core_fields: tuple[str, ...] = ()
    importance: int = 20
    orphan_exempt: bool = False


DEFAULT_TYPE_SCHEMAS: tuple[EntityTypeSchema, ...] = (
    EntityTypeSchema(
        entity_type="character",
        core_fields=("class", "level", "alignment", "background"),
        importance=40,
    ),
    EntityTypeSchema(entity_type="npc", core_fields=("role", "personality"), importance=30),
    EntityTypeSchema(entity_type="location", core_fields=("region", "type"), importance=25),
    EntityTypeSchema(
        entity_type="faction",
        core_fields=("leader", "headquarters", "goals"),
        importance=30,
    ),
    EntityTypeSchema(entity_type="item", core_fields=("type", "rarity"), importance=20),
    EntityTypeSchema(entity_type="session", importance=15, orphan_exempt=True),
    EntityTypeSchema(entity_type="timeline_event", orphan_exempt=True),
    EntityTypeSchema(entity_type="note", orphan_exempt=True),
)


class HeuristicTables(BaseModel):
    """Keyword and tag tables consulted by the analyzers."""

    model_config = ConfigDict(frozen=True)

    # Inconsistency analyzer
    past_tense_indicators: frozenset[str] = frozenset({
        "served", "was", "were", "had", "met", "knew",
        "worked", "fought", "loved", "hated",
    })
    inactive_statuses: frozenset[str] = frozenset({
        "deceased", "disbanded", "destroyed", "inactive",
    })
    nesting_relationships: frozenset[str] = frozenset({"located_in", "part_of"})
    family_tags: frozenset[str] = frozenset({"family", "clan", "household"})
    family_tag_suffixes: tuple[str, ...] = ("-family", "-clan", "-house")

    # Enhancement analyzer
    important_tags: frozenset[str] = frozenset({"important", "major", "player", "key"})
    minor_tag: str = "minor"
    default_importance: int = 20
    type_schemas: tuple[EntityTypeSchema, ...] = Field(default=DEFAULT_TYPE_SCHEMAS)

    # Plot thread analyzer
    theme_stop_words: frozenset[str] = frozenset({
        "this", "that", "with", "from", "have", "been", "were", "will",
        "their", "there", "what", "when", "where", "which", "while",
        "about", "after", "before", "between", "through",
    })

    def type_schema(self, entity_type: str) -> EntityTypeSchema | None:
        """Return the declared schema for *entity_type*, or ``None``.

        ``None`` is the fallback branch for custom types: callers skip every
        schema-based check for them.
        """
        for schema in self.type_schemas:
            if schema.entity_type == entity_type:
                return schema
        return None

    def with_type_schema(self, schema: EntityTypeSchema) -> HeuristicTables:
        """Return a copy with *schema* added (replacing any same-type entry)."""
        kept = tuple(s for s in self.type_schemas if s.entity_type != schema.entity_type)
        return self.model_copy(update={"type_schemas": kept + (schema,)})

    def is_family_tag(self, tag: str) -> bool:
        tag = tag.lower()
        return tag in self.family_tags or tag.endswith(self.family_tag_suffixes)
