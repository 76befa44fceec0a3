"""
campaign_engine/analyzers/enhancement.py -- Entities that could be improved.

Per entity, four independent heuristics:

    Sparse entities       little description, few fields, no tags
    Missing summaries     important entities without a summary
    Orphan entities       no links in or out
    Missing core fields   typical fields for the entity type left empty

Scores are pure functions of the entity and the relationship map.  Entity
types without a declared schema skip the schema-based checks.
"""

import logging

from campaign_engine.analyzers.base import SuggestionAnalyzer
from campaign_engine.context_builder import EntityAnalysisContext
from campaign_engine.models.base import AnalysisConfig, Entity, SuggestedAction, Suggestion
from campaign_engine.models.heuristics import HeuristicTables
from campaign_engine.utils import clamp_score

logger = logging.getLogger(__name__)

SPARSE_THRESHOLD = 50
SUMMARY_IMPORTANCE_THRESHOLD = 50


def sparsity_score(entity: Entity) -> int:
    """How empty an entity is, 0 (rich) to 100 (blank)."""
    score = 0

    desc_length = len(entity.description.strip())
    if desc_length == 0:
        score += 60
    elif desc_length < 20:
        score += 40
    elif desc_length < 50:
        score += 20

    field_count = len(entity.fields)
    if field_count == 0:
        score += 30
    elif field_count <= 2:
        score += 15

    if not entity.tags:
        score += 10

    return int(clamp_score(score))


def importance_score(entity: Entity, tables: HeuristicTables) -> int:
    """How central an entity is to the campaign, 0 to 100."""
    schema = tables.type_schema(entity.type)
    score = schema.importance if schema is not None else tables.default_importance

    score += min(len(entity.links) * 5, 30)

    if any(tag.lower() in tables.important_tags for tag in entity.tags):
        score += 20

    if len(entity.description) > 200:
        score += 10

    return int(clamp_score(score))


def _is_blank(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def missing_core_fields(entity: Entity, tables: HeuristicTables) -> list[str]:
    """Core fields of the entity's type that are absent or blank.

    Unknown/custom types have no declared core fields and are never flagged.
    """
    schema = tables.type_schema(entity.type)
    if schema is None:
        return []
    return [name for name in schema.core_fields if _is_blank(entity.fields.get(name))]


def is_orphan(entity: Entity, context: EntityAnalysisContext) -> bool:
    if entity.links:
        return False
    return not context.relationship_map.has_incoming(entity.id)


def _sparse_hint(entity: Entity) -> str:
    parts = [f"{entity.name or 'This entity'} has minimal information recorded."]
    desc_length = len(entity.description.strip())
    if desc_length == 0:
        parts.append("Add a description to provide context.")
    elif desc_length < 50:
        parts.append("Expand the description with more detail.")
    field_count = len(entity.fields)
    if field_count == 0:
        parts.append("Consider adding relevant fields like role, personality, or background.")
    elif field_count <= 2:
        parts.append("Add more fields to flesh out this entity.")
    return " ".join(parts)


def find_enhancements(context: EntityAnalysisContext, config: AnalysisConfig) -> list[Suggestion]:
    tables = config.heuristics
    suggestions: list[Suggestion] = []

    for entity in context.entities:
        label = entity.name or entity.id
        importance = importance_score(entity, tables)
        missing = missing_core_fields(entity, tables)
        schema = tables.type_schema(entity.type)

        # 1. Sparse entities
        sparsity = sparsity_score(entity)
        if sparsity >= SPARSE_THRESHOLD:
            suggestions.append(Suggestion(
                type="enhancement",
                title=f"Sparse Entity: {label}",
                description=_sparse_hint(entity),
                relevance_score=sparsity,
                affected_entity_ids=[entity.id],
                suggested_action=SuggestedAction(
                    action_type="edit-entity",
                    action_data={"entityId": entity.id, "suggestedFields": missing},
                ),
            ))

        # 2. Important entities without a summary
        if (
            importance > SUMMARY_IMPORTANCE_THRESHOLD
            and not entity.has_summary
            and not entity.has_tag(tables.minor_tag)
        ):
            suggestions.append(Suggestion(
                type="enhancement",
                title=f"Missing Summary: {label}",
                description=(
                    f"{label} is an important entity but lacks an AI-generated summary. "
                    f"A summary helps quickly understand key information and relationships."
                ),
                relevance_score=importance * 0.6,
                affected_entity_ids=[entity.id],
                suggested_action=SuggestedAction(
                    action_type="edit-entity",
                    action_data={"entityId": entity.id, "action": "generate-summary"},
                ),
            ))

        # 3. Orphans
        exempt = schema is not None and schema.orphan_exempt
        if not exempt and is_orphan(entity, context):
            suggestions.append(Suggestion(
                type="enhancement",
                title=f"Orphan Entity: {label}",
                description=(
                    f"{label} has no relationships to other entities. Consider linking it "
                    f"to related NPCs, locations, or factions to integrate it into your campaign."
                ),
                relevance_score=max(40, importance * 0.7),
                affected_entity_ids=[entity.id],
            ))

        # 4. Missing core fields
        if missing:
            suggestions.append(Suggestion(
                type="enhancement",
                title=f"Missing Core Fields: {label}",
                description=(
                    f"{label} is missing typical {entity.type} fields: {', '.join(missing)}. "
                    f"Adding these fields will make the entity more complete and useful."
                ),
                relevance_score=min(85, 50 + importance * 0.6),
                affected_entity_ids=[entity.id],
                suggested_action=SuggestedAction(
                    action_type="edit-entity",
                    action_data={"entityId": entity.id, "suggestedFields": missing},
                ),
            ))

    return suggestions


class EnhancementAnalyzer(SuggestionAnalyzer):
    """Flags sparse, summary-less, orphaned and incomplete entities."""

    type = "enhancement"

    async def _collect(self, context, config):
        return find_enhancements(context, config), 0
