"""
campaign_engine/analyzers/inconsistency.py -- Data conflicts across entities.

Four independent rule-based passes over the analysis context:

    Location conflicts      an entity placed in two unrelated locations
    Status conflicts        a present-tense link to a deceased/disbanded entity
    Name duplicates         near-identical names that may be the same entity
    Relationship asymmetry  a bidirectional link whose reverse is missing

Pure Python, no external calls.  Records with missing targets or blank
names are skipped rather than reported.
"""

import logging
import re

from campaign_engine.analyzers.base import SuggestionAnalyzer
from campaign_engine.context_builder import EntityAnalysisContext
from campaign_engine.models.base import AnalysisConfig, Entity, SuggestedAction, Suggestion
from campaign_engine.models.heuristics import HeuristicTables
from campaign_engine.utils import name_similarity, normalize_name, pair_key

logger = logging.getLogger(__name__)

LOCATION_CONFLICT_SCORE = 75
STATUS_CONFLICT_SCORE = 70
EXACT_DUPLICATE_SCORE = 85
SIMILAR_NAME_SCORE = 65
SHARED_NAME_PART_SCORE = 60
ASYMMETRY_SCORE = 80

SIMILARITY_THRESHOLD = 0.85
MIN_SHARED_NAME_PART = 4


# ---------------------------------------------------------------------------
# Heuristics
# ---------------------------------------------------------------------------

def is_past_tense(relationship: str, tables: HeuristicTables) -> bool:
    """True if any word of the relationship label is a past-tense marker.

    ``"served_under"`` and ``"once knew"`` are historical; ``"serves"`` is not.
    """
    words = re.split(r"[^a-z]+", (relationship or "").lower())
    return any(word in tables.past_tense_indicators for word in words if word)


def inactive_status(entity: Entity, tables: HeuristicTables) -> str | None:
    """Return the inactive status of *entity* (``"deceased"``, ...) or ``None``.

    Tags are checked first, then ``fields.status``.
    """
    for tag in entity.tags:
        if tag.lower() in tables.inactive_statuses:
            return tag.lower()
    status = entity.fields.get("status")
    if isinstance(status, str) and status.strip().lower() in tables.inactive_statuses:
        return status.strip().lower()
    return None


def is_nested_location(
    first_id: str,
    second_id: str,
    context: EntityAnalysisContext,
    tables: HeuristicTables,
) -> bool:
    """True if one location is declared ``located_in``/``part_of`` the other."""
    first = context.get(first_id)
    second = context.get(second_id)
    if first is None or second is None:
        return False

    for source, target in ((first, second), (second, first)):
        for link in source.links:
            if link.target_id == target.id and link.relationship in tables.nesting_relationships:
                return True
    return False


def are_intentionally_connected(
    first: Entity,
    second: Entity,
    context: EntityAnalysisContext,
    tables: HeuristicTables,
) -> bool:
    """True if two similarly named entities are clearly meant to coexist.

    That is the case when they share a family/group tag or are already
    linked in either direction.
    """
    first_tags = {t.lower() for t in first.tags}
    second_tags = {t.lower() for t in second.tags}
    if any(tables.is_family_tag(tag) for tag in first_tags & second_tags):
        return True
    return context.relationship_map.has_relationship(first.id, second.id)


# ---------------------------------------------------------------------------
# Passes
# ---------------------------------------------------------------------------

def find_location_conflicts(context: EntityAnalysisContext, config: AnalysisConfig) -> list[Suggestion]:
    tables = config.heuristics
    suggestions: list[Suggestion] = []

    for entity_id, location_ids in context.locations_by_entity.items():
        entity = context.get(entity_id)
        if entity is None:
            continue
        locations = [loc for loc in location_ids if context.get(loc) is not None]
        if len(locations) < 2:
            continue

        has_conflict = any(
            not is_nested_location(locations[i], locations[j], context, tables)
            for i in range(len(locations))
            for j in range(i + 1, len(locations))
        )
        if not has_conflict:
            continue

        location_names = ", ".join(context.get(loc).name or loc for loc in locations)
        suggestions.append(Suggestion(
            type="inconsistency",
            title=f"Location Conflict: {entity.name}",
            description=(
                f"{entity.name} is linked to multiple incompatible locations: "
                f"{location_names}. This may indicate a data entry error or the "
                f"entity needs to choose a primary location."
            ),
            relevance_score=LOCATION_CONFLICT_SCORE,
            affected_entity_ids=[entity_id, *locations],
        ))

    return suggestions


def find_status_conflicts(context: EntityAnalysisContext, config: AnalysisConfig) -> list[Suggestion]:
    tables = config.heuristics
    suggestions: list[Suggestion] = []

    for entity in context.entities:
        for link in entity.links:
            target = context.get(link.target_id)
            if target is None or target.id == entity.id:
                continue
            if is_past_tense(link.relationship, tables):
                continue
            status = inactive_status(target, tables)
            if status is None:
                continue

            suggestions.append(Suggestion(
                type="inconsistency",
                title=f"Status Conflict: {entity.name} linked to {status} entity",
                description=(
                    f'{entity.name} has an active relationship "{link.relationship}" '
                    f"with {target.name}, which is marked as {status}. Consider "
                    f"using past tense or removing the relationship."
                ),
                relevance_score=STATUS_CONFLICT_SCORE,
                affected_entity_ids=[entity.id, target.id],
            ))

    return suggestions


def find_name_duplicates(context: EntityAnalysisContext, config: AnalysisConfig) -> list[Suggestion]:
    tables = config.heuristics
    suggestions: list[Suggestion] = []
    processed: set[tuple[str, str]] = set()
    named = [e for e in context.entities if normalize_name(e.name)]

    # Pass 1: whole-name similarity
    for i, first in enumerate(named):
        first_name = normalize_name(first.name)
        for second in named[i + 1:]:
            second_name = normalize_name(second.name)
            shorter, longer = sorted((len(first_name), len(second_name)))
            if shorter / longer <= SIMILARITY_THRESHOLD:
                continue  # length gap alone rules out a match
            if name_similarity(first_name, second_name) <= SIMILARITY_THRESHOLD:
                continue
            if are_intentionally_connected(first, second, context, tables):
                continue

            processed.add(pair_key(first.id, second.id))
            exact = first_name == second_name
            title = (
                f"Duplicate Name: {first.name}" if exact
                else f"Similar Names: {first.name} / {second.name}"
            )
            suggestions.append(Suggestion(
                type="inconsistency",
                title=title,
                description=(
                    f"{first.name} and {second.name} have "
                    f"{'identical' if exact else 'very similar'} names. This might "
                    f"indicate duplicate entities that should be merged, or they may "
                    f"need more distinctive names."
                ),
                relevance_score=EXACT_DUPLICATE_SCORE if exact else SIMILAR_NAME_SCORE,
                affected_entity_ids=[first.id, second.id],
            ))

    # Pass 2: shared name fragments ("Roderick" in "Roderick Vane" and "Roderick Hale")
    for name_part, entity_ids in context.mentioned_names.items():
        if len(entity_ids) < 2 or len(name_part) < MIN_SHARED_NAME_PART:
            continue
        for i, first_id in enumerate(entity_ids):
            for second_id in entity_ids[i + 1:]:
                first = context.get(first_id)
                second = context.get(second_id)
                if first is None or second is None:
                    continue
                key = pair_key(first.id, second.id)
                if key in processed:
                    continue
                processed.add(key)

                if normalize_name(first.name) == normalize_name(second.name):
                    continue
                if are_intentionally_connected(first, second, context, tables):
                    continue

                suggestions.append(Suggestion(
                    type="inconsistency",
                    title=f"Similar Names: {first.name} / {second.name}",
                    description=(
                        f'{first.name} and {second.name} share the name "{name_part}". '
                        f"This might indicate duplicate entities that should be merged, "
                        f"or they may need more distinctive names."
                    ),
                    relevance_score=SHARED_NAME_PART_SCORE,
                    affected_entity_ids=[first.id, second.id],
                ))

    return suggestions


def find_relationship_asymmetries(context: EntityAnalysisContext, config: AnalysisConfig) -> list[Suggestion]:
    suggestions: list[Suggestion] = []

    for entity in context.entities:
        for link in entity.links:
            if not link.bidirectional:
                continue
            target = context.get(link.target_id)
            if target is None:
                continue

            expected = link.reverse_relationship or link.relationship
            has_reverse = any(
                back.target_id == entity.id and back.relationship == expected
                for back in target.links
            )
            if has_reverse:
                continue

            suggestions.append(Suggestion(
                type="inconsistency",
                title=f"Asymmetric Relationship: {entity.name} ↔ {target.name}",
                description=(
                    f'{entity.name} has a bidirectional "{link.relationship}" relationship '
                    f"with {target.name}, but the reverse link is missing. Expected "
                    f'reverse relationship: "{expected}".'
                ),
                relevance_score=ASYMMETRY_SCORE,
                affected_entity_ids=[entity.id, target.id],
                suggested_action=SuggestedAction(
                    action_type="create-relationship",
                    action_data={
                        "sourceId": target.id,
                        "targetId": entity.id,
                        "targetType": entity.type,
                        "relationship": expected,
                        "bidirectional": True,
                        "reverseRelationship": link.relationship,
                    },
                ),
            ))

    return suggestions


# ---------------------------------------------------------------------------
# InconsistencyAnalyzer
# ---------------------------------------------------------------------------

class InconsistencyAnalyzer(SuggestionAnalyzer):
    """Runs the four inconsistency passes.  Never makes API calls."""

    type = "inconsistency"

    async def _collect(self, context, config):
        suggestions: list[Suggestion] = []
        for finder in (
            find_location_conflicts,
            find_status_conflicts,
            find_name_duplicates,
            find_relationship_asymmetries,
        ):
            found = finder(context, config)
            logger.debug("%s: %d findings", finder.__name__, len(found))
            suggestions.extend(found)
        return suggestions, 0
