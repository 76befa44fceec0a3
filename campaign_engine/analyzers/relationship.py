"""
campaign_engine/analyzers/relationship.py -- Missing links between entities.

Three layered passes, cheapest first:

    1. Text mentions     an entity's description or fields name another entity
    2. Shared locations  entities placed at the same (small) location
    3. AI inference      ask the generator about a few unlinked pairs

All findings go into one pool; cross-analyzer deduplication is the
orchestrator's job.
"""

import logging

from campaign_engine.analyzers.base import GeneratingAnalyzer
from campaign_engine.context_builder import EntityAnalysisContext
from campaign_engine.models.base import AnalysisConfig, Entity, SuggestedAction, Suggestion
from campaign_engine.utils import clamp_score, contains_term, pair_key

logger = logging.getLogger(__name__)

MENTION_BASE_SCORE = 60
LOCATION_BASE_SCORE = 50
MIN_LOCATION_GROUP = 2
MAX_LOCATION_GROUP = 20
MAX_LOCATION_MEMBERS = 10
MAX_AI_PAIRS = 5
MIN_AI_DESCRIPTION = 30
AI_RELEVANCE = 65
AI_TEMPERATURE = 0.3

AI_PROMPT_TEMPLATE = """Analyze these two entities and determine if they might have a relationship:

Entity 1: {first_name}
Type: {first_type}
Description: {first_description}

Entity 2: {second_name}
Type: {second_type}
Description: {second_description}

If you detect a potential relationship based on their descriptions, respond with "YES" followed by a brief explanation (1 sentence).
If no clear relationship exists, respond with "NO"."""


# ---------------------------------------------------------------------------
# Text mentions
# ---------------------------------------------------------------------------

def find_mentions(text: str, mentioned_names) -> set[str]:
    """Entity IDs whose name (or name fragment) appears in *text*."""
    lowered = (text or "").lower()
    if not lowered.strip():
        return set()
    found: set[str] = set()
    for name, entity_ids in mentioned_names.items():
        if contains_term(lowered, name):
            found.update(entity_ids)
    return found


def mention_score(entity: Entity, mentioned: Entity, in_description: bool) -> float:
    score = MENTION_BASE_SCORE
    if in_description:
        score += 10
    if entity.type == "character" or mentioned.type == "character":
        score += 10
    return clamp_score(score)


def find_text_mentions(context: EntityAnalysisContext) -> list[Suggestion]:
    suggestions: list[Suggestion] = []
    rel_map = context.relationship_map

    for entity in context.entities:
        description_hits = find_mentions(entity.description, context.mentioned_names)
        field_hits: set[str] = set()
        for value in entity.fields.values():
            if isinstance(value, str):
                field_hits |= find_mentions(value, context.mentioned_names)

        # Description hits first, then field-only hits, each in index order
        ordered = [eid for eid in context.entity_map if eid in description_hits]
        ordered += [eid for eid in context.entity_map if eid in field_hits and eid not in description_hits]

        for mentioned_id in ordered:
            if mentioned_id == entity.id:
                continue
            if rel_map.has_relationship(entity.id, mentioned_id):
                continue
            mentioned = context.get(mentioned_id)
            if mentioned is None:
                continue

            suggestions.append(Suggestion(
                type="relationship",
                title=f"Potential Relationship: {entity.name} ↔ {mentioned.name}",
                description=(
                    f"{entity.name} mentions {mentioned.name} in its description or fields, "
                    f"but they are not linked. Consider creating a relationship to connect them."
                ),
                relevance_score=mention_score(entity, mentioned, mentioned_id in description_hits),
                affected_entity_ids=[entity.id, mentioned_id],
                suggested_action=SuggestedAction(
                    action_type="create-relationship",
                    action_data={
                        "sourceId": entity.id,
                        "targetId": mentioned_id,
                        "targetType": mentioned.type,
                        "relationship": "knows",
                        "bidirectional": False,
                    },
                ),
            ))

    return suggestions


# ---------------------------------------------------------------------------
# Shared locations
# ---------------------------------------------------------------------------

def location_score(group_size: int) -> float:
    """Smaller locations make it likelier that occupants know each other."""
    score = LOCATION_BASE_SCORE
    if group_size <= 3:
        score += 20
    elif group_size <= 5:
        score += 10
    elif group_size > MAX_LOCATION_GROUP:
        score -= 20
    return clamp_score(score, 30, 100)


def group_by_location(context: EntityAnalysisContext) -> dict[str, list[str]]:
    groups: dict[str, list[str]] = {}
    for entity_id, location_ids in context.locations_by_entity.items():
        for location_id in location_ids:
            members = groups.setdefault(location_id, [])
            if entity_id not in members:
                members.append(entity_id)
    return groups


def find_common_locations(context: EntityAnalysisContext) -> list[Suggestion]:
    suggestions: list[Suggestion] = []
    rel_map = context.relationship_map

    for location_id, members in group_by_location(context).items():
        if not MIN_LOCATION_GROUP <= len(members) <= MAX_LOCATION_GROUP:
            continue
        location = context.get(location_id)
        if location is None:
            continue

        score = location_score(len(members))
        capped = members[:MAX_LOCATION_MEMBERS]
        for i, first_id in enumerate(capped):
            for second_id in capped[i + 1:]:
                if rel_map.has_relationship(first_id, second_id):
                    continue
                first = context.get(first_id)
                second = context.get(second_id)
                if first is None or second is None:
                    continue

                suggestions.append(Suggestion(
                    type="relationship",
                    title=f"Same Location: {first.name} & {second.name}",
                    description=(
                        f"{first.name} and {second.name} are both located at {location.name}. "
                        f"They may know each other or have interacted."
                    ),
                    relevance_score=score,
                    affected_entity_ids=[first_id, second_id],
                    suggested_action=SuggestedAction(
                        action_type="create-relationship",
                        action_data={
                            "sourceId": first_id,
                            "targetId": second_id,
                            "targetType": second.type,
                            "relationship": "knows",
                            "bidirectional": True,
                        },
                    ),
                ))

    return suggestions


# ---------------------------------------------------------------------------
# AI inference
# ---------------------------------------------------------------------------

def select_ai_pairs(
    context: EntityAnalysisContext,
    already_suggested: set[tuple[str, str]],
    limit: int = MAX_AI_PAIRS,
) -> list[tuple[Entity, Entity]]:
    """Pick up to *limit* unlinked, not yet suggested, well-described pairs."""
    pairs: list[tuple[Entity, Entity]] = []
    entities = context.entities
    for i, first in enumerate(entities):
        if len(pairs) >= limit:
            break
        if len(first.description) <= MIN_AI_DESCRIPTION:
            continue
        for second in entities[i + 1:]:
            if len(pairs) >= limit:
                break
            if len(second.description) <= MIN_AI_DESCRIPTION:
                continue
            if context.relationship_map.has_relationship(first.id, second.id):
                continue
            if pair_key(first.id, second.id) in already_suggested:
                continue
            pairs.append((first, second))
    return pairs


def build_pair_prompt(first: Entity, second: Entity) -> str:
    return AI_PROMPT_TEMPLATE.format(
        first_name=first.name,
        first_type=first.type,
        first_description=first.description or "No description",
        second_name=second.name,
        second_type=second.type,
        second_description=second.description or "No description",
    )


def parse_pair_response(content: str) -> str | None:
    """Return the rationale of a "yes" answer, or ``None`` for anything else."""
    text = (content or "").strip()
    if not text.lower().startswith("yes"):
        return None
    return text[3:].strip(" \t\n:-,.—")


# ---------------------------------------------------------------------------
# RelationshipAnalyzer
# ---------------------------------------------------------------------------

class RelationshipAnalyzer(GeneratingAnalyzer):
    """Suggests links from text mentions, shared locations and AI inference."""

    type = "relationship"

    async def _collect(self, context, config):
        suggestions = find_text_mentions(context)
        suggestions += find_common_locations(context)
        logger.debug("Relationship analyzer: %d local findings", len(suggestions))

        api_calls = 0
        if self._ai_enabled(config):
            ai_suggestions, api_calls = await self._infer_with_ai(context, config, suggestions)
            suggestions += ai_suggestions

        return suggestions, api_calls

    async def _infer_with_ai(
        self,
        context: EntityAnalysisContext,
        config: AnalysisConfig,
        local: list[Suggestion],
    ) -> tuple[list[Suggestion], int]:
        already = set()
        for suggestion in local:
            ids = suggestion.affected_entity_ids
            for i, first_id in enumerate(ids):
                for second_id in ids[i + 1:]:
                    already.add(pair_key(first_id, second_id))

        pairs = select_ai_pairs(context, already)
        queue = self._make_queue(config)
        suggestions: list[Suggestion] = []
        api_calls = 0

        for first, second in pairs:
            prompt = build_pair_prompt(first, second)
            try:
                api_calls += 1
                result = await queue.submit(self._generate, prompt, temperature=AI_TEMPERATURE)
            except Exception:
                logger.warning(
                    "AI relationship analysis failed for %s / %s", first.id, second.id,
                    exc_info=True,
                )
                continue

            if not result.success:
                logger.warning(
                    "AI relationship analysis returned an error for %s / %s: %s",
                    first.id, second.id, result.error,
                )
                continue

            rationale = parse_pair_response(result.content)
            if rationale is None:
                continue

            suggestions.append(Suggestion(
                type="relationship",
                title=f"AI-Detected Relationship: {first.name} ↔ {second.name}",
                description=rationale or "These entities may be related based on their descriptions.",
                relevance_score=AI_RELEVANCE,
                affected_entity_ids=[first.id, second.id],
                suggested_action=SuggestedAction(
                    action_type="create-relationship",
                    action_data={
                        "sourceId": first.id,
                        "targetId": second.id,
                        "targetType": second.type,
                        "relationship": "related_to",
                        "bidirectional": True,
                    },
                ),
            ))

        return suggestions, api_calls
