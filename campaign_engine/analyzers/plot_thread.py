"""
campaign_engine/analyzers/plot_thread.py -- Narrative threads across entities.

Entities are grouped by shared tags and by recurring description keywords.
Each sizeable group is sent to the generator, which either names the plot
thread the group forms or answers "NO".

Only runs when AI analysis is enabled; without it the analyzer returns an
empty result and makes no calls.
"""

import logging

from campaign_engine.analyzers.base import GeneratingAnalyzer
from campaign_engine.context_builder import EntityAnalysisContext
from campaign_engine.models.base import AnalysisConfig, Entity, SuggestedAction, Suggestion
from campaign_engine.utils import STOP_WORDS, clamp_score, extract_keywords

logger = logging.getLogger(__name__)

MIN_GROUP_SIZE = 3
MAX_GROUPS = 10
MAX_GROUP_MEMBERS = 8
MAX_TITLE_LENGTH = 80
PROMPT_EXCERPT_LENGTH = 200
AI_TEMPERATURE = 0.4
DEFAULT_TITLE = "Plot Thread Detected"
TITLE_MARKER = "plot thread:"

PROMPT_TEMPLATE = """Analyze these entities that share the theme "{theme}" and identify if they form a plot thread or narrative pattern:

{entity_lines}

If these entities form a coherent plot thread, recurring theme, or narrative arc, respond with:
"Plot Thread: [Title]

[1-2 sentence description of the plot thread, conflict, or pattern]"

If they don't form a meaningful plot thread, respond with "NO"."""


def group_entities_by_theme(context: EntityAnalysisContext, config: AnalysisConfig) -> dict[str, list[str]]:
    """Map each theme (tag or keyword) shared by 3+ entities to their IDs.

    Tags are lowercased and trimmed.  Keywords are the 4+ letter words of
    the description, minus stop words.  Member order is snapshot order.
    """
    stop_words = STOP_WORDS | config.heuristics.theme_stop_words
    groups: dict[str, list[str]] = {}

    for entity in context.entities:
        themes = [tag.lower().strip() for tag in entity.tags]
        themes += extract_keywords(entity.description, stop_words)
        for theme in themes:
            if not theme:
                continue
            members = groups.setdefault(theme, [])
            if entity.id not in members:
                members.append(entity.id)

    return {theme: ids for theme, ids in groups.items() if len(ids) >= MIN_GROUP_SIZE}


def plot_thread_score(entity_ids: list[str], context: EntityAnalysisContext) -> float:
    """Larger, more interconnected groups with key types score higher."""
    size = len(entity_ids)
    score = 40

    if size >= 5:
        score += 20
    elif size >= 3:
        score += 10

    if size:
        avg_connections = context.relationship_map.count_edges_within(entity_ids) / size
        if avg_connections >= 2:
            score += 20
        elif avg_connections >= 1:
            score += 10

    types = {context.get(eid).type for eid in entity_ids if context.get(eid) is not None}
    if "character" in types:
        score += 10
    if "faction" in types:
        score += 5

    return clamp_score(score)


def build_group_prompt(theme: str, entities: list[Entity]) -> str:
    lines = []
    for entity in entities:
        text = entity.summary or entity.description or "No description"
        lines.append(f"- {entity.name} ({entity.type}): {text[:PROMPT_EXCERPT_LENGTH]}")
    return PROMPT_TEMPLATE.format(theme=theme, entity_lines="\n".join(lines))


def parse_plot_thread_response(content: str) -> tuple[str, str]:
    """Split a reply into ``(title, description)``.

    The title follows a ``Plot Thread:`` marker when present, otherwise it is
    the first non-empty line.  Long titles are cut to 80 characters.
    """
    lines = [line.strip() for line in content.splitlines() if line.strip()]
    title = DEFAULT_TITLE
    description = content.strip()

    marker_index = next(
        (i for i, line in enumerate(lines) if TITLE_MARKER in line.lower()), None,
    )
    if marker_index is not None:
        line = lines[marker_index]
        start = line.lower().index(TITLE_MARKER) + len(TITLE_MARKER)
        title = (line[:start - len(TITLE_MARKER)] + line[start:]).strip(' "') or DEFAULT_TITLE
        description = " ".join(lines[marker_index + 1:])
    elif lines:
        title = lines[0]
        description = " ".join(lines[1:]) or lines[0]

    if len(title) > MAX_TITLE_LENGTH:
        title = title[:MAX_TITLE_LENGTH - 3] + "..."
    return title, description


class PlotThreadAnalyzer(GeneratingAnalyzer):
    """Asks the generator whether thematic groups form a plot thread."""

    type = "plot_thread"

    async def _collect(self, context, config):
        if not self._ai_enabled(config):
            return [], 0

        groups = group_entities_by_theme(context, config)
        ranked = sorted(groups.items(), key=lambda item: len(item[1]), reverse=True)[:MAX_GROUPS]
        logger.debug("Plot thread analyzer: %d theme groups, analysing %d", len(groups), len(ranked))

        queue = self._make_queue(config)
        suggestions: list[Suggestion] = []
        api_calls = 0

        for theme, member_ids in ranked:
            if len(suggestions) >= config.max_suggestions_per_type:
                break
            entity_ids = member_ids[:MAX_GROUP_MEMBERS]
            entities = [context.get(eid) for eid in entity_ids if context.get(eid) is not None]
            if len(entities) < MIN_GROUP_SIZE:
                continue

            prompt = build_group_prompt(theme, entities)
            try:
                api_calls += 1
                result = await queue.submit(self._generate, prompt, temperature=AI_TEMPERATURE)
            except Exception:
                logger.warning("Plot thread analysis failed for theme %r", theme, exc_info=True)
                continue

            if not result.success:
                logger.warning("Plot thread analysis returned an error for theme %r: %s", theme, result.error)
                continue

            content = (result.content or "").strip()
            if not content or content.lower().startswith("no"):
                continue

            title, description = parse_plot_thread_response(content)
            suggestions.append(Suggestion(
                type="plot_thread",
                title=title,
                description=description,
                relevance_score=plot_thread_score(entity_ids, context),
                affected_entity_ids=entity_ids,
                suggested_action=SuggestedAction(
                    action_type="flag-for-review",
                    action_data={
                        "theme": theme,
                        "entityCount": len(entity_ids),
                        "entityIds": list(entity_ids),
                        "reason": title,
                    },
                ),
            ))

        return suggestions, api_calls
