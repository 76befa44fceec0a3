"""
Tests for campaign_engine/analyzers/relationship.py -- Missing link detection.

Validates:
    - Text mentions (description and string fields), word-bounded
    - Connected pairs and self-mentions are skipped
    - Shared-location pairs, group-size limits and scoring
    - AI inference: pair selection, prompt, parsing, failures and pacing
"""

import asyncio

import pytest

from campaign_engine.analyzers.relationship import (
    RelationshipAnalyzer,
    find_common_locations,
    find_text_mentions,
    location_score,
    parse_pair_response,
    select_ai_pairs,
)
from campaign_engine.context_builder import build_context
from campaign_engine.generation_client import GenerationResult
from campaign_engine.models import AnalysisConfig

LONG_A = "A disgraced alchemist who sells forbidden tinctures from a barge."
LONG_B = "The harbour's tax collector, feared for her ledger and her temper."
LONG_C = "An old lighthouse keeper who claims to speak with drowned sailors."


# ---------------------------------------------------------------------------
# Text mentions
# ---------------------------------------------------------------------------

class TestTextMentions:
    """Tests for find_text_mentions."""

    def test_captain_roderick_scenario(self, make_entity, no_ai_config):
        """A name in a description should suggest a relationship."""
        context = build_context([
            make_entity("mira", "Mira", description="Mira serves under Captain Roderick at the docks."),
            make_entity("roderick", "Captain Roderick"),
        ])
        result = asyncio.run(RelationshipAnalyzer().analyze(context, no_ai_config))
        matches = [s for s in result.suggestions if set(s.affected_entity_ids) == {"mira", "roderick"}]
        assert len(matches) == 1
        assert matches[0].relevance_score >= 60
        assert matches[0].title == "Potential Relationship: Mira ↔ Captain Roderick"
        action = matches[0].suggested_action
        assert action.action_data["relationship"] == "knows"
        assert action.action_data["bidirectional"] is False

    def test_description_and_character_bonus(self, make_entity):
        """Description mentions by characters should get both bonuses."""
        context = build_context([
            make_entity("mira", "Mira", entity_type="character", description="Owes money to Roderick."),
            make_entity("roderick", "Captain Roderick"),
        ])
        found = find_text_mentions(context)
        assert [s.relevance_score for s in found] == [80]

    def test_field_mention_scores_base(self, make_entity):
        """A mention in a field should get the base score."""
        context = build_context([
            make_entity("mira", "Mira", fields={"employer": "Captain Roderick", "age": 31}),
            make_entity("roderick", "Captain Roderick"),
        ])
        found = find_text_mentions(context)
        assert [s.relevance_score for s in found] == [60]

    def test_connected_pair_skipped(self, make_entity, make_link):
        """Already linked pairs should be skipped."""
        context = build_context([
            make_entity("mira", "Mira", description="Mira serves Captain Roderick."),
            make_entity("roderick", "Captain Roderick", links=[make_link("mira", "employs")]),
        ])
        assert find_text_mentions(context) == []

    def test_self_mention_skipped(self, make_entity):
        """An entity mentioning itself should be skipped."""
        context = build_context([
            make_entity("roderick", "Captain Roderick", description="Roderick never smiles."),
        ])
        assert find_text_mentions(context) == []

    def test_matching_is_word_bounded(self, make_entity):
        """Names should match on whole words only."""
        context = build_context([
            make_entity("a", "Festival", description="The annual gathering of the clans."),
            make_entity("ann", "Ann"),
        ])
        assert find_text_mentions(context) == []

    def test_mentions_are_case_insensitive(self, make_entity):
        """Matching should ignore case."""
        context = build_context([
            make_entity("mira", "Mira", description="Hunted by THE GREY WARDENS."),
            make_entity("wardens", "The Grey Wardens", entity_type="faction"),
        ])
        found = find_text_mentions(context)
        assert len(found) == 1
        assert found[0].affected_entity_ids == ["mira", "wardens"]


# ---------------------------------------------------------------------------
# Common locations
# ---------------------------------------------------------------------------

class TestCommonLocations:
    """Tests for find_common_locations and location_score."""

    def _residents(self, make_entity, make_link, count):
        entities = [make_entity("tavern", "The Rusty Anchor", entity_type="location")]
        for i in range(count):
            entities.append(make_entity(
                f"npc{i}", f"Patron {i}",
                links=[make_link("tavern", "drinks_at", target_type="location")],
            ))
        return entities

    def test_small_group_pairs(self, make_entity, make_link):
        """Every pair in a small group should be suggested."""
        context = build_context(self._residents(make_entity, make_link, 3))
        found = find_common_locations(context)
        assert len(found) == 3
        assert all(s.relevance_score == 70 for s in found)
        assert found[0].title == "Same Location: Patron 0 & Patron 1"
        assert found[0].suggested_action.action_data["bidirectional"] is True
        assert found[0].suggested_action.action_data["relationship"] == "knows"

    def test_connected_pairs_skipped(self, make_entity, make_link):
        """Linked pairs should be skipped."""
        entities = self._residents(make_entity, make_link, 2)
        entities[1] = entities[1].model_copy(update={"links": [*entities[1].links, make_link("npc1")]})
        assert find_common_locations(build_context(entities)) == []

    def test_single_resident(self, make_entity, make_link):
        """A single resident should give nothing."""
        assert find_common_locations(build_context(self._residents(make_entity, make_link, 1))) == []

    def test_large_group_uses_first_ten(self, make_entity, make_link):
        """Large groups should only pair the first ten residents."""
        context = build_context(self._residents(make_entity, make_link, 13))
        found = find_common_locations(context)
        assert len(found) == 45  # C(10, 2)
        assert all(s.relevance_score == 50 for s in found)

    def test_oversized_group_skipped(self, make_entity, make_link):
        """Groups over the size limit should be skipped."""
        context = build_context(self._residents(make_entity, make_link, 21))
        assert find_common_locations(context) == []

    @pytest.mark.parametrize("size,score", [(2, 70), (3, 70), (4, 60), (5, 60), (6, 50), (20, 50), (25, 30)])
    def test_location_score(self, size, score):
        """The score should drop as the group grows."""
        assert location_score(size) == score

    def test_analyzer_respects_cap(self, make_entity, make_link):
        """The analyzer should apply the per-type cap."""
        context = build_context(self._residents(make_entity, make_link, 13))
        config = AnalysisConfig(max_suggestions_per_type=5, enable_ai_analysis=False)
        result = asyncio.run(RelationshipAnalyzer().analyze(context, config))
        assert len(result.suggestions) <= 5


# ---------------------------------------------------------------------------
# AI inference
# ---------------------------------------------------------------------------

class TestAIInference:
    """Tests for the AI relationship pass."""

    def _pair(self, make_entity):
        return build_context([
            make_entity("aldric", "Aldric", description=LONG_A),
            make_entity("bessa", "Bessa", description=LONG_B),
        ])

    def test_yes_reply_creates_suggestion(self, make_entity, scripted_generator, ai_config):
        """A YES reply should create a suggestion from its reason."""
        generator = scripted_generator(["YES - Aldric smuggles tinctures past Bessa's inspections."])
        result = asyncio.run(RelationshipAnalyzer(generator).analyze(self._pair(make_entity), ai_config))
        assert result.api_calls_made == 1
        assert len(result.suggestions) == 1
        suggestion = result.suggestions[0]
        assert suggestion.title == "AI-Detected Relationship: Aldric ↔ Bessa"
        assert suggestion.relevance_score == 65
        assert suggestion.description == "Aldric smuggles tinctures past Bessa's inspections"
        assert suggestion.suggested_action.action_data["relationship"] == "related_to"
        assert suggestion.suggested_action.action_data["bidirectional"] is True

    def test_prompt_and_temperature(self, make_entity, fake_generator, ai_config):
        """The prompt should hold both entities and use temperature 0.3."""
        asyncio.run(RelationshipAnalyzer(fake_generator).analyze(self._pair(make_entity), ai_config))
        prompt, temperature = fake_generator.calls[0]
        assert temperature == 0.3
        assert "Entity 1: Aldric" in prompt
        assert LONG_B in prompt

    def test_no_reply_creates_nothing(self, make_entity, fake_generator, ai_config):
        """A NO reply should create nothing but count the call."""
        result = asyncio.run(RelationshipAnalyzer(fake_generator).analyze(self._pair(make_entity), ai_config))
        assert result.suggestions == []
        assert result.api_calls_made == 1

    def test_failed_result_skipped(self, make_entity, scripted_generator, ai_config):
        """A failed generation should be skipped."""
        generator = scripted_generator([GenerationResult(success=False, error="rate limited")])
        result = asyncio.run(RelationshipAnalyzer(generator).analyze(self._pair(make_entity), ai_config))
        assert result.suggestions == []
        assert result.api_calls_made == 1

    def test_exception_is_logged_and_skipped(self, make_entity, scripted_generator, ai_config, caplog):
        """A raising generator should be logged and the next pair tried."""
        context = build_context([
            make_entity("aldric", "Aldric", description=LONG_A),
            make_entity("bessa", "Bessa", description=LONG_B),
            make_entity("corin", "Corin", description=LONG_C),
        ])
        generator = scripted_generator([RuntimeError("connection reset"), "NO", "YES they trade secrets"])
        with caplog.at_level("WARNING"):
            result = asyncio.run(RelationshipAnalyzer(generator).analyze(context, ai_config))
        assert result.api_calls_made == 3
        assert [s.affected_entity_ids for s in result.suggestions] == [["bessa", "corin"]]
        assert "AI relationship analysis failed" in caplog.text

    def test_disabled_ai_makes_no_calls(self, make_entity, fake_generator, no_ai_config):
        """Disabling AI should make no calls."""
        result = asyncio.run(RelationshipAnalyzer(fake_generator).analyze(self._pair(make_entity), no_ai_config))
        assert fake_generator.calls == []
        assert result.api_calls_made == 0

    def test_no_generator_makes_no_calls(self, make_entity, ai_config):
        """Without a generator no calls are made."""
        result = asyncio.run(RelationshipAnalyzer().analyze(self._pair(make_entity), ai_config))
        assert result.api_calls_made == 0

    def test_short_descriptions_not_sent(self, make_entity, fake_generator, ai_config):
        """Pairs with short descriptions should not be sent."""
        context = build_context([
            make_entity("aldric", "Aldric", description=LONG_A),
            make_entity("bessa", "Bessa", description="Tax collector."),
        ])
        result = asyncio.run(RelationshipAnalyzer(fake_generator).analyze(context, ai_config))
        assert result.api_calls_made == 0

    def test_pairs_limited_and_skip_local_findings(self, make_entity):
        """At most five pairs, skipping ones already suggested."""
        entities = [
            make_entity(f"e{i}", f"Person {chr(65 + i)}", description=LONG_A + f" Number {i}.")
            for i in range(6)
        ]
        context = build_context(entities)
        pairs = select_ai_pairs(context, already_suggested={("e0", "e1")})
        assert len(pairs) == 5
        assert ("e0", "e1") not in [(a.id, b.id) for a, b in pairs]

    def test_calls_are_rate_limited(self, make_entity, fake_generator, fake_clock):
        """Calls after the first should wait for the rate limit."""
        context = build_context([
            make_entity("aldric", "Aldric", description=LONG_A),
            make_entity("bessa", "Bessa", description=LONG_B),
            make_entity("corin", "Corin", description=LONG_C),
        ])
        config = AnalysisConfig(rate_limit_ms=1000)
        analyzer = RelationshipAnalyzer(fake_generator, sleep=fake_clock.sleep, clock=fake_clock)
        result = asyncio.run(analyzer.analyze(context, config))
        assert result.api_calls_made == 3
        assert fake_clock.sleeps == [1.0, 1.0]


# ---------------------------------------------------------------------------
# Reply parsing
# ---------------------------------------------------------------------------

class TestParsePairResponse:
    """Tests for parse_pair_response."""

    def test_yes_variants(self):
        """YES replies should return the reason."""
        assert parse_pair_response("YES: They are siblings.") == "They are siblings"
        assert parse_pair_response("yes") == ""

    def test_anything_else_is_no(self):
        """Anything else should return None."""
        assert parse_pair_response("NO") is None
        assert parse_pair_response("Maybe, hard to say") is None
        assert parse_pair_response("") is None
