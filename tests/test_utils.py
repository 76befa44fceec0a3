"""
Tests for campaign_engine/utils.py -- Text, scoring and JSON helpers.
"""

import json
from datetime import datetime, timedelta, timezone

import pytest

from campaign_engine.utils import (
    as_utc,
    clamp_score,
    contains_term,
    extract_keywords,
    generate_id,
    levenshtein_distance,
    name_similarity,
    normalize_name,
    normalize_title,
    pair_key,
    safe_read_json,
    safe_write_json,
    slugify,
)


# ---------------------------------------------------------------------------
# Levenshtein
# ---------------------------------------------------------------------------

class TestLevenshtein:
    """Edit distance and the derived name similarity."""

    def test_classic_example(self):
        """kitten to sitting should take three edits."""
        assert levenshtein_distance("kitten", "sitting") == 3

    def test_identical_and_empty(self):
        """Identical strings cost 0 and empty strings the other length."""
        assert levenshtein_distance("roderick", "roderick") == 0
        assert levenshtein_distance("", "abc") == 3
        assert levenshtein_distance("abc", "") == 3

    @pytest.mark.parametrize("a,b", [
        ("Captain Roderick", "Captain Roderic"),
        ("Mira", "Myra"),
        ("The Iron Fist", "Iron Fist"),
    ])
    def test_similarity_is_symmetric(self, a, b):
        """Similarity should not depend on argument order."""
        assert name_similarity(a, b) == name_similarity(b, a)

    def test_similarity_value(self):
        """Similarity should be 1 minus distance over the longer length."""
        assert name_similarity("Roderick", "Roderic") == pytest.approx(1 - 1 / 8)

    def test_similarity_ignores_case_and_whitespace(self):
        """Case and surrounding whitespace should be ignored."""
        assert name_similarity("  Mira ", "mira") == 1.0

    def test_blank_names_are_never_similar(self):
        """Blank or None names should score 0."""
        assert name_similarity("", "") == 0.0
        assert name_similarity("Mira", None) == 0.0


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

class TestTextHelpers:
    """Tests for the text helpers."""

    def test_normalize_name(self):
        """Names should be lower-cased and stripped."""
        assert normalize_name("  Captain RODERICK ") == "captain roderick"
        assert normalize_name(None) == ""

    def test_normalize_title_strips_punctuation(self):
        """Titles should lose punctuation and spaces."""
        assert normalize_title("Same Location: Mira & Bo!") == "samelocationmirabo"

    def test_extract_keywords(self):
        """Keywords should skip stop words and repeats."""
        text = "The cult of the Crimson Pact gathers; the cult grows."
        assert extract_keywords(text) == ["cult", "crimson", "pact", "gathers", "grows"]

    def test_extract_keywords_custom_stop_words(self):
        """Custom stop words should be honoured."""
        assert extract_keywords("dark ritual dark", stop_words={"dark"}) == ["ritual"]

    def test_contains_term_is_word_bounded(self):
        """Terms should match on whole words only."""
        assert contains_term("she serves captain roderick.", "roderick")
        assert contains_term("she serves captain roderick.", "captain roderick")
        assert not contains_term("the annual festival", "ann")
        assert not contains_term("", "ann")
        assert not contains_term("ann arrives", "")

    def test_slugify_and_generate_id(self):
        """IDs should be a slug plus a four character suffix."""
        assert slugify("Mira's Rest") == "miras-rest"
        entity_id = generate_id("Captain Roderick")
        assert entity_id.startswith("captain-roderick-")
        assert len(entity_id.rsplit("-", 1)[1]) == 4


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

class TestScoring:
    """Tests for clamp_score and pair_key."""

    def test_clamp_score(self):
        """Scores should be clamped to the given range."""
        assert clamp_score(150) == 100
        assert clamp_score(-5) == 0
        assert clamp_score(10, 30, 100) == 30
        assert clamp_score(55.5) == 55.5

    def test_pair_key_is_order_independent(self):
        """pair_key should sort its arguments."""
        assert pair_key("b", "a") == pair_key("a", "b") == ("a", "b")


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------

class TestTime:
    """Tests for as_utc."""

    def test_naive_datetime_becomes_utc(self):
        """Timezone-less values should become UTC."""
        assert as_utc(datetime(2024, 1, 8)) == datetime(2024, 1, 8, tzinfo=timezone.utc)

    def test_aware_datetime_unchanged(self):
        """Aware values and None should pass through."""
        plus_two = timezone(timedelta(hours=2))
        value = datetime(2024, 1, 8, 12, tzinfo=plus_two)
        assert as_utc(value) is value
        assert as_utc(None) is None


# ---------------------------------------------------------------------------
# JSON I/O
# ---------------------------------------------------------------------------

class TestJsonIO:
    """Tests for safe_read_json and safe_write_json."""

    def test_round_trip(self, tmp_path):
        """Written data should read back, with no temp files left."""
        path = tmp_path / "nested" / "data.json"
        safe_write_json(path, {"name": "Mira"})
        assert safe_read_json(path) == {"name": "Mira"}
        assert not list(path.parent.glob("*.tmp"))

    def test_missing_file_returns_default(self, tmp_path):
        """A missing file should return the default."""
        assert safe_read_json(tmp_path / "missing.json", default=[]) == []

    def test_corrupt_file_returns_default(self, tmp_path):
        """A corrupt file should return the default."""
        path = tmp_path / "corrupt.json"
        path.write_text("{not json", encoding="utf-8")
        assert safe_read_json(path, default={}) == {}

    def test_write_is_valid_json(self, tmp_path):
        """Written files should be valid JSON."""
        path = tmp_path / "data.json"
        safe_write_json(path, [1, 2, 3])
        assert json.loads(path.read_text(encoding="utf-8")) == [1, 2, 3]
