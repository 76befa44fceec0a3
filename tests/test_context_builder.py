"""
Tests for campaign_engine/context_builder.py -- Shared analysis context.

Validates:
    - Relationship map nodes/edges and adjacency queries
    - locations_by_entity only collects location-typed links
    - mentioned_names holds full names and meaningful name fragments
    - Duplicate ids and dangling link targets are handled
"""

import pytest

from campaign_engine.context_builder import RelationshipMap, build_context, name_keys


@pytest.fixture
def harbour(make_entity, make_link):
    """Small harbour town: two NPCs, a tavern and a dangling link."""
    return [
        make_entity("mira", "Mira Vane", links=[
            make_link("tavern", "works_at", target_type="location"),
            make_link("bo", "knows"),
        ]),
        make_entity("bo", "Captain Bo of the Tide", links=[
            make_link("ghost", "haunted_by"),
        ]),
        make_entity("tavern", "The Rusty Anchor", entity_type="location"),
    ]


# ---------------------------------------------------------------------------
# Relationship map
# ---------------------------------------------------------------------------

class TestRelationshipMap:
    """Tests for the networkx-backed RelationshipMap."""

    def test_nodes_in_snapshot_order(self, harbour):
        """Nodes should follow the order of the entity snapshot."""
        context = build_context(harbour)
        assert context.relationship_map.nodes == ["mira", "bo", "tavern"]

    def test_one_edge_per_link(self, harbour):
        """Every link should become exactly one directed edge."""
        edges = build_context(harbour).relationship_map.edges
        assert [(e.source, e.target, e.relationship) for e in edges] == [
            ("mira", "tavern", "works_at"),
            ("mira", "bo", "knows"),
            ("bo", "ghost", "haunted_by"),
        ]

    def test_has_relationship_either_direction(self, harbour):
        """has_relationship should ignore edge direction."""
        rel_map = build_context(harbour).relationship_map
        assert rel_map.has_relationship("mira", "bo")
        assert rel_map.has_relationship("bo", "mira")
        assert not rel_map.has_relationship("bo", "tavern")

    def test_incoming_and_outgoing(self, harbour):
        """has_incoming/has_outgoing should respect edge direction."""
        rel_map = build_context(harbour).relationship_map
        assert rel_map.has_incoming("tavern")
        assert not rel_map.has_outgoing("tavern")
        assert rel_map.has_outgoing("mira")
        assert not rel_map.has_incoming("mira")
        assert not rel_map.has_incoming("nobody")

    def test_count_edges_within(self, harbour):
        """Only edges between members of the group should be counted."""
        rel_map = build_context(harbour).relationship_map
        assert rel_map.count_edges_within(["mira", "bo", "tavern"]) == 2
        assert rel_map.count_edges_within(["bo", "tavern"]) == 0

    def test_parallel_edges_are_kept(self):
        """Two links between the same pair should stay two edges."""
        rel_map = RelationshipMap()
        rel_map.add_node("a")
        rel_map.add_node("b")
        rel_map.add_edge("a", "b", "knows")
        rel_map.add_edge("a", "b", "fears")
        assert rel_map.count_edges_within(["a", "b"]) == 2
        assert rel_map.neighbors("b") == {"a"}


# ---------------------------------------------------------------------------
# Indexes
# ---------------------------------------------------------------------------

class TestIndexes:
    """Tests for the location and name indexes built with the context."""

    def test_locations_by_entity(self, harbour):
        """Location links should be indexed per entity."""
        context = build_context(harbour)
        assert dict(context.locations_by_entity) == {"mira": ("tavern",)}

    def test_repeated_location_link_listed_once(self, make_entity, make_link):
        """Several links to one location should list it once."""
        context = build_context([
            make_entity("mira", "Mira", links=[
                make_link("tavern", "works_at", target_type="location"),
                make_link("tavern", "lives_at", target_type="location"),
            ]),
        ])
        assert context.locations_by_entity["mira"] == ("tavern",)

    def test_mentioned_names(self, harbour):
        """Full names and significant fragments should map to their entity."""
        names = build_context(harbour).mentioned_names
        assert names["mira vane"] == ("mira",)
        assert names["vane"] == ("mira",)
        assert names["captain"] == ("bo",)
        assert names["rusty"] == ("tavern",)
        assert "the" not in names
        assert "bo" not in names  # too short to be a fragment
        assert "captain bo of the tide" in names

    def test_shared_fragment_maps_to_both(self, make_entity):
        """A fragment shared by two names should map to both entities."""
        names = build_context([
            make_entity("a", "Roderick Vane"),
            make_entity("b", "Roderick Hale"),
        ]).mentioned_names
        assert names["roderick"] == ("a", "b")

    def test_blank_name_registers_nothing(self, make_entity):
        """Blank names should produce no keys."""
        context = build_context([make_entity("a", "   ")])
        assert dict(context.mentioned_names) == {}
        assert name_keys("") == []


# ---------------------------------------------------------------------------
# build_context
# ---------------------------------------------------------------------------

class TestBuildContext:
    """Tests for build_context edge cases."""

    def test_empty_snapshot(self):
        """An empty snapshot should give an empty context."""
        context = build_context([])
        assert context.entities == ()
        assert context.relationship_map.nodes == []

    def test_duplicate_ids_keep_first(self, make_entity):
        """The first entity with a given ID should win."""
        context = build_context([make_entity("a", "First"), make_entity("a", "Second")])
        assert len(context.entities) == 1
        assert context.get("a").name == "First"

    def test_dangling_target_is_not_an_entity(self, harbour):
        """Links to unknown IDs should not create entities or nodes."""
        context = build_context(harbour)
        assert context.get("ghost") is None
        assert "ghost" not in context.relationship_map.nodes

    def test_context_maps_are_read_only(self, harbour):
        """The context maps should reject writes."""
        context = build_context(harbour)
        with pytest.raises(TypeError):
            context.entity_map["new"] = harbour[0]
