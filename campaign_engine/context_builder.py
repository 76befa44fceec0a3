"""
campaign_engine/context_builder.py -- Shared read-only analysis context.

Turns a flat entity snapshot into the indexes every analyzer needs:

    relationship_map     NetworkX multigraph of every entity's outgoing links
    locations_by_entity  entity id -> ids of the locations it links to
    mentioned_names      normalised name / name fragment -> entity ids

The context is built once per orchestration run and never mutated.

Usage:
    from campaign_engine.context_builder import build_context

    context = build_context(entities)
    context.relationship_map.has_relationship("roderick-a1b2", "city-guard-c3d4")
"""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, NamedTuple

import networkx as nx

from campaign_engine.models.base import Entity
from campaign_engine.utils import STOP_WORDS, normalize_name

logger = logging.getLogger(__name__)

LOCATION_TYPE = "location"


class RelationshipEdge(NamedTuple):
    source: str
    target: str
    relationship: str


# ---------------------------------------------------------------------------
# RelationshipMap
# ---------------------------------------------------------------------------

class RelationshipMap:
    """Directed multigraph of entity links.

    Nodes are entity IDs; each link is one edge carrying its
    ``relationship`` label.  Links to entities that are not in the snapshot
    still produce an edge (the target becomes a bare node) but are not listed
    in :attr:`nodes`.
    """

    def __init__(self):
        self.graph: nx.MultiDiGraph = nx.MultiDiGraph()
        self._nodes: list[str] = []
        self._node_set: set[str] = set()
        self._edges: list[RelationshipEdge] = []

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def add_node(self, entity_id: str, **attrs) -> None:
        if entity_id not in self._node_set:
            self._node_set.add(entity_id)
            self._nodes.append(entity_id)
        self.graph.add_node(entity_id, **attrs)

    def add_edge(self, source: str, target: str, relationship: str) -> None:
        self.graph.add_edge(source, target, relationship=relationship)
        self._edges.append(RelationshipEdge(source, target, relationship))

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def nodes(self) -> list[str]:
        """Entity IDs in snapshot order."""
        return list(self._nodes)

    @property
    def edges(self) -> list[RelationshipEdge]:
        """Every link as a ``(source, target, relationship)`` edge, in link order."""
        return list(self._edges)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_relationship(self, first_id: str, second_id: str) -> bool:
        """True if any link joins the two entities, in either direction."""
        return self.graph.has_edge(first_id, second_id) or self.graph.has_edge(second_id, first_id)

    def has_incoming(self, entity_id: str) -> bool:
        return entity_id in self.graph and self.graph.in_degree(entity_id) > 0

    def has_outgoing(self, entity_id: str) -> bool:
        return entity_id in self.graph and self.graph.out_degree(entity_id) > 0

    def count_edges_within(self, entity_ids) -> int:
        """Number of links whose source and target are both in *entity_ids*."""
        members = [eid for eid in set(entity_ids) if eid in self.graph]
        return self.graph.subgraph(members).number_of_edges()

    def neighbors(self, entity_id: str) -> set[str]:
        """Entities directly linked to *entity_id* in either direction."""
        if entity_id not in self.graph:
            return set()
        return set(self.graph.successors(entity_id)) | set(self.graph.predecessors(entity_id))


# ---------------------------------------------------------------------------
# EntityAnalysisContext
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EntityAnalysisContext:
    """Immutable snapshot shared by all analyzers in one run."""

    entities: tuple[Entity, ...]
    entity_map: Mapping[str, Entity]
    relationship_map: RelationshipMap
    locations_by_entity: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    mentioned_names: Mapping[str, tuple[str, ...]] = field(default_factory=dict)

    def get(self, entity_id: str) -> Entity | None:
        return self.entity_map.get(entity_id)


def name_keys(name: str) -> list[str]:
    """Index keys for *name*: the full normalised name plus its fragments.

    Fragments are whitespace-separated tokens longer than two characters
    that are not stop words ("the", "of").  Blank names produce no keys.
    """
    full = normalize_name(name)
    if not full:
        return []
    keys = [full]
    for part in full.split():
        part = part.strip(".,;:'\"()")
        if len(part) > 2 and part not in STOP_WORDS and part not in keys:
            keys.append(part)
    return keys


def build_context(entities) -> EntityAnalysisContext:
    """Build the analysis context from an entity snapshot.

    Pure and deterministic; one pass over entities and their links.
    Entities with a repeated ID are skipped after the first occurrence.
    """
    entity_map: dict[str, Entity] = {}
    ordered: list[Entity] = []
    relationship_map = RelationshipMap()
    locations_by_entity: dict[str, tuple[str, ...]] = {}
    mentioned_names: dict[str, list[str]] = {}

    for entity in entities:
        if not entity.id:
            logger.warning("Skipping entity without an id: %r", entity.name)
            continue
        if entity.id in entity_map:
            logger.warning("Skipping duplicate entity id %s", entity.id)
            continue

        entity_map[entity.id] = entity
        ordered.append(entity)
        relationship_map.add_node(entity.id, entity_type=entity.type, name=entity.name)

        for key in name_keys(entity.name):
            ids = mentioned_names.setdefault(key, [])
            if entity.id not in ids:
                ids.append(entity.id)

    for entity in ordered:
        locations: list[str] = []
        for link in entity.links:
            relationship_map.add_edge(entity.id, link.target_id, link.relationship)
            if link.target_type == LOCATION_TYPE and link.target_id not in locations:
                locations.append(link.target_id)
        if locations:
            locations_by_entity[entity.id] = tuple(locations)

    logger.debug(
        "Built analysis context: %d entities, %d links, %d name keys",
        len(ordered), len(relationship_map.edges), len(mentioned_names),
    )

    return EntityAnalysisContext(
        entities=tuple(ordered),
        entity_map=MappingProxyType(entity_map),
        relationship_map=relationship_map,
        locations_by_entity=MappingProxyType(locations_by_entity),
        mentioned_names=MappingProxyType({k: tuple(v) for k, v in mentioned_names.items()}),
    )
