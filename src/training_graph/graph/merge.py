"""Combining two subgraphs under a named conflict-resolution strategy."""

from __future__ import annotations

from dataclasses import replace
from enum import Enum
from typing import Callable, Dict, List, TypeVar, Union

from .errors import InvalidInputError
from .models import KnowledgeNode, KnowledgeRelationship, KnowledgeSubgraph

E = TypeVar("E", KnowledgeNode, KnowledgeRelationship)


class MergeStrategy(Enum):
    PREFER_SUBGRAPH1 = "prefer_subgraph1"
    PREFER_SUBGRAPH2 = "prefer_subgraph2"
    PREFER_HIGHER_CONFIDENCE = "prefer_higher_confidence"
    MERGE_PROPERTIES = "merge_properties"

    @classmethod
    def parse(cls, value: Union["MergeStrategy", str]) -> "MergeStrategy":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            names = ", ".join(s.value for s in cls)
            raise InvalidInputError(f"Unknown merge strategy '{value}' (expected one of: {names})") from None


def _merge_node_properties(a: KnowledgeNode, b: KnowledgeNode) -> KnowledgeNode:
    props = dict(a.properties)
    props.update(b.properties)
    return replace(a, properties=props, confidence=max(a.confidence, b.confidence), tags=list(a.tags))


def _merge_relationship_properties(a: KnowledgeRelationship, b: KnowledgeRelationship) -> KnowledgeRelationship:
    props = dict(a.properties)
    props.update(b.properties)
    return replace(
        a,
        properties=props,
        confidence=max(a.confidence, b.confidence),
        strength=max(a.strength, b.strength),
    )


def resolve(a: E, b: E, strategy: MergeStrategy) -> E:
    """Pick or combine two versions of the same entity."""
    if strategy is MergeStrategy.PREFER_SUBGRAPH1:
        return a
    if strategy is MergeStrategy.PREFER_SUBGRAPH2:
        return b
    if strategy is MergeStrategy.PREFER_HIGHER_CONFIDENCE:
        # ties keep the first version
        return b if b.confidence > a.confidence else a
    if isinstance(a, KnowledgeNode):
        return _merge_node_properties(a, b)
    return _merge_relationship_properties(a, b)


def _merge_entities(first: List[E], second: List[E], pick: Callable[[E, E], E]) -> List[E]:
    merged: Dict[str, E] = {}
    for entity in first:
        merged[entity.id] = entity
    for entity in second:
        current = merged.get(entity.id)
        merged[entity.id] = entity if current is None else pick(current, entity)
    return list(merged.values())


def merge_subgraphs(
    subgraph1: KnowledgeSubgraph,
    subgraph2: KnowledgeSubgraph,
    strategy: Union[MergeStrategy, str] = MergeStrategy.PREFER_HIGHER_CONFIDENCE,
) -> KnowledgeSubgraph:
    """Union two subgraphs by id.

    Entities present on one side pass through unchanged; shared ids are
    resolved with ``strategy``. Metadata from ``subgraph2`` wins on key
    collisions. Output keeps ``subgraph1`` order, then ``subgraph2``-only
    entities in their order.
    """
    strat = MergeStrategy.parse(strategy)
    pick = lambda a, b: resolve(a, b, strat)  # noqa: E731

    metadata = dict(subgraph1.metadata)
    metadata.update(subgraph2.metadata)
    return KnowledgeSubgraph(
        nodes=_merge_entities(subgraph1.nodes, subgraph2.nodes, pick),
        relationships=_merge_entities(subgraph1.relationships, subgraph2.relationships, pick),
        metadata=metadata,
    )
