"""
Entity model for the training knowledge graph.

Nodes and relationships are plain dataclasses; the relationship type set is
closed and owns its own string mapping so every serializer and store adapter
agrees on the wire value.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class RelationshipType(Enum):
    """Closed set of relationship categories."""
    HIERARCHICAL = "HIERARCHICAL"
    SEQUENTIAL = "SEQUENTIAL"
    CAUSAL = "CAUSAL"
    TEMPORAL = "TEMPORAL"
    ASSOCIATIVE = "ASSOCIATIVE"
    REGULATORY = "REGULATORY"
    TRAINING = "TRAINING"
    CUSTOM = "CUSTOM"

    @classmethod
    def parse(cls, value: object) -> "RelationshipType":
        """Map a serialized value back to a type; unknown values become ASSOCIATIVE."""
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.ASSOCIATIVE
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return cls.ASSOCIATIVE

    @property
    def abbreviation(self) -> str:
        return _ABBREVIATIONS[self]


_ABBREVIATIONS = {
    RelationshipType.HIERARCHICAL: "HIER",
    RelationshipType.SEQUENTIAL: "SEQ",
    RelationshipType.CAUSAL: "CAUS",
    RelationshipType.TEMPORAL: "TEMP",
    RelationshipType.ASSOCIATIVE: "ASSOC",
    RelationshipType.REGULATORY: "REG",
    RelationshipType.TRAINING: "TRAIN",
    RelationshipType.CUSTOM: "CUST",
}


@dataclass
class KnowledgeNode:
    """A node in the knowledge graph.

    ``id`` is empty until the engine assigns one on create.
    """
    id: str = ""
    label: str = ""
    type: str = ""
    properties: Dict[str, str] = field(default_factory=dict)
    confidence: float = 1.0

    # Provenance
    source_document_id: Optional[str] = None
    source_location: Optional[str] = None
    summary: Optional[str] = None
    tags: List[str] = field(default_factory=list)

    # Audit fields are opaque strings
    created_by: Optional[str] = None
    last_modified_by: Optional[str] = None
    created_at: Optional[str] = None
    last_modified_at: Optional[str] = None


@dataclass
class KnowledgeRelationship:
    """A directed, typed edge between two nodes."""
    id: str = ""
    source_node_id: str = ""
    target_node_id: str = ""
    type: RelationshipType = RelationshipType.ASSOCIATIVE
    label: str = ""
    strength: float = 1.0
    confidence: float = 1.0
    properties: Dict[str, str] = field(default_factory=dict)

    source_document_id: Optional[str] = None
    bidirectional: Optional[str] = None
    temporal: Optional[str] = None  # e.g. "before", "after", "during"

    created_by: Optional[str] = None
    last_modified_by: Optional[str] = None
    created_at: Optional[str] = None
    last_modified_at: Optional[str] = None


@dataclass
class KnowledgeSubgraph:
    """A bag of nodes and relationships returned by queries and algorithms.

    Relationships may reference nodes that are not part of ``nodes``.
    """
    nodes: List[KnowledgeNode] = field(default_factory=list)
    relationships: List[KnowledgeRelationship] = field(default_factory=list)
    metadata: Dict[str, str] = field(default_factory=dict)

    def node_ids(self) -> List[str]:
        return [n.id for n in self.nodes]

    def relationship_ids(self) -> List[str]:
        return [r.id for r in self.relationships]
