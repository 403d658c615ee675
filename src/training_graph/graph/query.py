"""
Structured graph queries and their translation to parameterized Cypher.

User-supplied values never enter the query text: they travel in
``CompiledQuery.params``. Property keys are quoted identifiers and path depth
is a validated integer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .codec import store_key
from .models import RelationshipType

NODE_LABEL = "Node"

COMMUNITY_ALGORITHMS = (
    "louvain",
    "label_propagation",
    "strongly_connected_components",
    "triangle_count",
)

# algorithm -> (GDS procedure, yielded community column)
_GDS_PROCEDURES = {
    "louvain": ("gds.louvain.stream", "communityId", "UNDIRECTED"),
    "label_propagation": ("gds.labelPropagation.stream", "communityId", "UNDIRECTED"),
    "strongly_connected_components": ("gds.scc.stream", "componentId", "NATURAL"),
    "triangle_count": ("gds.triangleCount.stream", "triangleCount", "UNDIRECTED"),
}


@dataclass
class NodeFilter:
    node_type: Optional[str] = None
    labels: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    source_document_ids: List[str] = field(default_factory=list)
    min_confidence: Optional[float] = None
    properties: Dict[str, str] = field(default_factory=dict)


@dataclass
class RelationshipFilter:
    types: List[RelationshipType] = field(default_factory=list)
    labels: List[str] = field(default_factory=list)
    min_strength: Optional[float] = None
    min_confidence: Optional[float] = None
    properties: Dict[str, str] = field(default_factory=dict)


@dataclass
class GraphQuery:
    """Encapsulates a structured query over nodes and (optionally) their edges."""
    node_filter: Optional[NodeFilter] = None
    relationship_filter: Optional[RelationshipFilter] = None
    start_node_id: Optional[str] = None
    limit: Optional[int] = None


@dataclass
class NaturalLanguageQuery:
    query: str
    context: Optional[str] = None
    language: Optional[str] = None
    max_results: Optional[int] = None
    min_confidence: Optional[float] = None


@dataclass
class CompiledQuery:
    """Query text plus bound parameters.

    ``operation`` and ``source`` keep the structured form so stores that do
    not speak Cypher can evaluate the same request.
    """
    text: str
    params: Dict[str, Any] = field(default_factory=dict)
    operation: str = "match"
    source: Any = None


@dataclass
class QueryBuilder:
    """
    Fluent interface for building graph queries.

    Example:
        query = (QueryBuilder()
                .of_type("LearningObjective")
                .tagged("safety", "hydraulics")
                .having_confidence(0.8)
                .connected_by(RelationshipType.REGULATORY)
                .limit(50)
                .build())
    """

    _query: GraphQuery = field(default_factory=GraphQuery)

    def _nodes(self) -> NodeFilter:
        if self._query.node_filter is None:
            self._query.node_filter = NodeFilter()
        return self._query.node_filter

    def _rels(self) -> RelationshipFilter:
        if self._query.relationship_filter is None:
            self._query.relationship_filter = RelationshipFilter()
        return self._query.relationship_filter

    def of_type(self, node_type: str) -> "QueryBuilder":
        self._nodes().node_type = node_type
        return self

    def with_labels(self, *labels: str) -> "QueryBuilder":
        self._nodes().labels.extend(labels)
        return self

    def tagged(self, *tags: str) -> "QueryBuilder":
        """Match nodes carrying any of the given tags."""
        self._nodes().tags.extend(tags)
        return self

    def from_documents(self, *document_ids: str) -> "QueryBuilder":
        self._nodes().source_document_ids.extend(document_ids)
        return self

    def having_confidence(self, min_confidence: float) -> "QueryBuilder":
        self._nodes().min_confidence = min_confidence
        return self

    def with_properties(self, properties: Dict[str, str]) -> "QueryBuilder":
        self._nodes().properties.update(properties)
        return self

    def connected_by(self, *types: Union[RelationshipType, str]) -> "QueryBuilder":
        self._rels().types.extend(RelationshipType.parse(t) for t in types)
        return self

    def with_relationship_labels(self, *labels: str) -> "QueryBuilder":
        self._rels().labels.extend(labels)
        return self

    def having_strength(self, min_strength: float) -> "QueryBuilder":
        self._rels().min_strength = min_strength
        return self

    def having_relationship_confidence(self, min_confidence: float) -> "QueryBuilder":
        self._rels().min_confidence = min_confidence
        return self

    def with_relationship_properties(self, properties: Dict[str, str]) -> "QueryBuilder":
        self._rels().properties.update(properties)
        return self

    def starting_at(self, node_id: str) -> "QueryBuilder":
        self._query.start_node_id = node_id
        return self

    def limit(self, limit: int) -> "QueryBuilder":
        if int(limit) < 0:
            raise ValueError("limit must be >= 0")
        self._query.limit = int(limit)
        return self

    def build(self) -> GraphQuery:
        return self._query

    def compile(self) -> CompiledQuery:
        return compile_match(self._query)


def quote_identifier(name: str) -> str:
    return "`" + str(name).replace("`", "``") + "`"


class _Params:
    def __init__(self) -> None:
        self.values: Dict[str, Any] = {}

    def bind(self, name: str, value: Any) -> str:
        key = name
        i = 0
        while key in self.values:
            i += 1
            key = f"{name}_{i}"
        self.values[key] = value
        return "$" + key


def _node_conditions(f: NodeFilter, p: _Params) -> List[str]:
    conds: List[str] = []
    if f.node_type:
        conds.append(f"n.type = {p.bind('node_type', f.node_type)}")
    if f.labels:
        conds.append(f"n.label IN {p.bind('node_labels', list(f.labels))}")
    if f.tags:
        ors = [f"{p.bind(f'tag_{i}', t)} IN n.tags" for i, t in enumerate(f.tags)]
        conds.append("(" + " OR ".join(ors) + ")")
    if f.source_document_ids:
        conds.append(f"n.sourceDocumentId IN {p.bind('source_document_ids', list(f.source_document_ids))}")
    if f.min_confidence is not None:
        conds.append(f"n.confidence >= {p.bind('node_min_confidence', float(f.min_confidence))}")
    for i, (k, v) in enumerate(f.properties.items()):
        conds.append(f"n.{quote_identifier(store_key(k))} = {p.bind(f'node_prop_{i}', v)}")
    return conds


def _relationship_conditions(f: RelationshipFilter, p: _Params) -> List[str]:
    conds: List[str] = []
    if f.types:
        conds.append(f"r.type IN {p.bind('rel_types', [t.value for t in f.types])}")
    if f.labels:
        conds.append(f"r.label IN {p.bind('rel_labels', list(f.labels))}")
    if f.min_strength is not None:
        conds.append(f"r.strength >= {p.bind('rel_min_strength', float(f.min_strength))}")
    if f.min_confidence is not None:
        conds.append(f"r.confidence >= {p.bind('rel_min_confidence', float(f.min_confidence))}")
    for i, (k, v) in enumerate(f.properties.items()):
        conds.append(f"r.{quote_identifier(store_key(k))} = {p.bind(f'rel_prop_{i}', v)}")
    return conds


def compile_match(query: GraphQuery) -> CompiledQuery:
    """Translate a GraphQuery into a parameterized MATCH.

    Without a relationship filter one row per node (id, type) is returned;
    with one, one row per matching edge (id, type, relationshipId).
    """
    p = _Params()
    with_edges = query.relationship_filter is not None

    lines = [f"MATCH (n:{NODE_LABEL})-[r]->(m:{NODE_LABEL})" if with_edges else f"MATCH (n:{NODE_LABEL})"]

    conds: List[str] = []
    if query.node_filter is not None:
        conds.extend(_node_conditions(query.node_filter, p))
    if query.relationship_filter is not None:
        conds.extend(_relationship_conditions(query.relationship_filter, p))
    if query.start_node_id:
        conds.append(f"n.id = {p.bind('start_node_id', query.start_node_id)}")
    if conds:
        lines.append("WHERE " + " AND ".join(conds))

    if with_edges:
        lines.append("RETURN n.id AS id, n.type AS type, r.id AS relationshipId")
    else:
        lines.append("RETURN DISTINCT n.id AS id, n.type AS type")

    if query.limit is not None:
        lines.append(f"LIMIT {p.bind('limit', int(query.limit))}")

    return CompiledQuery(text="\n".join(lines), params=p.values, operation="match", source=query)


def compile_all_relationships() -> CompiledQuery:
    text = f"MATCH (:{NODE_LABEL})-[r]->(:{NODE_LABEL})\nRETURN r.id AS relationshipId"
    return CompiledQuery(text=text, operation="relationships")


def compile_shortest_path(source_id: str, target_id: str, max_depth: int) -> CompiledQuery:
    """Undirected shortest path with at most ``max_depth`` hops.

    Path nodes come back first (id, type) followed by path edges (relationshipId).
    """
    depth = int(max_depth)
    if depth < 1:
        raise ValueError("max_depth must be >= 1")
    head = (
        f"MATCH (source:{NODE_LABEL} {{id: $source_id}}), (target:{NODE_LABEL} {{id: $target_id}})\n"
        f"MATCH path = shortestPath((source)-[*1..{depth}]-(target))"
    )
    text = (
        f"{head}\n"
        "UNWIND nodes(path) AS n\n"
        "RETURN n.id AS id, n.type AS type, null AS relationshipId\n"
        "UNION ALL\n"
        f"{head}\n"
        "UNWIND relationships(path) AS r\n"
        "RETURN null AS id, null AS type, r.id AS relationshipId"
    )
    return CompiledQuery(
        text=text,
        params={"source_id": source_id, "target_id": target_id},
        operation="shortest_path",
        source={"source_id": source_id, "target_id": target_id, "max_depth": depth},
    )


def compile_communities(
    algorithm: str,
    parameters: Optional[Dict[str, Any]] = None,
    *,
    graph_name: str = "knowledge_graph",
) -> CompiledQuery:
    """Community detection through a graph-data-science stream procedure.

    The procedure reads the in-memory projection named ``graph_name``, which
    must exist when the text runs. ``source["orientation"]`` is the
    relationship orientation the algorithm expects; the Neo4j store projects
    the graph with it before streaming. Rows carry ``nodeId`` (the node's id
    property) and ``community``.
    """
    if algorithm not in _GDS_PROCEDURES:
        raise ValueError(f"Unknown community algorithm: {algorithm}")
    procedure, column, orientation = _GDS_PROCEDURES[algorithm]
    text = (
        f"CALL {procedure}($graph_name, $config)\n"
        f"YIELD nodeId, {column}\n"
        f"RETURN gds.util.asNode(nodeId).id AS nodeId, {column} AS community"
    )
    config = dict(parameters or {})
    return CompiledQuery(
        text=text,
        params={"graph_name": graph_name, "config": config},
        operation="communities",
        source={
            "algorithm": algorithm,
            "parameters": config,
            "graph_name": graph_name,
            "orientation": orientation,
        },
    )
