"""
In-process graph store backed by a networkx MultiDiGraph.

Evaluates compiled queries from their structured form and executes the
statement-script grammar, so the engine runs end to end without a server.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Iterable, List, Optional, Set

import networkx as nx

from ..codec import store_key
from ..query import CompiledQuery, GraphQuery, NodeFilter, RelationshipFilter
from .base import (
    DuplicateEntityError,
    EntityNotFoundError,
    GraphStore,
    GraphStoreError,
    QueryInput,
    StoredNode,
    StoredRelationship,
)
from .statements import parse_statement

logger = logging.getLogger(__name__)


def _copy_props(props: Dict[str, Any]) -> Dict[str, Any]:
    return {k: list(v) if isinstance(v, (list, tuple)) else v for k, v in (props or {}).items()}


def _as_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _props_match(props: Dict[str, Any], wanted: Dict[str, str]) -> bool:
    for k, v in wanted.items():
        key = store_key(k)
        if key not in props or str(props[key]) != str(v):
            return False
    return True


class InMemoryGraphStore(GraphStore):
    """Thread-safe in-memory store.

    Node attributes: ``label``, ``type``, ``properties``. Edges are keyed by
    relationship id and carry ``type``, ``label``, ``properties``.
    """

    def __init__(self) -> None:
        self._graph = nx.MultiDiGraph()
        self._edges: Dict[str, tuple] = {}
        self._lock = threading.RLock()

    @property
    def graph(self) -> nx.MultiDiGraph:
        return self._graph

    # ---- nodes ----

    def create_node(self, node_id: str, label: str, node_type: str, properties: Dict[str, Any]) -> None:
        with self._lock:
            if node_id in self._graph:
                raise DuplicateEntityError(f"Node already exists: {node_id}")
            self._graph.add_node(node_id, label=label, type=node_type, properties=_copy_props(properties))

    def get_node(self, node_id: str) -> Optional[StoredNode]:
        with self._lock:
            if node_id not in self._graph:
                return None
            data = self._graph.nodes[node_id]
            return StoredNode(
                id=node_id,
                label=data["label"],
                type=data["type"],
                properties=_copy_props(data["properties"]),
            )

    def update_node(self, node_id: str, label: str, node_type: str, properties: Dict[str, Any]) -> None:
        with self._lock:
            if node_id not in self._graph:
                raise EntityNotFoundError(f"Node not found: {node_id}")
            self._graph.nodes[node_id].update(label=label, type=node_type, properties=_copy_props(properties))

    def delete_node(self, node_id: str) -> None:
        with self._lock:
            if node_id not in self._graph:
                raise EntityNotFoundError(f"Node not found: {node_id}")
            incident = [k for k, (u, v) in self._edges.items() if node_id in (u, v)]
            for rel_id in incident:
                del self._edges[rel_id]
            self._graph.remove_node(node_id)

    # ---- relationships ----

    def create_relationship(
        self,
        relationship_id: str,
        source_id: str,
        target_id: str,
        rel_type: str,
        label: str,
        properties: Dict[str, Any],
    ) -> None:
        with self._lock:
            if relationship_id in self._edges:
                raise DuplicateEntityError(f"Relationship already exists: {relationship_id}")
            for endpoint in (source_id, target_id):
                if endpoint not in self._graph:
                    raise EntityNotFoundError(f"Node not found: {endpoint}")
            self._graph.add_edge(
                source_id,
                target_id,
                key=relationship_id,
                type=rel_type,
                label=label,
                properties=_copy_props(properties),
            )
            self._edges[relationship_id] = (source_id, target_id)

    def get_relationship(self, relationship_id: str) -> Optional[StoredRelationship]:
        with self._lock:
            ends = self._edges.get(relationship_id)
            if ends is None:
                return None
            u, v = ends
            data = self._graph.edges[u, v, relationship_id]
            return StoredRelationship(
                id=relationship_id,
                source_id=u,
                target_id=v,
                type=data["type"],
                label=data["label"],
                properties=_copy_props(data["properties"]),
            )

    def update_relationship(
        self,
        relationship_id: str,
        rel_type: str,
        label: str,
        properties: Dict[str, Any],
    ) -> None:
        with self._lock:
            ends = self._edges.get(relationship_id)
            if ends is None:
                raise EntityNotFoundError(f"Relationship not found: {relationship_id}")
            u, v = ends
            self._graph.edges[u, v, relationship_id].update(
                type=rel_type, label=label, properties=_copy_props(properties)
            )

    def delete_relationship(self, relationship_id: str) -> None:
        with self._lock:
            ends = self._edges.pop(relationship_id, None)
            if ends is None:
                raise EntityNotFoundError(f"Relationship not found: {relationship_id}")
            self._graph.remove_edge(ends[0], ends[1], key=relationship_id)

    # ---- queries ----

    def execute_query(self, query: QueryInput, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, str]]:
        with self._lock:
            if isinstance(query, CompiledQuery):
                handler = {
                    "match": self._run_match,
                    "relationships": self._run_relationships,
                    "shortest_path": self._run_shortest_path,
                    "communities": self._run_communities,
                }.get(query.operation)
                if handler is None:
                    raise GraphStoreError(f"Unsupported operation: {query.operation}")
                return handler(query.source)
            return self._run_statement(str(query))

    def _run_statement(self, text: str) -> List[Dict[str, str]]:
        text = text.strip()
        if not text or text.startswith("//"):
            return []
        kind, entity = parse_statement(text)
        if kind == "node":
            self.create_node(entity.id, entity.label, entity.type, entity.properties)
        else:
            self.create_relationship(
                entity.id, entity.source_id, entity.target_id, entity.type, entity.label, entity.properties
            )
        return []

    def _node_matches(self, node_id: str, f: Optional[NodeFilter]) -> bool:
        if f is None:
            return True
        data = self._graph.nodes[node_id]
        props = data["properties"]
        if f.node_type and data["type"] != f.node_type:
            return False
        if f.labels and data["label"] not in f.labels:
            return False
        if f.tags:
            tags = props.get("tags") or []
            if not any(t in tags for t in f.tags):
                return False
        if f.source_document_ids and props.get("sourceDocumentId") not in f.source_document_ids:
            return False
        if f.min_confidence is not None:
            conf = _as_float(props.get("confidence"))
            if conf is None or conf < f.min_confidence:
                return False
        return _props_match(props, f.properties)

    @staticmethod
    def _edge_matches(data: Dict[str, Any], f: RelationshipFilter) -> bool:
        props = data["properties"]
        if f.types and data["type"] not in [t.value for t in f.types]:
            return False
        if f.labels and data["label"] not in f.labels:
            return False
        if f.min_strength is not None:
            strength = _as_float(props.get("strength"))
            if strength is None or strength < f.min_strength:
                return False
        if f.min_confidence is not None:
            conf = _as_float(props.get("confidence"))
            if conf is None or conf < f.min_confidence:
                return False
        return _props_match(props, f.properties)

    def _run_match(self, query: GraphQuery) -> List[Dict[str, str]]:
        rows: List[Dict[str, str]] = []

        def node_ok(node_id: str) -> bool:
            if query.start_node_id and node_id != query.start_node_id:
                return False
            return self._node_matches(node_id, query.node_filter)

        if query.relationship_filter is None:
            for node_id, data in self._graph.nodes(data=True):
                if node_ok(node_id):
                    rows.append({"id": node_id, "type": data["type"]})
        else:
            for u, _v, key, data in self._graph.edges(keys=True, data=True):
                if node_ok(u) and self._edge_matches(data, query.relationship_filter):
                    rows.append({"id": u, "type": self._graph.nodes[u]["type"], "relationshipId": key})

        if query.limit is not None:
            rows = rows[: query.limit]
        return rows

    def _run_relationships(self, _source: Any) -> List[Dict[str, str]]:
        return [{"relationshipId": key} for _u, _v, key in self._graph.edges(keys=True)]

    def _run_shortest_path(self, source: Dict[str, Any]) -> List[Dict[str, str]]:
        src, dst, depth = source["source_id"], source["target_id"], source["max_depth"]
        if src not in self._graph or dst not in self._graph:
            return []
        if src == dst:
            return [{"id": src, "type": self._graph.nodes[src]["type"]}]
        undirected = self._graph.to_undirected(as_view=True)
        try:
            path = nx.shortest_path(undirected, src, dst)
        except nx.NetworkXNoPath:
            return []
        if len(path) - 1 > depth:
            return []

        rows = [{"id": n, "type": self._graph.nodes[n]["type"]} for n in path]
        for a, b in zip(path, path[1:]):
            keys = list(self._graph.get_edge_data(a, b, default={})) or list(
                self._graph.get_edge_data(b, a, default={})
            )
            rows.append({"relationshipId": keys[0]})
        return rows

    def _simple_undirected(self) -> nx.Graph:
        g = nx.Graph()
        g.add_nodes_from(self._graph.nodes)
        g.add_edges_from((u, v) for u, v in self._graph.edges() if u != v)
        return g

    def _run_communities(self, source: Dict[str, Any]) -> List[Dict[str, str]]:
        algorithm = source["algorithm"]
        params = source.get("parameters") or {}
        if self._graph.number_of_nodes() == 0:
            return []

        if algorithm == "triangle_count":
            counts = nx.triangles(self._simple_undirected())
            return [{"nodeId": n, "community": str(c)} for n, c in counts.items()]

        groups: Iterable[Set[str]]
        if algorithm == "louvain":
            groups = nx.community.louvain_communities(
                self._simple_undirected(),
                resolution=float(params.get("resolution", 1.0)),
                seed=params.get("seed", 42),
            )
        elif algorithm == "label_propagation":
            groups = nx.community.label_propagation_communities(self._simple_undirected())
        elif algorithm == "strongly_connected_components":
            groups = nx.strongly_connected_components(nx.DiGraph(self._graph))
        else:
            raise GraphStoreError(f"Unknown community algorithm: {algorithm}")

        order = {n: i for i, n in enumerate(self._graph.nodes)}
        ranked = sorted((sorted(g, key=order.__getitem__) for g in groups), key=lambda g: order[g[0]])
        rows: List[Dict[str, str]] = []
        for idx, members in enumerate(ranked):
            rows.extend({"nodeId": n, "community": str(idx)} for n in members)
        logger.debug(f"{algorithm}: {len(ranked)} communities over {len(order)} nodes")
        return rows
