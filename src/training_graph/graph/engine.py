"""
Knowledge graph engine for training documents.

Owns typed entities on top of a GraphStore: cached CRUD, structured and
natural-language queries, document ingestion, graph algorithms and
import/export. Every public operation returns a GraphResult; internal helpers
raise and the boundary converts.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
import xml.etree.ElementTree as ET
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar, Union

from pydantic import ValidationError

from ..settings import KnowledgeGraphSettings
from ..settings import settings as default_settings
from . import codec
from .cache import EntityCache
from .db.base import DuplicateEntityError, GraphStore, GraphStoreError
from .errors import (
    ErrorKind,
    FileOperationError,
    GraphEngineError,
    GraphResult,
    IdGenerationError,
    InvalidInputError,
    NLPQueryError,
    NodeNotFoundError,
    RelationshipNotFoundError,
)
from .ids import IdGenerator
from .ingestion import DocumentIngestionMapper, ProcessingResult
from .io import cypher as cypher_io
from .io import detect_format
from .io import graphml as graphml_io
from .io import json_format as json_io
from .merge import MergeStrategy, merge_subgraphs, resolve
from .models import KnowledgeNode, KnowledgeRelationship, KnowledgeSubgraph, RelationshipType
from .nlp.base import NLPAdapter
from .query import (
    COMMUNITY_ALGORITHMS,
    CompiledQuery,
    GraphQuery,
    NaturalLanguageQuery,
    NodeFilter,
    compile_all_relationships,
    compile_communities,
    compile_match,
    compile_shortest_path,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_ALGORITHM_ALIASES = {
    "labelpropagation": "label_propagation",
    "scc": "strongly_connected_components",
    "trianglecount": "triangle_count",
}

_READERS = {"json": json_io.read, "graphml": graphml_io.read}
_WRITERS = {"json": json_io.write, "graphml": graphml_io.write, "cypher": cypher_io.write}


def _copy_node(node: KnowledgeNode) -> KnowledgeNode:
    return replace(node, properties=dict(node.properties), tags=list(node.tags))


def _copy_relationship(rel: KnowledgeRelationship) -> KnowledgeRelationship:
    return replace(rel, properties=dict(rel.properties))


class KnowledgeGraphEngine:
    """Facade over a graph store, an NLP adapter and two bounded caches."""

    def __init__(
        self,
        store: GraphStore,
        nlp: NLPAdapter,
        settings: Optional[KnowledgeGraphSettings] = None,
        *,
        id_generator: Optional[IdGenerator] = None,
    ):
        self.store = store
        self.nlp = nlp
        self.settings = settings or default_settings
        self.node_cache: EntityCache[KnowledgeNode] = EntityCache(
            self.settings.max_cache_size, enabled=self.settings.enable_node_caching
        )
        self.relationship_cache: EntityCache[KnowledgeRelationship] = EntityCache(
            self.settings.max_cache_size, enabled=self.settings.enable_relationship_caching
        )
        self.ids = id_generator or IdGenerator(store, self.settings.id_max_attempts)
        self.ingestion = DocumentIngestionMapper(self)
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def close(self) -> None:
        with self._executor_lock:
            if self._executor is not None:
                self._executor.shutdown(wait=True)
                self._executor = None
        self.store.close()

    def __enter__(self) -> "KnowledgeGraphEngine":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def _run(
        self,
        action: str,
        fn: Callable[..., T],
        *args: Any,
        kind: ErrorKind = ErrorKind.GRAPH_OPERATION_FAILED,
        **kwargs: Any,
    ) -> GraphResult[T]:
        start = time.perf_counter()
        try:
            result: GraphResult[T] = GraphResult.ok(fn(*args, **kwargs))
        except GraphEngineError as e:
            logger.warning(f"Failed to {action}: {e}")
            result = GraphResult.fail(e.kind, str(e))
        except Exception as e:
            logger.error(f"Failed to {action}: {e}")
            result = GraphResult.fail(kind, str(e))
        result.query_time_ms = (time.perf_counter() - start) * 1000
        return result

    def _check_confidence(self, value: float, what: str) -> None:
        if not 0.0 <= value <= 1.0:
            logger.warning(f"{what} has confidence {value} outside [0, 1]")
        elif value < self.settings.min_confidence_threshold:
            logger.warning(
                f"{what} has confidence {value} below threshold {self.settings.min_confidence_threshold}"
            )

    # ------------------------------------------------------------------ #
    # Nodes
    # ------------------------------------------------------------------ #

    def _create_node(self, node: KnowledgeNode) -> str:
        if not isinstance(node, KnowledgeNode):
            raise InvalidInputError("Expected a KnowledgeNode")
        node = _copy_node(node)
        self._check_confidence(node.confidence, f"Node '{node.label}'")

        generated = not node.id
        attempts = self.ids.max_attempts if generated else 1
        for _ in range(attempts):
            if generated:
                node.id = self.ids.generate_node_id(node)
            try:
                self.store.create_node(node.id, node.label, node.type, codec.node_to_store(node))
                break
            except DuplicateEntityError:
                if not generated:
                    raise GraphEngineError(f"Node already exists: {node.id}")
                logger.debug(f"Generated node id {node.id} was taken at insert time; retrying")
        else:
            raise IdGenerationError(f"Could not insert node '{node.label}' after {attempts} attempts")

        self.node_cache.put(node.id, node)
        logger.debug(f"Created node {node.id}")
        return node.id

    def _get_node(self, node_id: str) -> KnowledgeNode:
        if not node_id:
            raise InvalidInputError("Node id is required")
        cached = self.node_cache.get(node_id)
        if cached is not None:
            return _copy_node(cached)
        stored = self.store.get_node(node_id)
        if stored is None:
            raise NodeNotFoundError(f"Node not found: {node_id}")
        node = codec.node_from_store(stored)
        self.node_cache.put(node_id, node)
        return _copy_node(node)

    def _update_node(self, node: KnowledgeNode) -> None:
        if not node.id:
            raise InvalidInputError("Node id is required for update")
        self._get_node(node.id)
        self._check_confidence(node.confidence, f"Node '{node.label}'")
        node = _copy_node(node)
        self.store.update_node(node.id, node.label, node.type, codec.node_to_store(node))
        self.node_cache.invalidate(node.id)
        self.node_cache.put(node.id, node)

    def _delete_node(self, node_id: str) -> None:
        self._get_node(node_id)
        self.store.delete_node(node_id)
        self.node_cache.invalidate(node_id)
        # the store drops incident relationships with the node
        self.relationship_cache.invalidate_where(
            lambda r: node_id in (r.source_node_id, r.target_node_id)
        )

    def create_node(self, node: KnowledgeNode) -> GraphResult[str]:
        """Create a node, assigning an id when it has none. Returns the id."""
        return self._run("create node", self._create_node, node)

    def get_node(self, node_id: str) -> GraphResult[KnowledgeNode]:
        return self._run("get node", self._get_node, node_id)

    def update_node(self, node: KnowledgeNode) -> GraphResult[None]:
        return self._run("update node", self._update_node, node)

    def delete_node(self, node_id: str) -> GraphResult[None]:
        return self._run("delete node", self._delete_node, node_id)

    # ------------------------------------------------------------------ #
    # Relationships
    # ------------------------------------------------------------------ #

    def _create_relationship(self, rel: KnowledgeRelationship) -> str:
        if not isinstance(rel, KnowledgeRelationship):
            raise InvalidInputError("Expected a KnowledgeRelationship")
        rel = _copy_relationship(rel)
        rel.type = RelationshipType.parse(rel.type)
        self._get_node(rel.source_node_id)
        self._get_node(rel.target_node_id)
        self._check_confidence(rel.confidence, f"Relationship '{rel.label}'")

        generated = not rel.id
        attempts = self.ids.max_attempts if generated else 1
        for _ in range(attempts):
            if generated:
                rel.id = self.ids.generate_relationship_id(rel)
            try:
                self.store.create_relationship(
                    rel.id,
                    rel.source_node_id,
                    rel.target_node_id,
                    rel.type.value,
                    rel.label,
                    codec.relationship_to_store(rel),
                )
                break
            except DuplicateEntityError:
                if not generated:
                    raise GraphEngineError(f"Relationship already exists: {rel.id}")
                logger.debug(f"Generated relationship id {rel.id} was taken at insert time; retrying")
        else:
            raise IdGenerationError(f"Could not insert relationship '{rel.label}' after {attempts} attempts")

        self.relationship_cache.put(rel.id, rel)
        return rel.id

    def _get_relationship(self, relationship_id: str) -> KnowledgeRelationship:
        if not relationship_id:
            raise InvalidInputError("Relationship id is required")
        cached = self.relationship_cache.get(relationship_id)
        if cached is not None:
            return _copy_relationship(cached)
        stored = self.store.get_relationship(relationship_id)
        if stored is None:
            raise RelationshipNotFoundError(f"Relationship not found: {relationship_id}")
        rel = codec.relationship_from_store(stored)
        self.relationship_cache.put(relationship_id, rel)
        return _copy_relationship(rel)

    def _update_relationship(self, rel: KnowledgeRelationship) -> None:
        if not rel.id:
            raise InvalidInputError("Relationship id is required for update")
        current = self._get_relationship(rel.id)
        rel = _copy_relationship(rel)
        rel.type = RelationshipType.parse(rel.type)
        # endpoints are fixed once created
        rel.source_node_id = current.source_node_id
        rel.target_node_id = current.target_node_id
        self._check_confidence(rel.confidence, f"Relationship '{rel.label}'")
        self.store.update_relationship(rel.id, rel.type.value, rel.label, codec.relationship_to_store(rel))
        self.relationship_cache.invalidate(rel.id)
        self.relationship_cache.put(rel.id, rel)

    def _delete_relationship(self, relationship_id: str) -> None:
        self._get_relationship(relationship_id)
        self.store.delete_relationship(relationship_id)
        self.relationship_cache.invalidate(relationship_id)

    def create_relationship(self, relationship: KnowledgeRelationship) -> GraphResult[str]:
        """Create a relationship between two existing nodes. Returns the id."""
        return self._run("create relationship", self._create_relationship, relationship)

    def get_relationship(self, relationship_id: str) -> GraphResult[KnowledgeRelationship]:
        return self._run("get relationship", self._get_relationship, relationship_id)

    def update_relationship(self, relationship: KnowledgeRelationship) -> GraphResult[None]:
        return self._run("update relationship", self._update_relationship, relationship)

    def delete_relationship(self, relationship_id: str) -> GraphResult[None]:
        return self._run("delete relationship", self._delete_relationship, relationship_id)

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def _execute(self, query: Union[str, CompiledQuery], params: Optional[Dict[str, Any]] = None) -> KnowledgeSubgraph:
        rows = self.store.execute_query(query, params)
        nodes: Dict[str, KnowledgeNode] = {}
        rels: Dict[str, KnowledgeRelationship] = {}
        for row in rows:
            node_id = row.get("id")
            if node_id and "type" in row and node_id not in nodes:
                try:
                    nodes[node_id] = self._get_node(node_id)
                except NodeNotFoundError:
                    logger.debug(f"Row references missing node {node_id}")
            rel_id = row.get("relationshipId")
            if rel_id and rel_id not in rels:
                try:
                    rels[rel_id] = self._get_relationship(rel_id)
                except RelationshipNotFoundError:
                    logger.debug(f"Row references missing relationship {rel_id}")
        return KnowledgeSubgraph(nodes=list(nodes.values()), relationships=list(rels.values()))

    def execute_query(
        self, query: Union[str, CompiledQuery], params: Optional[Dict[str, Any]] = None
    ) -> GraphResult[KnowledgeSubgraph]:
        """Run a raw or compiled query and resolve the rows into entities."""
        return self._run("execute query", self._execute, query, params)

    def query(self, graph_query: GraphQuery) -> GraphResult[KnowledgeSubgraph]:
        return self._run("query graph", lambda: self._execute(compile_match(graph_query)))

    def _natural_language_query(self, nlq: NaturalLanguageQuery) -> KnowledgeSubgraph:
        if not nlq.query or not nlq.query.strip():
            raise NLPQueryError("Query text is empty")
        language = nlq.language or self.settings.default_language
        try:
            structured = self.nlp.convert_to_structured_query(nlq.query, nlq.context, language)
        except Exception as e:
            raise NLPQueryError(f"Could not convert query: {e}") from e

        try:
            entities = self.nlp.extract_entities(nlq.query)
        except Exception as e:
            logger.warning(f"Entity extraction failed, querying without labels: {e}")
            entities = []

        labels = [label for label, _kind in entities] or list(structured.labels)
        # relationship hints are not applied; they would drop nodes without edges
        node_filter = NodeFilter(node_type=structured.node_type, labels=labels, tags=list(structured.tags))
        graph_query = GraphQuery(node_filter=node_filter, limit=nlq.max_results)
        subgraph = self._execute(compile_match(graph_query))

        if nlq.min_confidence is not None:
            subgraph.nodes = [n for n in subgraph.nodes if n.confidence >= nlq.min_confidence]
            subgraph.relationships = [r for r in subgraph.relationships if r.confidence >= nlq.min_confidence]
        subgraph.metadata.update({"query": nlq.query, "language": language})
        return subgraph

    def natural_language_query(self, query: NaturalLanguageQuery) -> GraphResult[KnowledgeSubgraph]:
        """Match nodes whose label is one of the entities found in the text.

        A node type or tags recognised by the adapter narrow the match further.
        Relationship hints in the text are ignored, so the result never
        contains relationships.
        """
        return self._run(
            "run natural-language query",
            self._natural_language_query,
            query,
            kind=ErrorKind.NLP_QUERY_FAILED,
        )

    # ------------------------------------------------------------------ #
    # Document ingestion
    # ------------------------------------------------------------------ #

    def _process_document(self, result: Union[ProcessingResult, Dict[str, Any]]) -> Tuple[int, int]:
        if not isinstance(result, ProcessingResult):
            try:
                result = ProcessingResult.model_validate(result)
            except ValidationError as e:
                raise InvalidInputError(f"Invalid processing result: {e}") from e
        return self.ingestion.process(result)

    def process_document(self, result: Union[ProcessingResult, Dict[str, Any]]) -> GraphResult[Tuple[int, int]]:
        """Ingest one extraction result. Returns (nodes_created, relationships_created)."""
        return self._run(
            "process document",
            self._process_document,
            result,
            kind=ErrorKind.DOCUMENT_PROCESSING_FAILED,
        )

    def _pool(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.settings.ingestion_workers, thread_name_prefix="kg-ingest"
                )
            return self._executor

    def process_document_async(self, result: Union[ProcessingResult, Dict[str, Any]]) -> "Future[GraphResult[Tuple[int, int]]]":
        """Run ingestion on the worker pool. The returned future cannot cancel running work."""
        return self._pool().submit(self.process_document, result)

    async def aprocess_document(self, result: Union[ProcessingResult, Dict[str, Any]]) -> GraphResult[Tuple[int, int]]:
        return await asyncio.wrap_future(self.process_document_async(result))

    def is_document_processed(self, document_id: str) -> bool:
        return self.ingestion.is_processed(document_id)

    # ------------------------------------------------------------------ #
    # Algorithms
    # ------------------------------------------------------------------ #

    def merge_subgraphs(
        self,
        subgraph1: KnowledgeSubgraph,
        subgraph2: KnowledgeSubgraph,
        strategy: Union[MergeStrategy, str] = MergeStrategy.PREFER_HIGHER_CONFIDENCE,
    ) -> GraphResult[KnowledgeSubgraph]:
        return self._run("merge subgraphs", merge_subgraphs, subgraph1, subgraph2, strategy)

    def _similarity(self, node_id1: str, node_id2: str) -> float:
        node1 = self._get_node(node_id1)
        node2 = self._get_node(node_id2)
        if node_id1 == node_id2:
            return 1.0

        def text(n: KnowledgeNode) -> str:
            return f"{n.label} {n.summary}" if n.summary else n.label

        try:
            score = float(self.nlp.calculate_similarity(text(node1), text(node2)))
        except Exception as e:
            raise NLPQueryError(f"Similarity failed: {e}") from e
        return min(1.0, max(0.0, score))

    def calculate_node_similarity(self, node_id1: str, node_id2: str) -> GraphResult[float]:
        return self._run("calculate similarity", self._similarity, node_id1, node_id2)

    def _shortest_path(self, source_id: str, target_id: str, max_depth: int) -> KnowledgeSubgraph:
        if int(max_depth) < 1:
            raise InvalidInputError("max_depth must be >= 1")
        source = self._get_node(source_id)
        self._get_node(target_id)
        if source_id == target_id:
            subgraph = KnowledgeSubgraph(nodes=[source])
        else:
            subgraph = self._execute(compile_shortest_path(source_id, target_id, int(max_depth)))
        subgraph.metadata.update(
            {
                "source": source_id,
                "target": target_id,
                "maxDepth": str(int(max_depth)),
                "length": str(len(subgraph.relationships)),
            }
        )
        return subgraph

    def find_shortest_path(self, source_id: str, target_id: str, max_depth: int = 5) -> GraphResult[KnowledgeSubgraph]:
        """Undirected shortest path of at most ``max_depth`` hops; empty when none exists."""
        return self._run("find shortest path", self._shortest_path, source_id, target_id, max_depth)

    @staticmethod
    def normalize_algorithm(algorithm: Optional[str]) -> str:
        name = (algorithm or "").strip().lower().replace("-", "_")
        name = _ALGORITHM_ALIASES.get(name.replace("_", ""), name)
        if name not in COMMUNITY_ALGORITHMS:
            logger.warning(f"Unknown community algorithm '{algorithm}', using louvain")
            return "louvain"
        return name

    def _communities(self, algorithm: str, parameters: Optional[Dict[str, Any]]) -> Dict[str, List[str]]:
        name = self.normalize_algorithm(algorithm)
        compiled = compile_communities(name, parameters, graph_name=self.settings.gds_graph_name)
        communities: Dict[str, List[str]] = {}
        for row in self.store.execute_query(compiled):
            community, node_id = row.get("community"), row.get("nodeId")
            if community is None or node_id is None:
                continue
            members = communities.setdefault(community, [])
            if node_id not in members:
                members.append(node_id)
        return communities

    def detect_communities(
        self, algorithm: str = "louvain", parameters: Optional[Dict[str, Any]] = None
    ) -> GraphResult[Dict[str, List[str]]]:
        """Partition nodes into communities. Returns community id -> member node ids."""
        return self._run("detect communities", self._communities, algorithm, parameters)

    # ------------------------------------------------------------------ #
    # Import / export
    # ------------------------------------------------------------------ #

    def _full_graph(self) -> KnowledgeSubgraph:
        nodes = self._execute(compile_match(GraphQuery()))
        edges = self._execute(compile_all_relationships())
        return merge_subgraphs(nodes, edges, MergeStrategy.PREFER_SUBGRAPH1)

    def _export(self, format_name: Optional[str], path: Union[str, Path], query: Optional[GraphQuery]) -> Tuple[int, int]:
        fmt = detect_format(format_name, path)
        subgraph = self._full_graph() if query is None else self._execute(compile_match(query))
        try:
            _WRITERS[fmt](subgraph, path)
        except OSError as e:
            raise FileOperationError(f"Could not write {path}: {e}") from e
        logger.info(f"Exported {len(subgraph.nodes)} nodes, {len(subgraph.relationships)} relationships to {path}")
        return len(subgraph.nodes), len(subgraph.relationships)

    def export_graph(
        self,
        format_name: Optional[str],
        path: Union[str, Path],
        query: Optional[GraphQuery] = None,
    ) -> GraphResult[Tuple[int, int]]:
        """Write the graph (or a query's result) to ``path``. Returns (nodes, relationships) written."""
        return self._run("export graph", self._export, format_name, path, query, kind=ErrorKind.FILE_OPERATION_FAILED)

    def _import_cypher(self, path: Union[str, Path]) -> Tuple[int, int]:
        nodes = rels = 0
        for statement in cypher_io.iter_statements(path):
            try:
                self.store.execute_query(statement)
            except GraphStoreError as e:
                logger.warning(f"Skipping statement: {e}")
                continue
            kind = cypher_io.classify(statement)
            if kind == "node":
                nodes += 1
            elif kind == "relationship":
                rels += 1
        return nodes, rels

    def _upsert_node(self, node: KnowledgeNode, strategy: MergeStrategy) -> None:
        try:
            existing = self._get_node(node.id) if node.id else None
        except NodeNotFoundError:
            existing = None
        if existing is None:
            self._create_node(node)
        else:
            self._update_node(resolve(existing, node, strategy))

    def _upsert_relationship(self, rel: KnowledgeRelationship, strategy: MergeStrategy) -> None:
        try:
            existing = self._get_relationship(rel.id) if rel.id else None
        except RelationshipNotFoundError:
            existing = None
        if existing is None:
            self._create_relationship(rel)
        else:
            self._update_relationship(resolve(existing, rel, strategy))

    def _import(self, format_name: Optional[str], path: Union[str, Path], merge_strategy: Union[MergeStrategy, str]) -> Tuple[int, int]:
        fmt = detect_format(format_name, path)
        strategy = MergeStrategy.parse(merge_strategy)
        if not Path(path).is_file():
            raise FileOperationError(f"File not found: {path}")

        if fmt == "cypher":
            counts = self._import_cypher(path)
        else:
            try:
                subgraph = _READERS[fmt](path)
            except (OSError, ValueError, KeyError, ET.ParseError) as e:
                raise FileOperationError(f"Could not read {path}: {e}") from e

            nodes = rels = 0
            for node in subgraph.nodes:
                try:
                    self._upsert_node(node, strategy)
                    nodes += 1
                except (GraphEngineError, GraphStoreError) as e:
                    logger.warning(f"Skipping node {node.id}: {e}")
            for rel in subgraph.relationships:
                try:
                    self._upsert_relationship(rel, strategy)
                    rels += 1
                except (GraphEngineError, GraphStoreError) as e:
                    logger.warning(f"Skipping relationship {rel.id}: {e}")
            counts = (nodes, rels)

        logger.info(f"Imported {counts[0]} nodes, {counts[1]} relationships from {path}")
        return counts

    def import_graph(
        self,
        format_name: Optional[str],
        path: Union[str, Path],
        merge_strategy: Union[MergeStrategy, str] = MergeStrategy.PREFER_HIGHER_CONFIDENCE,
    ) -> GraphResult[Tuple[int, int]]:
        """Load entities from ``path``. Returns (nodes, relationships) imported.

        Entities that already exist are resolved with ``merge_strategy``
        (existing side first). Statement scripts execute as written.
        """
        return self._run("import graph", self._import, format_name, path, merge_strategy, kind=ErrorKind.FILE_OPERATION_FAILED)

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def cache_stats(self) -> Dict[str, Dict[str, int]]:
        return {"nodes": self.node_cache.stats(), "relationships": self.relationship_cache.stats()}

    def clear_caches(self) -> None:
        self.node_cache.clear()
        self.relationship_cache.clear()
