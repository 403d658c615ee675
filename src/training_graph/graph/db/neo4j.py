from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..query import CompiledQuery
from .base import (
    DuplicateEntityError,
    EntityNotFoundError,
    GraphStore,
    GraphStoreError,
    QueryInput,
    StoredNode,
    StoredRelationship,
)
from .statements import DEFAULT_RELATIONSHIP_LABEL, format_identifier

logger = logging.getLogger(__name__)

_NODE_FIELDS = ("id", "label", "type")


@dataclass(slots=True)
class Neo4jConfig:
    uri: str
    user: str
    password: str
    database: str = "neo4j"


def _rel_label(label: str) -> str:
    return format_identifier(label or DEFAULT_RELATIONSHIP_LABEL)


def _row_to_strings(record: Dict[str, Any]) -> Dict[str, str]:
    return {k: str(v) for k, v in record.items() if v is not None}


class Neo4jGraphStore(GraphStore):
    """Neo4j-backed graph store.

    Nodes carry the ``:Node`` label with ``id``, ``label``, ``type`` and
    flattened properties. Relationship labels become Cypher relationship
    types; the category lives in the ``type`` property.

    Dependency: neo4j>=5.
    """

    def __init__(self, cfg: Neo4jConfig):
        self.cfg = cfg
        from neo4j import GraphDatabase

        # Driver is thread-safe; sessions are lightweight.
        self._driver = GraphDatabase.driver(cfg.uri, auth=(cfg.user, cfg.password))

    def close(self) -> None:
        self._driver.close()

    def ensure_schema(self) -> None:
        stmts = [
            "CREATE CONSTRAINT node_id IF NOT EXISTS FOR (n:Node) REQUIRE n.id IS UNIQUE",
            "CREATE INDEX node_type IF NOT EXISTS FOR (n:Node) ON (n.type)",
            "CREATE INDEX node_label IF NOT EXISTS FOR (n:Node) ON (n.label)",
        ]
        with self._driver.session(database=self.cfg.database) as s:
            for q in stmts:
                s.run(q)

    def _run(self, cypher: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        from neo4j.exceptions import ConstraintError, Neo4jError

        try:
            with self._driver.session(database=self.cfg.database) as s:
                res = s.run(cypher, params or {})
                return [dict(r) for r in res]
        except ConstraintError as e:
            raise DuplicateEntityError(str(e)) from e
        except Neo4jError as e:
            raise GraphStoreError(f"Neo4j query failed: {e}") from e

    # ---- nodes ----

    def create_node(self, node_id: str, label: str, node_type: str, properties: Dict[str, Any]) -> None:
        if self.node_exists(node_id):
            raise DuplicateEntityError(f"Node already exists: {node_id}")
        q = """
        CREATE (n:Node)
        SET n += $props, n.id = $id, n.label = $label, n.type = $type
        """
        self._run(q, {"id": node_id, "label": label, "type": node_type, "props": properties})

    def get_node(self, node_id: str) -> Optional[StoredNode]:
        rows = self._run("MATCH (n:Node {id: $id}) RETURN properties(n) AS props LIMIT 1", {"id": node_id})
        if not rows:
            return None
        props = dict(rows[0]["props"])
        return StoredNode(
            id=str(props.pop("id")),
            label=str(props.pop("label", "")),
            type=str(props.pop("type", "")),
            properties=props,
        )

    def update_node(self, node_id: str, label: str, node_type: str, properties: Dict[str, Any]) -> None:
        q = """
        MATCH (n:Node {id: $id})
        SET n = $props, n.id = $id, n.label = $label, n.type = $type
        RETURN count(n) AS matched
        """
        rows = self._run(q, {"id": node_id, "label": label, "type": node_type, "props": properties})
        if not rows or not rows[0]["matched"]:
            raise EntityNotFoundError(f"Node not found: {node_id}")

    def delete_node(self, node_id: str) -> None:
        q = """
        MATCH (n:Node {id: $id})
        WITH n, n.id AS id
        DETACH DELETE n
        RETURN count(id) AS deleted
        """
        rows = self._run(q, {"id": node_id})
        if not rows or not rows[0]["deleted"]:
            raise EntityNotFoundError(f"Node not found: {node_id}")

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
        if self.relationship_exists(relationship_id):
            raise DuplicateEntityError(f"Relationship already exists: {relationship_id}")
        # Relationship types cannot be parameterized; the label is quoted as an identifier.
        q = f"""
        MATCH (source:Node {{id: $source}}), (target:Node {{id: $target}})
        CREATE (source)-[r:{_rel_label(label)}]->(target)
        SET r += $props, r.id = $id, r.label = $label, r.type = $type
        RETURN count(r) AS created
        """
        rows = self._run(
            q,
            {
                "id": relationship_id,
                "source": source_id,
                "target": target_id,
                "label": label,
                "type": rel_type,
                "props": properties,
            },
        )
        if not rows or not rows[0]["created"]:
            raise EntityNotFoundError(f"Endpoint not found for relationship {relationship_id}")

    def get_relationship(self, relationship_id: str) -> Optional[StoredRelationship]:
        q = """
        MATCH (a:Node)-[r {id: $id}]->(b:Node)
        RETURN a.id AS source, b.id AS target, properties(r) AS props
        LIMIT 1
        """
        rows = self._run(q, {"id": relationship_id})
        if not rows:
            return None
        row = rows[0]
        props = dict(row["props"])
        return StoredRelationship(
            id=str(props.pop("id")),
            source_id=str(row["source"]),
            target_id=str(row["target"]),
            type=str(props.pop("type", "")),
            label=str(props.pop("label", "")),
            properties=props,
        )

    def update_relationship(
        self,
        relationship_id: str,
        rel_type: str,
        label: str,
        properties: Dict[str, Any],
    ) -> None:
        current = self.get_relationship(relationship_id)
        if current is None:
            raise EntityNotFoundError(f"Relationship not found: {relationship_id}")
        if _rel_label(current.label) != _rel_label(label):
            # Cypher relationship types are immutable; recreate under the new label.
            self.delete_relationship(relationship_id)
            self.create_relationship(relationship_id, current.source_id, current.target_id, rel_type, label, properties)
            return
        q = """
        MATCH ()-[r {id: $id}]->()
        SET r = $props, r.id = $id, r.label = $label, r.type = $type
        """
        self._run(q, {"id": relationship_id, "label": label, "type": rel_type, "props": properties})

    def delete_relationship(self, relationship_id: str) -> None:
        q = """
        MATCH ()-[r {id: $id}]->()
        WITH r, r.id AS id
        DELETE r
        RETURN count(id) AS deleted
        """
        rows = self._run(q, {"id": relationship_id})
        if not rows or not rows[0]["deleted"]:
            raise EntityNotFoundError(f"Relationship not found: {relationship_id}")

    # ---- queries ----

    def _project(self, graph_name: str, orientation: str) -> None:
        """Replace the GDS projection so algorithms see the current graph."""
        self._run("CALL gds.graph.drop($name, false) YIELD graphName RETURN graphName", {"name": graph_name})
        self._run(
            "CALL gds.graph.project($name, 'Node', {ALL: {type: '*', orientation: $orientation}}) "
            "YIELD graphName RETURN graphName",
            {"name": graph_name, "orientation": orientation},
        )
        logger.debug(f"Projected {graph_name!r} with {orientation} relationships")

    def execute_query(self, query: QueryInput, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, str]]:
        if isinstance(query, CompiledQuery):
            merged = dict(query.params)
            merged.update(params or {})
            text = query.text
            if query.operation == "communities":
                self._project(merged["graph_name"], query.source["orientation"])
        else:
            merged = dict(params or {})
            text = str(query)
        logger.debug(f"Cypher: {text!r} params={sorted(merged)}")
        return [_row_to_strings(r) for r in self._run(text, merged)]
