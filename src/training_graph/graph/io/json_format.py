from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Union

from ..codec import parse_float, parse_tags
from ..models import KnowledgeNode, KnowledgeRelationship, KnowledgeSubgraph, RelationshipType


def node_to_dict(node: KnowledgeNode) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "id": node.id,
        "label": node.label,
        "type": node.type,
        "confidence": node.confidence,
        "properties": dict(node.properties),
    }
    if node.source_document_id:
        out["sourceDocumentId"] = node.source_document_id
    if node.source_location:
        out["sourceLocation"] = node.source_location
    if node.tags:
        out["tags"] = list(node.tags)
    if node.summary:
        out["summary"] = node.summary
    return out


def relationship_to_dict(rel: KnowledgeRelationship) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "id": rel.id,
        "sourceNodeId": rel.source_node_id,
        "targetNodeId": rel.target_node_id,
        "label": rel.label,
        "type": rel.type.value,
        "strength": rel.strength,
        "confidence": rel.confidence,
    }
    if rel.source_document_id:
        out["sourceDocumentId"] = rel.source_document_id
    if rel.bidirectional:
        out["bidirectional"] = rel.bidirectional
    if rel.temporal:
        out["temporal"] = rel.temporal
    if rel.properties:
        out["properties"] = dict(rel.properties)
    return out


def _str_map(value: Any) -> Dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): str(v) for k, v in value.items() if v is not None}


def _opt(data: Dict[str, Any], key: str):
    value = data.get(key)
    return None if value is None else str(value)


def node_from_dict(data: Dict[str, Any]) -> KnowledgeNode:
    return KnowledgeNode(
        id=str(data["id"]),
        label=str(data.get("label", "")),
        type=str(data.get("type", "")),
        properties=_str_map(data.get("properties")),
        confidence=parse_float(data.get("confidence")),
        source_document_id=_opt(data, "sourceDocumentId"),
        source_location=_opt(data, "sourceLocation"),
        summary=_opt(data, "summary"),
        tags=parse_tags(data.get("tags")),
    )


def relationship_from_dict(data: Dict[str, Any]) -> KnowledgeRelationship:
    return KnowledgeRelationship(
        id=str(data["id"]),
        source_node_id=str(data["sourceNodeId"]),
        target_node_id=str(data["targetNodeId"]),
        type=RelationshipType.parse(data.get("type")),
        label=str(data.get("label", "")),
        strength=parse_float(data.get("strength")),
        confidence=parse_float(data.get("confidence")),
        properties=_str_map(data.get("properties")),
        source_document_id=_opt(data, "sourceDocumentId"),
        bidirectional=_opt(data, "bidirectional"),
        temporal=_opt(data, "temporal"),
    )


def dumps(subgraph: KnowledgeSubgraph) -> str:
    doc = {
        "nodes": [node_to_dict(n) for n in subgraph.nodes],
        "relationships": [relationship_to_dict(r) for r in subgraph.relationships],
    }
    return json.dumps(doc, indent=2, ensure_ascii=False)


def loads(text: str) -> KnowledgeSubgraph:
    doc = json.loads(text)
    if not isinstance(doc, dict):
        raise ValueError("Expected a JSON object with 'nodes' and 'relationships'")
    nodes: List[KnowledgeNode] = [node_from_dict(n) for n in doc.get("nodes") or []]
    rels: List[KnowledgeRelationship] = [relationship_from_dict(r) for r in doc.get("relationships") or []]
    return KnowledgeSubgraph(nodes=nodes, relationships=rels)


def write(subgraph: KnowledgeSubgraph, path: Union[str, Path]) -> None:
    Path(path).write_text(dumps(subgraph), encoding="utf-8")


def read(path: Union[str, Path]) -> KnowledgeSubgraph:
    return loads(Path(path).read_text(encoding="utf-8"))
