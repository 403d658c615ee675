"""Encoding of typed entity fields into a store's flat property map, and back."""

from __future__ import annotations

from typing import Any, Dict, List

from .db.base import StoredNode, StoredRelationship
from .models import KnowledgeNode, KnowledgeRelationship, RelationshipType

_AUDIT_FIELDS = (
    ("created_by", "createdBy"),
    ("last_modified_by", "lastModifiedBy"),
    ("created_at", "createdAt"),
    ("last_modified_at", "lastModifiedAt"),
)

_NODE_OPTIONAL_FIELDS = (
    ("source_document_id", "sourceDocumentId"),
    ("source_location", "sourceLocation"),
    ("summary", "summary"),
) + _AUDIT_FIELDS

_REL_OPTIONAL_FIELDS = (
    ("source_document_id", "sourceDocumentId"),
    ("bidirectional", "bidirectional"),
    ("temporal", "temporal"),
) + _AUDIT_FIELDS

# Store-level attributes and typed-field keys; user properties with these
# names are kept under a prefix.
RESERVED_KEYS = frozenset(
    ("id", "label", "type", "confidence", "tags", "strength")
    + tuple(key for _attr, key in _NODE_OPTIONAL_FIELDS + _REL_OPTIONAL_FIELDS)
)
_RESERVED_PREFIX = "property."


def store_key(key: str) -> str:
    return _RESERVED_PREFIX + key if key in RESERVED_KEYS else key


def _user_key(key: str) -> str:
    if key.startswith(_RESERVED_PREFIX) and key[len(_RESERVED_PREFIX):] in RESERVED_KEYS:
        return key[len(_RESERVED_PREFIX):]
    return key


def _encode_user(props: Dict[str, str]) -> Dict[str, Any]:
    return {store_key(k): v for k, v in props.items()}


def parse_float(value: Any, default: float = 1.0) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def parse_tags(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(t) for t in value if str(t)]
    return [t.strip() for t in str(value).split(",") if t.strip()]


def _stringify(props: Dict[str, Any]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for k, v in props.items():
        if v is None:
            continue
        if isinstance(v, bool):
            out[_user_key(k)] = "true" if v else "false"
        elif isinstance(v, (list, tuple)):
            out[_user_key(k)] = ",".join(str(x) for x in v)
        else:
            out[_user_key(k)] = str(v)
    return out


def node_to_store(node: KnowledgeNode) -> Dict[str, Any]:
    props: Dict[str, Any] = _encode_user(node.properties)
    props["confidence"] = float(node.confidence)
    props["tags"] = list(node.tags)
    for attr, key in _NODE_OPTIONAL_FIELDS:
        value = getattr(node, attr)
        if value is not None:
            props[key] = value
    return props


def node_from_store(stored: StoredNode) -> KnowledgeNode:
    props = dict(stored.properties)
    node = KnowledgeNode(
        id=stored.id,
        label=stored.label,
        type=stored.type,
        confidence=parse_float(props.pop("confidence", None)),
        tags=parse_tags(props.pop("tags", None)),
    )
    for attr, key in _NODE_OPTIONAL_FIELDS:
        value = props.pop(key, None)
        if value is not None:
            setattr(node, attr, str(value))
    node.properties = _stringify(props)
    return node


def relationship_to_store(rel: KnowledgeRelationship) -> Dict[str, Any]:
    props: Dict[str, Any] = _encode_user(rel.properties)
    props["strength"] = float(rel.strength)
    props["confidence"] = float(rel.confidence)
    for attr, key in _REL_OPTIONAL_FIELDS:
        value = getattr(rel, attr)
        if value is not None:
            props[key] = value
    return props


def relationship_from_store(stored: StoredRelationship) -> KnowledgeRelationship:
    props = dict(stored.properties)
    rel = KnowledgeRelationship(
        id=stored.id,
        source_node_id=stored.source_id,
        target_node_id=stored.target_id,
        type=RelationshipType.parse(stored.type),
        label=stored.label,
        strength=parse_float(props.pop("strength", None)),
        confidence=parse_float(props.pop("confidence", None)),
    )
    for attr, key in _REL_OPTIONAL_FIELDS:
        value = props.pop(key, None)
        if value is not None:
            setattr(rel, attr, str(value))
    rel.properties = _stringify(props)
    return rel


def node_to_stored(node: KnowledgeNode) -> StoredNode:
    return StoredNode(id=node.id, label=node.label, type=node.type, properties=node_to_store(node))


def relationship_to_stored(rel: KnowledgeRelationship) -> StoredRelationship:
    return StoredRelationship(
        id=rel.id,
        source_id=rel.source_node_id,
        target_id=rel.target_node_id,
        type=rel.type.value,
        label=rel.label,
        properties=relationship_to_store(rel),
    )
