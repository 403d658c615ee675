"""GraphML reader and writer built on ElementTree."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Dict, List, Tuple, Union

from ..codec import parse_float, parse_tags
from ..models import KnowledgeNode, KnowledgeRelationship, KnowledgeSubgraph, RelationshipType

NS = "http://graphml.graphdrawing.org/xmlns"

# (attribute name, attr.type)
_NODE_KEYS: List[Tuple[str, str]] = [
    ("label", "string"),
    ("type", "string"),
    ("confidence", "double"),
    ("sourceDocumentId", "string"),
    ("sourceLocation", "string"),
    ("summary", "string"),
    ("tag", "string"),
]
_EDGE_KEYS: List[Tuple[str, str]] = [
    ("label", "string"),
    ("type", "string"),
    ("strength", "double"),
    ("confidence", "double"),
    ("sourceDocumentId", "string"),
    ("bidirectional", "string"),
    ("temporal", "string"),
]

_NODE_PROP = "node.property."
_EDGE_PROP = "edge.property."


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _node_key(name: str) -> str:
    return f"n.{name}"


def _edge_key(name: str) -> str:
    return f"e.{name}"


def _add_data(parent: ET.Element, key: str, value: object) -> None:
    if value is None or value == "":
        return
    el = ET.SubElement(parent, "data", key=key)
    el.text = str(value)


def to_element(subgraph: KnowledgeSubgraph) -> ET.Element:
    root = ET.Element("graphml", xmlns=NS)

    for name, attr_type in _NODE_KEYS:
        ET.SubElement(root, "key", {"id": _node_key(name), "for": "node", "attr.name": name, "attr.type": attr_type})
    for name, attr_type in _EDGE_KEYS:
        ET.SubElement(root, "key", {"id": _edge_key(name), "for": "edge", "attr.name": name, "attr.type": attr_type})

    node_props = sorted({k for n in subgraph.nodes for k in n.properties})
    edge_props = sorted({k for r in subgraph.relationships for k in r.properties})
    for name in node_props:
        ET.SubElement(root, "key", {"id": _NODE_PROP + name, "for": "node", "attr.name": name, "attr.type": "string"})
    for name in edge_props:
        ET.SubElement(root, "key", {"id": _EDGE_PROP + name, "for": "edge", "attr.name": name, "attr.type": "string"})

    graph = ET.SubElement(root, "graph", id="G", edgedefault="directed")

    for node in subgraph.nodes:
        el = ET.SubElement(graph, "node", id=node.id)
        _add_data(el, _node_key("label"), node.label)
        _add_data(el, _node_key("type"), node.type)
        _add_data(el, _node_key("confidence"), repr(float(node.confidence)))
        _add_data(el, _node_key("sourceDocumentId"), node.source_document_id)
        _add_data(el, _node_key("sourceLocation"), node.source_location)
        _add_data(el, _node_key("summary"), node.summary)
        for tag in node.tags:
            _add_data(el, _node_key("tag"), tag)
        for k, v in node.properties.items():
            el_data = ET.SubElement(el, "data", key=_NODE_PROP + k)
            el_data.text = v

    for rel in subgraph.relationships:
        el = ET.SubElement(graph, "edge", id=rel.id, source=rel.source_node_id, target=rel.target_node_id)
        _add_data(el, _edge_key("label"), rel.label)
        _add_data(el, _edge_key("type"), rel.type.value)
        _add_data(el, _edge_key("strength"), repr(float(rel.strength)))
        _add_data(el, _edge_key("confidence"), repr(float(rel.confidence)))
        _add_data(el, _edge_key("sourceDocumentId"), rel.source_document_id)
        _add_data(el, _edge_key("bidirectional"), rel.bidirectional)
        _add_data(el, _edge_key("temporal"), rel.temporal)
        for k, v in rel.properties.items():
            el_data = ET.SubElement(el, "data", key=_EDGE_PROP + k)
            el_data.text = v

    return root


def dumps(subgraph: KnowledgeSubgraph) -> str:
    root = to_element(subgraph)
    ET.indent(root)
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + ET.tostring(root, encoding="unicode") + "\n"


def _read_keys(root: ET.Element) -> Dict[str, Tuple[str, str]]:
    """key id -> (domain, attribute name)."""
    keys: Dict[str, Tuple[str, str]] = {}
    for el in root:
        if _local(el.tag) == "key":
            keys[el.get("id", "")] = (el.get("for", "all"), el.get("attr.name") or el.get("id", ""))
    return keys


def _data(el: ET.Element, keys: Dict[str, Tuple[str, str]]) -> Tuple[Dict[str, str], Dict[str, str]]:
    """Split an element's data children into (known attributes, user properties)."""
    attrs: Dict[str, str] = {}
    props: Dict[str, str] = {}
    for child in el:
        if _local(child.tag) != "data":
            continue
        key = child.get("key", "")
        _domain, name = keys.get(key, ("all", key))
        text = child.text or ""
        if key.startswith(_NODE_PROP) or key.startswith(_EDGE_PROP):
            props[name] = text
        elif key in keys and not key.startswith(("n.", "e.")):
            # keys declared by other tools
            props[name] = text
        else:
            attrs[name] = text
    return attrs, props


def _tags(el: ET.Element, attrs: Dict[str, str]) -> List[str]:
    """One data element per tag; older files carry a single comma-joined ``tags``."""
    tags = [
        child.text
        for child in el
        if _local(child.tag) == "data" and child.get("key") == _node_key("tag") and child.text
    ]
    return tags or parse_tags(attrs.get("tags"))


def loads(text: str) -> KnowledgeSubgraph:
    root = ET.fromstring(text)
    if _local(root.tag) != "graphml":
        raise ValueError("Not a GraphML document")
    keys = _read_keys(root)
    graph = next((el for el in root if _local(el.tag) == "graph"), None)
    if graph is None:
        return KnowledgeSubgraph()

    nodes: List[KnowledgeNode] = []
    rels: List[KnowledgeRelationship] = []
    for el in graph:
        tag = _local(el.tag)
        if tag == "node":
            attrs, props = _data(el, keys)
            nodes.append(
                KnowledgeNode(
                    id=el.get("id", ""),
                    label=attrs.get("label", ""),
                    type=attrs.get("type", ""),
                    properties=props,
                    confidence=parse_float(attrs.get("confidence")),
                    source_document_id=attrs.get("sourceDocumentId"),
                    source_location=attrs.get("sourceLocation"),
                    summary=attrs.get("summary"),
                    tags=_tags(el, attrs),
                )
            )
        elif tag == "edge":
            attrs, props = _data(el, keys)
            rels.append(
                KnowledgeRelationship(
                    id=el.get("id", ""),
                    source_node_id=el.get("source", ""),
                    target_node_id=el.get("target", ""),
                    type=RelationshipType.parse(attrs.get("type")),
                    label=attrs.get("label", ""),
                    strength=parse_float(attrs.get("strength")),
                    confidence=parse_float(attrs.get("confidence")),
                    properties=props,
                    source_document_id=attrs.get("sourceDocumentId"),
                    bidirectional=attrs.get("bidirectional"),
                    temporal=attrs.get("temporal"),
                )
            )
    return KnowledgeSubgraph(nodes=nodes, relationships=rels)


def write(subgraph: KnowledgeSubgraph, path: Union[str, Path]) -> None:
    Path(path).write_text(dumps(subgraph), encoding="utf-8")


def read(path: Union[str, Path]) -> KnowledgeSubgraph:
    return loads(Path(path).read_text(encoding="utf-8"))
