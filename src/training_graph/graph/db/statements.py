"""
One-line Cypher statements for node and relationship creation.

The exporter writes these and the in-memory store executes them, so the
statement script round-trips without a Neo4j server. Only the two creation
shapes below are understood:

    CREATE (n:Node:Type {id: '...', ...});
    MATCH (source:Node {id: '...'}), (target:Node {id: '...'}) CREATE (source)-[r:LABEL {...}]->(target);
"""

from __future__ import annotations

import math
import re
from typing import Any, Dict, List, Tuple, Union

from .base import GraphStoreError, StoredNode, StoredRelationship

_IDENT = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_NUMBER = re.compile(r"-?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")
_ESCAPES = {"\\": "\\", "'": "'", '"': '"', "n": "\n", "r": "\r", "t": "\t"}

DEFAULT_RELATIONSHIP_LABEL = "RELATED_TO"


class StatementSyntaxError(GraphStoreError):
    pass


# ---- formatting ----

def format_identifier(name: str) -> str:
    if _IDENT.fullmatch(name or ""):
        return name
    return "`" + str(name).replace("`", "``") + "`"


def format_literal(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise ValueError(f"Cannot encode non-finite number {value!r}")
        return repr(value)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(format_literal(v) for v in value) + "]"
    if isinstance(value, dict):
        return format_map(value)
    s = str(value)
    s = (
        s.replace("\\", "\\\\")
        .replace("'", "\\'")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )
    return f"'{s}'"


def format_map(values: Dict[str, Any]) -> str:
    parts = [f"{format_identifier(k)}: {format_literal(v)}" for k, v in values.items() if v is not None]
    return "{" + ", ".join(parts) + "}"


def format_node_statement(node: StoredNode) -> str:
    body: Dict[str, Any] = {"id": node.id, "label": node.label, "type": node.type}
    body.update({k: v for k, v in node.properties.items() if k not in body})
    type_label = f":{format_identifier(node.type)}" if node.type else ""
    return f"CREATE (n:Node{type_label} {format_map(body)});"


def format_relationship_statement(rel: StoredRelationship) -> str:
    body: Dict[str, Any] = {"id": rel.id, "label": rel.label, "type": rel.type}
    body.update({k: v for k, v in rel.properties.items() if k not in body})
    rel_label = format_identifier(rel.label or DEFAULT_RELATIONSHIP_LABEL)
    return (
        f"MATCH (source:Node {{id: {format_literal(rel.source_id)}}}), "
        f"(target:Node {{id: {format_literal(rel.target_id)}}}) "
        f"CREATE (source)-[r:{rel_label} {format_map(body)}]->(target);"
    )


# ---- parsing ----

class _Cursor:
    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def error(self, msg: str) -> StatementSyntaxError:
        return StatementSyntaxError(f"{msg} at offset {self.pos}: {self.text[:80]!r}")

    def ws(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1

    def peek(self, literal: str) -> bool:
        self.ws()
        return self.text.startswith(literal, self.pos)

    def expect(self, literal: str) -> None:
        if not self.peek(literal):
            raise self.error(f"Expected {literal!r}")
        self.pos += len(literal)

    def keyword(self, word: str) -> None:
        self.ws()
        end = self.pos + len(word)
        if self.text[self.pos:end].upper() != word or (end < len(self.text) and self.text[end].isalnum()):
            raise self.error(f"Expected {word}")
        self.pos = end

    def at_keyword(self, word: str) -> bool:
        self.ws()
        return self.text[self.pos:self.pos + len(word)].upper() == word

    def identifier(self) -> str:
        self.ws()
        if self.text.startswith("`", self.pos):
            out = []
            i = self.pos + 1
            while i < len(self.text):
                ch = self.text[i]
                if ch == "`":
                    if self.text.startswith("``", i):
                        out.append("`")
                        i += 2
                        continue
                    self.pos = i + 1
                    return "".join(out)
                out.append(ch)
                i += 1
            raise self.error("Unterminated identifier")
        m = _IDENT.match(self.text, self.pos)
        if not m:
            raise self.error("Expected identifier")
        self.pos = m.end()
        return m.group(0)

    def string(self) -> str:
        quote = self.text[self.pos]
        out = []
        i = self.pos + 1
        while i < len(self.text):
            ch = self.text[i]
            if ch == "\\" and i + 1 < len(self.text):
                nxt = self.text[i + 1]
                out.append(_ESCAPES.get(nxt, nxt))
                i += 2
                continue
            if ch == quote:
                self.pos = i + 1
                return "".join(out)
            out.append(ch)
            i += 1
        raise self.error("Unterminated string")

    def value(self) -> Any:
        self.ws()
        if self.pos >= len(self.text):
            raise self.error("Unexpected end of statement")
        ch = self.text[self.pos]
        if ch in "'\"":
            return self.string()
        if ch == "[":
            return self.list_literal()
        if ch == "{":
            return self.map_literal()
        for word, val in (("TRUE", True), ("FALSE", False), ("NULL", None)):
            if self.at_keyword(word):
                self.pos += len(word)
                return val
        m = _NUMBER.match(self.text, self.pos)
        if m:
            self.pos = m.end()
            token = m.group(0)
            if re.fullmatch(r"-?\d+", token):
                return int(token)
            return float(token)
        raise self.error("Expected value")

    def list_literal(self) -> List[Any]:
        self.expect("[")
        items: List[Any] = []
        if self.peek("]"):
            self.pos += 1
            return items
        while True:
            items.append(self.value())
            if self.peek(","):
                self.pos += 1
                continue
            self.expect("]")
            return items

    def map_literal(self) -> Dict[str, Any]:
        self.expect("{")
        out: Dict[str, Any] = {}
        if self.peek("}"):
            self.pos += 1
            return out
        while True:
            key = self.identifier()
            self.expect(":")
            out[key] = self.value()
            if self.peek(","):
                self.pos += 1
                continue
            self.expect("}")
            return out

    def labels(self) -> List[str]:
        labels: List[str] = []
        while self.peek(":"):
            self.pos += 1
            labels.append(self.identifier())
        return labels

    def end(self) -> None:
        if self.peek(";"):
            self.pos += 1
        self.ws()
        if self.pos != len(self.text):
            raise self.error("Unexpected trailing input")


def _node_pattern(cur: _Cursor) -> Tuple[str, List[str], Dict[str, Any]]:
    cur.expect("(")
    var = cur.identifier()
    labels = cur.labels()
    props = cur.map_literal() if cur.peek("{") else {}
    cur.expect(")")
    return var, labels, props


def _as_str(value: Any) -> str:
    return "" if value is None else str(value)


def parse_statement(text: str) -> Tuple[str, Union[StoredNode, StoredRelationship]]:
    """Parse one creation statement into ("node", StoredNode) or ("relationship", StoredRelationship)."""
    cur = _Cursor(text.strip())
    if cur.at_keyword("CREATE"):
        cur.keyword("CREATE")
        _var, labels, props = _node_pattern(cur)
        cur.end()
        if "id" not in props:
            raise cur.error("Node statement without id")
        node_type = props.pop("type", None)
        if node_type is None:
            node_type = next((l for l in labels if l != "Node"), "")
        node_id = _as_str(props.pop("id"))
        label = _as_str(props.pop("label", ""))
        return "node", StoredNode(id=node_id, label=label, type=_as_str(node_type), properties=props)

    cur.keyword("MATCH")
    src_var, _l, src_props = _node_pattern(cur)
    cur.expect(",")
    tgt_var, _l, tgt_props = _node_pattern(cur)
    cur.keyword("CREATE")
    cur.expect("(")
    if cur.identifier() != src_var:
        raise cur.error("Relationship must start at the first matched node")
    cur.expect(")")
    cur.expect("-[")
    cur.identifier()
    rel_labels = cur.labels()
    props = cur.map_literal() if cur.peek("{") else {}
    cur.expect("]->(")
    if cur.identifier() != tgt_var:
        raise cur.error("Relationship must end at the second matched node")
    cur.expect(")")
    cur.end()

    if "id" not in props or "id" not in src_props or "id" not in tgt_props:
        raise cur.error("Relationship statement without ids")
    rel_id = _as_str(props.pop("id"))
    label = _as_str(props.pop("label", rel_labels[0] if rel_labels else ""))
    rel_type = _as_str(props.pop("type", ""))
    return "relationship", StoredRelationship(
        id=rel_id,
        source_id=_as_str(src_props["id"]),
        target_id=_as_str(tgt_props["id"]),
        type=rel_type,
        label=label,
        properties=props,
    )
