from __future__ import annotations

from pathlib import Path
from typing import Iterator, Union

from ..codec import node_to_stored, relationship_to_stored
from ..db.statements import format_node_statement, format_relationship_statement
from ..models import KnowledgeSubgraph

NODE_STATEMENT_MARKER = "CREATE (n:"
RELATIONSHIP_STATEMENT_MARKER = "CREATE (source)-[r:"


def dumps(subgraph: KnowledgeSubgraph) -> str:
    lines = ["// Nodes"]
    lines.extend(format_node_statement(node_to_stored(n)) for n in subgraph.nodes)
    lines.append("")
    lines.append("// Relationships")
    lines.extend(format_relationship_statement(relationship_to_stored(r)) for r in subgraph.relationships)
    return "\n".join(lines) + "\n"


def write(subgraph: KnowledgeSubgraph, path: Union[str, Path]) -> None:
    Path(path).write_text(dumps(subgraph), encoding="utf-8")


def iter_statements(path: Union[str, Path]) -> Iterator[str]:
    """Yield non-empty, non-comment lines."""
    with open(path, encoding="utf-8") as fh:
        for line in fh:
            line = line.strip()
            if not line or line.startswith("//"):
                continue
            yield line


def classify(statement: str) -> str:
    if RELATIONSHIP_STATEMENT_MARKER in statement:
        return "relationship"
    if NODE_STATEMENT_MARKER in statement:
        return "node"
    return "other"
