"""Interchange formats: JSON, GraphML and Cypher statement scripts."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

from ..errors import InvalidInputError

FORMATS = ("json", "graphml", "cypher")

_ALIASES = {
    "json": "json",
    "graphml": "graphml",
    "xml": "graphml",
    "cypher": "cypher",
    "cql": "cypher",
}


def detect_format(format_name: Optional[str], path: Union[str, Path, None] = None) -> str:
    """Resolve a format from its name, falling back to the file extension."""
    if format_name:
        resolved = _ALIASES.get(format_name.strip().lower().lstrip("."))
        if resolved is None:
            raise InvalidInputError(f"Unsupported format: {format_name}")
        return resolved
    if path is not None:
        resolved = _ALIASES.get(Path(path).suffix.lower().lstrip("."))
        if resolved is not None:
            return resolved
    raise InvalidInputError(f"Cannot infer format for {path!s}")


__all__ = ["FORMATS", "detect_format"]
