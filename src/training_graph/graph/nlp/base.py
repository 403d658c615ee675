from __future__ import annotations

from typing import List, Optional, Protocol, Tuple

from pydantic import BaseModel, Field


class NLPError(Exception):
    """Raised by NLP adapters when text cannot be processed."""


class StructuredQuery(BaseModel):
    """Structured reading of a natural-language question."""

    node_type: Optional[str] = None
    labels: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    relationship_types: List[str] = Field(default_factory=list)


class NLPAdapter(Protocol):
    def convert_to_structured_query(
        self, text: str, context: Optional[str] = None, language: str = "en"
    ) -> StructuredQuery: ...

    def extract_entities(self, text: str) -> List[Tuple[str, str]]:
        """Return (label, entity_type) pairs found in ``text``."""
        ...

    def calculate_similarity(self, text_a: str, text_b: str) -> float: ...
