from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .base import NLPError, StructuredQuery

_WORD = re.compile(r"[A-Za-z0-9]+")

_QUESTION_WORDS = {
    "a", "all", "an", "are", "do", "does", "find", "give", "how", "is", "list",
    "me", "show", "the", "what", "when", "where", "which", "who", "why",
}

_NODE_TYPE_HINTS: List[Tuple[str, str]] = [
    (r"\blearning objectives?\b|\bobjectives?\b", "LearningObjective"),
    (r"\bcompetenc(?:y|ies)\b", "Competency"),
    (r"\bprocedures?\b", "Procedure"),
    (r"\bregulations?\b", "Regulation"),
    (r"\bdocuments?\b", "Document"),
]

_RELATIONSHIP_HINTS: List[Tuple[str, str]] = [
    (r"\bprerequisites?\b|\bbefore\b|\bafter\b", "SEQUENTIAL"),
    (r"\bcompl(?:y|ies|iance)\b|\bregulat", "REGULATORY"),
    (r"\bassess|\bdemonstrat|\btrain", "TRAINING"),
    (r"\bcontain|\bpart of\b", "HIERARCHICAL"),
    (r"\bcause|\bleads? to\b", "CAUSAL"),
]


def _tokens(text: str) -> set[str]:
    return {t.lower() for t in _WORD.findall(text or "")}


@dataclass(slots=True)
class KeywordNLPAdapter:
    """Default NLP adapter built on keyword heuristics.

    Entities are capitalized spans and quoted phrases. Node and relationship
    types come from hint words, tags from ``#hashtags``. Similarity is token
    Jaccard over alphanumeric words. English only.
    """

    min_entity_len: int = 2

    def extract_entities(self, text: str) -> List[Tuple[str, str]]:
        if not text:
            return []
        found: dict[str, str] = {}

        for m in re.finditer(r"[\"“]([^\"”]{2,})[\"”]", text):
            found.setdefault(m.group(1).strip(), "Term")

        for m in re.finditer(r"\b(?:[A-Z][A-Za-z0-9]*(?:\s+[A-Z][A-Za-z0-9]*){0,4})\b", text):
            words = m.group(0).split()
            while words and words[0].lower() in _QUESTION_WORDS:
                words.pop(0)
            name = " ".join(words)
            if len(name) < self.min_entity_len:
                continue
            found.setdefault(name, "Entity")

        return list(found.items())

    def convert_to_structured_query(
        self, text: str, context: Optional[str] = None, language: str = "en"
    ) -> StructuredQuery:
        if not text or not text.strip():
            raise NLPError("Empty query text")
        if language and not language.lower().startswith("en"):
            raise NLPError(f"Unsupported language: {language}")

        lowered = text.lower()
        node_type = next((t for pat, t in _NODE_TYPE_HINTS if re.search(pat, lowered)), None)
        rel_types = [t for pat, t in _RELATIONSHIP_HINTS if re.search(pat, lowered)]
        tags = [m.group(1) for m in re.finditer(r"#([A-Za-z0-9_\-]+)", text)]
        labels = [label for label, _kind in self.extract_entities(text)]
        return StructuredQuery(node_type=node_type, labels=labels, tags=tags, relationship_types=rel_types)

    def calculate_similarity(self, text_a: str, text_b: str) -> float:
        a, b = _tokens(text_a), _tokens(text_b)
        if not a or not b:
            return 0.0
        return len(a & b) / len(a | b)
