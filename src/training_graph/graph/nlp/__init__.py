from .base import NLPAdapter, NLPError, StructuredQuery
from .keyword import KeywordNLPAdapter

__all__ = ["KeywordNLPAdapter", "NLPAdapter", "NLPError", "StructuredQuery"]
