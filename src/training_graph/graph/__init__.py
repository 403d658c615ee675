"""
Training Knowledge Graph

Typed nodes and relationships over a pluggable graph store, with cached CRUD,
structured and natural-language queries, document ingestion, graph
algorithms and JSON/GraphML/Cypher interchange.
"""

from .engine import KnowledgeGraphEngine
from .errors import ErrorKind, GraphEngineError, GraphResult
from .factory import create_engine
from .merge import MergeStrategy
from .models import KnowledgeNode, KnowledgeRelationship, KnowledgeSubgraph, RelationshipType
from .query import GraphQuery, NaturalLanguageQuery, NodeFilter, QueryBuilder, RelationshipFilter

__all__ = [
    "ErrorKind",
    "GraphEngineError",
    "GraphQuery",
    "GraphResult",
    "KnowledgeGraphEngine",
    "KnowledgeNode",
    "KnowledgeRelationship",
    "KnowledgeSubgraph",
    "MergeStrategy",
    "NaturalLanguageQuery",
    "NodeFilter",
    "QueryBuilder",
    "RelationshipFilter",
    "RelationshipType",
    "create_engine",
]
