"""Error kinds and the result envelope returned by every engine operation."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(Enum):
    NODE_NOT_FOUND = "node_not_found"
    RELATIONSHIP_NOT_FOUND = "relationship_not_found"
    GRAPH_OPERATION_FAILED = "graph_operation_failed"
    DOCUMENT_PROCESSING_FAILED = "document_processing_failed"
    NLP_QUERY_FAILED = "nlp_query_failed"
    FILE_OPERATION_FAILED = "file_operation_failed"
    INVALID_INPUT = "invalid_input"
    ID_GENERATION_FAILED = "id_generation_failed"


class GraphEngineError(Exception):
    """Base error raised inside the engine; converted to a GraphResult at the API boundary."""

    kind = ErrorKind.GRAPH_OPERATION_FAILED

    def __init__(self, message: str, kind: Optional[ErrorKind] = None):
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class NodeNotFoundError(GraphEngineError):
    kind = ErrorKind.NODE_NOT_FOUND


class RelationshipNotFoundError(GraphEngineError):
    kind = ErrorKind.RELATIONSHIP_NOT_FOUND


class InvalidInputError(GraphEngineError):
    kind = ErrorKind.INVALID_INPUT


class IdGenerationError(GraphEngineError):
    kind = ErrorKind.ID_GENERATION_FAILED


class DocumentProcessingError(GraphEngineError):
    kind = ErrorKind.DOCUMENT_PROCESSING_FAILED


class NLPQueryError(GraphEngineError):
    kind = ErrorKind.NLP_QUERY_FAILED


class FileOperationError(GraphEngineError):
    kind = ErrorKind.FILE_OPERATION_FAILED


_ERRORS_BY_KIND = {
    ErrorKind.NODE_NOT_FOUND: NodeNotFoundError,
    ErrorKind.RELATIONSHIP_NOT_FOUND: RelationshipNotFoundError,
    ErrorKind.INVALID_INPUT: InvalidInputError,
    ErrorKind.ID_GENERATION_FAILED: IdGenerationError,
    ErrorKind.DOCUMENT_PROCESSING_FAILED: DocumentProcessingError,
    ErrorKind.NLP_QUERY_FAILED: NLPQueryError,
    ErrorKind.FILE_OPERATION_FAILED: FileOperationError,
}


@dataclass
class GraphResult(Generic[T]):
    """Standard response for engine operations: a value or a typed error."""
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    kind: Optional[ErrorKind] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    query_time_ms: float = 0.0

    @classmethod
    def ok(cls, data: T, **metadata: Any) -> "GraphResult[T]":
        return cls(success=True, data=data, metadata=dict(metadata))

    @classmethod
    def fail(cls, kind: ErrorKind, error: str) -> "GraphResult[T]":
        return cls(success=False, error=error, kind=kind)

    def unwrap(self) -> T:
        """Return the value or raise the typed error this result carries."""
        if self.success:
            return self.data  # type: ignore[return-value]
        kind = self.kind or ErrorKind.GRAPH_OPERATION_FAILED
        raise _ERRORS_BY_KIND.get(kind, GraphEngineError)(self.error or kind.value, kind)
