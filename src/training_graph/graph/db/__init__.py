from .base import (
    DuplicateEntityError,
    EntityNotFoundError,
    GraphStore,
    GraphStoreError,
    StoredNode,
    StoredRelationship,
)

__all__ = [
    "DuplicateEntityError",
    "EntityNotFoundError",
    "GraphStore",
    "GraphStoreError",
    "StoredNode",
    "StoredRelationship",
]
