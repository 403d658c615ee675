"""
Graph store abstraction for the training knowledge graph.

The engine talks to persistence only through this interface. Stores keep a
flat property map per entity; the engine decides how typed fields are encoded
into it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

if TYPE_CHECKING:
    from ..query import CompiledQuery


class GraphStoreError(Exception):
    """Raised when the backing store rejects or fails an operation."""


class DuplicateEntityError(GraphStoreError):
    """An entity with the same id already exists."""


class EntityNotFoundError(GraphStoreError):
    """The entity addressed by an update or delete does not exist."""


@dataclass
class StoredNode:
    id: str
    label: str
    type: str
    properties: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StoredRelationship:
    id: str
    source_id: str
    target_id: str
    type: str
    label: str
    properties: Dict[str, Any] = field(default_factory=dict)


QueryInput = Union[str, "CompiledQuery"]


class GraphStore(ABC):
    """Abstract base class for graph store backends."""

    # ---- nodes ----

    @abstractmethod
    def create_node(self, node_id: str, label: str, node_type: str, properties: Dict[str, Any]) -> None:
        """Insert a node; raises DuplicateEntityError if the id is taken."""
        ...

    @abstractmethod
    def get_node(self, node_id: str) -> Optional[StoredNode]:
        ...

    @abstractmethod
    def update_node(self, node_id: str, label: str, node_type: str, properties: Dict[str, Any]) -> None:
        """Replace label, type and properties of an existing node."""
        ...

    @abstractmethod
    def delete_node(self, node_id: str) -> None:
        """Delete a node together with its incident relationships."""
        ...

    # ---- relationships ----

    @abstractmethod
    def create_relationship(
        self,
        relationship_id: str,
        source_id: str,
        target_id: str,
        rel_type: str,
        label: str,
        properties: Dict[str, Any],
    ) -> None:
        ...

    @abstractmethod
    def get_relationship(self, relationship_id: str) -> Optional[StoredRelationship]:
        ...

    @abstractmethod
    def update_relationship(
        self,
        relationship_id: str,
        rel_type: str,
        label: str,
        properties: Dict[str, Any],
    ) -> None:
        ...

    @abstractmethod
    def delete_relationship(self, relationship_id: str) -> None:
        ...

    # ---- queries ----

    @abstractmethod
    def execute_query(self, query: QueryInput, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, str]]:
        """Run a query and return rows of string values.

        ``query`` is either raw statement text or a CompiledQuery whose
        parameters travel separately from the text.
        """
        ...

    def node_exists(self, node_id: str) -> bool:
        return self.get_node(node_id) is not None

    def relationship_exists(self, relationship_id: str) -> bool:
        return self.get_relationship(relationship_id) is not None

    def close(self) -> None:
        pass

    def __enter__(self) -> "GraphStore":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
