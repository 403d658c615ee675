"""Unique, human-legible id generation for nodes and relationships."""

from __future__ import annotations

import logging
import random
import re
import time
from typing import Callable, Optional

from tenacity import RetryError, Retrying, retry_if_exception_type, stop_after_attempt

from .db.base import GraphStore
from .errors import IdGenerationError
from .models import KnowledgeNode, KnowledgeRelationship

logger = logging.getLogger(__name__)

MAX_LABEL_CHARS = 48


class _IdCollision(Exception):
    pass


def _strip(s: str) -> str:
    return re.sub(r"[^A-Za-z0-9]", "", s or "")


def _epoch_millis() -> int:
    return int(time.time() * 1000)


class IdGenerator:
    """Builds ``{prefix}-{epoch_ms}-{rand}`` ids and checks them against the store.

    Collisions are retried up to ``max_attempts`` times, then IdGenerationError.
    """

    def __init__(
        self,
        store: GraphStore,
        max_attempts: int = 10,
        *,
        clock: Callable[[], int] = _epoch_millis,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.max_attempts = max(1, int(max_attempts))
        self._clock = clock
        self._rng = rng or random.Random()

    @staticmethod
    def node_prefix(node: KnowledgeNode) -> str:
        label = _strip(node.label)[:MAX_LABEL_CHARS]
        return f"{_strip(node.type) or 'Node'}-{label}"

    @staticmethod
    def relationship_prefix(rel: KnowledgeRelationship) -> str:
        return f"{rel.type.abbreviation}-{rel.source_node_id}-{rel.target_node_id}"

    def _candidate(self, prefix: str) -> str:
        return f"{prefix}-{self._clock()}-{self._rng.randint(1000, 9999)}"

    def _generate(self, prefix: str, exists: Callable[[str], bool]) -> str:
        def attempt() -> str:
            candidate = self._candidate(prefix)
            if exists(candidate):
                logger.debug(f"Id collision on {candidate}")
                raise _IdCollision(candidate)
            return candidate

        try:
            return Retrying(
                stop=stop_after_attempt(self.max_attempts),
                retry=retry_if_exception_type(_IdCollision),
                reraise=True,
            )(attempt)
        except (_IdCollision, RetryError) as e:
            raise IdGenerationError(
                f"Could not generate a unique id for '{prefix}' after {self.max_attempts} attempts"
            ) from e

    def generate_node_id(self, node: KnowledgeNode) -> str:
        return self._generate(self.node_prefix(node), self.store.node_exists)

    def generate_relationship_id(self, rel: KnowledgeRelationship) -> str:
        return self._generate(self.relationship_prefix(rel), self.store.relationship_exists)
