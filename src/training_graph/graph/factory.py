from __future__ import annotations

import logging
import threading
import weakref
from typing import Optional

from ..settings import KnowledgeGraphSettings
from ..settings import settings as default_settings
from .db.base import GraphStore
from .db.memory import InMemoryGraphStore
from .engine import KnowledgeGraphEngine
from .nlp.base import NLPAdapter
from .nlp.keyword import KeywordNLPAdapter

logger = logging.getLogger(__name__)

ENGINE_TYPES = ("memory", "neo4j")

_engines: "weakref.WeakValueDictionary[str, KnowledgeGraphEngine]" = weakref.WeakValueDictionary()
_engines_lock = threading.Lock()


def build_graph_store(engine_type: str, settings: KnowledgeGraphSettings) -> GraphStore:
    if engine_type == "neo4j":
        from .db.neo4j import Neo4jConfig, Neo4jGraphStore

        store = Neo4jGraphStore(
            Neo4jConfig(
                uri=settings.neo4j_uri,
                user=settings.neo4j_user,
                password=settings.neo4j_password,
                database=settings.neo4j_database,
            )
        )
        store.ensure_schema()
        return store
    return InMemoryGraphStore()


def create_engine(
    engine_type: Optional[str] = None,
    settings: Optional[KnowledgeGraphSettings] = None,
    *,
    nlp: Optional[NLPAdapter] = None,
    shared: bool = True,
) -> KnowledgeGraphEngine:
    """Build (or reuse) an engine for ``memory`` or ``neo4j``.

    Unknown engine types fall back to ``memory``. With ``shared`` a live
    engine of the same type is returned instead of a new one.
    """
    cfg = settings or default_settings
    kind = (engine_type or cfg.graph_backend).strip().lower()
    if kind not in ENGINE_TYPES:
        logger.warning(f"Unknown engine type '{engine_type}', using memory")
        kind = "memory"

    with _engines_lock:
        if shared:
            existing = _engines.get(kind)
            if existing is not None:
                return existing
        engine = KnowledgeGraphEngine(build_graph_store(kind, cfg), nlp or KeywordNLPAdapter(), cfg)
        if shared:
            _engines[kind] = engine
        logger.info(f"Created {kind} knowledge graph engine")
        return engine
