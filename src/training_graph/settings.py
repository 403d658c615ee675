from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class KnowledgeGraphSettings(BaseSettings):
    """Unified configuration for the training knowledge graph.

    Environment variables are prefixed with TRAINING_GRAPH_.
    """

    model_config = SettingsConfigDict(env_prefix="TRAINING_GRAPH_", extra="ignore")

    # --- Core ---
    log_level: str = Field(default="INFO", description="Python logging level")
    graph_backend: Literal["memory", "neo4j"] = Field(default="memory", description="memory|neo4j")

    # --- Neo4j ---
    neo4j_uri: str = Field(default="bolt://localhost:7687")
    neo4j_user: str = Field(default="neo4j")
    neo4j_password: str = Field(default="neo4j")
    neo4j_database: str = Field(default="neo4j")
    gds_graph_name: str = Field(default="knowledge_graph", description="Projected graph used by community detection")

    # --- Engine ---
    enable_node_caching: bool = Field(default=True)
    enable_relationship_caching: bool = Field(default=True)
    max_cache_size: int = Field(default=1000, ge=1)
    min_confidence_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    default_language: str = Field(default="en")
    id_max_attempts: int = Field(default=10, ge=1, description="Bounded retries for unique id generation")
    ingestion_workers: int = Field(default=4, ge=1)


settings = KnowledgeGraphSettings()
