"""
Pytest configuration for knowledge graph tests.

Provides an in-memory engine with a mocked NLP adapter and a sample
document extraction.
"""

from unittest.mock import MagicMock

import pytest

from training_graph.graph.db.memory import InMemoryGraphStore
from training_graph.graph.engine import KnowledgeGraphEngine
from training_graph.graph.ingestion import (
    Competency,
    LearningObjective,
    Procedure,
    ProcessingResult,
)
from training_graph.graph.models import KnowledgeNode
from training_graph.graph.nlp.base import StructuredQuery
from training_graph.settings import KnowledgeGraphSettings


@pytest.fixture
def graph_settings():
    return KnowledgeGraphSettings(
        graph_backend="memory",
        max_cache_size=100,
        min_confidence_threshold=0.5,
        id_max_attempts=10,
        ingestion_workers=2,
    )


@pytest.fixture
def store():
    """Fresh in-memory graph store for each test."""
    return InMemoryGraphStore()


@pytest.fixture
def nlp():
    adapter = MagicMock()
    adapter.convert_to_structured_query.return_value = StructuredQuery()
    adapter.extract_entities.return_value = []
    adapter.calculate_similarity.return_value = 0.5
    return adapter


@pytest.fixture
def engine(store, nlp, graph_settings):
    eng = KnowledgeGraphEngine(store, nlp, graph_settings)
    yield eng
    eng.close()


@pytest.fixture
def make_node(engine):
    """Create a node through the engine and return its id."""

    def _make(label, node_type="Concept", **kwargs):
        res = engine.create_node(KnowledgeNode(label=label, type=node_type, **kwargs))
        assert res.success, res.error
        return res.data

    return _make


@pytest.fixture
def processing_result():
    return ProcessingResult(
        document_id="doc-ppl-01",
        learning_objectives=[
            LearningObjective(
                id="LO-1",
                description="Perform preflight inspection",
                category="safety",
                importance=3,
                related_regulations=["14 CFR 61"],
            ),
            LearningObjective(
                id="LO-2",
                description="Execute normal takeoff",
                category="maneuvers",
                importance=2,
                prerequisites=["LO-1"],
            ),
        ],
        competencies=[
            Competency(
                id="C-1",
                name="Aircraft handling",
                description="Controls the aircraft on the ground and in the air",
                assessment_criteria=["Maintains centerline", "Rotates at Vr"],
                related_objectives=["LO-1", "LO-2"],
            )
        ],
        procedures=[
            Procedure(
                id="P-1",
                name="Normal takeoff",
                description="Standard takeoff procedure",
                steps=["Align with centerline", "Full power", "Rotate at Vr"],
                safety_considerations=["Check for traffic"],
                related_competencies=["C-1"],
            )
        ],
        regulatory_mapping={"14 CFR 61": "Part 61 certification requirements"},
        entities={"aircraft": ["Cessna 172"]},
        summary="Private pilot ground and flight lessons",
        tags=["aviation"],
    )
