import asyncio
import threading

import pytest

from training_graph.graph.db.base import GraphStoreError
from training_graph.graph.db.memory import InMemoryGraphStore
from training_graph.graph.engine import KnowledgeGraphEngine
from training_graph.graph.errors import ErrorKind
from training_graph.graph.query import QueryBuilder


def _nodes_of(engine, node_type):
    return engine.query(QueryBuilder().of_type(node_type).build()).data.nodes


class TestProcessDocument:
    def test_counts(self, engine, processing_result):
        res = engine.process_document(processing_result)
        assert res.success
        assert res.data == (7, 9)
        assert engine.is_document_processed("doc-ppl-01")

    def test_second_run_is_a_noop(self, engine, store, processing_result):
        engine.process_document(processing_result)
        assert engine.process_document(processing_result).data == (0, 0)
        assert store.graph.number_of_nodes() == 7

    def test_document_node(self, engine, processing_result):
        engine.process_document(processing_result)
        (doc,) = _nodes_of(engine, "Document")
        assert doc.label == "Document: doc-ppl-01"
        assert doc.tags == ["document", "aviation"]
        assert doc.summary == "Private pilot ground and flight lessons"
        assert doc.properties == {"id": "doc-ppl-01"}

    def test_objective_properties(self, engine, processing_result):
        engine.process_document(processing_result)
        objectives = {n.properties["id"]: n for n in _nodes_of(engine, "LearningObjective")}
        lo1 = objectives["LO-1"]
        assert lo1.confidence == pytest.approx(0.9)
        assert lo1.tags == ["learning_objective", "safety"]
        assert lo1.properties["importance"] == "3"
        assert lo1.source_document_id == "doc-ppl-01"

    def test_regulation_node(self, engine, processing_result):
        engine.process_document(processing_result)
        (reg,) = _nodes_of(engine, "Regulation")
        assert reg.label == "14 CFR 61"
        assert reg.properties == {"id": "REG-1", "citation": "Part 61 certification requirements"}

    def test_relationship_labels(self, engine, processing_result):
        engine.process_document(processing_result)
        query = QueryBuilder().connected_by("HIERARCHICAL", "SEQUENTIAL", "TRAINING", "REGULATORY").build()
        labels = sorted(r.label for r in engine.query(query).data.relationships)
        assert labels == sorted(
            ["COMPLIES_WITH", "PREREQUISITE_FOR"]
            + ["CONTAINS"] * 4
            + ["ASSESSES"] * 2
            + ["DEMONSTRATES"]
        )

    def test_accepts_plain_dict(self, engine, processing_result):
        res = engine.process_document(processing_result.model_dump())
        assert res.data == (7, 9)

    def test_invalid_dict(self, engine):
        res = engine.process_document({"learning_objectives": "nope"})
        assert res.kind is ErrorKind.INVALID_INPUT
        assert not engine.is_document_processed("")

    def test_failed_nodes_are_skipped(self, nlp, graph_settings, processing_result):
        class NoCompetencies(InMemoryGraphStore):
            def create_node(self, node_id, label, node_type, properties):
                if node_type == "Competency":
                    raise GraphStoreError("rejected")
                super().create_node(node_id, label, node_type, properties)

        with KnowledgeGraphEngine(NoCompetencies(), nlp, graph_settings) as eng:
            assert eng.process_document(processing_result).data == (6, 5)
            assert eng.is_document_processed("doc-ppl-01")


class TestAsyncIngestion:
    def test_future(self, engine, processing_result):
        future = engine.process_document_async(processing_result)
        assert future.result(timeout=10).data == (7, 9)

    def test_coroutine(self, engine, processing_result):
        res = asyncio.run(engine.aprocess_document(processing_result))
        assert res.data == (7, 9)

    def test_concurrent_submissions_ingest_once(self, engine, store, processing_result):
        barrier = threading.Barrier(4)
        results = []

        def submit():
            barrier.wait()
            results.append(engine.process_document(processing_result).data)

        threads = [threading.Thread(target=submit) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(results) == [(0, 0)] * 3 + [(7, 9)]
        assert store.graph.number_of_nodes() == 7


def test_fractional_importance_document(engine):
    res = engine.process_document(
        {
            "document_id": "D1",
            "learning_objectives": [
                {
                    "id": "LO1",
                    "description": "Plan a cross-country flight",
                    "category": "nav",
                    "importance": 0.9,
                    "related_regulations": ["REG-14"],
                }
            ],
            "regulatory_mapping": {"REG-14": "14 CFR 91.103 preflight action"},
        }
    )
    assert res.success, res.error
    nodes, rels = res.data
    assert nodes >= 3 and rels >= 2

    (objective,) = _nodes_of(engine, "LearningObjective")
    assert objective.properties["importance"] == "0.9"
    assert objective.tags == ["learning_objective", "nav"]
    (reg,) = _nodes_of(engine, "Regulation")
    assert reg.properties["citation"] == "14 CFR 91.103 preflight action"

    query = QueryBuilder().connected_by("HIERARCHICAL", "REGULATORY").build()
    labels = {r.label for r in engine.query(query).data.relationships}
    assert labels == {"CONTAINS", "COMPLIES_WITH"}
