import json

import pytest

from training_graph.graph.db.memory import InMemoryGraphStore
from training_graph.graph.engine import KnowledgeGraphEngine
from training_graph.graph.errors import ErrorKind, InvalidInputError
from training_graph.graph.io import detect_format
from training_graph.graph.io import graphml, json_format
from training_graph.graph.models import KnowledgeNode, KnowledgeRelationship, KnowledgeSubgraph, RelationshipType
from training_graph.graph.query import QueryBuilder


@pytest.fixture
def seeded(engine):
    engine.create_node(
        KnowledgeNode(
            id="lo-1",
            label="Perform preflight",
            type="LearningObjective",
            properties={"category": "safety", "id": "LO-1"},
            confidence=0.9,
            source_document_id="doc-1",
            summary="Walkaround & checklist <before> flight",
            tags=["learning_objective", "safety"],
        )
    )
    engine.create_node(KnowledgeNode(id="reg-1", label="14 CFR 61", type="Regulation", confidence=0.95))
    engine.create_relationship(
        KnowledgeRelationship(
            id="rel-1",
            source_node_id="lo-1",
            target_node_id="reg-1",
            type=RelationshipType.REGULATORY,
            label="COMPLIES_WITH",
            strength=0.9,
            confidence=0.8,
            properties={"section": "61.105"},
            bidirectional="false",
            temporal="during",
        )
    )
    return engine


@pytest.fixture
def fresh(nlp, graph_settings):
    eng = KnowledgeGraphEngine(InMemoryGraphStore(), nlp, graph_settings)
    yield eng
    eng.close()


def _assert_same_graph(src, dst):
    for node_id in ("lo-1", "reg-1"):
        assert dst.get_node(node_id).data == src.get_node(node_id).data
    assert dst.get_relationship("rel-1").data == src.get_relationship("rel-1").data


class TestRoundTrips:
    @pytest.mark.parametrize("fmt, suffix", [("json", ".json"), ("graphml", ".graphml"), ("cypher", ".cypher")])
    def test_export_then_import(self, seeded, fresh, tmp_path, fmt, suffix):
        path = tmp_path / f"graph{suffix}"
        assert seeded.export_graph(fmt, path).data == (2, 1)
        assert fresh.import_graph(None, path).data == (2, 1)
        _assert_same_graph(seeded, fresh)

    def test_graphml_tags_keep_commas(self, engine, fresh, tmp_path):
        node = KnowledgeNode(id="t-1", label="Radio", type="Concept", tags=["com,nav", "avionics"])
        engine.create_node(node)
        path = tmp_path / "tags.graphml"
        engine.export_graph("graphml", path)
        assert fresh.import_graph(None, path).success
        assert fresh.get_node("t-1").data.tags == ["com,nav", "avionics"]

    def test_graphml_reads_comma_joined_tags(self):
        doc = (
            '<graphml xmlns="http://graphml.graphdrawing.org/xmlns">'
            '<key id="n.tags" for="node" attr.name="tags" attr.type="string"/>'
            '<graph id="G"><node id="a"><data key="n.tags">x, y</data></node></graph></graphml>'
        )
        (node,) = graphml.loads(doc).nodes
        assert node.tags == ["x", "y"]

    def test_cypher_script_layout(self, seeded, tmp_path):
        path = tmp_path / "graph.cql"
        seeded.export_graph(None, path)
        lines = path.read_text(encoding="utf-8").splitlines()
        assert lines[0] == "// Nodes"
        assert "// Relationships" in lines
        assert sum(line.startswith("CREATE (n:Node:") for line in lines) == 2
        assert sum(line.startswith("MATCH (source:Node") for line in lines) == 1

    def test_export_query_subset(self, seeded, tmp_path):
        path = tmp_path / "regs.json"
        query = QueryBuilder().of_type("Regulation").build()
        assert seeded.export_graph("json", path, query).data == (1, 0)
        doc = json.loads(path.read_text(encoding="utf-8"))
        assert [n["id"] for n in doc["nodes"]] == ["reg-1"]


class TestJsonShape:
    def test_optional_fields_omitted(self):
        text = json_format.dumps(
            KnowledgeSubgraph(
                nodes=[KnowledgeNode(id="n", label="N", type="T")],
                relationships=[KnowledgeRelationship(id="r", source_node_id="n", target_node_id="n")],
            )
        )
        doc = json.loads(text)
        assert doc["nodes"][0] == {"id": "n", "label": "N", "type": "T", "confidence": 1.0, "properties": {}}
        assert set(doc["relationships"][0]) == {
            "id", "sourceNodeId", "targetNodeId", "label", "type", "strength", "confidence",
        }

    def test_unknown_relationship_type_reads_as_associative(self):
        sub = json_format.loads(
            '{"nodes": [], "relationships": [{"id": "r", "sourceNodeId": "a", "targetNodeId": "b", "type": "weird"}]}'
        )
        assert sub.relationships[0].type is RelationshipType.ASSOCIATIVE


class TestImportMerging:
    def _write_conflict(self, tmp_path):
        path = tmp_path / "conflict.json"
        path.write_text(
            json_format.dumps(KnowledgeSubgraph(nodes=[KnowledgeNode(id="a", label="Theirs", type="T", confidence=0.5)])),
            encoding="utf-8",
        )
        return path

    def test_higher_confidence_keeps_existing(self, engine, tmp_path):
        engine.create_node(KnowledgeNode(id="a", label="Mine", type="T", confidence=0.9))
        assert engine.import_graph("json", self._write_conflict(tmp_path)).data == (1, 0)
        assert engine.get_node("a").data.label == "Mine"

    def test_prefer_imported(self, engine, tmp_path):
        engine.create_node(KnowledgeNode(id="a", label="Mine", type="T", confidence=0.9))
        engine.import_graph("json", self._write_conflict(tmp_path), "prefer_subgraph2")
        engine.clear_caches()
        assert engine.get_node("a").data.label == "Theirs"

    def test_cypher_duplicates_are_skipped(self, seeded, tmp_path):
        path = tmp_path / "graph.cypher"
        seeded.export_graph("cypher", path)
        assert seeded.import_graph("cypher", path).data == (0, 0)

    def test_dangling_relationship_skipped(self, engine, tmp_path):
        path = tmp_path / "dangling.json"
        sub = KnowledgeSubgraph(
            nodes=[KnowledgeNode(id="a", label="A", type="T")],
            relationships=[KnowledgeRelationship(id="r", source_node_id="a", target_node_id="missing")],
        )
        path.write_text(json_format.dumps(sub), encoding="utf-8")
        assert engine.import_graph("json", path).data == (1, 0)


class TestFailures:
    def test_unknown_format(self, engine, tmp_path):
        assert engine.export_graph("yaml", tmp_path / "g.yaml").kind is ErrorKind.INVALID_INPUT

    def test_missing_file(self, engine, tmp_path):
        assert engine.import_graph("json", tmp_path / "nope.json").kind is ErrorKind.FILE_OPERATION_FAILED

    def test_malformed_file(self, engine, tmp_path):
        path = tmp_path / "bad.graphml"
        path.write_text("<graphml><graph>", encoding="utf-8")
        assert engine.import_graph(None, path).kind is ErrorKind.FILE_OPERATION_FAILED

    def test_unwritable_path(self, engine, tmp_path):
        res = engine.export_graph("json", tmp_path / "missing-dir" / "g.json")
        assert res.kind is ErrorKind.FILE_OPERATION_FAILED


class TestDetectFormat:
    @pytest.mark.parametrize(
        "name, path, expected",
        [
            ("JSON", None, "json"),
            ("xml", None, "graphml"),
            ("cql", None, "cypher"),
            (None, "out/graph.graphml", "graphml"),
            (None, "dump.cypher", "cypher"),
        ],
    )
    def test_resolves(self, name, path, expected):
        assert detect_format(name, path) == expected

    def test_rejects_unknown(self):
        with pytest.raises(InvalidInputError):
            detect_format(None, "graph.bin")
