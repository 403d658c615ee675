import pytest

from training_graph.graph.db.base import DuplicateEntityError, EntityNotFoundError, StoredNode, StoredRelationship
from training_graph.graph.db.memory import InMemoryGraphStore
from training_graph.graph.db.statements import (
    StatementSyntaxError,
    format_node_statement,
    format_relationship_statement,
    parse_statement,
)
from training_graph.graph.query import QueryBuilder, compile_shortest_path


@pytest.fixture
def populated():
    s = InMemoryGraphStore()
    s.create_node("a", "Alpha", "Concept", {"confidence": 0.9, "tags": ["x", "y"]})
    s.create_node("b", "Beta", "Concept", {"confidence": 0.4, "tags": ["y"]})
    s.create_node("c", "Gamma", "Procedure", {"confidence": 0.8, "tags": []})
    s.create_relationship("r1", "a", "b", "SEQUENTIAL", "NEXT", {"strength": 0.9, "confidence": 0.9})
    s.create_relationship("r2", "b", "c", "TRAINING", "USES", {"strength": 0.3, "confidence": 0.6})
    return s


class TestStatements:
    def test_node_statement_shape(self):
        text = format_node_statement(StoredNode("n1", "It's \"quoted\"", "Concept", {"confidence": 0.5}))
        assert text.startswith("CREATE (n:Node:Concept {id: 'n1', label: 'It\\'s \"quoted\"'")
        assert text.endswith("});")

    def test_node_statement_parses_back(self):
        node = StoredNode(
            "n1",
            "Line one\nline two \\ end",
            "Learning Objective",
            {"confidence": 0.75, "tags": ["a", "b"], "property.id": "LO-1", "ok": True, "n": 3},
        )
        kind, parsed = parse_statement(format_node_statement(node))
        assert kind == "node"
        assert parsed == node

    def test_relationship_statement_parses_back(self):
        rel = StoredRelationship("r1", "a", "b", "REGULATORY", "COMPLIES_WITH", {"strength": 0.9, "temporal": "before"})
        text = format_relationship_statement(rel)
        assert "CREATE (source)-[r:COMPLIES_WITH {" in text
        kind, parsed = parse_statement(text)
        assert kind == "relationship"
        assert parsed == rel

    def test_relationship_without_label_uses_default(self):
        text = format_relationship_statement(StoredRelationship("r1", "a", "b", "CUSTOM", "", {}))
        assert "[r:RELATED_TO {" in text

    @pytest.mark.parametrize(
        "text",
        ["DELETE (n)", "CREATE (n:Node {label: 'no id'});", "CREATE (n:Node {id: 'x'", "CREATE (n:Node {id: 'x'}) extra"],
    )
    def test_rejects_unsupported_statements(self, text):
        with pytest.raises(StatementSyntaxError):
            parse_statement(text)


class TestInMemoryGraphStore:
    def test_node_crud(self):
        s = InMemoryGraphStore()
        s.create_node("n", "Label", "Type", {"k": "v"})
        assert s.get_node("n") == StoredNode("n", "Label", "Type", {"k": "v"})
        s.update_node("n", "New", "Other", {"k": "w"})
        assert s.get_node("n").label == "New"
        s.delete_node("n")
        assert s.get_node("n") is None

    def test_duplicates_rejected(self, populated):
        with pytest.raises(DuplicateEntityError):
            populated.create_node("a", "again", "Concept", {})
        with pytest.raises(DuplicateEntityError):
            populated.create_relationship("r1", "a", "c", "CUSTOM", "X", {})

    def test_relationship_requires_endpoints(self, populated):
        with pytest.raises(EntityNotFoundError):
            populated.create_relationship("r9", "a", "zzz", "CUSTOM", "X", {})

    def test_returned_properties_are_copies(self, populated):
        populated.get_node("a").properties["tags"].append("mutated")
        assert populated.get_node("a").properties["tags"] == ["x", "y"]

    def test_delete_node_detaches_relationships(self, populated):
        populated.delete_node("b")
        assert populated.get_relationship("r1") is None
        assert populated.get_relationship("r2") is None

    def test_parallel_relationships_allowed(self, populated):
        populated.create_relationship("r3", "a", "b", "CAUSAL", "CAUSES", {})
        assert populated.get_relationship("r1").label == "NEXT"
        assert populated.get_relationship("r3").label == "CAUSES"

    def test_match_nodes(self, populated):
        rows = populated.execute_query(QueryBuilder().of_type("Concept").having_confidence(0.5).compile())
        assert rows == [{"id": "a", "type": "Concept"}]

    def test_match_tags_any(self, populated):
        rows = populated.execute_query(QueryBuilder().tagged("x", "y").compile())
        assert [r["id"] for r in rows] == ["a", "b"]

    def test_match_relationships(self, populated):
        rows = populated.execute_query(QueryBuilder().connected_by("TRAINING").compile())
        assert rows == [{"id": "b", "type": "Concept", "relationshipId": "r2"}]

    def test_limit(self, populated):
        assert len(populated.execute_query(QueryBuilder().limit(2).compile())) == 2

    def test_shortest_path_is_undirected(self, populated):
        rows = populated.execute_query(compile_shortest_path("c", "a", 2))
        assert [r["id"] for r in rows if "id" in r] == ["c", "b", "a"]
        assert [r["relationshipId"] for r in rows if "relationshipId" in r] == ["r2", "r1"]

    def test_shortest_path_respects_depth(self, populated):
        assert populated.execute_query(compile_shortest_path("a", "c", 1)) == []

    def test_executes_statements(self):
        s = InMemoryGraphStore()
        s.execute_query(format_node_statement(StoredNode("a", "A", "T", {})))
        s.execute_query(format_node_statement(StoredNode("b", "B", "T", {})))
        s.execute_query(format_relationship_statement(StoredRelationship("r", "a", "b", "CUSTOM", "LINK", {})))
        assert s.get_relationship("r").source_id == "a"
        assert s.execute_query("// comment only") == []
