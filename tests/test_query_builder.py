import pytest

from training_graph.graph.models import RelationshipType
from training_graph.graph.query import (
    GraphQuery,
    NodeFilter,
    QueryBuilder,
    compile_communities,
    compile_match,
    compile_shortest_path,
)


class TestCompileMatch:
    def test_empty_query_matches_all_nodes(self):
        compiled = compile_match(GraphQuery())
        assert compiled.text.startswith("MATCH (n:Node)")
        assert "WHERE" not in compiled.text
        assert "RETURN DISTINCT n.id AS id, n.type AS type" in compiled.text
        assert compiled.params == {}

    def test_node_predicates_are_anded(self):
        compiled = (
            QueryBuilder()
            .of_type("Procedure")
            .with_labels("Normal takeoff")
            .from_documents("doc-1")
            .having_confidence(0.7)
            .compile()
        )
        where = compiled.text.split("WHERE ", 1)[1].split("\n", 1)[0]
        assert where == (
            "n.type = $node_type AND n.label IN $node_labels AND "
            "n.sourceDocumentId IN $source_document_ids AND n.confidence >= $node_min_confidence"
        )
        assert compiled.params == {
            "node_type": "Procedure",
            "node_labels": ["Normal takeoff"],
            "source_document_ids": ["doc-1"],
            "node_min_confidence": 0.7,
        }

    def test_tags_form_an_or_group(self):
        compiled = QueryBuilder().of_type("Competency").tagged("safety", "ops").compile()
        assert "n.type = $node_type AND ($tag_0 IN n.tags OR $tag_1 IN n.tags)" in compiled.text
        assert compiled.params["tag_0"] == "safety"
        assert compiled.params["tag_1"] == "ops"

    def test_values_are_never_interpolated(self):
        hostile = "x' OR 1=1 WITH n DETACH DELETE n //"
        compiled = QueryBuilder().with_labels(hostile).with_properties({"note": hostile}).compile()
        assert hostile not in compiled.text
        assert hostile in compiled.params.values()

    def test_property_keys_are_quoted(self):
        compiled = QueryBuilder().with_properties({"we`ird key": "v"}).compile()
        assert "n.`we``ird key` = $node_prop_0" in compiled.text

    def test_reserved_property_keys_use_stored_name(self):
        compiled = QueryBuilder().with_properties({"id": "LO-1"}).compile()
        assert "n.`property.id` = $node_prop_0" in compiled.text

    def test_relationship_filter_returns_edge_rows(self):
        compiled = (
            QueryBuilder()
            .of_type("LearningObjective")
            .connected_by(RelationshipType.REGULATORY, "sequential")
            .having_strength(0.8)
            .compile()
        )
        assert "MATCH (n:Node)-[r]->(m:Node)" in compiled.text
        assert "r.type IN $rel_types" in compiled.text
        assert "r.strength >= $rel_min_strength" in compiled.text
        assert "r.id AS relationshipId" in compiled.text
        assert compiled.params["rel_types"] == ["REGULATORY", "SEQUENTIAL"]

    def test_start_node_and_limit(self):
        compiled = QueryBuilder().starting_at("n-1").limit(5).compile()
        assert "n.id = $start_node_id" in compiled.text
        assert compiled.text.rstrip().endswith("LIMIT $limit")
        assert compiled.params["limit"] == 5

    def test_negative_limit_rejected(self):
        with pytest.raises(ValueError):
            QueryBuilder().limit(-1)

    def test_deterministic(self):
        q = GraphQuery(node_filter=NodeFilter(node_type="T", tags=["a", "b"], properties={"k": "v"}), limit=3)
        first, second = compile_match(q), compile_match(q)
        assert first.text == second.text
        assert first.params == second.params


class TestCompiledOperations:
    def test_shortest_path_depth_is_inclusive_bound(self):
        compiled = compile_shortest_path("a", "b", 3)
        assert "shortestPath((source)-[*1..3]-(target))" in compiled.text
        assert compiled.params == {"source_id": "a", "target_id": "b"}
        assert compiled.operation == "shortest_path"

    @pytest.mark.parametrize("depth", [0, -2])
    def test_shortest_path_rejects_bad_depth(self, depth):
        with pytest.raises(ValueError):
            compile_shortest_path("a", "b", depth)

    def test_communities_use_stream_procedures(self):
        compiled = compile_communities("strongly_connected_components", {"concurrency": 2}, graph_name="g")
        assert "gds.scc.stream($graph_name, $config)" in compiled.text
        assert "AS nodeId" in compiled.text and "AS community" in compiled.text
        assert compiled.params == {"graph_name": "g", "config": {"concurrency": 2}}
        assert compiled.source["orientation"] == "NATURAL"
        assert compile_communities("triangle_count").source["orientation"] == "UNDIRECTED"

    def test_communities_unknown_algorithm(self):
        with pytest.raises(ValueError):
            compile_communities("pagerank")


def test_relationship_label_confidence_and_property_filters():
    compiled = (
        QueryBuilder()
        .with_relationship_labels("ASSESSES")
        .having_relationship_confidence(0.6)
        .with_relationship_properties({"section": "61.105"})
        .compile()
    )
    assert "r.label IN $rel_labels" in compiled.text
    assert "r.confidence >= $rel_min_confidence" in compiled.text
    assert "r.`section` = $rel_prop_0" in compiled.text
    assert compiled.params["rel_labels"] == ["ASSESSES"]
    assert compiled.params["rel_min_confidence"] == 0.6
    assert compiled.params["rel_prop_0"] == "61.105"
