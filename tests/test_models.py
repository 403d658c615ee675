import pytest

from training_graph.graph.errors import (
    ErrorKind,
    GraphResult,
    IdGenerationError,
    NodeNotFoundError,
)
from training_graph.graph.models import KnowledgeSubgraph, RelationshipType


class TestRelationshipType:
    @pytest.mark.parametrize("value", ["REGULATORY", "regulatory", " Regulatory "])
    def test_parse_known_values(self, value):
        assert RelationshipType.parse(value) is RelationshipType.REGULATORY

    @pytest.mark.parametrize("value", ["RELATED_TO", "", None, "friendship"])
    def test_unknown_values_parse_to_associative(self, value):
        assert RelationshipType.parse(value) is RelationshipType.ASSOCIATIVE

    def test_parse_is_identity_for_members(self):
        for t in RelationshipType:
            assert RelationshipType.parse(t) is t
            assert RelationshipType.parse(t.value) is t

    def test_abbreviations(self):
        assert RelationshipType.HIERARCHICAL.abbreviation == "HIER"
        assert RelationshipType.TRAINING.abbreviation == "TRAIN"
        assert RelationshipType.CUSTOM.abbreviation == "CUST"
        assert len({t.abbreviation for t in RelationshipType}) == len(RelationshipType)


class TestGraphResult:
    def test_ok_unwrap(self):
        assert GraphResult.ok("x").unwrap() == "x"

    def test_fail_unwrap_raises_typed_error(self):
        res = GraphResult.fail(ErrorKind.NODE_NOT_FOUND, "missing")
        with pytest.raises(NodeNotFoundError, match="missing"):
            res.unwrap()

    def test_fail_unwrap_id_generation(self):
        with pytest.raises(IdGenerationError):
            GraphResult.fail(ErrorKind.ID_GENERATION_FAILED, "exhausted").unwrap()


def test_subgraph_defaults_are_independent():
    a, b = KnowledgeSubgraph(), KnowledgeSubgraph()
    a.metadata["k"] = "v"
    assert b.metadata == {}
