import pytest

from training_graph.graph.nlp import KeywordNLPAdapter, NLPError


@pytest.fixture
def adapter():
    return KeywordNLPAdapter()


def test_extracts_capitalized_spans_and_quoted_terms(adapter):
    entities = adapter.extract_entities('Which procedures cover "crosswind landing" in the Cessna Skyhawk?')
    assert ("crosswind landing", "Term") in entities
    assert ("Cessna Skyhawk", "Entity") in entities
    assert all(name != "Which" for name, _ in entities)


def test_structured_query_hints(adapter):
    sq = adapter.convert_to_structured_query("List prerequisites for objectives tagged #safety")
    assert sq.node_type == "LearningObjective"
    assert sq.relationship_types == ["SEQUENTIAL"]
    assert sq.tags == ["safety"]


@pytest.mark.parametrize("text, language", [("", "en"), ("   ", "en"), ("Quelles procédures", "fr")])
def test_rejects_unusable_input(adapter, text, language):
    with pytest.raises(NLPError):
        adapter.convert_to_structured_query(text, None, language)
