"""
Tests for the execution input resolver
"""
import pytest

from flowboard.core.errors import NodeNotFoundError
from flowboard.core.execution.resolver import (
    ExecutionInputResolver,
    STORY_CONTEXT_KEY,
    STORY_OBJECT_KEY,
    alias_rules_for,
    extract_output_value,
    is_valid_value,
    resolve_inputs,
    story_text,
    to_single_value,
)
from flowboard.core.graph.models import Edge, GraphSnapshot, Node, Port


def _node(node_id, cached_output=None, parameters=None, inputs=(), outputs=()):
    return Node(
        id=node_id,
        node_type="custom",
        category="custom",
        inputs=[Port(p, p, "any") for p in inputs],
        outputs=[Port(p, p, "any") for p in outputs],
        parameters=parameters or {},
        cached_output=cached_output,
    )


def _snapshot(nodes, edges):
    return GraphSnapshot.capture("b", nodes, edges)


# ---------------------------------------------------------------------------
# Meaningful values
# ---------------------------------------------------------------------------


class TestIsValidValue:

    @pytest.mark.parametrize("value", [None, "", "   ", [], {}, {"a": ""}, {"a": {"b": None}}, ()])
    def test_not_meaningful(self, value):
        assert is_valid_value(value) is False

    @pytest.mark.parametrize("value", ["x", 0, 0.0, False, True, ["x"], [""], {"a": "x"}, {"a": {"b": 1}}])
    def test_meaningful(self, value):
        assert is_valid_value(value) is True


# ---------------------------------------------------------------------------
# Lookup precedence
# ---------------------------------------------------------------------------


class TestPrecedence:

    def test_exact_port_beats_fallback(self):
        node = _node("s", cached_output={"text": "fallback", "caption": "exact"})
        assert extract_output_value(node, "caption") == "exact"

    def test_family_order_is_table_order(self):
        node = _node("s", cached_output={"images": ["u1"], "text": "words"})
        # text family is searched before image family
        assert extract_output_value(node, "output") == "words"

    def test_empty_exact_value_falls_through(self):
        node = _node("s", cached_output={"story": {}, "text": "plain"})
        assert extract_output_value(node, "story") == "plain"

    def test_cached_output_before_parameters(self):
        node = _node("s", cached_output={"text": "from run"}, parameters={"text": "from params"})
        assert extract_output_value(node, "text") == "from run"

    def test_parameters_for_input_nodes(self):
        node = _node("s", parameters={"prompt": "a red dress"})
        assert extract_output_value(node, "text") == "a red dress"

    def test_parameter_families(self):
        node = _node("s", parameters={"files": ["f1.png"]})
        assert extract_output_value(node, "image") == ["f1.png"]

    def test_nothing_meaningful(self):
        node = _node("s", cached_output={"text": ""}, parameters={"prompt": "  "})
        assert extract_output_value(node, "text") is None


# ---------------------------------------------------------------------------
# Single-value ports
# ---------------------------------------------------------------------------


class TestSingleValue:

    def test_first_string(self):
        assert to_single_value(["u1", "u2"], "model") == "u1"

    def test_first_url_object(self):
        assert to_single_value([{"url": "u1"}, {"url": "u2"}], "garment") == "u1"

    def test_substring_match(self):
        assert to_single_value(["u1"], "sourceImage") == "u1"
        assert to_single_value(["v1"], "inputVideo") == "v1"

    def test_other_ports_keep_arrays(self):
        assert to_single_value(["u1", "u2"], "characters") == ["u1", "u2"]
        assert to_single_value(["a"], "inputs") == ["a"]

    def test_plural_of_single_family_is_reduced(self):
        # Substring match: "references" contains "reference"
        assert to_single_value(["u1", "u2"], "references") == "u1"

    def test_object_without_url_kept(self):
        assert to_single_value([{"id": 1}], "image") == [{"id": 1}]


# ---------------------------------------------------------------------------
# Aliases
# ---------------------------------------------------------------------------


class TestAliases:

    def test_text_port_aliases(self):
        source = _node("s", cached_output={"text": "hello"}, outputs=["text"])
        target = _node("t", inputs=["prompt"])
        inputs = resolve_inputs(_snapshot([source, target], [Edge("e", "s", "t", "text", "prompt")]), "t")
        for key in ("prompt", "text", "Input Prompt", "input"):
            assert inputs[key] == "hello"

    def test_image_port_aliases(self):
        source = _node("s", cached_output={"images": ["u1", "u2"]})
        target = _node("t", inputs=["image"])
        inputs = resolve_inputs(_snapshot([source, target], [Edge("e", "s", "t", "image", "image")]), "t")
        for key in ("image", "images", "reference", "Source Image"):
            assert inputs[key] == "u1"

    def test_model_port_aliases(self):
        source = _node("s", cached_output={"images": ["u1", "u2"]})
        target = _node("t", inputs=["model"])
        inputs = resolve_inputs(_snapshot([source, target], [Edge("e", "s", "t", "image", "model")]), "t")
        assert inputs["model"] == "u1"
        assert inputs["person"] == "u1"
        assert inputs["Model Photo"] == "u1"

    def test_family_match_is_case_insensitive(self):
        families = [rule.family for rule in alias_rules_for("CharacterRef")]
        assert "character" in families

    def test_person_family_needs_capitalised_segment(self):
        assert "person" in [rule.family for rule in alias_rules_for("humanModel")]
        assert "person" in [rule.family for rule in alias_rules_for("person")]
        families = [rule.family for rule in alias_rules_for("modelImage")]
        assert "person" not in families
        assert "image" in families

    def test_unrelated_port_has_no_aliases(self):
        source = _node("s", cached_output={"result": 42})
        target = _node("t", inputs=["seed"])
        inputs = resolve_inputs(_snapshot([source, target], [Edge("e", "s", "t", "output", "seed")]), "t")
        assert inputs == {"seed": 42}


# ---------------------------------------------------------------------------
# Whole-node resolution
# ---------------------------------------------------------------------------


def test_story_object_preserved_with_text_projection():
    genesis = _node("genesis", cached_output={"story": {"title": "X"}}, outputs=["story"])
    structure = _node("structure", inputs=["story"])
    snapshot = _snapshot([genesis, structure], [Edge("e", "genesis", "structure", "story", "story")])

    inputs = ExecutionInputResolver().resolve(snapshot, "structure")

    assert inputs["story"] == {"title": "X"}
    assert inputs[STORY_OBJECT_KEY] == {"title": "X"}
    assert inputs[STORY_CONTEXT_KEY] == "Title: X"


def test_story_text_projection():
    story = {"title": "Dune", "genre": "sci-fi", "themes": ["power", "ecology"], "acts": [{"n": 1}]}
    text = story_text(story)
    assert text.splitlines() == ["Title: Dune", "Genre: sci-fi", "Themes: power, ecology"]
    assert story_text("already text") == "already text"
    assert story_text({"acts": [1]}) == '{"acts": [1]}'


def test_resolution_is_idempotent_and_copies_values():
    source = _node("s", cached_output={"story": {"title": "X", "beats": ["a"]}})
    target = _node("t", inputs=["story"])
    snapshot = _snapshot([source, target], [Edge("e", "s", "t", "story", "story")])
    resolver = ExecutionInputResolver()

    first = resolver.resolve(snapshot, "t")
    second = resolver.resolve(snapshot, "t")
    assert first == second

    first["story"]["beats"].append("mutated")
    assert snapshot.nodes["s"].cached_output["story"]["beats"] == ["a"]


def test_edges_without_values_contribute_nothing():
    empty = _node("empty", cached_output={}, parameters={"text": ""})
    full = _node("full", parameters={"text": "hi"})
    target = _node("t", inputs=["prompt", "image"])
    edges = [Edge("e1", "empty", "t", "image", "image"), Edge("e2", "full", "t", "text", "prompt")]
    inputs = resolve_inputs(_snapshot([empty, full, target], edges), "t")
    assert "image" not in inputs
    assert inputs["prompt"] == "hi"


def test_missing_handles_use_defaults():
    source = _node("s", cached_output={"output": "value"})
    target = _node("t")
    inputs = resolve_inputs(_snapshot([source, target], [Edge("e", "s", "t")]), "t")
    assert inputs["input"] == "value"
    assert inputs["text"] == "value"


def test_unknown_node_raises():
    with pytest.raises(NodeNotFoundError):
        resolve_inputs(_snapshot([], []), "nope")
