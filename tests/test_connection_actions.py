"""
Tests for connection-action preconditions and cost estimates
"""
import pytest

from flowboard.core.execution.connection_actions import (
    BOTH_MISSING,
    SOURCE_MISSING,
    TARGET_MISSING,
    can_execute,
    estimate_cost,
    node_image_url,
    select_model,
)
from flowboard.core.graph.models import Node


def _card(node_id, result=None, cached_output=None, parameters=None):
    return Node(id=node_id, node_type="flux2Pro", category="imageGen",
                result=result, cached_output=cached_output, parameters=parameters or {})


def test_both_missing():
    check = can_execute(_card("a"), _card("b"))
    assert check.can_execute is False
    assert check.reason == BOTH_MISSING
    assert check.to_dict() == {"canExecute": False, "reason": BOTH_MISSING}


def test_one_side_missing():
    with_image = _card("a", cached_output={"imageUrl": "a.png"})
    assert can_execute(with_image, _card("b")).reason == TARGET_MISSING
    assert can_execute(_card("b"), with_image).reason == SOURCE_MISSING


def test_both_present():
    check = can_execute(
        _card("a", result={"type": "image", "url": "a.png", "urls": ["a.png"]}),
        _card("b", parameters={"thumbnailUrl": "b.png"}),
    )
    assert check.can_execute is True
    assert check.to_dict() == {"canExecute": True}


@pytest.mark.parametrize("card,expected", [
    (_card("r", result={"type": "image", "urls": ["r1", "r2"]}), "r1"),
    (_card("c", cached_output={"images": [{"url": "c1"}]}), "c1"),
    (_card("s", cached_output={"images": ["s1"]}), "s1"),
    (_card("t", parameters={"thumbnailUrl": "thumb"}), "thumb"),
    (_card("x", result={"type": "text", "data": {"text": "hi"}}), None),
    (_card("l", cached_output=["u1"]), None),
    (_card("g", cached_output="done", parameters={"thumbnailUrl": "thumb"}), "thumb"),
    (_card("w", result=["r1"]), None),
])
def test_node_image_url(card, expected):
    assert node_image_url(card) == expected


def test_model_selection():
    assert select_model("style-transplant") == "flux-redux"
    assert select_model("fuse") == "nano-banana-pro"


def test_cost_estimates():
    assert estimate_cost("fuse") == pytest.approx(0.08 + 0.04)
    assert estimate_cost("style-transplant", {"resolution": "4K"}) == pytest.approx(0.05 * 2 + 0.04)
    assert estimate_cost("variation-bridge", {"numVariations": 4, "resolution": "1K"}) == pytest.approx(
        0.08 * 4 * 0.5 + 0.04
    )


def test_non_dict_output_reports_missing_image():
    check = can_execute(_card("a", cached_output=["u1"]), _card("b", cached_output="text"))
    assert check.to_dict() == {"canExecute": False, "reason": BOTH_MISSING}
