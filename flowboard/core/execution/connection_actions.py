"""
Connection actions
Two-node creative operations (fuse, style transplant, variation bridge...)
that need a generated image on both ends.
"""
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from ..graph.models import Node

BOTH_MISSING = "Both cards need generated images to create a connection action"
SOURCE_MISSING = "Source card needs a generated image"
TARGET_MISSING = "Target card needs a generated image"

# Per-image base cost by model, and the resolution multiplier
MODEL_COSTS: Dict[str, float] = {"nano-banana-pro": 0.08, "flux-redux": 0.05}
RESOLUTION_MULTIPLIERS: Dict[str, float] = {"1K": 0.5, "2K": 1.0, "4K": 2.0}
ANALYSIS_COST = 0.02


@dataclass(frozen=True)
class ActionCheck:
    can_execute: bool
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"canExecute": self.can_execute}
        if self.reason:
            data["reason"] = self.reason
        return data


def node_image_url(node: Node) -> Optional[str]:
    """First generated image of a node, else its thumbnailUrl parameter"""
    result = node.result if isinstance(node.result, Mapping) else {}
    if result.get("type") == "image":
        urls = result.get("urls") or []
        if urls:
            return urls[0]
        if result.get("url"):
            return result["url"]

    output = node.cached_output if isinstance(node.cached_output, Mapping) else {}
    images = output.get("images")
    if isinstance(images, list) and images:
        first = images[0]
        if isinstance(first, str) and first:
            return first
        if isinstance(first, Mapping) and first.get("url"):
            return first["url"]
    if output.get("imageUrl"):
        return output["imageUrl"]

    thumbnail = node.parameters.get("thumbnailUrl")
    return thumbnail or None


def can_execute(source: Node, target: Node) -> ActionCheck:
    """Check whether a connection action between two nodes can run"""
    source_image = node_image_url(source)
    target_image = node_image_url(target)

    if not source_image and not target_image:
        return ActionCheck(False, BOTH_MISSING)
    if not source_image:
        return ActionCheck(False, SOURCE_MISSING)
    if not target_image:
        return ActionCheck(False, TARGET_MISSING)
    return ActionCheck(True)


def select_model(action_type: str) -> str:
    # Style transplant uses FLUX Redux; everything else needs multi-reference support
    if action_type == "style-transplant":
        return "flux-redux"
    return "nano-banana-pro"


def estimate_cost(action_type: str, options: Optional[Mapping[str, Any]] = None) -> float:
    """
    Estimated cost of a connection action in USD

    Args:
        action_type: e.g. "fuse", "style-transplant", "variation-bridge"
        options: numVariations (variation-bridge only, default 3) and resolution (default 2K)
    """
    options = options or {}
    num_images = (options.get("numVariations") or 3) if action_type == "variation-bridge" else 1
    base = MODEL_COSTS.get(select_model(action_type), 0.08)
    multiplier = RESOLUTION_MULTIPLIERS.get(options.get("resolution") or "2K", 1.0)
    return base * num_images * multiplier + ANALYSIS_COST * 2
