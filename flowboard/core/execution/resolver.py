"""
Execution input resolver for Flowboard

Builds the input payload for a node from the state its upstream
neighbours have already reached: their cachedOutput when they have run,
their parameters when they are pure input nodes. Nothing is executed here.

Precedence for each incoming edge:
    1. source.cachedOutput[sourcePortId]
    2. first meaningful key of OUTPUT_KEY_FAMILIES (in table order)
    3. source.parameters[sourcePortId]
    4. first meaningful key of PARAMETER_KEY_FAMILIES (in table order)

The value is written under the target port id and then under every alias
key of the target port's semantic families (ALIAS_TABLE).
"""
import copy
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..graph.models import Edge, GraphSnapshot, Node
from ..errors import NodeNotFoundError
from ..types import NodeID
from ...utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_SOURCE_PORT = "output"
DEFAULT_TARGET_PORT = "input"

# Ordered (family, keys) tables. Order matters: it is the search order.
OUTPUT_KEY_FAMILIES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("text", ("enhancedPrompt", "text", "prompt", "enhanced", "result", "output", "content",
              "description", "improvedPrompt", "generatedPrompt")),
    ("image", ("image", "images", "upscaled", "grid", "frames", "sheet", "panorama",
               "turnaround", "expressions")),
    ("media", ("video", "audio", "music")),
    ("entity", ("character", "characters", "memory", "library", "style", "lora", "vector")),
    ("narrative", ("story", "scene", "dialogue", "monologue", "screenplay", "lore", "timeline",
                   "relationship")),
    ("fashion", ("garment", "outfit", "lookbook", "collection", "pattern", "fabric", "colorway")),
)

PARAMETER_KEY_FAMILIES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("text", ("text", "prompt", "value", "content", "idea", "concept", "theme", "description")),
    ("image", ("image", "images", "reference", "references", "file", "files", "url")),
    ("media", ("video", "audio", "audioPrompt")),
    ("character", ("character", "characters", "characterName", "character1", "character2")),
    ("style", ("style", "styleName", "toneStyle", "brandStyle")),
    ("narrative", ("story", "scene", "dialogue", "lore", "timeline", "script", "screenplay")),
)

# Target ports that take one value: arrays are reduced to their first element
SINGLE_VALUE_PORTS: Tuple[str, ...] = ("model", "garment", "image", "person", "reference", "video", "audio")

STORY_CONTEXT_KEY = "Story Context"
STORY_OBJECT_KEY = "storyObject"


@dataclass(frozen=True)
class AliasRule:
    """
    Alias fan-out for one semantic family of target ports

    A target port belongs to the family when its id equals one of `exact`
    or contains one of `contains`. Containment ignores case unless
    `case_sensitive` is set.
    """
    family: str
    exact: Tuple[str, ...]
    contains: Tuple[str, ...]
    aliases: Tuple[str, ...]
    case_sensitive: bool = False

    def matches(self, port_id: str) -> bool:
        if port_id in self.exact:
            return True
        if self.case_sensitive:
            return any(token in port_id for token in self.contains)
        lowered = port_id.lower()
        return any(token in lowered for token in self.contains)


ALIAS_TABLE: Tuple[AliasRule, ...] = (
    AliasRule("text", ("text", "prompt"), ("prompt",), ("text", "prompt", "Input Prompt", "input")),
    AliasRule("image", ("image", "reference"), ("image",), ("image", "images", "reference", "Source Image")),
    AliasRule("video", ("video",), ("video",), ("video",)),
    AliasRule("audio", ("audio",), ("audio",), ("audio",)),
    AliasRule("character", ("character",), ("character",), ("character", "characters", "Character Lock")),
    AliasRule("style", ("style",), ("style",), ("style", "Visual Style")),
    AliasRule("story", ("story",), ("story",), ("story", STORY_CONTEXT_KEY)),
    AliasRule("scene", ("scene",), ("scene",), ("scene",)),
    AliasRule("dialogue", ("dialogue",), ("dialogue",), ("dialogue",)),
    AliasRule("lore", ("lore",), ("lore",), ("lore", "World Lore")),
    AliasRule("garment", ("garment",), ("garment",), ("garment", "Garment")),
    # Person/Model match only as a capitalised segment: humanModel, not modelImage
    AliasRule("person", ("person", "model"), ("Person", "Model"),
              ("person", "model", "Person Image", "Model Photo"), case_sensitive=True),
    AliasRule("input", ("input",), (), ("input", "text", "prompt")),
)

# Fields used for the flattened text view of a structured story
STORY_TEXT_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("title", "Title"),
    ("logline", "Logline"),
    ("premise", "Premise"),
    ("synopsis", "Synopsis"),
    ("summary", "Summary"),
    ("genre", "Genre"),
    ("tone", "Tone"),
    ("setting", "Setting"),
    ("themes", "Themes"),
)


def is_valid_value(value: Any) -> bool:
    """
    Whether a value is meaningful enough to forward downstream

    None -> False; strings -> non-blank; numbers and booleans -> True;
    lists/tuples -> non-empty; dicts -> at least one meaningful value
    (recursively), so {} and {"a": ""} are not meaningful.
    """
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    if isinstance(value, (bool, int, float)):
        return True
    if isinstance(value, (list, tuple)):
        return len(value) > 0
    if isinstance(value, Mapping):
        return any(is_valid_value(v) for v in value.values())
    return False


def _lookup(source: Optional[Mapping[str, Any]], port_id: str,
            families: Tuple[Tuple[str, Tuple[str, ...]], ...]) -> Any:
    if not isinstance(source, Mapping) or not source:
        return None
    if port_id in source and is_valid_value(source[port_id]):
        return source[port_id]
    for _family, keys in families:
        for key in keys:
            if is_valid_value(source.get(key)):
                return source[key]
    return None


def extract_output_value(node: Node, source_port_id: str) -> Any:
    """
    Value a node offers on one of its output ports

    Returns:
        The first meaningful value by the documented precedence, or None
    """
    value = _lookup(node.cached_output, source_port_id, OUTPUT_KEY_FAMILIES)
    if not is_valid_value(value):
        value = _lookup(node.parameters, source_port_id, PARAMETER_KEY_FAMILIES)
    return value if is_valid_value(value) else None


def is_single_value_port(port_id: str) -> bool:
    if port_id in SINGLE_VALUE_PORTS:
        return True
    lowered = port_id.lower()
    return any(token in lowered for token in SINGLE_VALUE_PORTS)


def to_single_value(value: Any, target_port_id: str) -> Any:
    """Reduce an array to its first element for single-value ports"""
    if not isinstance(value, (list, tuple)) or not value or not is_single_value_port(target_port_id):
        return value
    first = value[0]
    if isinstance(first, str):
        return first
    if isinstance(first, Mapping) and "url" in first:
        return first["url"]
    return value


def story_text(story: Any) -> str:
    """Flattened text view of a story value"""
    if isinstance(story, str):
        return story
    if not isinstance(story, Mapping):
        return str(story)
    lines = []
    for key, label in STORY_TEXT_FIELDS:
        field_value = story.get(key)
        if isinstance(field_value, (list, tuple)):
            field_value = ", ".join(str(v) for v in field_value if is_valid_value(v))
        if is_valid_value(field_value) and not isinstance(field_value, Mapping):
            lines.append(f"{label}: {field_value}")
    if lines:
        return "\n".join(lines)
    return json.dumps(story, sort_keys=True, default=str)


def alias_rules_for(port_id: str) -> List[AliasRule]:
    return [rule for rule in ALIAS_TABLE if rule.matches(port_id)]


def apply_aliases(input_data: Dict[str, Any], target_port_id: str, value: Any) -> Dict[str, Any]:
    """
    Write `value` under the target port id and under its family aliases

    Story values are decomposed: the story key keeps the structured value,
    "Story Context" receives story_text(value) and, for structured stories,
    "storyObject" receives a full deep copy.
    """
    input_data[target_port_id] = value
    for rule in alias_rules_for(target_port_id):
        for alias in rule.aliases:
            if rule.family == "story" and alias == STORY_CONTEXT_KEY:
                input_data[alias] = story_text(value)
            else:
                input_data[alias] = value
        if rule.family == "story" and isinstance(value, Mapping):
            input_data[STORY_OBJECT_KEY] = copy.deepcopy(value)
    return input_data


class ExecutionInputResolver:
    """
    Computes a node's runtime inputs from its upstream neighbourhood

    Works on a GraphSnapshot only; calling resolve() twice on the same
    snapshot returns equal results.
    """

    def resolve(self, snapshot: GraphSnapshot, node_id: NodeID) -> Dict[str, Any]:
        """
        Resolve input data for a node

        Args:
            snapshot: Consistent graph snapshot
            node_id: Target node

        Returns:
            inputData map; edges whose source has no meaningful value contribute nothing

        Raises:
            NodeNotFoundError: if node_id is not in the snapshot
        """
        if node_id not in snapshot.nodes:
            raise NodeNotFoundError(node_id)

        input_data: Dict[str, Any] = {}
        for edge in snapshot.incoming(node_id):
            self._resolve_edge(snapshot, edge, input_data)
        return input_data

    def _resolve_edge(self, snapshot: GraphSnapshot, edge: Edge, input_data: Dict[str, Any]):
        source = snapshot.nodes.get(edge.source_node_id)
        if source is None:
            return
        source_port_id = edge.source_port_id or DEFAULT_SOURCE_PORT
        target_port_id = edge.target_port_id or DEFAULT_TARGET_PORT

        value = extract_output_value(source, source_port_id)
        if value is None:
            logger.debug(f"No meaningful value from {source.id}:{source_port_id} for {target_port_id}")
            return

        value = copy.deepcopy(to_single_value(value, target_port_id))
        apply_aliases(input_data, target_port_id, value)


def resolve_inputs(snapshot: GraphSnapshot, node_id: NodeID) -> Dict[str, Any]:
    return ExecutionInputResolver().resolve(snapshot, node_id)
