"""
Port type catalog for Flowboard
Enumerates port types and the rules for which outputs may feed which inputs
"""
from enum import Enum
from typing import Dict, List, Optional, Union


class PortType(str, Enum):
    """Known port types; unknown names are still accepted as plain strings"""
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    TEXT = "text"
    MESH3D = "mesh3d"
    GARMENT = "garment"
    MODEL = "model"
    FABRIC = "fabric"
    PATTERN = "pattern"
    CHARACTER = "character"
    STYLE = "style"
    STORY = "story"
    SCENE = "scene"
    LOCATION = "location"
    DIALOGUE = "dialogue"
    OUTLINE = "outline"
    TREATMENT = "treatment"
    PLOT_POINT = "plotPoint"
    LORE = "lore"
    TIMELINE = "timeline"
    RELATIONSHIP = "relationship"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ANY = "any"


ANY = PortType.ANY.value

PortTypeLike = Union[PortType, str]

# Semantic neighbours of each type (source type -> target types it can meaningfully feed).
# Published through the port catalog API; connection validation stays exact-or-any.
SEMANTIC_COMPATIBILITY: Dict[str, List[str]] = {
    "image": ["image"],
    "video": ["video"],
    "audio": ["audio"],
    "text": ["text"],
    "mesh3d": ["mesh3d"],
    "style": ["style", "image"],
    "character": ["character", "text", "model"],
    "garment": ["garment", "image"],
    "fabric": ["fabric", "image"],
    "pattern": ["pattern", "image"],
    "model": ["model", "image", "character"],
    "story": ["story", "text"],
    "scene": ["scene", "text"],
    "plotPoint": ["plotPoint", "scene", "text"],
    "location": ["location", "text"],
    "dialogue": ["dialogue", "text"],
    "treatment": ["treatment", "text"],
    "outline": ["outline", "text"],
    "lore": ["lore", "text"],
    "timeline": ["timeline", "text"],
    "relationship": ["relationship", "text"],
    "number": ["number", "text"],
    "boolean": ["boolean"],
}

PORT_COLORS: Dict[str, str] = {
    "image": "#3b82f6",
    "video": "#8b5cf6",
    "audio": "#ec4899",
    "text": "#f97316",
    "style": "#06b6d4",
    "character": "#a855f7",
    "mesh3d": "#f59e0b",
    "garment": "#d946ef",
    "model": "#14b8a6",
    "story": "#eab308",
    "any": "#6b7280",
}

DEFAULT_PORT_COLOR = PORT_COLORS["any"]


def _name(port_type: Optional[PortTypeLike]) -> str:
    if port_type is None:
        return ""
    if isinstance(port_type, PortType):
        return port_type.value
    return str(port_type)


def known_port_types() -> List[str]:
    """All registered port type names (built-ins plus anything registered at runtime)"""
    names = [member.value for member in PortType]
    for extra in SEMANTIC_COMPATIBILITY:
        if extra not in names:
            names.append(extra)
    return names


def register_port_type(name: str, compatible_with: Optional[List[str]] = None, color: Optional[str] = None):
    """
    Register an additional port type

    Args:
        name: New type name (e.g. "outfit")
        compatible_with: Semantic neighbours (itself is always included)
        color: Optional display color
    """
    neighbours = [name] + [t for t in (compatible_with or []) if t != name]
    SEMANTIC_COMPATIBILITY[name] = neighbours
    if color:
        PORT_COLORS[name] = color


def is_compatible(output_type: PortTypeLike, input_type: PortTypeLike, strict: bool = False) -> bool:
    """
    Decide whether an output port type may connect to an input port type

    Loose mode (default): exact match, or `any` on either side.
    Strict mode: exact match only, so `any` only pairs with `any`.

    Args:
        output_type: Type of the source (output) port
        input_type: Type of the target (input) port
        strict: Use strict matching

    Returns:
        True if the connection is type-compatible
    """
    source = _name(output_type)
    target = _name(input_type)
    if not source or not target:
        return False
    if source == target:
        return True
    if strict:
        return False
    return source == ANY or target == ANY


def compatible_types(port_type: PortTypeLike) -> List[str]:
    """Types a port of `port_type` can semantically feed (always includes `any`)"""
    name = _name(port_type)
    if name == ANY:
        return known_port_types()
    neighbours = list(SEMANTIC_COMPATIBILITY.get(name, [name]))
    if ANY not in neighbours:
        neighbours.append(ANY)
    return neighbours


def port_color(port_type: PortTypeLike) -> str:
    return PORT_COLORS.get(_name(port_type), DEFAULT_PORT_COLOR)
