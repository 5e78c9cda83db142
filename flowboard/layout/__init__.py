"""
Spatial layout for Flowboard
"""
from .collision import (
    NodeBox,
    snap_to_grid,
    find_collisions,
    find_nearest_free_position,
    resolve_all_collisions,
    has_any_collisions,
)
from .auto_layout import (
    LayoutDirection,
    LayoutOptions,
    LayoutResult,
    compute_auto_layout,
    apply_layout_to_selection,
    apply_layout_with_collision_resolution,
)

__all__ = [
    "NodeBox",
    "snap_to_grid",
    "find_collisions",
    "find_nearest_free_position",
    "resolve_all_collisions",
    "has_any_collisions",
    "LayoutDirection",
    "LayoutOptions",
    "LayoutResult",
    "compute_auto_layout",
    "apply_layout_to_selection",
    "apply_layout_with_collision_resolution",
]
