# castudio
# Copyright 2025 - Ricardo Quesada

"""
Structural operations over a layer tree.

Every function is pure: it returns a new tree and never mutates the one it
receives, so callers can keep the previous tree around for undo/redo.
Subtrees that are not touched are shared between the old and the new tree.

Missing ids are never an error. Lookups return None and edits return a
"not inserted"/"not found" sentinel, since the editor can hold a stale id
(e.g: the layer was deleted in the meantime).
"""

import dataclasses
import logging
from collections.abc import Iterator

from geometry import Vec2
from layer import (
    EXCLUSIVE_DISPLAY_TYPES,
    GroupLayer,
    ImageLayer,
    Layer,
    ShapeLayer,
    TextLayer,
    new_layer_id,
)

logger = logging.getLogger(__name__)

# Offset applied to duplicated layers, so that they don't hide the original one.
CLONE_OFFSET = Vec2(10, 10)
# Anchors closer than this to (0.5, 0.5) are considered centered.
ANCHOR_TOLERANCE = 1e-6


def gen_id() -> str:
    return new_layer_id()


def iter_layers(tree: Layer) -> Iterator[Layer]:
    """Depth-first, parents before children."""
    stack = [tree]
    while stack:
        layer = stack.pop()
        yield layer
        if isinstance(layer, GroupLayer):
            stack.extend(reversed(layer.children))


def layer_index(tree: Layer) -> dict[str, Layer]:
    index = {}
    for layer in iter_layers(tree):
        # keep the first one, like find_by_id()
        index.setdefault(layer.id, layer)
    return index


def find_by_id(tree: Layer, layer_id: str | None) -> Layer | None:
    if not layer_id:
        return None
    for layer in iter_layers(tree):
        if layer.id == layer_id:
            return layer
    return None


def contains_id(tree: Layer, layer_id: str) -> bool:
    return find_by_id(tree, layer_id) is not None


def find_parent(tree: Layer, layer_id: str) -> GroupLayer | None:
    for layer in iter_layers(tree):
        if isinstance(layer, GroupLayer) and any(c.id == layer_id for c in layer.children):
            return layer
    return None


def update_in_tree(tree: Layer, layer_id: str, **changes) -> Layer:
    """Returns a new tree where the layer with layer_id has the given field values."""
    if tree.id == layer_id:
        return dataclasses.replace(tree, **changes)
    if not isinstance(tree, GroupLayer):
        return tree
    children = [update_in_tree(child, layer_id, **changes) for child in tree.children]
    if all(new is old for new, old in zip(children, tree.children)):
        return tree
    return dataclasses.replace(tree, children=children)


def _evict_superseded(group: GroupLayer, node: Layer) -> GroupLayer:
    # Only text, image and gradient groups own their content exclusively.
    # Shapes, videos and groups never evict anything.
    if group.display_type not in EXCLUSIVE_DISPLAY_TYPES:
        return group
    if node.kind not in EXCLUSIVE_DISPLAY_TYPES or node.kind == group.display_type:
        return group
    superseded = group.display_type
    children = [c for c in group.children if c.kind != superseded]
    logger.debug(
        f"Group {group.id}: '{node.kind}' supersedes '{superseded}',"
        f" evicted {len(group.children) - len(children)} layer(s)"
    )
    return dataclasses.replace(group, children=children, display_type=node.kind)


def insert_into_group(
    tree: Layer, group_id: str, node: Layer, index: int | None = None
) -> tuple[bool, Layer]:
    """
    Inserts node in the group with id group_id, at index (appends by default).

    Returns:
        A tuple (inserted, new_tree). inserted is False, and the tree is
        returned untouched, when the group is not found.
    """
    if isinstance(tree, GroupLayer):
        if tree.id == group_id:
            group = _evict_superseded(tree, node)
            children = list(group.children)
            if index is None or index > len(children):
                index = len(children)
            children.insert(max(0, index), node)
            return True, dataclasses.replace(group, children=children)
        for i, child in enumerate(tree.children):
            inserted, new_child = insert_into_group(child, group_id, node, index)
            if inserted:
                children = list(tree.children)
                children[i] = new_child
                return True, dataclasses.replace(tree, children=children)
    return False, tree


def remove_from_tree(tree: Layer, layer_id: str) -> tuple[Layer | None, Layer]:
    """
    Removes the first layer with layer_id from the tree.

    Returns:
        A tuple (removed_layer, new_tree). removed_layer is None if not found.
        The root cannot be removed.
    """
    if tree.id == layer_id:
        logger.warning(f"Cannot remove root layer {layer_id}")
        return None, tree
    if not isinstance(tree, GroupLayer):
        return None, tree
    for i, child in enumerate(tree.children):
        if child.id == layer_id:
            children = tree.children[:i] + tree.children[i + 1 :]
            return child, dataclasses.replace(tree, children=children)
        removed, new_child = remove_from_tree(child, layer_id)
        if removed is not None:
            children = list(tree.children)
            children[i] = new_child
            return removed, dataclasses.replace(tree, children=children)
    return None, tree


def insert_before_in_tree(tree: Layer, target_id: str, node: Layer) -> tuple[bool, Layer]:
    """Inserts node as a sibling, right before the layer with target_id."""
    if not isinstance(tree, GroupLayer):
        return False, tree
    for i, child in enumerate(tree.children):
        if child.id == target_id:
            children = tree.children[:i] + [node] + tree.children[i:]
            return True, dataclasses.replace(tree, children=children)
        inserted, new_child = insert_before_in_tree(child, target_id, node)
        if inserted:
            children = list(tree.children)
            children[i] = new_child
            return True, dataclasses.replace(tree, children=children)
    return False, tree


def delete_in_tree(tree: Layer, layer_id: str) -> Layer:
    """Deletes the layer with layer_id, and its descendants."""
    _, new_tree = remove_from_tree(tree, layer_id)
    return new_tree


def move_into_group(
    tree: Layer, layer_id: str, group_id: str, index: int | None = None
) -> tuple[bool, Layer]:
    """Re-parents a layer. A group cannot be moved inside itself."""
    node = find_by_id(tree, layer_id)
    if node is None or node is tree:
        return False, tree
    if contains_id(node, group_id):
        logger.warning(f"Cannot move layer {layer_id} inside its own subtree {group_id}")
        return False, tree
    if not isinstance(find_by_id(tree, group_id), GroupLayer):
        return False, tree
    removed, without = remove_from_tree(tree, layer_id)
    return insert_into_group(without, group_id, removed, index)


def move_before(tree: Layer, layer_id: str, target_id: str) -> tuple[bool, Layer]:
    """Moves a layer so that it is placed right before target_id (z-order)."""
    if layer_id == target_id:
        return False, tree
    node = find_by_id(tree, layer_id)
    if node is None or node is tree or contains_id(node, target_id):
        return False, tree
    if find_by_id(tree, target_id) is None:
        return False, tree
    removed, without = remove_from_tree(tree, layer_id)
    return insert_before_in_tree(without, target_id, removed)


def _swap_with_sibling(tree: Layer, layer_id: str, delta: int) -> tuple[bool, Layer]:
    parent = find_parent(tree, layer_id)
    if parent is None:
        return False, tree
    children = list(parent.children)
    idx = next(i for i, c in enumerate(children) if c.id == layer_id)
    other = idx + delta
    if other < 0 or other >= len(children):
        return False, tree
    children[idx], children[other] = children[other], children[idx]
    return True, update_in_tree(tree, parent.id, children=children)


def bring_forward(tree: Layer, layer_id: str) -> tuple[bool, Layer]:
    # Later siblings render on top
    return _swap_with_sibling(tree, layer_id, 1)


def send_backward(tree: Layer, layer_id: str) -> tuple[bool, Layer]:
    return _swap_with_sibling(tree, layer_id, -1)


def clone_layer_deep(layer: Layer) -> Layer:
    """
    Deep copies a layer.

    Every cloned layer, children included, gets a fresh id, " copy" appended
    to its name and its position offset by CLONE_OFFSET.
    """
    changes = {
        "id": gen_id(),
        "name": f"{layer.name} copy",
        "position": Vec2(layer.position.x + CLONE_OFFSET.x, layer.position.y + CLONE_OFFSET.y),
    }
    if isinstance(layer, GroupLayer):
        changes["children"] = [clone_layer_deep(child) for child in layer.children]
        changes["display_props"] = dict(layer.display_props)
    if layer.animation is not None:
        changes["animation"] = dataclasses.replace(layer.animation, values=list(layer.animation.values))
    return dataclasses.replace(layer, **changes)


def _display_props_for(leaf: Layer) -> dict:
    match leaf:
        case ShapeLayer():
            props = {
                "shape": leaf.shape,
                "fill": leaf.fill,
                "stroke": leaf.stroke,
                "stroke_width": leaf.stroke_width,
                "radius": leaf.radius,
            }
        case ImageLayer():
            props = {"src": leaf.src, "fit": leaf.fit}
        case TextLayer():
            props = {
                "text": leaf.text,
                "font_family": leaf.font_family,
                "font_size": leaf.font_size,
                "color": leaf.color,
                "align": leaf.align,
            }
        case _:
            props = {}
    return {k: v for k, v in props.items() if v is not None}


def wrap_as_group(tree: Layer, target_id: str) -> tuple[Layer, str | None]:
    """
    Converts a leaf layer into a group that contains that leaf.

    The new group takes over the leaf's position, size, rotation and anchor,
    so the layer looks the same from the outside. The leaf keeps its size and
    its position, loses its rotation and gets a centered anchor. Positions
    are absolute (see caml.py), so it ends up at the center of the group.
    Kind specific properties of the leaf are copied into the group's
    display_props.

    Returns:
        A tuple (new_tree, group_id). Wrapping a group returns its own id and
        the same tree. group_id is None if target_id is not found.
    """
    target = find_by_id(tree, target_id)
    if target is None:
        return tree, None
    if isinstance(target, GroupLayer):
        return tree, target.id

    group_id = gen_id()
    child_changes = {"rotation": 0}
    anchor = target.effective_anchor_point
    if abs(anchor.x - 0.5) > ANCHOR_TOLERANCE or abs(anchor.y - 0.5) > ANCHOR_TOLERANCE:
        child_changes["anchor_point"] = Vec2(0.5, 0.5)
    child = dataclasses.replace(target, **child_changes)

    group = GroupLayer(
        id=group_id,
        name=target.name,
        position=target.position,
        size=target.size,
        rotation=target.rotation,
        anchor_point=target.anchor_point,
        opacity=target.opacity,
        visible=target.visible,
        children=[child],
        display_type=target.kind,
        display_props=_display_props_for(target),
    )

    if tree.id == target_id:
        return group, group_id
    inserted, new_tree = insert_before_in_tree(tree, target_id, group)
    if not inserted:
        return tree, None
    # Removes the original leaf, which now lives inside the group.
    new_tree = _remove_sibling_after(new_tree, group_id, target_id)
    return new_tree, group_id


def _remove_sibling_after(tree: Layer, group_id: str, target_id: str) -> Layer:
    if not isinstance(tree, GroupLayer):
        return tree
    ids = [c.id for c in tree.children]
    if group_id in ids:
        idx = ids.index(group_id)
        children = [c for i, c in enumerate(tree.children) if not (i == idx + 1 and c.id == target_id)]
        return dataclasses.replace(tree, children=children)
    children = [_remove_sibling_after(c, group_id, target_id) for c in tree.children]
    if all(new is old for new, old in zip(children, tree.children)):
        return tree
    return dataclasses.replace(tree, children=children)
