"""Pick a rendering strategy for each design node.

The checks run in a fixed order and the first match wins: image-like
subtrees, bullet items, confirmed call-to-action buttons, containers,
shapes, text.  Anything else renders as nothing.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import AbstractSet, Iterable

from design2email.parser import (
    CONTAINER_KINDS,
    GRAPHIC_KINDS,
    SHAPE_KINDS,
    DesignNode,
    LayoutMode,
    NodeKind,
    PaintType,
)


class RenderStrategy(Enum):
    IMAGE = "image"
    BULLET = "bullet"
    CTA = "cta"
    CONTAINER = "container"
    SHAPE = "shape"
    TEXT = "text"
    UNSUPPORTED = "unsupported"


BULLET_GLYPHS = frozenset({"•", "*", "-"})

_IMAGE_NAME_RE = re.compile(r"\.(jpe?g|png|gif)$", re.IGNORECASE)


def _graphic_leaves_only(node: DesignNode) -> bool:
    children = node.visible_children
    if not children:
        return False
    for child in children:
        if child.kind in CONTAINER_KINDS:
            if not _graphic_leaves_only(child):
                return False
        elif child.kind not in GRAPHIC_KINDS:
            return False
    return True


def is_image_like(node: DesignNode) -> bool:
    """True for icons, illustrations and image-filled shapes."""
    if node.kind in CONTAINER_KINDS:
        return _graphic_leaves_only(node)
    if node.kind is NodeKind.VECTOR:
        return True
    if node.kind in SHAPE_KINDS:
        if any(p.visible and p.type is PaintType.IMAGE for p in node.fills):
            return True
        return node.kind is NodeKind.RECTANGLE and bool(_IMAGE_NAME_RE.search(node.name))
    return False


def is_bullet_item(node: DesignNode) -> bool:
    if node.kind not in CONTAINER_KINDS or node.layout_mode is not LayoutMode.HORIZONTAL:
        return False
    children = node.visible_children
    if len(children) != 2 or any(c.kind is not NodeKind.TEXT for c in children):
        return False
    return children[0].characters.strip() in BULLET_GLYPHS


def is_cta_candidate(node: DesignNode) -> bool:
    """Structural button check: one text plus one rectangle or ellipse."""
    if node.kind not in CONTAINER_KINDS:
        return False
    children = node.visible_children
    if len(children) != 2:
        return False
    kinds = [c.kind for c in children]
    return NodeKind.TEXT in kinds and any(k in SHAPE_KINDS for k in kinds)


def find_cta_candidates(nodes: Iterable[DesignNode]) -> list[DesignNode]:
    """Collect button-shaped containers anywhere in the visible selection."""
    found: list[DesignNode] = []
    for root in nodes:
        for node in root.walk():
            if is_cta_candidate(node):
                found.append(node)
    return found


def classify(
    node: DesignNode, confirmed_ids: AbstractSet[str] = frozenset()
) -> RenderStrategy:
    if is_image_like(node):
        return RenderStrategy.IMAGE
    if is_bullet_item(node):
        return RenderStrategy.BULLET
    if node.id in confirmed_ids and is_cta_candidate(node):
        return RenderStrategy.CTA
    if node.kind in CONTAINER_KINDS:
        if not node.visible_children:
            return RenderStrategy.SHAPE
        return RenderStrategy.CONTAINER
    if node.kind in SHAPE_KINDS or node.kind is NodeKind.LINE:
        return RenderStrategy.SHAPE
    if node.kind is NodeKind.TEXT:
        return RenderStrategy.TEXT
    return RenderStrategy.UNSUPPORTED
