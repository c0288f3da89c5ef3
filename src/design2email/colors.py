"""Colour resolution for table markup.

Email clients cannot composite translucent colours, so every fill is
flattened to one opaque colour against the background already resolved for
its ancestors.  The resolved background is carried down the render
recursion; only border colours look upwards through the parent chain.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional

from design2email.parser import DesignNode, Paint, PaintType, RGB

WHITE = RGB(1.0, 1.0, 1.0)

# Opacities at or above this are treated as opaque to avoid float noise.
OPAQUE_THRESHOLD = 0.99


@dataclass(frozen=True)
class ResolvedColor:
    """An opaque colour plus its hex form.

    ``hex`` is ``None`` when the node has no colour of its own and the
    inherited background shows through.
    """

    rgb: RGB
    hex: Optional[str] = None


def to_hex(rgb: RGB) -> str:
    """Encode *rgb* as ``#rrggbb``.

    Channels are scaled to 0..255 and rounded to the nearest integer, with
    exact halves going down (``0.5`` encodes as ``7f``).
    """

    def channel(c: float) -> str:
        value = math.ceil(c * 255 - 0.5)
        return f"{max(0, min(255, value)):02x}"

    return f"#{channel(rgb.r)}{channel(rgb.g)}{channel(rgb.b)}"


def blend(fg: RGB, bg: RGB, alpha: float) -> RGB:
    """Alpha-composite *fg* over *bg*."""
    return RGB(
        fg.r * alpha + bg.r * (1 - alpha),
        fg.g * alpha + bg.g * (1 - alpha),
        fg.b * alpha + bg.b * (1 - alpha),
    )


def first_visible_paint(paints: Iterable[Paint]) -> Optional[Paint]:
    for paint in paints:
        if paint.visible:
            return paint
    return None


def _flat_color(paint: Paint) -> Optional[tuple[RGB, float]]:
    """Return the single colour and alpha a paint is approximated by."""
    if paint.type is PaintType.SOLID and paint.color is not None:
        return paint.color, paint.opacity
    if paint.type is PaintType.GRADIENT and paint.stops:
        stop = paint.stops[0]
        return stop.color, stop.alpha * paint.opacity
    return None


def resolve_paints(paints: Iterable[Paint], background: RGB) -> ResolvedColor:
    """Flatten the first visible paint in *paints* against *background*."""
    paint = first_visible_paint(paints)
    if paint is None:
        return ResolvedColor(background)
    flat = _flat_color(paint)
    if flat is None:
        return ResolvedColor(background)

    color, alpha = flat
    if alpha >= OPAQUE_THRESHOLD:
        return ResolvedColor(color, to_hex(color))
    mixed = blend(color, background, alpha)
    return ResolvedColor(mixed, to_hex(mixed))


def resolve_fill(node: DesignNode, background: RGB) -> ResolvedColor:
    return resolve_paints(node.fills, background)


def ancestor_background(node: DesignNode) -> RGB:
    """Walk up from *node* to the nearest parent with an opaque fill."""
    parent = node.parent
    while parent is not None:
        paint = first_visible_paint(parent.fills)
        flat = _flat_color(paint) if paint is not None else None
        if flat is not None and flat[1] >= OPAQUE_THRESHOLD:
            return flat[0]
        parent = parent.parent
    return WHITE


def resolve_stroke(node: DesignNode) -> Optional[str]:
    """Hex colour of the node's border, or ``None`` when it has none."""
    if node.stroke_weight <= 0:
        return None
    return resolve_paints(node.strokes, ancestor_background(node)).hex
