"""Design-tree parser that produces the read-only node model for rendering.

Accepts the JSON a design-tool plugin serialises for the current selection
(a list of nodes, a single node, or ``{"selection": [...]}``) and converts
it into a tree of :class:`DesignNode` objects with parent links.
"""

from __future__ import annotations

import base64
import binascii
import json
import weakref
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, NamedTuple, Optional


class DesignTreeError(ValueError):
    """Raised when the design-tree input cannot be interpreted."""


# ---------------------------------------------------------------------------
# Node model
# ---------------------------------------------------------------------------

class NodeKind(Enum):
    FRAME = "frame"
    GROUP = "group"
    COMPONENT = "component"
    INSTANCE = "instance"
    RECTANGLE = "rectangle"
    ELLIPSE = "ellipse"
    VECTOR = "vector"
    LINE = "line"
    TEXT = "text"
    UNSUPPORTED = "unsupported"


CONTAINER_KINDS = frozenset({
    NodeKind.FRAME, NodeKind.GROUP, NodeKind.COMPONENT, NodeKind.INSTANCE,
})
SHAPE_KINDS = frozenset({NodeKind.RECTANGLE, NodeKind.ELLIPSE})
GRAPHIC_KINDS = frozenset({
    NodeKind.VECTOR, NodeKind.LINE, NodeKind.ELLIPSE, NodeKind.RECTANGLE,
})


class PaintType(Enum):
    SOLID = "solid"
    GRADIENT = "gradient"
    IMAGE = "image"


class LayoutMode(Enum):
    NONE = "none"
    VERTICAL = "vertical"
    HORIZONTAL = "horizontal"


class AxisAlign(Enum):
    MIN = "min"
    CENTER = "center"
    MAX = "max"
    SPACE_BETWEEN = "space_between"


class RGB(NamedTuple):
    """An opaque colour with channels in ``0..1``."""

    r: float
    g: float
    b: float


@dataclass(frozen=True)
class GradientStop:
    color: RGB
    alpha: float = 1.0
    position: float = 0.0


@dataclass
class Paint:
    type: PaintType
    color: Optional[RGB] = None
    stops: list[GradientStop] = field(default_factory=list)
    opacity: float = 1.0
    visible: bool = True
    image_ref: str = ""


@dataclass(frozen=True)
class FontName:
    family: str
    style: str = "Regular"


@dataclass(frozen=True)
class UnitValue:
    """A host measurement such as line height or letter spacing."""

    unit: str = "AUTO"  # AUTO, PIXELS, PERCENT
    value: float = 0.0


@dataclass
class TextSegment:
    """A style-homogeneous run of characters inside a text node.

    ``font`` is ``None`` when the host reported a mixed or missing font.
    """

    characters: str
    font: Optional[FontName] = None
    font_size: float = 16.0
    fills: list[Paint] = field(default_factory=list)
    line_height: UnitValue = field(default_factory=UnitValue)
    letter_spacing: UnitValue = field(default_factory=lambda: UnitValue("PIXELS", 0.0))
    decoration: str = "NONE"
    hyperlink: str = ""


@dataclass(frozen=True)
class Padding:
    top: float = 0.0
    bottom: float = 0.0
    left: float = 0.0
    right: float = 0.0

    @property
    def horizontal(self) -> float:
        return self.left + self.right

    @property
    def is_zero(self) -> bool:
        return not (self.top or self.bottom or self.left or self.right)


@dataclass(eq=False)
class DesignNode:
    kind: NodeKind
    id: str = ""
    name: str = ""
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0
    visible: bool = True
    fills: list[Paint] = field(default_factory=list)
    strokes: list[Paint] = field(default_factory=list)
    stroke_weight: float = 0.0
    corner_radius: float = 0.0
    # Auto-layout
    layout_mode: LayoutMode = LayoutMode.NONE
    padding: Padding = field(default_factory=Padding)
    item_spacing: float = 0.0
    primary_align: AxisAlign = AxisAlign.MIN
    counter_align: AxisAlign = AxisAlign.MIN
    # Text
    characters: str = ""
    text_align: str = "LEFT"
    segments: list[TextSegment] = field(default_factory=list)
    # Pre-exported raster supplied by the host, if any
    export_data: bytes = b""
    children: list[DesignNode] = field(default_factory=list)
    source_type: str = ""
    _parent: Optional[weakref.ref] = field(default=None, repr=False)

    # -- tree helpers -------------------------------------------------------

    @property
    def parent(self) -> Optional[DesignNode]:
        return self._parent() if self._parent is not None else None

    def append(self, child: DesignNode) -> DesignNode:
        """Attach *child* as the last child and return it."""
        child._parent = weakref.ref(self)
        self.children.append(child)
        return child

    @property
    def visible_children(self) -> list[DesignNode]:
        return [c for c in self.children if c.visible]

    def walk(self) -> Iterator[DesignNode]:
        """Yield this node and its visible descendants in document order."""
        if not self.visible:
            return
        yield self
        for child in self.children:
            yield from child.walk()

    # -- geometry -----------------------------------------------------------

    @property
    def bottom(self) -> float:
        return self.y + self.height


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

_LAYOUT_MODES = {
    "NONE": LayoutMode.NONE,
    "VERTICAL": LayoutMode.VERTICAL,
    "HORIZONTAL": LayoutMode.HORIZONTAL,
}

_AXIS_ALIGN = {
    "MIN": AxisAlign.MIN,
    "CENTER": AxisAlign.CENTER,
    "MAX": AxisAlign.MAX,
    "SPACE_BETWEEN": AxisAlign.SPACE_BETWEEN,
    "BASELINE": AxisAlign.MIN,
}

_GRADIENT_TYPES = {
    "GRADIENT_LINEAR", "GRADIENT_RADIAL", "GRADIENT_ANGULAR", "GRADIENT_DIAMOND",
}


def _number(value: Any, default: float = 0.0, *, key: str = "") -> float:
    if value is None:
        return default
    if isinstance(value, bool):
        raise DesignTreeError(f"Expected a number for {key or 'value'}, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise DesignTreeError(
            f"Expected a number for {key or 'value'}, got {value!r}"
        ) from None


def _unit(value: Any, default: float = 1.0) -> float:
    """Clamp an opacity-like value into ``0..1``."""
    return max(0.0, min(1.0, _number(value, default, key="opacity")))


class DesignTreeParser:
    """Parse serialised design-tool nodes into :class:`DesignNode` trees."""

    # -- public API ---------------------------------------------------------

    def parse_json(self, text: str) -> list[DesignNode]:
        """Decode *text* as JSON and return the top-level selection."""
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise DesignTreeError(f"Invalid design JSON: {exc}") from exc
        return self.parse(data)

    def parse(self, data: Any) -> list[DesignNode]:
        """Return the top-level nodes described by *data*."""
        if isinstance(data, dict) and "selection" in data:
            data = data["selection"]
        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list):
            raise DesignTreeError(
                f"Expected a node, a list of nodes or a selection, got {type(data).__name__}"
            )
        return [self.parse_node(item) for item in data]

    def parse_node(self, data: Any, parent: Optional[DesignNode] = None) -> DesignNode:
        if not isinstance(data, dict):
            raise DesignTreeError(f"Expected a node object, got {type(data).__name__}")
        ntype = data.get("type")
        if not isinstance(ntype, str) or not ntype:
            raise DesignTreeError(f"Node {data.get('id', '?')!r} has no type")

        handler = getattr(self, f"_handle_{ntype.lower()}", None)
        if handler is not None:
            node = handler(data)
        else:
            node = self._base_node(data, NodeKind.UNSUPPORTED)

        if parent is not None:
            parent.append(node)
        return node

    # -- node handlers ------------------------------------------------------

    def _handle_frame(self, data: dict) -> DesignNode:
        return self._container(data, NodeKind.FRAME)

    def _handle_group(self, data: dict) -> DesignNode:
        return self._container(data, NodeKind.GROUP)

    def _handle_section(self, data: dict) -> DesignNode:
        return self._container(data, NodeKind.FRAME)

    def _handle_component(self, data: dict) -> DesignNode:
        return self._container(data, NodeKind.COMPONENT)

    def _handle_component_set(self, data: dict) -> DesignNode:
        return self._container(data, NodeKind.COMPONENT)

    def _handle_instance(self, data: dict) -> DesignNode:
        return self._container(data, NodeKind.INSTANCE)

    def _handle_rectangle(self, data: dict) -> DesignNode:
        return self._base_node(data, NodeKind.RECTANGLE)

    def _handle_ellipse(self, data: dict) -> DesignNode:
        return self._base_node(data, NodeKind.ELLIPSE)

    def _handle_line(self, data: dict) -> DesignNode:
        return self._base_node(data, NodeKind.LINE)

    def _handle_vector(self, data: dict) -> DesignNode:
        return self._base_node(data, NodeKind.VECTOR)

    def _handle_star(self, data: dict) -> DesignNode:
        return self._base_node(data, NodeKind.VECTOR)

    def _handle_polygon(self, data: dict) -> DesignNode:
        return self._base_node(data, NodeKind.VECTOR)

    def _handle_boolean_operation(self, data: dict) -> DesignNode:
        return self._base_node(data, NodeKind.VECTOR)

    def _handle_text(self, data: dict) -> DesignNode:
        node = self._base_node(data, NodeKind.TEXT)
        node.characters = str(data.get("characters") or "")
        node.text_align = str(data.get("textAlignHorizontal") or "LEFT").upper()

        raw_segments = data.get("styledSegments")
        if isinstance(raw_segments, list) and raw_segments:
            node.segments = [self._segment(seg, data) for seg in raw_segments]
        elif node.characters:
            node.segments = [self._segment({"characters": node.characters}, data)]
        return node

    # -- building blocks ----------------------------------------------------

    def _base_node(self, data: dict, kind: NodeKind) -> DesignNode:
        node = DesignNode(
            kind=kind,
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            x=_number(data.get("x"), key="x"),
            y=_number(data.get("y"), key="y"),
            width=_number(data.get("width"), key="width"),
            height=_number(data.get("height"), key="height"),
            visible=data.get("visible", True) is not False,
            fills=self._paints(data.get("fills")),
            strokes=self._paints(data.get("strokes")),
            stroke_weight=self._optional_number(data.get("strokeWeight")),
            corner_radius=self._optional_number(data.get("cornerRadius")),
            source_type=str(data.get("type", "")),
        )
        exported = data.get("exportedImage")
        if exported:
            try:
                node.export_data = base64.b64decode(exported, validate=True)
            except (binascii.Error, TypeError, ValueError) as exc:
                raise DesignTreeError(
                    f"Node {node.id!r} has an invalid exportedImage payload"
                ) from exc
        return node

    def _container(self, data: dict, kind: NodeKind) -> DesignNode:
        node = self._base_node(data, kind)
        mode = str(data.get("layoutMode") or "NONE").upper()
        node.layout_mode = _LAYOUT_MODES.get(mode, LayoutMode.NONE)
        node.padding = Padding(
            top=_number(data.get("paddingTop"), key="paddingTop"),
            bottom=_number(data.get("paddingBottom"), key="paddingBottom"),
            left=_number(data.get("paddingLeft"), key="paddingLeft"),
            right=_number(data.get("paddingRight"), key="paddingRight"),
        )
        node.item_spacing = _number(data.get("itemSpacing"), key="itemSpacing")
        node.primary_align = _AXIS_ALIGN.get(
            str(data.get("primaryAxisAlignItems") or "MIN").upper(), AxisAlign.MIN
        )
        node.counter_align = _AXIS_ALIGN.get(
            str(data.get("counterAxisAlignItems") or "MIN").upper(), AxisAlign.MIN
        )
        children = data.get("children") or []
        if not isinstance(children, list):
            raise DesignTreeError(f"Node {node.id!r} has non-list children")
        for child in children:
            self.parse_node(child, parent=node)
        return node

    def _optional_number(self, value: Any) -> float:
        # The host reports "mixed" for per-side strokes and radii.
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        return 0.0

    def _paints(self, raw: Any) -> list[Paint]:
        if not isinstance(raw, list):
            return []
        paints: list[Paint] = []
        for item in raw:
            if not isinstance(item, dict):
                continue
            paint = self._paint(item)
            if paint is not None:
                paints.append(paint)
        return paints

    def _paint(self, raw: dict) -> Optional[Paint]:
        ptype = str(raw.get("type", "")).upper()
        opacity = _unit(raw.get("opacity"), 1.0)
        visible = raw.get("visible", True) is not False

        if ptype == "SOLID":
            return Paint(
                type=PaintType.SOLID,
                color=self._rgb(raw.get("color")),
                opacity=opacity,
                visible=visible,
            )
        if ptype in _GRADIENT_TYPES:
            stops = [
                self._gradient_stop(stop)
                for stop in raw.get("gradientStops") or []
                if isinstance(stop, dict)
            ]
            return Paint(type=PaintType.GRADIENT, stops=stops, opacity=opacity, visible=visible)
        if ptype == "IMAGE":
            return Paint(
                type=PaintType.IMAGE,
                opacity=opacity,
                visible=visible,
                image_ref=str(raw.get("imageHash") or raw.get("imageRef") or ""),
            )
        return None

    def _gradient_stop(self, raw: dict) -> GradientStop:
        color = raw.get("color")
        if color is not None and not isinstance(color, dict):
            raise DesignTreeError(f"Gradient stop colour must be an object, got {color!r}")
        return GradientStop(
            color=self._rgb(color),
            alpha=_unit((color or {}).get("a"), 1.0),
            position=_number(raw.get("position"), key="position"),
        )

    def _rgb(self, raw: Any) -> RGB:
        if not isinstance(raw, dict):
            return RGB(0.0, 0.0, 0.0)
        return RGB(
            _unit(raw.get("r"), 0.0),
            _unit(raw.get("g"), 0.0),
            _unit(raw.get("b"), 0.0),
        )

    def _segment(self, raw: dict, node_data: dict) -> TextSegment:
        """Build a run, falling back to node-level style for missing keys."""

        def pick(key: str) -> Any:
            return raw[key] if key in raw else node_data.get(key)

        font = self._font(pick("fontName"))
        size = pick("fontSize")
        if isinstance(size, (int, float)) and not isinstance(size, bool):
            font_size = float(size)
        else:
            # A mixed size means the run has no single font identity either.
            font_size = 16.0
            if size is not None:
                font = None

        return TextSegment(
            characters=str(raw.get("characters") or ""),
            font=font,
            font_size=font_size,
            fills=self._paints(pick("fills")),
            line_height=self._unit_value(pick("lineHeight"), "AUTO"),
            letter_spacing=self._unit_value(pick("letterSpacing"), "PIXELS"),
            decoration=str(pick("textDecoration") or "NONE").upper(),
            hyperlink=self._hyperlink(pick("hyperlink")),
        )

    def _font(self, raw: Any) -> Optional[FontName]:
        if not isinstance(raw, dict):
            return None
        family = raw.get("family")
        if not isinstance(family, str) or not family:
            return None
        return FontName(family=family, style=str(raw.get("style") or "Regular"))

    def _unit_value(self, raw: Any, default_unit: str) -> UnitValue:
        if not isinstance(raw, dict):
            return UnitValue(default_unit, 0.0)
        unit = str(raw.get("unit") or default_unit).upper()
        return UnitValue(unit, _number(raw.get("value"), key="unit value"))

    def _hyperlink(self, raw: Any) -> str:
        if isinstance(raw, str):
            return raw
        if isinstance(raw, dict) and str(raw.get("type", "")).upper() == "URL":
            return str(raw.get("value") or "")
        return ""
