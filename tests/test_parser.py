"""Tests for the design-tree parser."""

from __future__ import annotations

import base64
import json

import pytest

from builders import frame, image_fill, rect, solid, text
from design2email.parser import (
    AxisAlign,
    DesignTreeError,
    DesignTreeParser,
    LayoutMode,
    NodeKind,
    PaintType,
)


@pytest.fixture
def parser() -> DesignTreeParser:
    return DesignTreeParser()


# ---------------------------------------------------------------------------
# Selection shapes
# ---------------------------------------------------------------------------

class TestSelection:
    def test_single_node(self, parser: DesignTreeParser) -> None:
        nodes = parser.parse(rect("r1"))
        assert len(nodes) == 1
        assert nodes[0].kind is NodeKind.RECTANGLE

    def test_list_of_nodes(self, parser: DesignTreeParser) -> None:
        nodes = parser.parse([rect("a"), rect("b")])
        assert [n.id for n in nodes] == ["a", "b"]

    def test_selection_wrapper(self, parser: DesignTreeParser) -> None:
        nodes = parser.parse({"selection": [rect("a")]})
        assert nodes[0].id == "a"

    def test_parse_json(self, parser: DesignTreeParser) -> None:
        nodes = parser.parse_json(json.dumps([text("t1", "Hi")]))
        assert nodes[0].characters == "Hi"

    def test_invalid_json_raises(self, parser: DesignTreeParser) -> None:
        with pytest.raises(DesignTreeError):
            parser.parse_json("{not json")

    def test_missing_type_raises(self, parser: DesignTreeParser) -> None:
        with pytest.raises(DesignTreeError):
            parser.parse({"id": "x"})

    def test_non_numeric_geometry_raises(self, parser: DesignTreeParser) -> None:
        with pytest.raises(DesignTreeError):
            parser.parse(rect("r", width="wide"))

    def test_scalar_input_raises(self, parser: DesignTreeParser) -> None:
        with pytest.raises(DesignTreeError):
            parser.parse(42)


# ---------------------------------------------------------------------------
# Node kinds and tree structure
# ---------------------------------------------------------------------------

class TestNodeKinds:
    @pytest.mark.parametrize(
        "host_type, kind",
        [
            ("FRAME", NodeKind.FRAME),
            ("GROUP", NodeKind.GROUP),
            ("COMPONENT", NodeKind.COMPONENT),
            ("INSTANCE", NodeKind.INSTANCE),
            ("RECTANGLE", NodeKind.RECTANGLE),
            ("ELLIPSE", NodeKind.ELLIPSE),
            ("VECTOR", NodeKind.VECTOR),
            ("STAR", NodeKind.VECTOR),
            ("LINE", NodeKind.LINE),
            ("TEXT", NodeKind.TEXT),
            ("STICKY", NodeKind.UNSUPPORTED),
        ],
    )
    def test_kind_mapping(self, parser: DesignTreeParser, host_type: str, kind: NodeKind) -> None:
        node = parser.parse_node({"type": host_type, "id": "n"})
        assert node.kind is kind
        assert node.source_type == host_type

    def test_children_get_parent(self, parser: DesignTreeParser) -> None:
        root = parser.parse_node(frame("f", [rect("a"), rect("b")]))
        assert [c.id for c in root.children] == ["a", "b"]
        assert all(c.parent is root for c in root.children)
        assert root.parent is None

    def test_invisible_flag(self, parser: DesignTreeParser) -> None:
        root = parser.parse_node(frame("f", [rect("a", visible=False), rect("b")]))
        assert [c.id for c in root.visible_children] == ["b"]
        assert [n.id for n in root.walk()] == ["f", "b"]

    def test_auto_layout_fields(self, parser: DesignTreeParser) -> None:
        node = parser.parse_node(frame(
            "f",
            layoutMode="HORIZONTAL",
            paddingTop=8, paddingBottom=4, paddingLeft=16, paddingRight=12,
            itemSpacing=10,
            primaryAxisAlignItems="SPACE_BETWEEN",
            counterAxisAlignItems="CENTER",
        ))
        assert node.layout_mode is LayoutMode.HORIZONTAL
        assert node.padding.top == 8
        assert node.padding.horizontal == 28
        assert node.item_spacing == 10
        assert node.primary_align is AxisAlign.SPACE_BETWEEN
        assert node.counter_align is AxisAlign.CENTER

    def test_mixed_corner_radius_ignored(self, parser: DesignTreeParser) -> None:
        node = parser.parse_node(rect("r", cornerRadius="mixed"))
        assert node.corner_radius == 0.0

    def test_exported_image_decoded(self, parser: DesignTreeParser) -> None:
        payload = base64.b64encode(b"\x89PNG").decode()
        node = parser.parse_node(rect("r", exportedImage=payload))
        assert node.export_data == b"\x89PNG"

    def test_bad_exported_image_raises(self, parser: DesignTreeParser) -> None:
        with pytest.raises(DesignTreeError):
            parser.parse_node(rect("r", exportedImage="***"))


# ---------------------------------------------------------------------------
# Paints
# ---------------------------------------------------------------------------

class TestPaints:
    def test_solid(self, parser: DesignTreeParser) -> None:
        node = parser.parse_node(rect("r", fills=[solid(1, 0.5, 0, opacity=0.4)]))
        paint = node.fills[0]
        assert paint.type is PaintType.SOLID
        assert paint.color == (1.0, 0.5, 0.0)
        assert paint.opacity == pytest.approx(0.4)

    def test_gradient_stops(self, parser: DesignTreeParser) -> None:
        gradient = {
            "type": "GRADIENT_LINEAR",
            "gradientStops": [
                {"color": {"r": 0, "g": 0, "b": 1, "a": 0.5}, "position": 0},
                {"color": {"r": 1, "g": 1, "b": 1, "a": 1}, "position": 1},
            ],
        }
        node = parser.parse_node(rect("r", fills=[gradient]))
        paint = node.fills[0]
        assert paint.type is PaintType.GRADIENT
        assert paint.stops[0].alpha == pytest.approx(0.5)
        assert len(paint.stops) == 2

    def test_image_paint(self, parser: DesignTreeParser) -> None:
        node = parser.parse_node(rect("r", fills=[image_fill("abc")]))
        assert node.fills[0].type is PaintType.IMAGE
        assert node.fills[0].image_ref == "abc"

    def test_unknown_paint_dropped(self, parser: DesignTreeParser) -> None:
        node = parser.parse_node(rect("r", fills=[{"type": "VIDEO"}, solid(0, 0, 0)]))
        assert len(node.fills) == 1

    def test_opacity_clamped(self, parser: DesignTreeParser) -> None:
        node = parser.parse_node(rect("r", fills=[solid(0, 0, 0, opacity=3)]))
        assert node.fills[0].opacity == 1.0

    def test_gradient_stop_colour_must_be_object(self, parser: DesignTreeParser) -> None:
        gradient = {"type": "GRADIENT_LINEAR", "gradientStops": [{"color": "red", "position": 0}]}
        with pytest.raises(DesignTreeError):
            parser.parse_node(rect("r", fills=[gradient]))


# ---------------------------------------------------------------------------
# Text
# ---------------------------------------------------------------------------

class TestText:
    def test_single_run_from_node_style(self, parser: DesignTreeParser) -> None:
        node = parser.parse_node(text("t", "Hello", textAlignHorizontal="CENTER"))
        assert node.text_align == "CENTER"
        assert len(node.segments) == 1
        seg = node.segments[0]
        assert seg.characters == "Hello"
        assert seg.font is not None and seg.font.family == "Inter"
        assert seg.font_size == 16

    def test_styled_segments_inherit_missing_keys(self, parser: DesignTreeParser) -> None:
        node = parser.parse_node(text(
            "t", "Hello world",
            styledSegments=[
                {"characters": "Hello ", "fontName": {"family": "Inter", "style": "Bold"}},
                {"characters": "world", "textDecoration": "UNDERLINE",
                 "hyperlink": {"type": "URL", "value": "https://example.com"}},
            ],
        ))
        bold, link = node.segments
        assert bold.font.style == "Bold"
        assert link.font.family == "Inter"
        assert link.decoration == "UNDERLINE"
        assert link.hyperlink == "https://example.com"

    def test_mixed_font_is_unresolved(self, parser: DesignTreeParser) -> None:
        node = parser.parse_node(text("t", "Hi", fontName="mixed"))
        assert node.segments[0].font is None

    def test_mixed_size_is_unresolved(self, parser: DesignTreeParser) -> None:
        node = parser.parse_node(text("t", "Hi", fontSize="mixed"))
        assert node.segments[0].font is None

    def test_line_height_and_spacing(self, parser: DesignTreeParser) -> None:
        node = parser.parse_node(text(
            "t", "Hi",
            lineHeight={"unit": "PERCENT", "value": 150},
            letterSpacing={"unit": "PIXELS", "value": 2},
        ))
        seg = node.segments[0]
        assert seg.line_height.unit == "PERCENT"
        assert seg.line_height.value == 150
        assert seg.letter_spacing.value == 2

    def test_empty_text_has_no_segments(self, parser: DesignTreeParser) -> None:
        node = parser.parse_node(text("t", ""))
        assert node.segments == []
