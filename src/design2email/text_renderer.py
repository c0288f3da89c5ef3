"""Text nodes to inline-styled table cells.

Each text node arrives with host-computed runs (:class:`TextSegment`).  A
node with a single run carries its styles on the cell; several runs become
one ``<span>`` each inside the same cell.
"""

from __future__ import annotations

import html
import logging
from typing import Iterable, Optional

from design2email.colors import resolve_paints
from design2email.parser import DesignNode, FontName, NodeKind, RGB, TextSegment
from design2email.style_manager import StyleAccumulator
from design2email.table_handler import TABLE_ATTRS

logger = logging.getLogger(__name__)

BULLET_ENTITIES = {
    "•": "&bull;",
    "*": "&lowast;",
    "-": "&ndash;",
}

_ALIGN_MAP = {
    "LEFT": "left",
    "CENTER": "center",
    "RIGHT": "right",
    "JUSTIFIED": "justify",
}

_DECORATION_MAP = {
    "UNDERLINE": "underline",
    "STRIKETHROUGH": "line-through",
}


def escape_text(text: str) -> str:
    """Escape markup characters and turn newlines into line breaks."""
    escaped = text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
    return escaped.replace("\r\n", "\n").replace("\n", "<br />")


def collect_fonts(nodes: Iterable[DesignNode]) -> list[FontName]:
    """Distinct fonts used by visible text under *nodes*, in document order."""
    fonts: dict[FontName, None] = {}
    for root in nodes:
        for node in root.walk():
            if node.kind is not NodeKind.TEXT:
                continue
            for segment in node.segments:
                if segment.font is not None:
                    fonts.setdefault(segment.font)
    return list(fonts)


def _quote_family(family: str) -> str:
    return f"'{family}'" if " " in family.strip() else family


class TextRenderer:
    """Render text nodes and runs."""

    def __init__(self, font_fallback: str = "Arial, sans-serif") -> None:
        self.font_fallback = font_fallback

    # -- runs ---------------------------------------------------------------

    def run_style(self, segment: TextSegment, background: RGB) -> str:
        """Inline CSS for one run; empty for runs without a single font."""
        font = segment.font
        if font is None:
            return ""
        style = StyleAccumulator()
        style.add("font-family", f"{_quote_family(font.family)}, {self.font_fallback}")
        style.add("font-size", f"{round(segment.font_size)}px")
        style.add("font-weight", "700" if "bold" in font.style.lower() else "400")
        if "italic" in font.style.lower():
            style.add("font-style", "italic")
        style.add("color", resolve_paints(segment.fills, background).hex)

        line_height = segment.line_height
        if line_height.unit == "PIXELS":
            style.add("line-height", f"{round(line_height.value)}px")
        elif line_height.unit == "PERCENT":
            style.add("line-height", f"{round(line_height.value)}%")

        spacing = segment.letter_spacing
        if spacing.value:
            if spacing.unit == "PERCENT":
                style.add("letter-spacing", f"{spacing.value / 100:.2f}em")
            elif segment.font_size:
                style.add("letter-spacing", f"{spacing.value / segment.font_size:.2f}em")

        style.add("text-decoration", _DECORATION_MAP.get(segment.decoration))
        return style.render()

    def run_content(self, segment: TextSegment) -> str:
        if segment.font is None:
            logger.debug("Skipping run with unresolved font: %r", segment.characters[:40])
            return ""
        stripped = segment.characters.strip()
        if len(stripped) == 1 and stripped in BULLET_ENTITIES:
            return BULLET_ENTITIES[stripped]
        return escape_text(segment.characters)

    def _linked(self, content: str, segment: TextSegment, style: str) -> str:
        if not segment.hyperlink or not content:
            return content
        href = html.escape(segment.hyperlink, quote=True)
        return f'<a href="{href}" target="_blank" style="{style}">{content}</a>'

    # -- cells --------------------------------------------------------------

    def alignment(self, node: DesignNode) -> str:
        return _ALIGN_MAP.get(node.text_align, "left")

    def render_cell(
        self,
        node: DesignNode,
        background: RGB,
        *,
        width: Optional[int] = None,
        valign: str = "top",
    ) -> str:
        """Return the ``<td>`` holding *node*'s runs, or ``""`` if empty."""
        if not node.characters.strip() or not node.segments:
            return ""
        align = self.alignment(node)
        width_attr = f' width="{width}"' if width else ""

        if len(node.segments) == 1:
            segment = node.segments[0]
            run_style = self.run_style(segment, background)
            content = self._linked(self.run_content(segment), segment, run_style)
            if not content:
                return ""
            style = StyleAccumulator(run_style).add("text-align", align).render()
            return (
                f'<td align="{align}" valign="{valign}"{width_attr} style="{style}">'
                f"{content}</td>"
            )

        spans: list[str] = []
        for segment in node.segments:
            content = self.run_content(segment)
            if not content:
                continue
            run_style = self.run_style(segment, background)
            if segment.hyperlink:
                spans.append(self._linked(content, segment, run_style))
            else:
                spans.append(f'<span style="{run_style}">{content}</span>')
        if not spans:
            return ""
        style = StyleAccumulator().add("text-align", align).render()
        return (
            f'<td align="{align}" valign="{valign}"{width_attr} style="{style}">'
            f'{"".join(spans)}</td>'
        )

    def render(self, node: DesignNode, background: RGB) -> str:
        cell = self.render_cell(node, background)
        if not cell:
            return ""
        return f'<table width="100%" {TABLE_ATTRS}><tr>{cell}</tr></table>'
