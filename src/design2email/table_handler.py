"""Table primitives that emulate auto-layout in email-safe HTML.

Layout is expressed with table geometry only: spacing becomes filler rows
and spacer cells with explicit sizes, never CSS margins or padding, since
many email clients strip those.  This module supports:

- vertical stacking with gap detection and padding rows/cells
- horizontal rows with fixed or flexible spacing and vertical alignment
- flat colour cells for shapes
- single-cell call-to-action buttons
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from design2email.parser import AxisAlign, DesignNode, Padding

TABLE_ATTRS = 'border="0" cellpadding="0" cellspacing="0" role="presentation"'

# Gaps at or below this many pixels are rounding noise, not spacing.
GAP_TOLERANCE = 2.0

# Children at least this share of their width budget render fluid (100%).
FLUID_RATIO = 0.95

VALIGN_MAP = {
    AxisAlign.MIN: "top",
    AxisAlign.CENTER: "middle",
    AxisAlign.MAX: "bottom",
    AxisAlign.SPACE_BETWEEN: "top",
}

HALIGN_MAP = {
    AxisAlign.MIN: "left",
    AxisAlign.CENTER: "center",
    AxisAlign.MAX: "right",
    AxisAlign.SPACE_BETWEEN: "left",
}


def sort_by_y(nodes: Iterable[DesignNode]) -> list[DesignNode]:
    return sorted(nodes, key=lambda n: n.y)


def is_fluid(width: float, available: float) -> bool:
    return available > 0 and width >= available * FLUID_RATIO


@dataclass
class RowCell:
    """Rendered child of a horizontal row plus its column width attribute."""

    html: str
    width: Optional[str] = None


class TableHandler:
    """Build nested table markup for stacks, rows, shapes and buttons."""

    def __init__(self, gap_tolerance: float = GAP_TOLERANCE) -> None:
        self.gap_tolerance = gap_tolerance

    # -- basic pieces -------------------------------------------------------

    def table(
        self,
        rows: str,
        *,
        width: Optional[str] = None,
        bgcolor: Optional[str] = None,
        style: str = "",
        align: Optional[str] = None,
    ) -> str:
        attrs = ""
        if width:
            attrs += f' width="{width}"'
        if align:
            attrs += f' align="{align}"'
        attrs += f" {TABLE_ATTRS}"
        if bgcolor:
            attrs += f' bgcolor="{bgcolor}"'
        if style:
            attrs += f' style="{style}"'
        return f"<table{attrs}>{rows}</table>"

    def wrap(
        self,
        inner: str,
        *,
        width: Optional[str],
        bgcolor: Optional[str] = None,
        style: str = "",
    ) -> str:
        """Put *inner* in a one-cell table carrying width and box styling."""
        return self.table(f"<tr><td>{inner}</td></tr>", width=width, bgcolor=bgcolor, style=style)

    def filler_row(self, height: float, colspan: int = 1) -> str:
        h = max(1, round(height))
        span = f' colspan="{colspan}"' if colspan > 1 else ""
        return (
            f'<tr><td{span} height="{h}" style="height:{h}px;font-size:1px;'
            f'line-height:{h}px;">&nbsp;</td></tr>'
        )

    def spacer_cell(self, width: float) -> str:
        w = max(1, round(width))
        return (
            f'<td width="{w}" style="width:{w}px;font-size:0;line-height:0;">'
            "&nbsp;</td>"
        )

    def flexible_spacer_cell(self) -> str:
        return '<td width="100%" style="font-size:0;line-height:0;">&nbsp;</td>'

    # -- vertical stack -----------------------------------------------------

    def stack(
        self,
        items: Sequence[tuple[DesignNode, str]],
        *,
        padding: Padding = Padding(),
        align: Optional[str] = None,
    ) -> str:
        """Stack rendered children as rows, in the order given.

        A gap larger than the tolerance between one child's bottom and the
        next child's top becomes a filler row of that height.
        """
        columns = 1 + (padding.left > 0) + (padding.right > 0)
        align_attr = f' align="{align}"' if align and align != "left" else ""
        rows: list[str] = []

        if padding.top > 0:
            rows.append(self.filler_row(padding.top, columns))

        prev_bottom: Optional[float] = None
        for node, fragment in items:
            if prev_bottom is not None:
                gap = node.y - prev_bottom
                if gap > self.gap_tolerance:
                    rows.append(self.filler_row(gap, columns))
            prev_bottom = node.bottom
            if not fragment:
                continue
            cells: list[str] = []
            if padding.left > 0:
                cells.append(self.spacer_cell(padding.left))
            cells.append(f'<td valign="top"{align_attr}>{fragment}</td>')
            if padding.right > 0:
                cells.append(self.spacer_cell(padding.right))
            rows.append(f"<tr>{''.join(cells)}</tr>")

        if padding.bottom > 0:
            rows.append(self.filler_row(padding.bottom, columns))

        if not rows:
            return ""
        return self.table("".join(rows), width="100%")

    # -- horizontal row -----------------------------------------------------

    def row(
        self,
        cells: Sequence[RowCell],
        *,
        padding: Padding = Padding(),
        spacing: float = 0.0,
        space_between: bool = False,
        valign: str = "top",
    ) -> str:
        """Lay out rendered children side by side in one table row."""
        flexible = space_between and len(cells) > 1
        tds: list[str] = []
        if padding.left > 0:
            tds.append(self.spacer_cell(padding.left))
        for idx, cell in enumerate(cells):
            if idx > 0:
                if flexible:
                    tds.append(self.flexible_spacer_cell())
                elif spacing > 0:
                    tds.append(self.spacer_cell(spacing))
            width_attr = f' width="{cell.width}"' if cell.width else ""
            tds.append(f'<td valign="{valign}"{width_attr}>{cell.html}</td>')
        if padding.right > 0:
            tds.append(self.spacer_cell(padding.right))

        fluid = flexible or any(c.width and c.width.endswith("%") for c in cells)
        return self.row_of(
            tds,
            padding_top=padding.top,
            padding_bottom=padding.bottom,
            width="100%" if fluid else None,
        )

    def row_of(
        self,
        tds: Sequence[str],
        *,
        padding_top: float = 0.0,
        padding_bottom: float = 0.0,
        width: Optional[str] = "100%",
    ) -> str:
        """Wrap ready-made ``<td>`` cells into a single-row table."""
        if not tds:
            return ""
        rows: list[str] = []
        if padding_top > 0:
            rows.append(self.filler_row(padding_top, len(tds)))
        rows.append(f"<tr>{''.join(tds)}</tr>")
        if padding_bottom > 0:
            rows.append(self.filler_row(padding_bottom, len(tds)))
        return self.table("".join(rows), width=width)

    # -- leaves -------------------------------------------------------------

    def shape(
        self,
        *,
        width: str,
        height: int,
        bgcolor: Optional[str] = None,
        style: str = "",
    ) -> str:
        bg = f' bgcolor="{bgcolor}"' if bgcolor else ""
        cell = f'<td height="{height}"{bg} style="{style}">&nbsp;</td>'
        return self.table(f"<tr>{cell}</tr>", width=width)

    def button(
        self,
        label: str,
        *,
        href: str,
        width: int,
        height: int,
        bgcolor: Optional[str],
        cell_style: str,
        link_style: str,
    ) -> str:
        bg = f' bgcolor="{bgcolor}"' if bgcolor else ""
        link = f'<a href="{href}" target="_blank" style="{link_style}">{label}</a>'
        cell = (
            f'<td align="center" valign="middle" width="{width}" height="{height}"{bg}'
            f' style="{cell_style}">{link}</td>'
        )
        return self.table(f"<tr>{cell}</tr>", width=str(width))
