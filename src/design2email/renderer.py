"""Email renderer - converts design nodes to table-based HTML.

This module walks the node trees produced by :mod:`design2email.parser`
and emits nested tables with inline styles.  Every node is classified
(:mod:`design2email.classifier`) and dispatched to a ``_render_<strategy>``
method; each returns a markup fragment that its parent concatenates.

Children are rendered one after another in layout order.  The only awaits
are calls into the host (font loading, image export), so output order and
image numbering are deterministic.
"""

from __future__ import annotations

import asyncio
import html
import logging
import re
from dataclasses import dataclass, field, replace
from typing import Callable, Optional, Sequence

from design2email.classifier import (
    RenderStrategy,
    classify,
    find_cta_candidates,
)
from design2email.colors import (
    WHITE,
    ancestor_background,
    resolve_fill,
    resolve_stroke,
)
from design2email.host import CtaConfirmer, FontLoader, ImageExporter
from design2email.images import ImageAsset, ImageHandler, ImageMode
from design2email.parser import (
    SHAPE_KINDS,
    AxisAlign,
    DesignNode,
    LayoutMode,
    NodeKind,
    RGB,
)
from design2email.style_manager import StyleAccumulator, StyleManager
from design2email.table_handler import (
    HALIGN_MAP,
    VALIGN_MAP,
    RowCell,
    TableHandler,
    is_fluid,
    sort_by_y,
)
from design2email.text_renderer import TextRenderer, collect_fonts, escape_text

logger = logging.getLogger(__name__)

EMPTY_SELECTION_MESSAGE = "Select at least one element to generate HTML."


# ---------------------------------------------------------------------------
# Markup cleanup
# ---------------------------------------------------------------------------

_TBODY_RE = re.compile(r"</?tbody>")
_EMPTY_CELL_ROW_RE = re.compile(r"<tr[^>]*>\s*<td[^>]*>\s*</td>\s*</tr>")
_EMPTY_ROW_RE = re.compile(r"<tr[^>]*>\s*</tr>")


def clean_markup(markup: str) -> str:
    """Drop ``<tbody>`` tags, rows with one empty cell, and empty rows."""
    markup = _TBODY_RE.sub("", markup)
    while True:
        cleaned = _EMPTY_ROW_RE.sub("", _EMPTY_CELL_ROW_RE.sub("", markup))
        if cleaned == markup:
            return cleaned
        markup = cleaned


# ---------------------------------------------------------------------------
# Render context
# ---------------------------------------------------------------------------

@dataclass
class RenderSession:
    """State owned by one :meth:`EmailRenderer.parse` call."""

    images: ImageHandler
    confirmed_ids: frozenset[str] = frozenset()


@dataclass(frozen=True)
class RenderContext:
    """What a node inherits from its parent; derived, never mutated."""

    session: RenderSession = field(compare=False)
    parent_background: RGB = WHITE
    available_width: float = 600.0
    image_mode: ImageMode = ImageMode.PLACEHOLDER
    is_root: bool = False

    def derive(self, **overrides) -> RenderContext:
        return replace(self, **overrides)


@dataclass
class RenderResult:
    html: str
    assets: list[ImageAsset] = field(default_factory=list)


# ---------------------------------------------------------------------------
# EmailRenderer
# ---------------------------------------------------------------------------

class EmailRenderer:
    """Render :class:`~design2email.parser.DesignNode` selections to HTML."""

    def __init__(
        self,
        style_manager: Optional[StyleManager] = None,
        *,
        exporter: Optional[ImageExporter] = None,
        font_loader: Optional[FontLoader] = None,
        confirmer: Optional[CtaConfirmer] = None,
        notify: Optional[Callable[[str], None]] = None,
        asset_dir: str = "images",
    ) -> None:
        self.style: StyleManager = style_manager or StyleManager()
        self.exporter = exporter
        self.font_loader = font_loader
        self.confirmer = confirmer
        self.notify = notify or logger.warning
        self.asset_dir = asset_dir
        self.tables = TableHandler()
        self.text = TextRenderer(self.style.font_fallback)

    # ======================================================================
    # Public API
    # ======================================================================

    async def parse(
        self,
        nodes: Sequence[DesignNode],
        image_mode: ImageMode | str = ImageMode.PLACEHOLDER,
    ) -> RenderResult:
        """Render a selection and return the HTML plus collected assets."""
        image_mode = ImageMode(image_mode)
        selection = [n for n in nodes if n.visible]
        if not selection:
            self.notify(EMPTY_SELECTION_MESSAGE)
            return RenderResult(html="")

        session = RenderSession(
            images=ImageHandler(image_mode, self.exporter, asset_dir=self.asset_dir),
            confirmed_ids=await self._confirm_ctas(selection),
        )
        await self._load_fonts(selection)

        page_width = self.style.page_width
        if len(selection) == 1:
            markup = await self._render_root(selection[0], session, image_mode, page_width)
        else:
            items: list[tuple[DesignNode, str]] = []
            for node in sort_by_y(selection):
                fragment = await self._render_root(node, session, image_mode, page_width)
                items.append((node, fragment))
            markup = self.tables.stack(items)

        markup = clean_markup(markup)
        logger.info(
            "Rendered %d node(s): %d characters, %d asset(s)",
            len(selection), len(markup), len(session.images.assets),
        )
        return RenderResult(html=markup, assets=list(session.images.assets))

    # ======================================================================
    # Pass setup
    # ======================================================================

    async def _confirm_ctas(self, selection: list[DesignNode]) -> frozenset[str]:
        candidates = find_cta_candidates(selection)
        if not candidates or self.confirmer is None:
            return frozenset()
        candidate_ids = {c.id for c in candidates}
        confirmed = await self.confirmer.confirm(candidates)
        logger.debug("Confirmed %d of %d button candidate(s)", len(confirmed), len(candidates))
        return frozenset(set(confirmed) & candidate_ids)

    async def _load_fonts(self, selection: list[DesignNode]) -> None:
        if self.font_loader is None:
            return
        fonts = collect_fonts(selection)
        await asyncio.gather(*(self.font_loader.load(font) for font in fonts))

    async def _render_root(
        self,
        node: DesignNode,
        session: RenderSession,
        image_mode: ImageMode,
        page_width: int,
    ) -> str:
        ctx = RenderContext(
            session=session,
            parent_background=ancestor_background(node),
            available_width=float(page_width),
            image_mode=image_mode,
            is_root=True,
        )
        return await self._render_node(node, ctx)

    # ======================================================================
    # Node dispatch
    # ======================================================================

    async def _render_node(
        self,
        node: DesignNode,
        ctx: RenderContext,
        strategy: Optional[RenderStrategy] = None,
    ) -> str:
        if not node.visible:
            return ""
        strategy = strategy or classify(node, ctx.session.confirmed_ids)
        handler = getattr(self, f"_render_{strategy.value}")
        return await handler(node, ctx)

    # ======================================================================
    # Per-strategy renderers
    # ======================================================================

    async def _render_unsupported(self, node: DesignNode, ctx: RenderContext) -> str:
        logger.debug("Skipping unsupported node %r (%s)", node.name, node.source_type)
        return ""

    async def _render_image(self, node: DesignNode, ctx: RenderContext) -> str:
        return await ctx.session.images.render(node, ctx.available_width)

    async def _render_text(self, node: DesignNode, ctx: RenderContext) -> str:
        return self.text.render(node, ctx.parent_background)

    async def _render_shape(self, node: DesignNode, ctx: RenderContext) -> str:
        fill = resolve_fill(node, ctx.parent_background)
        bgcolor = fill.hex
        border = self._border(node)
        height = round(node.height)
        if node.kind is NodeKind.LINE:
            # A line is drawn by its stroke.
            bgcolor = resolve_stroke(node) or bgcolor
            height = round(max(node.height, node.stroke_weight))
            border = None
        height = max(1, height)

        style = StyleAccumulator(f"height:{height}px", "font-size:0", "line-height:0")
        style.add("background-color", bgcolor)
        style.add("border", border)
        style.add("border-radius", self._radius(node))
        return self.tables.shape(
            width=self._width_attr(node, ctx),
            height=height,
            bgcolor=bgcolor,
            style=style.render(),
        )

    async def _render_container(self, node: DesignNode, ctx: RenderContext) -> str:
        fill = resolve_fill(node, ctx.parent_background)
        child_ctx = self._child_context(node, ctx, fill.rgb)
        if node.layout_mode is LayoutMode.HORIZONTAL:
            inner = await self._render_row(node, child_ctx)
        else:
            inner = await self._render_stack(node, child_ctx)
        return self._wrap(node, ctx, inner, fill.hex)

    async def _render_bullet(self, node: DesignNode, ctx: RenderContext) -> str:
        children = node.visible_children
        if len(children) != 2 or any(c.kind is not NodeKind.TEXT for c in children):
            logger.warning("Bullet item %r lost its shape; rendering as container", node.name)
            return await self._render_container(node, ctx)
        glyph, body = children

        fill = resolve_fill(node, ctx.parent_background)
        valign = VALIGN_MAP[node.counter_align]
        tds = [
            self.text.render_cell(glyph, fill.rgb, width=max(1, round(glyph.width)), valign=valign),
        ]
        if node.item_spacing > 0:
            tds.append(self.tables.spacer_cell(node.item_spacing))
        tds.append(self.text.render_cell(body, fill.rgb, valign=valign))
        inner = self.tables.row_of(
            [td for td in tds if td],
            padding_top=node.padding.top,
            padding_bottom=node.padding.bottom,
        )
        return self._wrap(node, ctx, inner, fill.hex)

    async def _render_cta(self, node: DesignNode, ctx: RenderContext) -> str:
        children = node.visible_children
        labels = [c for c in children if c.kind is NodeKind.TEXT]
        shapes = [c for c in children if c.kind in SHAPE_KINDS]
        if len(children) != 2 or len(labels) != 1 or len(shapes) != 1:
            logger.warning("Button %r lost its shape; rendering as container", node.name)
            return await self._render_container(node, ctx)
        label, shape = labels[0], shapes[0]

        fill = resolve_fill(node, ctx.parent_background)
        button = resolve_fill(shape, fill.rgb)
        width = max(1, round(min(shape.width, ctx.available_width)))
        height = max(1, round(shape.height))

        segment = next((s for s in label.segments if s.font is not None), None)
        label_style = self.text.run_style(segment, button.rgb) if segment else ""
        href = next((s.hyperlink for s in label.segments if s.hyperlink), "") or "#"

        cell_style = StyleAccumulator(f"height:{height}px")
        cell_style.add("background-color", button.hex)
        cell_style.add("border", self._border(shape))
        cell_style.add("border-radius", self._radius(shape))
        link_style = StyleAccumulator(
            label_style,
            "display:block",
            f"line-height:{height}px",
            "text-align:center",
            "text-decoration:none",
        )
        inner = self.tables.button(
            escape_text(label.characters.strip()),
            href=html.escape(href, quote=True),
            width=width,
            height=height,
            bgcolor=button.hex,
            cell_style=cell_style.render(),
            link_style=link_style.render(),
        )
        return self._wrap(node, ctx, inner, fill.hex)

    # ======================================================================
    # Layout
    # ======================================================================

    async def _render_stack(self, node: DesignNode, ctx: RenderContext) -> str:
        if node.layout_mode is LayoutMode.VERTICAL:
            children = node.visible_children
            align = HALIGN_MAP[node.counter_align]
        else:
            children = sort_by_y(node.visible_children)
            align = None

        items: list[tuple[DesignNode, str]] = []
        for child in children:
            items.append((child, await self._render_node(child, ctx)))
        return self.tables.stack(items, padding=node.padding, align=align)

    async def _render_row(self, node: DesignNode, ctx: RenderContext) -> str:
        children = node.visible_children
        spacing = node.item_spacing
        total = sum(c.width for c in children) + spacing * max(len(children) - 1, 0)

        cells: list[RowCell] = []
        for child in children:
            strategy = classify(child, ctx.session.confirmed_ids)
            fragment = await self._render_node(child, ctx, strategy)
            cells.append(RowCell(fragment, self._column_width(child, strategy, total, ctx)))

        return self.tables.row(
            cells,
            padding=node.padding,
            spacing=spacing,
            space_between=node.primary_align is AxisAlign.SPACE_BETWEEN,
            valign=VALIGN_MAP[node.counter_align],
        )

    def _column_width(
        self,
        child: DesignNode,
        strategy: RenderStrategy,
        total: float,
        ctx: RenderContext,
    ) -> Optional[str]:
        if strategy in (RenderStrategy.TEXT, RenderStrategy.UNSUPPORTED):
            return None
        if strategy is RenderStrategy.CONTAINER and len(child.visible_children) > 1 and total > 0:
            return f"{round(child.width / total * 100)}%"
        # Fixed-width columns: images, shapes, buttons, bullets, single-child containers.
        return str(max(1, round(min(child.width, ctx.available_width))))

    # ======================================================================
    # Helpers
    # ======================================================================

    def _child_context(self, node: DesignNode, ctx: RenderContext, background: RGB) -> RenderContext:
        own_width = self._own_width(node, ctx)
        return ctx.derive(
            parent_background=background,
            available_width=max(own_width - node.padding.horizontal, 0.0),
            is_root=False,
        )

    def _own_width(self, node: DesignNode, ctx: RenderContext) -> float:
        if ctx.is_root:
            return float(self.style.page_width)
        return min(node.width, ctx.available_width)

    def _width_attr(self, node: DesignNode, ctx: RenderContext) -> str:
        if is_fluid(node.width, ctx.available_width):
            return "100%"
        return str(max(1, round(min(node.width, ctx.available_width))))

    def _border(self, node: DesignNode) -> Optional[str]:
        color = resolve_stroke(node)
        if color is None:
            return None
        return f"{max(1, round(node.stroke_weight))}px solid {color}"

    def _radius(self, node: DesignNode) -> Optional[str]:
        if node.kind is NodeKind.ELLIPSE:
            return "50%"
        if node.corner_radius > 0:
            return f"{round(node.corner_radius)}px"
        return None

    def _wrap(
        self,
        node: DesignNode,
        ctx: RenderContext,
        inner: str,
        bgcolor: Optional[str],
    ) -> str:
        """Apply the container's box, or return *inner* when it has none."""
        border = self._border(node)
        styled = bool(bgcolor or border)
        if not styled and node.padding.is_zero and not ctx.is_root:
            return inner

        style = StyleAccumulator()
        if styled:
            style.add("background-color", bgcolor)
            style.add("border", border)
            style.add("border-radius", self._radius(node))
        return self.tables.wrap(
            inner,
            width=str(self.style.page_width) if ctx.is_root else self._width_attr(node, ctx),
            bgcolor=bgcolor,
            style=style.render(),
        )
