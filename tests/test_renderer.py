"""Tests for the EmailRenderer."""

from __future__ import annotations

import pytest

from builders import build_all, frame, rect, solid, text, vector
from design2email.host import RecordingFontLoader, StaticConfirmer
from design2email.images import ImageMode
from design2email.parser import FontName
from design2email.renderer import EMPTY_SELECTION_MESSAGE, EmailRenderer, clean_markup
from design2email.style_manager import StyleManager


class FakeExporter:
    async def export(self, node, settings):
        return f"png:{node.id}".encode()


class CrashingExporter:
    async def export(self, node, settings):
        raise OSError("host export crashed")


class SpyConfirmer:
    def __init__(self, answer: set[str]) -> None:
        self.answer = answer
        self.seen: list[list[str]] = []

    async def confirm(self, candidates):
        self.seen.append([c.id for c in candidates])
        return self.answer


def button(id: str = "btn") -> dict:
    return frame(
        id,
        [rect(f"{id}-bg", width=200, height=48, fills=[solid(0, 0, 1)]), text(f"{id}-label", "Buy now")],
        width=200,
        height=48,
    )


# ---------------------------------------------------------------------------
# Selection handling
# ---------------------------------------------------------------------------

class TestSelection:
    @pytest.mark.asyncio
    async def test_empty_selection_notifies(self) -> None:
        messages: list[str] = []
        result = await EmailRenderer(notify=messages.append).parse([])
        assert result.html == ""
        assert result.assets == []
        assert messages == [EMPTY_SELECTION_MESSAGE]

    @pytest.mark.asyncio
    async def test_hidden_selection_counts_as_empty(self) -> None:
        messages: list[str] = []
        nodes = build_all(rect("a", visible=False))
        result = await EmailRenderer(notify=messages.append).parse(nodes)
        assert result.html == ""
        assert messages == [EMPTY_SELECTION_MESSAGE]

    @pytest.mark.asyncio
    async def test_multi_selection_stacked_with_filler(self) -> None:
        nodes = build_all(
            rect("second", y=150, height=50, fills=[solid(0, 1, 0)]),
            rect("first", y=0, height=100, fills=[solid(1, 0, 0)]),
        )
        html = (await EmailRenderer().parse(nodes)).html
        assert 'style="height:50px;font-size:1px;line-height:50px;"' in html
        first = html.index('bgcolor="#ff0000"')
        filler = html.index("line-height:50px")
        second = html.index('bgcolor="#00ff00"')
        assert first < filler < second

    @pytest.mark.asyncio
    async def test_single_root_uses_page_width(self) -> None:
        nodes = build_all(frame("page", [text("t", "Hi")], width=900))
        html = (await EmailRenderer(StyleManager("narrow")).parse(nodes)).html
        assert html.startswith('<table width="480" border="0"')


# ---------------------------------------------------------------------------
# Containers and colour propagation
# ---------------------------------------------------------------------------

class TestContainers:
    @pytest.mark.asyncio
    async def test_background_flows_to_children(self) -> None:
        nodes = build_all(frame(
            "page",
            [rect("tint", fills=[solid(1, 0, 0, opacity=0.5)]), text("caption", "Tinted", y=120)],
            fills=[solid(0, 0, 1)],
        ))
        html = (await EmailRenderer().parse(nodes)).html
        assert 'bgcolor="#0000ff"' in html
        assert 'bgcolor="#7f007f"' in html

    @pytest.mark.asyncio
    async def test_absolute_children_sorted_by_y(self) -> None:
        nodes = build_all(frame("page", [text("low", "Second", y=100), text("high", "First", y=0)]))
        html = (await EmailRenderer().parse(nodes)).html
        assert html.index("First") < html.index("Second")
        assert "line-height:80px" in html

    @pytest.mark.asyncio
    async def test_vertical_layout_keeps_order_and_alignment(self) -> None:
        nodes = build_all(frame(
            "page",
            [text("a", "Alpha", y=50), text("b", "Beta", y=0)],
            layoutMode="VERTICAL",
            counterAxisAlignItems="CENTER",
        ))
        html = (await EmailRenderer().parse(nodes)).html
        assert html.index("Alpha") < html.index("Beta")
        assert 'align="center"' in html

    @pytest.mark.asyncio
    async def test_horizontal_layout_with_spacing(self) -> None:
        nodes = build_all(frame(
            "row",
            [vector("icon", x=0), text("label", "Label", x=44)],
            layoutMode="HORIZONTAL",
            itemSpacing=20,
            counterAxisAlignItems="CENTER",
        ))
        html = (await EmailRenderer().parse(nodes)).html
        assert 'width="20" style="width:20px;font-size:0;line-height:0;"' in html
        assert '<td valign="middle" width="24">' in html

    @pytest.mark.asyncio
    async def test_row_children_keep_declared_widths(self) -> None:
        nodes = build_all(frame(
            "row",
            [
                rect("a", width=100, height=40, fills=[solid(1, 0, 0)]),
                rect("b", x=100, width=200, height=40, fills=[solid(0, 1, 0)]),
                text("label", "Label", x=300),
            ],
            layoutMode="HORIZONTAL",
        ))
        html = (await EmailRenderer().parse(nodes)).html
        assert '<td valign="top" width="100"><table width="100" ' in html
        assert '<td valign="top" width="200"><table width="200" ' in html
        assert '<td valign="top"><table width="100%"' in html

    @pytest.mark.asyncio
    async def test_padding_becomes_spacer_cells(self) -> None:
        nodes = build_all(frame("page", [text("t", "Hi")], paddingLeft=24, paddingTop=10))
        html = (await EmailRenderer().parse(nodes)).html
        assert 'width="24" style="width:24px;' in html
        assert 'height="10"' in html
        assert "padding-left" not in html
        assert "padding-top" not in html

    @pytest.mark.asyncio
    async def test_empty_container_renders_as_shape(self) -> None:
        nodes = build_all(frame("divider", width=600, height=1, fills=[solid(0, 0, 0)]))
        html = (await EmailRenderer().parse(nodes)).html
        assert '<td height="1" bgcolor="#000000"' in html

    @pytest.mark.asyncio
    async def test_border_and_radius(self) -> None:
        nodes = build_all(frame(
            "card",
            [text("t", "Hi")],
            fills=[solid(1, 1, 1)],
            strokes=[solid(0, 0, 0)],
            strokeWeight=2,
            cornerRadius=8,
        ))
        html = (await EmailRenderer().parse(nodes)).html
        assert "border:2px solid #000000" in html
        assert "border-radius:8px" in html

    @pytest.mark.asyncio
    async def test_no_tbody_or_empty_rows(self) -> None:
        nodes = build_all(frame("page", [text("empty", ""), text("t", "Hi", y=20)]))
        html = (await EmailRenderer().parse(nodes)).html
        assert "<tbody" not in html
        assert "<tr></tr>" not in html


# ---------------------------------------------------------------------------
# Bullets and buttons
# ---------------------------------------------------------------------------

class TestBulletAndCta:
    @pytest.mark.asyncio
    async def test_bullet_row(self) -> None:
        nodes = build_all(frame(
            "li",
            [text("g", "•", width=10), text("b", "First point", x=18)],
            layoutMode="HORIZONTAL",
            itemSpacing=8,
        ))
        html = (await EmailRenderer().parse(nodes)).html
        assert "&bull;</td>" in html
        assert 'width="10"' in html
        assert 'width="8" style="width:8px;' in html
        assert html.index("&bull;") < html.index("First point")

    @pytest.mark.asyncio
    async def test_unconfirmed_button_is_plain_container(self) -> None:
        nodes = build_all(button("btn"))
        html = (await EmailRenderer(confirmer=StaticConfirmer()).parse(nodes)).html
        assert "<a " not in html
        assert "Buy now" in html

    @pytest.mark.asyncio
    async def test_confirmed_button(self) -> None:
        nodes = build_all(button("btn"))
        html = (await EmailRenderer(confirmer=StaticConfirmer({"btn"})).parse(nodes)).html
        assert '<a href="#" target="_blank"' in html
        assert 'width="200" height="48" bgcolor="#0000ff"' in html
        assert "line-height:48px" in html

    @pytest.mark.asyncio
    async def test_confirmer_sees_candidates_and_extra_ids_ignored(self) -> None:
        spy = SpyConfirmer({"btn", "page"})
        nodes = build_all(frame("page", [button("btn"), text("t", "Hi", y=60)]))
        html = (await EmailRenderer(confirmer=spy).parse(nodes)).html
        assert spy.seen == [["btn"]]
        assert html.count("<a ") == 1

    @pytest.mark.asyncio
    async def test_confirmer_not_asked_without_candidates(self) -> None:
        spy = SpyConfirmer(set())
        await EmailRenderer(confirmer=spy).parse(build_all(text("t", "Hi")))
        assert spy.seen == []


# ---------------------------------------------------------------------------
# Images and fonts
# ---------------------------------------------------------------------------

class TestImagesAndFonts:
    @pytest.mark.asyncio
    async def test_download_numbering_resets_per_parse(self) -> None:
        renderer = EmailRenderer(exporter=FakeExporter())
        nodes = build_all(frame("page", [
            vector("i3", y=100),
            vector("i1", y=0),
            vector("i2", y=50),
            text("caption", "Icons", y=200),
        ]))
        first = await renderer.parse(nodes, ImageMode.DOWNLOAD)
        assert [a.name for a in first.assets] == ["image-1.png", "image-2.png", "image-3.png"]
        assert [a.data for a in first.assets] == [b"png:i1", b"png:i2", b"png:i3"]
        assert first.html.index("images/image-1.png") < first.html.index("images/image-3.png")

        second = await renderer.parse(nodes, "download")
        assert [a.name for a in second.assets] == ["image-1.png", "image-2.png", "image-3.png"]

    @pytest.mark.asyncio
    async def test_failed_export_does_not_stop_siblings(self) -> None:
        nodes = build_all(frame("page", [vector("icon", y=0), text("after", "After", y=40)]))
        result = await EmailRenderer(exporter=CrashingExporter()).parse(nodes, ImageMode.BASE64)
        assert "Image export failed: icon" in result.html
        assert "After" in result.html
        assert result.html.index("Image export failed") < result.html.index("After")

    @pytest.mark.asyncio
    async def test_icon_group_is_one_image(self) -> None:
        nodes = build_all(frame("icon", [vector("a"), vector("b")], width=24, height=24))
        html = (await EmailRenderer().parse(nodes)).html
        assert html.count("<img ") == 1
        assert "placehold.co/24x24/" in html

    @pytest.mark.asyncio
    async def test_fonts_loaded_before_render(self) -> None:
        loader = RecordingFontLoader()
        nodes = build_all(frame("page", [
            text("a", "A"),
            text("b", "B", y=30, fontName={"family": "Roboto", "style": "Bold"}),
        ]))
        await EmailRenderer(font_loader=loader).parse(nodes)
        assert loader.loaded == [FontName("Inter", "Regular"), FontName("Roboto", "Bold")]


# ---------------------------------------------------------------------------
# Cleanup
# ---------------------------------------------------------------------------

class TestCleanMarkup:
    def test_tbody_removed(self) -> None:
        assert clean_markup("<table><tbody><tr><td>x</td></tr></tbody></table>") == (
            "<table><tr><td>x</td></tr></table>"
        )

    def test_empty_rows_removed(self) -> None:
        markup = '<table><tr> </tr><tr><td style="x"> </td></tr><tr><td>x</td></tr></table>'
        assert clean_markup(markup) == "<table><tr><td>x</td></tr></table>"

    def test_filler_rows_kept(self) -> None:
        markup = '<tr><td height="4">&nbsp;</td></tr>'
        assert clean_markup(markup) == markup
