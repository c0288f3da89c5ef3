"""High-level design-to-email conversion orchestrator.

Ties together the parser, style manager, and renderer into a single
public API for converting serialised design selections to email HTML.
"""

from __future__ import annotations

import asyncio
import html
import logging
from pathlib import Path
from typing import Any, Callable, Optional

from design2email.classifier import find_cta_candidates
from design2email.host import CtaConfirmer, EmbeddedImageExporter, FontLoader, ImageExporter
from design2email.images import ImageMode
from design2email.parser import DesignNode, DesignTreeParser
from design2email.renderer import EmailRenderer, RenderResult
from design2email.style_manager import StyleManager

logger = logging.getLogger(__name__)


def email_document(body: str, *, title: str = "", background: str = "#ffffff") -> str:
    """Wrap a rendered fragment in a minimal standalone email document."""
    return (
        "<!DOCTYPE html>"
        '<html lang="en"><head>'
        '<meta charset="utf-8" />'
        '<meta name="viewport" content="width=device-width, initial-scale=1" />'
        '<meta http-equiv="X-UA-Compatible" content="IE=edge" />'
        f"<title>{html.escape(title)}</title>"
        "</head>"
        f'<body style="margin:0;padding:0;background-color:{background};">'
        f'<table width="100%" border="0" cellpadding="0" cellspacing="0" role="presentation"'
        f' bgcolor="{background}"><tr><td align="center">{body}</td></tr></table>'
        "</body></html>"
    )


class Converter:
    """Convert design-tool selections to table-based email HTML.

    Usage::

        converter = Converter(style_preset="default", image_mode="placeholder")
        converter.convert_file("selection.json", "email.html")

        # or from a JSON string
        result = converter.convert_text('{"type": "FRAME", ...}')
        result.html, result.assets
    """

    STYLE_PRESETS = StyleManager.PRESETS
    IMAGE_MODES = [mode.value for mode in ImageMode]

    def __init__(
        self,
        style_preset: str = "default",
        image_mode: str = "placeholder",
        *,
        exporter: Optional[ImageExporter] = None,
        font_loader: Optional[FontLoader] = None,
        confirmer: Optional[CtaConfirmer] = None,
        notify: Optional[Callable[[str], None]] = None,
        asset_dir: str = "images",
        full_document: bool = False,
    ) -> None:
        self.style_manager = StyleManager(style_preset)
        self.image_mode = ImageMode(image_mode)
        self.asset_dir = asset_dir
        self.full_document = full_document
        self.parser = DesignTreeParser()
        self.renderer = EmailRenderer(
            self.style_manager,
            exporter=exporter or EmbeddedImageExporter(),
            font_loader=font_loader,
            confirmer=confirmer,
            notify=notify,
            asset_dir=asset_dir,
        )

    # -- async API ----------------------------------------------------------

    async def aconvert_nodes(self, nodes: list[DesignNode], *, title: str = "") -> RenderResult:
        result = await self.renderer.parse(nodes, self.image_mode)
        if self.full_document and result.html:
            page = self.style_manager.page
            result.html = email_document(result.html, title=title, background=page.background)
        return result

    async def aconvert_data(self, data: Any, *, title: str = "") -> RenderResult:
        return await self.aconvert_nodes(self.parser.parse(data), title=title)

    async def aconvert_text(self, json_text: str, *, title: str = "") -> RenderResult:
        return await self.aconvert_nodes(self.parser.parse_json(json_text), title=title)

    # -- sync API -----------------------------------------------------------

    def convert_data(self, data: Any, *, title: str = "") -> RenderResult:
        """Convert already-decoded JSON data.

        Args:
            data: A node dict, a list of nodes, or ``{"selection": [...]}``.
            title: Document title used when ``full_document`` is set.

        Returns:
            The rendered HTML and any collected image assets.
        """
        return asyncio.run(self.aconvert_data(data, title=title))

    def convert_text(self, json_text: str, *, title: str = "") -> RenderResult:
        """Convert a JSON string describing the selection."""
        return asyncio.run(self.aconvert_text(json_text, title=title))

    def convert_file(
        self,
        input_path: str | Path,
        output_path: str | Path,
        *,
        encoding: str = "utf-8",
    ) -> RenderResult:
        """Read a JSON selection file and write the HTML output.

        In download mode the collected images are written to
        ``<output dir>/<asset_dir>/`` so the relative ``src`` paths resolve.

        Args:
            input_path: Path to the input ``.json`` file.
            output_path: Path for the output ``.html`` file.
            encoding: Text encoding of the source file.
        """
        input_path = Path(input_path)
        output_path = Path(output_path)

        json_text = input_path.read_text(encoding=encoding)
        result = self.convert_text(json_text, title=input_path.stem)

        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(result.html, encoding="utf-8")

        if result.assets:
            asset_root = output_path.parent / self.asset_dir
            asset_root.mkdir(parents=True, exist_ok=True)
            for asset in result.assets:
                (asset_root / asset.name).write_bytes(asset.data)
            logger.info("Wrote %d asset(s) to %s", len(result.assets), asset_root)
        return result

    # -- button confirmation ------------------------------------------------

    def list_candidates(self, json_text: str) -> list[DesignNode]:
        """Return the button-shaped containers that need confirmation."""
        return find_cta_candidates(self.parser.parse_json(json_text))
