"""Image and icon output.

Image-like nodes are never expanded into markup.  Depending on the export
mode they become a placeholder-service URL, an inline data URI, or a
relative file reference whose bytes are collected as an asset for the
caller to write next to the HTML.
"""

from __future__ import annotations

import base64
import html
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from urllib.parse import quote

from design2email.host import ExportSettings, ImageExporter, ImageExportError
from design2email.parser import DesignNode

logger = logging.getLogger(__name__)

PLACEHOLDER_URL = "https://placehold.co/{width}x{height}/EFEFEF/7F7F7F?text={label}"


class ImageMode(str, Enum):
    PLACEHOLDER = "placeholder"
    BASE64 = "base64"
    DOWNLOAD = "download"


@dataclass
class ImageAsset:
    name: str
    data: bytes


class ImageHandler:
    """Emit ``<img>`` tags for one render pass.

    Holds the pass-scoped download counter and asset list; create a new
    handler for every pass.
    """

    def __init__(
        self,
        mode: ImageMode = ImageMode.PLACEHOLDER,
        exporter: Optional[ImageExporter] = None,
        *,
        asset_dir: str = "images",
        settings: ExportSettings = ExportSettings(),
    ) -> None:
        self.mode = ImageMode(mode)
        self.exporter = exporter
        self.asset_dir = asset_dir.strip("/")
        self.settings = settings
        self.assets: list[ImageAsset] = []
        self._counter = 0

    async def render(self, node: DesignNode, available_width: float) -> str:
        width = max(1, round(min(node.width, available_width)))
        height = max(1, round(node.height))
        try:
            src = await self._source(node, width, height)
        except ImageExportError as exc:
            logger.warning("Image export failed for %r: %s", node.name or node.id, exc)
            return self._error_fragment(node)
        except Exception:
            # Any exporter failure stays local to this image.
            logger.warning("Image export crashed for %r", node.name or node.id, exc_info=True)
            return self._error_fragment(node)
        return self._img_tag(src, node, width, height)

    # -- sources ------------------------------------------------------------

    async def _source(self, node: DesignNode, width: int, height: int) -> str:
        if self.mode is ImageMode.PLACEHOLDER:
            label = node.name or f"{width}x{height}"
            return PLACEHOLDER_URL.format(width=width, height=height, label=quote(label))

        data = await self._export(node)
        if self.mode is ImageMode.BASE64:
            encoded = base64.b64encode(data).decode("ascii")
            return f"data:image/{self.settings.format.lower()};base64,{encoded}"

        self._counter += 1
        name = f"image-{self._counter}.{self.settings.format.lower()}"
        self.assets.append(ImageAsset(name=name, data=data))
        logger.debug("Collected asset %s for %r", name, node.name or node.id)
        return f"{self.asset_dir}/{name}" if self.asset_dir else name

    async def _export(self, node: DesignNode) -> bytes:
        if self.exporter is None:
            raise ImageExportError("no image exporter configured")
        return await self.exporter.export(node, self.settings)

    # -- markup -------------------------------------------------------------

    def _img_tag(self, src: str, node: DesignNode, width: int, height: int) -> str:
        alt = html.escape(node.name, quote=True)
        return (
            f'<img src="{html.escape(src, quote=True)}" width="{width}" height="{height}" alt="{alt}"'
            f' style="display:block;border:0;outline:none;text-decoration:none;'
            f'width:{width}px;max-width:100%;" />'
        )

    def _error_fragment(self, node: DesignNode) -> str:
        label = html.escape(node.name or node.id or "image")
        return (
            '<table border="0" cellpadding="0" cellspacing="0" role="presentation">'
            '<tr><td style="color:#d32f2f;font-family:Arial, sans-serif;font-size:12px;">'
            f"Image export failed: {label}</td></tr></table>"
        )
