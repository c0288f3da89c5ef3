"""Interfaces to the design host and their default implementations.

The renderer talks to the host through three async collaborators:

- :class:`FontLoader` makes a font ready before text styles are read.
- :class:`ImageExporter` rasterises a node to encoded image bytes.
- :class:`CtaConfirmer` asks the user which button-shaped containers really
  are call-to-action buttons.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Protocol

if TYPE_CHECKING:
    from design2email.parser import DesignNode, FontName


class ImageExportError(RuntimeError):
    """Raised by an exporter that cannot produce bytes for a node."""


@dataclass(frozen=True)
class ExportSettings:
    format: str = "PNG"
    scale: float = 2.0


class FontLoader(Protocol):
    async def load(self, font: FontName) -> None: ...


class ImageExporter(Protocol):
    async def export(self, node: DesignNode, settings: ExportSettings) -> bytes: ...


class CtaConfirmer(Protocol):
    async def confirm(self, candidates: list[DesignNode]) -> set[str]: ...


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

class RecordingFontLoader:
    """Font loader for hosts without font loading; remembers each request."""

    def __init__(self) -> None:
        self.loaded: list[FontName] = []

    async def load(self, font: FontName) -> None:
        self.loaded.append(font)


class EmbeddedImageExporter:
    """Serve the raster the host serialised alongside the node."""

    async def export(self, node: DesignNode, settings: ExportSettings) -> bytes:
        if not node.export_data:
            raise ImageExportError(f"No exported image for node {node.name or node.id!r}")
        return node.export_data


_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9._-]+")


class DirectoryImageExporter:
    """Read pre-rendered images from a directory.

    A node is looked up as ``<id>.<format>`` (with characters unsafe in file
    names replaced by ``_``), then by its sanitised name, then by the image
    reference of its first image fill, so lookups never leave ``root``.  Bytes embedded in the node win over files.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _candidates(self, node: DesignNode, settings: ExportSettings) -> Iterable[Path]:
        ext = settings.format.lower()
        if node.id:
            yield self.root / f"{_UNSAFE_CHARS_RE.sub('_', node.id)}.{ext}"
        if node.name:
            safe_name = _UNSAFE_CHARS_RE.sub("_", node.name)
            yield self.root / safe_name
            yield self.root / f"{safe_name}.{ext}"
        for paint in node.fills:
            if paint.image_ref:
                yield self.root / f"{_UNSAFE_CHARS_RE.sub('_', paint.image_ref)}.{ext}"

    async def export(self, node: DesignNode, settings: ExportSettings) -> bytes:
        if node.export_data:
            return node.export_data
        for path in self._candidates(node, settings):
            if path.is_file():
                try:
                    return await asyncio.to_thread(path.read_bytes)
                except OSError as exc:
                    raise ImageExportError(f"Cannot read {path}: {exc}") from exc
        raise ImageExportError(f"No exported image for node {node.name or node.id!r}")


class StaticConfirmer:
    """Confirm candidates whose id appears in a fixed set."""

    def __init__(self, ids: Iterable[str] = ()) -> None:
        self.ids = set(ids)

    async def confirm(self, candidates: list[DesignNode]) -> set[str]:
        return {c.id for c in candidates if c.id in self.ids}


class AcceptAllConfirmer:
    """Treat every structural candidate as a button."""

    async def confirm(self, candidates: list[DesignNode]) -> set[str]:
        return {c.id for c in candidates}
