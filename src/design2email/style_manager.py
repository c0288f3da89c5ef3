"""Inline style accumulation and render presets.

Inline CSS is assembled from many small candidate declarations; the
accumulator collapses repeated properties, drops zero-valued spacing and
de-duplicates font stacks so that output stays compact.

Presets (default, wide, narrow) map a name to the page-level settings the
renderer needs: the outermost table width and the font fallback stack.
"""

from __future__ import annotations

import re
from copy import deepcopy
from dataclasses import dataclass
from typing import Optional


# ---------------------------------------------------------------------------
# Style accumulator
# ---------------------------------------------------------------------------

_SPACING_PROP_RE = re.compile(r"^(margin|padding|border)(-[a-z-]+)?$")
_ZERO_LENGTH_RE = re.compile(
    r"^[+-]?0*\.?0+(px|pt|em|rem|ex|ch|vw|vh|cm|mm|in|pc|%)?$", re.IGNORECASE
)


def _is_zero_spacing(prop: str, value: str) -> bool:
    if not _SPACING_PROP_RE.match(prop):
        return False
    tokens = value.split()
    return bool(tokens) and all(_ZERO_LENGTH_RE.match(tok) for tok in tokens)


def _dedupe_font_families(value: str) -> str:
    seen: set[str] = set()
    families: list[str] = []
    for family in value.split(","):
        family = family.strip()
        key = family.strip("'\"").lower()
        if not key or key in seen:
            continue
        seen.add(key)
        families.append(family)
    return ", ".join(families)


def accumulate_styles(style: str) -> str:
    """Return a deduplicated, pruned form of the ``;``-joined *style*.

    The last value of a repeated property wins while the property keeps the
    position of its first occurrence.  Running this on its own output
    returns the same string.
    """
    declarations: dict[str, str] = {}
    for chunk in style.split(";"):
        prop, sep, value = chunk.partition(":")
        prop = prop.strip().lower()
        value = value.strip()
        if not sep or not prop or not value:
            continue
        if prop == "font-family":
            value = _dedupe_font_families(value)
        declarations[prop] = value
    return ";".join(
        f"{prop}:{value}"
        for prop, value in declarations.items()
        if not _is_zero_spacing(prop, value)
    )


class StyleAccumulator:
    """Collect candidate declarations and render them as one style string.

    Usage::

        style = StyleAccumulator("font-size:0", "line-height:0")
        style.add("background-color", hex_or_none)
        td = f'<td style="{style.render()}">'
    """

    def __init__(self, *declarations: str) -> None:
        self._parts: list[str] = [d for d in declarations if d]

    def add(self, prop: str, value: Optional[object]) -> StyleAccumulator:
        """Append ``prop:value``; ``None`` and empty values are ignored."""
        if value is None or value == "":
            return self
        self._parts.append(f"{prop}:{value}")
        return self

    def render(self) -> str:
        return accumulate_styles(";".join(self._parts))


# ---------------------------------------------------------------------------
# Presets
# ---------------------------------------------------------------------------

@dataclass
class PageSpec:
    """Page-level settings for one render."""

    width: int = 600
    font_fallback: str = "Arial, sans-serif"
    background: str = "#ffffff"


_PRESETS = {
    "default": PageSpec(),
    "wide": PageSpec(width=800),
    "narrow": PageSpec(width=480, font_fallback="Helvetica, Arial, sans-serif"),
}


class StyleManager:
    """Resolve a preset name to its :class:`PageSpec`.

    Usage::

        sm = StyleManager("wide")
        sm.page.width  # 800
    """

    PRESETS = list(_PRESETS.keys())

    def __init__(self, preset: str = "default") -> None:
        if preset not in _PRESETS:
            raise ValueError(
                f"Unknown preset {preset!r}. Choose from: {', '.join(_PRESETS)}"
            )
        self.preset = preset
        self.page: PageSpec = deepcopy(_PRESETS[preset])

    @property
    def page_width(self) -> int:
        return self.page.width

    @property
    def font_fallback(self) -> str:
        return self.page.font_fallback
