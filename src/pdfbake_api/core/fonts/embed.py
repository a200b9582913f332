from __future__ import annotations

import logging
from dataclasses import dataclass, field

import fitz

from pdfbake_api.core.errors import resource_unavailable
from pdfbake_api.core.fonts.resolve import CUSTOM_FONT_KEY, DEFAULT_FONT, FontResolution, resolve_font


logger = logging.getLogger("pdfbake_api")
_font_fallback_logged: set[str] = set()


@dataclass(frozen=True)
class CustomFont:
    name: str
    outline_bytes: bytes = field(repr=False)


def load_custom_font(font: CustomFont) -> fitz.Font:
    if not font.outline_bytes:
        raise resource_unavailable("font_missing", "Custom font has no outline data", font=font.name)
    try:
        return fitz.Font(fontbuffer=font.outline_bytes)
    except Exception as exc:  # MuPDF format errors do not share a common builtin base
        raise resource_unavailable("font_unreadable", "Custom font could not be loaded", font=font.name) from exc


def _log_font_fallback(key: str, error: Exception) -> None:
    if key in _font_fallback_logged:
        return
    _font_fallback_logged.add(key)
    logger.warning("Font measure fallback font=%s error=%s", key, error.__class__.__name__)


class FontCache:
    """Per-document font registry.

    Each distinct font key is loaded once and inserted once per page, so the
    embedding cost grows with the number of styles in use rather than with
    the number of overlays drawn.
    """

    def __init__(self, custom_font: CustomFont | None = None) -> None:
        self.custom_font = custom_font
        self._fonts: dict[str, fitz.Font] = {}
        self._registered: set[tuple[int, str]] = set()
        if custom_font is not None:
            self._fonts[CUSTOM_FONT_KEY] = load_custom_font(custom_font)

    def __len__(self) -> int:
        return len(self._fonts)

    @property
    def keys(self) -> list[str]:
        return sorted(self._fonts)

    def resolve(self, font_name: str | None, bold: bool = False, italic: bool = False) -> FontResolution:
        return resolve_font(font_name, bold, italic, has_custom_font=self.custom_font is not None)

    def font(self, key: str) -> fitz.Font:
        cached = self._fonts.get(key)
        if cached is None:
            try:
                cached = fitz.Font(key)
            except (RuntimeError, ValueError) as exc:
                _log_font_fallback(key, exc)
                cached = self._fonts.get(DEFAULT_FONT) or fitz.Font(DEFAULT_FONT)
            self._fonts[key] = cached
        return cached

    def use(self, page: fitz.Page, key: str) -> str:
        """Make ``key`` available on ``page`` and return the resource name to draw with."""
        self.font(key)
        marker = (page.number, key)
        if marker in self._registered:
            return key
        if key == CUSTOM_FONT_KEY and self.custom_font is not None:
            page.insert_font(fontname=key, fontbuffer=self.custom_font.outline_bytes)
        else:
            page.insert_font(fontname=key)
        self._registered.add(marker)
        return key

    def text_width(self, text: str, key: str, font_size: float) -> float:
        try:
            return self.font(key).text_length(text, fontsize=font_size)
        except (RuntimeError, ValueError) as exc:
            _log_font_fallback(key, exc)
            return fitz.get_text_length(text, fontname=DEFAULT_FONT, fontsize=font_size)
