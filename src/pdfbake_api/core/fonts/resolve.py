from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal


Family = Literal["sans", "serif", "mono", "custom"]
FontReason = Literal["custom", "exact", "substring", "heuristic", "missing_font"]

CUSTOM_FONT_KEY = "F-custom"
DEFAULT_FONT = "helv"

# PyMuPDF base-14 codes by (family, bold, italic).
BUILTIN_FONTS: dict[tuple[str, bool, bool], str] = {
    ("sans", False, False): "helv",
    ("sans", False, True): "heit",
    ("sans", True, False): "hebo",
    ("sans", True, True): "hebi",
    ("serif", False, False): "tiro",
    ("serif", False, True): "tiit",
    ("serif", True, False): "tibo",
    ("serif", True, True): "tibi",
    ("mono", False, False): "cour",
    ("mono", False, True): "coit",
    ("mono", True, False): "cobo",
    ("mono", True, True): "cobi",
}

FONT_TABLE: dict[str, tuple[str, bool, bool]] = {
    "helvetica": ("sans", False, False),
    "helvetica-bold": ("sans", True, False),
    "helvetica-oblique": ("sans", False, True),
    "helvetica-boldoblique": ("sans", True, True),
    "arial": ("sans", False, False),
    "arial-bold": ("sans", True, False),
    "arial-italic": ("sans", False, True),
    "arial-bolditalic": ("sans", True, True),
    "verdana": ("sans", False, False),
    "tahoma": ("sans", False, False),
    "calibri": ("sans", False, False),
    "segoe-ui": ("sans", False, False),
    "roboto": ("sans", False, False),
    "open-sans": ("sans", False, False),
    "times": ("serif", False, False),
    "times-roman": ("serif", False, False),
    "timesnewroman": ("serif", False, False),
    "times-new-roman": ("serif", False, False),
    "times-bold": ("serif", True, False),
    "times-italic": ("serif", False, True),
    "times-bolditalic": ("serif", True, True),
    "georgia": ("serif", False, False),
    "cambria": ("serif", False, False),
    "garamond": ("serif", False, False),
    "palatino": ("serif", False, False),
    "book-antiqua": ("serif", False, False),
    "courier": ("mono", False, False),
    "courier-new": ("mono", False, False),
    "courier-bold": ("mono", True, False),
    "courier-oblique": ("mono", False, True),
    "courier-boldoblique": ("mono", True, True),
    "consolas": ("mono", False, False),
    "menlo": ("mono", False, False),
    "monaco": ("mono", False, False),
}

# Longest keys first so "arial-bold" wins over "arial" in substring matching.
_TABLE_BY_LENGTH = sorted(FONT_TABLE.items(), key=lambda item: len(item[0]), reverse=True)

_SUBSET_PREFIX = re.compile(r"^[A-Z]{6}\+")
_SUFFIX_NOISE = re.compile(r"[-,]?(MT|PS|Regular|Reg)$", re.IGNORECASE)
_SEPARATORS = re.compile(r"[\s_,-]+")

_MONO_HINT = re.compile(r"courier|mono|consolas|menlo|code", re.IGNORECASE)
_SERIF_HINT = re.compile(r"serif|times|georgia|garamond|palatino|cambria", re.IGNORECASE)
_BOLD_HINT = re.compile(r"bold|heavy|black|demi", re.IGNORECASE)
_ITALIC_HINT = re.compile(r"italic|oblique|slant", re.IGNORECASE)


@dataclass(frozen=True)
class FontResolution:
    key: str
    family: Family
    bold: bool
    italic: bool
    reason: FontReason

    @property
    def is_custom(self) -> bool:
        return self.key == CUSTOM_FONT_KEY


def normalize_pdf_font_name(raw: str | None) -> str:
    if not raw:
        return ""
    cleaned = _SUBSET_PREFIX.sub("", raw.strip())
    cleaned = _SUFFIX_NOISE.sub("", cleaned)
    normalized = _SEPARATORS.sub("-", cleaned.lower())
    return normalized.strip("-")


def builtin_font_key(family: str, bold: bool, italic: bool) -> str:
    return BUILTIN_FONTS.get((family, bold, italic), DEFAULT_FONT)


def _heuristic(raw: str) -> tuple[str, bool, bool]:
    if _MONO_HINT.search(raw):
        family = "mono"
    elif _SERIF_HINT.search(raw):
        family = "serif"
    else:
        family = "sans"
    return family, bool(_BOLD_HINT.search(raw)), bool(_ITALIC_HINT.search(raw))


def resolve_font(
    raw: str | None,
    bold: bool = False,
    italic: bool = False,
    *,
    has_custom_font: bool = False,
) -> FontResolution:
    """Map an arbitrary font name onto one of the 12 base-14 variants.

    This is a best-effort heuristic: replaced text only approximates the
    original face. A registered custom font short-circuits resolution and
    every request resolves to it.

    Explicit ``bold`` / ``italic`` requests are ORed onto whatever the name
    implies. Substring hints are naive, so a family such as "Boldoni" is
    reported as bold.
    """
    if has_custom_font:
        return FontResolution(CUSTOM_FONT_KEY, "custom", bold, italic, "custom")

    normalized = normalize_pdf_font_name(raw)
    if not normalized:
        return FontResolution(builtin_font_key("sans", bold, italic), "sans", bold, italic, "missing_font")

    entry = FONT_TABLE.get(normalized)
    reason = "exact"
    if entry is None:
        entry = next((value for key, value in _TABLE_BY_LENGTH if key in normalized), None)
        reason = "substring"
    if entry is None:
        entry = _heuristic(raw or "")
        reason = "heuristic"

    family, name_bold, name_italic = entry
    if reason == "exact" or reason == "substring":
        # Table keys only carry style for the base-14 aliases; pick up the rest from the name.
        _, hinted_bold, hinted_italic = _heuristic(raw or "")
        name_bold = name_bold or hinted_bold
        name_italic = name_italic or hinted_italic
    is_bold = name_bold or bold
    is_italic = name_italic or italic
    return FontResolution(builtin_font_key(family, is_bold, is_italic), family, is_bold, is_italic, reason)
