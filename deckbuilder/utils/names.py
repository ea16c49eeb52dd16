"""Card-name normalization for matching LLM replies against index names.

Card names reach us from more than one source: the card index, and free
text produced by an LLM.  The same card can arrive with a typographic
apostrophe (``Beast’s Mirror``), an en dash in place of the hyphen
(``Captain Hook – Forceful Duelist``), doubled spaces or an invisible
zero-width joiner.  :func:`normalize_name` folds those variants into one
lookup key.  It is only ever used for comparison; displayed names always
come from the card itself.
"""

from __future__ import annotations

import re
from typing import Iterable

_APOSTROPHES = "’‘ʼ＇`´"
_DASHES = "–—−‐‑"
_ZERO_WIDTH = "\u200b\u200c\u200d\ufeff"

_TRANSLATION = str.maketrans(
    {
        **{ch: "'" for ch in _APOSTROPHES},
        **{ch: "-" for ch in _DASHES},
        **{ch: None for ch in _ZERO_WIDTH},
    }
)

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_name(name: str | None) -> str:
    """Return the comparison key for a card *name*.

    Apostrophe and dash variants map to ASCII, zero-width characters are
    dropped, whitespace runs collapse to one space and the result is
    case-folded.  Blank input gives ``""``.
    """
    if not name:
        return ""
    folded = name.translate(_TRANSLATION)
    return _WHITESPACE_RE.sub(" ", folded).strip().casefold()


def name_lookup(names: Iterable[str]) -> dict[str, str]:
    """Map normalized keys to the original names; the first spelling wins."""
    lookup: dict[str, str] = {}
    for name in names:
        lookup.setdefault(normalize_name(name), name)
    return lookup
