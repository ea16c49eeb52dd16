"""Candidate card models and tolerant payload parsing.

A :class:`CandidateCard` is built from whatever payload the card index
returns.  Payloads come from more than one ingestion generation, so the
parser accepts several spellings for the same field:

    name        fullName | name
    cost        cost | inkCost
    colors      colors (list or "Ruby,Steel") | inkColor
    inkable     inkwell | inkWell | inkable | playableAsInk
    subtypes    subtypes | classifications (list or comma string)
    max copies  maxCopiesInDeck | max_copies   (non-positive -> 4)
    link        cardMarketUrl | link
    text        fullText | text | rules

Format legality is read from either the nested ``allowedInFormats``
object (also accepted as a JSON string) or from flattened keys such as
``allowed_core`` / ``allowed_core_from_ts`` / ``allowed_core_until_ts``.
Timestamps are unix seconds; ISO-8601 strings are converted.
"""

from __future__ import annotations

import json
import math
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_MAX_COPIES = 4

_TRUE_STRINGS = {"true", "yes", "y", "1", "t"}
_FALSE_STRINGS = {"false", "no", "n", "0", "f", ""}


class DeckFormat(str, Enum):  # noqa: UP042
    """Legality formats a deck can be built for."""

    CORE = "core"
    INFINITY = "infinity"

    @classmethod
    def parse(cls, value: str | DeckFormat) -> DeckFormat:
        """Case-insensitive lookup (``"Core"``, ``"core"`` and ``"CORE"`` all work)."""
        if isinstance(value, DeckFormat):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError as exc:
            raise ValueError(f"Unknown deck format: {value!r}") from exc


class FormatLegality(BaseModel):
    """Legality of a card in one format.

    ``None`` means the payload did not say.  A missing window bound is
    unbounded.
    """

    model_config = ConfigDict(frozen=True)

    allowed: bool | None = None
    allowed_from: int | None = None
    allowed_until: int | None = None

    def window_open(self, now: int) -> bool:
        if self.allowed_until is not None and self.allowed_until < now:
            return False
        if self.allowed_from is not None and self.allowed_from > now:
            return False
        return True


class CandidateCard(BaseModel):
    """A card returned by the card index, normalized for deck assembly."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    cost: int | None = Field(default=None, ge=0)
    colors: list[str] = Field(min_length=1)
    inkable: bool = False
    text: str = ""
    subtypes: list[str] = Field(default_factory=list)
    max_copies: int = Field(default=DEFAULT_MAX_COPIES, ge=1)
    link: str | None = None
    legality: dict[DeckFormat, FormatLegality] = Field(default_factory=dict)

    @property
    def color_label(self) -> str:
        return "/".join(self.colors)

    def is_legal_in(self, deck_format: DeckFormat, now: int | None = None) -> bool:
        """Return ``True`` if the card may be played in *deck_format* at *now*.

        Core accepts cards unless they are explicitly disallowed or outside
        their legality window.  Infinity requires an explicit ``allowed``.
        """
        if now is None:
            now = int(time.time())
        entry = self.legality.get(deck_format)
        if deck_format == DeckFormat.CORE:
            if entry is None:
                return True
            return entry.allowed is not False and entry.window_open(now)
        if entry is None:
            return False
        return entry.allowed is True and entry.window_open(now)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> CandidateCard | None:
        """Build a card from a raw index payload.

        Returns ``None`` when the payload has no usable name or no colour,
        since such a card can never be placed in a deck.
        """
        name = _first_str(payload, "fullName", "name")
        if not name:
            return None
        colors = _parse_colors(payload)
        if not colors:
            return None

        max_copies = _to_int(_first(payload, "maxCopiesInDeck", "max_copies"))
        if max_copies is None or max_copies <= 0:
            max_copies = DEFAULT_MAX_COPIES

        cost = _to_int(_first(payload, "cost", "inkCost"))
        if cost is not None and cost < 0:
            cost = None

        return cls(
            name=name,
            cost=cost,
            colors=colors,
            inkable=_to_bool(_first(payload, "inkwell", "inkWell", "inkable", "playableAsInk")),
            text=_first_str(payload, "fullText", "text", "rules") or "",
            subtypes=_split_list(_first(payload, "subtypes", "classifications")),
            max_copies=max_copies,
            link=_first_str(payload, "cardMarketUrl", "link") or None,
            legality=_parse_legality(payload),
        )


class CardHit(BaseModel):
    """One search result: a card and its similarity to the query."""

    model_config = ConfigDict(frozen=True)

    card: CandidateCard
    score: float = 0.0


# ---------------------------------------------------------------------------
# Payload helpers
# ---------------------------------------------------------------------------


def _first(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


def _first_str(payload: Mapping[str, Any], *keys: str) -> str | None:
    value = _first(payload, *keys)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _to_number(value: Any) -> float | int | None:
    """Finite number from *value*, or ``None`` (NaN, infinities and junk)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def _to_int(value: Any) -> int | None:
    number = _to_number(value)
    return None if number is None else int(number)


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    return False


def _to_optional_bool(value: Any) -> bool | None:
    if value is None:
        return None
    return _to_bool(value)


def _split_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        parts = value.replace("/", ",").split(",")
    elif isinstance(value, (list, tuple, set)):
        parts = [str(v) for v in value]
    else:
        return []
    return [p.strip() for p in parts if p and p.strip()]


def _parse_colors(payload: Mapping[str, Any]) -> list[str]:
    colors = _split_list(payload.get("colors"))
    if not colors:
        colors = _split_list(payload.get("inkColor"))
    deduped: list[str] = []
    for color in colors:
        if color.lower() not in {c.lower() for c in deduped}:
            deduped.append(color)
    return deduped


def _to_timestamp(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _to_int(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            number = None
        if number is not None:
            return _to_int(number)
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return int(parsed.timestamp())
    return None


def _parse_legality(payload: Mapping[str, Any]) -> dict[DeckFormat, FormatLegality]:
    legality: dict[DeckFormat, FormatLegality] = {}

    nested = payload.get("allowedInFormats")
    if isinstance(nested, str):
        try:
            nested = json.loads(nested)
        except json.JSONDecodeError:
            nested = None
    if isinstance(nested, Mapping):
        for key, entry in nested.items():
            try:
                deck_format = DeckFormat.parse(str(key))
            except ValueError:
                continue
            if isinstance(entry, Mapping):
                legality[deck_format] = FormatLegality(
                    allowed=_to_optional_bool(entry.get("allowed")),
                    allowed_from=_to_timestamp(entry.get("allowedFromTs")),
                    allowed_until=_to_timestamp(entry.get("allowedUntilTs")),
                )

    for deck_format in DeckFormat:
        if deck_format in legality:
            continue
        prefix = f"allowed_{deck_format.value}"
        keys = (prefix, f"{prefix}_from_ts", f"{prefix}_until_ts")
        if not any(k in payload for k in keys):
            continue
        legality[deck_format] = FormatLegality(
            allowed=_to_optional_bool(payload.get(prefix)),
            allowed_from=_to_timestamp(payload.get(keys[1])),
            allowed_until=_to_timestamp(payload.get(keys[2])),
        )

    return legality
