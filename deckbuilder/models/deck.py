"""Deck request, allocation state, and deck response models.

Request and response models are frozen pydantic models.  The working
state of one assembly run (:class:`AllocationState`, :class:`CurveBucket`)
is a plain mutable dataclass owned by exactly one request: it is created
by the allocator, handed to the playset normalizer, and discarded once
the response is built.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from deckbuilder.models.card import CandidateCard, DeckFormat


class DeckStyle(str, Enum):  # noqa: UP042
    """Play style detected from the request text."""

    AGGRO = "aggro"
    CONTROL = "control"
    COMBO = "combo"
    LORE_RACE = "lore_race"
    MIDRANGE = "midrange"


class IdentitySource(str, Enum):  # noqa: UP042
    """Where the colour identity came from."""

    CALLER = "caller"
    LLM = "llm"
    FREQUENCY = "frequency"


class DeckRequest(BaseModel):
    """A caller's deck build request.

    ``colors`` is cleaned on construction: blanks and case-insensitive
    duplicates are dropped and the list is truncated to two entries.
    """

    model_config = ConfigDict(frozen=True)

    request: str = Field(min_length=1)
    target_size: int = Field(default=60, gt=0)
    colors: list[str] = Field(default_factory=list)
    deck_format: DeckFormat = DeckFormat.CORE

    @field_validator("request")
    @classmethod
    def _request_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("request must not be blank")
        return value.strip()

    @field_validator("deck_format", mode="before")
    @classmethod
    def _parse_format(cls, value: object) -> object:
        if isinstance(value, str):
            return DeckFormat.parse(value)
        return value

    @field_validator("colors")
    @classmethod
    def _clean_colors(cls, value: list[str]) -> list[str]:
        cleaned: list[str] = []
        seen: set[str] = set()
        for color in value:
            trimmed = color.strip()
            if not trimmed or trimmed.lower() in seen:
                continue
            seen.add(trimmed.lower())
            cleaned.append(trimmed)
        return cleaned[:2]


class ColorIdentity(BaseModel):
    """The 1-2 colours a deck is built in, plus how they were chosen."""

    model_config = ConfigDict(frozen=True)

    colors: list[str] = Field(min_length=1, max_length=2)
    source: IdentitySource
    distribution: dict[str, int] = Field(default_factory=dict)
    reasoning: str = ""

    def allows(self, card: CandidateCard) -> bool:
        """Return ``True`` if every colour of *card* is inside this identity."""
        if not card.colors:
            return False
        allowed = {c.lower() for c in self.colors}
        return all(c.lower() in allowed for c in card.colors)


class SynergySet(BaseModel):
    """Names of candidates flagged as thematically preferred."""

    model_config = ConfigDict(frozen=True)

    names: frozenset[str] = frozenset()
    source: str = "empty"

    def __contains__(self, name: object) -> bool:
        return name in self.names

    def __len__(self) -> int:
        return len(self.names)


@dataclass
class CurveBucket:
    """One cost bucket of the deck's curve.

    ``desired`` comes from the style's curve shape scaled to the target
    size; ``actual`` is the running number of copies allocated into it.
    """

    label: str
    desired: int
    actual: int = 0

    @property
    def deficit(self) -> int:
        return max(0, self.desired - self.actual)


@dataclass
class PlaysetMove:
    """One copy moved by the playset normalizer."""

    action: str  # promote/donate pair, or demote/receive pair
    name: str
    before: int
    after: int


@dataclass
class AllocationState:
    """Copy counts for one deck build.

    ``counts`` preserves insertion order, which is the allocator's rank
    order.  ``cards`` maps names back to candidates so later phases can
    look up ``max_copies``, cost and colours.
    """

    target_size: int
    counts: dict[str, int] = field(default_factory=dict)
    cards: dict[str, CandidateCard] = field(default_factory=dict)
    curve: dict[str, CurveBucket] = field(default_factory=dict)
    moves: list[PlaysetMove] = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    @property
    def remaining(self) -> int:
        return self.target_size - self.total

    @property
    def inkable_total(self) -> int:
        return sum(n for name, n in self.counts.items() if self.cards[name].inkable)

    def inkable_pct(self) -> float:
        total = self.total
        if total == 0:
            return 0.0
        return 100.0 * self.inkable_total / total

    def add(self, card: CandidateCard, copies: int) -> None:
        """Add *copies* of *card*, never exceeding ``max_copies``."""
        if copies <= 0:
            return
        current = self.counts.get(card.name, 0)
        if current + copies > card.max_copies:
            raise ValueError(
                f"{card.name}: {current} + {copies} exceeds max_copies={card.max_copies}"
            )
        self.cards.setdefault(card.name, card)
        self.counts[card.name] = current + copies

    def remove_one(self, name: str) -> None:
        """Take one copy of *name* out; the entry disappears at zero."""
        current = self.counts[name]
        if current <= 1:
            del self.counts[name]
        else:
            self.counts[name] = current - 1

    def full_playsets(self) -> list[str]:
        """Names whose count equals their ``max_copies``, in rank order."""
        return [n for n, c in self.counts.items() if c == self.cards[n].max_copies]


class DeckCardEntry(BaseModel):
    """One line of the final deck list."""

    model_config = ConfigDict(frozen=True)

    name: str
    count: int = Field(gt=0)
    inkable: bool
    color: str
    cost: int | None = None
    subtypes: list[str] = Field(default_factory=list)
    link: str | None = None


class DeckResponse(BaseModel):
    """The finished deck plus a human-readable narrative."""

    model_config = ConfigDict(frozen=True)

    cards: list[DeckCardEntry] = Field(default_factory=list)
    explanation: str = ""
    colors: list[str] = Field(default_factory=list)
    style: DeckStyle | None = None

    @property
    def total_cards(self) -> int:
        return sum(entry.count for entry in self.cards)
