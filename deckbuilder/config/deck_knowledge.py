"""Static deck-building knowledge: inks, styles, curves, ability weights.

# ─── PURPOSE ──────────────────────────────────────────────────────────
#
# Hand-tuned tables consumed by the identity selector, the synergy
# recommender, the scorer and the allocator:
#
#   - CANONICAL_COLORS fixes the ink vocabulary and the tie-break order
#     used whenever two inks have the same frequency.
#   - STYLE_KEYWORDS maps request words to a play style.
#   - STYLE_CURVES gives, per style, the fraction of the deck desired in
#     each cost bucket (1, 2, 3, 4, 5+).
#   - STYLE_ABILITY_WEIGHTS gives, per style, bonus points for ability
#     keywords found in a card's name or text.
#
# All functions are pure.  Tables are built once at import time and never
# mutated.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from deckbuilder.models.deck import DeckStyle

# ═════════════════════════════════════════════════════════════════════════
# 1. INKS
# ═════════════════════════════════════════════════════════════════════════

CANONICAL_COLORS: tuple[str, ...] = (
    "Amber",
    "Amethyst",
    "Emerald",
    "Ruby",
    "Sapphire",
    "Steel",
)

_CANONICAL_BY_LOWER: dict[str, str] = {c.lower(): c for c in CANONICAL_COLORS}


def canonical_color(name: str) -> str | None:
    """Return the canonical spelling of an ink, or ``None`` if unknown."""
    return _CANONICAL_BY_LOWER.get(name.strip().lower())


def color_sort_key(color: str) -> tuple[int, str]:
    """Sort key placing canonical inks first, in canonical order.

    Unknown colour tags sort after every canonical ink, alphabetically.
    """
    canonical = canonical_color(color)
    if canonical is not None:
        return (CANONICAL_COLORS.index(canonical), "")
    return (len(CANONICAL_COLORS), color.lower())


# ═════════════════════════════════════════════════════════════════════════
# 2. STYLES
# ═════════════════════════════════════════════════════════════════════════
# Bucket order matters: when two styles match the same number of
# keywords the earlier one wins.

STYLE_KEYWORDS: dict[DeckStyle, tuple[str, ...]] = {
    DeckStyle.AGGRO: (
        "aggro", "aggressive", "rush", "fast", "quick", "tempo",
        "attack", "challenge", "damage",
    ),
    DeckStyle.CONTROL: (
        "control", "defensive", "defense", "removal", "stall", "slow",
        "late game", "ward", "board wipe",
    ),
    DeckStyle.COMBO: (
        "combo", "engine", "loop", "shift", "songs", "song", "singer",
        "card draw",
    ),
    DeckStyle.LORE_RACE: (
        "lore", "quest", "questing", "race", "racing", "locations",
        "location", "evasive",
    ),
}


# ═════════════════════════════════════════════════════════════════════════
# 3. CURVE SHAPES
# ═════════════════════════════════════════════════════════════════════════

CURVE_BUCKETS: tuple[str, ...] = ("1", "2", "3", "4", "5+")

# Cards without a printed cost are treated as this cost everywhere.
UNKNOWN_COST = 3

STYLE_CURVES: dict[DeckStyle, dict[str, float]] = {
    DeckStyle.AGGRO: {"1": 0.20, "2": 0.30, "3": 0.25, "4": 0.15, "5+": 0.10},
    DeckStyle.CONTROL: {"1": 0.08, "2": 0.20, "3": 0.24, "4": 0.22, "5+": 0.26},
    DeckStyle.COMBO: {"1": 0.12, "2": 0.25, "3": 0.25, "4": 0.20, "5+": 0.18},
    DeckStyle.LORE_RACE: {"1": 0.15, "2": 0.30, "3": 0.25, "4": 0.18, "5+": 0.12},
    DeckStyle.MIDRANGE: {"1": 0.12, "2": 0.25, "3": 0.27, "4": 0.20, "5+": 0.16},
}


def effective_cost(cost: int | None) -> int:
    return UNKNOWN_COST if cost is None else cost


def cost_bucket(cost: int | None) -> str:
    """Map a card cost to its curve bucket label."""
    value = effective_cost(cost)
    if value <= 1:
        return "1"
    if value >= 5:
        return "5+"
    return str(value)


def desired_curve(style: DeckStyle, target_size: int) -> dict[str, int]:
    """Scale a style's curve fractions to whole card counts.

    Uses largest-remainder rounding so the counts always sum to exactly
    *target_size*.  Remainder ties go to the earlier bucket.
    """
    fractions = STYLE_CURVES[style]
    raw = {label: fractions[label] * target_size for label in CURVE_BUCKETS}
    counts = {label: int(value) for label, value in raw.items()}
    leftover = target_size - sum(counts.values())
    by_remainder = sorted(
        CURVE_BUCKETS,
        key=lambda label: (-(raw[label] - counts[label]), CURVE_BUCKETS.index(label)),
    )
    for label in by_remainder[:leftover]:
        counts[label] += 1
    return counts


# ═════════════════════════════════════════════════════════════════════════
# 4. ABILITY WEIGHTS
# ═════════════════════════════════════════════════════════════════════════
# Keys are matched case-insensitively as substrings of the card's name
# and ability text.

STYLE_ABILITY_WEIGHTS: dict[DeckStyle, dict[str, int]] = {
    DeckStyle.AGGRO: {
        "rush": 4, "challenger": 3, "reckless": 2, "evasive": 2,
        "deal": 2, "banish": 2,
    },
    DeckStyle.CONTROL: {
        "bodyguard": 4, "ward": 3, "resist": 3, "banish": 3,
        "return": 2, "exert": 2,
    },
    DeckStyle.COMBO: {
        "shift": 4, "singer": 3, "song": 3, "draw": 3, "whenever": 2,
    },
    DeckStyle.LORE_RACE: {
        "evasive": 4, "support": 3, "lore": 3, "quest": 3, "location": 2,
    },
    DeckStyle.MIDRANGE: {
        "evasive": 2, "support": 2, "draw": 2, "bodyguard": 2,
        "challenger": 2, "shift": 2,
    },
}


def ability_weights_for(style: DeckStyle) -> dict[str, int]:
    """Return the ability weight table for *style* (a fresh copy)."""
    return dict(STYLE_ABILITY_WEIGHTS[style])
