"""Unit tests for constrained copy allocation."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from deckbuilder.config.deck_knowledge import CURVE_BUCKETS
from deckbuilder.models.deck import AllocationState, CurveBucket, DeckStyle, SynergySet
from deckbuilder.services.deck_allocator import DeckAllocator, pass_cap, rank_candidates
from deckbuilder.utils.errors import DeckSizeShortfallError


# ======================================================================
# Ranking and pass caps
# ======================================================================


class TestRankCandidates:
    def test_synergy_bonus_lifts_preferred_cards(self, make_card) -> None:
        pool = [make_card("A"), make_card("B"), make_card("C")]
        scores = {"A": 1, "B": 1, "C": 3}
        ranked = rank_candidates(pool, scores, SynergySet(names=frozenset({"B"})), synergy_bonus=10)
        assert [c.name for c in ranked] == ["B", "C", "A"]

    def test_inkable_then_cheaper_break_ties(self, make_card) -> None:
        pool = [
            make_card("Uninkable", cost=1, inkable=False),
            make_card("Pricey", cost=4),
            make_card("Cheap", cost=1),
        ]
        ranked = rank_candidates(pool, {}, SynergySet())
        assert [c.name for c in ranked] == ["Cheap", "Pricey", "Uninkable"]

    def test_equal_keys_keep_pool_order(self, make_card) -> None:
        pool = [make_card(f"Same {i}") for i in range(5)]
        assert rank_candidates(pool, {}, SynergySet()) == pool


class TestPassCap:
    @pytest.mark.parametrize(
        ("cost", "max_copies", "cap"),
        [(1, 4, 3), (2, 2, 2), (3, 4, 2), (4, 1, 1), (5, 4, 1), (8, 4, 1), (None, 4, 2)],
    )
    def test_non_preferred(self, make_card, cost, max_copies, cap) -> None:
        assert pass_cap(make_card("X", cost=cost, max_copies=max_copies), preferred=False) == cap

    def test_preferred_gets_full_playset(self, make_card) -> None:
        assert pass_cap(make_card("X", cost=7), preferred=True) == 4


# ======================================================================
# DeckAllocator.allocate
# ======================================================================


class TestAllocate:
    def test_exact_target_size(self, ruby_steel_pool) -> None:
        state = DeckAllocator().allocate(ruby_steel_pool, {}, SynergySet(), DeckStyle.MIDRANGE, 60)
        assert state.total == 60
        assert state.remaining == 0
        for name, count in state.counts.items():
            assert 1 <= count <= state.cards[name].max_copies
        assert sum(bucket.actual for bucket in state.curve.values()) == 60

    @pytest.mark.parametrize("target", [1, 5, 17, 40, 100])
    def test_other_sizes(self, ruby_steel_pool, target: int) -> None:
        state = DeckAllocator().allocate(ruby_steel_pool, {}, SynergySet(), DeckStyle.AGGRO, target)
        assert state.total == target

    def test_only_pool_cards_are_used(self, ruby_steel_pool) -> None:
        names = {card.name for card in ruby_steel_pool}
        state = DeckAllocator().allocate(ruby_steel_pool, {}, SynergySet(), DeckStyle.CONTROL, 60)
        assert set(state.counts) <= names

    def test_shortfall_raises_before_allocating(self, make_card) -> None:
        pool = [make_card(f"Card {i}") for i in range(10)]
        with pytest.raises(DeckSizeShortfallError) as excinfo:
            DeckAllocator().allocate(pool, {}, SynergySet(), DeckStyle.MIDRANGE, 60)
        assert excinfo.value.available == 40
        assert excinfo.value.shortfall == 20
        assert "short by 20" in str(excinfo.value)

    def test_pool_exactly_at_capacity_fills_every_playset(self, make_card) -> None:
        pool = [make_card(f"Card {i}", cost=1 + i % 6) for i in range(15)]
        state = DeckAllocator().allocate(pool, {}, SynergySet(), DeckStyle.MIDRANGE, 60)
        assert state.total == 60
        assert all(count == 4 for count in state.counts.values())

    def test_respects_lower_max_copies(self, make_card) -> None:
        pool = [make_card("Unique", max_copies=1)] + [make_card(f"Card {i}") for i in range(10)]
        state = DeckAllocator().allocate(
            pool, {"Unique": 50}, SynergySet(names=frozenset({"Unique"})), DeckStyle.MIDRANGE, 40
        )
        assert state.counts["Unique"] == 1

    def test_preferred_card_takes_full_playset(self, ruby_steel_pool) -> None:
        favourite = ruby_steel_pool[1]
        state = DeckAllocator().allocate(
            ruby_steel_pool,
            {favourite.name: 20},
            SynergySet(names=frozenset({favourite.name})),
            DeckStyle.MIDRANGE,
            60,
        )
        assert state.counts[favourite.name] == favourite.max_copies
        assert next(iter(state.counts)) == favourite.name

    def test_deterministic(self, ruby_steel_pool) -> None:
        allocator = DeckAllocator()
        scores = {card.name: i % 7 for i, card in enumerate(ruby_steel_pool)}
        synergy = SynergySet(names=frozenset(c.name for c in ruby_steel_pool[:5]))
        first = allocator.allocate(ruby_steel_pool, scores, synergy, DeckStyle.LORE_RACE, 60)
        second = allocator.allocate(list(ruby_steel_pool), dict(scores), synergy, DeckStyle.LORE_RACE, 60)
        assert list(first.counts.items()) == list(second.counts.items())


class TestInkSteering:
    def test_empty_deck_is_not_steered(self, make_card) -> None:
        state = AllocationState(target_size=60)
        assert DeckAllocator()._steer_ink(state, make_card("X", inkable=False), False, 3) == 3

    def test_below_band_limits_uninkable(self, make_card) -> None:
        state = AllocationState(target_size=60)
        state.add(make_card("Seed", inkable=False), 2)
        allocator = DeckAllocator()
        uninkable = make_card("X", inkable=False)
        assert allocator._steer_ink(state, uninkable, False, 3) == 1
        assert allocator._steer_ink(state, uninkable, True, 3) == 3
        assert allocator._steer_ink(state, make_card("Y", inkable=True), False, 3) == 3

    def test_above_band_limits_inkable(self, make_card) -> None:
        state = AllocationState(target_size=60)
        state.add(make_card("Seed", inkable=True), 4)
        allocator = DeckAllocator()
        assert allocator._steer_ink(state, make_card("X", inkable=True), False, 3) == 1
        assert allocator._steer_ink(state, make_card("Y", inkable=False), False, 3) == 3


# ======================================================================
# Greedy pass
# ======================================================================


def _curve_state(target: int, desired: dict[str, int]) -> AllocationState:
    return AllocationState(
        target_size=target,
        curve={label: CurveBucket(label=label, desired=desired.get(label, 0)) for label in CURVE_BUCKETS},
    )


# Ink band wide open so only the curve and the pass caps limit copies.
_NO_INK_STEERING = {"inkable_min_pct": 0.0, "inkable_max_pct": 100.0}


class TestGreedyPass:
    def test_satisfied_bucket_admits_only_one_preferred_copy(self, make_card) -> None:
        state = _curve_state(10, {"1": 10})
        plain = make_card("Plain Two", cost=2)
        favourite = make_card("Favourite Two", cost=2)

        DeckAllocator(**_NO_INK_STEERING)._greedy_pass(
            state, [plain, favourite], SynergySet(names=frozenset({"Favourite Two"}))
        )

        assert "Plain Two" not in state.counts
        assert state.counts["Favourite Two"] == 1
        assert state.curve["2"].actual == 1
        assert state.curve["2"].deficit == 0

    def test_copies_limited_by_bucket_deficit(self, make_card) -> None:
        state = _curve_state(10, {"1": 2, "4": 8})
        first = make_card("One Drop A", cost=1)
        second = make_card("One Drop B", cost=1)

        DeckAllocator(**_NO_INK_STEERING)._greedy_pass(state, [first, second], SynergySet())

        assert state.counts == {"One Drop A": 2}
        assert state.curve["1"].actual == 2

    def test_pass_caps_before_top_up(self, make_card) -> None:
        state = _curve_state(60, {label: 12 for label in CURVE_BUCKETS})
        ranked = [
            make_card("Cheap", cost=1),
            make_card("Two Drop Pair", cost=2, max_copies=2),
            make_card("Mid", cost=3),
            make_card("Unknown Cost", cost=None),
            make_card("Four Drop Single", cost=4, max_copies=1),
            make_card("Big", cost=6),
            make_card("Big Favourite", cost=7),
        ]

        DeckAllocator(**_NO_INK_STEERING)._greedy_pass(
            state, ranked, SynergySet(names=frozenset({"Big Favourite"}))
        )

        assert state.counts == {
            "Cheap": 3,
            "Two Drop Pair": 2,
            "Mid": 2,
            "Unknown Cost": 2,
            "Four Drop Single": 1,
            "Big": 1,
            "Big Favourite": 4,
        }
        # A card without a printed cost lands in the 3 bucket.
        assert state.curve["3"].actual == 4

    def test_stops_at_target_size(self, make_card) -> None:
        state = _curve_state(4, {"1": 4})
        ranked = [make_card("A", cost=1), make_card("B", cost=1)]

        DeckAllocator(**_NO_INK_STEERING)._greedy_pass(
            state, ranked, SynergySet(names=frozenset({"A", "B"}))
        )

        assert state.counts == {"A": 4}
        assert state.remaining == 0


# ======================================================================
# Monotonicity
# ======================================================================


class TestMonotonicity:
    def test_counts_never_decrease_during_allocation(self, ruby_steel_pool) -> None:
        history: list[dict[str, int]] = []
        original_add = AllocationState.add

        def recording_add(state: AllocationState, card, copies: int) -> None:
            original_add(state, card, copies)
            history.append(dict(state.counts))

        scores = {card.name: (i * 7) % 11 for i, card in enumerate(ruby_steel_pool)}
        synergy = SynergySet(names=frozenset(c.name for c in ruby_steel_pool[3:9]))
        with (
            patch.object(AllocationState, "add", recording_add),
            patch.object(AllocationState, "remove_one") as remove_one,
        ):
            state = DeckAllocator().allocate(ruby_steel_pool, scores, synergy, DeckStyle.AGGRO, 60)

        remove_one.assert_not_called()
        assert state.total == 60
        for before, after in zip(history, history[1:]):
            for name, count in before.items():
                assert after[name] >= count

    def test_top_up_only_raises_greedy_counts(self, make_card) -> None:
        # Few cheap cards: the curve leaves slots that the top-up must fill.
        pool = [make_card(f"Cheap {i}", cost=1) for i in range(12)]
        captured: dict[str, int] = {}
        original_top_up = DeckAllocator._top_up

        def capture_then_top_up(self, state, ranked) -> None:
            captured.update(state.counts)
            original_top_up(self, state, ranked)

        with patch.object(DeckAllocator, "_top_up", capture_then_top_up):
            state = DeckAllocator().allocate(pool, {}, SynergySet(), DeckStyle.CONTROL, 40)

        assert captured
        assert sum(captured.values()) < 40
        assert state.total == 40
        for name, count in captured.items():
            assert state.counts[name] >= count
