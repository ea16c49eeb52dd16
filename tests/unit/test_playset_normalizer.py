"""Unit tests for the playset normalizer."""

from __future__ import annotations

import pytest

from deckbuilder.models.deck import AllocationState
from deckbuilder.services.playset_normalizer import PlaysetNormalizer


def _state(make_card, counts: list[tuple[str, int]], max_copies: int = 4) -> AllocationState:
    state = AllocationState(target_size=sum(n for _, n in counts))
    for name, n in counts:
        state.add(make_card(name, max_copies=max_copies), n)
    return state


def _assert_counts_in_range(state: AllocationState) -> None:
    for name, count in state.counts.items():
        assert 1 <= count <= state.cards[name].max_copies


class TestPromotion:
    def test_singletons_consolidate_into_playsets(self, make_card) -> None:
        counts = [("Full 1", 4), ("Full 2", 4)] + [(f"Single {i:02d}", 1) for i in range(20)]
        state = _state(make_card, counts)
        assert state.total == 28
        assert len(state.full_playsets()) == 2

        result = PlaysetNormalizer(min_playsets=5, max_playsets=12).normalize(state)

        assert result is state
        assert result.total == 28
        assert len(result.full_playsets()) >= 5
        _assert_counts_in_range(result)
        # The earliest-ranked singletons are promoted; the latest ones donate.
        assert result.full_playsets() == ["Full 1", "Full 2", "Single 00", "Single 01", "Single 02"]
        assert "Single 19" not in result.counts

    def test_multi_copy_entries_donate_first(self, make_card) -> None:
        state = _state(make_card, [("A", 3), ("B", 2), ("C", 2), ("D", 1)])

        PlaysetNormalizer(min_playsets=1, max_playsets=12).normalize(state)

        assert state.counts == {"A": 4, "B": 2, "C": 1, "D": 1}
        assert [(m.action, m.name, m.before, m.after) for m in state.moves] == [
            ("donate", "C", 2, 1),
            ("promote", "A", 3, 4),
        ]

    def test_full_playsets_never_donate(self, make_card) -> None:
        state = _state(make_card, [("Full", 4), ("A", 2), ("B", 1)])

        PlaysetNormalizer(min_playsets=3, max_playsets=12).normalize(state)

        assert state.counts["Full"] == 4
        assert state.total == 7
        _assert_counts_in_range(state)

    def test_stops_when_no_donor(self, make_card) -> None:
        state = _state(make_card, [("Lonely", 1)])
        PlaysetNormalizer(min_playsets=5, max_playsets=12).normalize(state)
        assert state.counts == {"Lonely": 1}
        assert state.moves == []


class TestDemotion:
    def test_excess_playsets_are_trimmed(self, make_card) -> None:
        counts = [(f"P{i:02d}", 4) for i in range(14)] + [("R1", 2), ("R2", 2)]
        state = _state(make_card, counts)
        assert state.total == 60

        PlaysetNormalizer(min_playsets=5, max_playsets=12).normalize(state)

        assert state.total == 60
        assert len(state.full_playsets()) == 12
        assert state.counts["P13"] == 3
        assert state.counts["P12"] == 3
        assert state.counts["R1"] == 3
        assert state.counts["R2"] == 3
        assert [m.action for m in state.moves] == ["demote", "receive", "demote", "receive"]

    def test_stops_when_no_recipient(self, make_card) -> None:
        state = _state(make_card, [(f"P{i:02d}", 4) for i in range(15)])
        PlaysetNormalizer(min_playsets=5, max_playsets=12).normalize(state)
        assert len(state.full_playsets()) == 15
        assert state.total == 60


def test_within_band_is_untouched(make_card) -> None:
    counts = [(f"P{i}", 4) for i in range(6)] + [("A", 2), ("B", 1)]
    state = _state(make_card, counts)
    before = dict(state.counts)

    PlaysetNormalizer(min_playsets=5, max_playsets=12).normalize(state)

    assert state.counts == before
    assert state.moves == []


def test_min_above_max_rejected() -> None:
    with pytest.raises(ValueError, match="must not exceed"):
        PlaysetNormalizer(min_playsets=8, max_playsets=4)
