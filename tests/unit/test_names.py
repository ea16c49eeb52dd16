"""Unit tests for deckbuilder.utils.names."""

from __future__ import annotations

import pytest

from deckbuilder.utils.names import name_lookup, normalize_name


class TestNormalizeName:
    @pytest.mark.parametrize(
        "raw",
        [
            "Beast's Mirror",
            "Beast’s Mirror",
            "Beast‘s Mirror",
            "Beastʼs Mirror",
            "Beast＇s Mirror",
            "BEAST'S  MIRROR",
            "  Beast's\u200b Mirror\ufeff ",
        ],
    )
    def test_apostrophe_variants_match(self, raw: str) -> None:
        assert normalize_name(raw) == "beast's mirror"

    @pytest.mark.parametrize("dash", ["-", "–", "—", "−", "‐", "‑"])
    def test_dash_variants_match(self, dash: str) -> None:
        assert normalize_name(f"Captain Hook {dash} Forceful Duelist") == "captain hook - forceful duelist"

    def test_whitespace_is_collapsed(self) -> None:
        assert normalize_name("Mickey\tMouse \n -  Brave Little Tailor") == (
            "mickey mouse - brave little tailor"
        )

    @pytest.mark.parametrize("raw", [None, "", "   ", "\u200b"])
    def test_blank_input(self, raw) -> None:
        assert normalize_name(raw) == ""


def test_name_lookup_keeps_first_spelling() -> None:
    lookup = name_lookup(["Let It Go", "let it go", "Hakuna Matata"])
    assert lookup == {"let it go": "Let It Go", "hakuna matata": "Hakuna Matata"}
