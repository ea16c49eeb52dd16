"""Pipeline phase and per-phase result models.

Each phase of :class:`~deckbuilder.pipeline.deck_pipeline.DeckBuildPipeline`
produces one of the frozen result models below.  The final
:class:`DeckBuildState` collects them so the response builder can narrate
what happened in every phase.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from deckbuilder.models.card import CandidateCard
from deckbuilder.models.deck import ColorIdentity, DeckRequest, DeckStyle, SynergySet


class PipelinePhase(str, Enum):  # noqa: UP042
    """Phases of the deterministic deck build.

        SEARCH -> FILTER -> ASSEMBLY

    Any phase can stop the build with a :class:`DeckBuildError` naming it.
    """

    SEARCH = "SEARCH"
    FILTER = "FILTER"
    ASSEMBLY = "ASSEMBLY"


class RetrievalResult(BaseModel):
    """Merged candidate pool from every retrieval wave."""

    model_config = ConfigDict(frozen=True)

    pool: list[CandidateCard] = Field(default_factory=list)
    search_terms: list[str] = Field(default_factory=list)
    subtype_terms: list[str] = Field(default_factory=list)
    queries_issued: int = 0
    queries_failed: int = 0
    dropped_illegal: int = 0


class FilterResult(BaseModel):
    """Colour-legal pool plus the cards that were removed."""

    model_config = ConfigDict(frozen=True)

    identity: ColorIdentity
    legal_pool: list[CandidateCard] = Field(default_factory=list)
    removed_for_color: list[str] = Field(default_factory=list)


class DeckBuildState(BaseModel):
    """Everything the response builder needs to narrate a finished build."""

    model_config = ConfigDict(frozen=True)

    request: DeckRequest
    phase: PipelinePhase = PipelinePhase.SEARCH
    retrieval: RetrievalResult | None = None
    filtering: FilterResult | None = None
    style: DeckStyle = DeckStyle.MIDRANGE
    synergy: SynergySet = SynergySet()
