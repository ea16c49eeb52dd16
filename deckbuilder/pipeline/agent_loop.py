"""Agentic deck build: an LLM drives search and selection turn by turn.

# ─── STATE MACHINE ────────────────────────────────────────────────────
#
#   state = (deck counts, iteration, known cards, last search, feedback)
#
#   Each turn the LLM receives the state and replies with ONE JSON action:
#
#     search     {"action": "search", "query": "..."}
#                -> semantic search; results become "known" cards and are
#                   listed in the next prompt
#     add_cards  {"action": "add_cards", "cards": [["Name", 4], ...]}
#                -> known cards are added within colour identity,
#                   max_copies and the target size; rejections are fed back
#     finalize   {"action": "finalize"}
#                -> accepted only when the deck is exactly at target size,
#                   otherwise a shortage message is fed back
#
#   A reply that cannot be parsed into one of these actions ends the run
#   with AgentLoopError, as does reaching ``max_iterations``.
# ──────────────────────────────────────────────────────────────────────

Aliases ``search_cards`` and ``add`` are accepted, and field names are
matched case-insensitively.  When the caller names no colours, the first
two inks added to the deck become its identity.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Annotated, Any, Literal, Union

import structlog
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from deckbuilder.config.deck_knowledge import canonical_color, color_sort_key
from deckbuilder.interfaces.card_index_provider import ICardIndexProvider
from deckbuilder.interfaces.embedding_provider import IEmbeddingProvider
from deckbuilder.interfaces.llm_provider import ILLMProvider
from deckbuilder.models.card import CandidateCard
from deckbuilder.models.deck import (
    AllocationState,
    ColorIdentity,
    DeckRequest,
    DeckResponse,
    IdentitySource,
)
from deckbuilder.models.pipeline import DeckBuildState, FilterResult, PipelinePhase
from deckbuilder.services.deck_response_builder import DeckResponseBuilder
from deckbuilder.services.synergy_recommender import detect_style
from deckbuilder.utils.errors import AgentLoopError, DeckBuilderError, LLMError
from deckbuilder.utils.json_extract import extract_json_object, lower_keys
from deckbuilder.utils.logging import deck_build_context, get_logger
from deckbuilder.utils.names import name_lookup, normalize_name

_SYSTEM_PROMPT = (
    "You are an expert Disney Lorcana deck builder working step by step. "
    "Each turn, reply with exactly one JSON action and nothing else."
)

_MAX_FEEDBACK_LINES = 10


# ═════════════════════════════════════════════════════════════════════════
# Actions
# ═════════════════════════════════════════════════════════════════════════


class SearchAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: Literal["search"]
    query: str = Field(min_length=1)
    reasoning: str = ""


class CardRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    count: int = Field(default=1, ge=1)


class AddCardsAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: Literal["add_cards"]
    cards: list[CardRequest] = Field(min_length=1)
    reasoning: str = ""


class FinalizeAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: Literal["finalize"]
    reasoning: str = ""


AgentAction = Annotated[
    Union[SearchAction, AddCardsAction, FinalizeAction],
    Field(discriminator="action"),
]

_ACTION_ADAPTER: TypeAdapter[Any] = TypeAdapter(AgentAction)

_ACTION_ALIASES: dict[str, str] = {
    "search": "search",
    "search_cards": "search",
    "add_cards": "add_cards",
    "add": "add_cards",
    "finalize": "finalize",
}


@dataclass(frozen=True)
class ActionParseError:
    """Why an agent reply could not be turned into an action."""

    reason: str
    response_preview: str = ""


def _normalize_card_requests(value: Any) -> Any:
    """Accept ``[["Name", 2]]``, ``[{"name": .., "count": ..}]`` or ``["Name"]``."""
    if not isinstance(value, list):
        return value
    normalized: list[Any] = []
    for item in value:
        if isinstance(item, (list, tuple)) and item:
            entry: dict[str, Any] = {"name": item[0]}
            if len(item) > 1:
                entry["count"] = item[1]
            normalized.append(entry)
        elif isinstance(item, dict):
            item = lower_keys(item)
            entry = {"name": item.get("name") or item.get("fullname") or item.get("card")}
            count = item.get("count", item.get("copies", item.get("quantity")))
            if count is not None:
                entry["count"] = count
            normalized.append(entry)
        elif isinstance(item, str):
            normalized.append({"name": item})
        else:
            normalized.append(item)
    return normalized


def parse_agent_action(reply: str) -> SearchAction | AddCardsAction | FinalizeAction | ActionParseError:
    """Parse an untrusted agent reply into a typed action.

    Never raises: every failure is returned as :class:`ActionParseError`.
    """
    preview = (reply or "")[:200]
    data = extract_json_object(reply)
    if data is None:
        return ActionParseError(reason="no JSON object in reply", response_preview=preview)

    raw_action = data.get("action")
    if not isinstance(raw_action, str):
        return ActionParseError(reason="reply has no action field", response_preview=preview)

    action = _ACTION_ALIASES.get(raw_action.strip().lower().replace("-", "_"))
    if action is None:
        return ActionParseError(reason=f"unknown action '{raw_action}'", response_preview=preview)

    data["action"] = action
    if action == "add_cards":
        data["cards"] = _normalize_card_requests(data.get("cards"))
    if isinstance(data.get("reasoning"), (list, dict)):
        data["reasoning"] = str(data["reasoning"])
    if data.get("reasoning") is None:
        data.pop("reasoning", None)

    try:
        return _ACTION_ADAPTER.validate_python(data)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        return ActionParseError(
            reason=f"invalid {action} action: {location} {first.get('msg', '')}".strip(),
            response_preview=preview,
        )


# ═════════════════════════════════════════════════════════════════════════
# State
# ═════════════════════════════════════════════════════════════════════════


@dataclass
class AgentState:
    """Mutable state of one agentic build.  Never shared between requests."""

    request: DeckRequest
    allocation: AllocationState
    iteration: int = 0
    known: dict[str, CandidateCard] = field(default_factory=dict)
    last_search: str | None = None
    last_results: list[CandidateCard] = field(default_factory=list)
    feedback: list[str] = field(default_factory=list)
    reasoning: list[str] = field(default_factory=list)

    def deck_colors(self) -> list[str]:
        colors: set[str] = set()
        for name in self.allocation.counts:
            colors.update(canonical_color(c) or c for c in self.allocation.cards[name].colors)
        return sorted(colors, key=color_sort_key)


# ═════════════════════════════════════════════════════════════════════════
# Builder
# ═════════════════════════════════════════════════════════════════════════


class AgenticDeckBuilder:
    """Runs the bounded agent loop for one request at a time."""

    def __init__(
        self,
        llm_provider: ILLMProvider,
        embedding_provider: IEmbeddingProvider,
        card_index: ICardIndexProvider,
        response_builder: DeckResponseBuilder | None = None,
        max_iterations: int = 10,
        search_limit: int = 20,
        timeout_seconds: float | None = 25.0,
    ) -> None:
        self._llm = llm_provider
        self._embedder = embedding_provider
        self._index = card_index
        self._response_builder = response_builder or DeckResponseBuilder()
        self._max_iterations = max_iterations
        self._search_limit = search_limit
        self._timeout = timeout_seconds
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def build(self, request: DeckRequest) -> DeckResponse:
        """Drive the agent until it finalizes a full deck.

        Raises
        ------
        AgentLoopError
            On an unparseable reply, a provider failure, or when
            ``max_iterations`` turns pass without a finalized deck.
        """
        with deck_build_context(
            "agent", request.target_size, request.deck_format.value, request.colors
        ):
            return await self._run(request)

    async def _run(self, request: DeckRequest) -> DeckResponse:
        state = AgentState(
            request=request,
            allocation=AllocationState(target_size=request.target_size),
        )
        self._logger.info(
            "agent_build_start",
            request=request.request,
            max_iterations=self._max_iterations,
        )

        while state.iteration < self._max_iterations:
            state.iteration += 1
            reply = await self._ask(state)
            action = parse_agent_action(reply)

            if isinstance(action, ActionParseError):
                self._logger.warning(
                    "agent_reply_malformed",
                    iteration=state.iteration,
                    reason=action.reason,
                    response_preview=action.response_preview,
                )
                raise AgentLoopError(
                    message=f"Unparseable agent reply at iteration {state.iteration}: {action.reason}",
                    iterations=state.iteration,
                    provider_name=self._llm.get_provider_name(),
                )

            if action.reasoning:
                state.reasoning.append(action.reasoning)
            self._logger.info("agent_action", iteration=state.iteration, action=action.action)

            if isinstance(action, SearchAction):
                await self._do_search(state, action)
            elif isinstance(action, AddCardsAction):
                self._do_add(state, action)
            elif self._do_finalize(state):
                return self._respond(state)

        total = state.allocation.total
        self._logger.warning(
            "agent_iterations_exhausted",
            iterations=state.iteration,
            total_cards=total,
            target_size=request.target_size,
        )
        raise AgentLoopError(
            message=(
                f"No finalized deck after {state.iteration} iterations "
                f"({total}/{request.target_size} cards)"
            ),
            iterations=state.iteration,
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def _do_search(self, state: AgentState, action: SearchAction) -> None:
        request = state.request
        state.last_search = action.query
        try:
            vector = await self._embedder.embed_single(action.query)
            hits = await self._index.search(
                vector,
                request.deck_format,
                limit=self._search_limit,
                colors=request.colors or None,
            )
        except DeckBuilderError as exc:
            self._logger.warning("agent_search_failed", query=action.query, error=str(exc))
            state.last_results = []
            state.feedback.append(f"Search '{action.query}' failed; try a different query.")
            return

        now = int(time.time())
        results = [hit.card for hit in hits if hit.card.is_legal_in(request.deck_format, now)]
        for card in results:
            state.known.setdefault(card.name, card)
        state.last_results = results
        if not results:
            state.feedback.append(f"Search '{action.query}' returned no legal cards.")

    def _do_add(self, state: AgentState, action: AddCardsAction) -> None:
        allocation = state.allocation
        by_key = {key: state.known[name] for key, name in name_lookup(state.known).items()}
        for wanted in action.cards:
            card = by_key.get(normalize_name(wanted.name))
            if card is None:
                state.feedback.append(f"Rejected '{wanted.name}': not in any search results.")
                continue
            if not self._color_allowed(state, card):
                state.feedback.append(
                    f"Rejected '{card.name}': {card.color_label} is outside the deck colours."
                )
                continue
            have = allocation.counts.get(card.name, 0)
            copies = min(wanted.count, card.max_copies - have, allocation.remaining)
            if copies <= 0:
                reason = "deck is full" if allocation.remaining <= 0 else f"already at {have} copies"
                state.feedback.append(f"Rejected '{card.name}': {reason}.")
                continue
            allocation.add(card, copies)
            if copies < wanted.count:
                state.feedback.append(
                    f"Added only {copies} of {wanted.count} '{card.name}' (copy limit or deck size)."
                )

    def _do_finalize(self, state: AgentState) -> bool:
        allocation = state.allocation
        if allocation.total == state.request.target_size:
            return True
        state.feedback.append(
            f"Cannot finalize: deck has {allocation.total}/{state.request.target_size} cards; "
            f"add {allocation.remaining} more first."
        )
        self._logger.info(
            "agent_finalize_rejected",
            iteration=state.iteration,
            total_cards=allocation.total,
            shortage=allocation.remaining,
        )
        return False

    def _color_allowed(self, state: AgentState, card: CandidateCard) -> bool:
        requested = state.request.colors
        if requested:
            allowed = {c.lower() for c in requested}
            return all(c.lower() in allowed for c in card.colors)
        colors = set(state.deck_colors())
        colors.update(canonical_color(c) or c for c in card.colors)
        return len(colors) <= 2

    # ------------------------------------------------------------------
    # LLM turn
    # ------------------------------------------------------------------

    async def _ask(self, state: AgentState) -> str:
        prompt = self._build_prompt(state)
        state.feedback = []
        try:
            if self._timeout is None:
                return await self._llm.complete(_SYSTEM_PROMPT, prompt, temperature=0.3, max_tokens=1200)
            return await asyncio.wait_for(
                self._llm.complete(_SYSTEM_PROMPT, prompt, temperature=0.3, max_tokens=1200),
                self._timeout,
            )
        except (LLMError, asyncio.TimeoutError) as exc:
            self._logger.error(
                "agent_llm_failed",
                iteration=state.iteration,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise AgentLoopError(
                message=f"Agent LLM call failed at iteration {state.iteration}: {exc}",
                iterations=state.iteration,
                provider_name=self._llm.get_provider_name(),
            ) from exc

    def _build_prompt(self, state: AgentState) -> str:
        request = state.request
        allocation = state.allocation
        lines = [
            f"USER REQUEST: {request.request}",
            f"GOAL: Build a legal {request.target_size}-card "
            f"{request.deck_format.value} deck that fulfils the request.",
            "",
            "CURRENT STATE:",
            f"- Cards in deck: {allocation.total}/{request.target_size}",
            f"- Turn: {state.iteration} of {self._max_iterations}",
        ]
        if request.colors:
            lines.append(f"- Required inks: {', '.join(request.colors)}")
        else:
            deck_colors = state.deck_colors()
            if deck_colors:
                lines.append(f"- Deck inks so far: {', '.join(deck_colors)} (at most two)")

        if allocation.counts:
            lines.append("")
            lines.append("DECK SO FAR:")
            for name, count in sorted(allocation.counts.items(), key=lambda kv: (-kv[1], kv[0])):
                lines.append(f"  {count}x {name}")

        if state.last_search is not None:
            lines.append("")
            lines.append(f"RESULTS FOR '{state.last_search}' (name,cost,inkable,inks,max copies):")
            for card in state.last_results:
                cost = card.cost if card.cost is not None else "?"
                lines.append(
                    f'"{card.name}",{cost},{str(card.inkable).lower()},'
                    f'"{"|".join(card.colors)}",{card.max_copies}'
                )

        if state.feedback:
            lines.append("")
            lines.append("FEEDBACK ON YOUR LAST ACTION:")
            lines.extend(f"- {line}" for line in state.feedback[:_MAX_FEEDBACK_LINES])

        lines.extend(
            [
                "",
                "ACTIONS:",
                '  {"action": "search", "query": "text", "reasoning": "..."}',
                '  {"action": "add_cards", "cards": [["Exact Card Name", 4]], "reasoning": "..."}',
                '  {"action": "finalize", "reasoning": "..."}',
                "Only add cards that appeared in search results. "
                "Finalize only when the deck is exactly at target size.",
            ]
        )
        remaining = allocation.remaining
        if allocation.total == 0:
            lines.append("Start by searching for the cards that define the deck's plan.")
        elif remaining > 0:
            lines.append(
                f"Need {remaining} more cards. Keep a smooth cost curve and roughly "
                "70-85% inkable cards."
            )
        else:
            lines.append("The deck is at target size: finalize.")
        lines.append("Respond with ONLY the JSON object.")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Result
    # ------------------------------------------------------------------

    def _respond(self, state: AgentState) -> DeckResponse:
        request = state.request
        colors = list(request.colors) or state.deck_colors()
        identity = ColorIdentity(
            colors=colors[:2],
            source=IdentitySource.CALLER if request.colors else IdentitySource.LLM,
        )
        build_state = DeckBuildState(
            request=request,
            phase=PipelinePhase.ASSEMBLY,
            filtering=FilterResult(identity=identity, legal_pool=list(state.known.values())),
            style=detect_style(request.request),
        )
        response = self._response_builder.build(state.allocation, build_state)

        lines = [f"Built in {state.iteration} agent turns.", response.explanation]
        if state.reasoning:
            lines.append("")
            lines.append("Agent reasoning:")
            lines.extend(f"{i}. {text}" for i, text in enumerate(state.reasoning, start=1))
        self._logger.info(
            "agent_build_complete",
            iterations=state.iteration,
            total_cards=response.total_cards,
            colors=identity.colors,
        )
        return response.model_copy(update={"explanation": "\n".join(lines)})
