"""Build a deck from the command line.

Usage::

    python -m deckbuilder.cli.build "aggressive pirate deck"
    python -m deckbuilder.cli.build "Elsa control" --colors Amethyst Sapphire --size 60
    python -m deckbuilder.cli.build "lore race" --format infinity --json -o deck.json
    python -m deckbuilder.cli.build "songs" --agentic

Runs the same wiring as the HTTP API (``deckbuilder.main.build_services``)
and prints a deck list or JSON to stdout.  Progress and log lines go to
stderr.  ``--json`` implies ``--quiet``.

Exit codes: 0 on success, 1 when the deck cannot be built, 2 on usage
errors.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import time
from pathlib import Path

from deckbuilder.models.card import DeckFormat
from deckbuilder.models.deck import DeckRequest, DeckResponse
from deckbuilder.utils.errors import ConfigurationError, DeckBuilderError
from deckbuilder.utils.logging import configure_logging

# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def format_text_output(deck: DeckResponse) -> str:
    """Render *deck* as a plain-text deck list followed by its narrative."""
    lines: list[str] = []
    sep = "=" * 60

    lines.append(sep)
    title = f"  {deck.total_cards}-card deck"
    if deck.colors:
        title += f"  |  {'/'.join(deck.colors)}"
    if deck.style is not None:
        title += f"  |  {deck.style.value.replace('_', ' ')}"
    lines.append(title)
    lines.append(sep)

    for entry in deck.cards:
        cost = str(entry.cost) if entry.cost is not None else "?"
        ink = "" if entry.inkable else "  (uninkable)"
        lines.append(f"  {entry.count}x  [{cost}] {entry.name}  <{entry.color}>{ink}")

    lines.append("")
    lines.append("HOW IT WAS BUILT")
    lines.append("-" * 40)
    lines.append(deck.explanation)
    return "\n".join(lines)


def format_json_output(deck: DeckResponse) -> str:
    payload = deck.model_dump(mode="json")
    payload["total_cards"] = deck.total_cards
    return json.dumps(payload, indent=2, ensure_ascii=False)


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------


async def _run(args: argparse.Namespace) -> int:
    # Deferred import: deckbuilder.main builds settings and providers, so
    # logging must already point at stderr when it loads.
    try:
        from deckbuilder.main import build_services, settings
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    try:
        request = DeckRequest(
            request=args.request,
            target_size=args.size or settings.default_deck_size,
            colors=args.colors or [],
            deck_format=args.format,
        )
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    try:
        services = build_services(settings)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    except DeckBuilderError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if args.agentic:
        builder = services["agent"]
        if builder is None:
            print("Error: --agentic needs an LLM provider (LLM_ENABLED=true)", file=sys.stderr)
            return 2
    else:
        builder = services["pipeline"]

    print(
        f"Building a {request.target_size}-card {request.deck_format.value} deck "
        f"for: {request.request}",
        file=sys.stderr,
    )
    start = time.monotonic()
    try:
        deck = await builder.build(request)
    except DeckBuilderError as exc:
        phase = getattr(exc, "phase", None)
        where = f" during {phase}" if phase else ""
        print(f"Error{where}: {exc}", file=sys.stderr)
        return 1
    print(f"Done in {time.monotonic() - start:.1f}s", file=sys.stderr)

    text = format_json_output(deck) if args.json_output else format_text_output(deck)
    if args.output:
        Path(args.output).write_text(text, encoding="utf-8")
        print(f"Deck written to: {args.output}", file=sys.stderr)
    else:
        print(text)
    return 0


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m deckbuilder.cli.build",
        description="Assemble a Disney Lorcana deck from a free-text request.",
    )
    parser.add_argument("request", type=str, help="What the deck should do or contain.")
    parser.add_argument(
        "--size", "-n",
        type=int,
        default=None,
        help="Deck size (default: DEFAULT_DECK_SIZE, normally 60).",
    )
    parser.add_argument(
        "--colors", "-c",
        nargs="+",
        default=None,
        metavar="INK",
        help="One or two inks to build in, e.g. --colors Ruby Steel.",
    )
    parser.add_argument(
        "--format", "-f",
        choices=[f.value for f in DeckFormat],
        default=DeckFormat.CORE.value,
        help="Legality format (default: core).",
    )
    parser.add_argument(
        "--agentic",
        action="store_true",
        help="Let the LLM agent search and pick cards turn by turn.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Output the deck as JSON instead of a text list.",
    )
    parser.add_argument(
        "--output", "-o",
        type=str,
        default=None,
        help="Write the deck to a file instead of stdout.",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Only log warnings and errors (to stderr).",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, build the deck, and return the exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.size is not None and args.size <= 0:
        parser.error("--size must be a positive integer")
    if args.colors and len(args.colors) > 2:
        parser.error("--colors takes at most two inks")

    # JSON mode implies quiet; log lines never mix into stdout.
    quiet = args.quiet or args.json_output
    configure_logging(log_level="WARNING" if quiet else "INFO", stream=sys.stderr)

    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
