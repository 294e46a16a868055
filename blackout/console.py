#!/usr/bin/env python3
"""
Blackout terminal driver
- Shows the current node's text with committed selections blacked out.
- Selections are typed as character ranges; the budget readout updates live.
- Timed challenges race the prompt against the deadline.
Usage: python3 -m blackout.console [graph.json]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import textwrap
from pathlib import Path
from typing import List, Optional, Sequence

from .graph import AdvanceResult
from .nodes import NodeKind
from .schema import load_graph
from .session import Session
from .settings import SETTINGS_PATH, configure_logging, load_settings, save_settings

DEFAULT_GRAPH_PATH = Path(__file__).resolve().parent.parent / "stories" / "sample.json"
LINE_WIDTH = 72
MASK_CHAR = "█"

COMMANDS = [
    "select S E",
    "erase I [J]",
    "clear",
    "submit",
    "advance",
    "branch N",
    "outcome y/n",
    "score",
    "vars",
    "reset",
    "quit",
]

logger = logging.getLogger(__name__)


def emit_print(*args, **kwargs) -> None:
    print(*args, **kwargs)


async def read_input(prompt: str = "") -> str:
    return await asyncio.to_thread(input, prompt)


def masked_text(session: Session) -> str:
    content = session.content
    if content is None:
        return ""
    surface = session.book.surface(content.surface_id)
    return "".join(
        char if char == "\n" or not surface.contains(index) else MASK_CHAR
        for index, char in enumerate(content.text)
    )


def ruler(length: int) -> str:
    return "".join(str(index // 10 % 10) if index % 10 == 0 else "." for index in range(length))


def render_node(session: Session) -> None:
    node = session.current_node
    emit_print("\n" + "=" * LINE_WIDTH)
    if node is None:
        emit_print(f"[!] Node {session.node_id} does not exist.")
        return
    emit_print(node.name or f"Node {node.id}")
    emit_print("-" * LINE_WIDTH)

    if node.kind is NodeKind.TERMINAL:
        return

    content = session.content
    if content is not None and content.text:
        for paragraph in masked_text(session).split("\n"):
            if paragraph.strip():
                for line in textwrap.wrap(paragraph, width=LINE_WIDTH):
                    emit_print(line)
            else:
                emit_print("")
        if "\n" not in content.text and len(content.text) <= LINE_WIDTH:
            emit_print(ruler(len(content.text)))
        emit_print(f"Budget: {session.ledger.used()}/{session.ledger.max_total} used, {session.remaining()} left")

    if node.kind is NodeKind.BRANCH:
        for idx, branch in enumerate(node.branches, start=1):
            emit_print(f"  {idx}. {branch.name or f'Branch {idx}'}")
    if node.kind is NodeKind.TIMED_CHALLENGE:
        timer = session.traversal.timer
        remaining = timer.remaining() if timer is not None else 0.0
        emit_print(f"[!] Timed challenge: {remaining:.1f}s to report an outcome.")
    emit_print("  " + "  |  ".join(COMMANDS))


def describe_advance(result: AdvanceResult) -> str:
    if result.moved:
        return f"[>] Moved to node {result.node_id}."
    if result.error:
        return f"[!] Staying put: {result.error}"
    return "[!] Staying put."


def show_submit(session: Session) -> None:
    report = session.submit(session.node_id)
    if not report.fired:
        emit_print("No change rule fired.")
    for description in report.fired:
        emit_print(f"[+] Rule fired: {description}")
    for change in report.changes:
        emit_print(f"    {change.description}")


def show_score(session: Session) -> None:
    report = session.score()
    for name in report.fired:
        emit_print(f"[*] {name}")
    if not report.totals:
        emit_print("No scores yet.")
    for counter, total in sorted(report.totals.items()):
        emit_print(f"    {counter}: {total:g}")


def parse_ints(parts: Sequence[str]) -> Optional[List[int]]:
    try:
        return [int(part) for part in parts]
    except ValueError:
        return None


def handle_command(session: Session, raw: str) -> bool:
    """Run one typed command; returns ``False`` when the player quits."""
    parts = raw.split()
    if not parts:
        return True
    command, args = parts[0].lower(), parts[1:]
    content = session.content
    surface_id = content.surface_id if content is not None else None

    if command in ("q", "quit"):
        return False
    if command in ("h", "help"):
        emit_print("Commands: " + ", ".join(COMMANDS))
        return True
    if command == "select":
        numbers = parse_ints(args)
        if surface_id is None or numbers is None or len(numbers) != 2:
            emit_print("Usage: select <start> <end>")
            return True
        result = session.commit_selection(surface_id, numbers[0], numbers[1])
        if result.accepted:
            emit_print(f"[#] Blacked out {result.merged.start}-{result.merged.end}; {result.remaining} left.")
        else:
            emit_print(f"[!] Not enough budget; {result.remaining} left.")
        return True
    if command == "erase":
        numbers = parse_ints(args)
        if surface_id is None or numbers is None or len(numbers) not in (1, 2):
            emit_print("Usage: erase <index> [end]")
            return True
        if len(numbers) == 1:
            session.erase_at(surface_id, numbers[0])
        else:
            session.erase_range(surface_id, numbers[0], numbers[1])
        return True
    if command == "clear":
        session.clear_all()
        return True
    if command == "submit":
        show_submit(session)
        return True
    if command in ("a", "advance", "next"):
        emit_print(describe_advance(session.advance()))
        return True
    if command == "branch":
        numbers = parse_ints(args)
        if numbers is None or len(numbers) != 1:
            emit_print("Usage: branch <number>")
            return True
        emit_print(describe_advance(session.select_branch(numbers[0] - 1)))
        return True
    if command == "outcome":
        if not args or args[0].lower() not in ("y", "n", "yes", "no"):
            emit_print("Usage: outcome y|n")
            return True
        emit_print(describe_advance(session.report_challenge_outcome(args[0].lower().startswith("y"))))
        return True
    if command == "score":
        show_score(session)
        return True
    if command == "vars":
        for variable, value in sorted(session.variables.snapshot().items()):
            emit_print(f"    {variable} = {value:g}")
        return True
    if command == "reset":
        emit_print(describe_advance(session.reset()))
        return True
    emit_print("Unknown command. Type 'help' for the list.")
    return True


async def play(session: Session) -> int:
    moved = asyncio.Event()
    session.on_transition(lambda _result: moved.set())
    pending_input: Optional[asyncio.Task] = None

    while True:
        render_node(session)
        node = session.current_node
        if node is None:
            return 1
        if node.kind is NodeKind.TERMINAL:
            emit_print(f"\n*** Ending reached: {node.ending or node.name or node.id} ***")
            show_score(session)
            if pending_input is not None and not pending_input.done():
                # input() cannot be interrupted; the reader thread ends on the next line.
                emit_print("Press Enter to exit.")
            return 0

        moved.clear()
        if pending_input is None:
            pending_input = asyncio.ensure_future(read_input("> "))
        waiter = asyncio.ensure_future(moved.wait())
        done, _ = await asyncio.wait({pending_input, waiter}, return_when=asyncio.FIRST_COMPLETED)
        if pending_input not in done:
            emit_print("\n[!] Time is up.")
            continue
        waiter.cancel()
        raw = pending_input.result().strip()
        pending_input = None
        if not handle_command(session, raw):
            return 0


def parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Play a Blackout story in the terminal.")
    parser.add_argument("graph", nargs="?", default=str(DEFAULT_GRAPH_PATH))
    parser.add_argument("--settings", default=str(SETTINGS_PATH), help="Path to settings.json.")
    parser.add_argument("--log-level", default=None, help="Override the configured log level.")
    parser.add_argument(
        "--save-settings",
        action="store_true",
        help="Write the effective settings (with overrides) to the settings file and exit.",
    )
    return parser.parse_args(argv)


async def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    settings = load_settings(args.settings)
    if args.log_level:
        settings.log_level = args.log_level
        settings.clamp()
    configure_logging(settings.log_level)
    if args.save_settings:
        saved = save_settings(settings, args.settings)
        emit_print(f"[+] Settings written to {args.settings} (log level {saved.log_level}).")
        return 0
    try:
        graph = load_graph(args.graph)
    except (OSError, ValueError) as exc:
        emit_print(f"[!] Could not load {args.graph}: {exc}")
        return 1
    logger.info("Loaded %s with %d nodes.", args.graph, len(graph.nodes))
    if graph.title:
        emit_print(f"\n=== {graph.title} ===")
    session = Session(graph, settings)
    return await play(session)


def run() -> None:
    try:
        code = asyncio.run(main())
    except (KeyboardInterrupt, EOFError):
        emit_print("\n[Interrupted] Bye.")
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    run()
