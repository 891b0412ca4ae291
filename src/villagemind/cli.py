"""Command-line interface for VillageMind.

Provides subcommands for seeding, talking to NPCs, and inspecting what
they remember.
"""

import argparse
import asyncio
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from .config import load_config
from .day_summary import QUIET_DAY_SUMMARY
from .llm.adapter import LlmError
from .llm.config import (
    ENV_VARS,
    LlmConfig,
    LlmConfigError,
    apply_overrides,
    clear_llm_config_overrides,
    get_llm_config_overrides,
    read_env_overrides,
    set_llm_config_overrides,
)
from .memory.inspection import build_memory_graph, group_facts_by_thread
from .memory.retrieval import format_fact
from .roster import get_npc_roster
from .seed import run_synthetic_chat
from .village import UnknownNpcError, Village

Command = Callable[[Village, argparse.Namespace], Awaitable[int]]

CHAT_HELP = """
Commands:
  /context  - Show what the NPC remembers
  /exit     - Leave the conversation
  /help     - Show this help
"""


async def cmd_seed(village: Village, args: argparse.Namespace) -> int:
    """Play the scripted conversations."""
    result = await run_synthetic_chat(village.pipeline, day_index=args.day, reset=args.reset)

    print(f"\nSeeded day {result.day_index} ({result.mode})")
    print("-" * 40)
    for npc in result.per_npc:
        print(f"{npc.npc_id:<8} {npc.entry_count:>3} entries  {npc.facts_added:>3} facts")
    print(f"\nTotal: {result.total_facts_added} fact(s) added, {result.total_facts} stored")
    return 0


async def cmd_say(village: Village, args: argparse.Namespace) -> int:
    """Say one line to an NPC."""
    try:
        result, reply = await village.talk(args.npc, args.text)
    except UnknownNpcError as e:
        print(f"Error: {e}")
        return 1
    except LlmError as e:
        print(f"Error: reply failed: {e}")
        return 1

    if result is not None:
        for fact in result.added_facts:
            print(f"+ {fact.content} ({fact.type.value})")
    if reply is not None:
        print(f"\n{village.npc(args.npc).name}: {reply.text}")
    return 0


async def cmd_context(village: Village, args: argparse.Namespace) -> int:
    """Print the memory prompt an NPC would use."""
    try:
        context = await village.context(args.npc)
    except UnknownNpcError as e:
        print(f"Error: {e}")
        return 1
    print(context.prompt)
    return 0


async def cmd_facts(village: Village, args: argparse.Namespace) -> int:
    """List stored facts."""
    if args.npc:
        facts = await village.memory_store.get_for_npc(args.npc)
    else:
        facts = await village.memory_store.get_all()

    if not facts:
        print("No memories yet.")
        return 0

    for fact in facts:
        print(f"[{fact.npc_id}] {format_fact(fact)}")
        if fact.tags:
            print(f"    tags: {', '.join(fact.tag_strings())}")
    print(f"\nTotal: {len(facts)} fact(s)")
    return 0


async def cmd_threads(village: Village, args: argparse.Namespace) -> int:
    """Show facts grouped by thread."""
    groups = group_facts_by_thread(await village.memory_store.get_all())
    if not groups:
        print("No memories yet.")
        return 0

    for group in groups:
        owner = f" [{group.npc_id}]" if group.npc_id else ""
        open_marker = " (open tasks)" if group.has_open_tasks else ""
        print(f"\n{group.label}{owner}{open_marker}")
        for fact in group.facts:
            step = fact.thread_sequence or "-"
            print(f"  {step}. {fact.content}")
    return 0


async def cmd_graph(village: Village, args: argparse.Namespace) -> int:
    """Show memory links."""
    graph = build_memory_graph(await village.memory_store.get_all())
    content = {node.id: node.content for node in graph.nodes}

    print(f"{len(graph.nodes)} node(s), {len(graph.edges)} edge(s)")
    for edge in graph.edges:
        print(f"- {content[edge.source_id]}\n    --{edge.label}--> {content[edge.target_id]}")
    return 0


async def cmd_day(village: Village, args: argparse.Namespace) -> int:
    """Show, close, or advance the day."""
    cycle = village.day_cycle

    if args.action == "status":
        state = cycle.state
        visited = ", ".join(state.visited_npc_ids) or "nobody yet"
        print(f"Day {state.day_index}: visited {visited}")
        print("Day complete." if cycle.is_complete() else "Keep exploring the village.")
        return 0

    if args.action == "close":
        try:
            result = await village.close_day()
        except LlmConfigError as e:
            print(f"Error: {e}")
            return 1
        except LlmError as e:
            print(QUIET_DAY_SUMMARY)
            print(f"Summary unavailable right now ({e}).")
            return 1
        print(f"\nDay {result.snapshot.day_index} summary")
        print("-" * 40)
        print(result.snapshot.summary_text)
        for highlight in result.highlights:
            print(f"\n{highlight.npc_name} ({highlight.npc_role}): {highlight.summary}")
        return 0

    day_index, suggestions = await village.start_new_day()
    print(f"Good morning! Day {day_index} begins.")
    for suggestion in suggestions:
        print(f"- {suggestion.title}: {suggestion.detail}")
    return 0


def _parse_config_value(name: str, raw: str) -> Any:
    if name in ("temperature", "max_completion_tokens"):
        try:
            number = float(raw)
        except ValueError:
            return raw
        return int(number) if number.is_integer() else number
    return raw


async def cmd_config(village: Village, args: argparse.Namespace) -> int:
    """Show or change stored LLM overrides."""
    if args.action == "set":
        name = args.name
        if name not in ENV_VARS and name != "api_key_override":
            print(f"Error: Unknown config field '{name}'.")
            return 1
        stored = await get_llm_config_overrides(village.storage)
        stored[name] = _parse_config_value(name, args.value)
        try:
            await set_llm_config_overrides(village.storage, stored)
        except LlmConfigError as e:
            print(f"Error: {e}")
            return 1
        print(f"Set {name}")
        return 0

    if args.action == "clear":
        await clear_llm_config_overrides(village.storage)
        print("Cleared LLM overrides")
        return 0

    stored = await get_llm_config_overrides(village.storage)
    config = apply_overrides(apply_overrides(LlmConfig(), read_env_overrides()), stored)
    for name in ENV_VARS:
        source = " (stored)" if name in stored else ""
        print(f"{name:<22} {getattr(config, name)}{source}")
    if "api_key_override" in stored:
        print(f"{'api_key_override':<22} set (stored)")
    return 0


async def cmd_chat(village: Village, args: argparse.Namespace) -> int:
    """Talk to an NPC interactively."""
    try:
        npc = village.npc(args.npc)
    except UnknownNpcError as e:
        print(f"Error: {e}")
        return 1

    print(f"\nYou are talking with {npc.name}, the {npc.role}.")
    print(CHAT_HELP)
    while True:
        try:
            text = input("you> ").strip()
        except (KeyboardInterrupt, EOFError):
            print()
            break

        if not text:
            continue
        if text in ("/exit", "/quit"):
            break
        if text == "/help":
            print(CHAT_HELP)
            continue
        if text == "/context":
            print((await village.context(npc.id)).prompt)
            continue

        try:
            result, reply = await village.talk(npc.id, text)
        except LlmError as e:
            print(f"Error: {e}")
            continue
        if result is not None and result.added_facts:
            print(f"  ({npc.name} will remember {len(result.added_facts)} thing(s))")
        if reply is not None:
            print(f"{npc.name}> {reply.text}")

    print(f"{npc.name} waves goodbye.")
    return 0


COMMANDS: dict[str, Command] = {
    "seed": cmd_seed,
    "say": cmd_say,
    "chat": cmd_chat,
    "context": cmd_context,
    "facts": cmd_facts,
    "threads": cmd_threads,
    "graph": cmd_graph,
    "day": cmd_day,
    "config": cmd_config,
}


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="villagemind",
        description="Memories for cozy village NPCs",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config.json (default: ~/.villagemind/config.json)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Sub-command help")
    npc_ids = [npc.id for npc in get_npc_roster()]

    # seed command
    seed_parser = subparsers.add_parser("seed", help="Seed scripted conversations")
    seed_parser.add_argument("--day", type=int, help="Day to record under")
    seed_parser.add_argument(
        "--reset",
        action="store_true",
        help="Clear conversations and memories first",
    )

    # say command
    say_parser = subparsers.add_parser("say", help="Say one line to an NPC")
    say_parser.add_argument("npc", help=f"NPC id ({', '.join(npc_ids)})")
    say_parser.add_argument("text", help="What the player says")

    # chat command
    chat_parser = subparsers.add_parser("chat", help="Talk to an NPC interactively")
    chat_parser.add_argument("npc", help=f"NPC id ({', '.join(npc_ids)})")

    # context command
    context_parser = subparsers.add_parser("context", help="Show an NPC's memory prompt")
    context_parser.add_argument("npc", help="NPC id")

    # facts command
    facts_parser = subparsers.add_parser("facts", help="List stored memories")
    facts_parser.add_argument("--npc", help="Only this NPC's memories")

    subparsers.add_parser("threads", help="Show memories grouped by thread")
    subparsers.add_parser("graph", help="Show links between memories")

    # day command
    day_parser = subparsers.add_parser("day", help="Show, close or advance the day")
    day_parser.add_argument(
        "action",
        nargs="?",
        default="status",
        choices=("status", "close", "next"),
    )

    # config command
    config_parser = subparsers.add_parser("config", help="Show or change LLM settings")
    config_parser.add_argument(
        "action",
        nargs="?",
        default="show",
        choices=("show", "set", "clear"),
    )
    config_parser.add_argument("name", nargs="?", help="Field to set")
    config_parser.add_argument("value", nargs="?", help="Value to set")

    return parser


async def _dispatch(handler: Command, args: argparse.Namespace) -> int:
    village = await Village.open(load_config(args.config))
    try:
        return await handler(village, args)
    finally:
        await village.close()


def run_cli(argv: list[str] | None = None) -> int:
    """Run the CLI with given arguments.

    Args:
        argv: Command-line arguments. Uses sys.argv[1:] if None.

    Returns:
        Exit code (0 for success, non-zero for error).
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    if args.command == "config" and args.action == "set" and (not args.name or args.value is None):
        print("Usage: villagemind config set <name> <value>")
        return 1

    return asyncio.run(_dispatch(handler, args))


if __name__ == "__main__":
    sys.exit(run_cli())
