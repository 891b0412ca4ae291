"""Tests for CLI."""

import argparse
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from villagemind.cli import (
    cmd_chat,
    cmd_config,
    cmd_context,
    cmd_day,
    cmd_facts,
    cmd_graph,
    cmd_say,
    cmd_seed,
    cmd_threads,
    create_parser,
    run_cli,
)
from villagemind.config import VillageConfig
from villagemind.day_summary import QUIET_DAY_SUMMARY
from villagemind.llm.adapter import LlmRequestError
from villagemind.village import Village


def ns(**kwargs) -> argparse.Namespace:
    return argparse.Namespace(**kwargs)


class TestParser:
    """Tests for argument parsing."""

    def test_day_defaults_to_status(self):
        args = create_parser().parse_args(["day"])
        assert args.command == "day"
        assert args.action == "status"

    def test_say_arguments(self):
        args = create_parser().parse_args(["say", "mira", "Hello there"])
        assert args.npc == "mira"
        assert args.text == "Hello there"

    def test_seed_flags(self):
        args = create_parser().parse_args(["seed", "--day", "3", "--reset"])
        assert args.day == 3
        assert args.reset is True


class TestMemoryCommands:
    """Tests for seed, say, facts and inspection commands."""

    @pytest.mark.asyncio
    async def test_say(self, village: Village, capsys):
        code = await cmd_say(village, ns(npc="mira", text="I love chamomile tea and berry scones."))
        assert code == 0
        assert "+ " in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_say_unknown_npc(self, village: Village, capsys):
        assert await cmd_say(village, ns(npc="ghost", text="Boo")) == 1
        assert "Unknown NPC: ghost" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_facts_empty(self, village: Village, capsys):
        assert await cmd_facts(village, ns(npc=None)) == 0
        assert "No memories yet." in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_seed_then_inspect(self, village: Village, capsys):
        assert await cmd_seed(village, ns(day=None, reset=False)) == 0
        assert "Seeded day 1 (append)" in capsys.readouterr().out

        assert await cmd_facts(village, ns(npc="jun")) == 0
        out = capsys.readouterr().out
        assert "[jun]" in out
        assert "[mira]" not in out

        assert await cmd_threads(village, ns()) == 0
        assert "[mira]" in capsys.readouterr().out

        assert await cmd_graph(village, ns()) == 0
        assert "node(s)" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_context(self, village: Village, capsys):
        assert await cmd_context(village, ns(npc="pia")) == 0
        assert "You are Pia, the Market Scout." in capsys.readouterr().out


class TestDayCommand:
    """Tests for the day command."""

    @pytest.mark.asyncio
    async def test_status(self, village: Village, capsys):
        await village.talk("mira", "Hello!")
        assert await cmd_day(village, ns(action="status")) == 0
        out = capsys.readouterr().out
        assert "Day 1: visited mira" in out
        assert "Keep exploring the village." in out

    @pytest.mark.asyncio
    async def test_close_without_llm(self, village: Village, capsys):
        assert await cmd_day(village, ns(action="close")) == 1
        assert "LLM provider is required" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_close_when_summary_fails(self, storage, tmp_path: Path, capsys):
        adapter = AsyncMock()
        adapter.summarize_day = AsyncMock(side_effect=LlmRequestError("down"))
        village = Village(storage, config=VillageConfig(data_dir=tmp_path), adapter=adapter)

        assert await cmd_day(village, ns(action="close")) == 1
        assert QUIET_DAY_SUMMARY in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_next(self, village: Village, capsys):
        assert await cmd_day(village, ns(action="next")) == 0
        assert "Good morning! Day 2 begins." in capsys.readouterr().out


class TestConfigCommand:
    """Tests for the config command."""

    @pytest.mark.asyncio
    async def test_set_and_show(self, village: Village, capsys):
        assert await cmd_config(village, ns(action="set", name="temperature", value="0.3")) == 0
        assert await cmd_config(village, ns(action="show", name=None, value=None)) == 0
        out = capsys.readouterr().out
        assert "Set temperature" in out
        assert "0.3 (stored)" in out

    @pytest.mark.asyncio
    async def test_set_unknown_field(self, village: Village, capsys):
        assert await cmd_config(village, ns(action="set", name="colour", value="blue")) == 1
        assert "Unknown config field" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_set_invalid_value(self, village: Village, capsys):
        assert await cmd_config(village, ns(action="set", name="temperature", value="9")) == 1
        assert "out of range" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_clear(self, village: Village, capsys):
        await cmd_config(village, ns(action="set", name="model", value="llama-3.1-8b-instant"))
        assert await cmd_config(village, ns(action="clear", name=None, value=None)) == 0
        await cmd_config(village, ns(action="show", name=None, value=None))
        assert "(stored)" not in capsys.readouterr().out.split("Cleared LLM overrides")[1]


class TestChatCommand:
    """Tests for the interactive chat loop."""

    @pytest.mark.asyncio
    async def test_chat_session(self, village: Village, capsys, monkeypatch):
        lines = iter(["/help", "I love chamomile tea and berry scones.", "/context", "/exit"])
        monkeypatch.setattr("builtins.input", lambda prompt="": next(lines))

        assert await cmd_chat(village, ns(npc="mira")) == 0

        out = capsys.readouterr().out
        assert "You are talking with Mira, the Hall Host." in out
        assert "Mira will remember 1 thing(s)" in out
        assert "Key memories:" in out
        assert "Mira waves goodbye." in out

    @pytest.mark.asyncio
    async def test_chat_ends_on_eof(self, village: Village, monkeypatch):
        def raise_eof(prompt=""):
            raise EOFError

        monkeypatch.setattr("builtins.input", raise_eof)
        assert await cmd_chat(village, ns(npc="theo")) == 0

    @pytest.mark.asyncio
    async def test_chat_unknown_npc(self, village: Village):
        assert await cmd_chat(village, ns(npc="ghost")) == 1


class TestRunCli:
    """Tests for run_cli."""

    def test_no_command_prints_help(self, capsys):
        assert run_cli([]) == 0
        assert "villagemind" in capsys.readouterr().out

    def test_config_set_needs_value(self, capsys):
        assert run_cli(["config", "set", "model"]) == 1
        assert "Usage" in capsys.readouterr().out

    def test_commands_share_a_database(self, tmp_path: Path, monkeypatch, capsys, no_llm_env):
        monkeypatch.setenv("VILLAGEMIND_DATA_DIR", str(tmp_path))
        config_path = tmp_path / "config.json"

        assert run_cli(["--config", str(config_path), "say", "mira", "I love chamomile tea."]) == 0
        capsys.readouterr()

        assert run_cli(["--config", str(config_path), "facts"]) == 0
        assert "Total: 1 fact(s)" in capsys.readouterr().out
        assert (tmp_path / "villagemind.db").exists()
