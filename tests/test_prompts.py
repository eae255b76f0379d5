"""Tests for system prompt assembly."""

from __future__ import annotations

from pathlib import Path

from makeshift.ai.prompts import PromptTexts, build_system_prompt, load_prompt_texts


def test_build_system_prompt_orders_sections() -> None:
    texts = PromptTexts(persona="PERSONA", format="FORMAT", tools="TOOLS")

    prompt = build_system_prompt(texts, "get_current_time(): Get the time")

    assert prompt == (
        "PERSONA\n\nFORMAT\n\nYou have access to the following tools:\n"
        "get_current_time(): Get the time\n\nTOOLS"
    )


def test_defaults_describe_tag_protocol_and_null_marker() -> None:
    texts = PromptTexts.defaults()

    assert '<tool name="tool_name"' in texts.tools
    assert "<NULL>" in texts.format


def test_missing_directory_uses_defaults(tmp_path: Path) -> None:
    assert load_prompt_texts(tmp_path / "absent") == PromptTexts.defaults()
    assert load_prompt_texts(None) == PromptTexts.defaults()


def test_files_replace_individual_sections(tmp_path: Path) -> None:
    (tmp_path / "prompt.txt").write_text("  You are a pirate.\n", encoding="utf-8")
    (tmp_path / "tools.txt").write_text("", encoding="utf-8")

    texts = load_prompt_texts(tmp_path)

    defaults = PromptTexts.defaults()
    assert texts.persona == "You are a pirate."
    assert texts.format == defaults.format
    assert texts.tools == defaults.tools
