"""System prompt assembly.

The system prompt is static text: a persona, reply formatting rules, the tool
manifest and instructions for the makeshift tag protocol. Each text section
can be replaced by a file in a prompt directory.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

__all__ = [
    "PromptTexts",
    "build_system_prompt",
    "load_prompt_texts",
]

LOGGER = logging.getLogger(__name__)

PROMPT_FILE = "prompt.txt"
FORMAT_FILE = "format.txt"
TOOLS_FILE = "tools.txt"


def _persona_section() -> str:
    """Default voice and personality instructions."""
    return """You are a friendly regular in a group chat. Keep replies short and casual,
like a person typing in a chat window. You can see the last few messages of the
conversation, each prefixed with who wrote it. Answer the latest message, and use
earlier ones only as context."""


def _format_section() -> str:
    """Reply formatting rules."""
    return """Formatting:
- Reply with plain chat text. Do not prefix your reply with your own name or a <user: ...> header.
- Markdown is allowed. Put maths in a ```latex fenced block and images as ![alt](url) on their own line.
- If the latest message does not need a reply from you, answer with exactly <NULL>."""


def _tools_section() -> str:
    """Instructions for the self-closing tag protocol."""
    return """To use a tool, write a self-closing tag anywhere in your reply:
<tool_name param="value" other_param='value'/>
or, equivalently:
<tool name="tool_name" param="value"/>

Rules:
- Quote every attribute value with double or single quotes.
- Arrays and objects go in as JSON, e.g. reactions='["👍", "🔥"]'.
- You may use several tags in one reply. They run at the same time, so do not
  make one depend on another's result.
- Any text outside the tags is sent to the chat as your reply. Tool results come
  back to you in a follow-up turn; answer the user then.
- Only call tools that are listed above."""


@dataclass(slots=True, frozen=True)
class PromptTexts:
    """The three replaceable sections of the system prompt."""

    persona: str
    format: str
    tools: str

    @classmethod
    def defaults(cls) -> PromptTexts:
        return cls(persona=_persona_section(), format=_format_section(), tools=_tools_section())


def load_prompt_texts(directory: Path | str | None = None) -> PromptTexts:
    """Read prompt sections from ``directory``, falling back to the built-in text per file."""
    defaults = PromptTexts.defaults()
    if directory is None:
        return defaults
    base = Path(directory).expanduser()
    if not base.is_dir():
        LOGGER.warning("Prompt directory %s does not exist; using built-in prompts", base)
        return defaults
    return PromptTexts(
        persona=_read_section(base / PROMPT_FILE, defaults.persona),
        format=_read_section(base / FORMAT_FILE, defaults.format),
        tools=_read_section(base / TOOLS_FILE, defaults.tools),
    )


def _read_section(path: Path, fallback: str) -> str:
    if not path.is_file():
        return fallback
    text = path.read_text(encoding="utf-8").strip()
    LOGGER.debug("Loaded prompt section from %s (%d chars)", path, len(text))
    return text or fallback


def build_system_prompt(texts: PromptTexts, manifest: str) -> str:
    """Concatenate persona, formatting rules and the tool section."""
    tools_prompt = f"You have access to the following tools:\n{manifest}\n\n{texts.tools}"
    return f"{texts.persona}\n\n{texts.format}\n\n{tools_prompt}"
