"""Application bootstrap helpers for the makeshift chat agent."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, TextIO

import httpx

from .ai.client import CompletionClient
from .ai.orchestration.runner import RunnerConfig, TurnRunner
from .ai.orchestration.tools import DispatcherConfig, ToolDispatcher, ToolRegistry
from .ai.prompts import build_system_prompt, load_prompt_texts
from .ai.tools import build_default_tools
from .chat.console import ConsolePlatform
from .chat.loop import LoopConfig, MessageLoop
from .services.settings import (
    Settings,
    SettingsStore,
    active_environment_overrides,
    parse_flag,
    parse_model_names,
)
from .utils import logging as logging_utils

_LOGGER = logging.getLogger(__name__)
_HTTP_TIMEOUT = 20.0


def configure_logging(debug: bool = False, *, force: bool = False, console: bool = True) -> None:
    """Configure structured logging for the application."""

    level = logging.DEBUG if debug else logging.INFO
    logging_utils.setup_logging(level, force=force, console=console)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        settings = active_store.load(overrides=overrides)
    except (OSError, ValueError) as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        settings = Settings()
    return settings


def build_registry(settings: Settings, http_client: httpx.AsyncClient) -> ToolRegistry:
    """Register the built-in tools against ``http_client``."""

    return ToolRegistry(
        build_default_tools(
            http_client,
            search_url=settings.search_url,
            tenor_api_key=settings.tenor_api_key,
        )
    )


def build_runner(
    settings: Settings,
    http_client: httpx.AsyncClient,
    *,
    client: CompletionClient | None = None,
    debug: bool = False,
) -> TurnRunner:
    """Wire the completion client, tool registry and prompt into a runner."""

    registry = build_registry(settings, http_client)
    dispatcher = ToolDispatcher(
        registry,
        DispatcherConfig(log_arguments=debug, log_results=debug),
    )
    texts = load_prompt_texts(settings.prompt_dir)
    system_prompt = build_system_prompt(texts, registry.describe())
    completion_client = client or CompletionClient(settings.client_settings())
    _LOGGER.info(
        "Runner ready with %d tool(s); models: %s",
        len(registry),
        ", ".join(model.model for model in settings.models),
    )
    return TurnRunner(
        completion_client,
        dispatcher,
        system_prompt=system_prompt,
        config=RunnerConfig(
            max_iterations=settings.max_tool_iterations,
            legacy_json_fallback=settings.legacy_json_fallback,
            native_tool_calls=settings.native_tool_calls,
        ),
    )


async def run_console_chat(
    settings: Settings,
    *,
    debug: bool = False,
    platform: ConsolePlatform | None = None,
    client: CompletionClient | None = None,
) -> None:
    """Run the message loop against stdin/stdout until EOF or ``/quit``."""

    active_platform = platform or ConsolePlatform()
    completion_client = client or CompletionClient(settings.client_settings())
    async with httpx.AsyncClient(timeout=_HTTP_TIMEOUT, follow_redirects=True) as http_client:
        runner = build_runner(settings, http_client, client=completion_client, debug=debug)
        loop = MessageLoop(
            active_platform,
            runner,
            LoopConfig(
                history_limit=settings.history_limit,
                max_reply_chain=settings.max_reply_chain,
                channel=settings.channel,
            ),
        )
        try:
            await loop.run()
        finally:
            await completion_client.aclose()


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point invoked by the `makeshift` console script."""

    args = _parse_cli_args(argv)
    debug = args.debug or _debug_from_environment()
    configure_logging(debug, console=args.command != "chat")

    settings_path = args.settings_path or os.environ.get("MAKESHIFT_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = parse_set_options(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc
    if args.prompt_dir:
        cli_overrides["prompt_dir"] = args.prompt_dir
    if args.switch_on_timeout:
        cli_overrides["switch_on_timeout"] = True

    settings = load_settings(resolved_path, store=settings_store, overrides=cli_overrides or None)
    logging_utils.register_secrets(settings.secrets())

    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return

    if settings.debug_logging and not debug:
        configure_logging(True, force=True, console=args.command != "chat")
        debug = True

    if args.command == "tools":
        _print_tool_manifest(settings)
        return

    if not settings.api_key:
        _LOGGER.warning("No API key configured; set MAKESHIFT_API_KEY or use --set api_key=...")
    try:
        asyncio.run(run_console_chat(settings, debug=debug))
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown path
        _LOGGER.info("Shutdown requested by user.")


def parse_set_options(items: Sequence[str]) -> Dict[str, Any]:
    """Turn repeated ``--set KEY=VALUE`` options into settings overrides.

    Each value is parsed according to the type of the field's default:
    switches accept ``yes``/``no`` style words, numbers must parse fully,
    ``models`` takes a JSON array or a comma-separated list of model names and
    ``default_headers`` a JSON object. Everything else is taken verbatim.

    Raises:
        ValueError: Malformed entry, unknown field or unparsable value.
    """

    defaults = Settings()
    overrides: Dict[str, Any] = {}
    for entry in items:
        key, separator, raw_value = entry.partition("=")
        key = key.strip()
        if not separator or not key:
            raise ValueError(f"{entry!r} is not in KEY=VALUE form")
        if not hasattr(defaults, key):
            raise ValueError(f"unknown setting {key!r}")
        overrides[key] = _parse_set_value(key, getattr(defaults, key), raw_value.strip())
    return overrides


def _parse_set_value(key: str, default: Any, raw: str) -> Any:
    if isinstance(default, bool):
        return parse_flag(raw)
    if isinstance(default, int):
        return int(raw, 10)
    if isinstance(default, float):
        return float(raw)
    if key == "models" and not raw.startswith("["):
        return parse_model_names(raw)
    if isinstance(default, (list, dict)):
        value = json.loads(raw)
        if not isinstance(value, type(default)):
            raise ValueError(f"{key} expects a JSON {type(default).__name__}")
        return value
    return raw


def _debug_from_environment() -> bool:
    raw = os.environ.get("MAKESHIFT_DEBUG")
    if raw is None:
        return False
    try:
        return parse_flag(raw)
    except ValueError as exc:
        print(f"Ignoring MAKESHIFT_DEBUG: {exc}", file=sys.stderr)
        return False


def _print_tool_manifest(settings: Settings, stream: TextIO | None = None) -> None:
    destination = stream or sys.stdout

    async def _describe() -> str:
        async with httpx.AsyncClient() as http_client:
            return build_registry(settings, http_client).describe()

    destination.write(asyncio.run(_describe()))
    destination.write("\n")


def _parse_cli_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="makeshift",
        description="Chat with a tool-using model from the terminal or inspect its configuration.",
    )
    parser.add_argument(
        "command",
        nargs="?",
        choices=("chat", "tools"),
        default="chat",
        help="'chat' starts a console conversation; 'tools' prints the tool manifest.",
    )
    parser.add_argument("--settings", dest="settings_path", metavar="PATH",
                        help="Settings file (default ~/.makeshift/settings.json).")
    parser.add_argument("--prompts", dest="prompt_dir", metavar="DIR",
                        help="Directory holding prompt.txt, format.txt and tools.txt.")
    parser.add_argument("--debug", action="store_true",
                        help="Log at DEBUG level, including prompts, thoughts and tool traffic.")
    parser.add_argument("--switch-on-timeout", action="store_true",
                        help="Rotate to the next configured model when a completion times out.")
    parser.add_argument("--dump-settings", action="store_true",
                        help="Print the effective settings with credentials masked, then exit.")
    parser.add_argument("--set", dest="overrides", metavar="KEY=VALUE", action="append", default=[],
                        help="Override one setting for this run; repeatable.")
    return parser.parse_args(argv)


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    metadata = {
        "path": str(store.path),
        "key_path": str(store.vault.key_path),
        "cli_overrides": sorted(overrides),
        "environment_variables": active_environment_overrides(),
    }
    json.dump({"settings": settings.redacted(), "meta": metadata}, destination, indent=2)
    destination.write("\n")
