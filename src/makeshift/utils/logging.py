"""Logging for the makeshift agent.

Full records always go to a rotating ``makeshift.log``. The optional console
handler writes the short ``[LEVEL] message`` form to stderr so it stays out of
the chat transcript on stdout. Secrets registered with :func:`register_secrets`
are masked on every handler installed here.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Iterable

__all__ = [
    "LOG_FILENAME",
    "MASK",
    "SecretFilter",
    "get_log_path",
    "log_block",
    "register_secrets",
    "setup_logging",
]

LOG_FILENAME = "makeshift.log"
MASK = "[redacted]"

_DEFAULT_LOG_DIR = Path.home() / ".makeshift" / "logs"
_FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_CONSOLE_FORMAT = "[%(levelname)s] %(message)s"
# Transport chatter from the completion and tool HTTP stacks.
_DEPENDENCY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")
_BLOCK_RULE = "-" * 50
_MIN_SECRET_LENGTH = 4


class SecretFilter(logging.Filter):
    """Replaces registered secret values in rendered messages with :data:`MASK`."""

    def __init__(self) -> None:
        super().__init__()
        self._secrets: set[str] = set()

    def add(self, value: str | None) -> None:
        if value and len(value) >= _MIN_SECRET_LENGTH:
            self._secrets.add(value)

    def clear(self) -> None:
        self._secrets.clear()

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        rendered = record.getMessage()
        masked = rendered
        # Longest first so a secret containing another is masked whole.
        for secret in sorted(self._secrets, key=len, reverse=True):
            masked = masked.replace(secret, MASK)
        if masked != rendered:
            record.msg = masked
            record.args = None
        return True


_SECRETS = SecretFilter()
_INSTALLED: list[logging.Handler] = []
_LOG_PATH: Path | None = None


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Install the file handler (and optionally stderr) on the root logger.

    Later calls return the existing log path unless ``force`` is set. A forced
    call swaps out only the handlers this module installed; anything else on
    the root logger is left in place.
    """

    global _LOG_PATH
    if _LOG_PATH is not None and not force:
        return _LOG_PATH

    log_path = _resolve_log_dir(log_dir) / LOG_FILENAME
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handlers: list[logging.Handler] = [_file_handler(log_path, max_bytes, backup_count)]
    if console:
        handlers.append(_console_handler())

    root = logging.getLogger()
    _uninstall(root)
    for handler in handlers:
        handler.setLevel(level)
        handler.addFilter(_SECRETS)
        root.addHandler(handler)
        _INSTALLED.append(handler)
    root.setLevel(level)
    logging.captureWarnings(True)
    _quiet_dependencies(level)

    _LOG_PATH = log_path
    return log_path


def register_secrets(values: Iterable[str | None]) -> None:
    """Mask each non-trivial value in ``values`` wherever it shows up in a log line."""

    for value in values:
        _SECRETS.add(value)


def get_log_path() -> Path | None:
    """Return the currently configured log file if available."""

    return _LOG_PATH


def log_block(logger: logging.Logger, title: str, content: str, *, level: int = logging.DEBUG) -> None:
    """Emit ``content`` between horizontal rules so multi-line payloads stay readable."""

    if not logger.isEnabledFor(level):
        return
    logger.log(level, "%s\n%s\n%s\n%s", title, _BLOCK_RULE, content, _BLOCK_RULE)


def _file_handler(path: Path, max_bytes: int, backup_count: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    return handler


def _uninstall(root: logging.Logger) -> None:
    while _INSTALLED:
        handler = _INSTALLED.pop()
        root.removeHandler(handler)
        handler.close()


def _resolve_log_dir(log_dir: Path | str | None) -> Path:
    env_override = os.environ.get("MAKESHIFT_LOG_DIR")
    return Path(log_dir or env_override or _DEFAULT_LOG_DIR).expanduser()


def _quiet_dependencies(root_level: int) -> None:
    quiet_level = max(root_level, logging.WARNING)
    for name in _DEPENDENCY_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)
