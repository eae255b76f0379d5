"""Tests for the logging helpers."""

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Iterator

import pytest

from makeshift.utils import logging as logging_utils


@pytest.fixture
def restore_root_logger(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.setattr(logging_utils, "_SECRETS", logging_utils.SecretFilter())
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
    logging.captureWarnings(False)


def test_setup_logging_writes_to_rotating_file(tmp_path: Path, restore_root_logger: None) -> None:
    log_path = logging_utils.setup_logging(logging.INFO, log_dir=tmp_path, console=False, force=True)

    logging.getLogger("makeshift.test").info("hello from the test")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert log_path == tmp_path / "makeshift.log"
    assert logging_utils.get_log_path() == log_path
    assert "hello from the test" in log_path.read_text(encoding="utf-8")
    assert logging.getLogger("httpx").level == logging.WARNING


def test_log_dir_env_override(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, restore_root_logger: None
) -> None:
    monkeypatch.setenv("MAKESHIFT_LOG_DIR", str(tmp_path / "env-logs"))

    log_path = logging_utils.setup_logging(console=False, force=True)

    assert log_path == tmp_path / "env-logs" / "makeshift.log"


def test_log_block_wraps_content_in_rules(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("makeshift.test.block")

    with caplog.at_level(logging.DEBUG, logger="makeshift.test.block"):
        logging_utils.log_block(logger, "Model thought", "line one\nline two")

    assert caplog.records[-1].getMessage() == (
        "Model thought\n" + "-" * 50 + "\nline one\nline two\n" + "-" * 50
    )


def test_log_block_skips_disabled_levels(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("makeshift.test.quiet")

    with caplog.at_level(logging.INFO, logger="makeshift.test.quiet"):
        logging_utils.log_block(logger, "Hidden", "content")

    assert caplog.records == []


def _flush_root() -> None:
    for handler in logging.getLogger().handlers:
        handler.flush()


def test_registered_secrets_are_masked_in_the_log_file(
    tmp_path: Path, restore_root_logger: None
) -> None:
    log_path = logging_utils.setup_logging(logging.INFO, log_dir=tmp_path, console=False, force=True)
    logging_utils.register_secrets(["sk-live-abcdef", None, "ab"])

    logging.getLogger("makeshift.test").info("calling with key=%s", "sk-live-abcdef")
    logging.getLogger("makeshift.test").info("short ab values stay")
    _flush_root()

    text = log_path.read_text(encoding="utf-8")
    assert "sk-live-abcdef" not in text
    assert f"calling with key={logging_utils.MASK}" in text
    assert "short ab values stay" in text


def test_forced_setup_replaces_only_its_own_handlers(
    tmp_path: Path, restore_root_logger: None
) -> None:
    foreign = logging.NullHandler()
    root = logging.getLogger()
    root.addHandler(foreign)
    try:
        logging_utils.setup_logging(log_dir=tmp_path / "a", console=False, force=True)
        second = logging_utils.setup_logging(log_dir=tmp_path / "b", console=False, force=True)

        rotating = [h for h in root.handlers if isinstance(h, logging.handlers.RotatingFileHandler)]
        assert foreign in root.handlers
        assert len(rotating) == 1
        assert Path(rotating[0].baseFilename) == second
    finally:
        root.removeHandler(foreign)


def test_setup_without_force_keeps_existing_path(tmp_path: Path, restore_root_logger: None) -> None:
    first = logging_utils.setup_logging(log_dir=tmp_path / "a", console=False, force=True)

    assert logging_utils.setup_logging(log_dir=tmp_path / "b", console=False) == first


def test_console_handler_uses_short_format(tmp_path: Path, restore_root_logger: None) -> None:
    logging_utils.setup_logging(log_dir=tmp_path, console=True, force=True)

    console = [
        handler
        for handler in logging.getLogger().handlers
        if type(handler) is logging.StreamHandler and handler.stream is sys.stderr
    ]
    record = logging.LogRecord("makeshift.test", logging.INFO, __file__, 1, "hi %s", ("there",), None)

    assert len(console) == 1
    assert console[0].format(record) == "[INFO] hi there"
