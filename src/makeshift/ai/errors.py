"""Failure types raised by the completion client."""

from __future__ import annotations

__all__ = ["CompletionError", "CompletionTimeout", "TIMEOUT_MESSAGE"]

# Shown to the recipient in place of a reply when a completion runs out of time.
TIMEOUT_MESSAGE = "The AI has timed out."


class CompletionError(Exception):
    """Base class for failures surfaced by :class:`~makeshift.ai.client.CompletionClient`."""


class CompletionTimeout(CompletionError):
    """Raised when a completion request exceeds its wall-clock deadline."""

    def __init__(self, timeout: float, model: str | None = None) -> None:
        self.timeout = timeout
        self.model = model
        target = f" for model {model}" if model else ""
        super().__init__(f"Completion timed out after {timeout:g}s{target}")
