"""Completion client, prompts, orchestration and built-in tools."""

from .client import ClientSettings, CompletionClient, CompletionResult, ModelConfiguration, ModelSelector
from .errors import CompletionError, CompletionTimeout

__all__ = [
    "ClientSettings",
    "CompletionClient",
    "CompletionError",
    "CompletionResult",
    "CompletionTimeout",
    "ModelConfiguration",
    "ModelSelector",
]
