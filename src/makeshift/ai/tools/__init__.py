"""Built-in tools offered to the model."""

from __future__ import annotations

import httpx

from ..orchestration.tools.types import ToolDefinition
from .chat_actions import react_tool, reply_tool
from .clock import current_time_tool, message_timestamp_tool
from .gifs import TENOR_PUBLIC_KEY, gif_search_tool
from .weather import weather_tool
from .web import DEFAULT_SEARCH_URL, call_api_tool, web_search_tool

__all__ = [
    "build_default_tools",
    "call_api_tool",
    "current_time_tool",
    "gif_search_tool",
    "message_timestamp_tool",
    "react_tool",
    "reply_tool",
    "weather_tool",
    "web_search_tool",
]


def build_default_tools(
    http_client: httpx.AsyncClient,
    *,
    search_url: str = DEFAULT_SEARCH_URL,
    tenor_api_key: str = TENOR_PUBLIC_KEY,
) -> list[ToolDefinition]:
    """Return every built-in tool, sharing ``http_client`` for outbound requests."""
    return [
        weather_tool(http_client),
        current_time_tool(),
        message_timestamp_tool(),
        reply_tool(),
        react_tool(),
        web_search_tool(http_client, url=search_url),
        gif_search_tool(http_client, api_key=tenor_api_key),
        call_api_tool(http_client),
    ]
