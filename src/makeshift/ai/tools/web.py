"""Web search and generic HTTP API tools."""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping

import httpx

from ..orchestration.tools.types import AmbientContext, ToolDefinition, text_argument

__all__ = ["DEFAULT_SEARCH_URL", "HTTP_METHODS", "web_search_tool", "call_api_tool"]

LOGGER = logging.getLogger(__name__)

DEFAULT_SEARCH_URL = "https://brave.amorb.dev/search"
HTTP_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS")


def web_search_tool(http_client: httpx.AsyncClient, *, url: str = DEFAULT_SEARCH_URL) -> ToolDefinition:
    async def _handler(args: Mapping[str, Any], _message: str, _context: AmbientContext | None) -> str:
        query = text_argument(args, "query").strip()
        if not query:
            return "Error: A search query must be provided."
        try:
            response = await http_client.get(url, params={"q": query})
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            LOGGER.warning("Web search failed: %s", exc)
            return f"Failed to get web search results: {exc}"
        result = data.get("result") if isinstance(data, dict) else None
        if not result:
            return "No results found."
        return result if isinstance(result, str) else json.dumps(result, ensure_ascii=False)

    return ToolDefinition(
        name="web_search",
        description="Search the web for a query",
        handler=_handler,
        parameters={
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "The search query"},
            },
            "required": ["query"],
        },
    )


def call_api_tool(http_client: httpx.AsyncClient) -> ToolDefinition:
    async def _handler(args: Mapping[str, Any], _message: str, _context: AmbientContext | None) -> str:
        url = text_argument(args, "url").strip()
        if not url:
            return "Error: No URL was provided to call."
        method = (text_argument(args, "method") or "GET").upper()
        if method not in HTTP_METHODS:
            return f"Error: Unsupported HTTP method {method}."
        headers = {"Content-Type": "application/json"}
        extra_headers = args.get("headers")
        if isinstance(extra_headers, Mapping):
            headers.update({str(key): str(value) for key, value in extra_headers.items()})
        body = args.get("body")
        content = None
        if body is not None:
            content = body if isinstance(body, str) else json.dumps(body)
        try:
            response = await http_client.request(method, url, headers=headers, content=content)
        except httpx.HTTPError as exc:
            LOGGER.warning("API call to %s failed: %s", url, exc)
            return f"Error making API call: {exc}"
        status = f"{response.status_code} {response.reason_phrase}".strip()
        if response.is_error:
            return f"Error: API call failed with status {status}\n\nResponse Body:\n{response.text}"
        return f"Status: {status}\n\nResponse Body:\n{response.text}"

    return ToolDefinition(
        name="call_api",
        description=(
            "Makes an HTTP request to a specified API endpoint for real-time data and returns the "
            "response. Supports different methods, headers, and request bodies. Useful for free APIs "
            "without authentication, e.g. Jikan (anime), CoinGecko, Wikimedia, Open Street Map, "
            "MusicBrainz (music)."
        ),
        handler=_handler,
        parameters={
            "type": "object",
            "properties": {
                "url": {"type": "string", "description": "The URL of the API endpoint to call."},
                "method": {
                    "type": " | ".join(HTTP_METHODS),
                    "description": "The HTTP method to use.",
                    "default": "GET",
                },
                "headers": {"type": "object", "description": "A JSON object containing the request headers."},
                "body": {"type": "object", "description": "A JSON object containing the request body."},
            },
            "required": ["url"],
        },
    )
