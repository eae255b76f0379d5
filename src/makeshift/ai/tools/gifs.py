"""GIF search via the Tenor v1 API."""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping

import httpx

from ..orchestration.tools.types import AmbientContext, ToolDefinition, text_argument

__all__ = ["TENOR_SEARCH_URL", "TENOR_PUBLIC_KEY", "gif_search_tool", "summarize_gifs"]

LOGGER = logging.getLogger(__name__)

TENOR_SEARCH_URL = "https://g.tenor.com/v1/search"
TENOR_PUBLIC_KEY = "LIVDSRZULELA"
_RESULT_LIMIT = 8


def summarize_gifs(results: list[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Reduce Tenor results to ``choice_id``/``description``/``url`` entries."""
    summary: list[dict[str, Any]] = []
    for index, result in enumerate(results, start=1):
        media = (result.get("media") or [{}])[0]
        url = (
            (media.get("gif") or {}).get("url")
            or (media.get("tinygif") or {}).get("url")
            or result.get("url")
        )
        summary.append(
            {
                "choice_id": index,
                "description": result.get("content_description") or "A relevant GIF.",
                "url": url,
            }
        )
    return summary


def gif_search_tool(
    http_client: httpx.AsyncClient,
    *,
    api_key: str = TENOR_PUBLIC_KEY,
    url: str = TENOR_SEARCH_URL,
) -> ToolDefinition:
    async def _handler(args: Mapping[str, Any], _message: str, _context: AmbientContext | None) -> str:
        query = text_argument(args, "query").strip()
        if not query:
            return "Error: A search query must be provided to find GIFs."
        params = {"q": query, "key": api_key, "limit": _RESULT_LIMIT}
        try:
            response = await http_client.get(url, params=params)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            LOGGER.warning("GIF search failed: %s", exc)
            return f"Failed to search for GIFs: {exc}"
        results = data.get("results") if isinstance(data, dict) else None
        if not results:
            return f'No GIFs were found for the query: "{query}"'
        payload = json.dumps(summarize_gifs(results), ensure_ascii=False, indent=2)
        return f'[GIF Search Results for "{query}"]:\n{payload}'

    return ToolDefinition(
        name="search_gifs",
        description=(
            "Search for GIFs on Tenor. Returns a list of GIFs and their URLs to send to chat."
        ),
        handler=_handler,
        parameters={
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Search term for the GIF (e.g., 'anime sob', 'cat typing').",
                },
            },
            "required": ["query"],
        },
    )
