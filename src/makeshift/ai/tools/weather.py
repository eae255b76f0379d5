"""Current weather lookup via the Open-Meteo forecast API."""

from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx

from ..orchestration.tools.types import AmbientContext, ToolDefinition

__all__ = ["OPEN_METEO_URL", "WEATHER_CODES", "weather_tool", "describe_weather"]

LOGGER = logging.getLogger(__name__)

OPEN_METEO_URL = "https://api.open-meteo.com/v1/forecast"
_CURRENT_FIELDS = "temperature_2m,relative_humidity_2m,weather_code,wind_speed_10m"

# WMO weather interpretation codes
WEATHER_CODES: Mapping[int, str] = {
    0: "Clear sky",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Fog",
    48: "Depositing rime fog",
    51: "Light drizzle",
    53: "Moderate drizzle",
    55: "Dense drizzle",
    61: "Slight rain",
    63: "Moderate rain",
    65: "Heavy rain",
    71: "Slight snow fall",
    73: "Moderate snow fall",
    75: "Heavy snow fall",
    95: "Thunderstorm",
}


def describe_weather(payload: Mapping[str, Any]) -> str:
    current = payload["current"]
    units = payload.get("current_units") or {}
    condition = WEATHER_CODES.get(current.get("weather_code"), "Unknown weather condition")
    return (
        f"Current weather: {condition}, "
        f"{current['temperature_2m']}{units.get('temperature_2m', '')}, "
        f"humidity {current['relative_humidity_2m']}{units.get('relative_humidity_2m', '')}, "
        f"wind speed {current['wind_speed_10m']}{units.get('wind_speed_10m', '')}."
    )


def weather_tool(http_client: httpx.AsyncClient, *, url: str = OPEN_METEO_URL) -> ToolDefinition:
    async def _handler(args: Mapping[str, Any], _message: str, _context: AmbientContext | None) -> str:
        params = {
            "latitude": args.get("latitude"),
            "longitude": args.get("longitude"),
            "current": _CURRENT_FIELDS,
        }
        try:
            response = await http_client.get(url, params=params)
            response.raise_for_status()
            return describe_weather(response.json())
        except (httpx.HTTPError, ValueError, KeyError) as exc:
            LOGGER.warning("Weather lookup failed: %s", exc)
            return f"Failed to get weather information: {exc}"

    return ToolDefinition(
        name="get_weather",
        description="Get current weather information for a location",
        handler=_handler,
        parameters={
            "type": "object",
            "properties": {
                "latitude": {"type": "number", "description": "The latitude coordinate"},
                "longitude": {"type": "number", "description": "The longitude coordinate"},
            },
            "required": ["latitude", "longitude"],
        },
    )
