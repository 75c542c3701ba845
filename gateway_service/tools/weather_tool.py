"""
weather_tool.py - Japanese city forecasts from the tsukumijima weather API.

The city name is resolved to an area id through the primary area feed, then the
forecast for that id is fetched. Lookup misses are reported as a text result;
network and HTTP failures propagate to the tool runner.
"""

import xml.etree.ElementTree as ET
from typing import Optional

import httpx

from gateway_service.core.logging import logger
from gateway_service.tools.base import BaseTool

# --- API Configuration ---
BASE_URL = "https://weather.tsukumijima.net"
PRIMARY_AREA_PATH = "/primary_area.xml"
FORECAST_PATH = "/api/forecast/city/{city_id}"


def find_city_id(feed_xml: str, city: str) -> Optional[str]:
    """Return the area id whose city title matches exactly, or None."""
    root = ET.fromstring(feed_xml)
    for element in root.iter():
        # tags carry the ldWeather namespace, match on the local name
        if element.tag.rsplit("}", 1)[-1] != "city":
            continue
        if element.get("title") == city:
            return element.get("id")
    return None


class FetchWeatherTool(BaseTool):
    """Fetch the weather forecast for a Japanese city."""

    def __init__(self, timeout: float = 10.0, base_url: str = BASE_URL):
        super().__init__()
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")

    async def run(self, city: str) -> str:
        """
        Fetch the forecast headline and summary for a city.
        Args:
            city: City name as listed in the primary area feed (e.g. 東京).
        """
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout) as client:
            feed = await client.get(PRIMARY_AREA_PATH)
            feed.raise_for_status()
            city_id = find_city_id(feed.text, city)
            if city_id is None:
                logger.info(f"Weather lookup miss: city={city!r}")
                return f"City '{city}' was not found."

            response = await client.get(FORECAST_PATH.format(city_id=city_id))
            response.raise_for_status()
            data = response.json()

        return "\n".join([data["title"], data["description"]["bodyText"]])
