"""Google Geocoding client and coordinate helpers."""
import logging
import re
from typing import Optional
from urllib.parse import parse_qs, urlparse

import requests

from processor.models import Coordinates, to_coordinate
from processor.text import clean_text

logger = logging.getLogger(__name__)

_ADDRESS_NOISE = re.compile(r'[^\w\s,.-]')
_WHITESPACE = re.compile(r'\s+')


def normalize_address_key(value: str) -> str:
    """
    Normalize an address into a cache key.

    Lowercases, drops punctuation other than ``,.-`` and collapses
    whitespace, so the function is idempotent.

    Args:
        value: Free-form address text

    Returns:
        Normalized key, empty when nothing usable remains
    """
    cleaned = clean_text(value or '').lower()
    cleaned = _ADDRESS_NOISE.sub('', cleaned)
    return _WHITESPACE.sub(' ', cleaned).strip()


def coordinates_from_map_url(url: str) -> Optional[Coordinates]:
    """
    Parse ``lat,lng`` out of a map link's ``query`` parameter.

    Args:
        url: Map URL such as ``https://www.google.com/maps/search/?api=1&query=37.7,-122.4``

    Returns:
        Coordinates, or None when the link carries no coordinate pair
    """
    if not url or not isinstance(url, str):
        return None
    try:
        query = parse_qs(urlparse(url).query).get('query', [''])[0]
    except ValueError:
        return None

    parts = [part.strip() for part in query.split(',')]
    if len(parts) != 2 or not all(parts):
        return None

    lat = to_coordinate(parts[0])
    lng = to_coordinate(parts[1])
    if lat is None or lng is None:
        return None
    return Coordinates(lat=lat, lng=lng)


class GoogleGeocoder:
    """Client for the Google Geocoding API."""

    BASE_URL = "https://maps.googleapis.com/maps/api/geocode/json"

    def __init__(self, api_key: str, timeout: int = 15):
        self.api_key = api_key
        self.timeout = timeout

    def geocode(self, address_text: str) -> Optional[Coordinates]:
        """
        Geocode an address.

        Only ``status == "OK"`` with a non-empty result list counts as a hit.
        Network errors and non-2xx responses are logged and treated as a miss.

        Args:
            address_text: Address to look up

        Returns:
            Coordinates of the first result, or None
        """
        params = {'address': clean_text(address_text), 'key': self.api_key}
        try:
            response = requests.get(self.BASE_URL, params=params, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Geocoding request failed for '{address_text}': {e}")
            return None

        if not isinstance(payload, dict) or payload.get('status') != 'OK':
            return None
        results = payload.get('results')
        if not isinstance(results, list) or not results or not isinstance(results[0], dict):
            return None

        geometry = results[0].get('geometry')
        if not isinstance(geometry, dict):
            return None
        return Coordinates.from_dict(geometry.get('location'))
