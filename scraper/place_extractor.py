"""Place (spot) extraction from curated list pages."""
import logging
from typing import List

from processor.models import RawPlace
from processor.spot_processor import SPOT_TAGS
from scraper.extraction_client import ExtractionClient

logger = logging.getLogger(__name__)

PLACES_PROMPT = (
    "Extract every place on this curated list. For each place return its name, "
    f"a tag (one of: {', '.join(SPOT_TAGS)}), the location or address, a map "
    "link, the place's own link on this list, the curator's comment, a short "
    "description and any extra details."
)

PLACES_SCHEMA = {
    'type': 'object',
    'properties': {
        'spots': {
            'type': 'array',
            'items': {
                'type': 'object',
                'properties': {
                    'name': {'type': 'string'},
                    'tag': {'type': 'string'},
                    'location': {'type': 'string'},
                    'mapLink': {'type': 'string'},
                    'cornerLink': {'type': 'string'},
                    'curatorComment': {'type': 'string'},
                    'shortDescription': {'type': 'string'},
                    'details': {'type': 'string'},
                },
                'required': ['name', 'location'],
            },
        },
    },
    'required': ['spots'],
}


class PlaceExtractor:
    """Extracts raw place rows with a single structured extraction call."""

    def __init__(self, client: ExtractionClient):
        self.client = client

    def fetch_places(self, source_url: str) -> List[RawPlace]:
        """
        Extract raw places from a list page.

        Args:
            source_url: Curated list URL

        Returns:
            Raw place rows (malformed rows dropped)

        Raises:
            ExtractionError: If the extraction call fails
        """
        data = self.client.extract([source_url], PLACES_PROMPT, PLACES_SCHEMA)
        rows = data.get('spots') if isinstance(data, dict) else data
        if not isinstance(rows, list):
            rows = []

        places = [place for place in (RawPlace.from_payload(row) for row in rows) if place]
        logger.info(f"Extracted {len(places)} raw places from {source_url}")
        return places
