"""Spot processor for normalizing, tagging and deduplicating places."""
import logging
import re
from typing import Iterable, List, Optional
from urllib.parse import quote

from processor.models import NormalizedPlace, RawPlace, Source
from processor.text import clean_text, is_http_url

logger = logging.getLogger(__name__)

SPOT_TAGS = ('eat', 'bar', 'cafes', 'go out', 'shops')
DEFAULT_SPOT_TAG = 'eat'
MAP_SEARCH_URL = 'https://www.google.com/maps/search/?api=1&query='

# Checked in order; the first matching category wins
TAG_KEYWORDS = (
    ('cafes', re.compile(r'coffee|cafe|espresso|matcha|tea|bakery')),
    ('bar', re.compile(r'bar|cocktail|wine|pub|brewery')),
    ('shops', re.compile(r'shop|store|boutique|retail|market')),
    ('go out', re.compile(r'club|night|party|dance|music venue|late night')),
)


def build_dedupe_key(corner_link: str, name: str, location: str) -> str:
    """
    Build the place dedup key.

    Args:
        corner_link: Curated list link, preferred when present
        name: Place name
        location: Place location text

    Returns:
        Lower-cased corner link, or ``name|location`` case-folded
    """
    link = clean_text(corner_link)
    if link:
        return link.lower()
    return f"{clean_text(name).lower()}|{clean_text(location).lower()}"


def spot_id_from_key(key: str) -> str:
    slug = re.sub(r'^https?://', '', clean_text(key).lower())
    slug = re.sub(r'[^\w]+', '-', slug).strip('-')[:80]
    return f"spot-{slug or 'unknown'}"


def normalize_tag(tag: str, fallback_text: str) -> str:
    """
    Normalize a place tag.

    Args:
        tag: Tag as extracted
        fallback_text: Name, description and details used for keyword inference

    Returns:
        One of SPOT_TAGS
    """
    value = clean_text(tag).lower()
    if value in SPOT_TAGS:
        return value

    haystack = f"{value} {clean_text(fallback_text).lower()}"
    for category, pattern in TAG_KEYWORDS:
        if pattern.search(haystack):
            return category
    return DEFAULT_SPOT_TAG


def normalize_map_link(raw_link: str, location: str) -> str:
    link = clean_text(raw_link)
    if is_http_url(link):
        return link
    return f"{MAP_SEARCH_URL}{quote(location, safe='')}"


def score_spot(place: NormalizedPlace) -> int:
    """Count populated fields on a place (0-8)."""
    score = 0
    for value in (
        place.name,
        place.location,
        place.map_link,
        place.corner_link,
        place.description,
        place.details,
    ):
        if value:
            score += 1
    if place.lat is not None:
        score += 1
    if place.lng is not None:
        score += 1
    return score


def dedupe_and_sort(places: Iterable[NormalizedPlace]) -> List[NormalizedPlace]:
    """
    Keep the highest-scoring place per dedup key, sorted by (tag, name).

    Args:
        places: Normalized places, possibly with duplicates

    Returns:
        Deduplicated places
    """
    best_by_key = {}
    for place in places:
        key = build_dedupe_key(place.corner_link, place.name, place.location)
        existing = best_by_key.get(key)
        if existing is None or score_spot(place) > score_spot(existing):
            best_by_key[key] = place

    return sorted(best_by_key.values(), key=lambda place: (place.tag, place.name))


class SpotProcessor:
    """Processor for validating and normalizing places."""

    def __init__(self, confidence_threshold: int = 4):
        self.confidence_threshold = confidence_threshold

    def normalize_spots(self, raw_places: Iterable[Optional[RawPlace]],
                        source: Optional[Source] = None) -> List[NormalizedPlace]:
        """
        Normalize raw place rows from one source.

        Rows missing a name or location are skipped. Duplicates are kept
        here; ``dedupe_and_sort`` picks the best variant.

        Args:
            raw_places: Raw place rows
            source: Originating source, if known

        Returns:
            Normalized places
        """
        normalized = []
        for raw in raw_places:
            place = self.normalize_spot(raw, source)
            if place:
                normalized.append(place)
        return normalized

    def normalize_spot(self, raw: Optional[RawPlace],
                       source: Optional[Source] = None) -> Optional[NormalizedPlace]:
        if not isinstance(raw, RawPlace):
            return None

        name = clean_text(raw.name)
        location = clean_text(raw.location)
        if not name or not location:
            return None

        corner_link = clean_text(raw.corner_link)
        description = clean_text(raw.short_description)
        details = clean_text(raw.details)
        lat, lng = (raw.lat, raw.lng) if raw.lat is not None and raw.lng is not None else (None, None)

        place = NormalizedPlace(
            id=spot_id_from_key(build_dedupe_key(corner_link, name, location)),
            name=name,
            tag=normalize_tag(raw.tag, f"{name} {raw.short_description} {raw.details}"),
            location=location,
            map_link=normalize_map_link(raw.map_link, location),
            corner_link=corner_link,
            curator_comment=clean_text(raw.curator_comment),
            description=description,
            details=details,
            lat=lat,
            lng=lng,
            source_id=source.id if source else '',
            source_url=source.url if source else '',
        )
        place.confidence = 1.0 if score_spot(place) >= self.confidence_threshold else 0.7
        return place
