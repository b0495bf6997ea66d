"""Event processor for validating, scoring and deduplicating event data."""
import logging
import re
from datetime import datetime
from typing import Iterable, List, Optional

from geocoding.geocoder import coordinates_from_map_url
from processor.models import NormalizedEvent, RawEventDetails, Source
from processor.text import clean_text, is_http_url

logger = logging.getLogger(__name__)

DATE_SORT_SENTINEL = '9999-99-99'

# Listing and overview pages on the event domain; never individual events
LISTING_PATHS = frozenset({
    'discover', 'calendar', 'map', 'explore', 'home', 'signin', 'user',
    'create', 'pricing', 'ics', 'settings', 'search',
})

_ISO_DATE = re.compile(r'(?<!\d)(20\d{2}-\d{2}-\d{2})(?!\d)')
_MONTH_DAY_YEAR = re.compile(
    r'\b([A-Z][a-z]{2,8}\.?\s+\d{1,2}(?:st|nd|rd|th)?,?\s+\d{4})\b'
)
_NUMERIC_DATE = re.compile(r'\b(\d{1,2}/\d{1,2}/\d{4})\b')
_ORDINAL_SUFFIX = re.compile(r'(\d)(st|nd|rd|th)\b')


def infer_date_iso(start_date_time_text: str) -> str:
    """
    Infer an ISO date (YYYY-MM-DD) from free-form date text.

    Only dates with an explicit year are accepted; nothing is fabricated.

    Args:
        start_date_time_text: Text such as "Saturday, March 7, 2026 7:00 PM"

    Returns:
        ISO date string, or empty string if unparseable
    """
    if not start_date_time_text:
        return ''

    iso_match = _ISO_DATE.search(start_date_time_text)
    if iso_match:
        return iso_match.group(1)

    match = _MONTH_DAY_YEAR.search(start_date_time_text)
    if match:
        candidate = _ORDINAL_SUFFIX.sub(r'\1', match.group(1))
        candidate = candidate.replace(',', ' ').replace('.', ' ')
        candidate = ' '.join(candidate.split())
        for fmt in ('%B %d %Y', '%b %d %Y'):
            try:
                return datetime.strptime(candidate, fmt).strftime('%Y-%m-%d')
            except ValueError:
                continue

    match = _NUMERIC_DATE.search(start_date_time_text)
    if match:
        try:
            return datetime.strptime(match.group(1), '%m/%d/%Y').strftime('%Y-%m-%d')
        except ValueError:
            return ''

    return ''


def score_event(event: NormalizedEvent) -> int:
    """
    Count populated fields on an event (0-9).

    Args:
        event: Normalized event

    Returns:
        Completeness score
    """
    score = 0
    for value in (
        event.name,
        event.description,
        event.start_date_time_text,
        event.start_date_iso,
        event.location_text,
        event.address,
        event.google_maps_url,
    ):
        if value:
            score += 1
    if event.lat is not None:
        score += 1
    if event.lng is not None:
        score += 1
    return score


def dedupe_and_sort(events: Iterable[NormalizedEvent]) -> List[NormalizedEvent]:
    """
    Keep the highest-scoring event per URL and sort by start date.

    Ties keep the first event seen. Events without a date sort last.

    Args:
        events: Normalized events, possibly with duplicate URLs

    Returns:
        Deduplicated events sorted ascending by start date
    """
    best_by_url = {}
    for event in events:
        existing = best_by_url.get(event.event_url)
        if existing is None or score_event(event) > score_event(existing):
            best_by_url[event.event_url] = event

    return sorted(
        best_by_url.values(),
        key=lambda event: event.start_date_iso or DATE_SORT_SENTINEL
    )


class EventProcessor:
    """Processor for validating and normalizing event data."""

    MAX_DESCRIPTION_LENGTH = 2000
    FEED_DESCRIPTION_LENGTH = 500

    def __init__(self, event_url_prefix: str = 'https://luma.com/', confidence_threshold: int = 6):
        """
        Initialize the event processor.

        Args:
            event_url_prefix: Required prefix of item page URLs
            confidence_threshold: Minimum score for a confidence of 1.0
        """
        self.event_url_prefix = event_url_prefix
        self.confidence_threshold = confidence_threshold

    def is_item_url(self, url: str) -> bool:
        """True for a single item page under the prefix, not a listing sub-path."""
        if not url.startswith(self.event_url_prefix):
            return False
        slug = url[len(self.event_url_prefix):].strip('/')
        if not slug or '/' in slug or '?' in slug or '#' in slug:
            return False
        return slug.lower() not in LISTING_PATHS

    def normalize_event(self, raw: RawEventDetails,
                        source: Optional[Source] = None) -> Optional[NormalizedEvent]:
        """
        Normalize one raw event from an item page.

        Args:
            raw: Raw event payload
            source: Originating source, if known

        Returns:
            NormalizedEvent, or None when url/name are missing or the URL is
            not an item page
        """
        if not isinstance(raw, RawEventDetails):
            return None

        event_url = clean_text(raw.url)
        name = clean_text(raw.name)
        if not event_url or not name:
            logger.warning(f"Event missing required field (url={event_url!r}, name={name!r})")
            return None
        if not self.is_item_url(event_url):
            logger.warning(f"Event URL does not match item pattern: {event_url}")
            return None

        event_id = event_url[len(self.event_url_prefix):].strip('/')
        return self._build(raw, event_id, event_url, name, source, self.MAX_DESCRIPTION_LENGTH)

    def normalize_feed_event(self, raw: RawEventDetails, uid: str = '',
                             source: Optional[Source] = None) -> Optional[NormalizedEvent]:
        """
        Normalize one event read from an ICS feed.

        Feed events may link anywhere, so any http(s) URL is accepted.

        Args:
            raw: Raw event payload
            uid: Feed UID used as the record id when present
            source: Originating source, if known

        Returns:
            NormalizedEvent, or None when url/name are missing
        """
        event_url = clean_text(raw.url)
        name = clean_text(raw.name)
        if not name or not is_http_url(event_url):
            return None
        event_id = clean_text(uid) or event_url
        return self._build(raw, event_id, event_url, name, source, self.FEED_DESCRIPTION_LENGTH)

    def _build(self, raw: RawEventDetails, event_id: str, event_url: str, name: str,
               source: Optional[Source], description_length: int) -> NormalizedEvent:
        start_date_time_text = clean_text(raw.start_date_time_text)
        explicit_date = clean_text(raw.start_date_iso)[:10]
        if explicit_date and not _ISO_DATE.fullmatch(explicit_date):
            explicit_date = ''
        google_maps_url = clean_text(raw.google_maps_url)

        lat, lng = raw.lat, raw.lng
        if lat is None or lng is None:
            lat, lng = None, None
            map_coordinates = coordinates_from_map_url(google_maps_url)
            if map_coordinates:
                lat, lng = map_coordinates.lat, map_coordinates.lng

        event = NormalizedEvent(
            id=event_id,
            name=name,
            description=clean_text(raw.description)[:description_length],
            event_url=event_url,
            start_date_time_text=start_date_time_text,
            start_date_iso=explicit_date or infer_date_iso(start_date_time_text),
            location_text=clean_text(raw.location_text),
            address=clean_text(raw.address),
            google_maps_url=google_maps_url,
            lat=lat,
            lng=lng,
            source_id=source.id if source else '',
            source_url=source.url if source else '',
        )
        event.confidence = self.confidence_for(event)
        return event

    def confidence_for(self, event: NormalizedEvent) -> float:
        return 1.0 if score_event(event) >= self.confidence_threshold else 0.7
