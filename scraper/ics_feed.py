"""Reader for feed-style (ICS) event calendars."""
import logging
import time
from datetime import date, datetime
from typing import Callable, List, Optional, Tuple

import requests
from icalendar import Calendar

from processor.models import RawEventDetails, to_coordinate
from processor.text import clean_text, is_http_url
from scraper.retry import retry_call

logger = logging.getLogger(__name__)


def is_feed_url(url: str) -> bool:
    """True for URLs that serve an ICS calendar rather than an HTML page."""
    lowered = clean_text(url).lower()
    path = lowered.split('?', 1)[0]
    return lowered.startswith('webcal://') or path.endswith('.ics') or '/ics/' in path


class IcsFeedReader:
    """Fetches and parses ICS calendars into raw event records."""

    def __init__(self, timeout: int = 30, max_attempts: int = 3, retry_delay: float = 1.0,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Initialize the feed reader.

        Args:
            timeout: HTTP request timeout in seconds (default: 30)
            max_attempts: Fetch attempts before giving up
            retry_delay: Linear backoff unit in seconds
            sleep: Sleep function used between attempts
        """
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.sleep = sleep

    def fetch_events(self, feed_url: str) -> List[Tuple[str, RawEventDetails]]:
        """
        Fetch a calendar feed.

        Args:
            feed_url: ICS or webcal URL

        Returns:
            List of (uid, RawEventDetails) for every VEVENT with a summary

        Raises:
            requests.RequestException: If all fetch attempts fail
            ValueError: If the feed cannot be parsed
        """
        content = self._fetch_feed(feed_url)
        events = self._parse_events(content)
        logger.info(f"Read {len(events)} events from feed {feed_url}")
        return events

    def _fetch_feed(self, feed_url: str) -> bytes:
        url = 'https://' + feed_url[len('webcal://'):] if feed_url.startswith('webcal://') else feed_url

        def fetch() -> bytes:
            response = requests.get(url, timeout=self.timeout)
            response.raise_for_status()
            return response.content

        return retry_call(
            fetch,
            max_attempts=self.max_attempts,
            delay=self.retry_delay,
            retry_on=(requests.RequestException,),
            sleep=self.sleep,
            description=f"Feed fetch for {feed_url}",
        )

    def _parse_events(self, content: bytes) -> List[Tuple[str, RawEventDetails]]:
        calendar = Calendar.from_ical(content)
        events = []

        for component in calendar.walk('VEVENT'):
            try:
                parsed = self._parse_event_component(component)
            except (TypeError, ValueError) as e:
                logger.warning(f"Failed to parse feed event: {e}")
                continue
            if parsed:
                events.append(parsed)

        return events

    def _parse_event_component(self, component) -> Optional[Tuple[str, RawEventDetails]]:
        """
        Parse a single VEVENT.

        Args:
            component: icalendar VEVENT component

        Returns:
            (uid, RawEventDetails) or None when the event has no summary
        """
        name = clean_text(str(component.get('summary', '')))
        if not name:
            return None

        start_date_iso, start_date_time_text = self._format_start(component.get('dtstart'))

        raw_location = clean_text(str(component.get('location', '')))
        location_is_url = is_http_url(raw_location)
        event_url = clean_text(str(component.get('url', ''))) or (raw_location if location_is_url else '')

        lat, lng = None, None
        geo = component.get('geo')
        if geo is not None:
            lat = to_coordinate(getattr(geo, 'latitude', None))
            lng = to_coordinate(getattr(geo, 'longitude', None))

        raw = RawEventDetails(
            url=event_url,
            name=name,
            description=clean_text(str(component.get('description', ''))),
            start_date_time_text=start_date_time_text,
            start_date_iso=start_date_iso,
            location_text='' if location_is_url else raw_location,
            lat=lat,
            lng=lng,
        )
        return clean_text(str(component.get('uid', ''))), raw

    def _format_start(self, dtstart) -> Tuple[str, str]:
        """
        Format a DTSTART value.

        Args:
            dtstart: icalendar vDDDTypes or None

        Returns:
            Tuple of (ISO date, human readable date/time text)
        """
        if dtstart is None:
            return '', ''

        value = dtstart.dt
        if isinstance(value, datetime):
            text = f"{value.strftime('%A, %B')} {value.day}, {value.year} {value.strftime('%I:%M %p').lstrip('0')}"
            return value.date().isoformat(), text
        if isinstance(value, date):
            return value.isoformat(), f"{value.strftime('%A, %B')} {value.day}, {value.year}"
        return '', ''
