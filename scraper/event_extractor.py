"""Event discovery and detail extraction through the extraction service."""
import json
import logging
import re
import time
from typing import Any, Callable, Dict, Iterable, List, Optional
from urllib.parse import urlsplit, urlunsplit

from bs4 import BeautifulSoup

from processor.event_processor import EventProcessor, infer_date_iso
from processor.models import RawEventDetails
from processor.text import clean_text, first_match
from scraper.extraction_client import ExtractionClient
from scraper.retry import retry_call

logger = logging.getLogger(__name__)

DISCOVERY_PROMPT = (
    "List the URL of every individual event page linked from this calendar or "
    "listing page. Return only links to single events, not to other calendars, "
    "maps or overview pages."
)

DISCOVERY_SCHEMA = {
    'type': 'object',
    'properties': {
        'eventUrls': {'type': 'array', 'items': {'type': 'string'}},
    },
    'required': ['eventUrls'],
}

DETAIL_PROMPT = (
    "Extract the event's name, a short description, the start date and time as "
    "written on the page, the start date as YYYY-MM-DD, the venue or location "
    "name, the street address and any Google Maps link."
)

DETAIL_SCHEMA = {
    'type': 'object',
    'properties': {
        'name': {'type': 'string'},
        'description': {'type': 'string'},
        'startDateTimeText': {'type': 'string'},
        'startDateISO': {'type': 'string'},
        'locationText': {'type': 'string'},
        'address': {'type': 'string'},
        'googleMapsUrl': {'type': 'string'},
    },
    'required': ['name'],
}

_HEADING = re.compile(r'^#\s+(.+)$', re.MULTILINE)
_ABOUT_SECTION = re.compile(r'##\s*About Event([\s\S]*?)(?:\n##\s|\n#\s|$)', re.IGNORECASE)
_DATE_TIME_TEXT = re.compile(
    r'((?:Monday|Tuesday|Wednesday|Thursday|Friday|Saturday|Sunday),?\s+'
    r'[A-Z][a-z]+\.?\s+\d{1,2}(?:,\s*\d{4})?'
    r'(?:[^\n]{0,20}?\d{1,2}(?::\d{2})?\s*[AaPp][Mm])?)'
)
_MAPS_URL = re.compile(
    r'(https://(?:www\.)?(?:google\.[a-z.]+/maps|maps\.google\.[a-z.]+|maps\.app\.goo\.gl|goo\.gl/maps)'
    r'[^\s)"\'<>\]]*)'
)
_TITLE_SUFFIX = re.compile(r'\s*[·|]\s*[^·|]+$')


def canonical_url(url: str) -> str:
    """Strip query, fragment and trailing slash from a URL."""
    cleaned = clean_text(url)
    if not cleaned:
        return ''
    parts = urlsplit(cleaned)
    path = parts.path.rstrip('/')
    return urlunsplit((parts.scheme, parts.netloc, path, '', ''))


def slug_to_title(event_url: str, prefix: str) -> str:
    slug = clean_text(event_url)
    if slug.startswith(prefix):
        slug = slug[len(prefix):]
    parts = [part for part in re.split(r'[-_/]', slug) if part]
    return ' '.join(part[:1].upper() + part[1:] for part in parts)


def extract_about_description(markdown: str) -> str:
    """Return the text of the markdown "About Event" section, if any."""
    if not markdown:
        return ''
    match = _ABOUT_SECTION.search(markdown)
    if not match:
        return ''
    lines = [clean_text(line) for line in match.group(1).split('\n')]
    lines = [line for line in lines if line and not line.startswith('![') and not line.startswith('[')]
    return ' '.join(lines)


class DiscoveryExtractor:
    """Turns listing or calendar pages into individual event page URLs."""

    def __init__(self, client: ExtractionClient, processor: EventProcessor):
        self.client = client
        self.processor = processor

    def discover(self, source_urls: Iterable[str]) -> List[str]:
        """
        Discover candidate event URLs across several sources.

        Args:
            source_urls: Listing page URLs

        Returns:
            Deduplicated candidate URLs in discovery order
        """
        candidates = []
        for source_url in source_urls:
            for url in self.discover_source(source_url):
                if url not in candidates:
                    candidates.append(url)
        return candidates

    def discover_source(self, source_url: str) -> List[str]:
        """
        Discover candidate event URLs on one listing page.

        Falls back to the source URL itself when nothing is discovered and
        the source is already an item page.

        Args:
            source_url: Listing page URL

        Returns:
            Deduplicated candidate URLs (may be empty)

        Raises:
            ExtractionError: If the extraction call fails
        """
        data = self.client.extract([source_url], DISCOVERY_PROMPT, DISCOVERY_SCHEMA)
        raw_urls = data.get('eventUrls') if isinstance(data, dict) else data
        if not isinstance(raw_urls, list):
            raw_urls = []

        candidates = []
        for raw_url in raw_urls:
            if not isinstance(raw_url, str):
                continue
            url = canonical_url(raw_url)
            if self.processor.is_item_url(url) and url not in candidates:
                candidates.append(url)

        if not candidates:
            own_url = canonical_url(source_url)
            if self.processor.is_item_url(own_url):
                logger.info(f"No events discovered on {source_url}; using the source as its own event")
                candidates.append(own_url)

        logger.info(f"Discovered {len(candidates)} candidate events on {source_url}")
        return candidates


class DetailExtractor:
    """
    Fetches one event's fields.

    Structured extraction comes first. When it returns no name, the page is
    scraped and fields are recovered heuristically, with any partial
    structured fields layered on top.
    """

    def __init__(
        self,
        client: ExtractionClient,
        event_url_prefix: str = 'https://luma.com/',
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.event_url_prefix = event_url_prefix
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.sleep = sleep

    def fetch_details(self, url: str) -> RawEventDetails:
        """
        Fetch event details with bounded retries.

        Args:
            url: Event page URL

        Returns:
            RawEventDetails for the page

        Raises:
            Exception: The last failure once all attempts are exhausted
        """
        return retry_call(
            lambda: self._fetch_once(url),
            max_attempts=self.max_attempts,
            delay=self.retry_delay,
            sleep=self.sleep,
            description=f"Detail fetch for {url}",
        )

    def _fetch_once(self, url: str) -> RawEventDetails:
        data = self.client.extract([url], DETAIL_PROMPT, DETAIL_SCHEMA)
        if isinstance(data, list):
            data = data[0] if data else {}
        structured = RawEventDetails.from_payload(data, url=url)
        structured.url = url

        if clean_text(structured.name):
            return structured

        logger.info(f"Structured extraction returned no name for {url}; scraping page")
        scraped = self.scrape_details(url)
        return structured.merged_over(scraped)

    def scrape_details(self, url: str) -> RawEventDetails:
        """
        Recover event fields from raw page content.

        Args:
            url: Event page URL

        Returns:
            RawEventDetails built from headings, metadata and regexes
        """
        content = self.client.scrape(url)
        markdown = content.get('markdown') or ''
        html = content.get('html') or content.get('rawHtml') or ''
        metadata = content.get('metadata') if isinstance(content.get('metadata'), dict) else {}

        soup = BeautifulSoup(html, 'html.parser') if html else None
        json_ld = self._json_ld_event(soup)
        location = json_ld.get('location') if isinstance(json_ld.get('location'), dict) else {}

        name = (
            first_match(markdown, _HEADING)
            or self._meta_content(soup, 'og:title')
            or self._tag_text(soup, 'h1')
            or clean_text(_TITLE_SUFFIX.sub('', clean_text(metadata.get('title'))))
            or slug_to_title(url, self.event_url_prefix)
        )
        description = (
            extract_about_description(markdown)
            or self._meta_content(soup, 'og:description')
            or self._meta_content(soup, 'description')
            or clean_text(metadata.get('description'))
        )
        start_date_time_text = first_match(markdown, _DATE_TIME_TEXT)
        start_date_iso = clean_text(json_ld.get('startDate'))[:10] or infer_date_iso(start_date_time_text)

        return RawEventDetails(
            url=url,
            name=name,
            description=description,
            start_date_time_text=start_date_time_text,
            start_date_iso=start_date_iso,
            location_text=clean_text(location.get('name')),
            address=self._address_text(location.get('address')),
            google_maps_url=first_match(markdown, _MAPS_URL) or first_match(html, _MAPS_URL),
        )

    def _json_ld_event(self, soup: Optional[BeautifulSoup]) -> Dict[str, Any]:
        if soup is None:
            return {}
        for script in soup.find_all('script', type='application/ld+json'):
            try:
                payload = json.loads(script.string or '')
            except ValueError:
                continue
            for item in payload if isinstance(payload, list) else [payload]:
                if isinstance(item, dict) and 'Event' in str(item.get('@type', '')):
                    return item
        return {}

    def _meta_content(self, soup: Optional[BeautifulSoup], name: str) -> str:
        if soup is None:
            return ''
        tag = soup.find('meta', attrs={'property': name}) or soup.find('meta', attrs={'name': name})
        return clean_text(tag.get('content')) if tag else ''

    def _tag_text(self, soup: Optional[BeautifulSoup], tag_name: str) -> str:
        if soup is None:
            return ''
        tag = soup.find(tag_name)
        return clean_text(tag.get_text(' ', strip=True)) if tag else ''

    def _address_text(self, address: Any) -> str:
        if isinstance(address, str):
            return clean_text(address)
        if isinstance(address, dict):
            parts = [
                address.get('streetAddress'),
                address.get('addressLocality'),
                address.get('addressRegion'),
                address.get('postalCode'),
            ]
            return ', '.join(clean_text(part) for part in parts if clean_text(part))
        return ''
