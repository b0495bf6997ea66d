"""Unit tests for DiscoveryExtractor, DetailExtractor and PlaceExtractor."""
import json
from unittest.mock import Mock

import pytest

from processor.event_processor import EventProcessor
from scraper.event_extractor import (
    DetailExtractor,
    DiscoveryExtractor,
    canonical_url,
    extract_about_description,
    slug_to_title,
)
from scraper.extraction_client import ExtractionError
from scraper.place_extractor import PlaceExtractor

EVENT_MARKDOWN = """# Founders Breakfast

Saturday, March 7, 2026 9:00 AM

[Open map](https://www.google.com/maps/search/?api=1&query=37.77,-122.42)

## About Event
Coffee and intros.
![banner](https://images.example.com/banner.png)
Bring a friend.

## Hosted By
Someone
"""

EVENT_HTML = """
<html>
  <head>
    <meta property="og:title" content="Rooftop Social" />
    <meta property="og:description" content="Drinks with a view" />
    <script type="application/ld+json">{}</script>
  </head>
  <body><h1>Ignored heading</h1></body>
</html>
""".format(json.dumps({
    '@type': 'Event',
    'startDate': '2026-04-02T18:00:00-07:00',
    'location': {
        'name': 'The Hall',
        'address': {
            'streetAddress': '1 Market St',
            'addressLocality': 'San Francisco',
            'addressRegion': 'CA',
        },
    },
}))


@pytest.fixture
def client():
    """Create a mock extraction client."""
    return Mock()


class TestHelpers:
    """Test cases for module helpers."""

    def test_canonical_url(self):
        """Test query, fragment and trailing slash are removed."""
        assert canonical_url(' https://luma.com/abc/?utm_source=x#top ') == 'https://luma.com/abc'

    def test_slug_to_title(self):
        """Test a URL slug is turned into a title."""
        assert slug_to_title('https://luma.com/demo-night_sf', 'https://luma.com/') == 'Demo Night Sf'

    def test_about_description_skips_images_and_links(self):
        """Test the About Event section is flattened without media lines."""
        assert extract_about_description(EVENT_MARKDOWN) == 'Coffee and intros. Bring a friend.'


class TestDiscoveryExtractor:
    """Test cases for DiscoveryExtractor."""

    def test_discover_filters_and_dedupes(self, client):
        """Test discovered URLs are canonicalized, filtered and deduplicated."""
        client.extract.return_value = {'eventUrls': [
            'https://luma.com/a?utm_source=calendar',
            'https://luma.com/a',
            'https://luma.com/calendar',
            'https://example.com/x',
            5,
            'https://luma.com/b/',
        ]}
        discovery = DiscoveryExtractor(client, EventProcessor())

        urls = discovery.discover_source('https://luma.com/calendar/cal-1')

        assert urls == ['https://luma.com/a', 'https://luma.com/b']

    def test_item_source_falls_back_to_itself(self, client):
        """Test an item page source with no discoveries becomes its own candidate."""
        client.extract.return_value = {'eventUrls': []}
        discovery = DiscoveryExtractor(client, EventProcessor())

        assert discovery.discover_source('https://luma.com/demo-night') == ['https://luma.com/demo-night']

    def test_listing_source_without_discoveries(self, client):
        """Test a listing source with no discoveries yields nothing."""
        client.extract.return_value = None
        discovery = DiscoveryExtractor(client, EventProcessor())

        assert discovery.discover_source('https://luma.com/calendar/cal-1') == []

    def test_discover_across_sources(self, client):
        """Test URLs are merged across sources in order."""
        client.extract.side_effect = [
            {'eventUrls': ['https://luma.com/a', 'https://luma.com/b']},
            {'eventUrls': ['https://luma.com/b', 'https://luma.com/c']},
        ]
        discovery = DiscoveryExtractor(client, EventProcessor())

        urls = discovery.discover(['https://luma.com/calendar/1', 'https://luma.com/calendar/2'])

        assert urls == ['https://luma.com/a', 'https://luma.com/b', 'https://luma.com/c']


class TestDetailExtractor:
    """Test cases for DetailExtractor."""

    def test_structured_result_used(self, client):
        """Test a structured result with a name skips scraping."""
        client.extract.return_value = {'name': 'Demo Night', 'locationText': 'The Hall', 'lat': 'x'}
        details = DetailExtractor(client, sleep=Mock())

        raw = details.fetch_details('https://luma.com/demo')

        assert raw.url == 'https://luma.com/demo'
        assert raw.name == 'Demo Night'
        assert raw.location_text == 'The Hall'
        assert raw.lat is None
        client.scrape.assert_not_called()

    def test_scrape_fallback_merges_fields(self, client):
        """Test a nameless structured result falls back to scraping."""
        client.extract.return_value = {'name': '', 'address': '1 Main St'}
        client.scrape.return_value = {'markdown': EVENT_MARKDOWN}
        details = DetailExtractor(client, sleep=Mock())

        raw = details.fetch_details('https://luma.com/founders')

        assert raw.name == 'Founders Breakfast'
        assert raw.address == '1 Main St'
        assert raw.start_date_time_text == 'Saturday, March 7, 2026 9:00 AM'
        assert raw.start_date_iso == '2026-03-07'
        assert raw.description == 'Coffee and intros. Bring a friend.'
        assert raw.google_maps_url == 'https://www.google.com/maps/search/?api=1&query=37.77,-122.42'

    def test_scrape_html_metadata(self, client):
        """Test HTML metadata and JSON-LD fill fields missing from markdown."""
        client.scrape.return_value = {'html': EVENT_HTML}
        details = DetailExtractor(client)

        raw = details.scrape_details('https://luma.com/rooftop')

        assert raw.name == 'Rooftop Social'
        assert raw.description == 'Drinks with a view'
        assert raw.start_date_iso == '2026-04-02'
        assert raw.location_text == 'The Hall'
        assert raw.address == '1 Market St, San Francisco, CA'

    def test_scrape_slug_title_last_resort(self, client):
        """Test the URL slug names the event when the page has nothing."""
        client.scrape.return_value = {}
        details = DetailExtractor(client)

        assert details.scrape_details('https://luma.com/taco-tuesday').name == 'Taco Tuesday'

    def test_retry_succeeds_after_two_failures(self, client):
        """Test two failures then a success."""
        client.extract.side_effect = [
            ExtractionError('boom'),
            ExtractionError('boom again'),
            {'name': 'Demo Night'},
        ]
        sleep = Mock()
        details = DetailExtractor(client, max_attempts=3, retry_delay=1.0, sleep=sleep)

        raw = details.fetch_details('https://luma.com/demo')

        assert raw.name == 'Demo Night'
        assert client.extract.call_count == 3
        assert [call.args[0] for call in sleep.call_args_list] == [1.0, 2.0]

    def test_three_failures_raise(self, client):
        """Test the last failure propagates after three attempts."""
        client.extract.side_effect = ExtractionError('down')
        details = DetailExtractor(client, max_attempts=3, sleep=Mock())

        with pytest.raises(ExtractionError, match='down'):
            details.fetch_details('https://luma.com/demo')

        assert client.extract.call_count == 3


class TestPlaceExtractor:
    """Test cases for PlaceExtractor."""

    def test_fetch_places(self, client):
        """Test rows are parsed and malformed rows dropped."""
        client.extract.return_value = {'spots': [
            {'name': 'Tartine', 'location': '600 Guerrero St', 'description': 'Bakery', 'lat': '37.76'},
            'junk',
            {'name': 'Zeitgeist', 'location': '199 Valencia St', 'cornerLink': 'https://corner.inc/p/zeit'},
        ]}

        places = PlaceExtractor(client).fetch_places('https://corner.inc/list/1')

        assert [place.name for place in places] == ['Tartine', 'Zeitgeist']
        assert places[0].short_description == 'Bakery'
        assert places[0].lat == 37.76
        assert places[1].corner_link == 'https://corner.inc/p/zeit'

    def test_fetch_places_unexpected_payload(self, client):
        """Test an unexpected payload yields no places."""
        client.extract.return_value = {'spots': 'none'}

        assert PlaceExtractor(client).fetch_places('https://corner.inc/list/1') == []

    def test_extraction_error_propagates(self, client):
        """Test extraction failures are not swallowed."""
        client.extract.side_effect = ExtractionError('quota')

        with pytest.raises(ExtractionError):
            PlaceExtractor(client).fetch_places('https://corner.inc/list/1')
