"""Unit tests for IcsFeedReader."""
from unittest.mock import Mock

import pytest
import responses
from requests.exceptions import ConnectionError, RequestException

from scraper.ics_feed import IcsFeedReader, is_feed_url

FEED_URL = 'https://api2.luma.com/ics/get?entity=calendar&id=cal-1'

FEED_BODY = '\r\n'.join([
    'BEGIN:VCALENDAR',
    'VERSION:2.0',
    'PRODID:-//Test//Feed//EN',
    'BEGIN:VEVENT',
    'UID:evt-1@luma.com',
    'SUMMARY:Demo Night',
    'DTSTART:20260307T190000Z',
    'URL:https://luma.com/demo',
    'LOCATION:The Hall\\, 1 Market St',
    'DESCRIPTION:Pitches and pizza',
    'GEO:37.79;-122.39',
    'END:VEVENT',
    'BEGIN:VEVENT',
    'UID:evt-2@luma.com',
    'SUMMARY:Online Meetup',
    'DTSTART;VALUE=DATE:20260310',
    'LOCATION:https://luma.com/online',
    'END:VEVENT',
    'BEGIN:VEVENT',
    'UID:evt-3@luma.com',
    'DTSTART:20260311T100000Z',
    'END:VEVENT',
    'END:VCALENDAR',
    '',
])


@pytest.mark.parametrize('url,expected', [
    (FEED_URL, True),
    ('webcal://example.com/calendar', True),
    ('https://example.com/events.ics', True),
    ('https://luma.com/sf', False),
    ('https://example.com/page?format=ics', False),
])
def test_is_feed_url(url, expected):
    """Test feed URL recognition."""
    assert is_feed_url(url) is expected


class TestIcsFeedReader:
    """Test cases for IcsFeedReader."""

    @responses.activate
    def test_fetch_events(self):
        """Test VEVENTs are parsed into raw events."""
        responses.add(responses.GET, FEED_URL, body=FEED_BODY, status=200)

        events = IcsFeedReader(sleep=Mock()).fetch_events(FEED_URL)

        assert len(events) == 2
        uid, raw = events[0]
        assert uid == 'evt-1@luma.com'
        assert raw.name == 'Demo Night'
        assert raw.url == 'https://luma.com/demo'
        assert raw.location_text == 'The Hall, 1 Market St'
        assert raw.description == 'Pitches and pizza'
        assert raw.start_date_iso == '2026-03-07'
        assert raw.start_date_time_text == 'Saturday, March 7, 2026 7:00 PM'
        assert raw.lat == pytest.approx(37.79)
        assert raw.lng == pytest.approx(-122.39)

    @responses.activate
    def test_location_url_becomes_event_url(self):
        """Test an all-day event whose location is a link."""
        responses.add(responses.GET, FEED_URL, body=FEED_BODY, status=200)

        _, raw = IcsFeedReader(sleep=Mock()).fetch_events(FEED_URL)[1]

        assert raw.url == 'https://luma.com/online'
        assert raw.location_text == ''
        assert raw.start_date_iso == '2026-03-10'
        assert raw.start_date_time_text == 'Tuesday, March 10, 2026'

    @responses.activate
    def test_webcal_fetched_over_https(self):
        """Test webcal:// URLs are fetched over https."""
        responses.add(responses.GET, 'https://example.com/cal.ics', body=FEED_BODY, status=200)

        events = IcsFeedReader(sleep=Mock()).fetch_events('webcal://example.com/cal.ics')

        assert len(events) == 2

    @responses.activate
    def test_retry_then_success(self):
        """Test a transient failure is retried."""
        responses.add(responses.GET, FEED_URL, body=ConnectionError('reset'))
        responses.add(responses.GET, FEED_URL, body=FEED_BODY, status=200)
        sleep = Mock()

        events = IcsFeedReader(sleep=sleep).fetch_events(FEED_URL)

        assert len(events) == 2
        sleep.assert_called_once_with(1.0)

    @responses.activate
    def test_all_attempts_fail(self):
        """Test the HTTP error propagates after all attempts."""
        responses.add(responses.GET, FEED_URL, status=503)

        with pytest.raises(RequestException):
            IcsFeedReader(max_attempts=2, sleep=Mock()).fetch_events(FEED_URL)

        assert len(responses.calls) == 2

    @responses.activate
    def test_unparseable_feed(self):
        """Test an invalid calendar raises ValueError."""
        responses.add(responses.GET, FEED_URL, body='garbage', status=200)

        with pytest.raises(ValueError):
            IcsFeedReader(sleep=Mock()).fetch_events(FEED_URL)
