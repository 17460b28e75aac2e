"""Unit tests for MeetingSelector and MeetingCache."""
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock
from zoneinfo import ZoneInfo

import pytest
import requests

from scraper.meeting_selector import (
    MeetingCache,
    MeetingSelector,
    meeting_from_json,
)

BASE = 'https://datatracker.ietf.org'
LISTING_URL = BASE + MeetingSelector.MEETINGS_API_PATH
NOW = datetime(2024, 11, 5, 12, 0, tzinfo=timezone.utc)

AVAILABLE_AGENDA = {'121': [{'name': 'TLS'}]}


def listing_entry(number, start, type_tag='/api/v1/name/meetingtypename/ietf/', tz='UTC'):
    return {
        'number': str(number),
        'type': type_tag,
        'date': start,
        'end_date': '1999-01-01',
        'city': f'City {number}',
        'country': 'XX',
        'time_zone': tz
    }


def fake_fetcher(listing, agendas):
    """A fetcher whose get_json serves the listing and the given agendas."""
    fetcher = Mock()

    def get_json(url):
        if url == LISTING_URL:
            if isinstance(listing, Exception):
                raise listing
            return listing
        if url in agendas:
            return agendas[url]
        raise requests.HTTPError(f'404 for {url}')

    fetcher.get_json.side_effect = get_json
    return fetcher


def agenda_url(number):
    return f'{BASE}/meeting/{number}/agenda.json'


@pytest.fixture
def meetings():
    """One ongoing, one upcoming and two past meetings, all with agendas."""
    return [
        listing_entry(119, '2024-03-16'),
        listing_entry(120, '2024-07-20'),
        listing_entry(121, '2024-11-02'),
        listing_entry(122, '2025-03-15'),
    ]


def selector_for(entries, agendas, cache=None, now=NOW):
    fetcher = fake_fetcher({'objects': entries}, agendas)
    return MeetingSelector(fetcher, cache=cache, base_url=BASE, clock=lambda: now)


class TestMeetingSelection:
    """Test cases for the selection priority."""

    def test_ongoing_meeting_wins(self, meetings):
        """Test ongoing > upcoming > past."""
        agendas = {agenda_url(n): AVAILABLE_AGENDA for n in (119, 120, 121, 122)}

        meeting = selector_for(meetings, agendas).detect_current_meeting()

        assert meeting.number == 121
        assert meeting.agenda_available is True
        assert meeting.name == 'IETF 121'

    def test_upcoming_when_no_ongoing(self, meetings):
        """Test that the upcoming meeting is chosen once the ongoing one is gone."""
        entries = [m for m in meetings if m['number'] != '121']
        agendas = {agenda_url(n): AVAILABLE_AGENDA for n in (119, 120, 122)}

        meeting = selector_for(entries, agendas).detect_current_meeting()

        assert meeting.number == 122

    def test_soonest_upcoming_is_chosen(self, meetings):
        """Test that the nearest upcoming meeting with an agenda wins."""
        entries = [m for m in meetings if m['number'] != '121']
        entries.append(listing_entry(123, '2025-07-19'))
        agendas = {agenda_url(n): AVAILABLE_AGENDA for n in (122, 123)}

        meeting = selector_for(entries, agendas).detect_current_meeting()

        assert meeting.number == 122

    def test_most_recent_past_ignores_availability(self, meetings):
        """Test the past fallback even when its agenda is unavailable."""
        entries = [m for m in meetings if m['number'] in ('119', '120')]

        meeting = selector_for(entries, agendas={}).detect_current_meeting()

        assert meeting.number == 120
        assert meeting.agenda_available is False

    def test_ongoing_without_agenda_falls_through(self, meetings):
        """Test that ongoing and upcoming meetings need an agenda."""
        agendas = {
            agenda_url(121): {'121': []},
            agenda_url(122): {'122': 'not a list'},
            agenda_url(120): AVAILABLE_AGENDA,
        }

        meeting = selector_for(meetings, agendas).detect_current_meeting()

        assert meeting.number == 120
        assert meeting.agenda_available is True

    def test_non_ietf_meetings_are_ignored(self, meetings):
        """Test filtering on the type tag."""
        entries = meetings + [
            listing_entry(999, '2024-11-04', type_tag='/api/v1/name/meetingtypename/interim/')
        ]
        agendas = {agenda_url(999): AVAILABLE_AGENDA, agenda_url(121): AVAILABLE_AGENDA}

        meeting = selector_for(entries, agendas).detect_current_meeting()

        assert meeting.number == 121

    def test_listing_failure_without_cache_returns_none(self):
        """Test the soft failure of the listing fetch."""
        fetcher = fake_fetcher(requests.ConnectionError('offline'), {})
        selector = MeetingSelector(fetcher, base_url=BASE, clock=lambda: NOW)

        assert selector.detect_current_meeting() is None

    def test_listing_failure_returns_stale_cache(self, meetings):
        """Test that a failed refresh keeps the previous meeting."""
        cache = MeetingCache()
        agendas = {agenda_url(121): AVAILABLE_AGENDA}
        first = selector_for(meetings, agendas, cache=cache).detect_current_meeting()

        later = NOW + timedelta(days=2)
        fetcher = fake_fetcher(requests.ConnectionError('offline'), {})
        selector = MeetingSelector(fetcher, cache=cache, base_url=BASE, clock=lambda: later)

        assert selector.detect_current_meeting() == first
        fetcher.get_json.assert_called_once_with(LISTING_URL)

    def test_null_listing_fields_are_skipped(self, meetings):
        """Test that listing entries with null fields do not end the selection."""
        entries = meetings + [
            listing_entry(123, None),
            dict(listing_entry(124, '2024-11-04'), number=None),
            dict(listing_entry(125, '2024-11-04'), type=None),
        ]
        agendas = {agenda_url(121): AVAILABLE_AGENDA}

        meeting = selector_for(entries, agendas).detect_current_meeting()

        assert meeting.number == 121

    def test_only_null_dated_entries_returns_none(self):
        """Test a listing where no entry can be parsed."""
        assert selector_for([listing_entry(121, None)], {}).detect_current_meeting() is None

    def test_no_candidates_returns_none(self):
        """Test an empty listing."""
        assert selector_for([], {}).detect_current_meeting() is None


class TestMeetingCache:
    """Test cases for MeetingCache class."""

    def test_cached_meeting_reused_without_network(self, meetings):
        """Test that a fresh cache avoids the listing fetch."""
        agendas = {agenda_url(121): AVAILABLE_AGENDA}
        selector = selector_for(meetings, agendas)

        first = selector.detect_current_meeting()
        calls = selector.fetcher.get_json.call_count
        second = selector.detect_current_meeting()

        assert second is first
        assert selector.fetcher.get_json.call_count == calls

    def test_invalidate_forces_refresh(self, meetings):
        """Test explicit invalidation."""
        agendas = {agenda_url(121): AVAILABLE_AGENDA}
        selector = selector_for(meetings, agendas)
        selector.detect_current_meeting()
        calls = selector.fetcher.get_json.call_count

        selector.cache.invalidate()
        selector.detect_current_meeting()

        assert selector.fetcher.get_json.call_count > calls

    def test_hourly_expiry_during_meeting(self):
        """Test the one hour lifetime while the meeting runs."""
        rng = Mock()
        rng.uniform.return_value = 0
        cache = MeetingCache(rng=rng)
        cache.meeting = meeting_from_json(listing_entry(121, '2024-11-02'))
        cache.timestamp = NOW

        assert cache.is_valid(NOW + timedelta(minutes=59))
        assert not cache.is_valid(NOW + timedelta(hours=1))

    def test_daily_expiry_between_meetings(self):
        """Test the one day lifetime outside the meeting."""
        rng = Mock()
        rng.uniform.return_value = 0
        cache = MeetingCache(rng=rng)
        cache.meeting = meeting_from_json(listing_entry(122, '2025-03-15'))
        cache.timestamp = NOW

        assert cache.is_valid(NOW + timedelta(hours=23))
        assert not cache.is_valid(NOW + timedelta(days=1))

    def test_jitter_is_drawn_on_every_check(self):
        """Test that each validity check draws a new jitter."""
        rng = Mock()
        rng.uniform.side_effect = [0, 299]
        cache = MeetingCache(rng=rng)
        cache.meeting = meeting_from_json(listing_entry(121, '2024-11-02'))
        cache.timestamp = NOW
        moment = NOW + timedelta(hours=1, minutes=2)

        assert not cache.is_valid(moment)
        assert cache.is_valid(moment)
        assert rng.uniform.call_count == 2
        rng.uniform.assert_called_with(0, 300.0)

    def test_empty_cache_is_invalid(self):
        """Test that nothing cached means nothing valid."""
        assert not MeetingCache().is_valid(NOW)


class TestMeetingFromJson:
    """Test cases for meeting_from_json."""

    def test_end_is_derived_from_start(self):
        """Test that end_date is ignored and recomputed."""
        meeting = meeting_from_json({
            'number': '121', 'type': 'ietf', 'date': '2024-11-02',
            'end_date': '2024-11-01', 'time_zone': 'UTC'
        })

        assert meeting.start == datetime(2024, 11, 2, tzinfo=ZoneInfo('UTC'))
        assert meeting.end == datetime(2024, 11, 8, 23, 59, 59, tzinfo=ZoneInfo('UTC'))

    def test_metadata_defaults(self):
        """Test fallbacks for unknown timezone and missing location."""
        meeting = meeting_from_json(
            {'number': '121', 'date': '2024-11-02', 'time_zone': 'Not/AZone'},
            base_url='https://example.org/'
        )

        assert meeting.timezone == ZoneInfo('UTC')
        assert meeting.city == 'Unknown'
        assert meeting.country == 'Unknown'
        assert meeting.agenda_url == 'https://example.org/meeting/121/agenda.json'
        assert meeting.agenda_available is False

    def test_meeting_timezone_is_used(self):
        """Test that the start is midnight in the meeting timezone."""
        meeting = meeting_from_json(listing_entry(121, '2024-11-02', tz='Asia/Tokyo'))

        assert meeting.start.utcoffset() == timedelta(hours=9)
