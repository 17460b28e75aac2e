"""Detection of the current IETF meeting from the datatracker listing."""
import logging
import random
import threading
from dataclasses import replace
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import requests

from processor.models import MeetingMetadata
from scraper.feed_fetcher import FeedFetcher

logger = logging.getLogger(__name__)

CACHE_DURATION_DURING_MEETING = timedelta(hours=1)
CACHE_DURATION_BETWEEN_MEETINGS = timedelta(days=1)
CACHE_JITTER_MAX = timedelta(minutes=5)

# The listing's end_date is unreliable; meetings are assumed to last a week.
MEETING_LENGTH = timedelta(days=6, hours=23, minutes=59, seconds=59)


def meeting_from_json(data: dict, base_url: str = 'https://datatracker.ietf.org') -> MeetingMetadata:
    """
    Build MeetingMetadata from one datatracker listing object.

    Raises:
        KeyError: If number or date is missing
        ValueError: If number or date cannot be parsed
        TypeError: If number or date is null
    """
    number = int(data['number'])
    timezone_id = data.get('time_zone') or 'UTC'
    try:
        tz = ZoneInfo(timezone_id)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {timezone_id} for IETF {number}, using UTC")
        tz = ZoneInfo('UTC')

    start = datetime.combine(date.fromisoformat(data['date']), time.min, tzinfo=tz)

    return MeetingMetadata(
        number=number,
        name=f"IETF {number}",
        city=data.get('city') or 'Unknown',
        country=data.get('country') or 'Unknown',
        timezone=tz,
        start=start,
        end=start + MEETING_LENGTH,
        agenda_url=f"{base_url.rstrip('/')}/meeting/{number}/agenda.json",
        agenda_available=False
    )


class MeetingCache:
    """Selected meeting plus the time it was selected, with jittered expiry."""

    def __init__(self, rng: Optional[random.Random] = None):
        self.meeting: Optional[MeetingMetadata] = None
        self.timestamp: Optional[datetime] = None
        self.rng = rng or random.Random()
        self._lock = threading.Lock()

    def is_valid(self, now: datetime) -> bool:
        """Whether the cached meeting can be reused at ``now``.

        The jitter is drawn again on every check.
        """
        if self.meeting is None or self.timestamp is None:
            return False

        if self.meeting.is_ongoing(now):
            duration = CACHE_DURATION_DURING_MEETING
        else:
            duration = CACHE_DURATION_BETWEEN_MEETINGS
        jitter = timedelta(seconds=self.rng.uniform(0, CACHE_JITTER_MAX.total_seconds()))
        return now - self.timestamp < duration + jitter

    def check_and_maybe_refresh(
        self,
        now: datetime,
        refresh: Callable[[datetime], Optional[MeetingMetadata]]
    ) -> Optional[MeetingMetadata]:
        """
        Return the cached meeting, calling ``refresh`` first when it is stale.

        A refresh returning None keeps the previous meeting.
        """
        with self._lock:
            if self.is_valid(now):
                logger.debug(f"Using cached meeting: {self.meeting.name}")
                return self.meeting

            selected = refresh(now)
            if selected is None:
                return self.meeting

            self.meeting = selected
            self.timestamp = now
            return selected

    def invalidate(self) -> None:
        with self._lock:
            self.meeting = None
            self.timestamp = None


class MeetingSelector:
    """Chooses which meeting's agenda to synchronize."""

    MEETINGS_API_PATH = '/api/v1/meeting/meeting/?type=ietf&limit=50'

    def __init__(self, fetcher: FeedFetcher, cache: Optional[MeetingCache] = None,
                 base_url: str = 'https://datatracker.ietf.org',
                 meetings_api_path: str = MEETINGS_API_PATH,
                 clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        """
        Initialize the selector.

        Args:
            fetcher: FeedFetcher used for the listing and agenda probes
            cache: Shared meeting cache; a private one is created if omitted
            base_url: Datatracker base URL
            meetings_api_path: Path of the meeting listing endpoint
            clock: Returns the current aware datetime
        """
        self.fetcher = fetcher
        self.cache = cache if cache is not None else MeetingCache()
        self.base_url = base_url.rstrip('/')
        self.meetings_url = self.base_url + meetings_api_path
        self.clock = clock

    def detect_current_meeting(self) -> Optional[MeetingMetadata]:
        """
        Detect the current or next IETF meeting.

        Returns:
            The selected meeting, the previously cached one when detection
            fails, or None
        """
        return self.cache.check_and_maybe_refresh(self.clock(), self._select)

    def fetch_meeting_list(self) -> List[MeetingMetadata]:
        """
        Fetch IETF meetings from the listing.

        Returns:
            Parsed meetings; empty on any fetch or format failure
        """
        try:
            listing = self.fetcher.get_json(self.meetings_url)
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error fetching meetings list: {e}")
            return []

        objects = listing.get('objects') if isinstance(listing, dict) else None
        if not isinstance(objects, list):
            logger.error("No 'objects' array in meetings API response")
            return []

        meetings = []
        for data in objects:
            if not isinstance(data, dict):
                continue
            type_tag = data.get('type')
            if not isinstance(type_tag, str) or 'ietf' not in type_tag:
                logger.debug(f"Skipping non-IETF meeting: {data.get('number')}")
                continue
            try:
                meetings.append(meeting_from_json(data, self.base_url))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Failed to parse meeting {data.get('number')}: {e}")

        logger.info(f"Fetched {len(meetings)} IETF meetings")
        return meetings

    def check_agenda_available(self, agenda_url: str) -> bool:
        """True when the agenda parses as an object whose first key is a non-empty array."""
        try:
            agenda = self.fetcher.get_json(agenda_url)
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Agenda check failed for {agenda_url}: {e}")
            return False

        if not isinstance(agenda, dict) or not agenda:
            logger.warning(f"Agenda at {agenda_url}: not a non-empty JSON object")
            return False

        events = agenda[next(iter(agenda))]
        if not isinstance(events, list) or not events:
            logger.warning(f"Agenda at {agenda_url}: first key is not a non-empty array")
            return False
        return True

    def _select(self, now: datetime) -> Optional[MeetingMetadata]:
        meetings = self.fetch_meeting_list()
        if not meetings:
            logger.error("No meetings found in API")
            return None

        selected = self.select_meeting(meetings, now)
        if selected is not None:
            logger.info(
                f"Selected meeting: {selected.name} ({selected.city}), "
                f"agenda={selected.agenda_available}"
            )
        return selected

    def select_meeting(self, meetings: List[MeetingMetadata],
                       now: datetime) -> Optional[MeetingMetadata]:
        """
        Pick a meeting.

        Priority: ongoing with agenda, soonest upcoming with agenda, most
        recent past (agenda or not). Agendas are probed lazily, at most once
        per meeting, so the outcome only depends on each meeting's own probe.
        """
        probes: Dict[int, bool] = {}

        def available(meeting: MeetingMetadata) -> bool:
            if meeting.number not in probes:
                probes[meeting.number] = self.check_agenda_available(meeting.agenda_url)
            return probes[meeting.number]

        ordered = sorted(meetings, key=lambda m: m.start, reverse=True)

        for meeting in ordered:
            if meeting.is_ongoing(now) and available(meeting):
                return replace_availability(meeting, True)

        upcoming = sorted((m for m in ordered if m.start > now), key=lambda m: m.start)
        for meeting in upcoming:
            if available(meeting):
                return replace_availability(meeting, True)

        past = [m for m in ordered if m.end < now]
        if past:
            previous = max(past, key=lambda m: m.end)
            logger.info(f"Using previous meeting as fallback: {previous.name}")
            return replace_availability(previous, available(previous))

        logger.error(f"No suitable meeting found among {len(meetings)} meetings at {now}")
        return None


def replace_availability(meeting: MeetingMetadata, available: bool) -> MeetingMetadata:
    return replace(meeting, agenda_available=available)
