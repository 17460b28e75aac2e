"""Decoder for the datatracker agenda feed."""
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional, Union
from zoneinfo import ZoneInfo

from processor.identifiers import format_local_time
from processor.models import Event

logger = logging.getLogger(__name__)


class AgendaError(Exception):
    """Base class for agenda payloads that cannot be synchronized."""


class DecodeError(AgendaError):
    """The payload is not a recognizable agenda."""


class EmptyAgendaError(AgendaError):
    """The payload decoded cleanly but holds no usable events."""


class UnscheduledEventError(Exception):
    """The record exists in the feed but is not (or no longer) scheduled."""


class AgendaDecoder:
    """Turns an agenda payload into an ordered list of Event records."""

    UNSCHEDULED_STATUSES = frozenset({'canceled', 'resched', 'deleted'})
    FEED_TIME_FORMAT = '%Y-%m-%dT%H:%M:%SZ'

    def __init__(self, tz: ZoneInfo, base_url: str = 'https://datatracker.ietf.org',
                 meeting_number: Optional[int] = None):
        """
        Initialize the decoder.

        Args:
            tz: Conference timezone used to render local times
            base_url: Datatracker base URL for constructed material links
            meeting_number: Meeting number, used when a presentation has no URL
        """
        self.tz = tz
        self.base_url = base_url.rstrip('/')
        self.meeting_number = meeting_number

    def decode(self, payload: Union[str, bytes, dict]) -> List[Event]:
        """
        Decode an agenda payload.

        The feed is a JSON object whose first key holds the event array;
        the key name itself is not meaningful.

        Args:
            payload: Raw feed body or an already parsed JSON object

        Returns:
            Events in feed order; unscheduled or malformed entries are skipped

        Raises:
            DecodeError: If the payload is not an object with an array first key
        """
        items = self._event_array(payload)
        events = []

        for index, item in enumerate(items):
            try:
                events.append(self._decode_event(item))
            except UnscheduledEventError as e:
                logger.debug(f"Skipping agenda entry {index}: {e}")
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Failed to decode agenda entry {index}: {e}")

        logger.info(f"Decoded {len(events)} events out of {len(items)} agenda entries")
        return events

    def _event_array(self, payload: Union[str, bytes, dict]) -> List[Any]:
        if isinstance(payload, (str, bytes)):
            try:
                payload = json.loads(payload)
            except ValueError as e:
                raise DecodeError(f"Agenda payload is not JSON: {e}") from e

        if not isinstance(payload, dict):
            raise DecodeError(
                f"Agenda payload is a {type(payload).__name__}, expected an object"
            )
        if not payload:
            raise DecodeError("Agenda payload is an empty object")

        first_key = next(iter(payload))
        items = payload[first_key]
        if not isinstance(items, list):
            raise DecodeError(f"Agenda key '{first_key}' does not hold an array")
        return items

    def _decode_event(self, item: dict) -> Event:
        if not isinstance(item, dict):
            raise UnscheduledEventError("entry is not an object")

        title = _text(item, 'name')
        if not title:
            raise UnscheduledEventError("missing title")

        # Past meetings often carry no status at all; accept them.
        status = item.get('status') or ''
        if status in self.UNSCHEDULED_STATUSES:
            raise UnscheduledEventError(f"'{title}' has status {status}")

        start = datetime.strptime(item['start'], self.FEED_TIME_FORMAT)
        start = start.replace(tzinfo=timezone.utc)
        end = start + self._parse_duration(item['duration'])

        group_info = item.get('group') or {}
        if not isinstance(group_info, dict):
            raise ValueError(f"group of '{title}' is not an object")
        slides = tuple(self._parse_presentations(item.get('presentations') or []))
        drafts = tuple(parse_draft_materials(item.get('materials') or [], self.base_url))

        return Event(
            day=start.astimezone(self.tz).strftime('%Y-%m-%d'),
            start_raw=format_local_time(start, self.tz),
            end_raw=format_local_time(end, self.tz),
            title=title,
            detail_url=_text(item, 'agenda'),
            location=_text(item, 'location'),
            group=_text(group_info, 'acronym'),
            area=_text(group_info, 'parent'),
            session_type_label=_text(item, 'objtype'),
            key=str(item['session_id']),
            slides=slides,
            drafts=drafts,
            resource_uri=item.get('session_res_uri')
        )

    def _parse_duration(self, duration: str) -> timedelta:
        """Parse an ``HH:MM:SS`` duration."""
        if not isinstance(duration, str):
            raise ValueError(f"duration is a {type(duration).__name__}, expected HH:MM:SS")
        hours, minutes, seconds = (int(part) for part in duration.split(':'))
        return timedelta(hours=hours, minutes=minutes, seconds=seconds)

    def _parse_presentations(self, presentations: list) -> List[tuple]:
        refs = []
        for index, presentation in enumerate(presentations):
            if not isinstance(presentation, dict):
                continue
            title = presentation.get('title') or presentation.get('name') or \
                f"Presentation {index + 1}"
            url = presentation.get('url')
            if not url:
                name = presentation.get('name')
                if not name or self.meeting_number is None:
                    continue
                url = f"{self.base_url}/meeting/{self.meeting_number}/materials/{name}"
                logger.debug(f"No URL in presentation, constructed: {url}")
            refs.append((title, url))
        return refs


def _text(data: dict, key: str) -> str:
    """Stripped string field; missing or null becomes an empty string."""
    value = data.get(key)
    if value is None:
        return ''
    if not isinstance(value, str):
        raise ValueError(f"{key} is a {type(value).__name__}, expected a string")
    return value.strip()

def parse_draft_materials(materials: list, base_url: str = 'https://datatracker.ietf.org') -> List[tuple]:
    """
    Extract Internet-draft references from a materials list.

    Materials are API paths such as ``/api/v1/doc/document/draft-foo-bar/``.

    Returns:
        (draft-name, document URL) pairs in materials order
    """
    base_url = base_url.rstrip('/')
    drafts = []
    for material in materials:
        if not isinstance(material, str) or '/api/' not in material:
            continue
        for part in material.split('/'):
            if part.startswith('draft-'):
                drafts.append((part, f"{base_url}/doc/{part}/"))
                break
    return drafts
