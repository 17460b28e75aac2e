"""Record identifiers and conference-local time helpers."""
import re
from datetime import datetime
from zoneinfo import ZoneInfo

LOCAL_TIME_FORMAT = '%Y-%m-%d %H:%M:00'

_SANITIZE_PATTERN = re.compile(r'[^a-z0-9-_]')


def sanitize_id(value: str) -> str:
    """Lower-case ``value`` and strip everything that is not [a-z0-9-_]."""
    return _SANITIZE_PATTERN.sub('', value.lower())


def generate_block_id(start_ms: int, end_ms: int) -> str:
    return sanitize_id(f"{start_ms}-{end_ms}")


def generate_session_id(key: str) -> str:
    return sanitize_id(key)


def generate_track_id(area: str, group: str) -> str:
    return sanitize_id(area + group)


def generate_room_id(location: str) -> str:
    return sanitize_id(location)


def format_local_time(moment: datetime, tz: ZoneInfo) -> str:
    """Render an aware datetime as a conference-local time string."""
    return moment.astimezone(tz).strftime(LOCAL_TIME_FORMAT)


def parse_local_time(raw: str, tz: ZoneInfo) -> int:
    """
    Parse a conference-local time string into epoch milliseconds.

    Raises:
        ValueError: If ``raw`` does not match LOCAL_TIME_FORMAT
    """
    moment = datetime.strptime(raw.strip(), LOCAL_TIME_FORMAT).replace(tzinfo=tz)
    return int(moment.timestamp() * 1000)


def to_local(epoch_ms: int, tz: ZoneInfo) -> datetime:
    return datetime.fromtimestamp(epoch_ms / 1000, tz=tz)
