"""Data models for agenda synchronization."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo


# A reference is a (title, url) pair.
Reference = Tuple[str, str]


class DisplayType(str, Enum):
    """Display category of a block, used to pick its calendar column."""
    FOOD = 'food'
    SESSION = 'session'
    OFFICE_HOURS = 'officehours'
    NOC_HELPDESK = 'nocHelpdesk'
    HACKATHON = 'hackathon'
    UNKNOWN = 'unknown'


class EntityType(str, Enum):
    """Record kinds kept in the record store."""
    BLOCK = 'block'
    SESSION = 'session'
    TRACK = 'track'
    ROOM = 'room'
    SESSION_TRACK = 'session_track'
    SYNC_STATE = 'sync_state'


@dataclass(frozen=True)
class Event:
    """Decoded agenda feed record."""
    day: str
    start_raw: str
    end_raw: str
    title: str
    detail_url: str
    location: str
    group: str
    area: str
    session_type_label: str
    key: str
    slides: Tuple[Reference, ...] = ()
    drafts: Tuple[Reference, ...] = ()
    resource_uri: Optional[str] = None


@dataclass(frozen=True)
class MeetingMetadata:
    """A meeting from the datatracker listing."""
    number: int
    name: str
    city: str
    country: str
    timezone: ZoneInfo
    start: datetime
    end: datetime
    agenda_url: str
    agenda_available: bool = False

    def is_ongoing(self, now: datetime) -> bool:
        return self.start <= now <= self.end


@dataclass
class Block:
    """A display-classified time slot."""
    block_id: str
    title: str
    start_ms: int
    end_ms: int
    display_type: DisplayType
    generation_version: int


@dataclass
class Session:
    """A schedulable meeting tied to a block, a room and tracks."""
    session_id: str
    title: str
    block_id: str
    room_id: Optional[str]
    url: str
    slide_refs: List[Reference] = field(default_factory=list)
    draft_refs: List[Reference] = field(default_factory=list)
    starred: bool = False
    resource_uri: Optional[str] = None
    generation_version: int = 0


@dataclass
class Track:
    track_id: str
    name: str
    generation_version: int


@dataclass
class Room:
    room_id: str
    name: str


@dataclass
class SessionTrack:
    session_id: str
    track_id: str
    generation_version: int = 0


@dataclass
class ClassifiedEvent:
    """Everything one event contributes to a sync batch.

    ``block`` is None when an earlier event of the same run already
    produced the block for this time range.
    """
    block: Optional[Block]
    session: Session
    track: Optional[Track] = None
    room: Optional[Room] = None
    session_track: Optional[SessionTrack] = None


@dataclass(frozen=True)
class PutOperation:
    """Insert or replace one record."""
    entity_type: EntityType
    record_id: str
    attributes: Dict[str, Any]


@dataclass(frozen=True)
class PurgeOperation:
    """Delete every record of a kind not stamped with ``version``."""
    entity_type: EntityType
    version: int


@dataclass
class SyncResult:
    """Result of a sync run."""
    state: str
    version: Optional[int] = None
    meeting: Optional[int] = None
    events_decoded: int = 0
    records_written: int = 0
    records_purged: int = 0
    skipped: bool = False
    error: Optional[str] = None
    error_type: Optional[str] = None
    errors: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.error is None
