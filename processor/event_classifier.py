"""Classification of agenda events into calendar blocks and sessions."""
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Set
from zoneinfo import ZoneInfo

from processor.identifiers import (
    generate_block_id,
    generate_room_id,
    generate_session_id,
    generate_track_id,
    parse_local_time,
)
from processor.models import (
    Block,
    ClassifiedEvent,
    DisplayType,
    Event,
    Room,
    Session,
    SessionTrack,
    Track,
)
from processor.session_numberer import NumberingTable

logger = logging.getLogger(__name__)

BLOCK_TITLE_REGISTRATION = '\n\n' + '\n'.join('REGISTRATION')

# Groups whose office hours are staff desks rather than WG side meetings.
STAFF_GROUPS = frozenset({'iesg', 'iab', 'irtf', 'iana', 'rpc', 'llc', 'secr'})

SOCIAL_KEYWORDS = (
    'reception', 'social', 'dinner', 'lunch', 'happy hour', 'game night',
    'networking',
)
PROGRAM_KEYWORDS = (
    'education', 'outreach', 'tutorial', 'newcomer', 'new participant', 'tools',
    'chairs', 'forum', 'program', 'series', 'sprint', 'hotrfc', 'lightning talk',
    'office hours',
)


@dataclass(frozen=True)
class EventContext:
    """An event as seen by the classification rules."""
    event: Event
    start_ms: int
    numbering: NumberingTable

    @property
    def title(self) -> str:
        return self.event.title.lower()

    @property
    def type_label(self) -> str:
        return self.event.session_type_label.lower()


@dataclass(frozen=True)
class Classification:
    title: str
    display_type: DisplayType


@dataclass(frozen=True)
class ClassificationRule:
    """One step of the cascade: ``classify`` runs only when ``matches`` holds."""
    name: str
    matches: Callable[[EventContext], bool]
    classify: Callable[[EventContext], Classification]


def _contains_any(text: str, keywords) -> bool:
    return any(keyword in text for keyword in keywords)


def _keep_title(display_type: DisplayType) -> Callable[[EventContext], Classification]:
    return lambda ctx: Classification(ctx.event.title, display_type)


def _classify_hackathon(ctx: EventContext) -> Classification:
    # Results/presentations sit beside the main hackathon block.
    if _contains_any(ctx.title, ('results', 'presentations')):
        return Classification(ctx.event.title, DisplayType.OFFICE_HOURS)
    return Classification(ctx.event.title, DisplayType.HACKATHON)


def _is_staff_office_hours(ctx: EventContext) -> bool:
    if 'office hours' not in ctx.title:
        return False
    return (ctx.event.group.lower() in STAFF_GROUPS
            or _contains_any(ctx.title, ('coordinator', 'liaison')))


def _classify_office_hours(ctx: EventContext) -> Classification:
    if 'ad office hours' in ctx.title:
        return Classification(ctx.event.title, DisplayType.NOC_HELPDESK)
    return Classification(ctx.event.title, DisplayType.OFFICE_HOURS)


def _classify_session_slot(ctx: EventContext) -> Classification:
    label = ctx.numbering.label_for(ctx.start_ms)
    if label is not None:
        return Classification(label, DisplayType.SESSION)

    # Special event occupying a session-typed slot.
    if 'iepg' in ctx.title:
        return Classification(ctx.event.title, DisplayType.NOC_HELPDESK)
    if _contains_any(ctx.title, SOCIAL_KEYWORDS):
        return Classification(ctx.event.title, DisplayType.FOOD)
    if _contains_any(ctx.title, PROGRAM_KEYWORDS):
        return Classification(ctx.event.title, DisplayType.OFFICE_HOURS)
    return Classification(ctx.event.title, DisplayType.SESSION)


def _classify_fallback(ctx: EventContext) -> Classification:
    label = ctx.event.session_type_label
    return Classification(label if label.strip() else ctx.event.title, DisplayType.SESSION)


# Evaluated top to bottom, first match wins.
CLASSIFICATION_RULES = (
    ClassificationRule('break', lambda ctx: 'break' in ctx.title,
                       _keep_title(DisplayType.FOOD)),
    ClassificationRule('plenary', lambda ctx: 'plenary' in ctx.title,
                       _keep_title(DisplayType.FOOD)),
    ClassificationRule('hackathon', lambda ctx: 'hackathon' in ctx.title,
                       _classify_hackathon),
    ClassificationRule('noc-helpdesk',
                       lambda ctx: _contains_any(ctx.title, ('noc', 'helpdesk', 'help desk')),
                       _keep_title(DisplayType.NOC_HELPDESK)),
    ClassificationRule('staff-office-hours', _is_staff_office_hours,
                       _classify_office_hours),
    ClassificationRule('registration',
                       lambda ctx: 'registration' in ctx.type_label or 'registration' in ctx.title,
                       lambda ctx: Classification(BLOCK_TITLE_REGISTRATION, DisplayType.OFFICE_HOURS)),
    ClassificationRule('untyped', lambda ctx: ctx.type_label == 'none',
                       lambda ctx: Classification('...', DisplayType.SESSION)),
    ClassificationRule('session-slot', lambda ctx: 'session' in ctx.type_label,
                       _classify_session_slot),
    ClassificationRule('fallback', lambda ctx: True, _classify_fallback),
)


def classify_block(ctx: EventContext, rules=CLASSIFICATION_RULES) -> Classification:
    """Run the cascade for one event and return the first matching classification."""
    for rule in rules:
        if rule.matches(ctx):
            logger.debug(f"Event '{ctx.event.title}' matched rule {rule.name}")
            return rule.classify(ctx)
    raise ValueError(f"No classification rule matched '{ctx.event.title}'")


def compose_session_title(event: Event) -> str:
    """Prefix the event title with its area and group, when present."""
    parts = [part for part in (event.area, event.group) if part]
    return ' - '.join(parts + [event.title])


def join_references(refs) -> str:
    return EventClassifier.ENTRY_SEPARATOR.join(
        f"{title}{EventClassifier.FIELD_SEPARATOR}{url}" for title, url in refs
    )


def split_references(value: Optional[str]) -> list:
    if not value:
        return []
    refs = []
    for entry in value.split(EventClassifier.ENTRY_SEPARATOR):
        title, _, url = entry.partition(EventClassifier.FIELD_SEPARATOR)
        refs.append((title, url))
    return refs


class EventClassifier:
    """Maps events to blocks, sessions, tracks and rooms for one sync run."""

    ENTRY_SEPARATOR = '::'
    FIELD_SEPARATOR = '|||'

    def __init__(self, tz: ZoneInfo, version: int,
                 starred_lookup: Optional[Callable[[str], Optional[bool]]] = None):
        """
        Initialize the classifier.

        Args:
            tz: Conference timezone of the event time strings
            version: Generation version stamped on every record
            starred_lookup: Returns the stored starred flag of a session id,
                or None when the session is not stored yet
        """
        self.tz = tz
        self.version = version
        self.starred_lookup = starred_lookup
        self.seen_blocks: Set[str] = set()

    def classify(self, event: Event, numbering: NumberingTable) -> ClassifiedEvent:
        """
        Classify one event.

        Raises:
            ValueError: If the event's time strings cannot be parsed
        """
        start_ms = parse_local_time(event.start_raw, self.tz)
        end_ms = parse_local_time(event.end_raw, self.tz)
        block_id = generate_block_id(start_ms, end_ms)

        block = None
        if block_id in self.seen_blocks:
            logger.debug(
                f"Block {block_id} already produced, dropping block for '{event.title}'"
            )
        else:
            self.seen_blocks.add(block_id)
            classification = classify_block(EventContext(event, start_ms, numbering))
            block = Block(
                block_id=block_id,
                title=classification.title,
                start_ms=start_ms,
                end_ms=end_ms,
                display_type=classification.display_type,
                generation_version=self.version
            )

        session = self._build_session(event, block_id)

        track = None
        session_track = None
        if event.area and event.group:
            track_id = generate_track_id(event.area, event.group)
            track = Track(
                track_id=track_id,
                name=f"{event.area}-{event.group}",
                generation_version=self.version
            )
            session_track = SessionTrack(
                session_id=session.session_id, track_id=track_id,
                generation_version=self.version
            )

        room = None
        if event.location:
            room = Room(room_id=session.room_id, name=event.location)

        return ClassifiedEvent(
            block=block,
            session=session,
            track=track,
            room=room,
            session_track=session_track
        )

    def _build_session(self, event: Event, block_id: str) -> Session:
        session_id = generate_session_id(event.key)

        starred = False
        if self.starred_lookup is not None:
            stored = self.starred_lookup(session_id)
            if stored is not None:
                starred = stored

        return Session(
            session_id=session_id,
            title=compose_session_title(event),
            block_id=block_id,
            room_id=generate_room_id(event.location) if event.location else None,
            url=event.detail_url,
            slide_refs=list(event.slides),
            draft_refs=list(event.drafts),
            starred=starred,
            resource_uri=event.resource_uri,
            generation_version=self.version
        )
