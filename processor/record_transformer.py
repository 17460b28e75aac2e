"""Builds record-store batches from classified agenda events."""
import logging
from typing import Callable, List, Optional, Sequence
from zoneinfo import ZoneInfo

from processor.event_classifier import EventClassifier, join_references
from processor.models import (
    Block,
    EntityType,
    Event,
    PurgeOperation,
    PutOperation,
    Room,
    Session,
    SessionTrack,
    Track,
)
from processor.session_numberer import SessionNumberer

logger = logging.getLogger(__name__)


class RecordTransformer:
    """Turns decoded events into the insert batch and the purge batch of a run."""

    # Purged entity kinds. Tracks and rooms are shared and only ever replaced.
    PURGED_ENTITIES = (EntityType.SESSION, EntityType.BLOCK, EntityType.SESSION_TRACK)

    def __init__(self, tz: ZoneInfo,
                 starred_lookup: Optional[Callable[[str], Optional[bool]]] = None):
        """
        Initialize the transformer.

        Args:
            tz: Conference timezone of the event time strings
            starred_lookup: Read-before-write hook returning a session's stored
                starred flag
        """
        self.tz = tz
        self.starred_lookup = starred_lookup
        self.skipped: List[str] = []

    def transform(self, events: Sequence[Event], version: int) -> List[PutOperation]:
        """
        Build the insert batch for a run.

        Args:
            events: Decoded events, in feed order
            version: Generation version of the run

        Returns:
            Put operations for blocks, tracks, rooms, sessions and session tracks
        """
        numbering = SessionNumberer(self.tz).build(events)
        classifier = EventClassifier(self.tz, version, self.starred_lookup)
        batch = []
        self.skipped = []

        for event in events:
            try:
                classified = classifier.classify(event, numbering)
            except ValueError as e:
                logger.warning(f"Skipping event '{event.title}' ({event.key}): {e}")
                self.skipped.append(event.key)
                continue

            if classified.block is not None:
                batch.append(block_operation(classified.block))
            if classified.track is not None:
                batch.append(track_operation(classified.track))
            if classified.room is not None:
                batch.append(room_operation(classified.room))
            batch.append(session_operation(classified.session))
            if classified.session_track is not None:
                batch.append(session_track_operation(classified.session_track))

        logger.info(
            f"Built {len(batch)} operations from {len(events)} events "
            f"({len(classifier.seen_blocks)} blocks, {len(self.skipped)} skipped)"
        )
        return batch

    def purge(self, version: int) -> List[PurgeOperation]:
        """Build the purge batch removing sessions, blocks and session links of other generations."""
        return [PurgeOperation(entity_type, version) for entity_type in self.PURGED_ENTITIES]


def block_operation(block: Block) -> PutOperation:
    return PutOperation(EntityType.BLOCK, block.block_id, {
        'title': block.title,
        'start_ms': block.start_ms,
        'end_ms': block.end_ms,
        'display_type': block.display_type.value,
        'generation_version': block.generation_version
    })


def track_operation(track: Track) -> PutOperation:
    return PutOperation(EntityType.TRACK, track.track_id, {
        'name': track.name,
        'abstract': track.name,
        'generation_version': track.generation_version
    })


def room_operation(room: Room) -> PutOperation:
    return PutOperation(EntityType.ROOM, room.room_id, {'name': room.name})


def session_operation(session: Session) -> PutOperation:
    attributes = {
        'title': session.title,
        'block_id': session.block_id,
        'url': session.url,
        'starred': session.starred,
        'generation_version': session.generation_version
    }

    # Add optional fields if present
    if session.room_id:
        attributes['room_id'] = session.room_id
    if session.slide_refs:
        attributes['slides'] = join_references(session.slide_refs)
    if session.draft_refs:
        attributes['drafts'] = join_references(session.draft_refs)
    if session.resource_uri:
        attributes['resource_uri'] = session.resource_uri

    return PutOperation(EntityType.SESSION, session.session_id, attributes)


def session_track_operation(session_track: SessionTrack) -> PutOperation:
    record_id = f"{session_track.session_id}#{session_track.track_id}"
    return PutOperation(EntityType.SESSION_TRACK, record_id, {
        'session_id': session_track.session_id,
        'track_id': session_track.track_id,
        'generation_version': session_track.generation_version
    })
