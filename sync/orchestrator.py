"""Sequencing of one agenda sync run."""
import logging
import threading
import time
from enum import Enum
from typing import Callable, Optional

import requests
from botocore.exceptions import ClientError

from processor.agenda_decoder import AgendaDecoder, AgendaError, EmptyAgendaError
from processor.models import EntityType, SyncResult
from processor.record_transformer import RecordTransformer
from scraper.feed_fetcher import FeedFetcher
from scraper.meeting_selector import MeetingSelector
from storage.dynamodb_manager import CommitError, DynamoDBManager

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    IDLE = 'IDLE'
    DETECTING = 'DETECTING'
    FETCHING = 'FETCHING'
    DECODING = 'DECODING'
    CLASSIFYING = 'CLASSIFYING'
    COMMITTING = 'COMMITTING'
    PURGING = 'PURGING'
    DONE = 'DONE'
    FAILED = 'FAILED'


class MeetingNotFoundError(Exception):
    """No meeting could be selected and none was cached."""


# Failures that end a run; anything else is a bug and propagates.
RUN_FAILURES = (
    MeetingNotFoundError, AgendaError, CommitError, requests.RequestException, ClientError
)


def current_millis() -> int:
    return int(time.time() * 1000)


class SyncOrchestrator:
    """
    Runs detection, fetch, decode, classification, commit and purge.

    The insert batch and the purge batch are committed separately. A failure
    before COMMITTING writes nothing; a failure after it leaves the previous
    generation's stale rows in place until the next successful run.
    """

    def __init__(self, selector: MeetingSelector, fetcher: FeedFetcher,
                 store: DynamoDBManager, base_url: str = 'https://datatracker.ietf.org',
                 clock_ms: Callable[[], int] = current_millis,
                 run_lock: Optional[threading.Lock] = None):
        """
        Initialize the orchestrator.

        Args:
            selector: Meeting selector owning the meeting cache
            fetcher: FeedFetcher for the agenda feed
            store: Record store receiving the batches
            base_url: Datatracker base URL
            clock_ms: Returns wall-clock milliseconds, used as generation version
            run_lock: Lock guarding against concurrent runs
        """
        self.selector = selector
        self.fetcher = fetcher
        self.store = store
        self.base_url = base_url
        self.clock_ms = clock_ms
        self.state = SyncState.IDLE
        self._run_lock = run_lock or threading.Lock()

    def invalidate_meeting(self) -> None:
        """Drop the cached meeting so the next run re-detects it."""
        self.selector.cache.invalidate()

    def run(self, force: bool = False) -> SyncResult:
        """
        Execute one sync run.

        A call made while another run is in flight returns immediately with
        ``skipped=True`` and does nothing.

        Args:
            force: Ignore the agenda ETag recorded by the last run

        Returns:
            SyncResult with the final state and statistics
        """
        if not self._run_lock.acquire(blocking=False):
            logger.info("Sync already in progress, ignoring trigger")
            return SyncResult(state=self.state.value, skipped=True)

        version = self.clock_ms()
        result = SyncResult(state=SyncState.IDLE.value, version=version)
        try:
            self._execute(result, version, force)
        except RUN_FAILURES as e:
            logger.error(
                f"Sync run {version} failed during {self.state.value}: {e}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            result.error = str(e)
            result.error_type = type(e).__name__
            result.errors.append(f"{self.state.value}: {e}")
            self._enter(SyncState.FAILED)
        finally:
            result.state = self.state.value
            self._run_lock.release()

        return result

    def _execute(self, result: SyncResult, version: int, force: bool) -> None:
        self._enter(SyncState.DETECTING)
        meeting = self.selector.detect_current_meeting()
        if meeting is None:
            raise MeetingNotFoundError("No current meeting detected")
        result.meeting = meeting.number

        self._enter(SyncState.FETCHING)
        etag = self.fetcher.head(meeting.agenda_url)
        if not force and self._already_synchronized(meeting.agenda_url, etag):
            logger.info(f"Agenda of {meeting.name} unchanged (ETag {etag}), nothing to do")
            result.skipped = True
            self._enter(SyncState.DONE)
            return
        payload = self.fetcher.get(meeting.agenda_url)

        self._enter(SyncState.DECODING)
        decoder = AgendaDecoder(meeting.timezone, self.base_url, meeting.number)
        events = decoder.decode(payload)
        if not events:
            raise EmptyAgendaError(f"No events in agenda of {meeting.name}")
        result.events_decoded = len(events)

        self._enter(SyncState.CLASSIFYING)
        transformer = RecordTransformer(meeting.timezone, self.store.get_session_starred)
        batch = transformer.transform(events, version)
        purge_batch = transformer.purge(version)

        self._enter(SyncState.COMMITTING)
        result.records_written = self.store.apply_batch(batch)

        self._enter(SyncState.PURGING)
        result.records_purged = self.store.apply_batch(purge_batch)
        self.store.notify_change(EntityType.BLOCK)

        self.store.save_sync_state(meeting.agenda_url, etag, version)
        self._enter(SyncState.DONE)
        logger.info(
            f"Sync run {version} for {meeting.name} complete: "
            f"{result.records_written} written, {result.records_purged} purged"
        )

    def _already_synchronized(self, url: str, etag: Optional[str]) -> bool:
        if not etag:
            return False
        state = self.store.get_sync_state()
        return bool(state) and state.get('url') == url and state.get('etag') == etag

    def _enter(self, state: SyncState) -> None:
        logger.debug(f"Sync state {self.state.value} -> {state.value}")
        self.state = state
