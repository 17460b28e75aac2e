"""AWS Lambda handler for the IETF agenda sync."""
import json
import logging
import os
import threading
import time
from typing import Dict, Any

from scraper.draft_fetcher import SessionDraftFetcher
from scraper.feed_fetcher import FeedFetcher
from scraper.meeting_selector import MeetingCache, MeetingSelector
from storage.dynamodb_manager import DynamoDBManager
from sync.orchestrator import SyncOrchestrator

# Survive across warm invocations of the same container.
MEETING_CACHE = MeetingCache()
SYNC_LOCK = threading.Lock()


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {'statusCode': status_code, 'body': json.dumps(body)}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler.

    A scheduled EventBridge payload runs a sync. ``{"force": true}`` ignores
    the recorded agenda ETag; ``{"action": "fetch_drafts", "session_id": ...}``
    looks up the drafts of one session.

    Args:
        event: EventBridge or direct invocation payload
        context: Lambda context object

    Returns:
        Response dict with statusCode and a JSON body
    """
    # Read configuration from environment variables
    table_name = os.environ.get('TABLE_NAME', 'ietf-agenda')
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    timeout_seconds = int(os.environ.get('TIMEOUT_SECONDS', '30'))
    base_url = os.environ.get('DATATRACKER_URL', 'https://datatracker.ietf.org')
    meetings_api_path = os.environ.get(
        'MEETINGS_API_PATH', MeetingSelector.MEETINGS_API_PATH
    )

    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    event = event or {}
    start_time = time.time()

    try:
        fetcher = FeedFetcher(timeout=timeout_seconds)
        store = DynamoDBManager(table_name=table_name)

        if event.get('action') == 'fetch_drafts':
            session_id = event.get('session_id')
            if not session_id:
                return _response(400, {'message': 'session_id is required'})
            drafts = SessionDraftFetcher(fetcher, store, base_url).fetch_drafts(session_id)
            return _response(200, {
                'session_id': session_id,
                'drafts': [{'name': name, 'url': url} for name, url in drafts]
            })

        logger.info(
            "Sync started",
            extra={'table_name': table_name, 'timeout_seconds': timeout_seconds}
        )
        selector = MeetingSelector(
            fetcher,
            cache=MEETING_CACHE,
            base_url=base_url,
            meetings_api_path=meetings_api_path
        )
        orchestrator = SyncOrchestrator(
            selector, fetcher, store, base_url=base_url, run_lock=SYNC_LOCK
        )
        result = orchestrator.run(force=bool(event.get('force')))
        duration = time.time() - start_time

        if not result.succeeded:
            return _response(500, {
                'message': 'Sync failed',
                'state': result.state,
                'error': result.error,
                'error_type': result.error_type,
                'note': 'Previously synchronized agenda remains in DynamoDB',
                'duration_seconds': round(duration, 2)
            })

        logger.info(
            "Sync completed",
            extra={
                'duration_seconds': round(duration, 2),
                'records_written': result.records_written,
                'records_purged': result.records_purged
            }
        )

        return _response(200, {
            'message': 'Sync skipped' if result.skipped else 'Sync completed successfully',
            'statistics': {
                'meeting': result.meeting,
                'version': result.version,
                'events_decoded': result.events_decoded,
                'records_written': result.records_written,
                'records_purged': result.records_purged,
                'skipped': result.skipped,
                'duration_seconds': round(duration, 2)
            }
        })

    except Exception as e:
        duration = time.time() - start_time

        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )

        return _response(500, {
            'message': 'Sync failed',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })
