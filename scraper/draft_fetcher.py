"""On-demand Internet-draft lookup for a stored session."""
import logging
from typing import List

import requests
from botocore.exceptions import ClientError

from processor.agenda_decoder import parse_draft_materials
from processor.event_classifier import join_references, split_references
from scraper.feed_fetcher import FeedFetcher
from storage.dynamodb_manager import DynamoDBManager

logger = logging.getLogger(__name__)


class SessionDraftFetcher:
    """Fills in a session's draft references from its datatracker detail document."""

    def __init__(self, fetcher: FeedFetcher, store: DynamoDBManager,
                 base_url: str = 'https://datatracker.ietf.org'):
        self.fetcher = fetcher
        self.store = store
        self.base_url = base_url.rstrip('/')

    def fetch_drafts(self, session_id: str) -> List[tuple]:
        """
        Return the draft references of a session, fetching them if needed.

        Failures are logged and yield an empty list; slides and the rest of
        the session are unaffected.

        Args:
            session_id: Stored session identifier

        Returns:
            (draft-name, url) pairs
        """
        try:
            session = self.store.get_session(session_id)
        except ClientError as e:
            logger.warning(f"Could not read session {session_id}: {e}")
            return []

        if session is None:
            logger.warning(f"Session {session_id} not found")
            return []

        existing = split_references(session.get('drafts'))
        if existing:
            return existing

        resource_uri = session.get('resource_uri')
        if not resource_uri:
            return []

        detail_url = f"{self.base_url}{resource_uri}?format=json"
        try:
            detail = self.fetcher.get_json(detail_url)
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Failed to fetch drafts for session {session_id}: {e}")
            return []

        materials = detail.get('materials') if isinstance(detail, dict) else None
        drafts = parse_draft_materials(materials or [], self.base_url)
        if not drafts:
            return []

        try:
            self.store.update_session_drafts(session_id, join_references(drafts))
        except ClientError as e:
            logger.warning(f"Could not store drafts for session {session_id}: {e}")

        logger.info(f"Fetched {len(drafts)} drafts for session {session_id}")
        return drafts
