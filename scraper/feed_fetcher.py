"""HTTP access to the datatracker feeds."""
import json
import logging
import time
from typing import Any, Optional

import requests

logger = logging.getLogger(__name__)


class FeedFetcher:
    """Thin wrapper around requests for the meeting listing, agenda and detail feeds."""

    USER_AGENT = 'ietf-agenda-sync/1.0 (gzip)'
    MAX_RETRIES = 3
    BASE_DELAY = 1  # seconds

    def __init__(self, timeout: int = 30, session: Optional[requests.Session] = None):
        """
        Initialize the fetcher.

        Args:
            timeout: HTTP request timeout in seconds (default: 30)
            session: Optional requests session to reuse connections
        """
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            'User-Agent': self.USER_AGENT,
            'Accept-Encoding': 'gzip'
        })

    def head(self, url: str) -> Optional[str]:
        """
        Return the ETag of ``url``.

        Returns:
            The ETag header of a 200 response, or None on any failure
        """
        try:
            response = self.session.head(url, timeout=self.timeout, allow_redirects=True)
        except requests.RequestException as e:
            logger.warning(f"HEAD {url} failed: {e}")
            return None

        if response.status_code != 200:
            logger.warning(f"HEAD {url} returned {response.status_code}")
            return None
        return response.headers.get('ETag')

    def get(self, url: str) -> str:
        """
        Fetch ``url`` with retry logic.

        Returns:
            Response body as text

        Raises:
            requests.RequestException: If all retry attempts fail
        """
        for attempt in range(self.MAX_RETRIES):
            try:
                logger.debug(f"GET {url} (attempt {attempt + 1}/{self.MAX_RETRIES})")
                response = self.session.get(url, timeout=self.timeout)
                response.raise_for_status()
                return response.text

            except requests.RequestException as e:
                if attempt < self.MAX_RETRIES - 1:
                    # Calculate exponential backoff delay
                    delay = self.BASE_DELAY * (2 ** attempt)
                    logger.warning(
                        f"Request to {url} failed (attempt {attempt + 1}/{self.MAX_RETRIES}): "
                        f"{e}. Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"All {self.MAX_RETRIES} attempts to fetch {url} failed. Last error: {e}"
                    )
                    raise

    def get_json(self, url: str) -> Any:
        """
        Fetch and decode a JSON document.

        Raises:
            requests.RequestException: If the request fails
            ValueError: If the body is not JSON
        """
        return json.loads(self.get(url))
