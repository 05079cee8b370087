"""
Per-feed delivery cursors.

Tracks the timestamp of the most recently delivered item of each feed.
"""

import logging
import threading
from datetime import datetime

logger = logging.getLogger(__name__)


class CursorStore:
    """
    Thread-safe mapping from feed key to last delivered timestamp.

    Cursors only move forward: ``advance`` ignores older timestamps.
    A missing entry means the feed has never been polled.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cursors: dict[str, datetime] = {}

    def get(self, feed_key: str) -> datetime | None:
        """
        Return the cursor of a feed.

        Parameters
        ----------
        feed_key : str
            Normalized feed URL.

        Returns
        -------
        datetime | None
            Last delivered timestamp, or None if never polled.
        """
        with self._lock:
            return self._cursors.get(feed_key)

    def initialize(self, feed_key: str, timestamp: datetime) -> datetime:
        """
        Set the cursor of a feed if it has none yet.

        Parameters
        ----------
        feed_key : str
            Normalized feed URL.
        timestamp : datetime
            Initial cursor value.

        Returns
        -------
        datetime
            The cursor value now in effect.
        """
        with self._lock:
            current = self._cursors.setdefault(feed_key, timestamp)
        if current is timestamp:
            logger.debug("Initialized cursor for %s at %s", feed_key, timestamp.isoformat())
        return current

    def advance(self, feed_key: str, timestamp: datetime) -> bool:
        """
        Move the cursor of a feed forward.

        Parameters
        ----------
        feed_key : str
            Normalized feed URL.
        timestamp : datetime
            Timestamp of the item about to be delivered.

        Returns
        -------
        bool
            True if the cursor moved, False if ``timestamp`` is not newer.
        """
        with self._lock:
            current = self._cursors.get(feed_key)
            if current is not None and timestamp <= current:
                return False
            self._cursors[feed_key] = timestamp
            return True

    def __contains__(self, feed_key: object) -> bool:
        with self._lock:
            return feed_key in self._cursors

    def __len__(self) -> int:
        with self._lock:
            return len(self._cursors)
