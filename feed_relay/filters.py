"""
Cursor-based filtering of fetched feed items.

Decides which items of a fetch are new and keeps the per-feed cursor
in step with what has been handed out for delivery.
"""

import logging
from collections.abc import Iterable, Iterator
from datetime import datetime, timezone

from feed_relay.cursors import CursorStore
from feed_relay.models import FeedItem

logger = logging.getLogger(__name__)


def order_items(items: Iterable[FeedItem]) -> list[tuple[datetime, FeedItem]]:
    """
    Drop undated items and sort the rest oldest first.

    Parameters
    ----------
    items : Iterable[FeedItem]
        Items as returned by the feed, in feed order.

    Returns
    -------
    list[tuple[datetime, FeedItem]]
        ``(timestamp, item)`` pairs in ascending timestamp order. The sort
        is stable, so items sharing a timestamp keep their feed order.
    """
    dated = []
    for item in items:
        timestamp = item.timestamp
        if timestamp is None:
            logger.debug("Dropping undated item '%s'", item.title[:50])
            continue
        dated.append((timestamp, item))
    dated.sort(key=lambda pair: pair[0])
    return dated


class ItemFilter:
    """
    Selects new items of a feed using its cursor.

    The first fetch of a feed only seeds the cursor; nothing is delivered,
    so a freshly subscribed feed does not flood its channels with backlog.
    """

    def __init__(self, cursors: CursorStore):
        """
        Initialize the filter.

        Parameters
        ----------
        cursors : CursorStore
            Shared cursor store read and advanced by the filter.
        """
        self.cursors = cursors

    def new_items(
        self,
        feed_key: str,
        items: Iterable[FeedItem],
        now: datetime | None = None,
    ) -> Iterator[FeedItem]:
        """
        Return the items of a fetch that have not been delivered yet.

        The first-poll check runs immediately. For later polls the returned
        iterator advances the cursor to each item's timestamp right before
        yielding it, so an interrupted pass never re-delivers what it
        already handed out.

        Parameters
        ----------
        feed_key : str
            Normalized feed URL.
        items : Iterable[FeedItem]
            Items of the latest fetch.
        now : datetime | None
            Cursor value used when a first fetch has no dated items.
            Defaults to the current UTC time.

        Returns
        -------
        Iterator[FeedItem]
            New items, oldest first.
        """
        ordered = order_items(items)
        cursor = self.cursors.get(feed_key)

        if cursor is None:
            if ordered:
                initial = ordered[-1][0]
            else:
                initial = now or datetime.now(timezone.utc)
            self.cursors.initialize(feed_key, initial)
            logger.info(
                "New feed detected: skipping %d existing item%s for %s",
                len(ordered),
                "" if len(ordered) == 1 else "s",
                feed_key,
            )
            return iter(())

        return self._advance(feed_key, ordered, cursor)

    def _advance(
        self,
        feed_key: str,
        ordered: list[tuple[datetime, FeedItem]],
        cursor: datetime,
    ) -> Iterator[FeedItem]:
        """
        Yield items newer than ``cursor``, advancing the stored cursor.

        Comparison is against the cursor read at the start of the pass, so
        distinct items sharing one timestamp are all delivered.
        """
        for timestamp, item in ordered:
            if timestamp <= cursor:
                continue
            self.cursors.advance(feed_key, timestamp)
            yield item
