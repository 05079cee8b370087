"""
The polling loop.

Fetches every subscribed feed, filters new items through the cursor
store, renders them and hands them to the dispatcher.
"""

import asyncio
import logging
from typing import Any

from feed_relay.cursors import CursorStore
from feed_relay.dispatcher import Dispatcher
from feed_relay.filters import ItemFilter
from feed_relay.models import Notification, Subscription
from feed_relay.notifier import FeedFetcher
from feed_relay.registry import SubscriptionRegistry
from feed_relay.renderer import render_item

logger = logging.getLogger(__name__)

# Seconds between the end of one pass and the start of the next
DEFAULT_INTERVAL = 10.0


class Poller:
    """
    Scheduling loop over all subscribed feeds.

    A pass fetches feeds one after the other and waits for every delivery
    it started before returning. The loop then sleeps ``interval`` seconds,
    so passes never overlap.
    """

    def __init__(
        self,
        registry: SubscriptionRegistry,
        cursors: CursorStore,
        fetcher: FeedFetcher,
        dispatcher: Dispatcher,
        interval: float = DEFAULT_INTERVAL,
    ):
        """
        Initialize the poller.

        Parameters
        ----------
        registry : SubscriptionRegistry
            Source of feed keys and their subscribers.
        cursors : CursorStore
            Per-feed delivery cursors.
        fetcher : FeedFetcher
            Fetches feed items.
        dispatcher : Dispatcher
            Delivers rendered notifications.
        interval : float
            Delay between passes in seconds.
        """
        self.registry = registry
        self.cursors = cursors
        self.fetcher = fetcher
        self.dispatcher = dispatcher
        self.interval = interval
        self.item_filter = ItemFilter(cursors)

    async def run(self) -> None:
        """Run passes forever until cancelled."""
        logger.info("Poller started (interval: %ss)", self.interval)
        try:
            while True:
                try:
                    await self.run_pass()
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.exception("Unexpected error during polling pass: %s", e)

                await asyncio.sleep(self.interval)
        finally:
            logger.info("Poller stopped")

    async def run_pass(self) -> int:
        """
        Poll every feed that has subscribers once.

        Feeds are fetched one after the other. Each feed with new items gets
        a single delivery task that sends them oldest first, so delivery of
        one feed runs alongside the fetching and delivery of the others.

        Returns
        -------
        int
            Number of successful deliveries during the pass.
        """
        sends: list[asyncio.Task[int]] = []
        # Chats resolved during this pass, by channel id
        channels: dict[int, Any] = {}
        polled = 0

        try:
            for feed_key, subscriptions in self.registry.snapshot():
                if not subscriptions:
                    continue
                polled += 1
                send = await self._poll_feed(feed_key, subscriptions, channels)
                if send is not None:
                    sends.append(send)

            results = await asyncio.gather(*sends, return_exceptions=True)
        except asyncio.CancelledError:
            for task in sends:
                task.cancel()
            raise

        delivered = 0
        for result in results:
            if isinstance(result, BaseException):
                logger.error("Dispatch failed: %s", result)
            else:
                delivered += result

        logger.info(
            "Polled %d feed(s): %d with new items, %d delivered",
            polled,
            len(sends),
            delivered,
        )
        return delivered

    async def _poll_feed(
        self,
        feed_key: str,
        subscriptions: frozenset[Subscription],
        channels: dict[int, Any],
    ) -> asyncio.Task[int] | None:
        """
        Fetch one feed and start delivering its new items.

        Failures are contained here: a feed that cannot be fetched is
        skipped for this pass and its cursor is left untouched.

        Returns
        -------
        asyncio.Task[int] | None
            Task delivering the feed's new items in order, or None if
            there is nothing to send.
        """
        logger.debug("Checking feed: %s", feed_key)

        try:
            items = await self.fetcher.fetch_feed(feed_key)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Failed to fetch feed '%s': %s", feed_key, e)
            return None

        notifications = []
        for item in self.item_filter.new_items(feed_key, items):
            try:
                notification = render_item(item, feed_key)
            except Exception as e:
                logger.error(
                    "Failed to render item '%s' from '%s': %s",
                    item.title[:50],
                    feed_key,
                    e,
                )
                continue

            logger.info(
                "New item in '%s': %s (%d subscriber(s))",
                feed_key,
                notification.title[:50],
                len(subscriptions),
            )
            notifications.append(notification)

        if not notifications:
            return None
        return asyncio.create_task(self._send_in_order(subscriptions, notifications, channels))

    async def _send_in_order(
        self,
        subscriptions: frozenset[Subscription],
        notifications: list[Notification],
        channels: dict[int, Any],
    ) -> int:
        """Dispatch a feed's notifications one at a time, oldest first."""
        delivered = 0
        for notification in notifications:
            try:
                delivered += await self.dispatcher.dispatch(
                    subscriptions, notification, channels=channels
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Dispatch of '%s' failed: %s", notification.title[:50], e)
        return delivered
