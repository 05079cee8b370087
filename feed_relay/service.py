"""
Feed subscription service.

Owns the subscription registry, the cursor store and the polling task,
and exposes the subscription management operations used by the
command layer.
"""

import asyncio
import logging

from feed_relay.cursors import CursorStore
from feed_relay.dispatcher import Dispatcher
from feed_relay.models import Subscription, normalize_url
from feed_relay.notifier import FeedFetcher, SubscriptionBackend
from feed_relay.poller import DEFAULT_INTERVAL, Poller
from feed_relay.registry import SubscriptionRegistry
from feed_relay.storage import DEFAULT_MAX_PER_GROUP, SubscriptionError

logger = logging.getLogger(__name__)


class FeedService:
    """
    Feed subscriptions and their background polling.

    Nothing runs on construction: call ``initialize`` to load persisted
    subscriptions, then ``start`` to launch the poller and ``stop`` to
    cancel it.
    """

    def __init__(
        self,
        store: SubscriptionBackend,
        fetcher: FeedFetcher,
        dispatcher: Dispatcher,
        interval: float = DEFAULT_INTERVAL,
        max_per_group: int = DEFAULT_MAX_PER_GROUP,
    ):
        """
        Initialize the service.

        Parameters
        ----------
        store : SubscriptionBackend
            Durable subscription storage.
        fetcher : FeedFetcher
            Fetches feed items.
        dispatcher : Dispatcher
            Delivers notifications to channels.
        interval : float
            Seconds between polling passes.
        max_per_group : int
            Maximum number of subscriptions per group.
        """
        self.store = store
        self.max_per_group = max_per_group
        self.registry = SubscriptionRegistry()
        self.cursors = CursorStore()
        self.poller = Poller(
            self.registry,
            self.cursors,
            fetcher,
            dispatcher,
            interval=interval,
        )
        self._task: asyncio.Task | None = None

    async def initialize(self) -> None:
        """Seed the registry with every persisted subscription."""
        subscriptions = await self.store.list_all()
        feeds = self.registry.load(subscriptions)
        logger.info(
            "Loaded %d subscription(s) across %d feed(s)",
            len(subscriptions),
            feeds,
        )

    def start(self) -> asyncio.Task:
        """
        Start the polling loop in the background.

        Returns
        -------
        asyncio.Task
            The poller task. Calling ``start`` again while it runs
            returns the same task.
        """
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.poller.run(), name="feed-poller")
        return self._task

    async def stop(self) -> None:
        """Cancel the polling loop and wait for it to exit."""
        if self._task is None:
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    @property
    def running(self) -> bool:
        """Whether the polling loop is active."""
        return self._task is not None and not self._task.done()

    async def add_feed(self, group_id: int, channel_id: int, url: str) -> bool:
        """
        Subscribe a channel to a feed on behalf of a group.

        Parameters
        ----------
        group_id : int
            Group owning the subscription.
        channel_id : int
            Channel receiving the notifications.
        url : str
            Feed URL.

        Returns
        -------
        bool
            False if the group already follows this URL or has reached
            its subscription limit.
        """
        url = normalize_url(url)
        existing = await self.store.list_for_group(group_id)

        if any(normalize_url(sub.url) == url for sub in existing):
            logger.info("Group %s already subscribes to %s", group_id, url)
            return False
        if len(existing) >= self.max_per_group:
            logger.info(
                "Group %s reached the limit of %d subscriptions",
                group_id,
                self.max_per_group,
            )
            return False

        try:
            created = await self.store.create(group_id, channel_id, url)
        except SubscriptionError as e:
            logger.info("Subscription rejected: %s", e)
            return False

        # Re-register the whole group in case the registry missed some of
        # its subscriptions
        for subscription in [*existing, created]:
            self.registry.add(subscription)

        logger.info("Group %s subscribed channel %s to %s", group_id, channel_id, url)
        return True

    async def remove_feed(self, group_id: int, index: int) -> bool:
        """
        Remove one of a group's subscriptions.

        Parameters
        ----------
        group_id : int
            Group owning the subscription.
        index : int
            0-based position in the group's subscriptions, oldest first.

        Returns
        -------
        bool
            False if the index is negative or out of range, or the store
            did not delete the subscription.
        """
        if index < 0:
            return False

        subscriptions = await self.store.list_for_group(group_id)
        if index >= len(subscriptions):
            return False

        target = subscriptions[index]
        if target.id is None or not await self.store.delete(target.id):
            logger.warning("Subscription %s of group %s could not be deleted", target.url, group_id)
            return False
        self.registry.remove(target)

        logger.info(
            "Group %s unsubscribed channel %s from %s",
            group_id,
            target.channel_id,
            target.url,
        )
        return True

    async def list_feeds(self, group_id: int) -> list[Subscription]:
        """
        Return a group's subscriptions in creation order.

        Parameters
        ----------
        group_id : int
            Owning group.

        Returns
        -------
        list[Subscription]
            The group's subscriptions, oldest first.
        """
        return await self.store.list_for_group(group_id)
