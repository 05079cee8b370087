"""
Fan-out of notifications to subscribed channels.
"""

import asyncio
import logging
from collections.abc import Iterable
from typing import Any

from feed_relay.models import Notification, Subscription
from feed_relay.notifier import ChannelResolver, MessageSender

logger = logging.getLogger(__name__)


class Dispatcher:
    """
    Delivers one notification to every subscriber of a feed.

    Each subscription is handled independently: dead targets are skipped
    and failed sends are logged without affecting the others.
    """

    def __init__(self, resolver: ChannelResolver, sender: MessageSender):
        """
        Initialize the dispatcher.

        Parameters
        ----------
        resolver : ChannelResolver
            Resolves channel handles from subscription identifiers.
        sender : MessageSender
            Sends notifications to resolved channels.
        """
        self.resolver = resolver
        self.sender = sender

    async def dispatch(
        self,
        subscriptions: Iterable[Subscription],
        notification: Notification,
        channels: dict[int, Any] | None = None,
    ) -> int:
        """
        Send a notification to all subscriptions concurrently.

        Parameters
        ----------
        subscriptions : Iterable[Subscription]
            Targets of the notification.
        notification : Notification
            The payload to send.
        channels : dict[int, Any] | None
            Chats already resolved, by channel id. Filled in as channels are
            resolved, so a caller can share it across several dispatches.

        Returns
        -------
        int
            Number of channels the notification was delivered to.
        """
        subscriptions = list(subscriptions)
        results = await asyncio.gather(
            *(self._deliver_one(sub, notification, channels) for sub in subscriptions),
            return_exceptions=True,
        )

        delivered = 0
        for sub, result in zip(subscriptions, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.error(
                    "Failed to deliver '%s' to channel %s (group %s): %s",
                    notification.title[:50],
                    sub.channel_id,
                    sub.group_id,
                    result,
                )
            elif result:
                delivered += 1

        return delivered

    async def _deliver_one(
        self,
        subscription: Subscription,
        notification: Notification,
        channels: dict[int, Any] | None,
    ) -> bool:
        """
        Resolve and deliver to a single subscription.

        Returns
        -------
        bool
            True if sent, False if the channel could not be resolved.
        """
        if channels is not None and subscription.channel_id in channels:
            channel = channels[subscription.channel_id]
        else:
            channel = await self.resolver.resolve_channel(
                subscription.group_id, subscription.channel_id
            )
            if channels is not None:
                channels[subscription.channel_id] = channel
        if channel is None:
            logger.debug(
                "Skipping unreachable channel %s (group %s)",
                subscription.channel_id,
                subscription.group_id,
            )
            return False

        await self.sender.deliver(channel, notification)
        return True
