"""
Protocol definitions for the relay's collaborators.

Defines the interfaces the polling engine depends on, so feed sources,
stores and chat backends can be swapped or mocked.
"""

from typing import Any, Protocol, runtime_checkable

from feed_relay.models import FeedItem, Notification, Subscription


@runtime_checkable
class FeedFetcher(Protocol):
    """Fetches and parses a feed."""

    async def fetch_feed(self, url: str) -> list[FeedItem]:
        """
        Fetch the items of a feed.

        Parameters
        ----------
        url : str
            Feed URL.

        Returns
        -------
        list[FeedItem]
            Items in feed order.

        Raises
        ------
        Exception
            On network or parse failure.
        """
        ...


@runtime_checkable
class ChannelResolver(Protocol):
    """Turns group and channel identifiers into a deliverable channel."""

    async def resolve_channel(self, group_id: int, channel_id: int) -> Any | None:
        """
        Resolve a channel handle.

        Returns
        -------
        Any | None
            A backend-specific channel handle, or None if the group or
            channel no longer exists or is not accessible.
        """
        ...


@runtime_checkable
class MessageSender(Protocol):
    """
    Protocol defining the interface for notification backends.

    The @runtime_checkable decorator allows using isinstance() checks
    against this protocol for structural typing validation.
    """

    async def test_connection(self) -> bool:
        """
        Test the connection to the notification backend.

        Returns
        -------
        bool
            True if the connection is working and messages can be sent.
        """
        ...

    async def deliver(self, channel: Any, notification: Notification) -> None:
        """
        Send a notification to a resolved channel.

        Parameters
        ----------
        channel : Any
            Channel handle returned by a ChannelResolver.
        notification : Notification
            The payload to send.

        Raises
        ------
        Exception
            If the message could not be sent.
        """
        ...

    async def close(self) -> None:
        """Release backend resources."""
        ...


@runtime_checkable
class SubscriptionBackend(Protocol):
    """Durable storage of subscriptions."""

    async def list_all(self) -> list[Subscription]: ...

    async def list_for_group(self, group_id: int) -> list[Subscription]: ...

    async def create(self, group_id: int, channel_id: int, url: str) -> Subscription: ...

    async def delete(self, subscription_id: int) -> bool: ...
