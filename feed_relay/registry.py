"""
In-memory registry of feed subscriptions.

Maps each feed key to the set of subscriptions interested in it.
"""

import logging
import threading
from collections.abc import Iterable

from feed_relay.models import Subscription, normalize_url

logger = logging.getLogger(__name__)


class SubscriptionRegistry:
    """
    Thread-safe mapping from feed key to subscriptions.

    Sets are never handed out directly: ``snapshot`` copies each set
    under the lock, so a reader never sees a set mid-update.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subs: dict[str, set[Subscription]] = {}

    def add(self, subscription: Subscription) -> None:
        """
        Register a subscription under its feed key.

        Parameters
        ----------
        subscription : Subscription
            Subscription to add. Adding an equal subscription is a no-op.
        """
        key = normalize_url(subscription.url)
        with self._lock:
            self._subs.setdefault(key, set()).add(subscription)
        logger.debug(
            "Registered subscription for %s (group=%s, channel=%s)",
            key,
            subscription.group_id,
            subscription.channel_id,
        )

    def remove(self, subscription: Subscription) -> None:
        """
        Unregister a subscription. Unknown subscriptions are ignored.

        Parameters
        ----------
        subscription : Subscription
            Subscription to remove.
        """
        key = normalize_url(subscription.url)
        with self._lock:
            subs = self._subs.get(key)
            if subs is not None:
                subs.discard(subscription)
        logger.debug(
            "Unregistered subscription for %s (group=%s, channel=%s)",
            key,
            subscription.group_id,
            subscription.channel_id,
        )

    def load(self, subscriptions: Iterable[Subscription]) -> int:
        """
        Bulk-register subscriptions, typically at startup.

        Parameters
        ----------
        subscriptions : Iterable[Subscription]
            Persisted subscriptions.

        Returns
        -------
        int
            Number of distinct feed keys after loading.
        """
        for subscription in subscriptions:
            self.add(subscription)
        return len(self)

    def snapshot(self) -> list[tuple[str, frozenset[Subscription]]]:
        """
        Return a consistent copy of every feed key and its subscribers.

        Returns
        -------
        list[tuple[str, frozenset[Subscription]]]
            One pair per feed key, including keys with no subscribers left.
        """
        with self._lock:
            return [(key, frozenset(subs)) for key, subs in self._subs.items()]

    def subscribers(self, feed_key: str) -> frozenset[Subscription]:
        """Return a copy of the subscribers of one feed key."""
        with self._lock:
            return frozenset(self._subs.get(normalize_url(feed_key), ()))

    def __len__(self) -> int:
        with self._lock:
            return len(self._subs)

    def __contains__(self, subscription: object) -> bool:
        if not isinstance(subscription, Subscription):
            return False
        with self._lock:
            return subscription in self._subs.get(normalize_url(subscription.url), ())
