"""
Unit tests for the feed service.

Tests cover subscription management against a real in-memory store,
registry synchronisation and the poller lifecycle.
"""

import asyncio
from collections.abc import AsyncGenerator, Callable
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from feed_relay.dispatcher import Dispatcher
from feed_relay.models import FeedItem, Subscription
from feed_relay.service import FeedService
from feed_relay.storage import SubscriptionStore

URL = "https://example.com/feed.xml"


@pytest_asyncio.fixture
async def service(
    in_memory_store: SubscriptionStore, fetcher: MagicMock, dispatcher: Dispatcher
) -> AsyncGenerator[FeedService, None]:
    """Create an initialized service over an in-memory store."""
    service = FeedService(in_memory_store, fetcher, dispatcher, interval=0.01)
    await service.initialize()
    yield service
    await service.stop()


class TestInitialize:
    """Tests for loading persisted subscriptions."""

    async def test_seeds_registry(
        self, in_memory_store: SubscriptionStore, fetcher: MagicMock, dispatcher: Dispatcher
    ) -> None:
        """Test that stored subscriptions are loaded into the registry."""
        await in_memory_store.create(1, 100, URL)
        await in_memory_store.create(2, 200, URL)
        await in_memory_store.create(2, 200, "https://other.example.com/rss")

        service = FeedService(in_memory_store, fetcher, dispatcher)
        await service.initialize()

        assert len(service.registry) == 2
        assert len(service.registry.subscribers(URL)) == 2

    def test_constructor_starts_nothing(
        self, in_memory_store: SubscriptionStore, fetcher: MagicMock, dispatcher: Dispatcher
    ) -> None:
        """Test that building the service does not start polling."""
        service = FeedService(in_memory_store, fetcher, dispatcher)

        assert service.running is False


class TestAddFeed:
    """Tests for FeedService.add_feed."""

    async def test_add_success(self, service: FeedService) -> None:
        """Test that a new feed is stored and registered."""
        assert await service.add_feed(1, 100, URL) is True

        assert Subscription(1, 100, URL) in service.registry
        assert [s.url for s in await service.list_feeds(1)] == [URL]

    async def test_add_normalizes_url(self, service: FeedService) -> None:
        """Test that the stored URL is the normalized feed key."""
        await service.add_feed(1, 100, "  HTTPS://Example.com/Feed.xml ")

        assert (await service.list_feeds(1))[0].url == URL

    async def test_duplicate_differing_in_case_rejected(self, service: FeedService) -> None:
        """Test that case and whitespace variants count as the same feed."""
        await service.add_feed(1, 100, URL)

        assert await service.add_feed(1, 100, " HTTPS://EXAMPLE.COM/FEED.XML") is False
        assert len(await service.list_feeds(1)) == 1

    async def test_readd_does_not_duplicate_registry(self, service: FeedService) -> None:
        """Test that a rejected re-add leaves exactly one registry entry."""
        await service.add_feed(1, 100, URL)

        assert await service.add_feed(1, 100, URL) is False
        assert service.registry.subscribers(URL) == frozenset({Subscription(1, 100, URL)})

    async def test_eleventh_feed_rejected(self, service: FeedService) -> None:
        """Test that a group is capped at ten subscriptions."""
        for n in range(10):
            assert await service.add_feed(1, 100, f"https://example.com/{n}") is True

        assert await service.add_feed(1, 100, "https://example.com/10") is False
        assert len(await service.list_feeds(1)) == 10

    async def test_limit_is_per_group(self, service: FeedService) -> None:
        """Test that another group is unaffected by a full group."""
        for n in range(10):
            await service.add_feed(1, 100, f"https://example.com/{n}")

        assert await service.add_feed(2, 200, "https://example.com/0") is True

    async def test_store_rejection_returns_false(
        self, service: FeedService, in_memory_store: SubscriptionStore
    ) -> None:
        """Test that errors raised by the store are reported as False."""
        in_memory_store.max_per_group = 0

        assert await service.add_feed(1, 100, URL) is False
        assert Subscription(1, 100, URL) not in service.registry

    async def test_reregisters_group(
        self, service: FeedService, in_memory_store: SubscriptionStore
    ) -> None:
        """Test that adding a feed registers the group's earlier subscriptions too."""
        # Stored while the registry was not watching
        await in_memory_store.create(1, 100, "https://missed.example.com/rss")

        await service.add_feed(1, 100, URL)

        assert Subscription(1, 100, "https://missed.example.com/rss") in service.registry


class TestRemoveFeed:
    """Tests for FeedService.remove_feed."""

    async def test_remove_by_index(self, service: FeedService) -> None:
        """Test that the index follows creation order."""
        for name in ("a", "b", "c"):
            await service.add_feed(1, 100, f"https://example.com/{name}")

        assert await service.remove_feed(1, 1) is True

        assert [s.url for s in await service.list_feeds(1)] == [
            "https://example.com/a",
            "https://example.com/c",
        ]
        assert Subscription(1, 100, "https://example.com/b") not in service.registry

    @pytest.mark.parametrize("index", [-1, 1, 5])
    async def test_bad_index_rejected(self, service: FeedService, index: int) -> None:
        """Test that negative and out-of-range indexes fail."""
        await service.add_feed(1, 100, URL)

        assert await service.remove_feed(1, index) is False
        assert len(await service.list_feeds(1)) == 1

    async def test_remove_keeps_other_groups(self, service: FeedService) -> None:
        """Test that removing one group's subscription leaves others on the feed."""
        await service.add_feed(1, 100, URL)
        await service.add_feed(2, 200, URL)

        await service.remove_feed(1, 0)

        assert service.registry.subscribers(URL) == frozenset({Subscription(2, 200, URL)})

    async def test_failed_delete_keeps_registry(
        self, service: FeedService, in_memory_store: SubscriptionStore
    ) -> None:
        """Test that the registry is untouched when the store deletes nothing."""
        await service.add_feed(1, 100, URL)
        in_memory_store.delete = AsyncMock(return_value=False)

        assert await service.remove_feed(1, 0) is False
        assert Subscription(1, 100, URL) in service.registry

    async def test_delete_error_keeps_registry(
        self, service: FeedService, in_memory_store: SubscriptionStore
    ) -> None:
        """Test that a store error propagates without unregistering."""
        await service.add_feed(1, 100, URL)
        in_memory_store.delete = AsyncMock(side_effect=RuntimeError("disk I/O error"))

        with pytest.raises(RuntimeError):
            await service.remove_feed(1, 0)

        assert Subscription(1, 100, URL) in service.registry


class TestListFeeds:
    """Tests for FeedService.list_feeds."""

    async def test_empty(self, service: FeedService) -> None:
        """Test that a group without feeds gets an empty list."""
        assert await service.list_feeds(42) == []


class TestLifecycle:
    """Tests for start/stop of the polling task."""

    async def test_start_and_stop(self, service: FeedService) -> None:
        """Test that start runs the poller until stop cancels it."""
        service.poller.run_pass = AsyncMock(return_value=0)

        task = service.start()
        await asyncio.sleep(0.05)

        assert service.running is True
        assert service.start() is task
        assert service.poller.run_pass.await_count >= 2

        await service.stop()

        assert service.running is False
        assert task.cancelled()

    async def test_stop_without_start(self, service: FeedService) -> None:
        """Test that stop is a no-op when never started."""
        await service.stop()

        assert service.running is False

    async def test_end_to_end_delivery(
        self,
        service: FeedService,
        fetcher: MagicMock,
        make_item: Callable[..., FeedItem],
        at: Callable[..., datetime],
        deliveries: Callable[[], list[tuple[int, str]]],
    ) -> None:
        """Test that an item published after subscribing is delivered once."""
        await service.add_feed(1, 100, URL)
        fetcher.feeds[URL] = [make_item("old", (10, 0))]

        service.start()
        await asyncio.sleep(0.05)
        assert deliveries() == []
        assert service.cursors.get(URL) == at(10)

        fetcher.feeds[URL].append(make_item("fresh", (11, 0)))
        await asyncio.sleep(0.05)
        await service.stop()

        assert deliveries() == [(100, "fresh")]
