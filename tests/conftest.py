"""
Shared fixtures for Feed Relay tests.

Provides common test fixtures for use across all test modules.
"""

from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from feed_relay.config import AppConfig, TelegramConfig
from feed_relay.dispatcher import Dispatcher
from feed_relay.models import FeedItem, Subscription
from feed_relay.storage import SubscriptionStore

# Path to test fixtures directory
FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def fixtures_dir() -> Path:
    """Return path to fixtures directory."""
    return FIXTURES_DIR


@pytest.fixture
def sample_rss_content(fixtures_dir: Path) -> str:
    """Return contents of sample RSS feed."""
    return (fixtures_dir / "sample_rss.xml").read_text()


@pytest.fixture
def sample_atom_content(fixtures_dir: Path) -> str:
    """Return contents of sample Atom feed."""
    return (fixtures_dir / "sample_atom.xml").read_text()


@pytest.fixture
def sample_config_path(fixtures_dir: Path) -> Path:
    """Return path to sample config file."""
    return fixtures_dir / "sample_config.yaml"


@pytest.fixture
def at() -> Callable[..., datetime]:
    """
    Build UTC timestamps on 2024-01-01.

    Returns
    -------
    Callable[..., datetime]
        ``at(hour, minute)`` returning an aware datetime.
    """

    def _at(hour: int, minute: int = 0) -> datetime:
        return datetime(2024, 1, 1, hour, minute, tzinfo=timezone.utc)

    return _at


@pytest.fixture
def make_item(at: Callable[..., datetime]) -> Callable[..., FeedItem]:
    """
    Build feed items published at a given time.

    Returns
    -------
    Callable[..., FeedItem]
        ``make_item(title, (hour, minute) | None, **fields)``.
    """

    def _make(title: str, when: tuple[int, int] | None = None, **fields) -> FeedItem:
        published = at(*when) if when is not None else None
        fields.setdefault("link", f"https://example.com/{title.lower().replace(' ', '-')}")
        return FeedItem(title=title, published_at=published, **fields)

    return _make


@pytest.fixture
def sample_subscription() -> Subscription:
    """Create a sample subscription."""
    return Subscription(group_id=1, channel_id=100, url="https://example.com/feed.xml")


@pytest.fixture
def fetcher() -> MagicMock:
    """
    Create a mock feed fetcher.

    Set ``fetcher.feeds[url]`` to a list of items, or to an exception
    instance to make fetching that URL fail.
    """
    fetcher = MagicMock()
    fetcher.feeds = {}

    async def fetch(url: str) -> list[FeedItem]:
        result = fetcher.feeds.get(url, [])
        if isinstance(result, Exception):
            raise result
        return list(result)

    fetcher.fetch_feed = AsyncMock(side_effect=fetch)
    return fetcher


@pytest.fixture
def resolver() -> MagicMock:
    """
    Create a mock channel resolver.

    Channels listed in ``resolver.dead`` resolve to None; every other
    channel resolves to a handle whose ``id`` is the channel id.
    """
    resolver = MagicMock()
    resolver.dead = set()

    def resolve(group_id: int, channel_id: int):
        if channel_id in resolver.dead:
            return None
        return MagicMock(id=channel_id)

    resolver.resolve_channel = AsyncMock(side_effect=resolve)
    return resolver


@pytest.fixture
def sender() -> MagicMock:
    """Create a mock message sender recording deliveries."""
    sender = MagicMock()
    sender.deliver = AsyncMock()
    sender.test_connection = AsyncMock(return_value=True)
    sender.close = AsyncMock()
    return sender


@pytest.fixture
def dispatcher(resolver: MagicMock, sender: MagicMock) -> Dispatcher:
    """Create a dispatcher wired to the mock resolver and sender."""
    return Dispatcher(resolver, sender)


def delivered(sender: MagicMock) -> list[tuple[int, str]]:
    """Return ``(channel_id, title)`` for every delivery made by a mock sender."""
    return [
        (call.args[0].id, call.args[1].title) for call in sender.deliver.await_args_list
    ]


@pytest.fixture
def deliveries(sender: MagicMock) -> Callable[[], list[tuple[int, str]]]:
    """Return a callable listing ``(channel_id, title)`` of each delivery so far."""
    return lambda: delivered(sender)


@pytest.fixture
def minimal_telegram_config() -> TelegramConfig:
    """Create a minimal valid Telegram configuration."""
    return TelegramConfig(bot_token="1234567890:ABCdefGHIjklMNOpqrsTUVwxyz")


@pytest.fixture
def minimal_config_dict() -> dict:
    """Create a minimal valid configuration dictionary."""
    return {
        "telegram": {
            "bot_token": "1234567890:ABCdefGHIjklMNOpqrsTUVwxyz",
        },
    }


@pytest.fixture
def minimal_app_config(minimal_telegram_config: TelegramConfig) -> AppConfig:
    """Create a minimal valid app configuration."""
    return AppConfig(telegram=minimal_telegram_config)


@pytest_asyncio.fixture
async def in_memory_store() -> AsyncGenerator[SubscriptionStore, None]:
    """
    Create an in-memory SQLite subscription store for testing.

    Yields
    ------
    SubscriptionStore
        An initialized in-memory store.
    """
    store = SubscriptionStore(":memory:")
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def mock_telegram_bot() -> MagicMock:
    """
    Create a mock Telegram bot.

    Returns
    -------
    MagicMock
        A mock Bot instance with common methods mocked.
    """
    bot = MagicMock()
    bot.send_message = AsyncMock()
    bot.send_photo = AsyncMock()
    bot.get_chat = AsyncMock(side_effect=lambda chat_id: MagicMock(id=chat_id))
    bot.get_me = AsyncMock(return_value=MagicMock(username="test_bot"))
    bot.shutdown = AsyncMock()
    return bot
