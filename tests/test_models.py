"""
Unit tests for the core data types and URL helpers.
"""

from datetime import datetime, timezone

import pytest

from feed_relay.models import FeedItem, Subscription, is_absolute_url, normalize_url


class TestNormalizeUrl:
    """Tests for feed key normalization."""

    def test_lowercases_and_trims(self) -> None:
        """Test that case and surrounding whitespace are removed."""
        assert normalize_url("  HTTPS://Example.com/Feed.XML \n") == "https://example.com/feed.xml"

    def test_already_normalized(self) -> None:
        """Test that normalized URLs are unchanged."""
        assert normalize_url("https://example.com/rss") == "https://example.com/rss"


class TestIsAbsoluteUrl:
    """Tests for well-formed absolute URL detection."""

    @pytest.mark.parametrize(
        "url",
        [
            "https://example.com",
            "http://example.com/path?q=1",
            "ftp://files.example.com/image.png",
        ],
    )
    def test_valid(self, url: str) -> None:
        """Test that absolute URLs are accepted."""
        assert is_absolute_url(url) is True

    @pytest.mark.parametrize(
        "url",
        [
            None,
            "",
            "/relative/path",
            "example.com/feed",
            "https://exa mple.com",
            " https://example.com",
            "mailto:someone",
        ],
    )
    def test_invalid(self, url: str | None) -> None:
        """Test that relative or malformed URLs are rejected."""
        assert is_absolute_url(url) is False


class TestSubscription:
    """Tests for Subscription identity."""

    def test_equality_ignores_id(self) -> None:
        """Test that store metadata does not affect equality."""
        a = Subscription(1, 10, "https://example.com/feed", id=1, created_at="x")
        b = Subscription(1, 10, "https://example.com/feed", id=7)

        assert a == b
        assert hash(a) == hash(b)
        assert len({a, b}) == 1

    def test_different_channel_not_equal(self) -> None:
        """Test that the channel is part of the identity."""
        a = Subscription(1, 10, "https://example.com/feed")
        b = Subscription(1, 11, "https://example.com/feed")

        assert a != b


class TestFeedItemTimestamp:
    """Tests for FeedItem timestamp resolution."""

    def test_prefers_published(self) -> None:
        """Test that the publication date wins over the update date."""
        published = datetime(2024, 1, 1, tzinfo=timezone.utc)
        updated = datetime(2024, 1, 2, tzinfo=timezone.utc)

        item = FeedItem(published_at=published, updated_at=updated)

        assert item.timestamp == published

    def test_falls_back_to_updated(self) -> None:
        """Test that the update date is used without a publication date."""
        updated = datetime(2024, 1, 2, tzinfo=timezone.utc)

        assert FeedItem(updated_at=updated).timestamp == updated

    def test_no_dates(self) -> None:
        """Test that an undated item has no timestamp."""
        assert FeedItem(title="x").timestamp is None
