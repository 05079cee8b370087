"""
Core data types shared across the relay.

Subscriptions, fetched feed items and rendered notifications, plus the
URL helpers used to derive feed keys.
"""

from dataclasses import dataclass, field
from datetime import datetime
from urllib.parse import urlparse


def normalize_url(url: str) -> str:
    """
    Normalize a feed URL into its feed key form.

    Parameters
    ----------
    url : str
        Raw URL as entered by a user or stored in the database.

    Returns
    -------
    str
        Trimmed, lower-cased URL.
    """
    return url.strip().lower()


def is_absolute_url(url: str | None) -> bool:
    """
    Check whether a string is a well-formed absolute URL.

    Parameters
    ----------
    url : str | None
        Candidate URL.

    Returns
    -------
    bool
        True if the URL has a scheme and a network location and
        contains no whitespace.
    """
    if not url or url != url.strip() or any(c.isspace() for c in url):
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return bool(parsed.scheme and parsed.netloc)


@dataclass(frozen=True)
class Subscription:
    """
    A request to deliver new items of a feed to a chat channel.

    Equality and hashing only consider ``(group_id, channel_id, url)``;
    the store-assigned id and creation date are informational.

    Attributes
    ----------
    group_id : int
        Identifier of the group owning the subscription.
    channel_id : int
        Identifier of the channel receiving notifications.
    url : str
        Normalized feed URL (the feed key).
    id : int | None
        Store-assigned row id, reflecting creation order.
    created_at : str | None
        ISO timestamp of creation.
    """

    group_id: int
    channel_id: int
    url: str
    id: int | None = field(default=None, compare=False)
    created_at: str | None = field(default=None, compare=False)


@dataclass
class FeedItem:
    """
    A single item fetched from a feed.

    Attributes
    ----------
    title : str
        Item title.
    link : str
        Item URL.
    description : str
        Item body, possibly containing HTML.
    published_at : datetime | None
        Publication date (UTC) if the feed provides one.
    updated_at : datetime | None
        Last update date (UTC) if the feed provides one.
    media_url : str | None
        URL of the first media enclosure.
    media_type : str | None
        Declared MIME type of the media enclosure.
    """

    title: str = ""
    link: str = ""
    description: str = ""
    published_at: datetime | None = None
    updated_at: datetime | None = None
    media_url: str | None = None
    media_type: str | None = None

    @property
    def timestamp(self) -> datetime | None:
        """Publication date, falling back to the update date."""
        return self.published_at or self.updated_at


@dataclass
class Notification:
    """
    Rendered payload delivered to every subscriber of a feed.

    Attributes
    ----------
    title : str
        Notification title.
    footer : str
        Feed key the notification originates from.
    description : str | None
        Plain-text body.
    url : str | None
        Link to the original item.
    image_url : str | None
        Image to attach.
    """

    title: str
    footer: str
    description: str | None = None
    url: str | None = None
    image_url: str | None = None
