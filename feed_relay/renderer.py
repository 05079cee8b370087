"""
Rendering of feed items into notifications.
"""

import html
import re

from feed_relay.models import FeedItem, Notification, is_absolute_url

MAX_TITLE_LENGTH = 256
MAX_DESCRIPTION_LENGTH = 2048

# Title used when an item has none
EMPTY_TITLE = "-"


def truncate(text: str, max_length: int) -> str:
    """
    Shorten text to ``max_length`` characters, ending with an ellipsis.

    Parameters
    ----------
    text : str
        Text to shorten.
    max_length : int
        Maximum length of the result, ellipsis included.

    Returns
    -------
    str
        The text unchanged if short enough, otherwise a truncated copy.
    """
    if len(text) <= max_length:
        return text
    if max_length <= 3:
        return text[:max_length]
    return text[: max_length - 3] + "..."


def strip_html(content: str) -> str:
    """
    Convert HTML content to plain text.

    Parameters
    ----------
    content : str
        Raw content possibly containing HTML.

    Returns
    -------
    str
        Plain text with tags removed, entities decoded and whitespace
        collapsed.
    """
    # Block-level breaks become spaces so words don't run together
    text = re.sub(r"<br\s*/?>|</p>", " ", content, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", "", text)
    text = html.unescape(text)
    text = re.sub(r"\s+", " ", text).strip()
    return text


def render_item(item: FeedItem, feed_key: str) -> Notification:
    """
    Build the notification for one feed item.

    Parameters
    ----------
    item : FeedItem
        The item to render.
    feed_key : str
        Normalized URL of the feed, shown as the footer.

    Returns
    -------
    Notification
        Payload ready for delivery.
    """
    title = item.title.strip() if item.title else ""
    notification = Notification(
        title=truncate(title or EMPTY_TITLE, MAX_TITLE_LENGTH),
        footer=feed_key,
    )

    if item.description and item.description.strip():
        notification.description = truncate(
            strip_html(item.description), MAX_DESCRIPTION_LENGTH
        )

    if is_absolute_url(item.link):
        notification.url = item.link

    media_type = (item.media_type or "").lower()
    if media_type.startswith("image/") and is_absolute_url(item.media_url):
        notification.image_url = item.media_url

    return notification
