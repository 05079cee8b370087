"""
Feed fetching and parsing.

Downloads RSS/Atom documents with aiohttp and converts feedparser
entries into FeedItem objects with UTC timestamps.
"""

import calendar
import logging
from datetime import datetime, timezone
from typing import Any

import aiohttp
import feedparser
from aiohttp_socks import ProxyConnector

from feed_relay.models import FeedItem

logger = logging.getLogger(__name__)


def _to_datetime(value: Any) -> datetime | None:
    """
    Convert a feedparser ``*_parsed`` struct_time (UTC) to a datetime.

    Parameters
    ----------
    value : Any
        A ``time.struct_time`` or None.

    Returns
    -------
    datetime | None
        Timezone-aware UTC datetime, or None if the value is missing
        or out of range.
    """
    if not value:
        return None
    try:
        return datetime.fromtimestamp(calendar.timegm(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def _first_media(entry: Any) -> tuple[str | None, str | None]:
    """
    Find the first media enclosure of an entry.

    Looks at RSS ``<enclosure>`` elements first, then Media RSS
    ``<media:content>``.

    Returns
    -------
    tuple[str | None, str | None]
        ``(url, mime_type)`` of the enclosure, or ``(None, None)``.
    """
    for enclosure in entry.get("enclosures", None) or []:
        url = enclosure.get("href") or enclosure.get("url")
        if url:
            return url, enclosure.get("type")

    for media in entry.get("media_content", None) or []:
        url = media.get("url")
        if not url:
            continue
        media_type = media.get("type")
        if not media_type and media.get("medium") == "image":
            media_type = "image/*"
        return url, media_type

    return None, None


def entry_to_item(entry: Any) -> FeedItem:
    """
    Create a FeedItem from a feedparser entry.

    Parameters
    ----------
    entry : Any
        A feedparser entry object.

    Returns
    -------
    FeedItem
        Normalized item instance.
    """
    # Prefer the summary, fall back to full content
    description = entry.get("summary", "") or ""
    if not description and entry.get("content"):
        description = entry.content[0].get("value", "")

    media_url, media_type = _first_media(entry)

    return FeedItem(
        title=entry.get("title", "") or "",
        link=entry.get("link", "") or "",
        description=description,
        published_at=_to_datetime(entry.get("published_parsed")),
        updated_at=_to_datetime(entry.get("updated_parsed")),
        media_url=media_url,
        media_type=media_type,
    )


class FeedParser:
    """
    Downloads feeds over HTTP and turns them into FeedItem lists.

    One aiohttp session is opened on first use and shared by every
    fetch until ``close``.
    """

    def __init__(
        self,
        timeout: int = 30,
        max_retries: int = 3,
        user_agent: str = "Feed-Relay/1.0",
        proxy_url: str | None = None,
    ):
        """
        Initialize the feed parser.

        Parameters
        ----------
        timeout : int
            Total time allowed for one HTTP request, in seconds.
        max_retries : int
            Attempts per fetch before giving up.
        user_agent : str
            Sent as the User-Agent header.
        proxy_url : str | None
            SOCKS or HTTP proxy to route requests through.
        """
        self.timeout = timeout
        self.max_retries = max_retries
        self.user_agent = user_agent
        self.proxy_url = proxy_url
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Return the shared session, opening it if needed."""
        if self._session is not None and not self._session.closed:
            return self._session

        connector = None
        if self.proxy_url:
            connector = ProxyConnector.from_url(self.proxy_url)
            # Only the host part, credentials stay out of the logs
            logger.debug("Fetching feeds through proxy %s", self.proxy_url.rpartition("@")[2])

        self._session = aiohttp.ClientSession(
            connector=connector,
            headers={"User-Agent": self.user_agent},
            timeout=aiohttp.ClientTimeout(total=self.timeout),
        )
        return self._session

    async def _download(self, url: str) -> str:
        """Perform a single GET and return the body."""
        session = await self._get_session()
        async with session.get(url) as response:
            response.raise_for_status()
            return await response.text()

    async def fetch_feed(self, url: str) -> list[FeedItem]:
        """
        Fetch and parse an RSS/Atom feed.

        Parameters
        ----------
        url : str
            URL of the feed.

        Returns
        -------
        list[FeedItem]
            Parsed items, in feed order.

        Raises
        ------
        aiohttp.ClientError
            If every attempt failed. The last error is re-raised.
        """
        attempt = 0
        while True:
            attempt += 1
            logger.debug("GET %s (attempt %d/%d)", url, attempt, self.max_retries)
            try:
                body = await self._download(url)
            except aiohttp.ClientError as e:
                if attempt >= self.max_retries:
                    logger.error("Giving up on '%s' after %d attempt(s): %s", url, attempt, e)
                    raise
                logger.warning(
                    "Fetching '%s' failed (attempt %d/%d): %s",
                    url,
                    attempt,
                    self.max_retries,
                    e,
                )
                continue

            items = self._parse_feed(body, url)
            logger.debug("Parsed %d item(s) from '%s'", len(items), url)
            return items

    def _parse_feed(self, content: str, url: str) -> list[FeedItem]:
        """
        Parse a feed document.

        Entries that cannot be converted are logged and skipped.

        Parameters
        ----------
        content : str
            Response body.
        url : str
            Feed URL, for logging.

        Returns
        -------
        list[FeedItem]
            Converted entries, in document order.
        """
        # Leading blank lines before the XML declaration make it unparseable
        parsed: Any = feedparser.parse(content.lstrip())

        if parsed.bozo and parsed.bozo_exception:
            logger.warning("Feed '%s' is malformed: %s", url, parsed.bozo_exception)

        items = []
        for entry in parsed.entries:
            try:
                items.append(entry_to_item(entry))
            except Exception as e:
                logger.warning("Skipping unreadable entry in '%s': %s", url, e)
        return items

    async def close(self) -> None:
        """Close the shared session, if open."""
        if self._session is None:
            return
        if not self._session.closed:
            await self._session.close()
            logger.debug("Feed HTTP session closed")
        self._session = None

    async def __aenter__(self) -> "FeedParser":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
