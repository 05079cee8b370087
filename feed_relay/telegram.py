"""
Telegram notification client.

Resolves target chats and sends formatted notifications using the Bot API.
"""

import asyncio
import html
import logging

from telegram import Bot, Chat, LinkPreviewOptions
from telegram.constants import ParseMode
from telegram.error import BadRequest, Forbidden, RetryAfter, TelegramError

from feed_relay.models import Notification
from feed_relay.renderer import truncate

logger = logging.getLogger(__name__)

# Maximum message length for Telegram
MAX_MESSAGE_LENGTH = 4096
MAX_CAPTION_LENGTH = 1024


def escape_within(text: str, max_length: int) -> str:
    """
    HTML-escape text, truncating it so the escaped result fits ``max_length``.

    Escaping can grow the text, so the plain text is shortened until the
    escaped form fits. Cutting before escaping never splits an entity.
    """
    max_length = length = max(0, max_length)
    escaped = html.escape(truncate(text, length))
    while len(escaped) > max_length:
        length = max(0, min(length - 1, length * max_length // len(escaped)))
        escaped = html.escape(truncate(text, length))
    return escaped


class TelegramChannelResolver:
    """
    Resolves subscription targets to Telegram chats.

    A chat the bot was removed from, or that no longer exists, resolves
    to None.
    """

    def __init__(self, bot: Bot):
        self._bot = bot

    async def resolve_channel(self, group_id: int, channel_id: int) -> Chat | None:
        """
        Look up the chat receiving a subscription's notifications.

        Parameters
        ----------
        group_id : int
            Chat owning the subscription.
        channel_id : int
            Chat receiving the notifications.

        Returns
        -------
        Chat | None
            The target chat, or None if it is not reachable.
        """
        try:
            return await self._bot.get_chat(channel_id)
        except (BadRequest, Forbidden) as e:
            logger.debug(
                "Cannot resolve chat %s for group %s: %s", channel_id, group_id, e
            )
            return None


class TelegramNotifier:
    """
    Telegram notification client.

    Sends notifications as HTML messages, or as photos with a caption
    when the notification carries an image.
    """

    def __init__(
        self,
        bot: Bot,
        disable_web_page_preview: bool = False,
    ):
        """
        Initialize the Telegram notifier.

        Parameters
        ----------
        bot : Bot
            Bot used to send messages.
        disable_web_page_preview : bool
            Whether to disable link previews on text messages.
        """
        self._bot = bot
        self.disable_web_page_preview = disable_web_page_preview

    async def deliver(self, channel: Chat, notification: Notification) -> None:
        """
        Send a notification to a chat.

        Parameters
        ----------
        channel : Chat
            Resolved target chat.
        notification : Notification
            The payload to send.

        Raises
        ------
        TelegramError
            If the message could not be sent.
        """
        if notification.image_url:
            caption = self.format_html(notification, MAX_CAPTION_LENGTH)
            await self._with_retry(
                self._bot.send_photo,
                chat_id=channel.id,
                photo=notification.image_url,
                caption=caption,
                parse_mode=ParseMode.HTML,
            )
        else:
            text = self.format_html(notification, MAX_MESSAGE_LENGTH)
            await self._with_retry(
                self._bot.send_message,
                chat_id=channel.id,
                text=text,
                parse_mode=ParseMode.HTML,
                link_preview_options=LinkPreviewOptions(is_disabled=self.disable_web_page_preview),
            )
        logger.info("Sent notification to chat %s: %s", channel.id, notification.title[:50])

    def format_html(self, notification: Notification, max_length: int) -> str:
        """
        Format a notification as an HTML message.

        The description is shortened first so the title, link and footer
        always survive within ``max_length``.

        Parameters
        ----------
        notification : Notification
            The payload to format.
        max_length : int
            Maximum length of the resulting message.

        Returns
        -------
        str
            HTML formatted message.
        """
        title = html.escape(notification.title)
        if notification.url:
            head = f'<b><a href="{html.escape(notification.url)}">{title}</a></b>'
        else:
            head = f"<b>{title}</b>"

        footer = f"\n\n<i>{html.escape(notification.footer)}</i>"

        body = ""
        if notification.description:
            room = max_length - len(head) - len(footer) - 2
            if room > 3:
                body = f"\n\n{escape_within(notification.description, room)}"

        message = head + body + footer
        if len(message) > max_length:
            # Link and footer don't fit next to the title
            message = f"<b>{escape_within(notification.title, max_length - 7)}</b>"
        return message

    async def _with_retry(self, method, **kwargs) -> None:
        """
        Call a Bot method, waiting out one rate limit.

        Raises
        ------
        TelegramError
            If the call fails.
        """
        try:
            await method(**kwargs)
        except RetryAfter as e:
            logger.warning("Rate limited, waiting %d seconds", e.retry_after)
            await asyncio.sleep(e.retry_after)
            # Retry once
            await method(**kwargs)

    async def test_connection(self) -> bool:
        """
        Test the Telegram bot connection.

        Returns
        -------
        bool
            True if the connection is working.
        """
        try:
            me = await self._bot.get_me()
            logger.info("Connected to Telegram as @%s", me.username)
            return True
        except TelegramError as e:
            logger.error("Failed to connect to Telegram: %s", e)
            return False

    async def close(self) -> None:
        """Close the Telegram bot session."""
        if hasattr(self._bot, "shutdown"):
            await self._bot.shutdown()
        logger.debug("Telegram client closed")
