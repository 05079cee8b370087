"""
Telegram bot commands for managing feed subscriptions.

The chat a command is issued in owns the subscription; notifications go
to that chat unless another chat id is given.
"""

import html
import logging
from urllib.parse import urlparse

from telegram import LinkPreviewOptions, Update
from telegram.constants import ChatMemberStatus, ChatType, ParseMode
from telegram.error import TelegramError
from telegram.ext import Application, CommandHandler, ContextTypes

from feed_relay.models import is_absolute_url
from feed_relay.service import FeedService

logger = logging.getLogger(__name__)

ADMIN_STATUSES = (ChatMemberStatus.OWNER, ChatMemberStatus.ADMINISTRATOR)


def is_feed_url(url: str) -> bool:
    """Check that a URL is a well-formed absolute http(s) URL."""
    return is_absolute_url(url) and urlparse(url).scheme.lower() in ("http", "https")


class FeedCommands:
    """Handlers for /feedadd, /feedremove and /feedlist."""

    def __init__(self, service: FeedService):
        self.service = service

    def register(self, application: Application) -> None:
        """
        Register the command handlers on a bot application.

        Parameters
        ----------
        application : Application
            The python-telegram-bot application receiving updates.
        """
        application.add_handler(CommandHandler("feedadd", self.add_feed))
        application.add_handler(CommandHandler("feedremove", self.remove_feed))
        application.add_handler(CommandHandler("feedlist", self.list_feeds))

    async def _is_admin(self, update: Update) -> bool:
        """Only chat administrators may change subscriptions of a group."""
        chat = update.effective_chat
        user = update.effective_user
        if chat is None or user is None:
            return False
        if chat.type == ChatType.PRIVATE:
            return True
        try:
            member = await chat.get_member(user.id)
        except TelegramError as e:
            logger.warning("Could not check permissions of %s in %s: %s", user.id, chat.id, e)
            return False
        return member.status in ADMIN_STATUSES

    async def _administers(
        self, context: ContextTypes.DEFAULT_TYPE, chat_id: int, user_id: int
    ) -> bool:
        """Whether a user administers a chat other than the one they write in."""
        try:
            member = await context.bot.get_chat_member(chat_id, user_id)
        except TelegramError as e:
            logger.warning("Could not check permissions of %s in %s: %s", user_id, chat_id, e)
            return False
        return member.status in ADMIN_STATUSES

    async def add_feed(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle ``/feedadd <url> [chat_id]``."""
        message = update.effective_message
        chat = update.effective_chat
        if message is None or chat is None:
            return

        if not await self._is_admin(update):
            await message.reply_text("Only chat administrators can manage feeds.")
            return

        args = context.args or []
        if not args:
            await message.reply_text("Usage: /feedadd <url> [chat_id]")
            return

        url = args[0]
        if not is_feed_url(url):
            await message.reply_text("That doesn't look like a valid feed URL.")
            return

        channel_id = chat.id
        if len(args) > 1:
            try:
                channel_id = int(args[1])
            except ValueError:
                await message.reply_text("Chat id must be a number.")
                return

        if channel_id != chat.id and (
            update.effective_user is None
            or not await self._administers(context, channel_id, update.effective_user.id)
        ):
            await message.reply_text("You must be an administrator of the target chat.")
            return

        if await self.service.add_feed(chat.id, channel_id, url):
            await message.reply_text("Feed added.")
        else:
            await message.reply_text(
                "Feed not added: this chat already follows it or has reached "
                f"the limit of {self.service.max_per_group} feeds."
            )

    async def remove_feed(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle ``/feedremove <number>``, numbered as in ``/feedlist``."""
        message = update.effective_message
        chat = update.effective_chat
        if message is None or chat is None:
            return

        if not await self._is_admin(update):
            await message.reply_text("Only chat administrators can manage feeds.")
            return

        args = context.args or []
        try:
            index = int(args[0]) - 1
        except (IndexError, ValueError):
            await message.reply_text("Usage: /feedremove <number>")
            return

        if await self.service.remove_feed(chat.id, index):
            await message.reply_text("Feed removed.")
        else:
            await message.reply_text("No feed with that number.")

    async def list_feeds(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle ``/feedlist``."""
        message = update.effective_message
        chat = update.effective_chat
        if message is None or chat is None:
            return

        subscriptions = await self.service.list_feeds(chat.id)
        if not subscriptions:
            await message.reply_text("No feeds subscribed in this chat.")
            return

        lines = []
        for number, sub in enumerate(subscriptions, start=1):
            target = "" if sub.channel_id == chat.id else f" → <code>{sub.channel_id}</code>"
            lines.append(f"{number}. {html.escape(sub.url)}{target}")

        await message.reply_text(
            "\n".join(lines),
            parse_mode=ParseMode.HTML,
            link_preview_options=LinkPreviewOptions(is_disabled=True),
        )
