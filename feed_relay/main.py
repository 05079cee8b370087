"""
Main entry point for Feed Relay.

Wires the subscription store, feed parser and Telegram bot together and
runs the polling loop alongside the bot's command handlers.
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from urllib.parse import urlparse

import coloredlogs
from telegram.ext import Application, ApplicationBuilder

from feed_relay.commands import FeedCommands
from feed_relay.config import load_config
from feed_relay.dispatcher import Dispatcher
from feed_relay.rss_parser import FeedParser
from feed_relay.service import FeedService
from feed_relay.storage import SubscriptionStore
from feed_relay.telegram import TelegramChannelResolver, TelegramNotifier

logger = logging.getLogger(__name__)


def redact_proxy_url(proxy_url: str) -> str:
    """
    Mask the password of a proxy URL before it is logged.

    Parameters
    ----------
    proxy_url : str
        Proxy URL, possibly with ``user:password@`` credentials.

    Returns
    -------
    str
        The URL with its password replaced by ``****``.
    """
    try:
        parsed = urlparse(proxy_url)
        if not parsed.password:
            return proxy_url
        host = parsed.hostname or ""
        if parsed.port:
            host += f":{parsed.port}"
        return parsed._replace(netloc=f"{parsed.username or ''}:****@{host}").geturl()
    except ValueError:
        return "<proxy url>"


class FeedRelay:
    """
    Main Feed Relay application.

    Coordinates storage, feed polling, the Telegram bot and its commands.
    """

    def __init__(self, config_path: str | Path):
        """
        Initialize the relay.

        Parameters
        ----------
        config_path : str | Path
            Path to the YAML configuration file.
        """
        self.config = load_config(config_path)
        self.store: SubscriptionStore | None = None
        self.parser: FeedParser | None = None
        self.notifier: TelegramNotifier | None = None
        self.application: Application | None = None
        self.service: FeedService | None = None

    def _build_application(self) -> Application:
        """Build the bot application, routing through the proxy if set."""
        builder = ApplicationBuilder().token(self.config.telegram.bot_token)
        proxy_url = self.config.poller.proxy
        if proxy_url:
            builder = builder.proxy(proxy_url).get_updates_proxy(proxy_url)
        return builder.build()

    async def start(self) -> None:
        """Start the relay and run until the poller stops."""
        logger.info("Starting Feed Relay")

        self.store = SubscriptionStore(
            self.config.storage.database_path,
            max_per_group=self.config.subscriptions.max_per_group,
        )
        await self.store.initialize()

        proxy_url = self.config.poller.proxy
        if proxy_url:
            logger.info("Using proxy: %s", redact_proxy_url(proxy_url))

        self.parser = FeedParser(
            timeout=self.config.poller.request_timeout,
            max_retries=self.config.poller.max_retries,
            user_agent=self.config.poller.user_agent,
            proxy_url=proxy_url,
        )

        self.application = self._build_application()
        await self.application.initialize()

        self.notifier = TelegramNotifier(
            self.application.bot,
            disable_web_page_preview=self.config.telegram.disable_web_page_preview,
        )

        if not await self.notifier.test_connection():
            logger.error("Failed to connect to Telegram, exiting")
            await self.stop()
            sys.exit(1)

        dispatcher = Dispatcher(TelegramChannelResolver(self.application.bot), self.notifier)
        self.service = FeedService(
            self.store,
            self.parser,
            dispatcher,
            interval=self.config.poller.interval,
            max_per_group=self.config.subscriptions.max_per_group,
        )
        await self.service.initialize()

        FeedCommands(self.service).register(self.application)
        await self.application.start()
        if self.application.updater:
            await self.application.updater.start_polling()

        task = self.service.start()
        logger.info("Feed Relay started")

        try:
            await task
        except asyncio.CancelledError:
            logger.info("Poller task cancelled")

    async def stop(self) -> None:
        """Stop the relay gracefully."""
        logger.info("Stopping Feed Relay")

        if self.service:
            await self.service.stop()

        if self.application:
            if self.application.updater and self.application.updater.running:
                await self.application.updater.stop()
            if self.application.running:
                await self.application.stop()
            await self.application.shutdown()

        if self.parser:
            await self.parser.close()
        if self.notifier:
            await self.notifier.close()
        if self.store:
            await self.store.close()

        logger.info("Feed Relay stopped")


def setup_logging(verbose: bool = False) -> None:
    """
    Install colored console logging.

    Parameters
    ----------
    verbose : bool
        Log at DEBUG instead of INFO.
    """
    coloredlogs.install(
        level=logging.DEBUG if verbose else logging.INFO,
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # HTTP clients and the bot library log every request at INFO
    for name in ("httpx", "httpcore", "telegram", "aiosqlite"):
        logging.getLogger(name).setLevel(logging.WARNING)


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Relay new RSS/Atom feed items to subscribed Telegram chats",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "-c",
        "--config",
        default="config.yaml",
        help="Path to configuration file",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    args = parser.parse_args()

    setup_logging(args.verbose)

    config_path = Path(args.config)
    if not config_path.exists():
        logger.error("Configuration file not found: %s", config_path)
        sys.exit(1)

    try:
        relay = FeedRelay(config_path)
    except Exception as e:
        logger.error("Invalid configuration: %s", e)
        sys.exit(1)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    main_task = loop.create_task(relay.start())

    def signal_handler():
        logger.info("Received shutdown signal")
        main_task.cancel()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        loop.run_until_complete(main_task)
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Interrupted before startup completed")
    finally:
        loop.run_until_complete(relay.stop())
        loop.close()


if __name__ == "__main__":
    main()
