"""
SQLite storage for feed subscriptions.

Provides async database operations to persist subscriptions so they
survive restarts.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from feed_relay.models import Subscription, normalize_url

logger = logging.getLogger(__name__)

# Maximum number of subscriptions a single group may hold
DEFAULT_MAX_PER_GROUP = 10


class SubscriptionError(Exception):
    """Base class for rejected subscription changes."""


class DuplicateSubscriptionError(SubscriptionError):
    """Raised when a group already subscribes to a URL."""


class SubscriptionLimitError(SubscriptionError):
    """Raised when a group already holds the maximum number of subscriptions."""


class SubscriptionStore:
    """
    Async SQLite storage for feed subscriptions.

    Subscriptions are ordered by their row id, which reflects creation
    order. Per-group uniqueness of URLs and the per-group cap are
    enforced on creation.
    """

    def __init__(
        self,
        database_path: str | Path,
        max_per_group: int = DEFAULT_MAX_PER_GROUP,
    ):
        """
        Initialize storage with database path.

        Parameters
        ----------
        database_path : str | Path
            Path to the SQLite database file.
        max_per_group : int
            Maximum number of subscriptions per group.
        """
        self.database_path = Path(database_path)
        self.max_per_group = max_per_group
        self._connection: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """
        Initialize the database connection and create tables.

        Creates the database file and parent directories if they don't exist.
        """
        self.database_path.parent.mkdir(parents=True, exist_ok=True)

        logger.info("Initializing database at %s", self.database_path)

        self._connection = await aiosqlite.connect(self.database_path)
        await self._create_tables()

    async def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        if self._connection is None:
            raise RuntimeError("Database not initialized")

        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS feed_subscriptions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                group_id INTEGER NOT NULL,
                channel_id INTEGER NOT NULL,
                url TEXT NOT NULL,
                created_at TEXT NOT NULL,
                UNIQUE(group_id, url)
            )
        """)

        await self._connection.execute("""
            CREATE INDEX IF NOT EXISTS idx_subscriptions_group
            ON feed_subscriptions (group_id)
        """)

        await self._connection.commit()
        logger.debug("Database tables created/verified")

    def _require_connection(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError("Database not initialized")
        return self._connection

    async def list_all(self) -> list[Subscription]:
        """
        Return every stored subscription in creation order.

        Returns
        -------
        list[Subscription]
            All subscriptions.
        """
        connection = self._require_connection()

        cursor = await connection.execute(
            "SELECT id, group_id, channel_id, url, created_at "
            "FROM feed_subscriptions ORDER BY id"
        )
        rows = await cursor.fetchall()
        return [self._row_to_subscription(row) for row in rows]

    async def list_for_group(self, group_id: int) -> list[Subscription]:
        """
        Return the subscriptions of a group in creation order.

        Parameters
        ----------
        group_id : int
            Owning group.

        Returns
        -------
        list[Subscription]
            The group's subscriptions, oldest first.
        """
        connection = self._require_connection()

        cursor = await connection.execute(
            "SELECT id, group_id, channel_id, url, created_at "
            "FROM feed_subscriptions WHERE group_id = ? ORDER BY id",
            (group_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_subscription(row) for row in rows]

    async def create(self, group_id: int, channel_id: int, url: str) -> Subscription:
        """
        Persist a new subscription.

        Parameters
        ----------
        group_id : int
            Owning group.
        channel_id : int
            Channel receiving notifications.
        url : str
            Feed URL; stored normalized.

        Returns
        -------
        Subscription
            The stored subscription with its id.

        Raises
        ------
        DuplicateSubscriptionError
            If the group already subscribes to the URL.
        SubscriptionLimitError
            If the group already holds ``max_per_group`` subscriptions.
        """
        connection = self._require_connection()
        url = normalize_url(url)

        cursor = await connection.execute(
            "SELECT url FROM feed_subscriptions WHERE group_id = ?",
            (group_id,),
        )
        existing = [row[0] for row in await cursor.fetchall()]

        if url in existing:
            raise DuplicateSubscriptionError(f"Group {group_id} already subscribes to {url}")
        if len(existing) >= self.max_per_group:
            raise SubscriptionLimitError(
                f"Group {group_id} already has {len(existing)} subscriptions"
            )

        now = datetime.now(timezone.utc).isoformat()

        try:
            cursor = await connection.execute(
                """
                INSERT INTO feed_subscriptions (group_id, channel_id, url, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (group_id, channel_id, url, now),
            )
        except aiosqlite.IntegrityError as e:
            raise DuplicateSubscriptionError(
                f"Group {group_id} already subscribes to {url}"
            ) from e
        await connection.commit()

        logger.debug("Stored subscription %d: %s -> %s", cursor.lastrowid, url, channel_id)

        return Subscription(
            group_id=group_id,
            channel_id=channel_id,
            url=url,
            id=cursor.lastrowid,
            created_at=now,
        )

    async def delete(self, subscription_id: int) -> bool:
        """
        Delete a subscription by id.

        Parameters
        ----------
        subscription_id : int
            Row id of the subscription.

        Returns
        -------
        bool
            True if a subscription was deleted.
        """
        connection = self._require_connection()

        cursor = await connection.execute(
            "DELETE FROM feed_subscriptions WHERE id = ?",
            (subscription_id,),
        )
        await connection.commit()

        deleted = cursor.rowcount > 0
        if deleted:
            logger.debug("Deleted subscription %d", subscription_id)
        return deleted

    @staticmethod
    def _row_to_subscription(row: tuple) -> Subscription:
        sub_id, group_id, channel_id, url, created_at = row
        return Subscription(
            group_id=group_id,
            channel_id=channel_id,
            url=url,
            id=sub_id,
            created_at=created_at,
        )

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None
            logger.debug("Database connection closed")

    async def __aenter__(self) -> "SubscriptionStore":
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
