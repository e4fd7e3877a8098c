"""Metadata-store connection and the FastAPI dependency that hands it out.

The store is reached through a single long-lived node connection. Sockets
drop, so :class:`ManagedConnection` reconnects on demand: a query that finds
the handle gone (or hits a connectivity error) waits for a fresh handle and
runs once more. Only one reconnect runs at a time; concurrent callers share
the pending task instead of opening handles of their own.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable

from app.core import driver
from app.core.config import get_settings
from app.core.driver import NodeClient, QueryResult, close_quietly
from app.core.errors import ConnectivityError
from app.core.statements import expect_ok, require_identifier
from app.models import SCHEMA

logger = logging.getLogger(__name__)

# Lower-cased substrings of errors worth one reconnect-and-retry.
RECOVERABLE_MARKERS = (
    "not connected",
    "connection closed",
    "connection reset",
    "econnreset",
    "reset by peer",
    "broken pipe",
    "epipe",
    "socket hang up",
)


def _retrieve_exception(task: asyncio.Task) -> None:
    # Callers may all have been cancelled; nobody else would read the error.
    if not task.cancelled():
        task.exception()


def is_recoverable_error(error: BaseException | str | None) -> bool:
    if error is None:
        return False
    text = str(error).lower()
    return any(marker in text for marker in RECOVERABLE_MARKERS)


class ManagedConnection:
    """Self-healing wrapper around one metadata-store handle."""

    def __init__(
        self,
        factory: Callable[[], NodeClient],
        keyspace: str,
        schema: Iterable[tuple[str, str]] = (),
    ) -> None:
        self._factory = factory
        self._keyspace = keyspace
        self._schema = tuple(schema)
        self._client: NodeClient | None = None
        self._reconnecting: asyncio.Task[NodeClient] | None = None
        # Bumped by close(); a reconnect started before that never installs its handle
        self._generation = 0
        self.reconnect_count = 0

    @property
    def connected(self) -> bool:
        return self._client is not None and self._client.connected

    async def connect(self) -> None:
        """Open the first handle. A no-op when already connected."""
        await self._await_reconnect()

    async def query(self, statement: str) -> QueryResult:
        client = self._client
        if client is None or not client.connected:
            client = await self._await_reconnect(stale=client)

        try:
            result = await client.query(statement)
        except Exception as exc:
            if not is_recoverable_error(exc):
                raise
            logger.warning("Metadata query failed (%s), reconnecting", exc)
        else:
            if result.ok or not is_recoverable_error(result.error):
                return result
            logger.warning("Metadata query failed (%s), reconnecting", result.error)

        client = await self._await_reconnect(stale=client)
        return await client.query(statement)

    async def close(self) -> None:
        self._generation += 1
        pending = self._reconnecting
        if pending is not None and not pending.done():
            await asyncio.wait([pending])

        client, self._client = self._client, None
        if client is not None:
            await close_quietly(client)

    async def _await_reconnect(self, stale: NodeClient | None = None) -> NodeClient:
        current = self._client
        if current is not None and current is not stale and current.connected:
            # The handle that failed has already been replaced
            return current

        # No await between the check and the assignment, so at most one
        # task is ever pending on this event loop.
        if self._reconnecting is None or self._reconnecting.done():
            task = asyncio.create_task(self._reconnect(self._generation))
            task.add_done_callback(_retrieve_exception)
            self._reconnecting = task
        return await asyncio.shield(self._reconnecting)

    async def _reconnect(self, generation: int) -> NodeClient:
        self.reconnect_count += 1
        keyspace = require_identifier(self._keyspace, "Metadata keyspace")

        old, self._client = self._client, None
        if old is not None:
            await close_quietly(old)

        client = self._factory()
        if not await client.connect():
            await close_quietly(client)
            raise ConnectivityError("Unable to establish a connection to the metadata store")

        try:
            expect_ok(
                await client.query(f"CREATE KEYSPACE IF NOT EXISTS {keyspace};"),
                "Failed to create or access keyspace",
            )
            expect_ok(await client.select_keyspace(keyspace), f"Failed to use keyspace {keyspace}")
            for table, ddl in self._schema:
                expect_ok(await client.query(ddl), f"Failed to ensure {table} table")
        except Exception:
            await close_quietly(client)
            raise

        if generation != self._generation:
            await close_quietly(client)
            raise ConnectivityError("Metadata connection was closed while reconnecting")

        self._client = client
        logger.info("Connected to metadata store, using keyspace %s", keyspace)
        return client


settings = get_settings()


def _metadata_client() -> NodeClient:
    return driver.new_client(
        settings.db_host,
        settings.db_port,
        settings.db_username or None,
        settings.db_password or None,
        connect_timeout=settings.db_connect_timeout,
    )


metadata_db = ManagedConnection(_metadata_client, settings.db_keyspace, SCHEMA)


async def get_db() -> ManagedConnection:
    """FastAPI dependency that returns the shared metadata connection."""
    return metadata_db


async def init_db() -> None:
    """Connect and create all tables."""
    logger.info("Connecting to metadata store at %s:%s", settings.db_host, settings.db_port)
    await metadata_db.connect()


async def close_db() -> None:
    await metadata_db.close()
