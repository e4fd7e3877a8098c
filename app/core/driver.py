"""Async client for Xeon nodes and the tagged result type it returns.

Statements are sent one per line; the node answers each with a single JSON
object on its own line. Responses come in three shapes depending on the
statement (``rows`` lists, ``found``/``row`` single-row lookups, or bare
``ok``). :class:`QueryResult` folds them into one type here so nothing
above this module has to check for fields.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from app.core.statements import quote

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 10.0
# Whole-table reads arrive as a single response line.
STREAM_LIMIT = 64 * 2**20
_RESERVED_KEYS = frozenset({"ok", "error", "rows", "row", "found"})


@dataclass
class QueryResult:
    ok: bool
    rows: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None
    fields: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any) -> QueryResult:
        if not isinstance(payload, dict):
            return cls(ok=False, error="Malformed response")

        if "found" in payload:
            row = payload.get("row") if payload.get("found") else None
            rows = [row] if isinstance(row, dict) else []
        elif isinstance(payload.get("rows"), list):
            rows = [r for r in payload["rows"] if isinstance(r, dict)]
        elif isinstance(payload.get("row"), dict):
            rows = [payload["row"]]
        else:
            rows = []

        error = payload.get("error")
        return cls(
            ok=payload.get("ok") is True,
            rows=rows,
            error=str(error) if error else None,
            fields={k: v for k, v in payload.items() if k not in _RESERVED_KEYS},
        )

    def first(self) -> dict[str, Any] | None:
        return self.rows[0] if self.rows else None


class NodeClient(Protocol):
    """What the rest of the code base needs from a node connection."""

    @property
    def connected(self) -> bool: ...

    async def connect(self) -> bool: ...

    async def select_keyspace(self, keyspace: str) -> QueryResult: ...

    async def query(self, statement: str) -> QueryResult: ...

    async def close(self) -> None: ...


class XeondbClient:
    """One TCP connection to a node."""

    def __init__(
        self,
        host: str,
        port: int | float,
        username: str | None = None,
        password: str | None = None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.connect_timeout = connect_timeout
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    async def connect(self) -> bool:
        """Open the socket and authenticate. Returns False on any failure."""
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port, limit=STREAM_LIMIT),
                timeout=self.connect_timeout,
            )
        except (OSError, TypeError, asyncio.TimeoutError) as exc:
            logger.warning("Connect to %s:%s failed: %s", self.host, self.port, exc)
            return False

        if self.username:
            try:
                res = await self.query(f"AUTH {quote(self.username)} {quote(self.password or '')};")
            except ConnectionError as exc:
                logger.warning("Auth to %s:%s failed: %s", self.host, self.port, exc)
                await self.close()
                return False
            if not res.ok:
                logger.warning("Auth to %s:%s rejected: %s", self.host, self.port, res.error)
                await self.close()
                return False
        return True

    async def select_keyspace(self, keyspace: str) -> QueryResult:
        return await self.query(f"USE {keyspace};")

    async def query(self, statement: str) -> QueryResult:
        async with self._lock:
            if self._reader is None or self._writer is None or self._writer.is_closing():
                raise ConnectionError("Not connected")
            try:
                self._writer.write(statement.encode() + b"\n")
                await self._writer.drain()
                line = await self._reader.readline()
            except (BrokenPipeError, ConnectionResetError) as exc:
                raise ConnectionError(f"Connection reset: {exc}") from exc
            if not line:
                raise ConnectionError("Connection closed by node")

        try:
            payload = json.loads(line)
        except ValueError:
            return QueryResult(ok=False, error="Malformed response")
        return QueryResult.from_payload(payload)

    async def close(self) -> None:
        writer, self._writer, self._reader = self._writer, None, None
        if writer is None:
            return
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass


def new_client(
    host: str,
    port: int | float,
    username: str | None = None,
    password: str | None = None,
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
) -> NodeClient:
    """Factory every component goes through to reach a node."""
    return XeondbClient(host, port, username, password, connect_timeout=connect_timeout)


async def close_quietly(client: NodeClient | None) -> None:
    """Close ``client``, ignoring errors from an already broken socket."""
    if client is None:
        return
    try:
        await client.close()
    except Exception:
        logger.debug("Ignoring error while closing node handle", exc_info=True)
