"""Shared test fixtures: in-memory fake nodes, metadata connection and test client."""

import asyncio
import json
import re
from collections import defaultdict
from collections.abc import AsyncGenerator
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from app.core import driver
from app.core.config import Settings, get_settings
from app.core.database import ManagedConnection, get_db
from app.core.driver import QueryResult
from app.main import app
from app.models import SCHEMA

_VALUE_RE = re.compile(r'"(?:[^"\\]|\\.)*"|[^,\s]+')
_INSERT_RE = re.compile(r"INSERT INTO (\S+) \(([^)]*)\) VALUES \((.*)\);$", re.S)
_SELECT_RE = re.compile(r"SELECT \* FROM (\S+?)(?: WHERE (\w+)=(.+?))?(?: ORDER BY [^;]*)?;$")
_DELETE_RE = re.compile(r"DELETE FROM (\S+) WHERE (\w+)=(.+);$")


def _literal(token: str) -> Any:
    if token.startswith('"'):
        return json.loads(token)
    if token in ("true", "false"):
        return token == "true"
    try:
        return int(token)
    except ValueError:
        return token


class FakeNode:
    """Understands just enough of the statement language for the control plane."""

    def __init__(self, host: str, port: int) -> None:
        self.host = host
        self.port = port
        self.keyspaces: set[str] = set()
        self.tables: dict[str, list[dict[str, Any]]] = defaultdict(list)
        self.metrics: dict[str, dict[str, Any]] = {}
        self.statements: list[str] = []
        self.clients: list["FakeClient"] = []
        self.connect_calls = 0
        self.connect_delay = 0.0
        self.accepting = True
        self._failures: list[tuple[str, str, bool]] = []
        self._raises: list[tuple[str, Exception, bool]] = []

    # ── Fault injection ──────────────────────────────────

    def fail(self, prefix: str, error: str, once: bool = False) -> None:
        """Answer statements starting with ``prefix`` with ``ok: false``."""
        self._failures.append((prefix, error, once))

    def raise_on(self, prefix: str, exc: Exception, once: bool = True) -> None:
        self._raises.append((prefix, exc, once))

    def drop_connections(self) -> None:
        for client in self.clients:
            client.dropped = True

    def rows(self, table: str) -> list[dict[str, Any]]:
        return self.tables[table]

    def ran(self, prefix: str) -> list[str]:
        return [s for s in self.statements if s.startswith(prefix)]

    # ── Interpreter ──────────────────────────────────────

    def execute(self, statement: str) -> dict[str, Any]:
        self.statements.append(statement)

        for i, (prefix, exc, once) in enumerate(self._raises):
            if statement.startswith(prefix):
                if once:
                    del self._raises[i]
                raise exc
        for i, (prefix, error, once) in enumerate(self._failures):
            if statement.startswith(prefix):
                if once:
                    del self._failures[i]
                return {"ok": False, "error": error}

        if statement.startswith("CREATE KEYSPACE IF NOT EXISTS "):
            self.keyspaces.add(statement.rstrip(";").split()[-1])
            return {"ok": True}
        if statement.startswith("DROP KEYSPACE "):
            keyspace = statement.rstrip(";").split()[-1]
            if keyspace not in self.keyspaces:
                return {"ok": False, "error": "Keyspace not found"}
            self.keyspaces.discard(keyspace)
            return {"ok": True}
        if statement.startswith("USE "):
            keyspace = statement.rstrip(";").split()[-1]
            if keyspace not in self.keyspaces:
                return {"ok": False, "error": "Keyspace not found"}
            return {"ok": True}
        if statement.startswith("CREATE TABLE IF NOT EXISTS "):
            self.tables.setdefault(statement.split()[5], [])
            return {"ok": True}
        if statement.startswith("SHOW METRICS IN "):
            keyspace = statement.rstrip(";").split()[-1]
            if keyspace not in self.keyspaces:
                return {"ok": False, "error": "Keyspace not found"}
            return {"ok": True, **self.metrics.get(keyspace, {})}

        if m := _INSERT_RE.match(statement):
            table, cols, values = m.groups()
            columns = [c.strip() for c in cols.split(",")]
            row = dict(zip(columns, (_literal(v) for v in _VALUE_RE.findall(values))))
            key = columns[0]
            rows = self.tables[table]
            rows[:] = [r for r in rows if r.get(key) != row[key]]
            rows.append(row)
            return {"ok": True}
        if m := _SELECT_RE.match(statement):
            table, col, value = m.groups()
            rows = self.tables[table]
            if col is None:
                return {"ok": True, "rows": [dict(r) for r in rows]}
            needle = _literal(value)
            found = next((r for r in rows if r.get(col) == needle), None)
            return {"ok": True, "found": found is not None, "row": dict(found) if found else None}
        if m := _DELETE_RE.match(statement):
            table, col, value = m.groups()
            needle = _literal(value)
            self.tables[table][:] = [r for r in self.tables[table] if r.get(col) != needle]
            return {"ok": True}

        return {"ok": False, "error": f"Unsupported statement: {statement}"}


class FakeClient:
    def __init__(self, node: FakeNode, username: str | None, password: str | None) -> None:
        self.node = node
        self.username = username
        self.password = password
        self.opened = False
        self.dropped = False
        self.closed = False

    @property
    def connected(self) -> bool:
        return self.opened and not self.dropped and not self.closed

    async def connect(self) -> bool:
        self.node.connect_calls += 1
        if self.node.connect_delay:
            await asyncio.sleep(self.node.connect_delay)
        if not self.node.accepting:
            return False
        self.opened = True
        return True

    async def select_keyspace(self, keyspace: str) -> QueryResult:
        return await self.query(f"USE {keyspace};")

    async def query(self, statement: str) -> QueryResult:
        if not self.connected:
            raise ConnectionError("Not connected")
        return QueryResult.from_payload(self.node.execute(statement))

    async def close(self) -> None:
        self.closed = True


class FakeCluster:
    def __init__(self) -> None:
        self.nodes: dict[tuple[str, int], FakeNode] = {}

    def node(self, host: str, port: int) -> FakeNode:
        key = (host, int(port))
        if key not in self.nodes:
            self.nodes[key] = FakeNode(host, int(port))
        return self.nodes[key]

    def new_client(
        self,
        host: str,
        port: int,
        username: str | None = None,
        password: str | None = None,
        connect_timeout: float = driver.DEFAULT_CONNECT_TIMEOUT,
    ) -> FakeClient:
        node = self.node(host, port)
        client = FakeClient(node, username, password)
        node.clients.append(client)
        return client


@pytest.fixture
def cluster(monkeypatch) -> FakeCluster:
    fake = FakeCluster()
    monkeypatch.setattr(driver, "new_client", fake.new_client)
    return fake


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        db_host="meta",
        db_port=9876,
        db_keyspace="xeon_console",
        free_instances=json.dumps(
            [{"host": "node1", "port": 9876, "username": "root", "password": "pw"}]
        ),
        paid_instances='[{host: "node2", port: 9877, username: "root", password: "pw2"}]',
        name_prefix="xeon_",
        max_databases_per_user=0,
        admin_token="admin-secret",
    )


@pytest.fixture
def node(cluster) -> FakeNode:
    """The single node of the free pool."""
    return cluster.node("node1", 9876)


@pytest.fixture
def pro_node(cluster) -> FakeNode:
    return cluster.node("node2", 9877)


@pytest.fixture
def meta_node(cluster) -> FakeNode:
    return cluster.node("meta", 9876)


@pytest.fixture
def fresh_db(cluster, settings) -> ManagedConnection:
    """Metadata connection that has not connected yet."""
    return ManagedConnection(
        lambda: driver.new_client(settings.db_host, settings.db_port),
        settings.db_keyspace,
        SCHEMA,
    )


@pytest.fixture
async def db(fresh_db) -> AsyncGenerator[ManagedConnection, None]:
    conn = fresh_db
    await conn.connect()
    yield conn
    await conn.close()


@pytest.fixture
async def client(db, settings) -> AsyncGenerator[AsyncClient, None]:
    """HTTPX async test client with metadata + settings overrides."""
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_settings] = lambda: settings

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
