"""Instance pools: the nodes each plan may provision onto.

Pools come from configuration as JSON lists of ``{host, port, username,
password}`` objects. Hand-written config often leaves keys unquoted
(``[{host: "10.0.0.5", port: 9876}]``), so that form is accepted too.
Entries without a host or a usable port are dropped silently.
"""

from __future__ import annotations

import json
import logging
import math
import random
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from app.core.config import Settings, get_settings
from app.models.instance import Plan

logger = logging.getLogger(__name__)

_UNQUOTED_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)\s*:")


@dataclass(frozen=True)
class PoolEntry:
    host: str
    port: int | float
    username: str | None = None
    password: str | None = None

    def matches(self, host: str, port: int | float) -> bool:
        return self.host == host and self.port == port


def _load(raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError:
        relaxed = _UNQUOTED_KEY_RE.sub(r'\1"\2":', raw.strip())
        return json.loads(relaxed)


def _coerce_port(value: Any) -> int | float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return int(value) if value == int(value) else value


def _entry(item: Any) -> PoolEntry | None:
    if not isinstance(item, dict):
        return None
    host = item.get("host")
    port = _coerce_port(item.get("port"))
    if not isinstance(host, str) or not host or port is None:
        return None
    username = item.get("username")
    password = item.get("password")
    return PoolEntry(
        host=host,
        port=port,
        username=username if isinstance(username, str) else None,
        password=password if isinstance(password, str) else None,
    )


def parse_pool(config: str | Sequence[Any] | None) -> list[PoolEntry]:
    """Parse a pool definition, keeping only valid entries. Never raises."""
    if not config:
        return []
    if isinstance(config, str):
        try:
            config = _load(config)
        except ValueError:
            logger.warning("Ignoring unparseable instance pool configuration")
            return []
    if not isinstance(config, list):
        return []

    entries = []
    for item in config:
        entry = _entry(item)
        if entry is not None:
            entries.append(entry)
    return entries


def pool_for_plan(plan: Plan, settings: Settings | None = None) -> list[PoolEntry]:
    settings = settings or get_settings()
    raw = settings.paid_instances if plan == Plan.PRO else settings.free_instances
    return parse_pool(raw)


def pick_from_pool(pool: Sequence[PoolEntry]) -> PoolEntry | None:
    if not pool:
        return None
    return pool[random.randrange(len(pool))]


def select_target(plan: Plan, settings: Settings | None = None) -> PoolEntry | None:
    """Pick one valid entry of the plan's pool uniformly at random.

    Returns None when the pool is empty or holds no valid entries; callers
    treat that as "no instances available".
    """
    return pick_from_pool(pool_for_plan(plan, settings))


def find_admin_credentials(
    host: str,
    port: int | float,
    plan: Plan,
    settings: Settings | None = None,
) -> PoolEntry | None:
    """Locate the pool entry for ``host:port``.

    The plan's own pool is searched first; nodes occasionally move between
    pools, so every other pool is searched after that.
    """
    settings = settings or get_settings()
    free_pool = parse_pool(settings.free_instances)
    paid_pool = parse_pool(settings.paid_instances)

    own = paid_pool if plan == Plan.PRO else free_pool
    for entry in own:
        if entry.matches(host, port):
            return entry
    for entry in free_pool + paid_pool:
        if entry.matches(host, port):
            return entry
    return None
