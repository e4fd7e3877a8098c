"""Create a tenant keyspace and its owning account on a node."""

from __future__ import annotations

import logging

from app.core.config import Settings, get_settings
from app.core.driver import close_quietly
from app.core.statements import expect_ok, quote, require_identifier
from app.models.base import now_ms
from app.models.instance import Plan
from app.services.admin_client import connect_admin
from app.services.pools import PoolEntry

logger = logging.getLogger(__name__)

MB = 1024 * 1024
GB = 1024 * MB

# Privilege level given to generated owner accounts
OWNER_LEVEL = 1


def quota_bytes_for_plan(plan: Plan, settings: Settings | None = None) -> int:
    settings = settings or get_settings()
    if plan == Plan.PRO:
        return settings.paid_instance_storage * GB
    return settings.free_instance_storage * MB


def provisioning_steps(
    keyspace: str,
    username: str,
    password: str,
    quota_bytes: int,
    created_at: int,
) -> list[tuple[str, str]]:
    """The ordered (step, statement) pairs run against the node."""
    return [
        ("create keyspace", f"CREATE KEYSPACE IF NOT EXISTS {keyspace};"),
        (
            "create account",
            "INSERT INTO SYSTEM.USERS (username,password,level,enabled,created_at) VALUES "
            f"({quote(username)}, {quote(password)}, {OWNER_LEVEL}, true, {created_at});",
        ),
        (
            "set keyspace owner",
            "INSERT INTO SYSTEM.KEYSPACE_OWNERS (keyspace,owner_username,created_at) VALUES "
            f"({quote(keyspace)}, {quote(username)}, {created_at});",
        ),
        (
            "set keyspace quota",
            "INSERT INTO SYSTEM.KEYSPACE_QUOTAS (keyspace,quota_bytes,updated_at) VALUES "
            f"({quote(keyspace)}, {int(quota_bytes)}, {created_at});",
        ),
    ]


async def provision(
    target: PoolEntry,
    keyspace: str,
    username: str,
    password: str,
    quota_bytes: int,
    settings: Settings | None = None,
) -> None:
    """Create ``keyspace`` owned by a new ``username`` on ``target``.

    Steps run in order and stop at the first failure. Nothing is rolled
    back: ``CREATE KEYSPACE IF NOT EXISTS`` may have matched a keyspace that
    already existed, and dropping it would destroy someone else's data. A
    partial failure is logged with both names so it can be cleaned up by
    hand.

    Raises:
        InvalidInputError: a name fails the identifier grammar, or the pool
            entry has no admin credentials.
        ConnectivityError: the admin handshake failed.
        StatementError: a step returned non-success.
    """
    require_identifier(keyspace, "Keyspace name")
    require_identifier(username, "Account username")

    client = await connect_admin(target, settings)
    completed: list[str] = []
    try:
        for step, statement in provisioning_steps(keyspace, username, password, quota_bytes, now_ms()):
            expect_ok(await client.query(statement), f"Failed to {step}", step=step)
            completed.append(step)
    except Exception:
        if completed:
            logger.error(
                "Provisioning of keyspace %s (account %s) on %s:%s stopped after: %s",
                keyspace, username, target.host, target.port, ", ".join(completed),
            )
        raise
    finally:
        await close_quietly(client)

    logger.info("Provisioned keyspace %s on %s:%s", keyspace, target.host, target.port)
