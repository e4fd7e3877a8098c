"""Tear down an instance's keyspace and account on its node.

The teardown is a fixed sequence of phases, each with a failure policy.
Best-effort phases log and move on (an orphaned grant row is harmless);
fatal phases abort the whole operation. Nothing is retried: a failed drop
is left for an operator to look at rather than repeated automatically.

Before any remote call the record itself is checked. The stored account
username must equal the one derived from the record id, so a corrupted or
foreign record can never steer the teardown at another tenant's keyspace.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum

from app.core.config import Settings, get_settings
from app.core.driver import NodeClient, close_quietly
from app.core.errors import ConsistencyError, ControlPlaneError
from app.core.statements import expect_ok, is_identifier, quote
from app.models.instance import Instance
from app.services.admin_client import connect_admin_for_instance
from app.services.naming import account_username

logger = logging.getLogger(__name__)

GRANT_SEPARATOR = "#"


class Phase(StrEnum):
    REVOKE_GRANTS = "revoke grants"
    REMOVE_OWNER = "remove keyspace owner"
    REMOVE_QUOTA = "remove keyspace quota"
    DROP_KEYSPACE = "drop keyspace"
    DELETE_ACCOUNT = "delete account"


class FailurePolicy(StrEnum):
    FATAL = "fatal"
    BEST_EFFORT = "best_effort"


PHASES: tuple[tuple[Phase, FailurePolicy], ...] = (
    (Phase.REVOKE_GRANTS, FailurePolicy.BEST_EFFORT),
    (Phase.REMOVE_OWNER, FailurePolicy.BEST_EFFORT),
    (Phase.REMOVE_QUOTA, FailurePolicy.BEST_EFFORT),
    (Phase.DROP_KEYSPACE, FailurePolicy.FATAL),
    (Phase.DELETE_ACCOUNT, FailurePolicy.BEST_EFFORT),
)


@dataclass
class DeprovisionReport:
    instance_id: str
    keyspace: str
    username: str
    completed: list[Phase] = field(default_factory=list)
    failed: list[Phase] = field(default_factory=list)
    revoked_grants: int = 0


def check_record(instance: Instance, prefix: str) -> tuple[str, str]:
    """Return ``(keyspace, username)`` or raise ConsistencyError."""
    keyspace = str(instance.keyspace or "").strip()
    username = str(instance.db_username or "").strip()

    if not keyspace or not is_identifier(keyspace) or not keyspace.startswith(prefix):
        raise ConsistencyError("Refusing to deprovision: invalid keyspace")
    if not username or not is_identifier(username) or not username.startswith(prefix):
        raise ConsistencyError("Refusing to deprovision: invalid account username")

    instance_id = str(instance.id or "").strip()
    try:
        expected = account_username(instance_id, prefix) if instance_id else ""
    except ControlPlaneError:
        expected = ""
    if not expected or username != expected:
        raise ConsistencyError("Refusing to deprovision: account username does not match instance id")
    return keyspace, username


# ── Phase handlers ───────────────────────────────────────────

async def _revoke_grants(client: NodeClient, report: DeprovisionReport) -> None:
    res = expect_ok(
        await client.query("SELECT * FROM SYSTEM.KEYSPACE_GRANTS ORDER BY keyspace_username ASC;"),
        "Failed to list grants",
    )
    prefix = report.keyspace + GRANT_SEPARATOR
    for row in res.rows:
        key = str(row.get("keyspace_username") or row.get("keyspaceUsername") or "")
        if not key.startswith(prefix):
            continue
        try:
            expect_ok(
                await client.query(
                    f"DELETE FROM SYSTEM.KEYSPACE_GRANTS WHERE keyspace_username={quote(key)};"
                ),
                "Failed to delete grant",
            )
            report.revoked_grants += 1
        except Exception as exc:
            logger.warning("Could not revoke grant %s: %s", key, exc)


async def _remove_owner(client: NodeClient, report: DeprovisionReport) -> None:
    expect_ok(
        await client.query(
            f"DELETE FROM SYSTEM.KEYSPACE_OWNERS WHERE keyspace={quote(report.keyspace)};"
        ),
        "Failed to remove keyspace owner",
    )


async def _remove_quota(client: NodeClient, report: DeprovisionReport) -> None:
    expect_ok(
        await client.query(
            f"DELETE FROM SYSTEM.KEYSPACE_QUOTAS WHERE keyspace={quote(report.keyspace)};"
        ),
        "Failed to remove keyspace quota",
    )


async def _drop_keyspace(client: NodeClient, report: DeprovisionReport) -> None:
    expect_ok(
        await client.query(f"DROP KEYSPACE {report.keyspace};"),
        "Failed to drop keyspace",
        step=Phase.DROP_KEYSPACE,
    )


async def _delete_account(client: NodeClient, report: DeprovisionReport) -> None:
    expect_ok(
        await client.query(f"DELETE FROM SYSTEM.USERS WHERE username={quote(report.username)};"),
        "Failed to delete account",
    )


HANDLERS: dict[Phase, Callable[[NodeClient, DeprovisionReport], Awaitable[None]]] = {
    Phase.REVOKE_GRANTS: _revoke_grants,
    Phase.REMOVE_OWNER: _remove_owner,
    Phase.REMOVE_QUOTA: _remove_quota,
    Phase.DROP_KEYSPACE: _drop_keyspace,
    Phase.DELETE_ACCOUNT: _delete_account,
}


async def run_phases(
    client: NodeClient,
    report: DeprovisionReport,
    phases: tuple[tuple[Phase, FailurePolicy], ...] = PHASES,
) -> DeprovisionReport:
    for phase, policy in phases:
        try:
            await HANDLERS[phase](client, report)
        except Exception as exc:
            if policy == FailurePolicy.FATAL:
                logger.error(
                    "Deprovisioning %s stopped at '%s': %s", report.instance_id, phase, exc
                )
                raise
            logger.warning("Deprovisioning %s: '%s' failed: %s", report.instance_id, phase, exc)
            report.failed.append(phase)
        else:
            report.completed.append(phase)
    return report


async def deprovision(instance: Instance, settings: Settings | None = None) -> DeprovisionReport:
    """Remove the keyspace, bookkeeping rows and account of ``instance``.

    Raises:
        ConsistencyError: the record failed a safety check (no remote call made).
        ConnectivityError: no admin credentials for the node, or connect failed.
        StatementError: the keyspace drop failed.
    """
    settings = settings or get_settings()
    keyspace, username = check_record(instance, settings.name_prefix)
    report = DeprovisionReport(instance_id=instance.id, keyspace=keyspace, username=username)

    client = await connect_admin_for_instance(instance, settings)
    try:
        await run_phases(client, report)
    finally:
        await close_quietly(client)

    logger.info("Deprovisioned keyspace %s from %s:%s", keyspace, instance.host, instance.port)
    return report
