"""Create, look up and delete tenant instances.

Creating an instance picks a node from the plan's pool, provisions a fresh
keyspace and owner account on it, and only then writes the instance row.
Deleting runs the deprovisioner first and removes local metadata only once
the remote keyspace is gone.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from app.core.config import Settings, get_settings
from app.core.errors import (
    CapacityError,
    ControlPlaneError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
)
from app.core.statements import clean_email, expect_ok, fetch_one, fetch_rows, is_email, quote
from app.models.base import now_ms
from app.models.instance import Instance, InstanceStatus, Plan
from app.models.whitelist import WhitelistKind
from app.services import backups, whitelist
from app.services.deprovisioner import DeprovisionReport, deprovision
from app.services.naming import (
    account_username,
    keyspace_name,
    new_account_password,
    new_display_name,
    new_instance_id,
    parse_plan,
)
from app.services.pools import select_target
from app.services.provisioner import provision, quota_bytes_for_plan

logger = logging.getLogger(__name__)


# ── Lookups ──────────────────────────────────────────────────

async def get_instance(db, instance_id: str) -> Instance | None:
    row = await fetch_one(
        db,
        f"SELECT * FROM instances WHERE id={quote(str(instance_id or '').strip())};",
        "Failed to load instance",
    )
    return Instance.from_row(row) if row else None


async def list_instances(db) -> list[Instance]:
    rows = await fetch_rows(db, "SELECT * FROM instances ORDER BY id DESC;", "Failed to list instances")
    return [Instance.from_row(r) for r in rows if r.get("id")]


async def list_owner_instances(db, owner_email: str) -> list[Instance]:
    """Instances of one owner, newest id first."""
    needle = clean_email(owner_email)
    owned = [i for i in await list_instances(db) if clean_email(i.user_email) == needle]
    owned.sort(key=lambda i: i.id, reverse=True)
    return owned


async def get_owned_instance(db, instance_id: str, owner_email: str) -> Instance:
    instance = await get_instance(db, instance_id)
    if instance is None:
        raise NotFoundError("Instance not found")
    if clean_email(instance.user_email) != clean_email(owner_email):
        raise ForbiddenError("Forbidden")
    return instance


# ── Create ───────────────────────────────────────────────────

async def create_instance(
    db,
    owner_email: str,
    plan: Plan | str = Plan.FREE,
    settings: Settings | None = None,
) -> Instance:
    """Provision a new instance for ``owner_email``.

    Raises:
        InvalidInputError: malformed email or unknown plan.
        CapacityError: the owner is at their limit, or the pool is empty.
        ConnectivityError / StatementError: provisioning failed.
    """
    settings = settings or get_settings()
    email = clean_email(owner_email)
    if not is_email(email):
        raise InvalidInputError("A valid owner email is required")
    plan = parse_plan(plan)

    limit = settings.max_databases_per_user
    if limit > 0 and len(await list_owner_instances(db, email)) >= limit:
        raise CapacityError(f"You have reached the maximum allowed databases ({limit})")

    target = select_target(plan, settings)
    if target is None:
        raise CapacityError(f"No {plan} instances available")

    instance_id = new_instance_id()
    instance = Instance(
        id=instance_id,
        user_email=email,
        name=new_display_name(plan),
        plan=plan,
        host=target.host,
        port=target.port,
        keyspace=keyspace_name(plan, instance_id, settings.name_prefix),
        db_username=account_username(instance_id, settings.name_prefix),
        db_password=new_account_password(),
        status=InstanceStatus.ONLINE,
        created_at=now_ms(),
    )

    await provision(
        target,
        instance.keyspace,
        instance.db_username,
        instance.db_password,
        quota_bytes_for_plan(plan, settings),
        settings,
    )

    try:
        expect_ok(
            await db.query(
                "INSERT INTO instances (id, user_email, name, plan, host, port, keyspace, "
                "db_username, db_password, status, created_at) VALUES ("
                f"{quote(instance.id)}, {quote(instance.user_email)}, {quote(instance.name)}, "
                f"{quote(instance.plan)}, {quote(instance.host)}, {instance.port}, "
                f"{quote(instance.keyspace)}, {quote(instance.db_username)}, "
                f"{quote(instance.db_password)}, {quote(instance.status)}, {instance.created_at});"
            ),
            "Failed to create instance",
        )
    except Exception:
        logger.error(
            "Keyspace %s was provisioned on %s:%s but its instance row was not saved",
            instance.keyspace, instance.host, instance.port,
        )
        raise

    logger.info("Created %s instance %s for %s", plan, instance.id, email)
    return instance


async def add_default_whitelist(db, instance: Instance, client_ip: str | None = None) -> None:
    """Seed the open default entry plus the creator's own address. Never raises."""
    seeds = [(whitelist.DEFAULT_CIDR, WhitelistKind.DEFAULT)]
    own = whitelist.host_cidr(client_ip) if client_ip else None
    if own:
        seeds.append((own, WhitelistKind.AUTO))

    for cidr, kind in seeds:
        try:
            await whitelist.add_entry(db, instance.id, cidr, kind)
        except Exception:
            logger.warning("Could not add %s whitelist entry %s for %s", kind, cidr, instance.id)


# ── Delete ───────────────────────────────────────────────────

async def delete_metadata(db, instance_id: str) -> None:
    """Remove whitelist and backup rows (best effort), then the instance row."""
    for entry in await whitelist.list_by_instance(db, instance_id):
        try:
            await whitelist.delete_entry(db, entry.id)
        except Exception as exc:
            logger.warning("Could not delete whitelist entry %s: %s", entry.id, exc)

    for backup in await backups.list_by_instance(db, instance_id):
        try:
            await backups.delete_backup(db, backup.id)
        except Exception as exc:
            logger.warning("Could not delete backup row %s: %s", backup.id, exc)

    expect_ok(
        await db.query(f"DELETE FROM instances WHERE id={quote(instance_id)};"),
        "Failed to delete instance row",
    )


async def teardown_instance(
    db, instance: Instance, settings: Settings | None = None
) -> DeprovisionReport:
    report = await deprovision(instance, settings)
    await delete_metadata(db, instance.id)
    logger.info("Deleted instance %s", instance.id)
    return report


async def delete_instance(
    db, instance_id: str, settings: Settings | None = None
) -> DeprovisionReport:
    """Deprovision an instance and cascade-delete its metadata.

    Raises:
        NotFoundError: no such instance.
        ConsistencyError: the record failed a safety check.
        ConnectivityError / StatementError: the teardown failed; the
            instance row is kept.
    """
    instance = await get_instance(db, instance_id)
    if instance is None:
        raise NotFoundError("Instance not found")
    return await teardown_instance(db, instance, settings)


@dataclass
class OwnerDeletion:
    deleted: list[str] = field(default_factory=list)
    failed_instance_id: str | None = None
    error: str | None = None


async def delete_owner_instances(
    db, owner_email: str, settings: Settings | None = None
) -> OwnerDeletion:
    """Delete every instance of an owner, stopping at the first failure."""
    result = OwnerDeletion()
    for instance in await list_owner_instances(db, owner_email):
        try:
            await teardown_instance(db, instance, settings)
        except ControlPlaneError as exc:
            result.failed_instance_id = instance.id
            result.error = str(exc)
            break
        result.deleted.append(instance.id)
    return result
