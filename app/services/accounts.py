"""Node accounts with access to an instance keyspace.

The owner comes from ``SYSTEM.KEYSPACE_OWNERS``; extra accounts are rows
in ``SYSTEM.KEYSPACE_GRANTS`` keyed ``<keyspace>#<username>``. All reads and
writes go through an admin connection.
"""

from __future__ import annotations

import secrets

from app.core.config import Settings
from app.core.driver import NodeClient, close_quietly
from app.core.errors import ConflictError, ForbiddenError, InvalidInputError
from app.core.statements import expect_ok, fetch_one, fetch_rows, is_identifier, quote
from app.models.account import AccountAccess, KeyspaceAccount
from app.models.base import now_ms
from app.models.instance import Instance
from app.services.admin_client import connect_admin_for_instance
from app.services.deprovisioner import GRANT_SEPARATOR
from app.services.provisioner import OWNER_LEVEL


def _keyspace(instance: Instance) -> str:
    keyspace = str(instance.keyspace or "").strip()
    if not is_identifier(keyspace):
        raise InvalidInputError("Invalid instance keyspace")
    return keyspace


def _username(value: str) -> str:
    username = str(value or "").strip()
    if not is_identifier(username):
        raise InvalidInputError("Invalid username")
    return username


async def _owner(client: NodeClient, keyspace: str) -> str:
    row = await fetch_one(
        client,
        f"SELECT * FROM SYSTEM.KEYSPACE_OWNERS WHERE keyspace={quote(keyspace)};",
        "Failed to load keyspace owner",
    )
    return str(row.get("owner_username") or "") if row else ""


async def _load_accounts(client: NodeClient, keyspace: str) -> list[KeyspaceAccount]:
    access: dict[str, AccountAccess] = {}
    owner = await _owner(client, keyspace)
    if owner:
        access[owner] = AccountAccess.OWNER

    grants = await fetch_rows(
        client,
        "SELECT * FROM SYSTEM.KEYSPACE_GRANTS ORDER BY keyspace_username ASC;",
        "Failed to load grants",
    )
    prefix = keyspace + GRANT_SEPARATOR
    for row in grants:
        key = str(row.get("keyspace_username") or row.get("keyspaceUsername") or "")
        username = key[len(prefix):] if key.startswith(prefix) else ""
        if username:
            access.setdefault(username, AccountAccess.GRANTED)

    accounts = []
    for username, kind in access.items():
        row = await fetch_one(
            client,
            f"SELECT * FROM SYSTEM.USERS WHERE username={quote(username)};",
            "Failed to load user",
        ) or {}
        accounts.append(KeyspaceAccount(
            username=username,
            access=kind,
            enabled=row.get("enabled"),
            level=row.get("level"),
            created_at=row.get("created_at"),
        ))

    accounts.sort(key=lambda a: (a.access != AccountAccess.OWNER, a.username))
    return accounts


async def list_accounts(
    instance: Instance, settings: Settings | None = None
) -> list[KeyspaceAccount]:
    """Owner first, then granted accounts by name."""
    keyspace = _keyspace(instance)
    client = await connect_admin_for_instance(instance, settings)
    try:
        return await _load_accounts(client, keyspace)
    finally:
        await close_quietly(client)


async def grant_account(
    instance: Instance,
    username: str,
    password: str = "",
    settings: Settings | None = None,
) -> tuple[KeyspaceAccount, str]:
    """Create a node account and grant it the instance keyspace.

    Returns the account and its password (generated when blank). Raises
    ConflictError if the username is already taken on the node.
    """
    keyspace = _keyspace(instance)
    username = _username(username)
    password = password.strip() or secrets.token_hex(16)
    created_at = now_ms()

    client = await connect_admin_for_instance(instance, settings)
    try:
        existing = await fetch_one(
            client,
            f"SELECT * FROM SYSTEM.USERS WHERE username={quote(username)};",
            "Failed to check user",
        )
        if existing:
            raise ConflictError("User already exists")

        expect_ok(
            await client.query(
                "INSERT INTO SYSTEM.USERS (username,password,level,enabled,created_at) VALUES "
                f"({quote(username)}, {quote(password)}, {OWNER_LEVEL}, true, {created_at});"
            ),
            "Failed to create user",
        )
        expect_ok(
            await client.query(
                "INSERT INTO SYSTEM.KEYSPACE_GRANTS (keyspace_username,created_at) VALUES "
                f"({quote(keyspace + GRANT_SEPARATOR + username)}, {created_at});"
            ),
            "Failed to grant access",
        )
    finally:
        await close_quietly(client)

    account = KeyspaceAccount(
        username=username,
        access=AccountAccess.GRANTED,
        enabled=True,
        level=OWNER_LEVEL,
        created_at=created_at,
    )
    return account, password


async def revoke_account(
    instance: Instance, username: str, settings: Settings | None = None
) -> None:
    """Remove a grant. The keyspace owner cannot be revoked."""
    keyspace = _keyspace(instance)
    username = _username(username)

    client = await connect_admin_for_instance(instance, settings)
    try:
        if await _owner(client, keyspace) == username:
            raise ForbiddenError("Cannot remove the keyspace owner")
        expect_ok(
            await client.query(
                "DELETE FROM SYSTEM.KEYSPACE_GRANTS WHERE keyspace_username="
                f"{quote(keyspace + GRANT_SEPARATOR + username)};"
            ),
            "Failed to revoke access",
        )
    finally:
        await close_quietly(client)
