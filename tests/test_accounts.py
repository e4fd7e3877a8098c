"""Tests for keyspace account grants and metrics."""

import re

import pytest

from app.core.errors import ConflictError, ConnectivityError, ForbiddenError, InvalidInputError
from app.models.account import AccountAccess
from app.services import accounts, instances
from app.services.metrics import get_metrics


@pytest.fixture
async def instance(db, node, settings):
    return await instances.create_instance(db, "owner@example.com", "free", settings)


@pytest.mark.asyncio
async def test_owner_listed_first(instance, settings):
    listed = await accounts.list_accounts(instance, settings)

    assert len(listed) == 1
    assert listed[0].username == instance.db_username
    assert listed[0].access == AccountAccess.OWNER
    assert listed[0].enabled is True
    assert listed[0].level == 1


@pytest.mark.asyncio
async def test_grant_and_revoke(instance, node, settings):
    account, password = await accounts.grant_account(instance, "alice", settings=settings)

    assert account.access == AccountAccess.GRANTED
    assert re.fullmatch(r"[0-9a-f]{32}", password)
    grant = node.rows("SYSTEM.KEYSPACE_GRANTS")[0]
    assert grant["keyspace_username"] == f"{instance.keyspace}#alice"

    await accounts.grant_account(instance, "bob", "chosen-pw", settings)
    listed = await accounts.list_accounts(instance, settings)
    assert [a.username for a in listed] == [instance.db_username, "alice", "bob"]

    await accounts.revoke_account(instance, "alice", settings)
    listed = await accounts.list_accounts(instance, settings)
    assert [a.username for a in listed] == [instance.db_username, "bob"]


@pytest.mark.asyncio
async def test_grant_rejects_taken_or_invalid_names(instance, settings):
    await accounts.grant_account(instance, "alice", settings=settings)

    with pytest.raises(ConflictError):
        await accounts.grant_account(instance, "alice", settings=settings)
    with pytest.raises(InvalidInputError):
        await accounts.grant_account(instance, "bad-name", settings=settings)


@pytest.mark.asyncio
async def test_owner_cannot_be_revoked(instance, settings):
    with pytest.raises(ForbiddenError):
        await accounts.revoke_account(instance, instance.db_username, settings)


@pytest.mark.asyncio
async def test_grants_of_other_keyspaces_are_ignored(instance, node, settings):
    node.rows("SYSTEM.KEYSPACE_GRANTS").append({"keyspace_username": "xeon_pro_ffffff#mallory"})

    listed = await accounts.list_accounts(instance, settings)

    assert "mallory" not in [a.username for a in listed]


@pytest.mark.asyncio
async def test_metrics_use_instance_credentials(instance, node, settings):
    node.metrics[instance.keyspace] = {"bytes_used": 1024, "quota_bytes": 2048, "over_quota": False}

    metrics = await get_metrics(instance, settings)

    assert metrics.bytes_used == 1024
    assert metrics.quota_bytes == 2048
    assert metrics.over_quota is False
    client = node.clients[-1]
    assert client.username == instance.db_username
    assert client.password == instance.db_password
    assert client.closed


@pytest.mark.asyncio
async def test_metrics_connect_failure(instance, node, settings):
    node.accepting = False
    with pytest.raises(ConnectivityError):
        await get_metrics(instance, settings)


@pytest.mark.asyncio
async def test_metrics_tolerate_non_numeric_fields(instance, node, settings):
    payload = {"bytes_used": "12MB", "quota_bytes": "1.5", "over_quota": "yes"}
    node.metrics[instance.keyspace] = payload

    metrics = await get_metrics(instance, settings)

    assert metrics.bytes_used == 0
    assert metrics.quota_bytes == 1
    assert metrics.over_quota is False
    assert metrics.raw == payload
