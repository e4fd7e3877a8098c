"""Tests for safety-checked keyspace teardown."""

import pytest

from app.core.errors import ConnectivityError, ConsistencyError, StatementError
from app.models.instance import Instance, Plan
from app.services.deprovisioner import (
    PHASES,
    FailurePolicy,
    Phase,
    check_record,
    deprovision,
)
from app.services.pools import PoolEntry
from app.services.provisioner import provision

INSTANCE_ID = "0123456789abcdef01234567"
KEYSPACE = "xeon_free_012345"
USERNAME = "xeon_" + INSTANCE_ID


def _instance(**overrides) -> Instance:
    data = dict(
        id=INSTANCE_ID,
        user_email="owner@example.com",
        name="free-abcdef",
        plan=Plan.FREE,
        host="node1",
        port=9876,
        keyspace=KEYSPACE,
        db_username=USERNAME,
        db_password="pw",
    )
    data.update(overrides)
    return Instance(**data)


async def _provisioned(node, settings) -> None:
    target = PoolEntry(host="node1", port=9876, username="root", password="pw")
    await provision(target, KEYSPACE, USERNAME, "pw", 1, settings)
    node.statements.clear()


def test_phase_order_and_policies():
    assert [p for p, _ in PHASES] == [
        Phase.REVOKE_GRANTS,
        Phase.REMOVE_OWNER,
        Phase.REMOVE_QUOTA,
        Phase.DROP_KEYSPACE,
        Phase.DELETE_ACCOUNT,
    ]
    fatal = [p for p, policy in PHASES if policy == FailurePolicy.FATAL]
    assert fatal == [Phase.DROP_KEYSPACE]


@pytest.mark.parametrize("overrides", [
    {"db_username": "xeon_someone_else"},
    {"db_username": ""},
    {"db_username": "other_" + INSTANCE_ID},
    {"keyspace": ""},
    {"keyspace": "xeon_free; DROP"},
    {"keyspace": "tenant_free_012345"},
    {"id": "ffffffffffffffffffffffff"},
])
def test_check_record_rejects(overrides):
    with pytest.raises(ConsistencyError):
        check_record(_instance(**overrides), "xeon_")


@pytest.mark.asyncio
async def test_mismatched_record_makes_no_remote_calls(node, settings):
    instance = _instance(db_username="xeon_ffffffffffffffffffffffff")

    with pytest.raises(ConsistencyError):
        await deprovision(instance, settings)

    assert node.connect_calls == 0
    assert node.statements == []


@pytest.mark.asyncio
async def test_full_teardown(node, settings):
    await _provisioned(node, settings)
    node.rows("SYSTEM.KEYSPACE_GRANTS").extend([
        {"keyspace_username": f"{KEYSPACE}#alice", "created_at": 1},
        {"keyspace_username": "xeon_pro_ffffff#bob", "created_at": 1},
    ])

    report = await deprovision(_instance(), settings)

    assert report.completed == [p for p, _ in PHASES]
    assert report.failed == []
    assert report.revoked_grants == 1
    assert KEYSPACE not in node.keyspaces
    assert node.rows("SYSTEM.USERS") == []
    assert node.rows("SYSTEM.KEYSPACE_OWNERS") == []
    assert node.rows("SYSTEM.KEYSPACE_QUOTAS") == []
    assert node.rows("SYSTEM.KEYSPACE_GRANTS") == [
        {"keyspace_username": "xeon_pro_ffffff#bob", "created_at": 1}
    ]
    assert all(c.closed for c in node.clients)


@pytest.mark.asyncio
async def test_drop_failure_is_fatal_and_keeps_account(node, settings):
    await _provisioned(node, settings)
    node.fail("DROP KEYSPACE", "keyspace busy")

    with pytest.raises(StatementError) as exc_info:
        await deprovision(_instance(), settings)

    assert exc_info.value.step == Phase.DROP_KEYSPACE
    assert node.ran("DELETE FROM SYSTEM.USERS") == []
    assert node.rows("SYSTEM.USERS")[0]["username"] == USERNAME
    assert all(c.closed for c in node.clients)


@pytest.mark.asyncio
async def test_best_effort_failures_do_not_stop_teardown(node, settings):
    await _provisioned(node, settings)
    node.fail("DELETE FROM SYSTEM.KEYSPACE_OWNERS", "timeout")
    node.fail("DELETE FROM SYSTEM.USERS", "timeout")

    report = await deprovision(_instance(), settings)

    assert report.failed == [Phase.REMOVE_OWNER, Phase.DELETE_ACCOUNT]
    assert Phase.DROP_KEYSPACE in report.completed
    assert KEYSPACE not in node.keyspaces


@pytest.mark.asyncio
async def test_single_grant_failure_is_skipped(node, settings):
    await _provisioned(node, settings)
    node.rows("SYSTEM.KEYSPACE_GRANTS").extend([
        {"keyspace_username": f"{KEYSPACE}#alice"},
        {"keyspace_username": f"{KEYSPACE}#bob"},
    ])
    node.fail(f'DELETE FROM SYSTEM.KEYSPACE_GRANTS WHERE keyspace_username="{KEYSPACE}#alice"', "x")

    report = await deprovision(_instance(), settings)

    assert report.revoked_grants == 1
    assert Phase.REVOKE_GRANTS in report.completed


@pytest.mark.asyncio
async def test_unknown_node_has_no_admin_credentials(node, settings):
    with pytest.raises(ConnectivityError):
        await deprovision(_instance(host="elsewhere"), settings)
    assert node.connect_calls == 0


@pytest.mark.asyncio
async def test_admin_lookup_falls_back_to_other_pool(pro_node, settings):
    pro_node.keyspaces.add(KEYSPACE)

    report = await deprovision(_instance(host="node2", port=9877), settings)

    assert Phase.DROP_KEYSPACE in report.completed
    assert pro_node.clients[0].password == "pw2"
