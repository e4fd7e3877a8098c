"""Instance routes. Every lookup is scoped to the calling owner."""

from fastapi import APIRouter, Request, status
from pydantic import BaseModel

from app.api.deps import Db, Owner, SettingsDep
from app.models.account import AccountCreate, AccountCreated, KeyspaceAccount
from app.models.instance import Instance, InstanceCreate, InstanceCredentials, InstanceRead
from app.services import accounts
from app.services import instances as instance_service
from app.services.deprovisioner import DeprovisionReport
from app.services.metrics import InstanceMetrics, get_metrics

router = APIRouter(prefix="/instances", tags=["instances"])


class DeprovisionRead(BaseModel):
    instance_id: str
    keyspace: str
    username: str
    completed: list[str]
    failed: list[str]
    revoked_grants: int


def _to_read(instance: Instance) -> InstanceRead:
    return InstanceRead.model_validate(instance.model_dump())


def to_deprovision_read(report: DeprovisionReport) -> DeprovisionRead:
    return DeprovisionRead(
        instance_id=report.instance_id,
        keyspace=report.keyspace,
        username=report.username,
        completed=[str(p) for p in report.completed],
        failed=[str(p) for p in report.failed],
        revoked_grants=report.revoked_grants,
    )


@router.get("", response_model=list[InstanceRead])
async def list_instances(owner: Owner, db: Db) -> list[InstanceRead]:
    return [_to_read(i) for i in await instance_service.list_owner_instances(db, owner)]


@router.post("", response_model=InstanceRead, status_code=status.HTTP_201_CREATED)
async def create_instance(
    body: InstanceCreate,
    request: Request,
    owner: Owner,
    db: Db,
    settings: SettingsDep,
) -> InstanceRead:
    instance = await instance_service.create_instance(db, owner, body.plan, settings)
    client_ip = request.client.host if request.client else None
    await instance_service.add_default_whitelist(db, instance, client_ip)
    return _to_read(instance)


@router.delete("/{instance_id}", response_model=DeprovisionRead)
async def delete_instance(
    instance_id: str,
    owner: Owner,
    db: Db,
    settings: SettingsDep,
) -> DeprovisionRead:
    instance = await instance_service.get_owned_instance(db, instance_id, owner)
    report = await instance_service.teardown_instance(db, instance, settings)
    return to_deprovision_read(report)


@router.get("/{instance_id}/credentials", response_model=InstanceCredentials)
async def get_credentials(instance_id: str, owner: Owner, db: Db) -> InstanceCredentials:
    instance = await instance_service.get_owned_instance(db, instance_id, owner)
    return InstanceCredentials(
        host=instance.host,
        port=instance.port,
        keyspace=instance.keyspace,
        username=instance.db_username,
        password=instance.db_password,
    )


@router.get("/{instance_id}/metrics", response_model=InstanceMetrics)
async def instance_metrics(
    instance_id: str,
    owner: Owner,
    db: Db,
    settings: SettingsDep,
) -> InstanceMetrics:
    instance = await instance_service.get_owned_instance(db, instance_id, owner)
    return await get_metrics(instance, settings)


# ── Keyspace accounts ────────────────────────────────────────

@router.get("/{instance_id}/accounts", response_model=list[KeyspaceAccount])
async def list_accounts(
    instance_id: str,
    owner: Owner,
    db: Db,
    settings: SettingsDep,
) -> list[KeyspaceAccount]:
    instance = await instance_service.get_owned_instance(db, instance_id, owner)
    return await accounts.list_accounts(instance, settings)


@router.post(
    "/{instance_id}/accounts",
    response_model=AccountCreated,
    status_code=status.HTTP_201_CREATED,
)
async def create_account(
    instance_id: str,
    body: AccountCreate,
    owner: Owner,
    db: Db,
    settings: SettingsDep,
) -> AccountCreated:
    instance = await instance_service.get_owned_instance(db, instance_id, owner)
    account, password = await accounts.grant_account(
        instance, body.username, body.password, settings
    )
    return AccountCreated(keyspace=instance.keyspace, account=account, password=password)


@router.delete("/{instance_id}/accounts/{username}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_account(
    instance_id: str,
    username: str,
    owner: Owner,
    db: Db,
    settings: SettingsDep,
) -> None:
    instance = await instance_service.get_owned_instance(db, instance_id, owner)
    await accounts.revoke_account(instance, username, settings)
