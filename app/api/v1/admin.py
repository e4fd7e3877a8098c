"""Operator routes. Guarded by the shared admin token."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.api.deps import Db, SettingsDep, require_admin
from app.api.v1.instances import DeprovisionRead, to_deprovision_read
from app.core.errors import NotFoundError
from app.services import instances as instance_service
from app.services.metrics import InstanceMetrics, get_metrics

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


class OwnerDeletionRead(BaseModel):
    owner_email: str
    deleted: list[str]
    failed_instance_id: str | None = None
    error: str | None = None


@router.delete("/instances/{instance_id}", response_model=DeprovisionRead)
async def delete_instance(instance_id: str, db: Db, settings: SettingsDep) -> DeprovisionRead:
    report = await instance_service.delete_instance(db, instance_id, settings)
    return to_deprovision_read(report)


@router.get("/instances/{instance_id}/metrics", response_model=InstanceMetrics)
async def instance_metrics(instance_id: str, db: Db, settings: SettingsDep) -> InstanceMetrics:
    instance = await instance_service.get_instance(db, instance_id)
    if instance is None:
        raise NotFoundError("Instance not found")
    return await get_metrics(instance, settings)


@router.delete("/owners/{owner_email}/instances", response_model=OwnerDeletionRead)
async def delete_owner_instances(
    owner_email: str, db: Db, settings: SettingsDep
) -> OwnerDeletionRead:
    """Delete all instances of one owner; stops at the first one that fails."""
    result = await instance_service.delete_owner_instances(db, owner_email, settings)
    return OwnerDeletionRead(
        owner_email=owner_email,
        deleted=result.deleted,
        failed_instance_id=result.failed_instance_id,
        error=result.error,
    )
