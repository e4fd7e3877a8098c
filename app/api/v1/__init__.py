"""V1 API router aggregation."""

from fastapi import APIRouter

from app.api.v1.admin import router as admin_router
from app.api.v1.instances import router as instances_router
from app.api.v1.system import router as system_router

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(instances_router)
v1_router.include_router(admin_router)
v1_router.include_router(system_router)
