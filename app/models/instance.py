"""Instance record: one keyspace plus its owning account on one node."""

from enum import StrEnum
from typing import Any

from sqlmodel import Field, SQLModel

from app.models.base import clean_row

INSTANCES_DDL = (
    "CREATE TABLE IF NOT EXISTS instances (id varchar, user_email varchar, name varchar, "
    "plan varchar, host varchar, port int64, keyspace varchar, db_username varchar, "
    "db_password varchar, status varchar, created_at int64, PRIMARY KEY (id));"
)


class Plan(StrEnum):
    FREE = "free"
    PRO = "pro"


class InstanceStatus(StrEnum):
    ONLINE = "online"


class Instance(SQLModel):
    id: str
    user_email: str = ""
    name: str = ""
    plan: Plan = Plan.FREE
    host: str = ""
    port: int | float = 0
    keyspace: str = ""
    db_username: str = ""
    db_password: str = ""
    status: str = InstanceStatus.ONLINE
    created_at: int = 0

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Instance":
        data = clean_row(row)
        # Anything that is not explicitly "pro" was provisioned from the free pool
        data["plan"] = Plan.PRO if str(data.get("plan", "")).strip().lower() == "pro" else Plan.FREE
        return cls.model_validate(data)


# ── Pydantic schemas ─────────────────────────────────────────

class InstanceCreate(SQLModel):
    plan: str = Field(default=Plan.FREE, max_length=16)


class InstanceRead(SQLModel):
    """Instance as shown to owners and admins. Never carries the password."""

    id: str
    user_email: str
    name: str
    plan: Plan
    host: str
    port: int | float
    keyspace: str
    db_username: str
    status: str
    created_at: int


class InstanceCredentials(SQLModel):
    host: str
    port: int | float
    keyspace: str
    username: str
    password: str
