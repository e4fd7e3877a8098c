"""Keyspace accounts: the owner plus any granted node users."""

from enum import StrEnum

from sqlmodel import Field, SQLModel


class AccountAccess(StrEnum):
    OWNER = "owner"
    GRANTED = "granted"


class KeyspaceAccount(SQLModel):
    username: str
    access: AccountAccess
    enabled: bool | None = None
    level: int | None = None
    created_at: int | None = None


# ── Pydantic schemas ─────────────────────────────────────────

class AccountCreate(SQLModel):
    username: str = Field(min_length=1, max_length=128)
    password: str = Field(default="", max_length=256)  # generated when blank


class AccountCreated(SQLModel):
    keyspace: str
    account: KeyspaceAccount
    password: str = Field(description="Shown once, store it securely")
