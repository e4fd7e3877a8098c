"""Whitelist entry: a CIDR allowed to reach an instance."""

from enum import StrEnum

from sqlmodel import SQLModel

WHITELIST_DDL = (
    "CREATE TABLE IF NOT EXISTS instance_whitelist (id varchar, instance_id varchar, "
    "cidr varchar, kind varchar, created_at int64, PRIMARY KEY (id));"
)


class WhitelistKind(StrEnum):
    DEFAULT = "default"
    AUTO = "auto"
    CUSTOM = "custom"


class WhitelistEntry(SQLModel):
    id: str
    instance_id: str
    cidr: str
    kind: WhitelistKind = WhitelistKind.CUSTOM
    created_at: int = 0
