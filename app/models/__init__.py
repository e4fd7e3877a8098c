"""Import all records; SCHEMA lists the DDL run on every metadata (re)connect."""

from app.models.account import AccountAccess, AccountCreate, AccountCreated, KeyspaceAccount
from app.models.backup import BACKUPS_DDL, Backup
from app.models.instance import (
    INSTANCES_DDL,
    Instance,
    InstanceCreate,
    InstanceCredentials,
    InstanceRead,
    InstanceStatus,
    Plan,
)
from app.models.user import USERS_DDL
from app.models.whitelist import WHITELIST_DDL, WhitelistEntry, WhitelistKind

SCHEMA: tuple[tuple[str, str], ...] = (
    ("users", USERS_DDL),
    ("instances", INSTANCES_DDL),
    ("instance_whitelist", WHITELIST_DDL),
    ("instance_backups", BACKUPS_DDL),
)

__all__ = [
    "AccountAccess",
    "AccountCreate",
    "AccountCreated",
    "Backup",
    "Instance",
    "InstanceCreate",
    "InstanceCredentials",
    "InstanceRead",
    "InstanceStatus",
    "KeyspaceAccount",
    "Plan",
    "SCHEMA",
    "WhitelistEntry",
    "WhitelistKind",
]
