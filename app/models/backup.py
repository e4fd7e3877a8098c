"""Backup record: a stored snapshot directory of an instance."""

from sqlmodel import SQLModel

BACKUPS_DDL = (
    "CREATE TABLE IF NOT EXISTS instance_backups (id varchar, instance_id varchar, "
    "dir varchar, created_at int64, PRIMARY KEY (id));"
)


class Backup(SQLModel):
    id: str
    instance_id: str
    dir: str = ""
    created_at: int = 0
