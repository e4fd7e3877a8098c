"""Instance backup rows in the metadata store."""

from app.core.errors import InvalidInputError
from app.core.statements import expect_ok, fetch_rows, quote
from app.models.backup import Backup
from app.models.base import clean_row


async def list_by_instance(db, instance_id: str) -> list[Backup]:
    rows = await fetch_rows(
        db, "SELECT * FROM instance_backups ORDER BY id DESC;", "Failed to list backups"
    )
    needle = str(instance_id or "").strip()
    return [
        Backup.model_validate(clean_row(r))
        for r in rows
        if str(r.get("instance_id") or "").strip() == needle
    ]


async def delete_backup(db, backup_id: str) -> None:
    backup_id = str(backup_id or "").strip()
    if not backup_id:
        raise InvalidInputError("id is required")
    expect_ok(
        await db.query(f"DELETE FROM instance_backups WHERE id={quote(backup_id)};"),
        "Failed to delete backup",
    )
