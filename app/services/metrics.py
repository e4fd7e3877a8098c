"""Storage metrics of an instance keyspace."""

from typing import Any

from pydantic import BaseModel

from app.core import driver
from app.core.config import Settings, get_settings
from app.core.driver import close_quietly
from app.core.errors import ConnectivityError, InvalidInputError
from app.core.statements import expect_ok, is_identifier
from app.models.instance import Instance


def _as_int(value: Any) -> int:
    """Best-effort integer view of a metrics field; 0 when it is not numeric."""
    if isinstance(value, bool):
        return 0
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0


class InstanceMetrics(BaseModel):
    bytes_used: int = 0
    quota_bytes: int = 0
    over_quota: bool = False
    raw: dict[str, Any] = {}


async def get_metrics(instance: Instance, settings: Settings | None = None) -> InstanceMetrics:
    """Run ``SHOW METRICS`` as the instance's own account."""
    settings = settings or get_settings()
    keyspace = str(instance.keyspace or "").strip()
    if not is_identifier(keyspace):
        raise InvalidInputError("Invalid keyspace")

    client = driver.new_client(
        instance.host,
        instance.port,
        instance.db_username,
        instance.db_password,
        connect_timeout=settings.db_connect_timeout,
    )
    try:
        if not await client.connect():
            raise ConnectivityError("Unable to connect to instance")
        res = expect_ok(await client.query(f"SHOW METRICS IN {keyspace};"), "Failed to load metrics")
    finally:
        await close_quietly(client)

    fields = res.fields
    return InstanceMetrics(
        bytes_used=_as_int(fields.get("bytes_used")),
        quota_bytes=_as_int(fields.get("quota_bytes")),
        over_quota=fields.get("over_quota") is True,
        raw=fields,
    )
