"""Admin (root) connections to pool nodes."""

from app.core import driver
from app.core.config import Settings, get_settings
from app.core.driver import NodeClient, close_quietly
from app.core.errors import ConnectivityError, InvalidInputError
from app.models.instance import Instance
from app.services.pools import PoolEntry, find_admin_credentials


async def connect_admin(entry: PoolEntry, settings: Settings | None = None) -> NodeClient:
    """Open an authenticated admin connection to a pool node."""
    settings = settings or get_settings()
    if not entry.username or not entry.password:
        raise InvalidInputError(f"Pool entry {entry.host}:{entry.port} is missing admin credentials")

    client = driver.new_client(
        entry.host,
        entry.port,
        entry.username,
        entry.password,
        connect_timeout=settings.db_connect_timeout,
    )
    if not await client.connect():
        await close_quietly(client)
        raise ConnectivityError(f"Unable to connect to {entry.host}:{entry.port} as admin")
    return client


async def connect_admin_for_instance(
    instance: Instance, settings: Settings | None = None
) -> NodeClient:
    """Admin connection to the node hosting ``instance``."""
    settings = settings or get_settings()
    entry = None
    if instance.host and instance.port > 0:
        entry = find_admin_credentials(instance.host, instance.port, instance.plan, settings)
    if entry is None:
        raise ConnectivityError(
            f"No admin credentials configured for {instance.host}:{instance.port}"
        )
    return await connect_admin(entry, settings)
