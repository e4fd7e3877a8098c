"""Instance whitelist rows in the metadata store."""

import ipaddress

from app.core.errors import InvalidInputError
from app.core.statements import expect_ok, fetch_rows, quote
from app.models.base import clean_row, new_hex_id, now_ms
from app.models.whitelist import WhitelistEntry, WhitelistKind

DEFAULT_CIDR = "0.0.0.0/0"


def clean_ip(value: object) -> str:
    """Strip whitespace and the IPv4-mapped IPv6 prefix."""
    ip = str(value or "").strip()
    if ip.startswith("::ffff:"):
        ip = ip[len("::ffff:"):]
    return ip


def clean_cidr(value: object) -> str:
    """Normalise ``ip`` or ``ip/mask`` to ``ip/mask``.

    A bare address gets a host mask (/32 or /128). Host bits are allowed,
    so ``10.0.0.5/24`` is kept as written.
    """
    raw = str(value or "").strip()
    if not raw:
        raise InvalidInputError("CIDR is required")

    parts = raw.split("/")
    if len(parts) > 2:
        raise InvalidInputError("Invalid CIDR")

    ip = clean_ip(parts[0])
    try:
        address = ipaddress.ip_address(ip)
    except ValueError as exc:
        raise InvalidInputError("Invalid IP") from exc

    max_mask = 32 if address.version == 4 else 128
    if len(parts) == 1:
        return f"{ip}/{max_mask}"

    mask_text = parts[1].strip()
    if not mask_text.isdigit():
        raise InvalidInputError("Invalid CIDR mask")
    mask = int(mask_text)
    if mask > max_mask:
        raise InvalidInputError(f"Invalid IPv{address.version} mask")
    return f"{ip}/{mask}"


def host_cidr(ip: object) -> str | None:
    """``/32`` or ``/128`` CIDR for a single client address, if it parses."""
    try:
        return clean_cidr(clean_ip(ip))
    except InvalidInputError:
        return None


async def list_by_instance(db, instance_id: str) -> list[WhitelistEntry]:
    rows = await fetch_rows(
        db, "SELECT * FROM instance_whitelist ORDER BY id DESC;", "Failed to list whitelist"
    )
    needle = str(instance_id or "").strip()
    return [
        WhitelistEntry.model_validate(clean_row(r))
        for r in rows
        if str(r.get("instance_id") or "").strip() == needle
    ]


async def add_entry(
    db, instance_id: str, cidr: str, kind: WhitelistKind = WhitelistKind.CUSTOM
) -> WhitelistEntry:
    """Add a CIDR; an existing entry with the same CIDR is returned as-is."""
    instance_id = str(instance_id or "").strip()
    if not instance_id:
        raise InvalidInputError("instance_id is required")
    cidr = clean_cidr(cidr)

    for entry in await list_by_instance(db, instance_id):
        if entry.cidr == cidr:
            return entry

    entry = WhitelistEntry(
        id=new_hex_id(), instance_id=instance_id, cidr=cidr, kind=kind, created_at=now_ms()
    )
    expect_ok(
        await db.query(
            "INSERT INTO instance_whitelist (id, instance_id, cidr, kind, created_at) VALUES "
            f"({quote(entry.id)}, {quote(entry.instance_id)}, {quote(entry.cidr)}, "
            f"{quote(entry.kind)}, {entry.created_at});"
        ),
        "Failed to add whitelist entry",
    )
    return entry


async def delete_entry(db, entry_id: str) -> None:
    entry_id = str(entry_id or "").strip()
    if not entry_id:
        raise InvalidInputError("id is required")
    expect_ok(
        await db.query(f"DELETE FROM instance_whitelist WHERE id={quote(entry_id)};"),
        "Failed to delete whitelist entry",
    )
