"""Identifier and credential generation for new instances.

Keyspace and account names are derived from the plan and the instance id.
The account username in particular must be reproducible from the id alone:
the deprovisioner recomputes it and refuses to touch a record whose stored
username differs.
"""

import secrets

from app.core.config import get_settings
from app.core.errors import InvalidInputError
from app.core.statements import require_identifier
from app.models.instance import Plan


def parse_plan(value: object) -> Plan:
    """Map user input to a Plan. Blank means free."""
    raw = str(value or "").strip().lower()
    if not raw:
        return Plan.FREE
    try:
        return Plan(raw)
    except ValueError as exc:
        raise InvalidInputError(f"Unknown plan: {value!r}") from exc


def new_instance_id() -> str:
    return secrets.token_hex(12)


def new_account_password() -> str:
    return secrets.token_hex(16)


def new_display_name(plan: Plan) -> str:
    return f"{plan}-{secrets.token_hex(3)}"


def account_username(instance_id: str, prefix: str | None = None) -> str:
    if prefix is None:
        prefix = get_settings().name_prefix
    return require_identifier(f"{prefix}{str(instance_id or '').strip()}", "Account username")


def keyspace_name(plan: Plan, instance_id: str, prefix: str | None = None) -> str:
    if prefix is None:
        prefix = get_settings().name_prefix
    suffix = str(instance_id or "").strip()[:6] or secrets.token_hex(3)
    return require_identifier(f"{prefix}{plan}_{suffix}", "Keyspace name")
