"""Shared helpers for metadata records."""

import secrets
import time
from typing import Any


def now_ms() -> int:
    """Epoch milliseconds, the timestamp unit every table uses."""
    return int(time.time() * 1000)


def new_hex_id(nbytes: int = 12) -> str:
    return secrets.token_hex(nbytes)


def clean_row(row: dict[str, Any]) -> dict[str, Any]:
    """Drop NULL columns so model defaults apply."""
    return {k: v for k, v in row.items() if v is not None}
