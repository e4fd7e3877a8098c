"""Helpers for building node statements.

The node client has no parameter binding, so statements are assembled as
text. Values go through :func:`quote`; names that must appear bare (keyspaces,
accounts) must pass :func:`is_identifier` first.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Protocol

from pydantic import EmailStr, TypeAdapter, ValidationError

from app.core.errors import InvalidInputError, StatementError

if TYPE_CHECKING:
    from app.core.driver import QueryResult

IDENTIFIER_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_EMAIL = TypeAdapter(EmailStr)

_ESCAPES = str.maketrans({
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
})


def quote(value: object) -> str:
    """Render ``value`` as a double-quoted string literal."""
    return '"' + str(value).translate(_ESCAPES) + '"'


def is_identifier(value: object) -> bool:
    return isinstance(value, str) and IDENTIFIER_RE.fullmatch(value) is not None


def require_identifier(value: object, what: str) -> str:
    if not is_identifier(value):
        raise InvalidInputError(f"{what} is not a valid identifier: {value!r}")
    return value  # type: ignore[return-value]


def clean_email(value: object) -> str:
    return str(value or "").strip().lower()


def is_email(value: object) -> bool:
    if not isinstance(value, str):
        return False
    try:
        _EMAIL.validate_python(value.strip())
    except ValidationError:
        return False
    return True


def expect_ok(result: QueryResult, failure: str, step: str | None = None) -> QueryResult:
    """Raise :class:`StatementError` unless ``result`` succeeded."""
    if not result.ok:
        raise StatementError(f"{failure}: {result.error or 'unknown error'}", step=step)
    return result


class _Queryable(Protocol):
    async def query(self, statement: str) -> QueryResult: ...


async def fetch_rows(db: _Queryable, statement: str, failure: str) -> list[dict[str, Any]]:
    return expect_ok(await db.query(statement), failure).rows


async def fetch_one(db: _Queryable, statement: str, failure: str) -> dict[str, Any] | None:
    return expect_ok(await db.query(statement), failure).first()
