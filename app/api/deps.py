"""FastAPI dependencies for caller identity and the metadata connection."""

import hmac
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from app.core.config import Settings, get_settings
from app.core.database import ManagedConnection, get_db
from app.core.statements import clean_email, is_email


async def get_owner_email(
    x_user_email: Annotated[str | None, Header()] = None,
) -> str:
    """Owner email forwarded by the gateway after it verified the session."""
    email = clean_email(x_user_email)
    if not is_email(email):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid X-User-Email header",
        )
    return email


async def require_admin(
    settings: Annotated[Settings, Depends(get_settings)],
    x_admin_token: Annotated[str | None, Header()] = None,
) -> None:
    expected = settings.admin_token
    if not expected:
        # Admin routes are off until a token is configured
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin API is disabled",
        )
    if not x_admin_token or not hmac.compare_digest(x_admin_token.encode(), expected.encode()):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid admin token",
        )


# Typed shorthand for use in route signatures
Db = Annotated[ManagedConnection, Depends(get_db)]
Owner = Annotated[str, Depends(get_owner_email)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
