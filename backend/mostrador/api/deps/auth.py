from __future__ import annotations

import uuid
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from mostrador.core.errors import UnauthorizedError
from mostrador.core.security import TokenClaims, bearer_scheme, decode_access_token
from mostrador.db.session import get_db
from mostrador.models.user import User


async def get_token_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> TokenClaims:
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError()
    return decode_access_token(credentials.credentials)


async def get_current_user(
    claims: TokenClaims = Depends(get_token_claims),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Dependency for protected endpoints. Runs before any permission evaluation,
    so an unauthenticated caller always gets 401, never 403.
    """
    try:
        user_uuid = uuid.UUID(claims.subject)
    except ValueError:
        raise UnauthorizedError("Invalid token subject")

    user = await db.get(User, user_uuid)
    if not user:
        raise UnauthorizedError("User not found")

    if not user.is_active:
        raise UnauthorizedError("User inactive")

    return user
