"""FastAPI authentication dependencies."""

from __future__ import annotations

from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from ctfarena.auth.jwt import TokenClaims, verify_token
from ctfarena.auth.service import get_user_by_id
from ctfarena.database import get_session
from ctfarena.db.models import User
from ctfarena.errors import AdminRequired, InvalidToken

_bearer = HTTPBearer(auto_error=False)


async def get_token_claims(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> TokenClaims:
    """Verify the bearer token. Missing or bad tokens raise InvalidToken (401)."""
    if credentials is None or not credentials.credentials:
        raise InvalidToken("Not authorized, no token")
    return verify_token(credentials.credentials)


async def get_current_user(
    claims: TokenClaims = Depends(get_token_claims),
    db: AsyncSession = Depends(get_session),
) -> User:
    """
    Resolve the token subject to a User row.

    A token whose user no longer exists is treated as an invalid token.
    """
    user = await get_user_by_id(db, claims.user_id, refresh=True)
    if user is None:
        raise InvalidToken("Not authorized, user not found")
    return user


async def get_current_admin(
    user: User = Depends(get_current_user),
) -> User:
    """Same as get_current_user but requires the stored admin flag."""
    if not user.is_admin:
        raise AdminRequired()
    return user
