# mostrador/api/v1/auth.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from mostrador.api.deps.auth import get_current_user, get_token_claims
from mostrador.core.security import TokenClaims
from mostrador.models.user import User
from mostrador.schemas.auth import MeResponse

router = APIRouter(prefix="/auth", tags=["auth"])


def _to_me_response(user: User, claims: TokenClaims) -> MeResponse:
    return MeResponse(
        id=str(user.id),
        email=user.email,
        full_name=user.full_name,
        is_active=user.is_active,
        system_role=user.system_role,
        impersonator_id=claims.impersonator,
    )


@router.get("/me", response_model=MeResponse)
async def me(
    user: User = Depends(get_current_user),
    claims: TokenClaims = Depends(get_token_claims),
) -> MeResponse:
    """
    Returns the current user identity, flagging impersonation sessions.
    """
    return _to_me_response(user, claims)
