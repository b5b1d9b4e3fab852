from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from mostrador.core.roles import SystemRole


class ImpersonateRequest(BaseModel):
    target_user_id: uuid.UUID
    reason: Optional[str] = Field(default=None, max_length=500)


class ImpersonatedUserOut(BaseModel):
    id: str
    email: str
    full_name: Optional[str] = None
    system_role: Optional[str] = None


class ImpersonateResponse(BaseModel):
    status: str = "success"
    target_user: ImpersonatedUserOut
    access_token: str
    token_type: str = "bearer"
    expires_in_minutes: int


class StopImpersonationResponse(BaseModel):
    status: str = "success"
    access_token: str
    token_type: str = "bearer"


class SystemRoleUpdate(BaseModel):
    # null revokes
    system_role: Optional[SystemRole] = None


class SystemRoleOut(BaseModel):
    user_id: str
    system_role: Optional[str] = None


class AuditLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    actor_user_id: Optional[uuid.UUID] = None
    organization_id: Optional[uuid.UUID] = None
    action: str
    resource_type: str
    resource_id: Optional[str] = None
    details: Dict[str, Any]
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime


class InternalDataOut(BaseModel):
    users: int
    organizations: int
    memberships: int
    dev_users: int
