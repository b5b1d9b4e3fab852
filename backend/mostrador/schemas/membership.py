from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, model_validator

from mostrador.core.roles import MembershipStatus, OrganizationRole


class MemberCreate(BaseModel):
    email: EmailStr
    role: OrganizationRole = OrganizationRole.USER
    status: MembershipStatus = MembershipStatus.APPROVED


class MemberUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # Optional updates; send one or both
    role: Optional[OrganizationRole] = None
    status: Optional[MembershipStatus] = None

    @model_validator(mode="after")
    def _require_a_change(self) -> "MemberUpdate":
        if self.role is None and self.status is None:
            raise ValueError("Provide role and/or status")
        return self


class MemberOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    organization_id: uuid.UUID
    user_id: uuid.UUID
    role: OrganizationRole
    status: MembershipStatus
    invited_by_user_id: Optional[uuid.UUID] = None
    joined_at: Optional[datetime] = None
    created_at: datetime
