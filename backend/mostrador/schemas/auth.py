# backend/mostrador/schemas/auth.py
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, EmailStr


class MeResponse(BaseModel):
    id: str
    email: EmailStr
    full_name: Optional[str] = None
    is_active: bool
    system_role: Optional[str] = None

    # Set while the caller is using an impersonation token
    impersonator_id: Optional[str] = None
