"""
schemas/user.py
---------------
Pydantic models for users, login, password changes and resets, and manager
grants.

Security note:
  - hashed_password is NEVER included in any response schema.
  - Passwords require min 8 chars; enforce stronger rules in production.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, model_validator

from chatdesk.models.user import UserRole


class UserCreate(BaseModel):
    """
    Used by admins and managers to add a user to a tenant.

    Either supply a password or set send_invitation to e-mail a temporary
    one; invited users must change it on first login.
    """
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: Optional[str] = Field(default=None, min_length=8, max_length=128)
    role: UserRole = UserRole.SUPPORT_AGENT
    send_invitation: bool = False

    @model_validator(mode="after")
    def password_or_invitation(self) -> "UserCreate":
        if not self.password and not self.send_invitation:
            raise ValueError("Provide a password or set send_invitation")
        return self


class UserRead(BaseModel):
    id: str
    name: str
    email: str
    role: str
    tenant_id: str
    must_change_password: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8, max_length=128)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds
    user: UserRead


class TenantAccessGrant(BaseModel):
    tenant_id: str


class TenantAccessRead(BaseModel):
    manager_id: str
    tenant_id: str
    created_at: datetime

    model_config = {"from_attributes": True}


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)
