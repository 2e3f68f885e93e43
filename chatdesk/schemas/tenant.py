"""
schemas/tenant.py
-----------------
Pydantic request/response models for Tenant.

Naming convention:
  TenantCreate  → inbound request body
  TenantRead    → outbound response body (never exposes internal fields)
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class TenantCreate(BaseModel):
    name: str = Field(
        ...,
        min_length=2,
        max_length=255,
        examples=["Brandt Construction & Forestry"],
        description="Unique tenant name",
    )
    slug: str = Field(
        ...,
        min_length=2,
        max_length=100,
        pattern=r"^[a-z0-9][a-z0-9-]*$",
        examples=["brandt-cf"],
        description="Stable short name used for per-tenant behaviour",
    )
    domain: Optional[str] = Field(default=None, max_length=255)
    settings: dict[str, Any] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return v.strip()


class TenantRead(BaseModel):
    id: str
    name: str
    slug: str
    domain: Optional[str] = None
    settings: dict[str, Any]
    created_at: datetime

    model_config = {"from_attributes": True}
