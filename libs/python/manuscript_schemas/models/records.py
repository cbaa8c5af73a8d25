"""Relational records owned by the ingress side."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from ..enums import ManuscriptStatus, UserTier
from .status import utcnow


class UserRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    email: str | None = None
    role: str = "user"
    subscription_tier: UserTier = Field(UserTier.FREE, alias="subscriptionTier")

    @property
    def is_admin(self) -> bool:
        return self.role == "admin" or self.subscription_tier is UserTier.ADMIN


class ManuscriptRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    user_id: str = Field(alias="userId")
    filename: str
    storage_key: str = Field(alias="storageKey")
    genre: str = "general"
    title: str | None = None
    status: ManuscriptStatus = ManuscriptStatus.UPLOADED
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
