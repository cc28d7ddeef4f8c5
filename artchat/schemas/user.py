"""Pydantic schemas for users as seen by the messaging core."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ConnectionIdentity(BaseModel):
    """Verified identity attached to a realtime connection or REST request."""

    id: UUID
    username: str
    role: str
    email: str

    @classmethod
    def from_user(cls, user) -> "ConnectionIdentity":
        return cls(id=user.id, username=user.username, role=user.role, email=user.email)


class UserSummary(BaseModel):
    """Counterpart details embedded in conversation and message payloads."""

    id: UUID
    username: str
    role: str
    is_online: bool = False
    last_seen: Optional[datetime] = None

    model_config = {"from_attributes": True}


class BlockToggleResult(BaseModel):
    action: str
    blocked_users: list[str] = Field(default_factory=list)
