"""
User model: local copy of the identity service's user record.

Only the fields the messaging core consults are kept here (role, verification,
online status and the block list). Registration and credentials live with the
identity service.
"""

from __future__ import annotations

import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, String, Uuid

from artchat.db import Base
from artchat.models.mixins import TimestampMixin


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    username = Column(String(64), unique=True, nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    role = Column(String(16), nullable=False)  # 'artist' | 'buyer' | 'admin'
    is_verified = Column(Boolean, nullable=False, default=False)
    is_online = Column(Boolean, nullable=False, default=False)
    last_seen = Column(DateTime(timezone=True), nullable=True)
    # Directional: ids this user has blocked, stored as strings
    blocked_users = Column(JSON, nullable=False, default=list)

    def has_blocked(self, user_id) -> bool:
        return str(user_id) in (self.blocked_users or [])
