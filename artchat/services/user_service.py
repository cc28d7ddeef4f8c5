"""Access to the local user records: lookup, online status and block lists."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from artchat.constants.messaging import BlockAction
from artchat.core.errors import NotFoundError
from artchat.models.mixins import utcnow
from artchat.models.user import User
from artchat.schemas.user import BlockToggleResult


class UserService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_user(self, user_id: UUID | str) -> Optional[User]:
        """Fetch a user by ID. Malformed ids resolve to None."""
        if not isinstance(user_id, UUID):
            try:
                user_id = UUID(str(user_id))
            except ValueError:
                return None
        return self.db.query(User).filter(User.id == user_id).first()

    def get_users(self, user_ids: Iterable[UUID]) -> List[User]:
        ids = list(user_ids)
        if not ids:
            return []
        return self.db.query(User).filter(User.id.in_(ids)).all()

    def set_online_status(
        self,
        user_id: UUID,
        is_online: bool,
        last_seen: Optional[datetime] = None,
    ) -> Optional[User]:
        """Persist online/offline status and last-seen time."""
        user = self.get_user(user_id)
        if user is None:
            return None
        user.is_online = is_online
        user.last_seen = last_seen or utcnow()
        self.db.commit()
        self.db.refresh(user)
        return user

    def is_blocked_between(self, user: User, other: User) -> bool:
        """True when either user has blocked the other."""
        return user.has_blocked(other.id) or other.has_blocked(user.id)

    def toggle_block(self, user_id: UUID, target_id: UUID) -> BlockToggleResult:
        """Add target to the user's block list, or remove it if already present."""
        user = self.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        blocked = list(user.blocked_users or [])
        target = str(target_id)
        if target in blocked:
            blocked.remove(target)
            action = BlockAction.UNBLOCKED
        else:
            blocked.append(target)
            action = BlockAction.BLOCKED
        # Reassign so the JSON column is marked dirty
        user.blocked_users = blocked
        self.db.commit()
        self.db.refresh(user)
        return BlockToggleResult(action=action, blocked_users=blocked)
