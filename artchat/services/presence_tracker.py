"""
Presence tracking for realtime connections.

State is process-local. A user is online while at least one of their
connections is live; status changes are persisted on the user row and
broadcast to everyone the user has exchanged messages with.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Set
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from artchat.core.conversation_id import user_room
from artchat.models.mixins import utcnow
from artchat.realtime.connection_manager import ConnectionManager
from artchat.schemas.events import ForceDisconnect, UserStatusChange
from artchat.schemas.user import ConnectionIdentity
from artchat.services.message_service import MessageService
from artchat.services.user_service import UserService
from artchat.utils.db.db_session_helper import db_session

logger = logging.getLogger(__name__)

DEFAULT_ACTIVE_WINDOW_SECONDS = 300


@dataclass
class PresenceRecord:
    user_id: UUID
    username: str
    role: str
    connection_id: str
    connected_at: datetime
    last_activity: datetime
    connection_ids: Set[str] = field(default_factory=set)

    def to_dict(self) -> dict:
        return {
            "user_id": str(self.user_id),
            "username": self.username,
            "role": self.role,
            "connection_id": self.connection_id,
            "connections": len(self.connection_ids),
            "connected_at": self.connected_at.isoformat(),
            "last_activity": self.last_activity.isoformat(),
        }


class PresenceTracker:
    def __init__(
        self,
        connections: ConnectionManager,
        session_factory: Optional[Callable[[], Session]] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.connections = connections
        self.session_factory = session_factory
        self.clock = clock
        self.online_users: Dict[UUID, PresenceRecord] = {}
        self.user_connections: Dict[str, UUID] = {}
        self._sweeper: Optional[asyncio.Task] = None

    async def connect(self, identity: ConnectionIdentity, connection_id: str) -> PresenceRecord:
        """Register a live connection. The first one brings the user online."""
        now = self.clock()
        self.user_connections[connection_id] = identity.id
        record = self.online_users.get(identity.id)
        if record is not None:
            record.connection_ids.add(connection_id)
            record.connection_id = connection_id
            record.last_activity = now
            logger.debug(
                "User %s opened another connection (%d live)",
                identity.id,
                len(record.connection_ids),
            )
            return record

        record = PresenceRecord(
            user_id=identity.id,
            username=identity.username,
            role=identity.role,
            connection_id=connection_id,
            connected_at=now,
            last_activity=now,
            connection_ids={connection_id},
        )
        self.online_users[identity.id] = record
        await self._publish_status(record, is_online=True, last_seen=now)
        logger.info("User %s (%s) is now online", identity.username, identity.id)
        return record

    async def disconnect(self, connection_id: str) -> bool:
        """
        Forget a connection. Returns True when it was the user's last one and
        the user went offline. Unknown or already removed ids are a no-op.
        """
        user_id = self.user_connections.pop(connection_id, None)
        if user_id is None:
            return False
        record = self.online_users.get(user_id)
        if record is None or connection_id not in record.connection_ids:
            return False

        record.connection_ids.discard(connection_id)
        if record.connection_ids:
            if record.connection_id == connection_id:
                record.connection_id = sorted(record.connection_ids)[0]
            return False

        del self.online_users[user_id]
        await self._publish_status(record, is_online=False, last_seen=self.clock())
        logger.info("User %s (%s) is now offline", record.username, user_id)
        return True

    async def touch(
        self, identity: ConnectionIdentity, connection_id: Optional[str] = None
    ) -> None:
        """
        Record activity for a user. A user dropped by the sweep whose
        connection is still open is brought back online.
        """
        record = self.online_users.get(identity.id)
        if record is not None:
            record.last_activity = self.clock()
            return
        if connection_id is not None and self.connections.is_registered(connection_id):
            logger.info("Activity from swept user %s, restoring presence", identity.id)
            await self.connect(identity, connection_id)

    async def sweep_inactive(self, threshold_seconds: float) -> List[UUID]:
        """
        Remove users idle for longer than the threshold and persist them offline.

        The cutoff is fixed before iterating, and each record is re-read right
        before removal so one touched during the sweep is kept.
        """
        cutoff = self.clock() - timedelta(seconds=threshold_seconds)
        removed: List[UUID] = []
        for user_id in list(self.online_users):
            record = self.online_users.get(user_id)
            if record is None or record.last_activity >= cutoff:
                continue
            del self.online_users[user_id]
            for connection_id in record.connection_ids:
                if self.user_connections.get(connection_id) == user_id:
                    del self.user_connections[connection_id]
            logger.info("Marking user %s as inactive due to inactivity", user_id)
            self._persist_status(user_id, False, record.last_activity)
            removed.append(user_id)
        return removed

    async def force_disconnect(self, user_id: UUID, reason: str = "Forced disconnect") -> bool:
        """Notify, close and forget every connection of a user."""
        record = self.online_users.pop(user_id, None)
        if record is None:
            return False
        await self.connections.send_to_group(user_room(user_id), ForceDisconnect(reason=reason))
        for connection_id in sorted(record.connection_ids):
            self.user_connections.pop(connection_id, None)
            await self.connections.close(connection_id, code=1000, reason=reason)
        await self._publish_status(record, is_online=False, last_seen=self.clock())
        logger.info("Force disconnected user %s: %s", user_id, reason)
        return True

    def is_online(self, user_id: UUID) -> bool:
        return user_id in self.online_users

    def socket_of(self, user_id: UUID) -> Optional[str]:
        record = self.online_users.get(user_id)
        return record.connection_id if record else None

    def get(self, user_id: UUID) -> Optional[PresenceRecord]:
        return self.online_users.get(user_id)

    def users_by_role(self, role: str) -> List[PresenceRecord]:
        return [r for r in self.online_users.values() if r.role == role]

    def online_duration(self, user_id: UUID) -> float:
        """Seconds since the user came online, 0 when offline."""
        record = self.online_users.get(user_id)
        if record is None:
            return 0.0
        return (self.clock() - record.connected_at).total_seconds()

    def is_active(self, user_id: UUID, window_seconds: float = DEFAULT_ACTIVE_WINDOW_SECONDS) -> bool:
        record = self.online_users.get(user_id)
        if record is None:
            return False
        return self.clock() - record.last_activity < timedelta(seconds=window_seconds)

    def stats(self) -> dict:
        by_role: Dict[str, int] = {}
        for record in self.online_users.values():
            by_role[record.role] = by_role.get(record.role, 0) + 1
        return {
            "total_online": len(self.online_users),
            "total_connections": len(self.user_connections),
            "artists": by_role.get("artist", 0),
            "buyers": by_role.get("buyer", 0),
            "admins": by_role.get("admin", 0),
            "users_by_role": by_role,
        }

    def start_sweeper(self, interval_seconds: float, threshold_seconds: float) -> asyncio.Task:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(
                self._sweep_loop(interval_seconds, threshold_seconds)
            )
            logger.info(
                "Presence sweep started (every %ss, idle threshold %ss)",
                interval_seconds,
                threshold_seconds,
            )
        return self._sweeper

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._sweeper
        self._sweeper = None

    async def _sweep_loop(self, interval_seconds: float, threshold_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                removed = await self.sweep_inactive(threshold_seconds)
                if removed:
                    logger.info("Presence sweep removed %d idle users", len(removed))
            except Exception:
                logger.exception("Presence sweep failed")

    def _persist_status(
        self, user_id: UUID, is_online: bool, last_seen: datetime
    ) -> List[UUID]:
        """Write status to the user row; returns the user's conversation partners."""
        try:
            with db_session(self.session_factory) as db:
                UserService(db).set_online_status(user_id, is_online, last_seen)
                return MessageService(db).get_conversation_partners(user_id)
        except SQLAlchemyError:
            logger.exception("Error updating presence for user %s", user_id)
            return []

    async def _publish_status(
        self, record: PresenceRecord, is_online: bool, last_seen: datetime
    ) -> None:
        partners = self._persist_status(record.user_id, is_online, last_seen)
        event = UserStatusChange(
            user_id=record.user_id,
            username=record.username,
            role=record.role,
            is_online=is_online,
            timestamp=last_seen,
        )
        for partner_id in partners:
            await self.connections.send_to_group(user_room(partner_id), event)
