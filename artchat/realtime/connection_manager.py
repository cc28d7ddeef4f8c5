"""Live websocket connections and the named broadcast groups they belong to."""

from __future__ import annotations

import logging
import uuid
from typing import Dict, Optional, Set

from fastapi import WebSocket

from artchat.schemas.events import OutboundEvent

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Registry of accepted websockets keyed by connection id.

    Groups are plain names (``user_<id>``, ``conversation_<cid>``); a
    connection may belong to any number of them and leaves all of them when
    it is unregistered.
    """

    def __init__(self) -> None:
        self.active_connections: Dict[str, WebSocket] = {}
        self.groups: Dict[str, Set[str]] = {}
        self.memberships: Dict[str, Set[str]] = {}

    def register(self, websocket: WebSocket, connection_id: Optional[str] = None) -> str:
        connection_id = connection_id or uuid.uuid4().hex
        self.active_connections[connection_id] = websocket
        self.memberships[connection_id] = set()
        logger.debug("Connection %s registered", connection_id)
        return connection_id

    def unregister(self, connection_id: str) -> None:
        """Drop a connection and its group memberships. Unknown ids are ignored."""
        self.active_connections.pop(connection_id, None)
        for group in self.memberships.pop(connection_id, set()):
            self._discard(group, connection_id)
        logger.debug("Connection %s unregistered", connection_id)

    def join(self, connection_id: str, group: str) -> None:
        if connection_id not in self.active_connections:
            logger.warning("Connection %s not registered, cannot join %s", connection_id, group)
            return
        self.groups.setdefault(group, set()).add(connection_id)
        self.memberships[connection_id].add(group)

    def leave(self, connection_id: str, group: str) -> None:
        self._discard(group, connection_id)
        self.memberships.get(connection_id, set()).discard(group)

    def _discard(self, group: str, connection_id: str) -> None:
        members = self.groups.get(group)
        if members is None:
            return
        members.discard(connection_id)
        if not members:
            del self.groups[group]

    def is_registered(self, connection_id: str) -> bool:
        return connection_id in self.active_connections

    def is_member(self, connection_id: str, group: str) -> bool:
        return connection_id in self.groups.get(group, set())

    def members(self, group: str) -> Set[str]:
        return set(self.groups.get(group, set()))

    def groups_of(self, connection_id: str) -> Set[str]:
        return set(self.memberships.get(connection_id, set()))

    def group_count(self, prefix: str = "") -> int:
        return sum(1 for name in self.groups if name.startswith(prefix))

    async def send(self, connection_id: str, event: OutboundEvent) -> bool:
        """Send one event to one connection. Returns False if it could not be sent."""
        websocket = self.active_connections.get(connection_id)
        if websocket is None:
            return False
        try:
            await websocket.send_json(event.to_frame())
            return True
        except Exception as e:
            # The gateway's receive loop notices the dead socket and cleans up
            logger.warning("Error sending %s to %s: %s", event.event, connection_id, e)
            return False

    async def close(self, connection_id: str, code: int = 1000, reason: str = "") -> None:
        websocket = self.active_connections.get(connection_id)
        if websocket is None:
            return
        try:
            await websocket.close(code=code, reason=reason)
        except Exception as e:
            logger.warning("Error closing %s: %s", connection_id, e)

    async def send_to_group(
        self, group: str, event: OutboundEvent, exclude: Optional[str] = None
    ) -> int:
        """Send an event to every connection in a group; returns how many got it."""
        sent = 0
        for connection_id in sorted(self.members(group)):
            if connection_id == exclude:
                continue
            if await self.send(connection_id, event):
                sent += 1
        return sent
