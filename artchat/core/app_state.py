from __future__ import annotations

from typing import Callable, Optional

from sqlalchemy.orm import Session

from artchat.config import Settings, get_settings
from artchat.realtime.chat_handler import ChatProtocolHandler
from artchat.realtime.connection_manager import ConnectionManager
from artchat.services.presence_tracker import PresenceTracker


class RealtimeState:
    """Process-local realtime components shared by the gateway and REST routes."""

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        settings: Optional[Settings] = None,
        redis_client: Optional[object] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.session_factory = session_factory
        self.redis_client = redis_client
        self.connections = ConnectionManager()
        self.presence = PresenceTracker(self.connections, session_factory=session_factory)
        self.chat = ChatProtocolHandler(
            self.connections,
            self.presence,
            session_factory=session_factory,
            settings=self.settings,
            redis_client=redis_client,
        )

    async def start(self) -> None:
        if self.settings.presence_sweep_enabled:
            self.presence.start_sweeper(
                self.settings.presence_sweep_interval_seconds,
                self.settings.presence_inactivity_threshold_seconds,
            )

    async def stop(self) -> None:
        await self.presence.stop_sweeper()
        await self.chat.shutdown()
