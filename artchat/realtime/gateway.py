"""Websocket endpoint: authenticates each connection and feeds its frames to the chat handler."""

from __future__ import annotations

import json
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from artchat.core.app_state import RealtimeState
from artchat.core.conversation_id import user_room
from artchat.core.tokens import verify_access_token
from artchat.schemas.events import Connected, ProtocolError
from artchat.schemas.user import ConnectionIdentity
from artchat.services.user_service import UserService
from artchat.utils.db.db_session_helper import db_session

logger = logging.getLogger(__name__)

router = APIRouter()

CONNECTED_MESSAGE = "Successfully connected to messaging service"


def _extract_token(websocket: WebSocket) -> Optional[str]:
    token = websocket.query_params.get("token")
    if token:
        return token
    authorization = websocket.headers.get("authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return None


def authenticate(websocket: WebSocket, state: RealtimeState) -> Optional[ConnectionIdentity]:
    """Resolve a verified identity for the connection, or None to refuse it."""
    token = _extract_token(websocket)
    if not token:
        logger.warning("Socket authentication failed: No token provided")
        return None
    user_id = verify_access_token(token)
    if user_id is None:
        logger.warning("Socket authentication failed: Invalid token")
        return None
    with db_session(state.session_factory) as db:
        user = UserService(db).get_user(user_id)
        if user is None:
            logger.warning("Socket authentication failed: User %s not found", user_id)
            return None
        if not user.is_verified:
            logger.warning("Socket authentication failed: User %s not verified", user_id)
            return None
        return ConnectionIdentity.from_user(user)


@router.websocket("/ws/chat")
async def chat_websocket(websocket: WebSocket) -> None:
    state: RealtimeState = websocket.app.state.realtime
    identity = authenticate(websocket, state)
    if identity is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    connection_id = state.connections.register(websocket)
    state.connections.join(connection_id, user_room(identity.id))
    logger.info("User connected: %s (%s)", identity.username, identity.id)

    try:
        await state.presence.connect(identity, connection_id)
        await state.connections.send(
            connection_id, Connected(message=CONNECTED_MESSAGE, user_id=identity.id)
        )
        while True:
            text = await websocket.receive_text()
            try:
                frame = json.loads(text)
            except json.JSONDecodeError:
                await state.connections.send(
                    connection_id, ProtocolError(message="Invalid JSON frame")
                )
                continue
            await state.chat.dispatch(identity, connection_id, frame)
    except WebSocketDisconnect as e:
        logger.info(
            "User disconnected: %s (%s) - code %s", identity.username, identity.id, e.code
        )
    finally:
        await state.chat.cleanup_connection(identity, connection_id)
        state.connections.unregister(connection_id)
        await state.presence.disconnect(connection_id)
