"""Access token issue and verification for the websocket gateway and REST API."""

from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from cryptography.fernet import Fernet, InvalidToken

from artchat.config import get_settings

logger = logging.getLogger(__name__)


def _get_fernet() -> Fernet:
    """Get a Fernet instance with the shared token secret."""
    key = get_settings().token_secret_key
    if not key:
        raise ValueError("TOKEN_SECRET_KEY must be set to issue or verify tokens")
    return Fernet(key.encode() if isinstance(key, str) else key)


def issue_access_token(user_id: UUID | str) -> str:
    """Issue a token carrying the user id. Normally done by the identity service."""
    return _get_fernet().encrypt(str(user_id).encode()).decode()


def verify_access_token(token: Optional[str]) -> Optional[UUID]:
    """Return the user id in a valid, unexpired token, else None."""
    if not token:
        return None
    ttl = get_settings().access_token_ttl_seconds
    try:
        raw = _get_fernet().decrypt(token.encode(), ttl=ttl)
        return UUID(raw.decode())
    except (InvalidToken, ValueError) as e:
        logger.debug("Rejected access token: %s", e.__class__.__name__)
        return None
