from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from artchat.constants.messaging import UserRole
from artchat.core.app_state import RealtimeState
from artchat.core.tokens import verify_access_token
from artchat.db import get_db
from artchat.models.user import User
from artchat.services.user_service import UserService

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """FastAPI dependency resolving the bearer token to a verified user."""
    user_id = verify_access_token(credentials.credentials if credentials else None)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    user = UserService(db).get_user(user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.is_verified:
        raise HTTPException(status_code=403, detail="User not verified")
    return user


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != UserRole.ADMIN:
        raise HTTPException(status_code=403, detail="Admin access required")
    return current_user


def get_user_by_id(
    user_id: UUID,
    db: Session = Depends(get_db),
) -> User:
    """FastAPI dependency to get a user by ID."""
    user = UserService(db).get_user(user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def get_realtime(request: Request) -> RealtimeState:
    return request.app.state.realtime
