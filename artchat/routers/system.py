import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from artchat.config import get_settings
from artchat.core.app_state import RealtimeState
from artchat.db import get_db
from artchat.routers.utils.dependencies import get_realtime

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/system",
    tags=["system"],
    responses={404: {"description": "Not found"}},
)


@router.get("/health", response_model=dict)
def health(
    db: Session = Depends(get_db),
    realtime: RealtimeState = Depends(get_realtime),
) -> dict:
    """Liveness plus non-sensitive configuration for troubleshooting."""
    s = get_settings()

    database_ok = True
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Database health check failed")
        database_ok = False

    # Extract safe database info only (no credentials)
    database_host = None
    database_driver = None
    try:
        url_obj = s.database_url_obj
        database_host = url_obj.host
        database_driver = url_obj.get_backend_name()
    except ValueError:
        pass

    return {
        "status": "ok" if database_ok else "degraded",
        "app": s.app_name,
        "environment": s.environment,
        "database": {
            "ok": database_ok,
            "host": database_host,
            "driver": database_driver,
        },
        "redis_enabled": s.redis_enabled,
        "online_users": realtime.presence.stats()["total_online"],
    }
