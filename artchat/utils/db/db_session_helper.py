"""Context-managed database sessions for code running outside a request."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from sqlalchemy.orm import Session

from artchat.db import SessionLocal


@contextmanager
def db_session(session_factory: Optional[Callable[[], Session]] = None) -> Iterator[Session]:
    """Yield a session and always close it; rolls back if the block raises."""
    db = (session_factory or SessionLocal)()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
