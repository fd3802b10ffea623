"""Authentication/session models."""
from datetime import datetime

from sqlalchemy import Column, String

from auth_service.database import Base


class AuthSession(Base):
    """Current token generation for one identity.

    A single row per identity; rotation overwrites ``session_id``,
    ``refresh_hash`` and ``origin_address`` in one conditional update.
    """

    __tablename__ = "auth_sessions"

    identity = Column(String(64), primary_key=True)
    session_id = Column(String(36), unique=True, nullable=False, index=True)
    refresh_hash = Column(String(60), nullable=False)
    origin_address = Column(String(45), nullable=False)
    created_at = Column(String(26), default=lambda: datetime.utcnow().isoformat())
    rotated_at = Column(String(26))
