"""User model."""
from datetime import datetime

from sqlalchemy import Column, String

from auth_service.database import Base


class User(Base):
    """User account, owned by the identity subsystem and only read here."""

    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    email = Column(String(255), index=True)
    created_at = Column(String(26), default=lambda: datetime.utcnow().isoformat())
