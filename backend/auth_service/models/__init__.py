"""SQLAlchemy models package."""
from auth_service.models.user import User
from auth_service.models.auth import AuthSession

__all__ = [
    "User",
    "AuthSession",
]
