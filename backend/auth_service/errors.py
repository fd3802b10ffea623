"""Error taxonomy for token issuance and rotation.

Every client-facing failure derives from :class:`Unauthorized` so the HTTP
layer can answer all of them with the same generic 401, without revealing
which check failed. :class:`StoreUnavailable` is an internal, retryable
failure of the persistent store.
"""
from __future__ import annotations


class AuthServiceError(Exception):
    """Base class for auth-service exceptions."""

    error_code: str = "server_error"

    def __init__(self, message: str = "", *, detail: dict | None = None) -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.detail = detail or {}


class Unauthorized(AuthServiceError):
    """Credential rejected (401)."""

    error_code = "unauthorized"


class InvalidCredential(Unauthorized):
    """Bad token signature or refresh secret."""


class InvalidSignature(InvalidCredential):
    """Token signature does not verify against the server secret."""


class TokenExpired(InvalidCredential):
    """Correctly signed token past its expiry."""


class MalformedClaims(Unauthorized):
    """Token is not decodable into the expected claim set."""


class OriginMismatch(Unauthorized):
    """Presented origin address differs from the one bound to the session."""


class StaleSession(Unauthorized):
    """Token belongs to a superseded session generation."""


class ConcurrentRotation(Unauthorized):
    """Another request rotated the session first."""


class StoreUnavailable(AuthServiceError):
    """Persistent store failed or did not answer in time (503, retryable)."""

    error_code = "store_unavailable"
    retryable = True


class StoreTimeout(StoreUnavailable):
    """Store call exceeded its deadline."""


class NotificationError(AuthServiceError):
    """Anomaly alert could not be delivered."""

    error_code = "notification_failed"


__all__ = [
    "AuthServiceError",
    "Unauthorized",
    "InvalidCredential",
    "InvalidSignature",
    "TokenExpired",
    "MalformedClaims",
    "OriginMismatch",
    "StaleSession",
    "ConcurrentRotation",
    "StoreUnavailable",
    "StoreTimeout",
    "NotificationError",
]
