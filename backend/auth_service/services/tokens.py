"""Access/refresh token issuance and rotation.

A user has at most one live session generation, identified by its session id.
``authenticate`` starts a new generation, ``refresh`` replaces the current
one after checking the presented access token, refresh secret and origin
address. Replacing a generation is a conditional write on the session id the
request observed, so among concurrent refreshes of the same pair only one
wins. A presented address that differs from the bound one blocks the request
and alerts the owner.
"""
from __future__ import annotations

from dataclasses import dataclass
import secrets
import threading
from typing import Any
import uuid

from auth_service.config import Settings
from auth_service.errors import ConcurrentRotation, InvalidCredential, OriginMismatch, StaleSession
from auth_service.logging import get_logger
from auth_service.services.anomaly import AnomalyGuard
from auth_service.services.claims import Claims, ClaimsCodec
from auth_service.services.hasher import SecretHasher
from auth_service.services.session_store import Deadline, SessionRecord, SessionStore

REFRESH_SECRET_BYTES = 32


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_secret: str


def generate_session_id() -> str:
    return str(uuid.uuid4())


def generate_refresh_secret() -> str:
    return secrets.token_urlsafe(REFRESH_SECRET_BYTES)


class TokenLifecycleManager:
    """Issue, validate and rotate token pairs."""

    def __init__(
        self,
        settings: Settings,
        store: SessionStore,
        guard: AnomalyGuard,
        codec: ClaimsCodec | None = None,
        hasher: SecretHasher | None = None,
        logger: Any = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.guard = guard
        self.codec = codec or ClaimsCodec.from_settings(settings)
        self.hasher = hasher or SecretHasher(settings.refresh_hash_rounds)
        self.logger = logger or get_logger(__name__)

    def _deadline(self, cancel: threading.Event | None) -> Deadline:
        return Deadline(self.settings.store_timeout_ms, cancel=cancel)

    def _new_generation(self, identity: str, origin_address: str) -> tuple[SessionRecord, TokenPair]:
        session_id = generate_session_id()
        refresh_secret = generate_refresh_secret()
        record = SessionRecord(
            identity=identity,
            session_id=session_id,
            refresh_hash=self.hasher.hash(refresh_secret),
            origin_address=origin_address,
        )
        access_token = self.codec.issue(session_id, identity, origin_address)
        return record, TokenPair(access_token=access_token, refresh_secret=refresh_secret)

    def _replace(self, current: SessionRecord, new: SessionRecord, cancel: threading.Event | None) -> None:
        rotated = self.store.rotate_session(
            current.identity,
            current.session_id,
            new.session_id,
            new.refresh_hash,
            new.origin_address,
            deadline=self._deadline(cancel),
        )
        if not rotated:
            self.logger.warning("rotation_lost", identity=current.identity, session_id=current.session_id)
            raise ConcurrentRotation("session was rotated by another request")

    def authenticate(
        self,
        identity: str,
        origin_address: str,
        cancel: threading.Event | None = None,
    ) -> TokenPair:
        """Start a new session generation for ``identity``.

        The first authentication binds ``origin_address``; later ones must
        present the same address.
        """
        current = self.store.find_session(identity, deadline=self._deadline(cancel))

        if current is not None and not self.guard.check(identity, current.origin_address, origin_address):
            raise OriginMismatch("origin address changed since last session")

        record, pair = self._new_generation(identity, origin_address)

        if current is None:
            if not self.store.create_session(record, deadline=self._deadline(cancel)):
                self.logger.warning("session_create_lost", identity=identity)
                raise ConcurrentRotation("session was created by another request")
        else:
            self._replace(current, record, cancel)

        self.logger.info("session_issued", identity=identity, session_id=record.session_id)
        return pair

    def refresh(
        self,
        access_token: str,
        refresh_secret: str,
        origin_address: str,
        cancel: threading.Event | None = None,
    ) -> TokenPair:
        """Exchange a current token pair for the next generation.

        An expired access token is accepted as long as its signature is valid;
        its session id must still be the current one for the identity.
        """
        claims = self.codec.verify(access_token, allow_expired=True)
        identity = claims.identity

        if not self.guard.check(identity, claims.origin_address, origin_address):
            raise OriginMismatch("origin address differs from token")

        current = self.store.find_session(identity, deadline=self._deadline(cancel))
        if current is None or current.session_id != claims.session_id:
            self.logger.warning("stale_session", identity=identity, session_id=claims.session_id)
            raise StaleSession("token belongs to a superseded session")

        if not self.guard.check(identity, current.origin_address, origin_address):
            raise OriginMismatch("origin address differs from session")

        if not self.hasher.verify(refresh_secret, current.refresh_hash):
            self.logger.warning("refresh_secret_mismatch", identity=identity, session_id=current.session_id)
            raise InvalidCredential("refresh secret does not match")

        record, pair = self._new_generation(identity, origin_address)
        self._replace(current, record, cancel)

        self.logger.info(
            "session_rotated",
            identity=identity,
            previous_session_id=current.session_id,
            session_id=record.session_id,
        )
        return pair

    def validate(
        self,
        access_token: str,
        origin_address: str | None = None,
        cancel: threading.Event | None = None,
    ) -> Claims:
        """Accept an unexpired access token of the current generation."""
        claims = self.codec.verify(access_token)

        if origin_address is not None and not self.guard.check(
            claims.identity, claims.origin_address, origin_address
        ):
            raise OriginMismatch("origin address differs from token")

        owner = self.store.find_identity_by_session_id(claims.session_id, deadline=self._deadline(cancel))
        if owner != claims.identity:
            raise StaleSession("token belongs to a superseded session")
        return claims
