"""Session store adapter over SQLAlchemy."""
from __future__ import annotations

from collections.abc import Callable, Generator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
import threading
import time

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from auth_service.errors import StoreTimeout, StoreUnavailable
from auth_service.models.auth import AuthSession


@dataclass(frozen=True)
class SessionRecord:
    """Current token generation bound to one identity."""

    identity: str
    session_id: str
    refresh_hash: str
    origin_address: str


class Deadline:
    """Time budget for a single store interaction.

    ``cancel`` lets the caller abort in-flight work; it is checked before the
    transaction starts and again before commit.
    """

    def __init__(
        self,
        timeout_ms: int,
        cancel: threading.Event | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._cancel = cancel
        self.timeout_ms = timeout_ms
        self.expires_at = clock() + timeout_ms / 1000

    def remaining(self) -> float:
        """Seconds left before expiry, never negative."""
        return max(0.0, self.expires_at - self._clock())

    def check(self) -> None:
        if self._cancel is not None and self._cancel.is_set():
            raise StoreUnavailable("store call cancelled")
        if self.remaining() <= 0:
            raise StoreTimeout(f"store call exceeded {self.timeout_ms}ms")


class SessionStore:
    """Typed access to ``auth_sessions``.

    Every method runs in its own transaction bounded by a :class:`Deadline`.
    Driver failures surface as :class:`StoreUnavailable`; a transaction that
    overruns its deadline is rolled back, so no write is ever partial.
    """

    def __init__(self, session_factory: sessionmaker, timeout_ms: int = 300) -> None:
        self._session_factory = session_factory
        self.timeout_ms = timeout_ms

    def _deadline(self, deadline: Deadline | None) -> Deadline:
        return deadline or Deadline(self.timeout_ms)

    @contextmanager
    def _transaction(self, deadline: Deadline) -> Generator[Session, None, None]:
        deadline.check()
        db = self._session_factory()
        try:
            yield db
            deadline.check()
            db.commit()
        except IntegrityError:
            db.rollback()
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreUnavailable("session store unavailable") from exc
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @staticmethod
    def _to_record(row: AuthSession) -> SessionRecord:
        return SessionRecord(
            identity=row.identity,
            session_id=row.session_id,
            refresh_hash=row.refresh_hash,
            origin_address=row.origin_address,
        )

    def find_session(self, identity: str, deadline: Deadline | None = None) -> SessionRecord | None:
        """Fetch the session bound to ``identity``."""
        with self._transaction(self._deadline(deadline)) as db:
            row = db.query(AuthSession).filter(AuthSession.identity == identity).first()
            return self._to_record(row) if row else None

    def find_identity_by_session_id(self, session_id: str, deadline: Deadline | None = None) -> str | None:
        """Return the identity whose current session id is ``session_id``."""
        with self._transaction(self._deadline(deadline)) as db:
            row = (
                db.query(AuthSession.identity)
                .filter(AuthSession.session_id == session_id)
                .first()
            )
            return row.identity if row else None

    def create_session(self, record: SessionRecord, deadline: Deadline | None = None) -> bool:
        """Insert the first session for an identity.

        Returns ``False`` when a session for the identity already exists.
        """
        try:
            with self._transaction(self._deadline(deadline)) as db:
                db.add(
                    AuthSession(
                        identity=record.identity,
                        session_id=record.session_id,
                        refresh_hash=record.refresh_hash,
                        origin_address=record.origin_address,
                    )
                )
                db.flush()
        except IntegrityError:
            return False
        return True

    def rotate_session(
        self,
        identity: str,
        expected_session_id: str,
        new_session_id: str,
        new_refresh_hash: str,
        new_origin_address: str,
        deadline: Deadline | None = None,
    ) -> bool:
        """Overwrite the session only if it still holds ``expected_session_id``.

        The compare and the write are one ``UPDATE`` statement, so among
        concurrent callers expecting the same id at most one gets ``True``.
        """
        try:
            with self._transaction(self._deadline(deadline)) as db:
                updated = db.query(AuthSession).filter(
                    AuthSession.identity == identity,
                    AuthSession.session_id == expected_session_id,
                ).update(
                    {
                        "session_id": new_session_id,
                        "refresh_hash": new_refresh_hash,
                        "origin_address": new_origin_address,
                        "rotated_at": datetime.utcnow().isoformat(),
                    },
                    synchronize_session=False,
                )
        except IntegrityError:
            # new session id collided with an existing row
            return False
        return updated == 1
