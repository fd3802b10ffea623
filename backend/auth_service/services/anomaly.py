"""Origin-address anomaly detection."""
from __future__ import annotations

from concurrent.futures import Executor, ThreadPoolExecutor
import threading
from typing import Any

from auth_service.logging import get_logger
from auth_service.services.notifications import Notifier


class AnomalyGuard:
    """Compare origin addresses and alert the owner on mismatch.

    Alerts run on an executor and are fire-and-forget: the caller gets the
    comparison result immediately and a failed alert is only logged. At most
    ``max_pending`` alerts are queued or running; further alerts are dropped
    and logged until the backlog drains.
    """

    def __init__(
        self,
        notifier: Notifier,
        executor: Executor | None = None,
        max_workers: int = 2,
        max_pending: int = 100,
        logger: Any = None,
    ) -> None:
        self.notifier = notifier
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="anomaly-alert"
        )
        self._slots = threading.BoundedSemaphore(max_pending)
        self.logger = logger or get_logger(__name__)

    def check(self, identity: str, stored_address: str, presented_address: str) -> bool:
        """Return ``True`` when the addresses match; alert otherwise."""
        if stored_address == presented_address:
            return True

        self.logger.warning(
            "origin_mismatch",
            identity=identity,
            bound_address=stored_address,
            presented_address=presented_address,
        )
        if not self._slots.acquire(blocking=False):
            self.logger.error("alert_backlog_full", identity=identity, address=presented_address)
            return False
        try:
            self._executor.submit(self._dispatch, identity, presented_address)
        except RuntimeError:
            # executor already shut down
            self._slots.release()
            self.logger.error("alert_dispatch_rejected", identity=identity)
        return False

    def _dispatch(self, identity: str, presented_address: str) -> None:
        try:
            self.notifier.notify(identity, presented_address)
        except Exception:
            self.logger.exception("alert_delivery_failed", identity=identity, address=presented_address)
        finally:
            self._slots.release()

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=wait)
