"""Shared API dependencies."""
import asyncio
from collections.abc import Callable, Generator
from contextlib import contextmanager
from functools import lru_cache
import ipaddress
import threading
from typing import Any, TypeVar

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from auth_service.config import Settings, get_settings
from auth_service.database import get_session_factory
from auth_service.errors import StoreUnavailable, Unauthorized
from auth_service.logging import get_logger
from auth_service.services.anomaly import AnomalyGuard
from auth_service.services.claims import Claims
from auth_service.services.notifications import EmailNotifier
from auth_service.services.session_store import SessionStore
from auth_service.services.tokens import TokenLifecycleManager

logger = get_logger(__name__)
bearer_scheme = HTTPBearer(auto_error=False)

T = TypeVar("T")
DISCONNECT_POLL_SECONDS = 0.05


async def run_cancellable(request: Request, func: Callable[..., T], *args: Any) -> T:
    """Run a blocking manager call in a worker thread, cancelled on client disconnect.

    ``func`` receives a ``cancel`` event that is set once the client goes
    away; the store checks it before starting and before committing.
    """
    cancel = threading.Event()

    async def watch_disconnect() -> None:
        while not cancel.is_set():
            if await request.is_disconnected():
                logger.info("client_disconnected")
                cancel.set()
                return
            await asyncio.sleep(DISCONNECT_POLL_SECONDS)

    watcher = asyncio.create_task(watch_disconnect())
    try:
        return await asyncio.to_thread(func, *args, cancel=cancel)
    finally:
        watcher.cancel()


@contextmanager
def translate_errors() -> Generator[None, None, None]:
    """Map service errors to HTTP responses.

    Every rejection becomes the same bare 401 so callers cannot tell which
    check failed.
    """
    try:
        yield
    except Unauthorized as exc:
        logger.info("request_unauthorized", reason=exc.__class__.__name__)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    except StoreUnavailable as exc:
        logger.error("store_unavailable", reason=exc.message)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service temporarily unavailable",
            headers={"Retry-After": "1"},
        ) from exc


def normalize_address(value: str) -> str:
    """Canonical text form of an IP address; other values are kept as-is."""
    value = value.strip()
    try:
        return str(ipaddress.ip_address(value))
    except ValueError:
        return value


def resolve_origin_address(request: Request, trusted_proxies: list[str]) -> str | None:
    """Origin address of the request.

    The transport peer address, unless the peer is a trusted proxy: then the
    right-most ``X-Forwarded-For`` hop that is not itself a trusted proxy.
    """
    if request.client is None:
        return None
    peer = normalize_address(request.client.host)
    trusted = {normalize_address(proxy) for proxy in trusted_proxies}
    if peer not in trusted:
        return peer

    xff = request.headers.get("x-forwarded-for")
    if not xff:
        return peer
    for hop in reversed([normalize_address(part) for part in xff.split(",") if part.strip()]):
        if hop not in trusted:
            return hop
    return peer


def get_origin_address(request: Request, settings: Settings = Depends(get_settings)) -> str:
    origin = resolve_origin_address(request, settings.trusted_proxies)
    if not origin:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return origin


@lru_cache
def get_anomaly_guard() -> AnomalyGuard:
    """Process-wide guard; owns the alert thread pool."""
    settings = get_settings()
    notifier = EmailNotifier(settings, get_session_factory())
    return AnomalyGuard(notifier, max_workers=settings.alert_workers, max_pending=settings.alert_backlog)


def get_session_store(settings: Settings = Depends(get_settings)) -> SessionStore:
    return SessionStore(get_session_factory(), timeout_ms=settings.store_timeout_ms)


def get_token_manager(
    settings: Settings = Depends(get_settings),
    store: SessionStore = Depends(get_session_store),
    guard: AnomalyGuard = Depends(get_anomaly_guard),
) -> TokenLifecycleManager:
    return TokenLifecycleManager(settings, store, guard)


def get_current_claims(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    origin_address: str = Depends(get_origin_address),
    manager: TokenLifecycleManager = Depends(get_token_manager),
) -> Claims:
    """Claims of a valid, current-generation bearer token."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    with translate_errors():
        return manager.validate(credentials.credentials, origin_address)
