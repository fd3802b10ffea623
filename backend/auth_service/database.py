"""Database connection and session management."""
from collections.abc import Generator
from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from auth_service.config import Settings, get_settings

Base = declarative_base()


def _connect_args(database_url: str, store_timeout_ms: int) -> dict:
    """Driver options that bound a single statement by the store deadline."""
    backend = make_url(database_url).get_backend_name()
    if backend == "sqlite":
        # SQLite requires check_same_thread=False for FastAPI; timeout is the busy wait
        return {"check_same_thread": False, "timeout": store_timeout_ms / 1000}
    if backend == "postgresql":
        return {
            "connect_timeout": max(1, store_timeout_ms // 1000),
            "options": f"-c statement_timeout={store_timeout_ms}",
        }
    return {}


def build_engine(settings: Settings, **engine_kwargs) -> Engine:
    """Create an engine whose driver timeouts follow ``store_timeout_ms``."""
    connect_args = _connect_args(settings.database_url, settings.store_timeout_ms)
    connect_args.update(engine_kwargs.pop("connect_args", {}))
    if make_url(settings.database_url).get_backend_name() != "sqlite":
        engine_kwargs.setdefault("pool_timeout", max(1, settings.store_timeout_ms / 1000))
        engine_kwargs.setdefault("pool_pre_ping", True)
    return create_engine(
        settings.database_url,
        connect_args=connect_args,
        echo=settings.debug,
        **engine_kwargs,
    )


@lru_cache
def get_engine() -> Engine:
    """Process-wide engine built from the cached settings."""
    return build_engine(get_settings())


@lru_cache
def get_session_factory() -> sessionmaker:
    """Session factory bound to :func:`get_engine`."""
    return sessionmaker(autocommit=False, autoflush=False, bind=get_engine())


def get_db() -> Generator[Session, None, None]:
    """Dependency that provides a database session."""
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()
