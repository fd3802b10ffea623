import os
import sys
from concurrent.futures import Executor, Future

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("SECRET_KEY", "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef")
os.environ.setdefault("DATABASE_URL", "sqlite://")

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from auth_service.config import Settings
from auth_service.database import Base, build_engine
from auth_service import models  # noqa: F401
from auth_service.services.anomaly import AnomalyGuard
from auth_service.services.session_store import SessionStore
from auth_service.services.tokens import TokenLifecycleManager

TEST_SECRET_KEY = "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef"


class InlineExecutor(Executor):
    """Runs submitted work immediately so alert dispatch is observable."""

    def submit(self, fn, /, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.calls = []
        self.fail = fail

    def notify(self, identity, offending_address):
        self.calls.append((identity, offending_address))
        if self.fail:
            raise RuntimeError("smtp down")


def make_settings(**overrides) -> Settings:
    values = {
        "secret_key": TEST_SECRET_KEY,
        "database_url": "sqlite://",
        "refresh_hash_rounds": 4,
        "store_timeout_ms": 5000,
        "refresh_cookie_secure": False,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_session_factory(settings: Settings) -> sessionmaker:
    if settings.database_url == "sqlite://":
        engine = build_engine(settings, poolclass=StaticPool)
    else:
        engine = build_engine(settings)
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def session_factory(settings):
    return make_session_factory(settings)


@pytest.fixture
def store(session_factory, settings):
    return SessionStore(session_factory, timeout_ms=settings.store_timeout_ms)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def guard(notifier):
    return AnomalyGuard(notifier, executor=InlineExecutor())


@pytest.fixture
def manager(settings, store, guard):
    return TokenLifecycleManager(settings, store, guard)
