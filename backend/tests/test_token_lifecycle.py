import threading
from datetime import timedelta

import pytest

from conftest import InlineExecutor, RecordingNotifier, make_session_factory, make_settings
from auth_service.errors import (
    ConcurrentRotation,
    InvalidCredential,
    MalformedClaims,
    OriginMismatch,
    StaleSession,
    StoreUnavailable,
    TokenExpired,
    Unauthorized,
)
from auth_service.services.anomaly import AnomalyGuard
from auth_service.services.claims import ClaimsCodec
from auth_service.services.session_store import SessionStore
from auth_service.services.tokens import TokenLifecycleManager


def test_first_authentication_creates_session(manager, store):
    pair = manager.authenticate("U1", "1.2.3.4")

    record = store.find_session("U1")
    claims = manager.codec.verify(pair.access_token)
    assert record.session_id == claims.session_id
    assert record.origin_address == "1.2.3.4"
    assert claims.origin_address == "1.2.3.4"
    assert manager.hasher.verify(pair.refresh_secret, record.refresh_hash)
    assert record.refresh_hash != pair.refresh_secret


def test_successive_authentications_produce_new_generation(manager, store):
    manager.authenticate("U1", "1.2.3.4")
    first = store.find_session("U1")
    manager.authenticate("U1", "1.2.3.4")
    second = store.find_session("U1")

    assert first.session_id != second.session_id
    assert first.refresh_hash != second.refresh_hash


def test_authenticate_from_new_address_is_blocked(manager, store, notifier):
    manager.authenticate("U1", "1.2.3.4")
    before = store.find_session("U1")

    with pytest.raises(OriginMismatch):
        manager.authenticate("U1", "9.9.9.9")

    assert store.find_session("U1") == before
    assert notifier.calls == [("U1", "9.9.9.9")]


def test_first_authentication_skips_origin_check(manager, notifier):
    manager.authenticate("U1", "1.2.3.4")
    manager.authenticate("U2", "9.9.9.9")

    assert notifier.calls == []


def test_refresh_rotates_and_rejects_replay(manager, store):
    a1 = manager.authenticate("U1", "1.2.3.4")
    s1 = store.find_session("U1").session_id

    a2 = manager.refresh(a1.access_token, a1.refresh_secret, "1.2.3.4")

    s2 = store.find_session("U1").session_id
    assert s2 != s1
    assert manager.codec.verify(a2.access_token).session_id == s2
    assert a2.refresh_secret != a1.refresh_secret

    with pytest.raises((StaleSession, ConcurrentRotation)):
        manager.refresh(a1.access_token, a1.refresh_secret, "1.2.3.4")


def test_refresh_chain_keeps_working(manager):
    pair = manager.authenticate("U1", "1.2.3.4")
    for _ in range(3):
        pair = manager.refresh(pair.access_token, pair.refresh_secret, "1.2.3.4")

    assert manager.validate(pair.access_token).identity == "U1"


def test_refresh_from_other_address_fails_without_mutation(manager, store, notifier):
    pair = manager.authenticate("U1", "1.2.3.4")
    before = store.find_session("U1")

    with pytest.raises(OriginMismatch):
        manager.refresh(pair.access_token, pair.refresh_secret, "9.9.9.9")

    assert store.find_session("U1") == before
    assert notifier.calls == [("U1", "9.9.9.9")]


def test_refresh_with_wrong_secret_is_invalid_credential(manager, store):
    pair = manager.authenticate("U1", "1.2.3.4")
    before = store.find_session("U1")

    with pytest.raises(InvalidCredential):
        manager.refresh(pair.access_token, "not-the-secret", "1.2.3.4")

    assert store.find_session("U1") == before


def test_refresh_with_secret_from_other_generation_fails(manager):
    first = manager.authenticate("U1", "1.2.3.4")
    second = manager.authenticate("U1", "1.2.3.4")

    with pytest.raises(InvalidCredential):
        manager.refresh(second.access_token, first.refresh_secret, "1.2.3.4")


def test_refresh_with_forged_token_never_reads_store(settings, guard):
    class ExplodingStore:
        def __getattr__(self, name):
            raise AssertionError("store must not be touched")

    manager = TokenLifecycleManager(settings, ExplodingStore(), guard)
    forged = ClaimsCodec("z" * 16 + "y" * 16 + "0123456789abcdef").issue("s-1", "U1", "1.2.3.4")

    with pytest.raises(InvalidCredential):
        manager.refresh(forged, "secret", "1.2.3.4")


def test_refresh_with_garbage_token_is_malformed(manager):
    with pytest.raises(MalformedClaims):
        manager.refresh("garbage", "secret", "1.2.3.4")


def test_refresh_accepts_expired_access_token(settings, store, guard):
    codec = ClaimsCodec(settings.secret_key, algorithm=settings.algorithm, default_ttl=timedelta(seconds=-1))
    manager = TokenLifecycleManager(settings, store, guard, codec=codec)
    pair = manager.authenticate("U1", "1.2.3.4")

    with pytest.raises(TokenExpired):
        manager.validate(pair.access_token)

    assert manager.refresh(pair.access_token, pair.refresh_secret, "1.2.3.4")


def test_refresh_for_identity_without_session_is_stale(manager):
    token = manager.codec.issue("s-orphan", "U9", "1.2.3.4")

    with pytest.raises(StaleSession):
        manager.refresh(token, "secret", "1.2.3.4")


def test_validate_rejects_superseded_generation(manager):
    first = manager.authenticate("U1", "1.2.3.4")
    second = manager.refresh(first.access_token, first.refresh_secret, "1.2.3.4")

    assert manager.validate(second.access_token, "1.2.3.4").identity == "U1"
    with pytest.raises(StaleSession):
        manager.validate(first.access_token)


def test_validate_rejects_other_address(manager, notifier):
    pair = manager.authenticate("U1", "1.2.3.4")

    with pytest.raises(OriginMismatch):
        manager.validate(pair.access_token, "9.9.9.9")
    assert notifier.calls == [("U1", "9.9.9.9")]


def test_all_rejections_share_unauthorized_base():
    for error in (InvalidCredential, OriginMismatch, StaleSession, ConcurrentRotation, MalformedClaims):
        assert issubclass(error, Unauthorized)
    assert not issubclass(StoreUnavailable, Unauthorized)


def test_lost_create_race_is_concurrent_rotation(manager, store):
    class LateStore(SessionStore):
        def find_session(self, identity, deadline=None):
            return None

    racing = TokenLifecycleManager(manager.settings, LateStore(store._session_factory), manager.guard)
    manager.authenticate("U1", "1.2.3.4")

    with pytest.raises(ConcurrentRotation):
        racing.authenticate("U1", "1.2.3.4")


def test_store_outage_surfaces_as_store_unavailable(settings, guard):
    class DownStore:
        def find_session(self, identity, deadline=None):
            raise StoreUnavailable("connection refused")

    manager = TokenLifecycleManager(settings, DownStore(), guard)

    with pytest.raises(StoreUnavailable):
        manager.authenticate("U1", "1.2.3.4")


def test_cancelled_request_aborts_store_call(manager, store):
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(StoreUnavailable):
        manager.authenticate("U1", "1.2.3.4", cancel=cancel)
    assert store.find_session("U1") is None


def test_concurrent_refresh_has_exactly_one_winner(tmp_path):
    settings = make_settings(database_url=f"sqlite:///{tmp_path / 'auth.db'}")
    workers = 4
    barrier = threading.Barrier(workers)

    class RacingStore(SessionStore):
        def rotate_session(self, *args, **kwargs):
            barrier.wait(timeout=10)
            return super().rotate_session(*args, **kwargs)

    store = RacingStore(make_session_factory(settings), timeout_ms=settings.store_timeout_ms)
    guard = AnomalyGuard(RecordingNotifier(), executor=InlineExecutor())
    manager = TokenLifecycleManager(settings, store, guard)

    # issue through a plain store so the barrier only gates refreshes
    plain = TokenLifecycleManager(settings, SessionStore(store._session_factory, timeout_ms=5000), guard)
    pair = plain.authenticate("U1", "1.2.3.4")

    results = []
    lock = threading.Lock()

    def attempt():
        try:
            outcome = manager.refresh(pair.access_token, pair.refresh_secret, "1.2.3.4")
        except Exception as exc:
            outcome = exc
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=attempt) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert len(losers) == workers - 1
    assert all(isinstance(r, ConcurrentRotation) for r in losers)
    assert store.find_session("U1").session_id == manager.codec.verify(winners[0].access_token).session_id


def test_scenario_u1_issue_block_rotate_replay():
    settings = make_settings()
    store = SessionStore(make_session_factory(settings), timeout_ms=settings.store_timeout_ms)
    notifier = RecordingNotifier()
    manager = TokenLifecycleManager(settings, store, AnomalyGuard(notifier, executor=InlineExecutor()))

    a1 = manager.authenticate("U1", "1.2.3.4")
    s1 = store.find_session("U1")
    assert s1.origin_address == "1.2.3.4"
    assert manager.hasher.verify(a1.refresh_secret, s1.refresh_hash)

    with pytest.raises(OriginMismatch):
        manager.authenticate("U1", "9.9.9.9")
    assert notifier.calls == [("U1", "9.9.9.9")]
    assert store.find_session("U1") == s1

    a2 = manager.refresh(a1.access_token, a1.refresh_secret, "1.2.3.4")
    s2 = store.find_session("U1")
    assert s2.session_id != s1.session_id
    assert manager.codec.verify(a2.access_token).session_id == s2.session_id

    with pytest.raises(Unauthorized):
        manager.refresh(a1.access_token, a1.refresh_secret, "1.2.3.4")
