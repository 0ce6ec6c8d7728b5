import threading
from datetime import datetime, timedelta

import pytest

from phoneauth_shared import OTPConfig

from app.database import make_engine, make_sessionmaker
from app.models import Base
from app.store import DuplicateUserError, SqlCredentialStore
from app.utils.otp import OTPEngine


T0 = datetime(2025, 3, 10, 12, 0, 0)


@pytest.fixture
def store():
    engine = make_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield SqlCredentialStore(make_sessionmaker(engine))
    engine.dispose()


def test_otp_lifecycle(store):
    otp = store.create_otp("+15551234567", "123456", expires_at=T0 + timedelta(minutes=2), created_at=T0)
    found = store.find_valid_otp("+15551234567", "123456")
    assert found is not None and found.id == otp.id
    assert found.is_expired(T0 + timedelta(minutes=2)) is False
    assert found.is_expired(T0 + timedelta(minutes=2, seconds=1)) is True

    assert store.mark_otp_used(otp.id) == 1
    assert store.mark_otp_used(otp.id) == 0
    assert store.find_valid_otp("+15551234567", "123456") is None


def test_find_returns_oldest_unused_match(store):
    older = store.create_otp("+15551234567", "777777", expires_at=T0 + timedelta(minutes=2), created_at=T0)
    store.create_otp("+15551234567", "777777", expires_at=T0 + timedelta(minutes=3), created_at=T0 + timedelta(minutes=1))
    assert store.find_valid_otp("+15551234567", "777777").id == older.id
    assert store.find_valid_otp("+15551234567", "777778") is None
    assert store.find_valid_otp("+15550000000", "777777") is None


def test_delete_expired_otps(store):
    store.create_otp("+15551234567", "111111", expires_at=T0, created_at=T0 - timedelta(minutes=2))
    store.create_otp("+15551234567", "222222", expires_at=T0 + timedelta(minutes=2), created_at=T0)
    assert store.delete_expired_otps(T0 + timedelta(seconds=1)) == 1
    assert store.find_valid_otp("+15551234567", "222222") is not None


def test_attempt_window_counting(store):
    for minutes in (0, 5, 9):
        store.create_attempt("+15551234567", attempted_at=T0 + timedelta(minutes=minutes))
    store.create_attempt("+15557654321", attempted_at=T0)
    assert store.count_attempts_since("+15551234567", T0 - timedelta(seconds=1)) == 3
    assert store.count_attempts_since("+15551234567", T0 + timedelta(minutes=1)) == 2
    assert store.delete_attempts_before(T0 + timedelta(minutes=6)) == 3
    assert store.count_attempts_since("+15551234567", T0 - timedelta(days=1)) == 1


def test_user_crud(store):
    user = store.create_user("+15551234567", created_at=T0)
    assert store.get_user_by_id(user.id).phone_number == "+15551234567"
    assert store.get_user_by_phone("+15551234567").id == user.id
    assert store.get_user_by_phone("+15550000000") is None

    with pytest.raises(DuplicateUserError):
        store.create_user("+15551234567")

    updated = store.update_user(user.id, "+15559999999", updated_at=T0 + timedelta(hours=1))
    assert updated.phone_number == "+15559999999"
    assert updated.updated_at == T0 + timedelta(hours=1)

    assert store.delete_user(user.id) == 1
    assert store.delete_user(user.id) == 0
    assert store.get_user_by_id(user.id) is None


def test_update_to_taken_phone_is_duplicate(store):
    a = store.create_user("+15551111111")
    store.create_user("+15552222222")
    with pytest.raises(DuplicateUserError):
        store.update_user(a.id, "+15552222222", updated_at=T0)
    assert store.get_user_by_id(a.id).phone_number == "+15551111111"


def test_list_users_orders_paginates_and_searches(store):
    for i in range(5):
        store.create_user(f"+1555000000{i}", created_at=T0 + timedelta(minutes=i))
    store.create_user("+963911111111", created_at=T0 + timedelta(minutes=10))

    rows, total = store.list_users(1, 2, None)
    assert total == 6
    assert [u.phone_number for u in rows] == ["+963911111111", "+15550000004"]

    rows, total = store.list_users(3, 2, None)
    assert [u.phone_number for u in rows] == ["+15550000001", "+15550000000"]

    rows, total = store.list_users(1, 10, "5550")
    assert total == 5
    rows, total = store.list_users(1, None, None)
    assert len(rows) == 6


def test_search_treats_wildcards_literally(store):
    store.create_user("+15551234567")
    assert store.list_users(1, 10, "%")[1] == 0
    assert store.list_users(1, 10, "_5")[1] == 0


def test_ping(store):
    store.ping()


class _FirstLoginRaceStore(SqlCredentialStore):
    """Holds two callers after a user lookup that found nobody."""

    def __init__(self, sessions):
        super().__init__(sessions)
        self.gate = threading.Barrier(2, timeout=5)

    def get_user_by_phone(self, phone_number):
        found = super().get_user_by_phone(phone_number)
        if found is None:
            self.gate.wait()
        return found


def test_concurrent_first_logins_on_sqlite_file_yield_one_user(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'race.db'}")
    Base.metadata.create_all(bind=engine)
    store = _FirstLoginRaceStore(make_sessionmaker(engine))
    codes = iter(["555555", "666666"])
    otp_engine = OTPEngine(store, OTPConfig(), clock=lambda: T0, code_generator=lambda: next(codes))
    otp_engine.send_otp("+15551234567")
    otp_engine.send_otp("+15551234567")

    results, errors = [], []

    def verify(code):
        try:
            results.append(otp_engine.verify_otp("+15551234567", code))
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=verify, args=(c,)) for c in ("555555", "666666")]
    for t in threads:
        t.start()
    for t in threads:
        t.join(10)

    assert errors == []
    assert len(results) == 2
    assert results[0].user.id == results[1].user.id
    assert sorted(r.registered for r in results) == [False, True]
    assert store.list_users(1, None, None)[1] == 1
    engine.dispose()
