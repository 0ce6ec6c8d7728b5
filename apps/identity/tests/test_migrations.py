from datetime import datetime, timedelta
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from app.database import make_engine, make_sessionmaker
from app.store import DuplicateUserError, SqlCredentialStore


APP_DIR = Path(__file__).resolve().parents[1]

EXPECTED_INDEXES = {
    "users": {"ix_users_phone_number"},
    "otps": {"ix_otps_phone_number", "ix_otps_expires_at", "ix_otps_phone_code"},
    "otp_attempts": {"ix_otp_attempts_phone_number", "ix_otp_attempts_attempt_time"},
}


@pytest.fixture
def migrated_url(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path / 'identity.db'}"
    monkeypatch.setenv("DB_URL", url)
    cfg = Config(str(APP_DIR / "alembic.ini"))
    command.upgrade(cfg, "head")
    yield url, cfg


def test_upgrade_head_creates_model_tables(migrated_url):
    from app.models import Base

    url, _ = migrated_url
    engine = make_engine(url)
    insp = inspect(engine)
    assert set(insp.get_table_names()) == {"alembic_version", "users", "otps", "otp_attempts"}
    for table in Base.metadata.sorted_tables:
        assert {c["name"] for c in insp.get_columns(table.name)} == set(table.columns.keys())
        assert {i["name"] for i in insp.get_indexes(table.name)} == EXPECTED_INDEXES[table.name]
    engine.dispose()


def test_migrated_schema_serves_the_store(migrated_url):
    url, _ = migrated_url
    engine = make_engine(url)
    store = SqlCredentialStore(make_sessionmaker(engine))
    t0 = datetime(2025, 3, 10, 12, 0, 0)
    store.create_user("+15551234567", created_at=t0)
    with pytest.raises(DuplicateUserError):
        store.create_user("+15551234567")
    store.create_otp("+15551234567", "123456", expires_at=t0 + timedelta(minutes=2), created_at=t0)
    store.create_attempt("+15551234567", attempted_at=t0)
    assert store.count_attempts_since("+15551234567", t0 - timedelta(minutes=10)) == 1
    assert store.find_valid_otp("+15551234567", "123456") is not None
    engine.dispose()


def test_downgrade_to_base_drops_tables(migrated_url):
    url, cfg = migrated_url
    command.downgrade(cfg, "base")
    engine = make_engine(url)
    assert set(inspect(engine).get_table_names()) == {"alembic_version"}
    engine.dispose()
