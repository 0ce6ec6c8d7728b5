import os
import sys
from datetime import datetime, timedelta
from pathlib import Path


# Ensure sensible defaults for tests before app import
os.environ["ENV"] = "dev"
os.environ["DB_URL"] = "sqlite://"
os.environ.setdefault("JWT_SECRET", "test-secret-for-identity-tests-0123456789")
os.environ.setdefault("CLEANUP_INTERVAL_SECS", "0")

_here = Path(__file__).resolve()
for p in (_here.parents[1], _here.parents[3] / "libs" / "phoneauth_shared"):
    if str(p) not in sys.path:
        sys.path.insert(0, str(p))


import pytest  # noqa: E402


class FakeClock:
    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class CapturingDelivery:
    def __init__(self):
        self.sent = []

    def send_code(self, phone, code):
        self.sent.append((phone, code))

    def last_code(self, phone):
        for p, c in reversed(self.sent):
            if p == phone:
                return c
        raise AssertionError(f"no code sent to {phone}")


class CapturingAudit:
    def __init__(self):
        self.events = []

    def emit(self, event):
        self.events.append(event)

    def types(self):
        return [e.type for e in self.events]


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 3, 10, 12, 0, 0))


@pytest.fixture
def delivery():
    return CapturingDelivery()


@pytest.fixture
def audit():
    return CapturingAudit()


@pytest.fixture
def mem_store():
    from app.store import InMemoryCredentialStore

    return InMemoryCredentialStore()


@pytest.fixture
def otp_engine(mem_store, delivery, audit, clock):
    from phoneauth_shared import OTPConfig
    from app.utils.otp import OTPEngine

    return OTPEngine(mem_store, OTPConfig(), delivery=delivery, audit=audit, clock=clock)
