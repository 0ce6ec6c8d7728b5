import secrets
from dataclasses import dataclass
from datetime import timedelta

from .env import env_int

_CODE_MIN = 100_000
_CODE_MAX = 999_999


@dataclass(frozen=True)
class OTPConfig:
    expiry: timedelta = timedelta(minutes=2)
    max_attempts: int = 3
    rate_window: timedelta = timedelta(minutes=10)


def from_env(prefix: str = "") -> OTPConfig:
    p = f"{prefix}_" if prefix else ""
    return OTPConfig(
        expiry=timedelta(seconds=env_int(f"{p}OTP_EXPIRY_SECS", default=120, minimum=1)),
        max_attempts=env_int(f"{p}OTP_MAX_ATTEMPTS", default=3, minimum=1),
        rate_window=timedelta(seconds=env_int(f"{p}OTP_RATE_WINDOW_SECS", default=600, minimum=1)),
    )


def generate_otp_code() -> str:
    """Six digit code drawn uniformly from [100000, 999999] via the OS CSPRNG."""
    return f"{secrets.randbelow(_CODE_MAX - _CODE_MIN + 1) + _CODE_MIN:06d}"
