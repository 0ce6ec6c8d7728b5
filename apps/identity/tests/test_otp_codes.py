import pytest

from phoneauth_shared import generate_otp_code, otp_config_from_env


def test_generated_codes_are_six_digits():
    for _ in range(500):
        code = generate_otp_code()
        assert len(code) == 6
        assert code.isdigit()
        assert 100000 <= int(code) <= 999999


def test_generated_codes_spread_across_range():
    codes = [int(generate_otp_code()) for _ in range(2000)]
    # 2000 uniform draws from 900000 values: collisions are rare, both halves hit
    assert len(set(codes)) > 1900
    assert any(c < 550000 for c in codes)
    assert any(c >= 550000 for c in codes)


def test_otp_config_from_env(monkeypatch):
    monkeypatch.setenv("OTP_EXPIRY_SECS", "300")
    monkeypatch.setenv("OTP_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("OTP_RATE_WINDOW_SECS", "60")
    cfg = otp_config_from_env()
    assert cfg.expiry.total_seconds() == 300
    assert cfg.max_attempts == 5
    assert cfg.rate_window.total_seconds() == 60


def test_otp_config_rejects_nonsense(monkeypatch):
    monkeypatch.setenv("OTP_MAX_ATTEMPTS", "0")
    with pytest.raises(ValueError):
        otp_config_from_env()


def test_otp_config_defaults(monkeypatch):
    for name in ("OTP_EXPIRY_SECS", "OTP_MAX_ATTEMPTS", "OTP_RATE_WINDOW_SECS"):
        monkeypatch.delenv(name, raising=False)
    cfg = otp_config_from_env()
    assert cfg.expiry.total_seconds() == 120
    assert cfg.max_attempts == 3
    assert cfg.rate_window.total_seconds() == 600
