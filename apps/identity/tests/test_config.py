import pytest

from app.config import MIN_JWT_SECRET_LENGTH, Settings, check_production_settings


def _prod_settings(**overrides):
    s = Settings()
    s.ENV = "prod"
    s.DEV_MODE = False
    s.ALLOWED_ORIGINS = ["https://app.example.com"]
    s.AUTO_CREATE_SCHEMA = False
    s.JWT_SECRET = "k" * MIN_JWT_SECRET_LENGTH
    s.OTP_DEV_ECHO = False
    s.OTP_SMS_PROVIDER = "log"
    s.OTP_SMS_HTTP_URL = ""
    for key, value in overrides.items():
        setattr(s, key, value)
    return s


def test_hardened_settings_pass():
    check_production_settings(_prod_settings())


def test_jwt_secret_must_cover_hs256_key_size():
    assert MIN_JWT_SECRET_LENGTH >= 32
    with pytest.raises(RuntimeError, match="JWT_SECRET"):
        check_production_settings(_prod_settings(JWT_SECRET="s" * 31))


@pytest.mark.parametrize(
    "overrides",
    [
        {"ALLOWED_ORIGINS": ["*"]},
        {"ALLOWED_ORIGINS": []},
        {"AUTO_CREATE_SCHEMA": True},
        {"JWT_SECRET": "change_me_in_prod"},
        {"OTP_DEV_ECHO": True},
        {"OTP_SMS_PROVIDER": "http"},
    ],
)
def test_unsafe_production_settings_refused(overrides):
    with pytest.raises(RuntimeError):
        check_production_settings(_prod_settings(**overrides))


def test_auto_create_refusal_points_at_migrations():
    with pytest.raises(RuntimeError, match="alembic upgrade head"):
        check_production_settings(_prod_settings(AUTO_CREATE_SCHEMA=True))
