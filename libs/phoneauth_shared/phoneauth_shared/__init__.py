from .otp import OTPConfig, generate_otp_code, from_env as otp_config_from_env
from .env import env_bool, env_int, env_list
from .phone_utils import mask_phone
from .sms_provider import SmsProvider, LogBackend, HttpBackend, build_provider as build_sms_provider
from .validation import (
    ValidationIssue,
    describe,
    validate_phone_number,
    validate_otp_code,
    validate_user_id,
    validate_pagination,
    sanitize_string,
    is_valid_search_query,
)

__all__ = [
    "OTPConfig",
    "generate_otp_code",
    "otp_config_from_env",
    "env_bool",
    "env_int",
    "env_list",
    "mask_phone",
    "SmsProvider",
    "LogBackend",
    "HttpBackend",
    "build_sms_provider",
    "ValidationIssue",
    "describe",
    "validate_phone_number",
    "validate_otp_code",
    "validate_user_id",
    "validate_pagination",
    "sanitize_string",
    "is_valid_search_query",
]
