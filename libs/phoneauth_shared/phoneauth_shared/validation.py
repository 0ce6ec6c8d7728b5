from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List

PHONE_MIN_LENGTH = 10
PHONE_MAX_LENGTH = 15
OTP_CODE_LENGTH = 6
MAX_PAGE_LIMIT = 100
SEARCH_MIN_LENGTH = 2
SEARCH_MAX_LENGTH = 50

_PHONE_RE = re.compile(r"\+?[1-9][0-9]{1,14}")
_UUID_RE = re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}")

# Defense in depth only; queries are always bound parameters.
_SEARCH_DENY_LIST = (
    "<script",
    "javascript:",
    "onload=",
    "onerror=",
    "drop table",
    "delete from",
    "insert into",
    "update set",
)


@dataclass(frozen=True)
class ValidationIssue:
    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


def describe(issues: List[ValidationIssue]) -> str:
    return ", ".join(str(i) for i in issues)


def validate_phone_number(phone_number: str | None) -> List[ValidationIssue]:
    if not phone_number:
        return [ValidationIssue("phone_number", "phone number is required")]
    phone_number = phone_number.strip()
    issues: List[ValidationIssue] = []
    if len(phone_number) < PHONE_MIN_LENGTH:
        issues.append(ValidationIssue("phone_number", "phone number must be at least 10 digits"))
    if len(phone_number) > PHONE_MAX_LENGTH:
        issues.append(ValidationIssue("phone_number", "phone number must not exceed 15 digits"))
    if not _PHONE_RE.fullmatch(phone_number):
        issues.append(ValidationIssue("phone_number", "invalid phone number format"))
    return issues


def validate_otp_code(code: str | None) -> List[ValidationIssue]:
    if not code:
        return [ValidationIssue("code", "OTP code is required")]
    code = code.strip()
    issues: List[ValidationIssue] = []
    if len(code) != OTP_CODE_LENGTH:
        issues.append(ValidationIssue("code", "OTP code must be exactly 6 digits"))
    if not all("0" <= ch <= "9" for ch in code):
        issues.append(ValidationIssue("code", "OTP code must contain only digits"))
    return issues


def validate_user_id(user_id: str | None) -> List[ValidationIssue]:
    if not user_id:
        return [ValidationIssue("user_id", "user ID is required")]
    if not _UUID_RE.fullmatch(user_id.lower()):
        return [ValidationIssue("user_id", "invalid user ID format")]
    return []


def validate_pagination(page: int, limit: int) -> List[ValidationIssue]:
    issues: List[ValidationIssue] = []
    if page < 1:
        issues.append(ValidationIssue("page", "page must be greater than 0"))
    if limit < 1:
        issues.append(ValidationIssue("limit", "limit must be greater than 0"))
    if limit > MAX_PAGE_LIMIT:
        issues.append(ValidationIssue("limit", "limit cannot exceed 100"))
    return issues


def sanitize_string(value: str) -> str:
    return value.strip().replace("\n", "").replace("\r", "").replace("\t", "")


def is_valid_search_query(query: str) -> bool:
    if not SEARCH_MIN_LENGTH <= len(query) <= SEARCH_MAX_LENGTH:
        return False
    lowered = query.lower()
    return not any(pattern in lowered for pattern in _SEARCH_DENY_LIST)


__all__ = [
    "ValidationIssue",
    "describe",
    "validate_phone_number",
    "validate_otp_code",
    "validate_user_id",
    "validate_pagination",
    "sanitize_string",
    "is_valid_search_query",
]
