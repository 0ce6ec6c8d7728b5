"""OTP issuance and verification.

A send is refused once ``max_attempts`` sends for the phone fall inside the
trailing ``rate_window``. A code verifies once, while ``now <= expires_at``;
marking it used is a conditional update so racing verifies cannot both win.
The first successful verify for an unseen phone number registers the user.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Protocol

from phoneauth_shared import (
    OTPConfig,
    describe,
    generate_otp_code,
    mask_phone,
    validate_otp_code,
    validate_phone_number,
)

from ..errors import (
    InternalError,
    InvalidOTP,
    OTPExpired,
    RateLimitExceeded,
    ValidationFailed,
    internal_errors,
)
from ..models import OTPCode, User
from ..store import CredentialStore, DuplicateUserError
from .audit import AuditSink, record_event

logger = logging.getLogger("identity.otp")


class OTPDelivery(Protocol):
    def send_code(self, phone: str, code: str) -> None:  # pragma: no cover - interface
        ...


@dataclass
class VerifyResult:
    user: User
    registered: bool


class OTPEngine:
    def __init__(
        self,
        store: CredentialStore,
        config: OTPConfig,
        *,
        delivery: Optional[OTPDelivery] = None,
        audit: Optional[AuditSink] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
        code_generator: Callable[[], str] = generate_otp_code,
    ):
        self.store = store
        self.config = config
        self.delivery = delivery
        self.audit = audit
        self.clock = clock
        self.code_generator = code_generator

    def send_otp(self, phone_number: str) -> OTPCode:
        phone_number = (phone_number or "").strip()
        issues = validate_phone_number(phone_number)
        if issues:
            record_event(self.audit, "security", phone_number, outcome="rejected",
                         event="invalid_phone_number", reason=describe(issues))
            raise ValidationFailed(describe(issues))

        now = self.clock()
        self._check_rate_limit(phone_number, now)

        with internal_errors("generate OTP"):
            code = self.code_generator()
        expires_at = now + self.config.expiry
        with internal_errors("store OTP"):
            otp = self.store.create_otp(phone_number, code, expires_at=expires_at, created_at=now)

        try:
            self.store.create_attempt(phone_number, attempted_at=now)
        except Exception:
            logger.warning("could not record OTP attempt for %s", mask_phone(phone_number), exc_info=True)

        if self.delivery is not None:
            with internal_errors("deliver OTP"):
                self.delivery.send_code(phone_number, code)
        record_event(self.audit, "otp_generated", phone_number, action="send_otp",
                     expires_at=expires_at.isoformat() + "Z")
        return otp

    def verify_otp(self, phone_number: str, code: str) -> VerifyResult:
        phone_number = (phone_number or "").strip()
        code = (code or "").strip()
        issues = validate_phone_number(phone_number) + validate_otp_code(code)
        if issues:
            raise ValidationFailed(describe(issues))

        with internal_errors("look up OTP"):
            otp = self.store.find_valid_otp(phone_number, code)
        if otp is None:
            self._verification_failed(phone_number, "invalid code")
            raise InvalidOTP()
        if otp.is_expired(self.clock()):
            self._verification_failed(phone_number, "expired code")
            raise OTPExpired()

        with internal_errors("mark OTP used"):
            changed = self.store.mark_otp_used(otp.id)
        if changed == 0:
            self._verification_failed(phone_number, "code already used")
            raise InvalidOTP()
        record_event(self.audit, "otp_verification", phone_number, action="verify_otp")

        result = self._resolve_user(phone_number)
        if result.registered:
            record_event(self.audit, "user_registration", phone_number, user_id=str(result.user.id), action="register")
        else:
            record_event(self.audit, "user_login", phone_number, user_id=str(result.user.id), action="login")
        return result

    def cleanup_expired_otps(self) -> int:
        with internal_errors("clean up expired OTPs"):
            removed = self.store.delete_expired_otps(self.clock())
        if removed:
            logger.info("cleaned up %d expired OTPs", removed)
        return removed

    def cleanup_old_attempts(self, before: Optional[datetime] = None) -> int:
        cutoff = before or (self.clock() - self.config.rate_window)
        with internal_errors("clean up OTP attempts"):
            removed = self.store.delete_attempts_before(cutoff)
        if removed:
            logger.info("cleaned up %d OTP attempts older than %s", removed, cutoff.isoformat())
        return removed

    def _check_rate_limit(self, phone_number: str, now: datetime) -> None:
        with internal_errors("count OTP attempts"):
            count = self.store.count_attempts_since(phone_number, now - self.config.rate_window)
        if count >= self.config.max_attempts:
            record_event(self.audit, "rate_limit", phone_number, outcome="blocked",
                         attempts=count, max_attempts=self.config.max_attempts)
            raise RateLimitExceeded()

    def _verification_failed(self, phone_number: str, reason: str) -> None:
        record_event(self.audit, "otp_verification", phone_number, outcome="failed",
                     action="verify_otp", reason=reason)

    def _resolve_user(self, phone_number: str) -> VerifyResult:
        with internal_errors("resolve user"):
            user = self.store.get_user_by_phone(phone_number)
            if user is not None:
                return VerifyResult(user=user, registered=False)
            try:
                return VerifyResult(user=self.store.create_user(phone_number, created_at=self.clock()), registered=True)
            except DuplicateUserError:
                # Lost the race to a concurrent first verify; treat as login.
                user = self.store.get_user_by_phone(phone_number)
        if user is None:
            raise InternalError("user vanished after duplicate insert")
        return VerifyResult(user=user, registered=False)
