from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import httpx

from .phone_utils import mask_phone

logger = logging.getLogger("identity.sms")

DEFAULT_TEMPLATE = "Your verification code is {code}"


class SmsBackend(Protocol):
    def send(self, phone: str, message: str) -> None:  # pragma: no cover - interface
        ...


@dataclass
class LogBackend:
    """Development backend: writes the message to the log instead of a gateway."""

    reveal_code: bool = False

    def send(self, phone: str, message: str) -> None:
        shown = message if self.reveal_code else _mask_code_in_message(message)
        logger.info("OTP log backend send to=%s msg=%s", mask_phone(phone), shown)


@dataclass
class HttpBackend:
    url: str
    auth_token: Optional[str] = None
    sender_name: Optional[str] = None
    timeout: float = 5.0
    max_attempts: int = 3

    def send(self, phone: str, message: str) -> None:
        if not (self.url or "").strip():
            raise RuntimeError("OTP_SMS_HTTP_URL must be configured for the http SMS provider")
        payload = {"to": phone, "message": message}
        if self.sender_name:
            payload["sender"] = self.sender_name
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        _send_with_retry(
            lambda: httpx.post(self.url, json=payload, headers=headers, timeout=self.timeout),
            backend_name="http",
            max_attempts=self.max_attempts,
        )


@dataclass
class SmsProvider:
    """OTP delivery collaborator: renders the template and hands it to a backend."""

    backend: SmsBackend
    template: str = DEFAULT_TEMPLATE

    def send_code(self, phone: str, code: str) -> None:
        try:
            message = self.template.format(code=code)
        except (KeyError, IndexError, ValueError):
            message = DEFAULT_TEMPLATE.format(code=code)
        try:
            self.backend.send(phone, message)
        except Exception:
            logger.exception("SMS backend %s failed for %s", type(self.backend).__name__, mask_phone(phone))
            raise
        logger.debug("OTP dispatched via %s to=%s code=%s", type(self.backend).__name__, mask_phone(phone), _mask_code(code))

    def __repr__(self) -> str:  # pragma: no cover - helper for logging
        return f"SmsProvider({type(self.backend).__name__})"


def build_provider(
    provider: str,
    *,
    http_url: str = "",
    http_auth_token: str | None = None,
    sender_name: str | None = None,
    template: str | None = None,
    reveal_code: bool = False,
) -> SmsProvider:
    mode = (provider or "log").lower()
    if mode == "http":
        backend: SmsBackend = HttpBackend(url=http_url, auth_token=http_auth_token or None, sender_name=sender_name or None)
    elif mode == "log":
        backend = LogBackend(reveal_code=reveal_code)
    else:
        raise RuntimeError(f"Unsupported OTP_SMS_PROVIDER '{mode}'")
    return SmsProvider(backend=backend, template=template or DEFAULT_TEMPLATE)


def _mask_code(code: str) -> str:
    if not code:
        return ""
    digits = re.sub(r"\D", "", code)
    if len(digits) <= 2:
        return "*" * len(digits)
    return "*" * (len(digits) - 2) + digits[-2:]


def _mask_code_in_message(message: str) -> str:
    if not message:
        return ""
    return re.sub(r"(\d{2,})", lambda m: _mask_code(m.group(0)), message)


def _send_with_retry(call: Callable[[], httpx.Response], backend_name: str, max_attempts: int = 3) -> None:
    delay = 0.5
    for attempt in range(1, max_attempts + 1):
        try:
            res = call()
            try:
                res.raise_for_status()
            finally:
                res.close()
            return
        except httpx.HTTPError as exc:
            if attempt == max_attempts:
                raise
            logger.warning("%s SMS attempt %s failed: %s", backend_name, attempt, exc)
            time.sleep(delay)
            delay *= 2
