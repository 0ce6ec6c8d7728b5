from __future__ import annotations

import datetime as dt
import uuid
from dataclasses import dataclass
from typing import Optional

import jwt

from ..errors import InvalidToken

ALGORITHM = "HS256"
DEFAULT_EXPIRES = dt.timedelta(hours=24)


@dataclass(frozen=True)
class TokenClaims:
    user_id: uuid.UUID
    phone_number: str
    issued_at: dt.datetime
    expires_at: dt.datetime


def issue_token(
    user_id: uuid.UUID | str,
    phone_number: str,
    secret: str,
    *,
    expires_in: dt.timedelta = DEFAULT_EXPIRES,
    now: Optional[dt.datetime] = None,
) -> str:
    now = now or dt.datetime.now(dt.timezone.utc)
    payload = {
        "sub": str(user_id),
        "phone_number": phone_number,
        "iat": int(now.timestamp()),
        "exp": int((now + expires_in).timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def validate_token(token: str, secret: str) -> TokenClaims:
    if not token:
        raise InvalidToken("token is required")
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[ALGORITHM],
            options={"require": ["sub", "exp", "iat"]},
        )
    except jwt.ExpiredSignatureError:
        raise InvalidToken("token expired") from None
    except jwt.InvalidTokenError:
        raise InvalidToken("token rejected") from None
    phone = payload.get("phone_number")
    try:
        user_id = uuid.UUID(str(payload["sub"]))
    except ValueError:
        raise InvalidToken("invalid subject") from None
    if not isinstance(phone, str) or not phone:
        raise InvalidToken("invalid token payload")
    return TokenClaims(
        user_id=user_id,
        phone_number=phone,
        issued_at=dt.datetime.fromtimestamp(payload["iat"], dt.timezone.utc),
        expires_at=dt.datetime.fromtimestamp(payload["exp"], dt.timezone.utc),
    )
