from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .errors import Unauthorized
from .store import CredentialStore
from .utils.otp import OTPEngine
from .utils.tokens import validate_token
from .utils.users import UserDirectory


bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    user_id: uuid.UUID
    phone_number: str


def get_store(request: Request) -> CredentialStore:
    return request.app.state.store


def get_otp_engine(request: Request) -> OTPEngine:
    return request.app.state.otp_engine


def get_directory(request: Request) -> UserDirectory:
    return request.app.state.directory


def get_current_principal(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Principal:
    # HTTPBearer yields None for a missing header or a non-Bearer scheme
    if creds is None or not creds.credentials:
        raise Unauthorized("Authorization header required, use: Bearer <token>")
    claims = validate_token(creds.credentials, request.app.state.jwt_secret)
    return Principal(user_id=claims.user_id, phone_number=claims.phone_number)
