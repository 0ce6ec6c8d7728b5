from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime


class SendOTPIn(BaseModel):
    phone_number: str = Field(max_length=32)


class SendOTPOut(BaseModel):
    success: bool = True
    message: str
    expires_at: datetime
    dev_code: Optional[str] = None  # only when OTP_DEV_ECHO


class VerifyOTPIn(BaseModel):
    phone_number: str = Field(max_length=32)
    code: str = Field(max_length=16)


class UserOut(BaseModel):
    id: str
    phone_number: str
    created_at: datetime
    updated_at: datetime


class VerifyOTPOut(BaseModel):
    success: bool = True
    message: str
    token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: UserOut


class PrincipalOut(BaseModel):
    id: str
    phone_number: str


class ProfileOut(BaseModel):
    success: bool = True
    user: PrincipalOut


class UserEnvelopeOut(BaseModel):
    success: bool = True
    user: UserOut


class UsersListOut(BaseModel):
    success: bool = True
    users: List[UserOut]
    total: int
    page: int
    limit: int
    total_pages: int


class StatsOut(BaseModel):
    success: bool = True
    total_users: int
    users_today: int
    users_this_week: int
    users_this_month: int
    timestamp: datetime


class UpdateUserIn(BaseModel):
    phone_number: str = Field(max_length=32)


class MessageOut(BaseModel):
    success: bool = True
    message: str


def user_out(user) -> UserOut:
    return UserOut(
        id=str(user.id),
        phone_number=user.phone_number,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )
