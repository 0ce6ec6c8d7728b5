import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Index, String, Uuid
from sqlalchemy.orm import declarative_base


Base = declarative_base()


def default_uuid():
    return uuid.uuid4()


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=default_uuid)
    phone_number = Column(String(32), nullable=False, unique=True, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class OTPCode(Base):
    __tablename__ = "otps"
    __table_args__ = (
        Index("ix_otps_phone_code", "phone_number", "code"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=default_uuid)
    phone_number = Column(String(32), nullable=False, index=True)
    code = Column(String(6), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    expires_at = Column(DateTime, nullable=False, index=True)
    is_used = Column(Boolean, nullable=False, default=False)

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class OTPAttempt(Base):
    __tablename__ = "otp_attempts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=default_uuid)
    phone_number = Column(String(32), nullable=False, index=True)
    attempt_time = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
