"""Credential store: persistence for OTP codes, send attempts and users.

``CredentialStore`` is the contract the services are written against.
``SqlCredentialStore`` runs every call in its own transaction on a
SQLAlchemy session factory; ``InMemoryCredentialStore`` keeps the same
per-call atomicity behind a lock and backs the unit tests.

Reads return ``None`` when nothing matches. ``create_user`` and
``update_user`` raise ``DuplicateUserError`` when the phone number is
already taken.
"""
from __future__ import annotations

import functools
import json
import logging
import threading
import uuid
from datetime import datetime
from typing import Optional, Protocol, Sequence, Tuple

from sqlalchemy import delete, func, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .database import session_scope
from .models import OTPAttempt, OTPCode, User

logger = logging.getLogger("identity.store")


class DuplicateUserError(Exception):
    def __init__(self, phone_number: str):
        super().__init__("phone number already registered")
        self.phone_number = phone_number


class CredentialStore(Protocol):
    def create_otp(self, phone_number: str, code: str, expires_at: datetime, created_at: datetime) -> OTPCode: ...

    def find_valid_otp(self, phone_number: str, code: str) -> Optional[OTPCode]: ...

    def mark_otp_used(self, otp_id: uuid.UUID) -> int: ...

    def delete_expired_otps(self, now: datetime) -> int: ...

    def create_attempt(self, phone_number: str, attempted_at: datetime) -> OTPAttempt: ...

    def count_attempts_since(self, phone_number: str, since: datetime) -> int: ...

    def delete_attempts_before(self, before: datetime) -> int: ...

    def create_user(self, phone_number: str, created_at: Optional[datetime] = None) -> User: ...

    def get_user_by_id(self, user_id: uuid.UUID) -> Optional[User]: ...

    def get_user_by_phone(self, phone_number: str) -> Optional[User]: ...

    def list_users(self, page: int, limit: Optional[int], search: Optional[str]) -> Tuple[Sequence[User], int]: ...

    def update_user(self, user_id: uuid.UUID, phone_number: str, updated_at: datetime) -> Optional[User]: ...

    def delete_user(self, user_id: uuid.UUID) -> int: ...

    def ping(self) -> None: ...


def _db_operation(operation: str, table: str):
    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                return fn(*args, **kwargs)
            except SQLAlchemyError as exc:
                logger.error(json.dumps({
                    "type": "database",
                    "operation": operation,
                    "table": table,
                    "success": False,
                    "error": exc.__class__.__name__,
                }))
                raise
        return wrapper
    return decorator


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlCredentialStore:
    def __init__(self, sessions: sessionmaker):
        self._sessions = sessions

    # --- OTP codes ---

    @_db_operation("create", "otps")
    def create_otp(self, phone_number: str, code: str, expires_at: datetime, created_at: datetime) -> OTPCode:
        with session_scope(self._sessions) as db:
            otp = OTPCode(
                phone_number=phone_number,
                code=code,
                created_at=created_at,
                expires_at=expires_at,
                is_used=False,
            )
            db.add(otp)
            db.flush()
            return otp

    @_db_operation("find", "otps")
    def find_valid_otp(self, phone_number: str, code: str) -> Optional[OTPCode]:
        with session_scope(self._sessions) as db:
            stmt = (
                select(OTPCode)
                .where(OTPCode.phone_number == phone_number)
                .where(OTPCode.code == code)
                .where(OTPCode.is_used.is_(False))
                .order_by(OTPCode.created_at.asc())
                .limit(1)
            )
            return db.execute(stmt).scalars().first()

    @_db_operation("update", "otps")
    def mark_otp_used(self, otp_id: uuid.UUID) -> int:
        # Conditional update: of two racing verifies only one sees a row change.
        with session_scope(self._sessions) as db:
            res = db.execute(
                update(OTPCode)
                .where(OTPCode.id == otp_id)
                .where(OTPCode.is_used.is_(False))
                .values(is_used=True)
            )
            return res.rowcount or 0

    @_db_operation("cleanup", "otps")
    def delete_expired_otps(self, now: datetime) -> int:
        with session_scope(self._sessions) as db:
            res = db.execute(delete(OTPCode).where(OTPCode.expires_at < now))
            return res.rowcount or 0

    # --- send attempts ---

    @_db_operation("create", "otp_attempts")
    def create_attempt(self, phone_number: str, attempted_at: datetime) -> OTPAttempt:
        with session_scope(self._sessions) as db:
            attempt = OTPAttempt(phone_number=phone_number, attempt_time=attempted_at)
            db.add(attempt)
            db.flush()
            return attempt

    @_db_operation("count", "otp_attempts")
    def count_attempts_since(self, phone_number: str, since: datetime) -> int:
        with session_scope(self._sessions) as db:
            stmt = (
                select(func.count())
                .select_from(OTPAttempt)
                .where(OTPAttempt.phone_number == phone_number)
                .where(OTPAttempt.attempt_time > since)
            )
            return int(db.execute(stmt).scalar_one())

    @_db_operation("cleanup", "otp_attempts")
    def delete_attempts_before(self, before: datetime) -> int:
        with session_scope(self._sessions) as db:
            res = db.execute(delete(OTPAttempt).where(OTPAttempt.attempt_time < before))
            return res.rowcount or 0

    # --- users ---

    @_db_operation("create", "users")
    def create_user(self, phone_number: str, created_at: Optional[datetime] = None) -> User:
        now = created_at or datetime.utcnow()
        try:
            with session_scope(self._sessions) as db:
                user = User(phone_number=phone_number, created_at=now, updated_at=now)
                db.add(user)
                db.flush()
                return user
        except IntegrityError as exc:
            raise DuplicateUserError(phone_number) from exc

    @_db_operation("find", "users")
    def get_user_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        with session_scope(self._sessions) as db:
            return db.get(User, user_id)

    @_db_operation("find", "users")
    def get_user_by_phone(self, phone_number: str) -> Optional[User]:
        with session_scope(self._sessions) as db:
            return db.execute(select(User).where(User.phone_number == phone_number)).scalars().first()

    @_db_operation("find", "users")
    def list_users(self, page: int, limit: Optional[int], search: Optional[str]) -> Tuple[Sequence[User], int]:
        with session_scope(self._sessions) as db:
            stmt = select(User)
            count_stmt = select(func.count()).select_from(User)
            if search:
                cond = User.phone_number.ilike(f"%{_escape_like(search)}%", escape="\\")
                stmt = stmt.where(cond)
                count_stmt = count_stmt.where(cond)
            total = int(db.execute(count_stmt).scalar_one())
            stmt = stmt.order_by(User.created_at.desc(), User.id.desc())
            if limit is not None:
                stmt = stmt.offset((page - 1) * limit).limit(limit)
            return list(db.execute(stmt).scalars().all()), total

    @_db_operation("update", "users")
    def update_user(self, user_id: uuid.UUID, phone_number: str, updated_at: datetime) -> Optional[User]:
        try:
            with session_scope(self._sessions) as db:
                user = db.get(User, user_id)
                if user is None:
                    return None
                user.phone_number = phone_number
                user.updated_at = updated_at
                db.flush()
                return user
        except IntegrityError as exc:
            raise DuplicateUserError(phone_number) from exc

    @_db_operation("delete", "users")
    def delete_user(self, user_id: uuid.UUID) -> int:
        with session_scope(self._sessions) as db:
            res = db.execute(delete(User).where(User.id == user_id))
            return res.rowcount or 0

    def ping(self) -> None:
        with session_scope(self._sessions) as db:
            db.execute(text("SELECT 1"))


class InMemoryCredentialStore:
    def __init__(self):
        self._lock = threading.Lock()
        self._otps: list[OTPCode] = []
        self._attempts: list[OTPAttempt] = []
        self._users: dict[uuid.UUID, User] = {}

    def create_otp(self, phone_number: str, code: str, expires_at: datetime, created_at: datetime) -> OTPCode:
        otp = OTPCode(
            id=uuid.uuid4(),
            phone_number=phone_number,
            code=code,
            created_at=created_at,
            expires_at=expires_at,
            is_used=False,
        )
        with self._lock:
            self._otps.append(otp)
        return otp

    def find_valid_otp(self, phone_number: str, code: str) -> Optional[OTPCode]:
        with self._lock:
            matches = [
                o for o in self._otps
                if o.phone_number == phone_number and o.code == code and not o.is_used
            ]
        return min(matches, key=lambda o: o.created_at) if matches else None

    def mark_otp_used(self, otp_id: uuid.UUID) -> int:
        with self._lock:
            for otp in self._otps:
                if otp.id == otp_id and not otp.is_used:
                    otp.is_used = True
                    return 1
        return 0

    def delete_expired_otps(self, now: datetime) -> int:
        with self._lock:
            kept = [o for o in self._otps if o.expires_at >= now]
            removed = len(self._otps) - len(kept)
            self._otps = kept
        return removed

    def create_attempt(self, phone_number: str, attempted_at: datetime) -> OTPAttempt:
        attempt = OTPAttempt(id=uuid.uuid4(), phone_number=phone_number, attempt_time=attempted_at)
        with self._lock:
            self._attempts.append(attempt)
        return attempt

    def count_attempts_since(self, phone_number: str, since: datetime) -> int:
        with self._lock:
            return sum(1 for a in self._attempts if a.phone_number == phone_number and a.attempt_time > since)

    def delete_attempts_before(self, before: datetime) -> int:
        with self._lock:
            kept = [a for a in self._attempts if a.attempt_time >= before]
            removed = len(self._attempts) - len(kept)
            self._attempts = kept
        return removed

    def create_user(self, phone_number: str, created_at: Optional[datetime] = None) -> User:
        now = created_at or datetime.utcnow()
        with self._lock:
            if any(u.phone_number == phone_number for u in self._users.values()):
                raise DuplicateUserError(phone_number)
            user = User(id=uuid.uuid4(), phone_number=phone_number, created_at=now, updated_at=now)
            self._users[user.id] = user
        return user

    def get_user_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        with self._lock:
            return self._users.get(user_id)

    def get_user_by_phone(self, phone_number: str) -> Optional[User]:
        with self._lock:
            return next((u for u in self._users.values() if u.phone_number == phone_number), None)

    def list_users(self, page: int, limit: Optional[int], search: Optional[str]) -> Tuple[Sequence[User], int]:
        with self._lock:
            rows = list(self._users.values())
        if search:
            needle = search.lower()
            rows = [u for u in rows if needle in u.phone_number.lower()]
        rows.sort(key=lambda u: (u.created_at, str(u.id)), reverse=True)
        total = len(rows)
        if limit is not None:
            start = (page - 1) * limit
            rows = rows[start:start + limit]
        return rows, total

    def update_user(self, user_id: uuid.UUID, phone_number: str, updated_at: datetime) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            if any(u.phone_number == phone_number and u.id != user_id for u in self._users.values()):
                raise DuplicateUserError(phone_number)
            user.phone_number = phone_number
            user.updated_at = updated_at
            return user

    def delete_user(self, user_id: uuid.UUID) -> int:
        with self._lock:
            return 1 if self._users.pop(user_id, None) is not None else 0

    def ping(self) -> None:
        return None
