from __future__ import annotations

import calendar
import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Callable, List, Optional

from phoneauth_shared import (
    describe,
    is_valid_search_query,
    sanitize_string,
    validate_pagination,
    validate_phone_number,
    validate_user_id,
)

from ..errors import UserNotFound, ValidationFailed, internal_errors
from ..models import User
from ..store import CredentialStore, DuplicateUserError


@dataclass
class UserPage:
    users: List[User]
    total: int
    page: int
    limit: int
    total_pages: int


@dataclass
class UserStats:
    total_users: int
    users_today: int
    users_this_week: int
    users_this_month: int
    timestamp: datetime


def _one_month_earlier(d: datetime) -> datetime:
    year, month = (d.year, d.month - 1) if d.month > 1 else (d.year - 1, 12)
    return d.replace(year=year, month=month, day=min(d.day, calendar.monthrange(year, month)[1]))


def stats_boundaries(now_utc: datetime, tz: Optional[tzinfo] = None) -> tuple[datetime, datetime, datetime]:
    """Local midnight today, a week before it and a calendar month before it, as naive UTC.

    ``tz`` defaults to the server zone. Each boundary gets the UTC offset in
    force at that instant, so DST changes between now and a boundary count.
    """
    aware_now = now_utc.replace(tzinfo=timezone.utc)
    local = aware_now.astimezone(tz) if tz is not None else aware_now.astimezone()
    midnight = datetime(local.year, local.month, local.day)

    def to_utc(d: datetime) -> datetime:
        # a naive astimezone() reads d as server local time
        aware = d.replace(tzinfo=tz) if tz is not None else d.astimezone()
        return aware.astimezone(timezone.utc).replace(tzinfo=None)

    return to_utc(midnight), to_utc(midnight - timedelta(days=7)), to_utc(_one_month_earlier(midnight))


class UserDirectory:
    def __init__(
        self,
        store: CredentialStore,
        *,
        clock: Callable[[], datetime] = datetime.utcnow,
        tz: Optional[tzinfo] = None,
    ):
        self.store = store
        self.clock = clock
        self.tz = tz

    def get_user_by_id(self, user_id: uuid.UUID | str) -> User:
        uid = self._parse_id(user_id)
        with internal_errors("get user"):
            user = self.store.get_user_by_id(uid)
        if user is None:
            raise UserNotFound()
        return user

    def list_users(self, page: int, limit: int, search: Optional[str] = None) -> UserPage:
        issues = validate_pagination(page, limit)
        if issues:
            raise ValidationFailed(describe(issues))
        search = sanitize_string(search) if search else ""
        if search and not is_valid_search_query(search):
            raise ValidationFailed("invalid search query")
        with internal_errors("list users"):
            rows, total = self.store.list_users(page, limit, search or None)
        return UserPage(
            users=list(rows),
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit),
        )

    def get_user_stats(self) -> UserStats:
        # Full scan; fine for the user counts this service targets.
        now = self.clock()
        today, week, month = stats_boundaries(now, self.tz)
        with internal_errors("load users for stats"):
            rows, total = self.store.list_users(1, None, None)
        return UserStats(
            total_users=total,
            users_today=sum(1 for u in rows if u.created_at > today),
            users_this_week=sum(1 for u in rows if u.created_at > week),
            users_this_month=sum(1 for u in rows if u.created_at > month),
            timestamp=now,
        )

    def update_user(self, user_id: uuid.UUID | str, phone_number: str) -> User:
        uid = self._parse_id(user_id)
        phone_number = (phone_number or "").strip()
        issues = validate_phone_number(phone_number)
        if issues:
            raise ValidationFailed(describe(issues))
        with internal_errors("update user"):
            try:
                user = self.store.update_user(uid, phone_number, updated_at=self.clock())
            except DuplicateUserError:
                raise ValidationFailed("phone number already registered") from None
        if user is None:
            raise UserNotFound()
        return user

    def delete_user(self, user_id: uuid.UUID | str) -> None:
        uid = self._parse_id(user_id)
        with internal_errors("delete user"):
            removed = self.store.delete_user(uid)
        if removed == 0:
            raise UserNotFound()

    @staticmethod
    def _parse_id(user_id: uuid.UUID | str) -> uuid.UUID:
        if isinstance(user_id, uuid.UUID):
            return user_id
        issues = validate_user_id(user_id)
        if issues:
            raise ValidationFailed(describe(issues))
        return uuid.UUID(user_id)
