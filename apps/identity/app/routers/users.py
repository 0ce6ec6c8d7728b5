from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..auth import get_current_principal, get_directory
from ..schemas import (
    MessageOut,
    StatsOut,
    UpdateUserIn,
    UserEnvelopeOut,
    UsersListOut,
    user_out,
)
from ..utils.users import UserDirectory


router = APIRouter(prefix="/users", tags=["users"], dependencies=[Depends(get_current_principal)])


@router.get("", response_model=UsersListOut)
def list_users(
    page: int = Query(1),
    limit: int = Query(10),
    search: Optional[str] = Query(None),
    directory: UserDirectory = Depends(get_directory),
):
    result = directory.list_users(page, limit, search)
    return UsersListOut(
        users=[user_out(u) for u in result.users],
        total=result.total,
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
    )


# Declared before /{user_id} so "stats" is not parsed as an id
@router.get("/stats", response_model=StatsOut)
def user_stats(directory: UserDirectory = Depends(get_directory)):
    stats = directory.get_user_stats()
    return StatsOut(
        total_users=stats.total_users,
        users_today=stats.users_today,
        users_this_week=stats.users_this_week,
        users_this_month=stats.users_this_month,
        timestamp=stats.timestamp,
    )


@router.get("/{user_id}", response_model=UserEnvelopeOut)
def get_user(user_id: str, directory: UserDirectory = Depends(get_directory)):
    return UserEnvelopeOut(user=user_out(directory.get_user_by_id(user_id)))


@router.patch("/{user_id}", response_model=UserEnvelopeOut)
def update_user(
    user_id: str,
    payload: UpdateUserIn,
    directory: UserDirectory = Depends(get_directory),
):
    user = directory.update_user(user_id, payload.phone_number)
    return UserEnvelopeOut(user=user_out(user))


@router.delete("/{user_id}", response_model=MessageOut)
def delete_user(user_id: str, directory: UserDirectory = Depends(get_directory)):
    directory.delete_user(user_id)
    return MessageOut(message="User deleted")
