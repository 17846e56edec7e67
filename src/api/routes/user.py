"""User routes.

Endpoints scoped to the current user that are not part of authentication.
"""

from typing import Optional

from fastapi import APIRouter, Query

from core.dependencies import CurrentUserDep, InviteCodeUsageManagerDep
from schemas.invite_code import InviteCodeUsageListResponse
from utils.pagination import page_bounds

router = APIRouter(prefix="/api/users", tags=["Users"])


@router.get(
    "/me/invite-usages",
    response_model=InviteCodeUsageListResponse,
    summary="List invite codes I redeemed",
)
def list_my_redemptions(
    current_user: CurrentUserDep,
    usages: InviteCodeUsageManagerDep,
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
) -> InviteCodeUsageListResponse:
    page, page_size, _ = page_bounds(page, page_size)
    items, total = usages.list_by_user(current_user.user_id, page, page_size)
    return InviteCodeUsageListResponse(
        items=usages.hydrate(items), total=total, page=page, page_size=page_size
    )
