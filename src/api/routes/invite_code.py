"""Invite code routes.

This module handles HTTP endpoints for creating, validating, redeeming and
administering invite codes.

Permission requirements:
- Any authenticated user can create codes and redeem codes.
- The creator of a code or an admin can view its details and usages,
  change its status and delete it.
- Listing every code and the statistics are admin only.
- Validation is public.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Query, status

from core.dependencies import (
    ClientInfoDep,
    CurrentAdminDep,
    CurrentUserDep,
    InviteCodeManagerDep,
    InviteCodeUsageManagerDep,
    RedemptionManagerDep,
)
from core.exceptions import PermissionDeniedError
from models.invite_code import InviteCodeModel
from schemas.invite_code import (
    CreateInviteCodeRequest,
    InviteCodeInfo,
    InviteCodeListResponse,
    InviteCodeStats,
    InviteCodeStatsResponse,
    InviteCodeUsageListResponse,
    InviteCodeUsageStats,
    PublicInviteCodeInfo,
    RedeemInviteCodeRequest,
    UpdateInviteCodeStatusRequest,
)
from schemas.user import User
from utils.converters import invite_code_to_info, invite_code_to_public
from utils.pagination import page_bounds

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/invite-codes", tags=["Invite Codes"])


def _ensure_can_manage(invite: InviteCodeModel, current_user: User) -> None:
    if current_user.is_admin or invite.created_by_id == current_user.user_id:
        return
    raise PermissionDeniedError("You can only manage invite codes you created.")


@router.post(
    "",
    response_model=InviteCodeInfo,
    status_code=status.HTTP_201_CREATED,
    summary="Create an invite code",
)
def create_invite_code(
    req: CreateInviteCodeRequest,
    current_user: CurrentUserDep,
    invite_codes: InviteCodeManagerDep,
) -> InviteCodeInfo:
    """Create a new invite code owned by the current user.

    Args:
        req: Request with max_uses and description.
        current_user: Current authenticated user.
        invite_codes: Injected InviteCodeManager instance.

    Returns:
        InviteCodeInfo for the created code.
    """
    model = invite_codes.create_invite_code(
        created_by_id=current_user.user_id,
        max_uses=req.max_uses,
        description=req.description,
        metadata=req.metadata,
    )
    return invite_code_to_info(model)


@router.get(
    "/validate/{code}",
    response_model=PublicInviteCodeInfo,
    summary="Check whether an invite code can be used",
)
def validate_invite_code(code: str, invite_codes: InviteCodeManagerDep) -> PublicInviteCodeInfo:
    """Validate an invite code without consuming it.

    Returns 404 for unknown or deleted codes and 400 with a reason for codes
    that are exhausted, disabled or otherwise inactive.
    """
    return invite_code_to_public(invite_codes.validate_invite_code(code))


@router.post("/redeem", response_model=InviteCodeInfo, summary="Redeem an invite code")
def redeem_invite_code(
    req: RedeemInviteCodeRequest,
    current_user: CurrentUserDep,
    redemptions: RedemptionManagerDep,
    client: ClientInfoDep,
) -> InviteCodeInfo:
    """Consume one use of an invite code for the current user."""
    model = redemptions.redeem(
        req.code.strip(),
        current_user.user_id,
        ip_address=client["ip_address"],
        user_agent=client["user_agent"],
    )
    return invite_code_to_info(model)


@router.get("/mine", response_model=InviteCodeListResponse, summary="List my invite codes")
def list_my_invite_codes(
    current_user: CurrentUserDep,
    invite_codes: InviteCodeManagerDep,
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
) -> InviteCodeListResponse:
    page, page_size, _ = page_bounds(page, page_size)
    items, total = invite_codes.list_by_creator(current_user.user_id, page, page_size)
    return InviteCodeListResponse(
        items=[invite_code_to_info(m) for m in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/mine/usages",
    response_model=InviteCodeUsageListResponse,
    summary="List redemptions of my invite codes",
)
def list_my_invite_code_usages(
    current_user: CurrentUserDep,
    usages: InviteCodeUsageManagerDep,
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
) -> InviteCodeUsageListResponse:
    page, page_size, _ = page_bounds(page, page_size)
    items, total = usages.list_by_creator(current_user.user_id, page, page_size)
    return InviteCodeUsageListResponse(
        items=usages.hydrate(items), total=total, page=page, page_size=page_size
    )


@router.get("", response_model=InviteCodeListResponse, summary="List all invite codes")
def list_invite_codes(
    current_admin: CurrentAdminDep,
    invite_codes: InviteCodeManagerDep,
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
) -> InviteCodeListResponse:
    page, page_size, _ = page_bounds(page, page_size)
    items, total = invite_codes.list_all(page, page_size)
    return InviteCodeListResponse(
        items=[invite_code_to_info(m) for m in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/stats", response_model=InviteCodeStatsResponse, summary="Invite code statistics")
def get_invite_code_stats(
    current_admin: CurrentAdminDep,
    invite_codes: InviteCodeManagerDep,
    usages: InviteCodeUsageManagerDep,
) -> InviteCodeStatsResponse:
    return InviteCodeStatsResponse(
        codes=InviteCodeStats(**invite_codes.stats()),
        usages=InviteCodeUsageStats(**usages.usage_stats()),
    )


@router.get(
    "/{invite_code_id}",
    response_model=InviteCodeInfo,
    summary="Get an invite code with its creator and usages",
)
def get_invite_code(
    invite_code_id: int,
    current_user: CurrentUserDep,
    invite_codes: InviteCodeManagerDep,
) -> InviteCodeInfo:
    _ensure_can_manage(invite_codes.get_by_id(invite_code_id), current_user)
    return invite_codes.get_with_relations(invite_code_id)


@router.get(
    "/{invite_code_id}/usages",
    response_model=InviteCodeUsageListResponse,
    summary="List redemptions of an invite code",
)
def list_invite_code_usages(
    invite_code_id: int,
    current_user: CurrentUserDep,
    invite_codes: InviteCodeManagerDep,
    usages: InviteCodeUsageManagerDep,
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
) -> InviteCodeUsageListResponse:
    _ensure_can_manage(invite_codes.get_by_id(invite_code_id), current_user)
    page, page_size, _ = page_bounds(page, page_size)
    items, total = usages.list_by_code(invite_code_id, page, page_size)
    return InviteCodeUsageListResponse(
        items=usages.hydrate(items), total=total, page=page, page_size=page_size
    )


@router.patch(
    "/{invite_code_id}/status",
    response_model=InviteCodeInfo,
    summary="Enable or disable an invite code",
)
def update_invite_code_status(
    invite_code_id: int,
    req: UpdateInviteCodeStatusRequest,
    current_user: CurrentUserDep,
    invite_codes: InviteCodeManagerDep,
) -> InviteCodeInfo:
    _ensure_can_manage(invite_codes.get_by_id(invite_code_id), current_user)
    model = invite_codes.update_status(invite_code_id, req.status)
    logger.info(
        "Invite code status changed by user: invite_code_id=%s user_id=%s status=%s",
        invite_code_id,
        current_user.user_id,
        req.status,
    )
    return invite_code_to_info(model)


@router.delete("/{invite_code_id}", summary="Delete an invite code")
def delete_invite_code(
    invite_code_id: int,
    current_user: CurrentUserDep,
    invite_codes: InviteCodeManagerDep,
) -> dict:
    _ensure_can_manage(invite_codes.get_by_id(invite_code_id), current_user)
    invite_codes.soft_delete(invite_code_id)
    logger.info(
        "Invite code deleted by user: invite_code_id=%s user_id=%s",
        invite_code_id,
        current_user.user_id,
    )
    return {"success": True, "message": "Invite code deleted successfully"}
