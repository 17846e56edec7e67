"""Conversions between database models and schema objects."""

from typing import Dict, Optional

from models.invite_code import InviteCodeModel
from models.invite_code_usage import InviteCodeUsageModel
from models.user import UserModel
from schemas.invite_code import (
    InviteCodeInfo,
    InviteCodeUsageInfo,
    PublicInviteCodeInfo,
)
from schemas.user import User, UserResponse, UserSummary


def user_to_model(user: User) -> UserModel:
    return UserModel(**user.model_dump())


def model_to_user(model: UserModel) -> User:
    return User(
        user_id=model.user_id,
        email=model.email,
        username=model.username,
        password_hash=model.password_hash,
        display_name=model.display_name,
        avatar=model.avatar,
        provider=model.provider,
        status=model.status,
        role=model.role,
        invite_code_id=model.invite_code_id,
        invite_code_used=model.invite_code_used,
        created_at=model.created_at,
        updated_at=model.updated_at,
        deleted_at=model.deleted_at,
    )


def user_to_response(user: User) -> UserResponse:
    return UserResponse(**user.model_dump(exclude={"password_hash", "deleted_at"}))


def model_to_summary(model: UserModel) -> UserSummary:
    return UserSummary(
        user_id=model.user_id,
        username=model.username,
        display_name=model.display_name,
        avatar=model.avatar,
    )


def invite_code_to_info(
    model: InviteCodeModel, creator: Optional[UserModel] = None
) -> InviteCodeInfo:
    info = InviteCodeInfo.model_validate(model)
    if creator is not None:
        info.created_by = model_to_summary(creator)
    return info


def invite_code_to_public(model: InviteCodeModel) -> PublicInviteCodeInfo:
    return PublicInviteCodeInfo.model_validate(model)


def usage_to_info(
    model: InviteCodeUsageModel,
    users: Optional[Dict[str, UserModel]] = None,
    codes: Optional[Dict[int, InviteCodeModel]] = None,
) -> InviteCodeUsageInfo:
    """Build a usage view, attaching snapshots found in the lookup maps."""
    info = InviteCodeUsageInfo.model_validate(model)
    if users and model.used_by_id in users:
        info.used_by = model_to_summary(users[model.used_by_id])
    if codes and model.invite_code_id in codes:
        info.invite_code = invite_code_to_public(codes[model.invite_code_id])
    return info
