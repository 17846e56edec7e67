"""Invite code schema definitions.

Request and response models for the invite code endpoints. Range checks on
``max_uses`` and ``description`` are enforced by InviteCodeManager so that
they surface as ValidationError rather than request parsing errors.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from schemas.user import UserSummary


class CreateInviteCodeRequest(BaseModel):
    max_uses: Optional[int] = Field(
        default=None, description="Maximum number of redemptions (1-100)."
    )
    description: Optional[str] = Field(default=None, description="Free text note.")
    metadata: Optional[str] = Field(
        default=None, description="Opaque client data, typically JSON text."
    )


class UpdateInviteCodeStatusRequest(BaseModel):
    status: str = Field(description="'active' or 'disabled'.")


class RedeemInviteCodeRequest(BaseModel):
    code: str


class PublicInviteCodeInfo(BaseModel):
    """Invite code view that is safe to show to anyone holding the code."""

    model_config = ConfigDict(from_attributes=True)

    code: str
    status: str
    max_uses: int
    used_count: int
    description: Optional[str] = None


class InviteCodeUsageInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    invite_code_id: int
    used_by_id: str
    used_at: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: str

    invite_code: Optional[PublicInviteCodeInfo] = None
    used_by: Optional[UserSummary] = None


class InviteCodeInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    created_by_id: str
    status: str
    max_uses: int
    used_count: int
    description: Optional[str] = None
    metadata: Optional[str] = Field(default=None, validation_alias="extra_metadata")
    created_at: str
    updated_at: str

    created_by: Optional[UserSummary] = None
    usage_records: Optional[List[InviteCodeUsageInfo]] = None


class InviteCodeListResponse(BaseModel):
    items: List[InviteCodeInfo]
    total: int
    page: int
    page_size: int


class InviteCodeUsageListResponse(BaseModel):
    items: List[InviteCodeUsageInfo]
    total: int
    page: int
    page_size: int


class InviteCodeStats(BaseModel):
    total_codes: int
    active_codes: int
    used_codes: int
    disabled_codes: int
    total_redemptions: int


class InviteCodeUsageStats(BaseModel):
    total_usages: int
    today_usages: int
    week_usages: int
    month_usages: int


class InviteCodeStatsResponse(BaseModel):
    codes: InviteCodeStats
    usages: InviteCodeUsageStats
