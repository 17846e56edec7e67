"""Invite code usage database model.

Each row records one successful redemption. Rows are written once and never
updated. References to invite codes and users are plain columns without
foreign key constraints.
"""

from sqlalchemy import Column, Integer, String
from .base import Base


class InviteCodeUsageModel(Base):
    """Invite code usage (ledger entry) database model."""

    __tablename__ = "invite_code_usages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    invite_code_id = Column(Integer, nullable=False, index=True)
    used_by_id = Column(String, nullable=False, index=True)

    used_at = Column(String, nullable=False, index=True)  # ISO format string
    ip_address = Column(String(45), nullable=True)  # IPv4/IPv6
    user_agent = Column(String(255), nullable=True)

    created_at = Column(String, nullable=False)  # ISO format string
    deleted_at = Column(String, nullable=True, index=True)  # ISO format string
