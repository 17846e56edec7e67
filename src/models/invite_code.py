"""Invite code database model.

This module defines the InviteCode database model using SQLAlchemy.
"""

from sqlalchemy import CheckConstraint, Column, Integer, String, Text
from .base import Base

STATUS_ACTIVE = "active"
STATUS_USED = "used"
STATUS_DISABLED = "disabled"


class InviteCodeModel(Base):
    """Invite code database model."""

    __tablename__ = "invite_codes"
    __table_args__ = (
        CheckConstraint("used_count >= 0", name="ck_invite_codes_used_count_non_negative"),
        CheckConstraint("used_count <= max_uses", name="ck_invite_codes_used_count_within_max"),
        CheckConstraint("max_uses >= 1", name="ck_invite_codes_max_uses_positive"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(32), unique=True, index=True, nullable=False)
    created_by_id = Column(String, nullable=False, index=True)  # user_id, no FK

    status = Column(String(20), nullable=False, default=STATUS_ACTIVE, index=True)
    max_uses = Column(Integer, nullable=False, default=10)
    used_count = Column(Integer, nullable=False, default=0)

    description = Column(String(255), nullable=True)
    # "metadata" is reserved on declarative classes
    extra_metadata = Column("metadata", Text, nullable=True)

    created_at = Column(String, nullable=False, index=True)  # ISO format string
    updated_at = Column(String, nullable=False)  # ISO format string
    deleted_at = Column(String, nullable=True, index=True)  # ISO format string

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_exhausted(self) -> bool:
        return self.used_count >= self.max_uses

    @property
    def can_be_used(self) -> bool:
        return (
            self.status == STATUS_ACTIVE
            and not self.is_exhausted
            and not self.is_deleted
        )
