"""User database model.

This module defines the User database model using SQLAlchemy.
"""

from sqlalchemy import Column, Integer, String
from .base import Base


class UserModel(Base):
    """User database model."""

    __tablename__ = "users"

    user_id = Column(String, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    username = Column(String(100), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=True)  # None for OAuth accounts
    display_name = Column(String(255), nullable=True)
    avatar = Column(String(500), nullable=True)
    provider = Column(String(50), nullable=False, default="local", index=True)
    status = Column(String(20), nullable=False, default="active", index=True)  # 'active', 'inactive' or 'banned'
    role = Column(String(20), nullable=False, default="user", index=True)  # 'user' or 'admin'

    # Invite code the account registered with; kept even if redemption failed
    invite_code_id = Column(Integer, nullable=True, index=True)
    invite_code_used = Column(String(32), nullable=True, index=True)

    created_at = Column(String, nullable=False, index=True)  # ISO format string
    updated_at = Column(String, nullable=False)  # ISO format string
    deleted_at = Column(String, nullable=True, index=True)  # ISO format string
