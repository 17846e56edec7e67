"""Invite code management utilities.

This module provides persistence for invite codes: creation with a generated
code, lookups, status changes, soft deletion, listing and aggregate
statistics. Redemption lives in ``utils.redemption_manager``; it is the only
place that increments ``used_count`` or sets the ``used`` status.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import pytz
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import config
from core.exceptions import (
    InviteCodeDisabledError,
    InviteCodeExhaustedError,
    InviteCodeInactiveError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from models.invite_code import (
    STATUS_ACTIVE,
    STATUS_DISABLED,
    STATUS_USED,
    InviteCodeModel,
)
from models.invite_code_usage import InviteCodeUsageModel
from models.user import UserModel
from schemas.invite_code import InviteCodeInfo
from utils.converters import invite_code_to_info, usage_to_info
from utils.invite_code_generator import InviteCodeGenerator
from utils.pagination import page_bounds

# Statuses a creator or admin may set directly.
SETTABLE_STATUSES = (STATUS_ACTIVE, STATUS_DISABLED)


def ensure_redeemable(model: Optional[InviteCodeModel], code: str = None) -> InviteCodeModel:
    """Check that an invite code can take one more redemption.

    Exhaustion is reported before any other inactive state.

    Args:
        model: The invite code row, or None when the lookup found nothing.
        code: The code string, for error reporting.

    Returns:
        The same model when it is redeemable.

    Raises:
        NotFoundError: If the code does not exist or is soft-deleted.
        InviteCodeExhaustedError: If used_count has reached max_uses.
        InviteCodeDisabledError: If the code was disabled.
        InviteCodeInactiveError: If the code is not active for another reason.
    """
    if model is None or model.is_deleted:
        raise NotFoundError("invite code", code)
    if model.can_be_used:
        return model
    if model.is_exhausted:
        raise InviteCodeExhaustedError(model.code)
    if model.status == STATUS_DISABLED:
        raise InviteCodeDisabledError(model.code)
    raise InviteCodeInactiveError(model.code)


class InviteCodeManager:
    """Manages invite code records using SQLAlchemy."""

    def __init__(
        self,
        db: Session,
        generator: Optional[InviteCodeGenerator] = None,
        min_uses: int = config.INVITE_CODE_MIN_USES,
        max_uses: int = config.INVITE_CODE_MAX_USES,
        default_max_uses: int = config.INVITE_CODE_DEFAULT_MAX_USES,
        description_max_length: int = config.INVITE_CODE_DESCRIPTION_MAX_LENGTH,
        generation_attempts: int = config.INVITE_CODE_GENERATION_ATTEMPTS,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize InviteCodeManager.

        Args:
            db: SQLAlchemy Session.
            generator: Code generator. Defaults to one backed by this store.
            min_uses: Lowest accepted max_uses.
            max_uses: Highest accepted max_uses.
            default_max_uses: max_uses when the caller does not give one.
            description_max_length: Longest accepted description.
            generation_attempts: Attempts for the default generator.
            logger: Logger for audit events.
        """
        self.db = db
        self.min_uses = min_uses
        self.max_uses = max_uses
        self.default_max_uses = default_max_uses
        self.description_max_length = description_max_length
        self.logger = logger or logging.getLogger(__name__)
        self.generator = generator or InviteCodeGenerator(
            self.code_exists, max_attempts=generation_attempts, logger=self.logger
        )

    def _commit(self, action: str, **context) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            details = " ".join(f"{k}={v}" for k, v in context.items())
            self.logger.error("Failed to %s: %s", action, details, exc_info=True)
            raise PersistenceError(f"failed to {action}") from e

    def _query(self, include_deleted: bool = False):
        query = self.db.query(InviteCodeModel)
        if not include_deleted:
            query = query.filter(InviteCodeModel.deleted_at.is_(None))
        return query

    def code_exists(self, code: str) -> bool:
        """Return True if any row, soft-deleted or not, holds this code."""
        return (
            self.db.query(InviteCodeModel.id)
            .filter(InviteCodeModel.code == code)
            .first()
            is not None
        )

    def validate_create_params(self, max_uses: int, description: Optional[str]) -> None:
        if isinstance(max_uses, bool) or not isinstance(max_uses, int):
            raise ValidationError("max_uses must be an integer")
        if max_uses < self.min_uses or max_uses > self.max_uses:
            raise ValidationError(
                f"max_uses must be between {self.min_uses} and {self.max_uses}"
            )
        if description is not None and len(description) > self.description_max_length:
            raise ValidationError(
                f"description must be at most {self.description_max_length} characters"
            )

    def create_invite_code(
        self,
        created_by_id: str,
        max_uses: Optional[int] = None,
        description: Optional[str] = None,
        metadata: Optional[str] = None,
    ) -> InviteCodeModel:
        """Create a new active invite code.

        Args:
            created_by_id: user_id of the creator.
            max_uses: Maximum redemptions. Defaults to default_max_uses.
            description: Optional free text.
            metadata: Optional opaque blob (typically JSON text).

        Returns:
            Created InviteCodeModel instance.

        Raises:
            ValidationError: If max_uses or description is out of bounds.
            CodeGenerationError: If no unique code could be generated.
            PersistenceError: If the insert fails.
        """
        if max_uses is None:
            max_uses = self.default_max_uses
        self.validate_create_params(max_uses, description)

        code = self.generator.generate()
        now = datetime.now(pytz.utc).isoformat()
        model = InviteCodeModel(
            code=code,
            created_by_id=created_by_id,
            status=STATUS_ACTIVE,
            max_uses=max_uses,
            used_count=0,
            description=description,
            extra_metadata=metadata,
            created_at=now,
            updated_at=now,
        )
        self.db.add(model)
        self._commit("create invite code", created_by_id=created_by_id)
        self.db.refresh(model)
        self.logger.info(
            "Invite code created: invite_code_id=%s code=%s created_by_id=%s max_uses=%s",
            model.id,
            code,
            created_by_id,
            max_uses,
        )
        return model

    def get_by_id(self, invite_code_id: int, include_deleted: bool = False) -> InviteCodeModel:
        """Get an invite code by its id.

        Raises:
            NotFoundError: If no such (non-deleted) code exists.
        """
        model = (
            self._query(include_deleted)
            .filter(InviteCodeModel.id == invite_code_id)
            .first()
        )
        if not model:
            raise NotFoundError("invite code", invite_code_id)
        return model

    def get_by_code(self, code: str, include_deleted: bool = False) -> InviteCodeModel:
        """Get an invite code by its code string.

        Raises:
            NotFoundError: If no such (non-deleted) code exists.
        """
        model = self._query(include_deleted).filter(InviteCodeModel.code == code).first()
        if not model:
            raise NotFoundError("invite code", code)
        return model

    def get_with_relations(self, invite_code_id: int) -> InviteCodeInfo:
        """Get an invite code with its creator and usage records.

        Usage records are newest first. Redeeming users are loaded with a
        single query for the distinct ids involved.
        """
        model = self.get_by_id(invite_code_id)
        usages = (
            self.db.query(InviteCodeUsageModel)
            .filter(
                InviteCodeUsageModel.invite_code_id == model.id,
                InviteCodeUsageModel.deleted_at.is_(None),
            )
            .order_by(InviteCodeUsageModel.used_at.desc(), InviteCodeUsageModel.id.desc())
            .all()
        )
        user_ids = {u.used_by_id for u in usages} | {model.created_by_id}
        users = {
            u.user_id: u
            for u in self.db.query(UserModel).filter(UserModel.user_id.in_(user_ids)).all()
        }
        info = invite_code_to_info(model, users.get(model.created_by_id))
        info.usage_records = [usage_to_info(u, users=users) for u in usages]
        return info

    def validate_invite_code(self, code: str) -> InviteCodeModel:
        """Check that a code exists and can be redeemed, without changing it.

        Raises:
            NotFoundError: If the code does not exist or is soft-deleted.
            RedemptionError: If the code is exhausted, disabled or inactive.
        """
        model = self._query().filter(InviteCodeModel.code == code).first()
        return ensure_redeemable(model, code)

    def update_status(self, invite_code_id: int, status: str) -> InviteCodeModel:
        """Set the status of an invite code to 'active' or 'disabled'.

        The 'used' status is reached only through redemption, and an
        exhausted code keeps it.

        Raises:
            ValidationError: If the status is not settable or the code is exhausted.
            NotFoundError: If the code does not exist.
        """
        if status not in SETTABLE_STATUSES:
            raise ValidationError(
                f"status must be one of: {', '.join(SETTABLE_STATUSES)}"
            )

        model = (
            self._query()
            .filter(InviteCodeModel.id == invite_code_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if not model:
            self.db.rollback()
            raise NotFoundError("invite code", invite_code_id)
        if model.is_exhausted or model.status == STATUS_USED:
            self.db.rollback()
            raise ValidationError("status of an exhausted invite code cannot be changed")

        model.status = status
        model.updated_at = datetime.now(pytz.utc).isoformat()
        self._commit("update invite code status", invite_code_id=invite_code_id, status=status)
        self.db.refresh(model)
        self.logger.info(
            "Invite code status updated: invite_code_id=%s status=%s", invite_code_id, status
        )
        return model

    def soft_delete(self, invite_code_id: int) -> None:
        """Soft delete an invite code.

        Raises:
            NotFoundError: If the code does not exist or is already deleted.
        """
        model = self.get_by_id(invite_code_id)
        now = datetime.now(pytz.utc).isoformat()
        model.deleted_at = now
        model.updated_at = now
        self._commit("delete invite code", invite_code_id=invite_code_id)
        self.logger.info("Invite code deleted: invite_code_id=%s", invite_code_id)

    def _paginate(self, query, page: int, page_size: Optional[int]):
        page, page_size, offset = page_bounds(page, page_size)
        total = query.with_entities(func.count(InviteCodeModel.id)).scalar()
        items = (
            query.order_by(InviteCodeModel.created_at.desc(), InviteCodeModel.id.desc())
            .limit(page_size)
            .offset(offset)
            .all()
        )
        return items, total

    def list_by_creator(
        self, created_by_id: str, page: int = 1, page_size: Optional[int] = None
    ) -> Tuple[List[InviteCodeModel], int]:
        """List invite codes created by a user, newest first.

        Returns:
            Tuple of (codes on the page, total matching codes).
        """
        query = self._query().filter(InviteCodeModel.created_by_id == created_by_id)
        return self._paginate(query, page, page_size)

    def list_all(
        self, page: int = 1, page_size: Optional[int] = None
    ) -> Tuple[List[InviteCodeModel], int]:
        """List all invite codes, newest first.

        Returns:
            Tuple of (codes on the page, total codes).
        """
        return self._paginate(self._query(), page, page_size)

    def stats(self) -> Dict[str, int]:
        """Aggregate counts by status and the total number of redemptions."""
        rows = (
            self._query()
            .with_entities(
                InviteCodeModel.status,
                func.count(InviteCodeModel.id),
                func.coalesce(func.sum(InviteCodeModel.used_count), 0),
            )
            .group_by(InviteCodeModel.status)
            .all()
        )
        by_status = {status: (count, used) for status, count, used in rows}
        return {
            "total_codes": sum(count for count, _ in by_status.values()),
            "active_codes": by_status.get(STATUS_ACTIVE, (0, 0))[0],
            "used_codes": by_status.get(STATUS_USED, (0, 0))[0],
            "disabled_codes": by_status.get(STATUS_DISABLED, (0, 0))[0],
            "total_redemptions": int(sum(used for _, used in by_status.values())),
        }
