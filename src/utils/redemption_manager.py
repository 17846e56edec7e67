"""Invite code redemption.

A redemption increments ``used_count``, flips the status to ``used`` when
the cap is reached and appends a ledger row, all in one transaction.

Two guards keep concurrent redemptions from overselling a code:

* the row is read with ``SELECT ... FOR UPDATE`` (backends without row locks,
  such as SQLite, ignore it);
* the counter is written with a compare-and-swap ``UPDATE`` that only matches
  while ``used_count`` still holds the value that was read and the code is
  still active. A lost swap rolls back and retries with a fresh read.
"""

import logging
from datetime import datetime
from typing import Optional

import pytz
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import config
from core.exceptions import ConflictError, InviteGateError, PersistenceError
from models.invite_code import STATUS_ACTIVE, STATUS_USED, InviteCodeModel
from utils.invite_code_manager import ensure_redeemable
from utils.invite_code_usage_manager import InviteCodeUsageManager


class RedemptionManager:
    """Consumes one use of an invite code on behalf of a user."""

    def __init__(
        self,
        db: Session,
        usage_manager: Optional[InviteCodeUsageManager] = None,
        conflict_retries: int = config.REDEMPTION_CONFLICT_RETRIES,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize RedemptionManager.

        Args:
            db: SQLAlchemy Session. Must be the session usage_manager writes to.
            usage_manager: Ledger the redemption rows go to.
            conflict_retries: Retries after a lost compare-and-swap.
            logger: Logger for audit events.
        """
        self.db = db
        self.logger = logger or logging.getLogger(__name__)
        self.usage_manager = usage_manager or InviteCodeUsageManager(db, logger=self.logger)
        self.conflict_retries = conflict_retries

    def _try_redeem(
        self,
        code: str,
        user_id: str,
        ip_address: Optional[str],
        user_agent: Optional[str],
    ) -> Optional[InviteCodeModel]:
        """Run one redemption attempt inside the current transaction.

        Returns:
            The refreshed invite code, or None when another writer changed the
            row between the read and the write.
        """
        model = (
            self.db.query(InviteCodeModel)
            .filter(InviteCodeModel.code == code)
            .with_for_update()
            .populate_existing()
            .first()
        )
        ensure_redeemable(model, code)

        expected_count = model.used_count
        new_count = expected_count + 1
        new_status = STATUS_USED if new_count >= model.max_uses else STATUS_ACTIVE

        result = self.db.execute(
            update(InviteCodeModel)
            .where(
                InviteCodeModel.id == model.id,
                InviteCodeModel.used_count == expected_count,
                InviteCodeModel.status == STATUS_ACTIVE,
                InviteCodeModel.deleted_at.is_(None),
            )
            .values(
                used_count=new_count,
                status=new_status,
                updated_at=datetime.now(pytz.utc).isoformat(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None

        self.usage_manager.record(model.id, user_id, ip_address, user_agent)
        self.db.refresh(model)
        return model

    def redeem(
        self,
        code: str,
        user_id: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        commit: bool = True,
    ) -> InviteCodeModel:
        """Redeem an invite code for a user.

        Args:
            code: The invite code string.
            user_id: user_id of the redeeming user.
            ip_address: Client address recorded in the ledger.
            user_agent: Client user agent recorded in the ledger.
            commit: When False the counter update and ledger row are left
                pending in the session for the caller to commit. Conflict
                retries roll the session back, so the caller must not have
                other pending writes at that point.

        Returns:
            The invite code after the redemption.

        Raises:
            NotFoundError: If the code does not exist or is soft-deleted.
            RedemptionError: If the code is exhausted, disabled or inactive.
            ConflictError: If every retry lost the race for the row.
            PersistenceError: If the store fails; nothing is changed.
        """
        model = None
        for attempt in range(self.conflict_retries + 1):
            try:
                model = self._try_redeem(code, user_id, ip_address, user_agent)
            except InviteGateError:
                self.db.rollback()
                raise
            except SQLAlchemyError as e:
                self.db.rollback()
                self.logger.error(
                    "Failed to redeem invite code: code=%s user_id=%s",
                    code,
                    user_id,
                    exc_info=True,
                )
                raise PersistenceError("failed to redeem invite code") from e

            if model is not None:
                break
            self.db.rollback()
            self.logger.warning(
                "Invite code redemption conflict: code=%s user_id=%s attempt=%d",
                code,
                user_id,
                attempt + 1,
            )
        else:
            raise ConflictError("invite code is being redeemed concurrently, try again")

        if commit:
            try:
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                self.logger.error(
                    "Failed to commit invite code redemption: code=%s user_id=%s",
                    code,
                    user_id,
                    exc_info=True,
                )
                raise PersistenceError("failed to redeem invite code") from e
            self.db.refresh(model)

        self.logger.info(
            "Invite code redeemed: invite_code_id=%s code=%s user_id=%s used_count=%s status=%s",
            model.id,
            code,
            user_id,
            model.used_count,
            model.status,
        )
        return model
