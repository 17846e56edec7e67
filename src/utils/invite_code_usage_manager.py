"""Invite code usage ledger.

Every successful redemption appends one row to ``invite_code_usages``. The
ledger has no update or delete operations. Rows reference the invite code and
the redeeming user by id only; ``hydrate`` resolves those ids for display.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

import pytz
from sqlalchemy import func
from sqlalchemy.orm import Session

from models.invite_code import InviteCodeModel
from models.invite_code_usage import InviteCodeUsageModel
from models.user import UserModel
from schemas.invite_code import InviteCodeUsageInfo
from utils.converters import usage_to_info
from utils.pagination import page_bounds


class InviteCodeUsageManager:
    """Appends and queries redemption records."""

    def __init__(self, db: Session, logger: Optional[logging.Logger] = None):
        """Initialize InviteCodeUsageManager.

        Args:
            db: SQLAlchemy Session.
            logger: Logger for audit events.
        """
        self.db = db
        self.logger = logger or logging.getLogger(__name__)

    def record(
        self,
        invite_code_id: int,
        user_id: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> InviteCodeUsageModel:
        """Add a usage row to the current transaction.

        The row is flushed but not committed; the caller commits it together
        with the invite code counter update.

        Args:
            invite_code_id: Id of the redeemed invite code.
            user_id: user_id of the redeeming user.
            ip_address: Client address, best effort.
            user_agent: Client user agent, best effort.

        Returns:
            The flushed InviteCodeUsageModel.
        """
        now = datetime.now(pytz.utc).isoformat()
        usage = InviteCodeUsageModel(
            invite_code_id=invite_code_id,
            used_by_id=user_id,
            used_at=now,
            ip_address=ip_address[:45] if ip_address else None,
            user_agent=user_agent[:255] if user_agent else None,
            created_at=now,
        )
        self.db.add(usage)
        self.db.flush()
        self.logger.debug(
            "Usage recorded: usage_id=%s invite_code_id=%s user_id=%s",
            usage.id,
            invite_code_id,
            user_id,
        )
        return usage

    def _query(self):
        return self.db.query(InviteCodeUsageModel).filter(
            InviteCodeUsageModel.deleted_at.is_(None)
        )

    def _paginate(self, query, page: int, page_size: Optional[int]):
        page, page_size, offset = page_bounds(page, page_size)
        total = query.with_entities(func.count(InviteCodeUsageModel.id)).scalar()
        items = (
            query.order_by(
                InviteCodeUsageModel.used_at.desc(), InviteCodeUsageModel.id.desc()
            )
            .limit(page_size)
            .offset(offset)
            .all()
        )
        return items, total

    def list_by_code(
        self, invite_code_id: int, page: int = 1, page_size: Optional[int] = None
    ) -> Tuple[List[InviteCodeUsageModel], int]:
        """List usage records of one invite code, newest first.

        Returns:
            Tuple of (records on the page, total records).
        """
        query = self._query().filter(InviteCodeUsageModel.invite_code_id == invite_code_id)
        return self._paginate(query, page, page_size)

    def list_by_user(
        self, user_id: str, page: int = 1, page_size: Optional[int] = None
    ) -> Tuple[List[InviteCodeUsageModel], int]:
        """List invite codes redeemed by a user, newest first."""
        query = self._query().filter(InviteCodeUsageModel.used_by_id == user_id)
        return self._paginate(query, page, page_size)

    def list_by_creator(
        self, created_by_id: str, page: int = 1, page_size: Optional[int] = None
    ) -> Tuple[List[InviteCodeUsageModel], int]:
        """List redemptions of every code a user created, newest first."""
        query = self._query().join(
            InviteCodeModel, InviteCodeModel.id == InviteCodeUsageModel.invite_code_id
        ).filter(InviteCodeModel.created_by_id == created_by_id)
        return self._paginate(query, page, page_size)

    def count_by_code(self, invite_code_id: int) -> int:
        return (
            self._query()
            .filter(InviteCodeUsageModel.invite_code_id == invite_code_id)
            .with_entities(func.count(InviteCodeUsageModel.id))
            .scalar()
        )

    def hydrate(self, usages: Iterable[InviteCodeUsageModel]) -> List[InviteCodeUsageInfo]:
        """Attach user and invite code snapshots to usage records.

        Users and codes are loaded with one query each, keyed by the distinct
        ids the records reference. Missing references are left empty.
        """
        usages = list(usages)
        if not usages:
            return []

        user_ids = {u.used_by_id for u in usages}
        code_ids = {u.invite_code_id for u in usages}
        users: Dict[str, UserModel] = {
            m.user_id: m
            for m in self.db.query(UserModel).filter(UserModel.user_id.in_(user_ids)).all()
        }
        codes: Dict[int, InviteCodeModel] = {
            m.id: m
            for m in self.db.query(InviteCodeModel)
            .filter(InviteCodeModel.id.in_(code_ids))
            .all()
        }
        return [usage_to_info(u, users=users, codes=codes) for u in usages]

    def usage_stats(self) -> Dict[str, int]:
        """Count redemptions overall, since UTC midnight, and over 7 and 30 days."""
        now = datetime.now(pytz.utc)
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)

        def count_since(since: Optional[datetime]) -> int:
            query = self._query()
            if since is not None:
                query = query.filter(InviteCodeUsageModel.used_at >= since.isoformat())
            return query.with_entities(func.count(InviteCodeUsageModel.id)).scalar()

        return {
            "total_usages": count_since(None),
            "today_usages": count_since(today),
            "week_usages": count_since(now - timedelta(days=7)),
            "month_usages": count_since(now - timedelta(days=30)),
        }
