"""Points ledger.

Every balance change goes through PointsLedger.apply/adjust:
- the account row is locked (SELECT ... FOR UPDATE) for the read-modify-write
- the stored balance is clamped to [0, point_limit]
- a PointTransaction records the *requested* change for audit

adjust() commits on its own. apply() leaves the commit to the caller so a
larger unit of work (quiz submission, weekly reset) stays one transaction.
"""

import json
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from errors import MalformedInput, UserNotFound
from extensions import db
from models_points import POINT_REASONS, REASON_WEEKLY_RESET, PointsAccount, PointTransaction
from models_users import User


logger = logging.getLogger(__name__)


class PointsLedger:
    def __init__(self, config):
        self.config = config

    def clamp(self, value: int) -> int:
        return max(0, min(self.config.point_limit, value))

    def _lock_account(self, user_id: int) -> PointsAccount | None:
        return db.session.execute(
            select(PointsAccount).where(PointsAccount.user_id == user_id).with_for_update()
        ).scalar_one_or_none()

    def apply(self, user_id: int, change: int, reason: str, note: str | None = None,
              metadata: dict | None = None) -> PointsAccount:
        """Apply one adjustment inside the current transaction. Does not commit."""
        if reason not in POINT_REASONS:
            raise MalformedInput(f"Unknown point reason: {reason}")
        if isinstance(change, bool) or not isinstance(change, int):
            raise MalformedInput("change must be an integer")
        if db.session.get(User, user_id) is None:
            raise UserNotFound(f"User {user_id} not found")

        account = self._lock_account(user_id)
        if account is None:
            account = PointsAccount(user_id=user_id, current_points=0)
            db.session.add(account)
            # A concurrent creator wins the unique constraint here; adjust() retries.
            db.session.flush()

        if change == 0:
            return account

        before = int(account.current_points or 0)
        account.current_points = self.clamp(before + change)
        db.session.add(PointTransaction(
            user_id=user_id,
            change=change,
            reason=reason,
            note=note,
            metadata_json=json.dumps(metadata, default=str, ensure_ascii=False) if metadata else None,
        ))
        logger.info(
            "points user_id=%s reason=%s change=%s balance=%s->%s",
            user_id, reason, change, before, account.current_points,
        )
        return account

    def adjust(self, user_id: int, change: int, reason: str, note: str | None = None,
               metadata: dict | None = None) -> PointsAccount:
        """Apply one adjustment and commit it as a single transaction."""
        for attempt in range(2):
            try:
                account = self.apply(user_id, change, reason, note=note, metadata=metadata)
                db.session.commit()
            except IntegrityError:
                db.session.rollback()
                if attempt:
                    raise
                continue
            except Exception:
                db.session.rollback()
                raise
            return account

    def reset_all(self, commit: bool = True) -> int:
        """Zero every nonzero account with a WEEKLY_RESET adjustment.

        With commit=True each account is committed on its own. With
        commit=False the caller owns the transaction (and already holds the
        account locks).
        """
        user_ids = db.session.execute(
            select(PointsAccount.user_id)
            .where(PointsAccount.current_points != 0)
            .order_by(PointsAccount.user_id)
        ).scalars().all()

        reset = 0
        for user_id in user_ids:
            account = self._lock_account(user_id)
            current = int(account.current_points or 0) if account else 0
            if current == 0:
                continue
            self.apply(user_id, -current, REASON_WEEKLY_RESET, note="Weekly points reset")
            if commit:
                db.session.commit()
            reset += 1
        return reset

    def balance(self, user_id: int) -> int:
        account = db.session.execute(
            select(PointsAccount).where(PointsAccount.user_id == user_id)
        ).scalar_one_or_none()
        return int(account.current_points or 0) if account else 0

    def history(self, user_id: int, limit: int = 50) -> list[PointTransaction]:
        return db.session.execute(
            select(PointTransaction)
            .where(PointTransaction.user_id == user_id)
            .order_by(PointTransaction.created_at.desc(), PointTransaction.id.desc())
            .limit(limit)
        ).scalars().all()
