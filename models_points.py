"""Points ledger models.

- PointsAccount holds the clamped balance, one row per user. Only the ledger
  writes it.
- PointTransaction is the append-only audit log. `change` is the requested
  delta, which can differ from what the clamp actually applied.
"""

import json

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text

from clock import utcnow
from extensions import db


REASON_TASK_ON_TIME = "TASK_ON_TIME"
REASON_TASK_LATE = "TASK_LATE"
REASON_QUIZ_BONUS = "QUIZ_BONUS"
REASON_AI_REVIEW_BONUS = "AI_REVIEW_BONUS"
REASON_RANKING_BONUS = "RANKING_BONUS"
REASON_WEEKLY_RESET = "WEEKLY_RESET"
REASON_WRONG_ANSWER_PENALTY = "WRONG_ANSWER_PENALTY"
REASON_MISSED_TASK_PENALTY = "MISSED_TASK_PENALTY"

POINT_REASONS = frozenset({
    REASON_TASK_ON_TIME,
    REASON_TASK_LATE,
    REASON_QUIZ_BONUS,
    REASON_AI_REVIEW_BONUS,
    REASON_RANKING_BONUS,
    REASON_WEEKLY_RESET,
    REASON_WRONG_ANSWER_PENALTY,
    REASON_MISSED_TASK_PENALTY,
})


class PointsAccount(db.Model):
    __tablename__ = "points_accounts"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    current_points = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "current_points": int(self.current_points or 0),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class PointTransaction(db.Model):
    __tablename__ = "point_transactions"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    change = Column(Integer, nullable=False)
    reason = Column(String(40), nullable=False)
    note = Column(Text, nullable=True)
    metadata_json = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_point_tx_user_created", "user_id", "created_at"),
        Index("idx_point_tx_reason", "reason"),
    )

    def to_dict(self):
        md = None
        if self.metadata_json:
            try:
                md = json.loads(self.metadata_json)
            except ValueError:
                md = None
        return {
            "id": self.id,
            "user_id": self.user_id,
            "change": self.change,
            "reason": self.reason,
            "note": self.note,
            "metadata": md,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
