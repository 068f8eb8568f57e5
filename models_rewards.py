"""Weekly leaderboard models.

A WeeklySummary is an immutable snapshot written by the weekly job, one per
Monday-anchored week. Its ranking is stored as ordered WeeklyRankEntry rows
rather than a serialized blob; to_dict() renders the list for the API.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from clock import utcnow
from extensions import db


class WeeklySummary(db.Model):
    __tablename__ = "weekly_summaries"

    id = Column(Integer, primary_key=True)
    week_start = Column(DateTime, nullable=False, unique=True)
    week_end = Column(DateTime, nullable=False)
    generated_at = Column(DateTime, nullable=False, default=utcnow)

    entries = relationship(
        "WeeklyRankEntry",
        back_populates="summary",
        order_by="WeeklyRankEntry.rank",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "week_start": self.week_start.isoformat(),
            "week_end": self.week_end.isoformat(),
            "generated_at": self.generated_at.isoformat() if self.generated_at else None,
            "leaderboard": [e.to_dict() for e in self.entries],
        }


class WeeklyRankEntry(db.Model):
    __tablename__ = "weekly_rank_entries"

    id = Column(Integer, primary_key=True)
    summary_id = Column(Integer, ForeignKey("weekly_summaries.id"), nullable=False, index=True)
    rank = Column(Integer, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    display_name = Column(String(120), nullable=False)
    points = Column(Integer, nullable=False)

    summary = relationship("WeeklySummary", back_populates="entries")

    __table_args__ = (
        UniqueConstraint("summary_id", "rank", name="uq_rank_entry_summary_rank"),
    )

    def to_dict(self):
        return {
            "rank": self.rank,
            "user_id": self.user_id,
            "display_name": self.display_name,
            "points": self.points,
        }


class RewardRequest(db.Model):
    __tablename__ = "reward_requests"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    week_start = Column(DateTime, nullable=False)
    points_at_request = Column(Integer, nullable=False)
    reward_option = Column(String(120), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "week_start", name="uq_reward_request_user_week"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "week_start": self.week_start.isoformat(),
            "points_at_request": self.points_at_request,
            "reward_option": self.reward_option,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
