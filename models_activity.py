from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, UniqueConstraint

from clock import utcnow
from extensions import db


class DailyActivity(db.Model):
    """Minutes a user was active on one calendar day (UTC).

    Accumulated by the heartbeat endpoint, read only by the inactivity scan.
    A missing row means zero minutes.
    """

    __tablename__ = "daily_activity"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    minutes = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_daily_activity_user_date"),
    )
