"""Task system models.

Locked rules:
- One submission per (user, task), enforced via unique constraint. There is
  no resubmission: the ledger adjustment for a submission happens exactly once.
- A task is late when submitted_at > due_at.
- MissedTaskPenalty is the at-most-once marker for the nightly missed-task
  penalty. A (task, user) pair is penalized only if it has no marker yet.
"""

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Boolean,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from clock import utcnow
from extensions import db


SUBMISSION_PENDING_REVIEW = "PENDING_REVIEW"
SUBMISSION_APPROVED = "APPROVED"
SUBMISSION_REJECTED = "REJECTED"


class Task(db.Model):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    scheduled_for = Column(DateTime, nullable=False)
    due_at = Column(DateTime, nullable=False)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    submissions = relationship("TaskSubmission", back_populates="task", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_tasks_scheduled", "scheduled_for"),
        Index("idx_tasks_due", "due_at"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "scheduled_for": self.scheduled_for.isoformat() if self.scheduled_for else None,
            "due_at": self.due_at.isoformat() if self.due_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class TaskSubmission(db.Model):
    __tablename__ = "task_submissions"

    id = Column(Integer, primary_key=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    content = Column(Text, nullable=False)
    submitted_at = Column(DateTime, nullable=False, default=utcnow)
    is_late = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default=SUBMISSION_PENDING_REVIEW)

    review_score = Column(Integer, nullable=True)
    review_feedback = Column(Text, nullable=True)
    reviewed_at = Column(DateTime, nullable=True)

    task = relationship("Task", back_populates="submissions")

    __table_args__ = (
        UniqueConstraint("task_id", "user_id", name="uq_task_submission_task_user"),
        Index("idx_task_submissions_status", "status"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "task_id": self.task_id,
            "user_id": self.user_id,
            "content": self.content,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "is_late": self.is_late,
            "status": self.status,
            "review_score": self.review_score,
            "review_feedback": self.review_feedback,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
        }


class MissedTaskPenalty(db.Model):
    __tablename__ = "missed_task_penalties"

    id = Column(Integer, primary_key=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    applied_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("task_id", "user_id", name="uq_missed_penalty_task_user"),
    )
