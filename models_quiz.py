"""Daily quiz models.

- ExamSession: one per (user, calendar day); the unique constraint is the
  hard guard against a second attempt.
- WrongAnswer: one per missed question, with a correction deadline. The
  nightly penalty job flips `penalty_applied` so each record is penalized at
  most once.
"""

import json

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from clock import utcnow
from extensions import db


class ExamQuestion(db.Model):
    __tablename__ = "exam_questions"

    id = Column(Integer, primary_key=True)
    prompt = Column(Text, nullable=False)
    # JSON-encoded list of option labels
    options_json = Column(Text, nullable=False)
    correct_option_index = Column(Integer, nullable=False)
    explanation_text = Column(Text, nullable=True)
    explanation_video_url = Column(String(500), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def to_dict(self, include_answer: bool = False):
        out = {
            "id": self.id,
            "prompt": self.prompt,
            "options": json.loads(self.options_json or "[]"),
        }
        if include_answer:
            out["correct_option_index"] = self.correct_option_index
            out["explanation_text"] = self.explanation_text
            out["explanation_video_url"] = self.explanation_video_url
        return out


class ExamSession(db.Model):
    __tablename__ = "exam_sessions"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    session_date = Column(Date, nullable=False)
    total_questions = Column(Integer, nullable=False)
    correct_count = Column(Integer, nullable=False, default=0)
    score = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    answers = relationship("ExamAnswer", back_populates="session", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("user_id", "session_date", name="uq_exam_session_user_date"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "session_date": self.session_date.isoformat() if self.session_date else None,
            "total_questions": self.total_questions,
            "correct_count": self.correct_count,
            "score": self.score,
        }


class ExamAnswer(db.Model):
    __tablename__ = "exam_answers"

    id = Column(Integer, primary_key=True)
    session_id = Column(Integer, ForeignKey("exam_sessions.id"), nullable=False, index=True)
    question_id = Column(Integer, ForeignKey("exam_questions.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    selected_option = Column(Integer, nullable=False)
    is_correct = Column(Boolean, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    session = relationship("ExamSession", back_populates="answers")
    question = relationship("ExamQuestion")


class WrongAnswer(db.Model):
    __tablename__ = "wrong_answers"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    question_id = Column(Integer, ForeignKey("exam_questions.id"), nullable=False)
    answer_id = Column(Integer, ForeignKey("exam_answers.id"), nullable=True)
    recorded_at = Column(DateTime, nullable=False, default=utcnow)
    correction_deadline = Column(DateTime, nullable=False)
    # Snapshot of the question's explanation at the time of the miss.
    correction_text = Column(Text, nullable=True)
    correction_video_url = Column(String(500), nullable=True)
    is_resolved = Column(Boolean, nullable=False, default=False)
    resolved_at = Column(DateTime, nullable=True)
    penalty_applied = Column(Boolean, nullable=False, default=False)

    question = relationship("ExamQuestion")

    __table_args__ = (
        Index("idx_wrong_answers_pending", "is_resolved", "penalty_applied", "correction_deadline"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "question_id": self.question_id,
            "recorded_at": self.recorded_at.isoformat() if self.recorded_at else None,
            "correction_deadline": self.correction_deadline.isoformat() if self.correction_deadline else None,
            "correction_text": self.correction_text,
            "correction_video_url": self.correction_video_url,
            "is_resolved": self.is_resolved,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "penalty_applied": self.penalty_applied,
        }
