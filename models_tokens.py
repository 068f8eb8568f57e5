"""Exclusive token issuance history and the remediation inbox.

TokenIssue rows only exist to count issuances per email per calendar month.
InactivityReport is filed by a user whose token was disabled; an admin
resolving it is the only path that re-enables a token.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text

from clock import utcnow
from extensions import db


REPORT_OPEN = "OPEN"
REPORT_RESOLVED = "RESOLVED"


class TokenIssue(db.Model):
    __tablename__ = "token_issues"

    id = Column(Integer, primary_key=True)
    email = Column(String(255), nullable=False)
    token = Column(String(40), nullable=False)
    issued_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_token_issues_email_issued", "email", "issued_at"),
    )


class InactivityReport(db.Model):
    __tablename__ = "inactivity_reports"

    id = Column(Integer, primary_key=True)
    email = Column(String(255), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    reason = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=REPORT_OPEN)
    admin_note = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    resolved_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_inactivity_reports_status_created", "status", "created_at"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "user_id": self.user_id,
            "reason": self.reason,
            "status": self.status,
            "admin_note": self.admin_note,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
        }
