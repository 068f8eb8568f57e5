"""Inactivity report inbox.

A user whose token was disabled files a report explaining the inactivity.
An admin resolving the report is the only path that re-enables a token.
"""

from datetime import datetime

from sqlalchemy import select

from errors import MalformedInput, NotFound
from extensions import db
from models_tokens import REPORT_OPEN, REPORT_RESOLVED, InactivityReport
from models_users import User

MAX_REASON_CHARS = 2000


def submit_inactivity_report(email: str, reason: str, current: datetime) -> InactivityReport:
    email = (email or "").strip().lower()
    reason = (reason or "").strip()
    if not email or "@" not in email:
        raise MalformedInput("A valid email is required")
    if not reason:
        raise MalformedInput("reason is required")
    if len(reason) > MAX_REASON_CHARS:
        raise MalformedInput(f"reason must be at most {MAX_REASON_CHARS} characters")

    user_id = db.session.execute(select(User.id).where(User.email == email)).scalar_one_or_none()
    report = InactivityReport(email=email, user_id=user_id, reason=reason, status=REPORT_OPEN, created_at=current)
    db.session.add(report)
    db.session.commit()
    return report


def list_reports(status: str | None = None) -> list[InactivityReport]:
    query = select(InactivityReport).order_by(InactivityReport.created_at.desc())
    if status:
        if status not in (REPORT_OPEN, REPORT_RESOLVED):
            raise MalformedInput("status must be OPEN or RESOLVED")
        query = query.where(InactivityReport.status == status)
    return db.session.execute(query).scalars().all()


def resolve_report(tokens, report_id: int, note: str | None, current: datetime,
                   reactivate: bool = True) -> InactivityReport:
    report = db.session.get(InactivityReport, report_id)
    if report is None:
        raise NotFound("Report not found")
    if report.status != REPORT_RESOLVED:
        report.status = REPORT_RESOLVED
        report.resolved_at = current
        report.admin_note = note
        db.session.commit()
    if reactivate and report.user_id is not None:
        tokens.reactivate(report.user_id)
    return report
