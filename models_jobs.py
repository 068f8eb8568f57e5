"""Scheduler bookkeeping.

One JobRun per (job, trigger window). A succeeded row means the window is
done; a failed row is retried on the next tick.
"""

from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint

from clock import utcnow
from extensions import db


JOB_RUNNING = "running"
JOB_SUCCEEDED = "succeeded"
JOB_FAILED = "failed"


class JobRun(db.Model):
    __tablename__ = "job_runs"

    id = Column(Integer, primary_key=True)
    job_name = Column(String(60), nullable=False)
    window_start = Column(DateTime, nullable=False)
    status = Column(String(20), nullable=False, default=JOB_RUNNING)
    attempts = Column(Integer, nullable=False, default=0)
    started_at = Column(DateTime, nullable=False, default=utcnow)
    finished_at = Column(DateTime, nullable=True)
    summary_json = Column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("job_name", "window_start", name="uq_job_run_name_window"),
    )
