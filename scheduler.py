"""Time-driven incentive jobs.

Four jobs, each callable on its own with only `now`:

- inactivity scan: disable tokens after N days under the activity floor
- missed-task penalty: -1 per (task, employee) with no submission, guarded
  by a MissedTaskPenalty marker row
- wrong-answer penalty: -1 per expired, unresolved wrong answer, guarded by
  WrongAnswer.penalty_applied
- weekly summary: snapshot ranking, top-N bonus, reset every account

Per-item work commits on its own, so a failure only leaves the unprocessed
tail for the next run. The weekly job is the exception: snapshot, bonus and
reset commit together while holding the account locks.

tick() runs every job whose trigger window has opened and has no succeeded
JobRun yet. A failed run is retried on the next tick.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from clock import end_of_week, previous_days, start_of_week, utcnow
from extensions import db
from models_activity import DailyActivity
from models_jobs import JOB_FAILED, JOB_RUNNING, JOB_SUCCEEDED, JobRun
from models_points import (
    REASON_MISSED_TASK_PENALTY,
    REASON_RANKING_BONUS,
    REASON_WRONG_ANSWER_PENALTY,
    PointsAccount,
)
from models_quiz import WrongAnswer
from models_rewards import WeeklyRankEntry, WeeklySummary
from models_tasks import MissedTaskPenalty, Task, TaskSubmission
from models_users import ROLE_EMPLOYEE, User


logger = logging.getLogger(__name__)

JOB_INACTIVITY_SCAN = "inactivity_scan"
JOB_MISSED_TASK_PENALTY = "missed_task_penalty"
JOB_WRONG_ANSWER_PENALTY = "wrong_answer_penalty"
JOB_WEEKLY_SUMMARY = "weekly_summary"

# Any Monday works; windows of one day or one week then start at midnight / Monday.
_WINDOW_EPOCH = datetime(2024, 1, 1)


@dataclass
class JobSummary:
    job: str
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    stopped_early: bool = False

    @property
    def clean(self) -> bool:
        return self.failed == 0 and not self.stopped_early

    def to_dict(self):
        return {
            "job": self.job,
            "processed": self.processed,
            "skipped": self.skipped,
            "failed": self.failed,
            "stopped_early": self.stopped_early,
        }


@dataclass(frozen=True)
class JobSpec:
    """Run `func` at most once per `period`, no earlier than window start + `offset`.

    With a `grace`, a window that never succeeded may still run during the
    first `grace` of the next window, as of the last instant of its own window.
    """

    name: str
    period: timedelta
    offset: timedelta
    func: Callable[[datetime], JobSummary] = field(compare=False)
    grace: timedelta = timedelta(0)

    def window_start(self, now: datetime) -> datetime:
        periods = (now - _WINDOW_EPOCH) // self.period
        return _WINDOW_EPOCH + periods * self.period

    def is_due(self, now: datetime) -> bool:
        return now >= self.window_start(now) + self.offset

    def pending_windows(self, now: datetime) -> list[tuple[datetime, datetime]]:
        """(window_start, run_at) pairs that may run at `now`, oldest first."""
        current = self.window_start(now)
        pending = []
        if self.grace and now < current + self.grace:
            pending.append((current - self.period, current - timedelta(microseconds=1)))
        if self.is_due(now):
            pending.append((current, now))
        return pending


class _Deadline:
    def __init__(self, seconds: int):
        self.expires = time.monotonic() + seconds if seconds > 0 else None

    def passed(self) -> bool:
        return self.expires is not None and time.monotonic() >= self.expires


class IncentiveScheduler:
    def __init__(self, ledger, tokens, config, clock: Callable[[], datetime] = utcnow):
        self.ledger = ledger
        self.tokens = tokens
        self.config = config
        self.clock = clock
        day = timedelta(days=1)
        week = timedelta(days=7)
        self.jobs = {
            job.name: job
            for job in (
                JobSpec(JOB_INACTIVITY_SCAN, day, timedelta(minutes=30), self.run_inactivity_scan),
                JobSpec(JOB_WRONG_ANSWER_PENALTY, day, timedelta(hours=21), self.run_wrong_answer_penalty),
                JobSpec(JOB_MISSED_TASK_PENALTY, day, timedelta(hours=22), self.run_missed_task_penalty),
                JobSpec(
                    JOB_WEEKLY_SUMMARY, week, timedelta(days=6, hours=23), self.run_weekly_summary,
                    grace=day,
                ),
            )
        }

    # ---- triggering ----

    def run_job(self, name: str, now: datetime | None = None) -> JobSummary:
        if name not in self.jobs:
            raise KeyError(f"Unknown job: {name}")
        return self.jobs[name].func(now or self.clock())

    def tick(self, now: datetime | None = None, locker=None) -> list[JobSummary]:
        """Run every job that is due and not yet done for its window.

        A job with a grace period also catches up on its previous window.

        `locker`, when given, must provide hold(name) -> context manager
        yielding True when this process may run the job.
        """
        now = now or self.clock()
        summaries = []
        for job in self.jobs.values():
            for window, run_at in job.pending_windows(now):
                if self._window_done(job.name, window):
                    continue
                if locker is None:
                    summaries.append(self._run_tracked(job, window, run_at, now))
                    continue
                with locker.hold(job.name) as acquired:
                    if not acquired:
                        logger.info("job %s is running elsewhere, skipping", job.name)
                        continue
                    summaries.append(self._run_tracked(job, window, run_at, now))
        return summaries

    def _window_done(self, job_name: str, window: datetime) -> bool:
        status = db.session.execute(
            select(JobRun.status).where(JobRun.job_name == job_name, JobRun.window_start == window)
        ).scalar_one_or_none()
        return status == JOB_SUCCEEDED

    def _start_run(self, job_name: str, window: datetime, now: datetime) -> JobRun:
        run = db.session.execute(
            select(JobRun).where(JobRun.job_name == job_name, JobRun.window_start == window)
        ).scalar_one_or_none()
        if run is None:
            run = JobRun(job_name=job_name, window_start=window, attempts=0)
            db.session.add(run)
        run.status = JOB_RUNNING
        run.attempts = (run.attempts or 0) + 1
        run.started_at = now
        run.finished_at = None
        db.session.commit()
        return run

    def _run_tracked(self, job: JobSpec, window: datetime, run_at: datetime, now: datetime) -> JobSummary:
        run = self._start_run(job.name, window, now)
        if run_at != now:
            logger.warning("job %s catching up on window %s", job.name, window.isoformat())
        try:
            summary = job.func(run_at)
        except Exception:
            db.session.rollback()
            logger.exception("job %s failed for window %s", job.name, window.isoformat())
            summary = JobSummary(job=job.name, failed=1)
        run.status = JOB_SUCCEEDED if summary.clean else JOB_FAILED
        run.finished_at = self.clock()
        run.summary_json = json.dumps(summary.to_dict())
        db.session.commit()
        return summary

    # ---- jobs ----

    def run_inactivity_scan(self, now: datetime) -> JobSummary:
        summary = JobSummary(job=JOB_INACTIVITY_SCAN)
        deadline = _Deadline(self.config.job_max_runtime_seconds)
        days = previous_days(now, self.config.inactivity_days)

        users = db.session.execute(
            select(User.id)
            .where(
                User.role == ROLE_EMPLOYEE,
                User.token_disabled_at.is_(None),
            )
            .order_by(User.id)
        ).scalars().all()
        minutes = {
            (row.user_id, row.date): int(row.minutes or 0)
            for row in db.session.execute(
                select(DailyActivity.user_id, DailyActivity.date, DailyActivity.minutes)
                .where(DailyActivity.date.in_(days), DailyActivity.user_id.in_(users))
            )
        }

        floor = self.config.inactivity_floor_minutes
        reason = f"{self.config.inactivity_days}-day inactivity"
        for user_id in users:
            if deadline.passed():
                summary.stopped_early = True
                break
            if any(minutes.get((user_id, d), 0) >= floor for d in days):
                summary.skipped += 1
                continue
            try:
                if self.tokens.disable(user_id, reason, now):
                    summary.processed += 1
                else:
                    summary.skipped += 1
            except Exception:
                db.session.rollback()
                logger.exception("inactivity scan failed for user_id=%s", user_id)
                summary.failed += 1
        return summary

    def run_missed_task_penalty(self, now: datetime) -> JobSummary:
        summary = JobSummary(job=JOB_MISSED_TASK_PENALTY)
        deadline = _Deadline(self.config.job_max_runtime_seconds)
        since = now - timedelta(days=self.config.missed_task_lookback_days)

        tasks = db.session.execute(
            select(Task.id).where(Task.due_at < now, Task.due_at >= since).order_by(Task.due_at, Task.id)
        ).scalars().all()
        employees = db.session.execute(
            select(User.id).where(User.role == ROLE_EMPLOYEE).order_by(User.id)
        ).scalars().all()

        for task_id in tasks:
            settled = set(db.session.execute(
                select(TaskSubmission.user_id).where(TaskSubmission.task_id == task_id)
            ).scalars())
            settled.update(db.session.execute(
                select(MissedTaskPenalty.user_id).where(MissedTaskPenalty.task_id == task_id)
            ).scalars())

            for user_id in employees:
                if deadline.passed():
                    summary.stopped_early = True
                    return summary
                if user_id in settled:
                    summary.skipped += 1
                    continue
                try:
                    db.session.add(MissedTaskPenalty(task_id=task_id, user_id=user_id, applied_at=now))
                    db.session.flush()
                    self.ledger.apply(
                        user_id, -1, REASON_MISSED_TASK_PENALTY,
                        note="Task not submitted on time",
                        metadata={"task_id": task_id},
                    )
                    db.session.commit()
                    summary.processed += 1
                except IntegrityError:
                    # Marker already written by a concurrent run.
                    db.session.rollback()
                    summary.skipped += 1
                except Exception:
                    db.session.rollback()
                    logger.exception("missed-task penalty failed task_id=%s user_id=%s", task_id, user_id)
                    summary.failed += 1
        return summary

    def run_wrong_answer_penalty(self, now: datetime) -> JobSummary:
        summary = JobSummary(job=JOB_WRONG_ANSWER_PENALTY)
        deadline = _Deadline(self.config.job_max_runtime_seconds)

        pending = db.session.execute(
            select(WrongAnswer.id)
            .where(
                WrongAnswer.is_resolved.is_(False),
                WrongAnswer.penalty_applied.is_(False),
                WrongAnswer.correction_deadline < now,
            )
            .order_by(WrongAnswer.id)
        ).scalars().all()

        for wrong_id in pending:
            if deadline.passed():
                summary.stopped_early = True
                break
            try:
                wrong = db.session.execute(
                    select(WrongAnswer).where(WrongAnswer.id == wrong_id).with_for_update()
                ).scalar_one_or_none()
                if wrong is None or wrong.is_resolved or wrong.penalty_applied:
                    db.session.rollback()
                    summary.skipped += 1
                    continue
                self.ledger.apply(
                    wrong.user_id, -1, REASON_WRONG_ANSWER_PENALTY,
                    note="Wrong answer not corrected in time",
                    metadata={"wrong_answer_id": wrong_id},
                )
                wrong.penalty_applied = True
                db.session.commit()
                summary.processed += 1
            except Exception:
                db.session.rollback()
                logger.exception("wrong-answer penalty failed wrong_answer_id=%s", wrong_id)
                summary.failed += 1
        return summary

    def run_weekly_summary(self, now: datetime) -> JobSummary:
        """Snapshot the leaderboard, pay the top-N bonus, reset all balances.

        Ties on points are broken by ascending user id.
        """
        summary = JobSummary(job=JOB_WEEKLY_SUMMARY)
        week_start = start_of_week(now)
        exists = db.session.execute(
            select(WeeklySummary.id).where(WeeklySummary.week_start == week_start)
        ).first()
        if exists:
            summary.skipped = 1
            return summary

        try:
            employees = db.session.execute(
                select(User).where(User.role == ROLE_EMPLOYEE).order_by(User.id)
            ).scalars().all()
            accounts = {
                a.user_id: a
                for a in db.session.execute(
                    select(PointsAccount)
                    .where(PointsAccount.user_id.in_([u.id for u in employees]))
                    .order_by(PointsAccount.user_id)
                    .with_for_update()
                ).scalars()
            }
            ranking = sorted(
                (
                    (u.id, u.display_name, int(accounts[u.id].current_points or 0) if u.id in accounts else 0)
                    for u in employees
                ),
                key=lambda e: (-e[2], e[0]),
            )

            snapshot = WeeklySummary(week_start=week_start, week_end=end_of_week(now), generated_at=now)
            for rank, (user_id, name, points) in enumerate(ranking, start=1):
                snapshot.entries.append(
                    WeeklyRankEntry(rank=rank, user_id=user_id, display_name=name, points=points)
                )
            db.session.add(snapshot)
            db.session.flush()

            for rank, (user_id, _name, points) in enumerate(ranking[: self.config.ranking_bonus_slots], start=1):
                if points <= 0:
                    continue
                self.ledger.apply(
                    user_id, 1, REASON_RANKING_BONUS,
                    note="Weekly ranking bonus",
                    metadata={"rank": rank, "week_start": week_start.isoformat()},
                )
                summary.processed += 1

            self.ledger.reset_all(commit=False)
            db.session.commit()
        except IntegrityError:
            # Another run wrote this week's summary first.
            db.session.rollback()
            summary.processed = 0
            summary.skipped = 1
        except Exception:
            db.session.rollback()
            logger.exception("weekly summary failed for week %s", week_start.isoformat())
            summary.processed = 0
            summary.failed = 1
        return summary