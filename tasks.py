"""User-facing task APIs and the submission evaluator.

Routes:
- GET  /api/tasks/today
- POST /api/tasks/submit
- GET  /api/tasks/submissions

Rules:
- One submission per (user, task), backed by a unique constraint.
- A submission is late when submitted_at > task.due_at.
- On time earns +1 TASK_ON_TIME, late costs -1 TASK_LATE. The adjustment is
  committed together with the submission row, so it happens exactly once.
"""

from datetime import datetime, timedelta

from flask import Blueprint, jsonify, request
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from clock import parse_iso, start_of_day
from engine import get_engine, now
from errors import DuplicateSubmission, IncentiveError, MalformedInput, NotFound
from extensions import db
from models_points import REASON_TASK_LATE, REASON_TASK_ON_TIME
from models_tasks import Task, TaskSubmission
from web_helpers import current_user_id, error_response, require_user


tasks_api = Blueprint("tasks_api", __name__)


def timeliness_adjustment(submission: TaskSubmission) -> tuple[int, str]:
    if submission.is_late:
        return -1, REASON_TASK_LATE
    return 1, REASON_TASK_ON_TIME


def evaluate_submission(ledger, submission: TaskSubmission):
    """Apply the on-time reward / late penalty for one submission (no commit)."""
    change, reason = timeliness_adjustment(submission)
    note = "Late task submission" if submission.is_late else "On-time task submission"
    return ledger.apply(
        submission.user_id,
        change,
        reason,
        note=note,
        metadata={"task_id": submission.task_id, "submitted_at": submission.submitted_at},
    )


def submit_task(ledger, user_id: int, task_id, content: str, submitted_at: datetime) -> TaskSubmission:
    content = (content or "").strip()
    if not content:
        raise MalformedInput("content is required")
    try:
        task_id = int(task_id)
    except (TypeError, ValueError):
        raise MalformedInput("Invalid task_id")

    task = db.session.get(Task, task_id)
    if task is None:
        raise NotFound("Task not found")

    existing = db.session.execute(
        select(TaskSubmission.id).where(TaskSubmission.task_id == task_id, TaskSubmission.user_id == user_id)
    ).first()
    if existing:
        raise DuplicateSubmission("You already submitted this task")

    submission = TaskSubmission(
        task_id=task_id,
        user_id=user_id,
        content=content,
        submitted_at=submitted_at,
        is_late=submitted_at > task.due_at,
    )
    db.session.add(submission)
    try:
        db.session.flush()
        evaluate_submission(ledger, submission)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateSubmission("You already submitted this task")
    except Exception:
        db.session.rollback()
        raise
    return submission


def list_today_tasks(user_id: int, current: datetime) -> list[dict]:
    day_start = start_of_day(current)
    day_end = day_start + timedelta(days=1)
    tasks = db.session.execute(
        select(Task)
        .where(Task.scheduled_for >= day_start, Task.scheduled_for < day_end)
        .order_by(Task.scheduled_for.asc())
    ).scalars().all()
    subs = db.session.execute(
        select(TaskSubmission).where(
            TaskSubmission.user_id == user_id,
            TaskSubmission.task_id.in_([t.id for t in tasks]),
        )
    ).scalars().all()
    sub_by_task = {s.task_id: s for s in subs}
    return [
        {**t.to_dict(), "submission": sub_by_task[t.id].to_dict() if t.id in sub_by_task else None}
        for t in tasks
    ]


@tasks_api.get("/api/tasks/today")
def get_today_tasks():
    err = require_user()
    if err:
        return err
    return jsonify({"success": True, "tasks": list_today_tasks(current_user_id(), now())})


@tasks_api.post("/api/tasks/submit")
def post_submit_task():
    err = require_user()
    if err:
        return err

    data = request.get_json(silent=True) or {}
    submitted_at = now()
    if data.get("submitted_at"):
        try:
            submitted_at = parse_iso(str(data["submitted_at"]))
        except ValueError:
            return jsonify({"success": False, "error": "malformed_input", "message": "Invalid submitted_at"}), 400

    try:
        submission = submit_task(
            get_engine().ledger,
            current_user_id(),
            data.get("task_id"),
            data.get("content"),
            submitted_at,
        )
    except IncentiveError as e:
        return error_response(e)

    return jsonify({"success": True, "submission": submission.to_dict()}), 201


@tasks_api.get("/api/tasks/submissions")
def get_submissions():
    err = require_user()
    if err:
        return err
    subs = db.session.execute(
        select(TaskSubmission)
        .where(TaskSubmission.user_id == current_user_id())
        .order_by(TaskSubmission.submitted_at.desc())
    ).scalars().all()
    return jsonify({"success": True, "submissions": [s.to_dict() for s in subs]})
