"""Admin APIs: tasks, quiz questions, submission review, inbox, job triggers.

Admin access rules:
- POST /api/admin/login with {"key"} matching ADMIN_API_KEY sets an 'admin'
  flag in the flask session. Every other route here requires it.

Routes:
- POST   /api/admin/login
- POST   /api/admin/logout
- GET    /api/admin/tasks
- POST   /api/admin/tasks
- DELETE /api/admin/tasks/<id>
- POST   /api/admin/questions
- GET    /api/admin/submissions?status=PENDING_REVIEW
- POST   /api/admin/submissions/<id>/review   {"score", "status", "feedback"}
- GET    /api/admin/inbox?status=OPEN
- POST   /api/admin/inbox/<id>/resolve        {"note", "reactivate"}
- POST   /api/admin/jobs/<name>/run

An APPROVED review scoring at least `review_bonus_threshold` earns the author
+1 AI_REVIEW_BONUS. A submission is reviewed once.
"""

import hmac
import json
import logging

from flask import Blueprint, current_app, jsonify, request, session as flask_session
from sqlalchemy import delete, select

from clock import parse_iso
from engine import get_engine, now
from errors import DuplicateSubmission, IncentiveError, MalformedInput, NotFound
from extensions import db, limiter
from inbox import list_reports, resolve_report
from models_points import REASON_AI_REVIEW_BONUS
from models_quiz import ExamQuestion
from models_tasks import (
    SUBMISSION_APPROVED,
    SUBMISSION_PENDING_REVIEW,
    SUBMISSION_REJECTED,
    MissedTaskPenalty,
    Task,
    TaskSubmission,
)
from web_helpers import error_response, require_admin


logger = logging.getLogger(__name__)

admin_tasks = Blueprint("admin_tasks", __name__)

REVIEW_STATUSES = {SUBMISSION_APPROVED, SUBMISSION_REJECTED}


def review_submission(ledger, submission_id: int, score, status: str, feedback: str | None,
                      threshold: int, current) -> TaskSubmission:
    if status not in REVIEW_STATUSES:
        raise MalformedInput("status must be APPROVED or REJECTED")
    if isinstance(score, bool) or not isinstance(score, int) or not 0 <= score <= 100:
        raise MalformedInput("score must be an integer between 0 and 100")

    try:
        submission = db.session.execute(
            select(TaskSubmission).where(TaskSubmission.id == submission_id).with_for_update()
        ).scalar_one_or_none()
        if submission is None:
            raise NotFound("Submission not found")
        if submission.status != SUBMISSION_PENDING_REVIEW:
            raise DuplicateSubmission("Submission already reviewed")

        submission.status = status
        submission.review_score = score
        submission.review_feedback = (feedback or "").strip() or None
        submission.reviewed_at = current

        if status == SUBMISSION_APPROVED and score >= threshold:
            ledger.apply(
                submission.user_id, 1, REASON_AI_REVIEW_BONUS,
                note="High review score",
                metadata={"task_id": submission.task_id, "submission_id": submission.id, "score": score},
            )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return submission


def _parse_task_payload(data: dict) -> dict:
    title = (data.get("title") or "").strip()
    if not title:
        raise MalformedInput("title is required")
    try:
        scheduled_for = parse_iso(str(data.get("scheduled_for") or ""))
        due_at = parse_iso(str(data.get("due_at") or ""))
    except ValueError:
        raise MalformedInput("scheduled_for and due_at must be ISO-8601 timestamps")
    if due_at < scheduled_for:
        raise MalformedInput("due_at must not be before scheduled_for")
    return {
        "title": title,
        "description": (data.get("description") or "").strip() or None,
        "scheduled_for": scheduled_for,
        "due_at": due_at,
    }


def _parse_question_payload(data: dict) -> dict:
    prompt = (data.get("prompt") or "").strip()
    options = data.get("options")
    correct = data.get("correct_option_index")
    if not prompt:
        raise MalformedInput("prompt is required")
    if not isinstance(options, list) or len(options) < 2 or not all(isinstance(o, str) and o.strip() for o in options):
        raise MalformedInput("options must be a list of at least two non-empty strings")
    if isinstance(correct, bool) or not isinstance(correct, int) or not 0 <= correct < len(options):
        raise MalformedInput("correct_option_index must index into options")
    return {
        "prompt": prompt,
        "options_json": json.dumps([o.strip() for o in options]),
        "correct_option_index": correct,
        "explanation_text": (data.get("explanation_text") or "").strip() or None,
        "explanation_video_url": (data.get("explanation_video_url") or "").strip() or None,
    }


@admin_tasks.post("/api/admin/login")
@limiter.limit("10 per minute")
def admin_login():
    data = request.get_json(silent=True) or {}
    key = str(data.get("key") or "").strip()
    expected = str(current_app.config.get("ADMIN_API_KEY") or "")
    if key and expected and hmac.compare_digest(key.encode(), expected.encode()):
        flask_session["admin"] = True
        flask_session.permanent = True
        return jsonify({"success": True})
    return jsonify({"success": False, "error": "forbidden", "message": "Invalid key"}), 403


@admin_tasks.post("/api/admin/logout")
def admin_logout():
    flask_session.pop("admin", None)
    return jsonify({"success": True})


@admin_tasks.get("/api/admin/tasks")
def api_admin_list_tasks():
    err = require_admin()
    if err:
        return err
    tasks = db.session.execute(select(Task).order_by(Task.scheduled_for.desc())).scalars().all()
    return jsonify({"success": True, "tasks": [t.to_dict() for t in tasks]})


@admin_tasks.post("/api/admin/tasks")
def api_admin_create_task():
    err = require_admin()
    if err:
        return err
    try:
        fields = _parse_task_payload(request.get_json(silent=True) or {})
    except IncentiveError as e:
        return error_response(e)

    task = Task(created_at=now(), **fields)
    db.session.add(task)
    db.session.commit()
    return jsonify({"success": True, "task": task.to_dict()}), 201


@admin_tasks.delete("/api/admin/tasks/<int:task_id>")
def api_admin_delete_task(task_id: int):
    err = require_admin()
    if err:
        return err

    task = db.session.get(Task, task_id)
    if not task:
        return jsonify({"success": False, "error": "not_found", "message": "Task not found"}), 404

    db.session.execute(delete(MissedTaskPenalty).where(MissedTaskPenalty.task_id == task_id))
    db.session.delete(task)
    db.session.commit()
    return jsonify({"success": True})


@admin_tasks.post("/api/admin/questions")
def api_admin_create_question():
    err = require_admin()
    if err:
        return err
    try:
        fields = _parse_question_payload(request.get_json(silent=True) or {})
    except IncentiveError as e:
        return error_response(e)

    question = ExamQuestion(created_at=now(), **fields)
    db.session.add(question)
    db.session.commit()
    return jsonify({"success": True, "question": question.to_dict(include_answer=True)}), 201


@admin_tasks.get("/api/admin/submissions")
def api_admin_list_submissions():
    err = require_admin()
    if err:
        return err

    status = (request.args.get("status") or SUBMISSION_PENDING_REVIEW).strip().upper()
    if status not in REVIEW_STATUSES | {SUBMISSION_PENDING_REVIEW}:
        return jsonify({"success": False, "error": "malformed_input", "message": "Invalid status"}), 400

    subs = db.session.execute(
        select(TaskSubmission)
        .where(TaskSubmission.status == status)
        .order_by(TaskSubmission.submitted_at.asc())
        .limit(500)
    ).scalars().all()

    out = []
    for s in subs:
        item = s.to_dict()
        item["task"] = {"id": s.task.id, "title": s.task.title, "due_at": s.task.due_at.isoformat()}
        out.append(item)
    return jsonify({"success": True, "submissions": out})


@admin_tasks.post("/api/admin/submissions/<int:submission_id>/review")
def api_admin_review_submission(submission_id: int):
    err = require_admin()
    if err:
        return err

    data = request.get_json(silent=True) or {}
    engine = get_engine()
    try:
        submission = review_submission(
            engine.ledger,
            submission_id,
            data.get("score"),
            (data.get("status") or "").strip().upper(),
            data.get("feedback"),
            engine.config.review_bonus_threshold,
            now(),
        )
    except IncentiveError as e:
        return error_response(e)
    return jsonify({"success": True, "submission": submission.to_dict()})


@admin_tasks.get("/api/admin/inbox")
def api_admin_list_inbox():
    err = require_admin()
    if err:
        return err
    status = (request.args.get("status") or "").strip().upper() or None
    try:
        reports = list_reports(status)
    except IncentiveError as e:
        return error_response(e)
    return jsonify({"success": True, "reports": [r.to_dict() for r in reports]})


@admin_tasks.post("/api/admin/inbox/<int:report_id>/resolve")
def api_admin_resolve_report(report_id: int):
    err = require_admin()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    try:
        report = resolve_report(
            get_engine().tokens,
            report_id,
            (data.get("note") or "").strip() or None,
            now(),
            reactivate=bool(data.get("reactivate", True)),
        )
    except IncentiveError as e:
        return error_response(e)
    return jsonify({"success": True, "report": report.to_dict()})


@admin_tasks.post("/api/admin/jobs/<name>/run")
def api_admin_run_job(name: str):
    err = require_admin()
    if err:
        return err
    try:
        summary = get_engine().scheduler.run_job(name, now())
    except KeyError:
        return jsonify({"success": False, "error": "not_found", "message": f"Unknown job {name}"}), 404
    logger.info("job %s triggered by admin: %s", name, summary.to_dict())
    return jsonify({"success": True, "summary": summary.to_dict()})
