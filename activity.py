"""Activity heartbeat.

Route:
- POST /api/activity/heartbeat   {"minutes": 1}

The client pings roughly once per active minute. Minutes accumulate into one
DailyActivity row per (user, UTC day); the inactivity scan is the only reader.
"""

from datetime import date, datetime

from flask import Blueprint, jsonify, request
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from engine import now
from errors import IncentiveError, MalformedInput
from extensions import db, limiter
from models_activity import DailyActivity
from web_helpers import current_user_id, error_response, require_user


activity_api = Blueprint("activity_api", __name__)

MAX_MINUTES_PER_BEAT = 60


def record_heartbeat(user_id: int, minutes: int, current: datetime) -> None:
    if isinstance(minutes, bool) or not isinstance(minutes, int):
        raise MalformedInput("minutes must be an integer")
    if minutes <= 0 or minutes > MAX_MINUTES_PER_BEAT:
        raise MalformedInput(f"minutes must be between 1 and {MAX_MINUTES_PER_BEAT}")

    day = current.date()
    for _ in range(2):
        result = db.session.execute(
            update(DailyActivity)
            .where(DailyActivity.user_id == user_id, DailyActivity.date == day)
            .values(minutes=DailyActivity.minutes + minutes, updated_at=current)
        )
        if result.rowcount:
            db.session.commit()
            return
        try:
            db.session.add(DailyActivity(user_id=user_id, date=day, minutes=minutes, updated_at=current))
            db.session.commit()
            return
        except IntegrityError:
            # First beat of the day raced with another one; increment instead.
            db.session.rollback()
    raise RuntimeError("Could not record heartbeat")


def minutes_for(user_id: int, day: date) -> int:
    value = db.session.execute(
        select(DailyActivity.minutes).where(DailyActivity.user_id == user_id, DailyActivity.date == day)
    ).scalar_one_or_none()
    return int(value or 0)


@activity_api.post("/api/activity/heartbeat")
@limiter.limit("5 per minute")
def heartbeat():
    err = require_user()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    current = now()
    try:
        record_heartbeat(current_user_id(), data.get("minutes", 1), current)
    except IncentiveError as e:
        return error_response(e)
    return jsonify({"success": True, "minutes_today": minutes_for(current_user_id(), current.date())})
