"""Leaderboard, points dashboard and reward requests.

Routes:
- GET  /api/points                current balance + recent transactions
- GET  /api/rewards/leaderboard   latest weekly summaries, newest first
- POST /api/rewards/request       {"reward_option": "..."}

Only users placed in the top `ranking_bonus_slots` of the most recent weekly
summary may request a reward, once per summary week. Points are reset when
the summary is taken, so the request records the ranked points.
"""

from datetime import datetime

from flask import Blueprint, jsonify, request
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from engine import get_engine, now
from errors import DuplicateSubmission, IncentiveError, MalformedInput, NotFound, RewardNotEligible
from extensions import db
from models_rewards import RewardRequest, WeeklySummary
from web_helpers import current_user_id, error_response, require_user


rewards_api = Blueprint("rewards_api", __name__)

MAX_SUMMARIES = 52


def list_weekly_summaries(limit: int = 10) -> list[WeeklySummary]:
    return db.session.execute(
        select(WeeklySummary).order_by(WeeklySummary.week_start.desc()).limit(limit)
    ).scalars().all()


def request_reward(config, user_id: int, reward_option: str | None, current: datetime) -> RewardRequest:
    reward_option = (reward_option or "").strip() or None
    if reward_option and len(reward_option) > 120:
        raise MalformedInput("reward_option must be at most 120 characters")

    latest = db.session.execute(
        select(WeeklySummary).order_by(WeeklySummary.week_start.desc()).limit(1)
    ).scalar_one_or_none()
    if latest is None:
        raise NotFound("No weekly summary yet")

    entry = next((e for e in latest.entries if e.user_id == user_id), None)
    if entry is None or entry.rank > config.ranking_bonus_slots:
        raise RewardNotEligible(f"Only the top {config.ranking_bonus_slots} of the week can request a reward")

    existing = db.session.execute(
        select(RewardRequest.id).where(
            RewardRequest.user_id == user_id, RewardRequest.week_start == latest.week_start
        )
    ).first()
    if existing:
        raise DuplicateSubmission("Reward already requested for this week")

    req = RewardRequest(
        user_id=user_id,
        week_start=latest.week_start,
        points_at_request=entry.points,
        reward_option=reward_option,
        created_at=current,
    )
    db.session.add(req)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateSubmission("Reward already requested for this week")
    return req


@rewards_api.get("/api/points")
def get_points():
    err = require_user()
    if err:
        return err
    ledger = get_engine().ledger
    uid = current_user_id()
    return jsonify({
        "success": True,
        "points": ledger.balance(uid),
        "limit": get_engine().config.point_limit,
        "transactions": [t.to_dict() for t in ledger.history(uid)],
    })


@rewards_api.get("/api/rewards/leaderboard")
def get_leaderboard():
    try:
        limit = int(request.args.get("limit", 10))
    except ValueError:
        limit = 10
    limit = max(1, min(limit, MAX_SUMMARIES))
    return jsonify({"success": True, "summaries": [s.to_dict() for s in list_weekly_summaries(limit)]})


@rewards_api.post("/api/rewards/request")
def post_reward_request():
    err = require_user()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    try:
        req = request_reward(get_engine().config, current_user_id(), data.get("reward_option"), now())
    except IncentiveError as e:
        return error_response(e)
    return jsonify({"success": True, "request": req.to_dict()}), 201
