"""Wrong-answer review.

Routes:
- GET  /api/wrong-answers
- POST /api/wrong-answers/<id>/resolve

Resolving a record before its correction deadline keeps it out of the
nightly wrong-answer penalty.
"""

from datetime import datetime

from flask import Blueprint, jsonify
from sqlalchemy import select

from engine import now
from errors import IncentiveError, NotFound
from extensions import db
from models_quiz import WrongAnswer
from web_helpers import current_user_id, error_response, require_user


wrong_answers_api = Blueprint("wrong_answers_api", __name__)


def list_wrong_answers(user_id: int) -> list[WrongAnswer]:
    return db.session.execute(
        select(WrongAnswer)
        .where(WrongAnswer.user_id == user_id)
        .order_by(WrongAnswer.recorded_at.desc(), WrongAnswer.id.desc())
    ).scalars().all()


def resolve_wrong_answer(user_id: int, wrong_answer_id: int, current: datetime) -> WrongAnswer:
    wrong = db.session.get(WrongAnswer, wrong_answer_id)
    if wrong is None or wrong.user_id != user_id:
        raise NotFound("Wrong answer not found")
    if not wrong.is_resolved:
        wrong.is_resolved = True
        wrong.resolved_at = current
        db.session.commit()
    return wrong


@wrong_answers_api.get("/api/wrong-answers")
def get_wrong_answers():
    err = require_user()
    if err:
        return err
    items = list_wrong_answers(current_user_id())
    return jsonify({"success": True, "wrong_answers": [w.to_dict() for w in items]})


@wrong_answers_api.post("/api/wrong-answers/<int:wrong_answer_id>/resolve")
def post_resolve_wrong_answer(wrong_answer_id: int):
    err = require_user()
    if err:
        return err
    try:
        wrong = resolve_wrong_answer(current_user_id(), wrong_answer_id, now())
    except IncentiveError as e:
        return error_response(e)
    return jsonify({"success": True, "wrong_answer": wrong.to_dict()})
