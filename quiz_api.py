"""Daily quiz APIs.

Routes:
- GET  /api/quiz/daily
- POST /api/quiz/submit   {"answers": [{"question_id": 1, "selected_option": 2}, ...]}
"""

from flask import Blueprint, jsonify, request

from engine import get_engine, now
from errors import IncentiveError
from web_helpers import current_user_id, error_response, require_user


quiz_api = Blueprint("quiz_api", __name__)


@quiz_api.get("/api/quiz/daily")
def get_daily_quiz():
    err = require_user()
    if err:
        return err
    questions, completed = get_engine().quiz.daily_questions(current_user_id(), now())
    return jsonify({
        "success": True,
        "completed": completed,
        # Answers are only revealed once today's quiz is done.
        "questions": [q.to_dict(include_answer=completed) for q in questions],
    })


@quiz_api.post("/api/quiz/submit")
def post_submit_quiz():
    err = require_user()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    try:
        result = get_engine().quiz.submit(current_user_id(), data.get("answers"), now())
    except IncentiveError as e:
        return error_response(e)
    return jsonify({"success": True, **result.to_dict()})
