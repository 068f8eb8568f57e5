"""Exclusive token APIs.

Routes:
- POST /api/auth/token         {"email"}                        issue (or return) a token
- POST /api/auth/login-token   {"email", "password", "token"}   token-gated login
- POST /api/auth/logout
- POST /api/inbox/inactivity   {"email", "reason"}              remediation report

A disabled token answers 403 with `disabled_at` and `reason`, never 401, so
the client can route the user to the inactivity report form.
"""

from flask import Blueprint, jsonify, request, session as flask_session

from engine import get_engine, now
from errors import IncentiveError
from inbox import submit_inactivity_report
from extensions import limiter
from web_helpers import error_response


auth_tokens_api = Blueprint("auth_tokens_api", __name__)


@auth_tokens_api.post("/api/auth/token")
@limiter.limit("5 per minute")
def issue_token():
    data = request.get_json(silent=True) or {}
    try:
        token = get_engine().tokens.issue(data.get("email"))
    except IncentiveError as e:
        return error_response(e)
    return jsonify({"success": True, "token": token})


@auth_tokens_api.post("/api/auth/login-token")
@limiter.limit("10 per minute")
def login_with_token():
    data = request.get_json(silent=True) or {}
    try:
        user = get_engine().tokens.authenticate(data.get("email"), data.get("password"), data.get("token"))
    except IncentiveError as e:
        return error_response(e)

    flask_session.clear()
    flask_session["user_id"] = user.id
    flask_session.permanent = True
    return jsonify({
        "success": True,
        "user": user.to_dict(),
        "points": get_engine().ledger.balance(user.id),
    })


@auth_tokens_api.post("/api/auth/logout")
def logout():
    flask_session.pop("user_id", None)
    return jsonify({"success": True})


@auth_tokens_api.post("/api/inbox/inactivity")
@limiter.limit("5 per hour")
def post_inactivity_report():
    data = request.get_json(silent=True) or {}
    try:
        report = submit_inactivity_report(data.get("email"), data.get("reason"), now())
    except IncentiveError as e:
        return error_response(e)
    return jsonify({"success": True, "id": report.id}), 201
