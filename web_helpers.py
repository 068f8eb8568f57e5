"""Request-side helpers shared by the blueprints.

Users are identified by the `user_id` stored in the Flask session after a
token login. Admin endpoints use a separate session flag set by the admin key
login, the same way each admin dashboard gates itself.
"""

from flask import jsonify, session as flask_session

from errors import IncentiveError


def current_user_id() -> int | None:
    uid = flask_session.get("user_id")
    return int(uid) if uid is not None else None


def require_user():
    if current_user_id() is None:
        return jsonify({"success": False, "error": "unauthorized", "message": "Login required"}), 401
    return None


def is_admin() -> bool:
    return bool(flask_session.get("admin"))


def require_admin():
    if not is_admin():
        return jsonify({"success": False, "error": "forbidden", "message": "Admin access required"}), 403
    return None


def error_response(exc: IncentiveError):
    return jsonify(exc.to_dict()), exc.status
