"""Engine error taxonomy.

Every error carries a stable `code` (returned to API clients) and the HTTP
status the web layer should answer with. Engine functions raise these before
writing anything.
"""

from datetime import datetime


class IncentiveError(Exception):
    code = "error"
    status = 400

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> dict:
        return {"success": False, "error": self.code, "message": self.message}


# ---- precondition violations ----

class MalformedInput(IncentiveError):
    code = "malformed_input"
    status = 400


class UserNotFound(IncentiveError):
    code = "user_not_found"
    status = 404


class NotFound(IncentiveError):
    code = "not_found"
    status = 404


class EmailNotVerified(IncentiveError):
    code = "email_not_verified"
    status = 400


# ---- quota / state conflicts ----

class QuotaExceeded(IncentiveError):
    code = "quota_exceeded"
    status = 429


class DuplicateQuizSession(IncentiveError):
    code = "quiz_already_taken"
    status = 409


class DuplicateSubmission(IncentiveError):
    code = "already_submitted"
    status = 409


class RewardNotEligible(IncentiveError):
    code = "reward_not_eligible"
    status = 403


class TokenMismatch(IncentiveError):
    code = "token_mismatch"
    status = 401


class InvalidCredentials(IncentiveError):
    code = "invalid_credentials"
    status = 401


class TokenDisabled(IncentiveError):
    """Login refused because the exclusive token was disabled.

    Distinct from a bad password: clients show the reason and timestamp so the
    user can file an inactivity report.
    """

    code = "token_disabled"
    status = 403

    def __init__(self, disabled_at: datetime, reason: str | None):
        super().__init__("Exclusive token has been disabled")
        self.disabled_at = disabled_at
        self.reason = reason

    def to_dict(self) -> dict:
        out = super().to_dict()
        out["disabled_at"] = self.disabled_at.isoformat() if self.disabled_at else None
        out["reason"] = self.reason
        return out
