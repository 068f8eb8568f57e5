"""Exclusive token lifecycle: issuance, disablement, login gate.

Issuance rules:
- the email must be verified first (external OTP flow)
- a user who already holds a token gets it back, no quota consumed
- at most `monthly_token_quota` new tokens per email per calendar month
- quota count, mint, user update and TokenIssue row are one transaction,
  serialized per user by a row lock on the user

Disablement is set by the inactivity scan and is terminal for the engine.
Only an admin resolving an inactivity report calls reactivate().
"""

import logging
import secrets
import string
from datetime import datetime
from typing import Callable

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from werkzeug.security import check_password_hash

from clock import start_of_month, start_of_next_month, utcnow
from errors import (
    EmailNotVerified,
    InvalidCredentials,
    QuotaExceeded,
    TokenDisabled,
    TokenMismatch,
    UserNotFound,
)
from extensions import db
from models_tokens import TokenIssue
from models_users import User


logger = logging.getLogger(__name__)

TOKEN_ALPHABET = string.ascii_uppercase + string.digits
TOKEN_RANDOM_LENGTH = 6


def _normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class ExclusiveTokenService:
    def __init__(self, config, clock: Callable[[], datetime] = utcnow):
        self.config = config
        self.clock = clock

    def mint_token(self, now: datetime) -> str:
        rand = "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(TOKEN_RANDOM_LENGTH))
        return f"{self.config.token_prefix}-{now.year}-{rand}"

    def monthly_issue_count(self, email: str, now: datetime | None = None) -> int:
        now = now or self.clock()
        return db.session.execute(
            select(func.count(TokenIssue.id)).where(
                TokenIssue.email == _normalize_email(email),
                TokenIssue.issued_at >= start_of_month(now),
                TokenIssue.issued_at < start_of_next_month(now),
            )
        ).scalar_one()

    def _lock_user_by_email(self, email: str) -> User | None:
        return db.session.execute(
            select(User).where(User.email == email).with_for_update()
        ).scalar_one_or_none()

    def issue(self, email: str) -> str:
        email = _normalize_email(email)
        for _ in range(max(1, self.config.token_mint_attempts)):
            now = self.clock()
            try:
                user = self._lock_user_by_email(email)
                if user is None:
                    raise UserNotFound("No user with that email")
                if user.email_verified_at is None:
                    raise EmailNotVerified("Email not verified; complete the code verification first")
                if user.exclusive_token:
                    existing = user.exclusive_token
                    db.session.rollback()
                    return existing

                issued = self.monthly_issue_count(email, now)
                if issued >= self.config.monthly_token_quota:
                    logger.warning("token quota exceeded email=%s issued=%s", email, issued)
                    raise QuotaExceeded(
                        f"Monthly token limit reached ({self.config.monthly_token_quota} per month)"
                    )

                token = self.mint_token(now)
                user.exclusive_token = token
                user.token_issued_at = now
                db.session.add(TokenIssue(email=email, token=token, issued_at=now))
                db.session.commit()
            except IntegrityError:
                # Token collided with another user's; nothing was written.
                db.session.rollback()
                logger.warning("token collision email=%s, retrying", email)
                continue
            except Exception:
                db.session.rollback()
                raise
            logger.info("token issued user_id=%s email=%s", user.id, email)
            return token
        raise RuntimeError("Could not mint a unique exclusive token")

    def disable(self, user_id: int, reason: str, now: datetime | None = None) -> bool:
        """Mark the user's token disabled. Returns False if it already was."""
        now = now or self.clock()
        try:
            user = db.session.execute(
                select(User).where(User.id == user_id).with_for_update()
            ).scalar_one_or_none()
            if user is None:
                raise UserNotFound(f"User {user_id} not found")
            if user.token_disabled_at is not None:
                db.session.rollback()
                return False
            user.token_disabled_at = now
            user.token_disabled_reason = reason
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        logger.info("token disabled user_id=%s reason=%s", user_id, reason)
        return True

    def reactivate(self, user_id: int) -> bool:
        """Clear a disablement. Admin-only path, never called by the scheduler."""
        user = db.session.get(User, user_id)
        if user is None:
            raise UserNotFound(f"User {user_id} not found")
        if user.token_disabled_at is None:
            return False
        user.token_disabled_at = None
        user.token_disabled_reason = None
        db.session.commit()
        logger.info("token reactivated user_id=%s", user_id)
        return True

    def authenticate(self, email: str, password: str, token: str) -> User:
        """Login gate for (email, password, token).

        A disabled token is reported separately from bad credentials so the
        client can show the reason and offer the inactivity report form.
        """
        user = db.session.execute(
            select(User).where(User.email == _normalize_email(email))
        ).scalar_one_or_none()
        if user is None or not user.exclusive_token or not secrets.compare_digest(
            user.exclusive_token.encode(), (token or "").strip().encode()
        ):
            raise TokenMismatch("Account or token is incorrect")
        if not check_password_hash(user.password_hash, password or ""):
            raise InvalidCredentials("Account or password is incorrect")
        if user.token_disabled_at is not None:
            raise TokenDisabled(user.token_disabled_at, user.token_disabled_reason)
        return user
