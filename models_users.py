"""User model.

Carries the exclusive-token fields used by the token lifecycle:
- exclusive_token: opaque per-user credential, unique once set
- token_disabled_at / token_disabled_reason: presence means the token is inert
  for login. Only an admin inbox resolution clears them.
"""

from sqlalchemy import Column, DateTime, Index, Integer, String

from clock import utcnow
from extensions import db


ROLE_EMPLOYEE = "EMPLOYEE"
ROLE_ADMIN = "ADMIN"


class User(db.Model):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    display_name = Column(String(120), nullable=False)
    role = Column(String(20), nullable=False, default=ROLE_EMPLOYEE)
    password_hash = Column(String(255), nullable=False)
    # Set by the external OTP verification flow.
    email_verified_at = Column(DateTime, nullable=True)

    exclusive_token = Column(String(40), unique=True, nullable=True)
    token_issued_at = Column(DateTime, nullable=True)
    token_disabled_at = Column(DateTime, nullable=True)
    token_disabled_reason = Column(String(255), nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_users_role", "role"),
    )

    @property
    def token_disabled(self) -> bool:
        return self.token_disabled_at is not None

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "display_name": self.display_name,
            "role": self.role,
            "email_verified": self.email_verified_at is not None,
            "has_token": bool(self.exclusive_token),
            "token_issued_at": self.token_issued_at.isoformat() if self.token_issued_at else None,
            "token_disabled_at": self.token_disabled_at.isoformat() if self.token_disabled_at else None,
            "token_disabled_reason": self.token_disabled_reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
