"""Shared Flask extensions.

Models import `db` from here instead of from app.py so feature modules never
have to import the running app module.
"""

from flask import request
from flask_limiter import Limiter
from flask_sqlalchemy import SQLAlchemy


def get_client_ip() -> str:
    """Return the best-effort client IP.

    After ProxyFix, request.access_route[0] should be the real client IP.
    Falls back to request.remote_addr for local development.
    """
    if request.access_route:
        return request.access_route[0]
    return request.remote_addr or "0.0.0.0"


db = SQLAlchemy()

# Storage is configured per app through RATELIMIT_STORAGE_URI.
limiter = Limiter(get_client_ip, default_limits=["200 per day", "50 per hour"])
