from dotenv import load_dotenv
load_dotenv()
from datetime import timedelta
import os

from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.middleware.proxy_fix import ProxyFix

from clock import utcnow
from engine import init_engine
from extensions import db, limiter
from incentive_config import IncentiveConfig

# Model modules register their tables on import.
import models_activity  # noqa: F401
import models_jobs  # noqa: F401
import models_points  # noqa: F401
import models_quiz  # noqa: F401
import models_rewards  # noqa: F401
import models_tasks  # noqa: F401
import models_tokens  # noqa: F401
import models_users  # noqa: F401

from activity import activity_api
from admin_tasks import admin_tasks
from auth_tokens import auth_tokens_api
from quiz_api import quiz_api
from rewards import rewards_api
from tasks import tasks_api
from wrong_answers import wrong_answers_api


def _is_production() -> bool:
    return bool(os.getenv("RENDER") or os.getenv("FLASK_ENV") == "production")


def _database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if not url:
        if os.getenv("RENDER") == "true":
            raise RuntimeError("DATABASE_URL missing on Render; refusing to use SQLite.")
        url = "sqlite:///incentives.db"
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


def create_app(overrides: dict | None = None, config: IncentiveConfig | None = None, clock=utcnow) -> Flask:
    """Build the web app. `overrides` is applied on top of the env-derived Flask config."""
    app = Flask(__name__)

    # --- SECRET_KEY for the session cookie (user login + admin flag) ---
    secret_key = os.getenv("SECRET_KEY") or os.getenv("FLASK_SECRET_KEY")
    if not secret_key:
        # Dev fallback so local runs work. Set SECRET_KEY in production.
        secret_key = "dev-secret-key-change-me"
    if _is_production() and secret_key.startswith("dev-secret-key-change"):
        raise RuntimeError("SECRET_KEY must be set to a strong random value in production (Render/FLASK_ENV=production).")
    app.config["SECRET_KEY"] = secret_key

    app.config["SESSION_COOKIE_HTTPONLY"] = True
    app.config["SESSION_COOKIE_SAMESITE"] = os.getenv("SESSION_COOKIE_SAMESITE", "Lax")
    if _is_production():
        app.config["SESSION_COOKIE_SECURE"] = True
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=int(os.getenv("SESSION_LIFETIME_HOURS", "8")))

    app.config["ADMIN_API_KEY"] = os.getenv("ADMIN_API_KEY", "admin123")
    if _is_production() and app.config["ADMIN_API_KEY"] == "admin123":
        raise RuntimeError("ADMIN_API_KEY must be set in production.")

    app.config["SQLALCHEMY_DATABASE_URI"] = _database_url()
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {
        "pool_recycle": 300,
        "pool_pre_ping": True,
    }

    # Rate limiting
    # - In production, set RATE_LIMIT_STORAGE_URL to a Redis URL for multi-instance correctness.
    # - Defaults to in-memory storage.
    app.config["RATELIMIT_STORAGE_URI"] = os.getenv("RATE_LIMIT_STORAGE_URL", "memory://")

    if overrides:
        app.config.update(overrides)

    # Behind a reverse proxy request.remote_addr is the proxy; trust one hop.
    if _is_production():
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

    db.init_app(app)
    CORS(app)
    limiter.init_app(app)

    init_engine(app, config or IncentiveConfig.from_env(), clock=clock)

    app.register_blueprint(auth_tokens_api)
    app.register_blueprint(activity_api)
    app.register_blueprint(tasks_api)
    app.register_blueprint(quiz_api)
    app.register_blueprint(wrong_answers_api)
    app.register_blueprint(rewards_api)
    app.register_blueprint(admin_tasks)

    @app.get("/api/health")
    def health():
        return jsonify({"success": True, "status": "ok"})

    @app.after_request
    def add_default_headers(resp):
        resp.headers.setdefault("Cache-Control", "no-store")
        resp.headers.setdefault("X-Content-Type-Options", "nosniff")
        return resp

    with app.app_context():
        db.create_all()

    return app


if __name__ == '__main__':
    port = int(os.getenv('PORT', 5000))
    debug = os.getenv('FLASK_ENV', 'development') == 'development'
    app = create_app()

    print("=" * 60)
    print("Employee Incentive Engine")
    print("=" * 60)
    print(f"API: http://localhost:{port}/api/health")
    print(f"Jobs: {', '.join(app.extensions['incentive_engine'].scheduler.jobs)}")
    print("=" * 60)

    app.run(debug=debug, port=port)
