"""Engine configuration.

Values come from the environment (after load_dotenv) once, then travel as an
explicit IncentiveConfig into every component. Nothing in the engine reads
os.environ directly.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class IncentiveConfig:
    point_limit: int = 15
    daily_quiz_count: int = 5
    required_correct_for_bonus: int = 4
    correction_window_days: int = 3
    monthly_token_quota: int = 3
    token_prefix: str = "GV"
    token_mint_attempts: int = 5
    inactivity_days: int = 3
    inactivity_floor_minutes: int = 10
    missed_task_lookback_days: int = 7
    ranking_bonus_slots: int = 3
    review_bonus_threshold: int = 80
    # 0 = no limit on a single batch job run
    job_max_runtime_seconds: int = 0

    @classmethod
    def from_env(cls) -> "IncentiveConfig":
        load_dotenv()
        return cls(
            point_limit=_env_int("POINT_LIMIT", cls.point_limit),
            daily_quiz_count=_env_int("DAILY_QUIZ_COUNT", cls.daily_quiz_count),
            required_correct_for_bonus=_env_int("REQUIRED_CORRECT_FOR_BONUS", cls.required_correct_for_bonus),
            correction_window_days=_env_int("WRONG_ANSWER_CORRECTION_DAYS", cls.correction_window_days),
            monthly_token_quota=_env_int("MONTHLY_TOKEN_QUOTA", cls.monthly_token_quota),
            token_prefix=(os.getenv("TOKEN_PREFIX") or cls.token_prefix).strip(),
            token_mint_attempts=_env_int("TOKEN_MINT_ATTEMPTS", cls.token_mint_attempts),
            inactivity_days=_env_int("INACTIVITY_DAYS", cls.inactivity_days),
            inactivity_floor_minutes=_env_int("INACTIVITY_FLOOR_MINUTES", cls.inactivity_floor_minutes),
            missed_task_lookback_days=_env_int("MISSED_TASK_LOOKBACK_DAYS", cls.missed_task_lookback_days),
            ranking_bonus_slots=_env_int("RANKING_BONUS_SLOTS", cls.ranking_bonus_slots),
            review_bonus_threshold=_env_int("REVIEW_BONUS_THRESHOLD", cls.review_bonus_threshold),
            job_max_runtime_seconds=_env_int("JOB_MAX_RUNTIME_SECONDS", cls.job_max_runtime_seconds),
        )
