"""Incentive worker (runs the scheduled jobs).

Run this as a separate worker service:
  python incentive_worker.py

Every INCENTIVE_WORKER_INTERVAL_SECONDS the worker asks the scheduler to run
whatever jobs are due. A job runs at most once per window; failed runs are
retried on the next tick.

Environment:
- DATABASE_URL (same as the web app)
- REDIS_URL (optional) guards each job with a lock so parallel workers do
  not run the same job at the same time
- INCENTIVE_WORKER_INTERVAL_SECONDS (default 60)
- INCENTIVE_JOB_LOCK_TTL_SECONDS (default 900)
"""

from contextlib import contextmanager
import logging
import os
import time

import redis

from app import create_app
from engine import get_engine


INTERVAL = int(os.getenv("INCENTIVE_WORKER_INTERVAL_SECONDS", "60"))
LOCK_TTL = int(os.getenv("INCENTIVE_JOB_LOCK_TTL_SECONDS", "900"))


class RedisJobLocker:
    """Non-blocking per-job lock shared by every worker instance."""

    def __init__(self, client, ttl: int = LOCK_TTL, prefix: str = "incentive:job:"):
        self.client = client
        self.ttl = ttl
        self.prefix = prefix

    @contextmanager
    def hold(self, job_name: str):
        lock = self.client.lock(f"{self.prefix}{job_name}", timeout=self.ttl)
        acquired = lock.acquire(blocking=False)
        try:
            yield acquired
        finally:
            if acquired:
                try:
                    lock.release()
                except redis.exceptions.LockError:
                    # Expired while the job ran; someone else may hold it now.
                    print(f"Lock for {job_name} expired before release")


def build_locker():
    url = os.getenv("REDIS_URL")
    if not url:
        return None
    return RedisJobLocker(redis.from_url(url))


def run_once(app, locker=None):
    with app.app_context():
        summaries = get_engine().scheduler.tick(locker=locker)
        for summary in summaries:
            print(summary.to_dict())
        return summaries


def main():
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
    app = create_app()
    locker = build_locker()
    print("Incentive worker started" + (" (redis locks)" if locker else ""))
    while True:
        try:
            run_once(app, locker)
        except Exception as e:
            print("Worker error:", str(e))
        time.sleep(INTERVAL)


if __name__ == "__main__":
    main()
