#!/usr/bin/env python3
"""Run one incentive job once and print its summary.

Intended for an external scheduler (e.g., Render Cron):
  python scripts/run_incentive_job.py weekly_summary

Job names: inactivity_scan, missed_task_penalty, wrong_answer_penalty, weekly_summary
"""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import create_app  # noqa: E402
from engine import get_engine  # noqa: E402


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) != 1:
        print(__doc__)
        return 2

    app = create_app()
    with app.app_context():
        scheduler = get_engine().scheduler
        if argv[0] not in scheduler.jobs:
            print({"ok": False, "error": f"unknown job {argv[0]}", "jobs": sorted(scheduler.jobs)})
            return 2
        summary = scheduler.run_job(argv[0])

    print({"ok": summary.clean, **summary.to_dict()})
    return 0 if summary.clean else 1


if __name__ == "__main__":
    sys.exit(main())
