#!/usr/bin/env python3
"""
Complex Schedules Example

Runs one task on three schedules interpreted in a fixed UTC-8 zone, and
prints when each fires next. Press Ctrl+C to exit.
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add parent directory to path for imports (if running as standalone script)
sys.path.insert(0, str(Path(__file__).parent.parent))

from cronjob import CancellationToken, schedule_job
from cronjob.cli import cancel_on_signals

PST = timezone(timedelta(hours=-8), "PST")


def task(token):
    print(f"Task executed at: {datetime.now(PST):%a, %d %b %Y %H:%M:%S %Z}")


def main():
    root = CancellationToken()
    cancel_on_signals(root)

    jobs = {
        # Once a day at 9 AM PST
        "daily 9am": schedule_job("0 9 * * *"),
        # Tuesdays at noon PST
        "tuesday noon": schedule_job("0 12 * * 2"),
        # The 5th day of the month at 8 PM PST
        "5th at 8pm": schedule_job("0 20 5 * *"),
    }

    for name, job in jobs.items():
        job.set_callback(task).set_timezone(PST).with_cancellation(root).start()
        print(f"{name:>14}: next run at {job.next_fire_time().isoformat()}")

    print("Jobs started. Press Ctrl+C to exit.")

    # Keep the application running
    root.wait()


if __name__ == "__main__":
    main()
