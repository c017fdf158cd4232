#!/usr/bin/env python3
"""
Cancellation Example

Binds a job to a token that is cancelled either by Ctrl+C or by a
5 second deadline, whichever comes first.
"""

import sys
import threading
from pathlib import Path

# Add parent directory to path for imports (if running as standalone script)
sys.path.insert(0, str(Path(__file__).parent.parent))

from cronjob import CancellationToken, DeadlineExceeded, schedule_job
from cronjob.cli import cancel_on_signals


def main():
    # Base token that cancels on SIGINT (Ctrl+C)
    base = CancellationToken()
    cancel_on_signals(base)

    # Also cancel after 5 seconds
    token = base.with_timeout(5.0)

    counter = 0
    lock = threading.Lock()

    def increment(job_token):
        nonlocal counter
        with lock:
            counter += 1
            print(f"Counter incremented to {counter}")

    job = schedule_job("* * * * * *").set_callback(increment).with_cancellation(token)
    job.start()

    # Wait for the token to be cancelled (either SIGINT received or timeout)
    token.wait()

    # Check why the token was cancelled
    if isinstance(token.error, DeadlineExceeded):
        print("Timeout reached, stopping job")
    else:
        print("\nSIGINT received, job stopped gracefully")

    job.stop()


if __name__ == "__main__":
    main()
