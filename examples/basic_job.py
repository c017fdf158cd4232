#!/usr/bin/env python3
"""
Basic Job Example

Increments a counter every second for five seconds, printing the job's
serialized form before it starts.
"""

import sys
import threading
import time
from pathlib import Path

# Add parent directory to path for imports (if running as standalone script)
sys.path.insert(0, str(Path(__file__).parent.parent))

from cronjob import schedule_job


def main():
    counter = 0
    lock = threading.Lock()

    def increment(token):
        nonlocal counter
        with lock:
            counter += 1
            print(f"Counter incremented to {counter}")

    job = schedule_job("* * * * * *").set_callback(increment)

    print(job.to_json())

    job.start()

    # Let the job run for 5 seconds
    time.sleep(5)

    job.stop()

    print("Job stopped")


if __name__ == "__main__":
    main()
