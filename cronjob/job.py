"""
Cron jobs.

A Job pairs a CronSchedule with a callback and runs a background loop that
sleeps until the next fire time, invokes the callback, and repeats until the
job's cancellation token fires.

    job = schedule_job("*/5 * * * * *").set_callback(task).set_blocking(True)
    job.start()
    ...
    job.stop()

Configuration (callback, blocking mode, timezone, cancellation token) may be
changed while the job runs. The loop snapshots it once per iteration, so a
change applies from the next computed fire time onward.
"""

import enum
import json
import logging
import threading
from datetime import datetime, timezone, tzinfo
from typing import Any, Callable, Dict, Optional

from cronjob.cancellation import CancellationToken
from cronjob.locks import ReadWriteLock
from cronjob.schedule import CronSchedule

logger = logging.getLogger(__name__)

Callback = Callable[[CancellationToken], Any]


class JobState(enum.Enum):
    """Lifecycle of a Job."""
    NOT_STARTED = 'not_started'
    RUNNING = 'running'
    STOPPED = 'stopped'


def timezone_name(tz: tzinfo) -> str:
    """Best-effort identifier for a tzinfo (IANA key where available)."""
    return getattr(tz, 'key', None) or getattr(tz, 'zone', None) or str(tz)


class Job:
    """
    A callback fired on a cron schedule.

    Defaults: non-blocking, UTC, and a fresh independent cancellation token.
    The schedule is fixed at construction; to reschedule, create a new Job.

    Blocking mode runs the callback on the loop thread, so a slow callback
    delays (and effectively drops) later fires. Non-blocking mode runs each
    fire on its own thread with no limit on how many run at once.

    Exceptions raised by the callback are not caught. In blocking mode they
    end the loop; in non-blocking mode they end only that fire's thread.
    """

    def __init__(self, expression: str):
        """
        Create a job for a cron expression.

        Args:
            expression: 5-field or 6-field cron expression

        Raises:
            InvalidScheduleError: If the expression is malformed
        """
        self._schedule = CronSchedule(expression)
        self._expression = expression

        self._callback: Optional[Callback] = None
        self._blocking = False
        self._timezone: tzinfo = timezone.utc
        self._token = CancellationToken()

        self._state = JobState.NOT_STARTED
        self._thread: Optional[threading.Thread] = None
        self._lock = ReadWriteLock()

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def expression(self) -> str:
        return self._expression

    @property
    def schedule(self) -> CronSchedule:
        return self._schedule

    @property
    def callback(self) -> Optional[Callback]:
        with self._lock.read():
            return self._callback

    @property
    def blocking(self) -> bool:
        with self._lock.read():
            return self._blocking

    @property
    def timezone(self) -> tzinfo:
        with self._lock.read():
            return self._timezone

    @property
    def token(self) -> CancellationToken:
        """The token currently governing the job (passed to the callback)."""
        with self._lock.read():
            return self._token

    @property
    def state(self) -> JobState:
        with self._lock.read():
            return self._state

    @property
    def is_running(self) -> bool:
        return self.state is JobState.RUNNING

    # ------------------------------------------------------------------
    # Fluent configuration
    # ------------------------------------------------------------------

    def set_blocking(self, blocking: bool) -> 'Job':
        """Run the callback on the loop thread (True) or on its own thread (False)."""
        with self._lock.write():
            self._blocking = bool(blocking)
        return self

    def with_cancellation(self, parent: CancellationToken) -> 'Job':
        """
        Bind the job to ``parent``.

        The current token is cancelled and replaced by a child of ``parent``:
        cancelling ``parent`` stops the job, stopping the job leaves
        ``parent`` alone.
        """
        with self._lock.write():
            self._token.cancel()
            self._token = parent.child()
        return self

    def set_timezone(self, tz: tzinfo) -> 'Job':
        """Interpret the schedule in ``tz`` (e.g. ``zoneinfo.ZoneInfo("Europe/Paris")``)."""
        if not isinstance(tz, tzinfo):
            raise TypeError(f"timezone must be a tzinfo instance, got {type(tz).__name__}")
        with self._lock.write():
            self._timezone = tz
        return self

    def set_callback(self, fn: Optional[Callback]) -> 'Job':
        """Set the function fired on schedule. It receives the job's token."""
        if fn is not None and not callable(fn):
            raise TypeError(f"callback must be callable, got {type(fn).__name__}")
        with self._lock.write():
            self._callback = fn
        return self

    execute = set_callback

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        """
        Start the scheduling loop in a background thread and return.

        Does nothing if no callback is set, if the job is already running,
        or if its token is already cancelled (a stopped job needs a fresh
        token from ``with_cancellation`` before it can start again).
        """
        with self._lock.write():
            if self._callback is None or self._state is JobState.RUNNING:
                return
            if self._token.cancelled:
                logger.warning(
                    f"Job '{self._expression}' not started: its cancellation token is already cancelled"
                )
                return

            self._state = JobState.RUNNING
            thread = threading.Thread(
                target=self._run,
                name=f"cronjob-{self._expression}",
                daemon=True
            )
            self._thread = thread
            thread.start()

        logger.info(f"Job '{self._expression}' started")

    def stop(self):
        """Stop the loop by cancelling the job's token. Idempotent."""
        with self._lock.write():
            if self._state is not JobState.RUNNING:
                return
            self._state = JobState.STOPPED
            self._token.cancel()

        logger.info(f"Job '{self._expression}' stopped")

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the loop thread to exit.

        Returns:
            True if no loop thread is alive when the call returns
        """
        with self._lock.read():
            thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    # ------------------------------------------------------------------
    # Scheduling loop
    # ------------------------------------------------------------------

    def _owns_loop(self) -> bool:
        # Caller holds the lock
        return self._state is JobState.RUNNING and self._thread is threading.current_thread()

    def _run(self):
        last_fire: Optional[datetime] = None
        try:
            while True:
                with self._lock.read():
                    if not self._owns_loop():
                        return
                    tz = self._timezone
                    blocking = self._blocking
                    callback = self._callback
                    token = self._token

                now = datetime.now(tz)
                # Never fire the same scheduled second twice. Compare instants:
                # same-zone comparison ignores the offset across a DST change.
                if last_fire is not None and now.astimezone(timezone.utc) <= last_fire.astimezone(timezone.utc):
                    after = last_fire.astimezone(tz)
                else:
                    after = now
                fire_at = self._schedule.next(after)
                if fire_at is None:
                    logger.warning(f"Job '{self._expression}' has no future fire times")
                    return

                delay = max((fire_at.astimezone(timezone.utc) - datetime.now(timezone.utc)).total_seconds(), 0.0)
                logger.debug(f"Job '{self._expression}' next fire at {fire_at.isoformat()} (in {delay:.3f}s)")

                if token.wait(delay):
                    with self._lock.read():
                        replaced = self._owns_loop() and self._token is not token and not self._token.cancelled
                    if replaced:
                        continue
                    logger.debug(f"Job '{self._expression}' observed cancellation: {token.error!r}")
                    return

                last_fire = fire_at
                if callback is None:
                    continue

                if blocking:
                    callback(token)
                else:
                    threading.Thread(
                        target=callback,
                        args=(token,),
                        name=f"cronjob-{self._expression}-fire",
                        daemon=True
                    ).start()
        finally:
            with self._lock.write():
                if self._thread is threading.current_thread() and self._state is JobState.RUNNING:
                    self._state = JobState.STOPPED

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def next_fire_time(self, now: Optional[datetime] = None) -> Optional[datetime]:
        """
        Get the next fire time after ``now`` in the job's timezone.

        Args:
            now: Reference time (default: current time). Naive values are
                 taken to be in the job's timezone.
        """
        tz = self.timezone
        if now is None:
            now = datetime.now(tz)
        elif now.tzinfo is None:
            now = now.replace(tzinfo=tz)
        return self._schedule.next(now.astimezone(tz))

    def to_dict(self) -> Dict[str, Any]:
        """
        Serializable view of the job.

        The callback and the cancellation token are not serializable and
        are left out.
        """
        with self._lock.read():
            return {
                'schedule_str': self._expression,
                'schedule': self._schedule.to_dict(),
                'blocking': self._blocking,
                'timezone': timezone_name(self._timezone),
                'state': self._state.value,
            }

    def to_json(self, **kwargs) -> str:
        return json.dumps(self.to_dict(), **kwargs)

    def __repr__(self):
        return f"Job(expression={self._expression!r}, state={self.state.value})"


def schedule_job(expression: str) -> Job:
    """
    Create a Job for a cron expression.

    Raises:
        InvalidScheduleError: If the expression is malformed
    """
    return Job(expression)
