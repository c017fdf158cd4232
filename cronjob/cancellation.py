"""
Cancellation tokens.

A CancellationToken is a one-shot signal used to stop work cooperatively.
Tokens form a tree: a child derived from a parent is cancelled whenever the
parent is, but cancelling a child leaves the parent alone. A token may also
carry a deadline, after which it cancels itself.

    root = CancellationToken()
    child = root.with_timeout(5.0)

    child.wait(1.0)     # False: still live after one second
    root.cancel()
    child.cancelled     # True
    child.error         # CancelledError()
"""

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Optional, Set

logger = logging.getLogger(__name__)


class CancelledError(Exception):
    """The token was cancelled explicitly."""
    pass


class DeadlineExceeded(CancelledError):
    """The token's deadline passed before it was cancelled."""
    pass


class CancellationToken:
    """
    Thread-safe, single-shot cancellation signal with parent/child links.

    Once cancelled a token stays cancelled; there is no way to reset it.
    """

    def __init__(
        self,
        parent: Optional['CancellationToken'] = None,
        deadline: Optional[datetime] = None
    ):
        """
        Create a token.

        Args:
            parent: Token whose cancellation propagates to this one
            deadline: Timezone-aware time at which this token cancels itself.
                     Clamped to the parent's deadline if that is earlier.
        """
        if deadline is not None and deadline.tzinfo is None:
            raise ValueError("deadline must be a timezone-aware datetime")

        self._event = threading.Event()
        self._lock = threading.Lock()
        self._children: Set['CancellationToken'] = set()
        self._error: Optional[CancelledError] = None
        self._timer: Optional[threading.Timer] = None
        self._parent = parent

        if parent is not None and parent.deadline is not None:
            if deadline is None or parent.deadline < deadline:
                deadline = parent.deadline
        self._deadline = deadline

        if parent is not None:
            parent._add_child(self)

        if deadline is not None and not self.cancelled:
            self._arm_timer(deadline)

    @classmethod
    def background(cls) -> 'CancellationToken':
        """A root token that is never cancelled unless you cancel it."""
        return cls()

    # ------------------------------------------------------------------
    # Derivation
    # ------------------------------------------------------------------

    def child(self) -> 'CancellationToken':
        """Derive a token cancelled together with this one."""
        return CancellationToken(parent=self)

    def with_deadline(self, deadline: datetime) -> 'CancellationToken':
        """Derive a token that also cancels itself at ``deadline``."""
        return CancellationToken(parent=self, deadline=deadline)

    def with_timeout(self, seconds: float) -> 'CancellationToken':
        """Derive a token that also cancels itself after ``seconds``."""
        return self.with_deadline(datetime.now(timezone.utc) + timedelta(seconds=seconds))

    def _add_child(self, child: 'CancellationToken'):
        with self._lock:
            if self._error is None:
                self._children.add(child)
                return
            error = self._error
        # Parent already cancelled: the child is born cancelled
        child._cancel(error)

    def _remove_child(self, child: 'CancellationToken'):
        with self._lock:
            self._children.discard(child)

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def _arm_timer(self, deadline: datetime):
        delay = (deadline - datetime.now(timezone.utc)).total_seconds()
        if delay <= 0:
            self._cancel(DeadlineExceeded(f"deadline {deadline.isoformat()} exceeded"))
            return

        timer = threading.Timer(
            delay,
            self._cancel,
            args=(DeadlineExceeded(f"deadline {deadline.isoformat()} exceeded"),)
        )
        timer.daemon = True
        with self._lock:
            if self._error is not None:
                return
            self._timer = timer
        timer.start()

    def _cancel(self, error: CancelledError):
        with self._lock:
            if self._error is not None:
                return
            self._error = error
            children = list(self._children)
            self._children.clear()
            timer = self._timer
            self._timer = None
            self._event.set()

        if timer is not None:
            timer.cancel()

        for child in children:
            child._cancel(error)

        if self._parent is not None:
            self._parent._remove_child(self)

        logger.debug(f"Cancellation token cancelled: {error!r}")

    def cancel(self):
        """Cancel this token and every token derived from it. Idempotent."""
        self._cancel(CancelledError("cancelled"))

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def error(self) -> Optional[CancelledError]:
        """Why the token was cancelled, or None while it is live."""
        with self._lock:
            return self._error

    @property
    def deadline(self) -> Optional[datetime]:
        return self._deadline

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the token is cancelled or ``timeout`` seconds pass.

        Returns:
            True if the token was cancelled, False if the timeout elapsed
        """
        return self._event.wait(timeout)

    def raise_if_cancelled(self):
        """Raise the cancellation error if the token has been cancelled."""
        error = self.error
        if error is not None:
            raise error

    def __repr__(self):
        state = 'live' if self._error is None else type(self._error).__name__
        return f"CancellationToken({state}, deadline={self._deadline})"
