"""
Cancellable scope for a single drift run.
"""

import threading
import time
from typing import Optional

from .errors import RunCancelledError


class RunContext:
    """
    Cancellation and deadline shared by every worker of a run.

    Blocking waits go through ``wait`` so that cancellation wakes them
    immediately. A child context is cancelled with its parent but can also
    be cancelled on its own.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        parent: Optional["RunContext"] = None,
    ) -> None:
        self._event = threading.Event()
        self._parent = parent
        self._deadline = time.monotonic() + timeout if timeout is not None else None
        self._reason = "run cancelled"

    def child(self) -> "RunContext":
        return RunContext(parent=self)

    def cancel(self, reason: str = "run cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def reason(self) -> str:
        if self._parent is not None and self._parent.cancelled:
            return self._parent.reason
        if self._deadline is not None and time.monotonic() >= self._deadline:
            return "run deadline exceeded"
        return self._reason

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self.cancel("run deadline exceeded")
            return True
        return self._parent is not None and self._parent.cancelled

    def remaining(self) -> Optional[float]:
        """Seconds until the nearest deadline, or None if there is none."""
        own = None if self._deadline is None else max(0.0, self._deadline - time.monotonic())
        inherited = self._parent.remaining() if self._parent is not None else None
        if own is None:
            return inherited
        if inherited is None:
            return own
        return min(own, inherited)

    def check(self) -> None:
        """Raises RunCancelledError if the context is done."""
        if self.cancelled:
            raise RunCancelledError(self.reason)

    def wait(self, seconds: float) -> bool:
        """
        Sleeps up to ``seconds``, returning early on cancellation.

        Returns:
            True if the context was cancelled while waiting
        """
        end = time.monotonic() + max(0.0, seconds)
        while not self.cancelled:
            left = end - time.monotonic()
            if left <= 0:
                return False
            # Parent cancellation does not set our event, so poll in slices.
            self._event.wait(min(left, 0.1))
        return True
