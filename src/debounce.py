"""Cancellable timer and debouncer for query text."""
import asyncio
from typing import Any, Callable, Optional


def _loop_running() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


class DebounceTimer:
    """One-shot timer on the asyncio event loop that can be restarted or cancelled.

    Only one callback is ever pending; starting the timer again replaces it.
    """

    def __init__(self, delay: float, callback: Callable[[], None]):
        """Initialize the timer.

        Args:
            delay: Seconds to wait before firing
            callback: Called with no arguments when the timer fires
        """
        self.delay = delay
        self.callback = callback
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def start(self) -> None:
        """Start the timer, replacing any pending one.

        Raises:
            RuntimeError: If called outside a running event loop
        """
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay, self._fire)

    def reset(self) -> None:
        """Restart the countdown from zero."""
        self.start()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self.callback()


class Debouncer:
    """Delivers only the last value of a burst of updates, after a quiet period."""

    def __init__(self, delay_ms: int, on_settle: Callable[[Any], None]):
        """Initialize the debouncer.

        Args:
            delay_ms: Quiet period in milliseconds. 0 delivers every value
                immediately, without touching the event loop.
            on_settle: Receives the settled value
        """
        self.delay_ms = delay_ms
        self.on_settle = on_settle
        self._value: Any = None
        self._timer = DebounceTimer(delay_ms / 1000.0, self._deliver)

    @property
    def pending(self) -> bool:
        return self._timer.pending

    def push(self, value: Any) -> None:
        """Record a new value and restart the quiet period.

        Outside a running event loop there is nothing to wait on, so the
        value is delivered immediately.
        """
        self._value = value
        if self.delay_ms <= 0 or not _loop_running():
            self._timer.cancel()
            self._deliver()
            return
        self._timer.reset()

    def flush(self) -> None:
        """Deliver the pending value now, if there is one."""
        if self._timer.pending:
            self._timer.cancel()
            self._deliver()

    def cancel(self) -> None:
        """Drop the pending value without delivering it."""
        self._timer.cancel()

    def _deliver(self) -> None:
        self.on_settle(self._value)
