"""Cooperative cancellation for the batch loop.

Pause and stop are signals, not exceptions: the batch loop and each fetch
worker check the token at their suspension points and wind down cleanly,
letting in-flight fetches finish.
"""

import asyncio
import contextlib
from enum import Enum
from typing import List, Optional


class ControlSignal(str, Enum):
    """Signal delivered to a running batch loop."""

    PAUSE = "pause"
    STOP = "stop"


class CancellationToken:
    """Carries a pause/stop request from the controller to running work.

    A child token observes its parent's signal as well as its own, so a
    batch can abort its own workers without touching the job-level token.
    """

    def __init__(self, parent: Optional["CancellationToken"] = None) -> None:
        self._parent = parent
        self._signal: Optional[ControlSignal] = None
        self._event = asyncio.Event()

    @property
    def signal(self) -> Optional[ControlSignal]:
        """The effective signal; STOP wins over PAUSE."""
        own = self._signal
        inherited = self._parent.signal if self._parent else None
        if ControlSignal.STOP in (own, inherited):
            return ControlSignal.STOP
        return own or inherited

    @property
    def cancelled(self) -> bool:
        return self.signal is not None

    def request(self, signal: ControlSignal) -> None:
        """Deliver a signal. A PAUSE never downgrades an earlier STOP."""
        if self._signal == ControlSignal.STOP:
            return
        self._signal = signal
        self._event.set()

    def child(self) -> "CancellationToken":
        return CancellationToken(parent=self)

    def _events(self) -> List[asyncio.Event]:
        events = [self._event]
        if self._parent is not None:
            events.extend(self._parent._events())
        return events

    async def sleep(self, seconds: float) -> bool:
        """Sleep up to ``seconds``, waking early on any signal.

        Returns:
            True if the sleep was interrupted by a signal.
        """
        if self.cancelled:
            return True
        if seconds <= 0:
            return False

        waiters = [asyncio.ensure_future(event.wait()) for event in self._events()]
        try:
            done, _ = await asyncio.wait(
                waiters, timeout=seconds, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for waiter in waiters:
                if not waiter.done():
                    waiter.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await waiter
        return bool(done) or self.cancelled
