"""Timer abstraction used by the activation protocol and the window manager.

All callbacks run on the GUI thread. Cancelling a handle after it fired is a no-op.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable


class TimerHandle(ABC):
    @abstractmethod
    def cancel(self) -> None:
        """Prevent the callback from running if it has not run yet."""


class Scheduler(ABC):
    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run `callback` once after `delay` seconds."""
