# musicdash/services/scheduler.py
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable


def monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


def epoch_ms() -> int:
    return int(time.time() * 1000)


class Scheduler(ABC):
    """Runs callbacks later. `call_later` returns a handle with `cancel()`."""

    @abstractmethod
    def call_later(self, delay_seconds: float, fn: Callable[[], None]):
        pass


class ThreadingScheduler(Scheduler):
    def call_later(self, delay_seconds: float, fn: Callable[[], None]):
        timer = threading.Timer(max(0.0, delay_seconds), fn)
        timer.daemon = True
        timer.start()
        return timer
