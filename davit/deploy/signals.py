"""Cancellation plumbing shared by the rollout threads"""
import signal
import threading
import time
from contextlib import contextmanager
from typing import Optional


class AnyEvent:
    """Event-like view that is set when any underlying event is"""

    def __init__(self, *events: threading.Event):
        self.events = events

    def is_set(self) -> bool:
        return any(e.is_set() for e in self.events)

    def wait(self, timeout: Optional[float] = None) -> bool:
        deadline = None if timeout is None else time.monotonic() + timeout
        while not self.is_set():
            step = 0.1 if deadline is None else min(0.1, deadline - time.monotonic())
            if step <= 0:
                return False
            self.events[-1].wait(step)
        return True


@contextmanager
def interrupt_sets(event: threading.Event):
    """Turn SIGINT into event.set() for the duration of the block"""
    if threading.current_thread() is not threading.main_thread():
        yield event
        return

    previous = signal.signal(signal.SIGINT, lambda signum, frame: event.set())
    try:
        yield event
    finally:
        signal.signal(signal.SIGINT, previous)
