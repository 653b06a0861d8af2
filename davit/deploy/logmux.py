"""
Concurrent log streaming from the outgoing and incoming pod

Each side runs its own reader thread that pushes into a bounded per-side
queue. When the consumer falls behind, the reader evicts the oldest queued
line instead of blocking. Every line carries a per-side sequence number,
so the consumer sees eviction as a gap and reports it with exactly one
``dropped`` marker per gap.
"""
import itertools
import queue
import threading
from dataclasses import replace
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Set

from davit.core.errors import ClusterError
from davit.core.logger import Logger
from davit.deploy.models import LogEvent, LogKind, LogSide
from davit.deploy.signals import AnyEvent
from davit.utils.parsers import parse_log_line

# A source turns a pod name into an iterable of raw lines; it must stop
# yielding once cancel is set.
LogSource = Callable[[str, threading.Event], Iterable[str]]


class LogReader(threading.Thread):
    """Follows one pod's log and feeds a bounded queue"""

    def __init__(self, side: LogSide, pod: str, source: LogSource,
                 arrivals: Iterator[int], capacity: int, cancel: threading.Event):
        super().__init__(name=f"log-{side.value}-{pod}", daemon=True)
        self.side = side
        self.pod = pod
        self.source = source
        self.arrivals = arrivals
        self.cancel = cancel
        self.buffer: "queue.Queue[tuple[int, LogEvent]]" = queue.Queue(maxsize=capacity)
        self.dropped = 0
        # CLOSED or ERROR; kept outside the buffer so it never evicts a line
        self.final: Optional[LogEvent] = None
        self._seq = itertools.count()

    def finish(self, kind: LogKind, message: str = ""):
        self.final = LogEvent(self.side, self.pod, kind, message=message,
                              arrival=next(self.arrivals))

    def offer(self, event: LogEvent):
        """Queue an event, evicting the oldest one when full"""
        item = (next(self._seq), replace(event, arrival=next(self.arrivals)))
        while True:
            try:
                self.buffer.put_nowait(item)
                return
            except queue.Full:
                try:
                    self.buffer.get_nowait()
                    self.dropped += 1
                except queue.Empty:
                    pass

    def run(self):
        try:
            for raw in self.source(self.pod, self.cancel):
                if self.cancel.is_set():
                    return
                level, timestamp, message = parse_log_line(raw)
                self.offer(LogEvent(self.side, self.pod, LogKind.LINE,
                                    message=message, level=level, timestamp=timestamp))
        except ClusterError as e:
            if not self.cancel.is_set():
                self.finish(LogKind.ERROR, str(e))
            return
        if not self.cancel.is_set():
            self.finish(LogKind.CLOSED)


class LogMultiplexer:
    """Two independent readers merged into one arrival-ordered stream"""

    def __init__(self, source: LogSource, capacity: int = 200,
                 cancel: Optional[threading.Event] = None):
        self.source = source
        self.capacity = capacity
        self.cancel = cancel or threading.Event()
        self._stop = threading.Event()
        self._arrivals = itertools.count(1)
        self.readers: Dict[LogSide, LogReader] = {}
        self._expected: Dict[LogSide, int] = {}
        self._finished: Set[LogSide] = set()

    def attach(self, side: LogSide, pod: str) -> bool:
        """Start the reader for one side; a side is only ever attached once"""
        if side in self.readers:
            return False

        stop = AnyEvent(self.cancel, self._stop)
        reader = LogReader(side, pod, self.source, self._arrivals, self.capacity, stop)
        self.readers[side] = reader
        self._expected[side] = 0
        Logger.verbose_log(f"Following {side.value} pod logs: {pod}")
        reader.start()
        return True

    def poll(self) -> List[LogEvent]:
        """Drain both sides without blocking, in arrival order"""
        events = []
        for side, reader in self.readers.items():
            # Read before draining: every line precedes the marker
            final = reader.final
            while True:
                try:
                    seq, event = reader.buffer.get_nowait()
                except queue.Empty:
                    break
                expected = self._expected[side]
                if seq > expected:
                    events.append(LogEvent(side, reader.pod, LogKind.DROPPED,
                                           dropped=seq - expected,
                                           arrival=event.arrival))
                self._expected[side] = seq + 1
                events.append(event)
            if final is not None and side not in self._finished:
                self._finished.add(side)
                events.append(final)

        # Markers sort just ahead of the line that revealed the gap
        events.sort(key=lambda e: (e.arrival, e.kind is not LogKind.DROPPED))
        return events

    def close(self, timeout: float = 1.0):
        """Signal both readers to stop and wait briefly for them"""
        self._stop.set()
        for reader in self.readers.values():
            reader.join(timeout)

