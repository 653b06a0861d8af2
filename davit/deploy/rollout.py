"""
Rollout state machine

    Applying -> Watching -> Succeeded | Failed | Aborted

Only the controller mutates RolloutState. The cluster watch and the log
readers run in their own threads and only publish into queues that the
controller drains between suspension points.
"""
import queue
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, Dict, List, Optional

from davit.core.config import RolloutPolicy
from davit.core.errors import AuditError, ClusterError, DavitError
from davit.core.kubectl import ApplyResult
from davit.core.logger import Logger
from davit.deploy.logmux import LogMultiplexer
from davit.deploy.models import LogEvent, LogSide, PodEvent
from davit.deploy.revert import RevertManager, RevertToken
from davit.deploy.signals import AnyEvent
from davit.deploy.watch import WatchSource

TICK_SECONDS = 0.1


class RolloutPhase(IntEnum):
    APPLYING = 0
    WATCHING = 1
    SUCCEEDED = 2
    FAILED = 3
    ABORTED = 4

    @property
    def is_terminal(self) -> bool:
        return self >= RolloutPhase.SUCCEEDED


@dataclass
class PodStatus:
    phase: str
    ready: bool = False
    reason: Optional[str] = None
    terminating: bool = False
    gone: bool = False

    @property
    def display(self) -> str:
        if self.gone:
            return "Gone"
        if self.terminating:
            return "Terminating"
        if self.reason:
            return self.reason
        if self.ready:
            return "Ready"
        return self.phase


@dataclass
class RolloutState:
    phase: RolloutPhase = RolloutPhase.APPLYING
    new_pods: Dict[str, PodStatus] = field(default_factory=dict)
    old_pods: Dict[str, PodStatus] = field(default_factory=dict)
    old_logs: deque = field(default_factory=lambda: deque(maxlen=100))
    new_logs: deque = field(default_factory=lambda: deque(maxlen=100))
    history: List[RolloutPhase] = field(default_factory=lambda: [RolloutPhase.APPLYING])
    error: Optional[DavitError] = None
    audit_error: Optional[AuditError] = None

    def pods(self, side: LogSide) -> Dict[str, PodStatus]:
        return self.new_pods if side is LogSide.NEW else self.old_pods

    def logs(self, side: LogSide) -> deque:
        return self.new_logs if side is LogSide.NEW else self.old_logs


class RolloutListener:
    """Receives progress from the controller's thread; override what you need"""

    def phase_changed(self, state: RolloutState):
        pass

    def pod_changed(self, side: LogSide, pod: str, status: PodStatus):
        pass

    def log(self, event: LogEvent):
        pass


class RolloutController:
    """Drives one rollout from apply to a verdict"""

    def __init__(self, apply: Callable[[], ApplyResult], watch_source: WatchSource,
                 target_image: str, policy: RolloutPolicy,
                 revert_manager: RevertManager, token: RevertToken,
                 finalize: Optional[Callable[[], None]] = None,
                 log_mux: Optional[LogMultiplexer] = None,
                 expected_replicas: int = 1,
                 cancel: Optional[threading.Event] = None,
                 listener: Optional[RolloutListener] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.apply = apply
        self.watch_source = watch_source
        self.target_image = target_image
        self.policy = policy
        self.revert_manager = revert_manager
        self.token = token
        self.finalize = finalize
        self.log_mux = log_mux
        self.expected_replicas = max(1, expected_replicas)
        self.cancel = cancel or threading.Event()
        self.listener = listener or RolloutListener()
        self.clock = clock

        self.state = RolloutState(
            old_logs=deque(maxlen=policy.log_history_lines),
            new_logs=deque(maxlen=policy.log_history_lines),
        )
        self._events: "queue.Queue[tuple[str, object]]" = queue.Queue()
        self._halt = threading.Event()
        self._watcher: Optional[threading.Thread] = None

    # ==================== transitions ====================

    def _transition(self, phase: RolloutPhase):
        current = self.state.phase
        if current.is_terminal or phase <= current:
            raise RuntimeError(f"Illegal rollout transition {current.name} -> {phase.name}")
        self.state.phase = phase
        self.state.history.append(phase)
        Logger.verbose_log(f"Rollout phase: {current.name} -> {phase.name}")
        self.listener.phase_changed(self.state)

    def _succeed(self):
        self._transition(RolloutPhase.SUCCEEDED)
        if self.finalize is None:
            return
        try:
            self.finalize()
        except AuditError as e:
            # The cluster already runs the new image; keep the file as is
            self.state.audit_error = e
            return
        self.revert_manager.discard(self.token)

    def _fail(self, phase: RolloutPhase, error: Optional[DavitError] = None):
        self.state.error = error
        self._transition(phase)
        # RevertError propagates: it is more severe than the failure itself
        self.revert_manager.restore(self.token)

    # ==================== main loop ====================

    def run(self) -> RolloutState:
        """Apply, watch, and settle on a terminal phase"""
        self.listener.phase_changed(self.state)

        result = self.apply()
        if not result.ok:
            self._fail(RolloutPhase.FAILED, ClusterError(f"kubectl apply failed: {result.error}"))
            return self.state

        if self.cancel.is_set():
            self._fail(RolloutPhase.ABORTED)
            return self.state

        self._transition(RolloutPhase.WATCHING)
        self._start_watch()

        deadline = self.clock() + self.policy.timeout_seconds
        try:
            while not self.state.phase.is_terminal:
                if self.cancel.is_set():
                    self._stop_streams()
                    self._fail(RolloutPhase.ABORTED)
                    break

                remaining = deadline - self.clock()
                if remaining <= 0:
                    self._stop_streams()
                    self._fail(RolloutPhase.FAILED, ClusterError(
                        f"Rollout did not finish within {self.policy.timeout_seconds:g}s"))
                    break

                try:
                    kind, payload = self._events.get(timeout=min(TICK_SECONDS, remaining))
                except queue.Empty:
                    pass
                else:
                    self._handle(kind, payload)

                self._drain_logs()
        finally:
            self._stop_streams()
            self._drain_logs()

        return self.state

    def _start_watch(self):
        stop = AnyEvent(self.cancel, self._halt)

        def pump():
            try:
                for event in self.watch_source(stop):
                    if stop.is_set():
                        return
                    self._events.put(("pod", event))
            except (ClusterError, OSError) as e:
                if not stop.is_set():
                    self._events.put(("error", ClusterError(str(e))))
                return
            if not stop.is_set():
                self._events.put(("error", ClusterError("Pod watch stream ended unexpectedly")))

        self._watcher = threading.Thread(target=pump, name="pod-watch", daemon=True)
        self._watcher.start()

    def _stop_streams(self):
        self._halt.set()
        if self.log_mux is not None:
            self.log_mux.close()
        if self._watcher is not None:
            self._watcher.join(1.0)

    def _handle(self, kind: str, payload):
        if kind == "error":
            self._stop_streams()
            self._fail(RolloutPhase.FAILED, payload)
            return
        self._on_pod(payload)

    # ==================== pod bookkeeping ====================

    def side_of(self, event: PodEvent) -> LogSide:
        return LogSide.NEW if event.image == self.target_image else LogSide.OLD

    def _on_pod(self, event: PodEvent):
        side = self.side_of(event)
        status = PodStatus(
            phase=event.phase,
            ready=event.ready and event.phase in self.policy.ready_phases,
            reason=event.reason,
            terminating=event.terminating,
            gone=event.deleted or (side is LogSide.OLD and event.phase in self.policy.gone_phases),
        )
        pods = self.state.pods(side)
        previous = pods.get(event.pod)
        pods[event.pod] = status
        if previous is None or previous.display != status.display:
            self.listener.pod_changed(side, event.pod, status)

        if self.log_mux is not None and event.phase == "Running" and not status.terminating:
            self.log_mux.attach(side, event.pod)

        if side is LogSide.NEW and not status.gone and self._crashed(event):
            self._stop_streams()
            self._fail(RolloutPhase.FAILED, ClusterError(
                f"New pod {event.pod} failed: {event.reason or event.phase}"))
            return

        if self._complete():
            self._stop_streams()
            self._succeed()

    def _crashed(self, event: PodEvent) -> bool:
        return (event.phase in self.policy.failed_phases
                or (event.reason is not None and event.reason in self.policy.crash_reasons))

    def _complete(self) -> bool:
        live_new = [s for s in self.state.new_pods.values() if not s.gone]
        ready_new = [s for s in live_new if s.ready]
        return (len(ready_new) >= self.expected_replicas
                and len(ready_new) == len(live_new)
                and all(s.gone for s in self.state.old_pods.values()))

    def _drain_logs(self):
        if self.log_mux is None:
            return
        for event in self.log_mux.poll():
            self.state.logs(event.side).append(event)
            self.listener.log(event)
