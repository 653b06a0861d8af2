"""Line-oriented live view of a rollout"""
import sys
from typing import TextIO

from davit.core.colors import Colors
from davit.deploy.models import DeploymentIntent, LogEvent, LogSide
from davit.deploy.rollout import PodStatus, RolloutListener, RolloutPhase, RolloutState
from davit.utils.formatters import format_log_event, format_table

PHASE_COLORS = {
    RolloutPhase.APPLYING: "BLUE",
    RolloutPhase.WATCHING: "CYAN",
    RolloutPhase.SUCCEEDED: "GREEN",
    RolloutPhase.FAILED: "RED",
    RolloutPhase.ABORTED: "YELLOW",
}


class RolloutReporter(RolloutListener):
    """Prints phase changes, pod status and both log streams as they arrive"""

    def __init__(self, intent: DeploymentIntent, show_logs: bool = True, out: TextIO = None):
        self.intent = intent
        self.show_logs = show_logs
        self.out = out or sys.stdout

    def emit(self, line: str):
        print(line, file=self.out, flush=True)

    def header(self):
        self.emit(
            f"{Colors.BOLD}Davit Rollout:{Colors.RESET} {self.intent.service.name} | "
            f"Env: {self.intent.environment.name} | Tag: {self.intent.image.tag} "
            f"(Ctrl-C to abort and revert)")

    def phase_changed(self, state: RolloutState):
        color = getattr(Colors, PHASE_COLORS[state.phase])
        self.emit(f"{color}▶ {state.phase.name}{Colors.RESET}")

    def pod_changed(self, side: LogSide, pod: str, status: PodStatus):
        if side is LogSide.NEW:
            label = f"{Colors.GREEN}{Colors.BOLD}[NEW]{Colors.RESET}"
        else:
            label = f"{Colors.DIM}[OLD]{Colors.RESET}"
        self.emit(f"{label} {pod} -> {status.display}")

    def log(self, event: LogEvent):
        if not self.show_logs:
            return
        prefix = "NEW │" if event.side is LogSide.NEW else "OLD │"
        self.emit(f"{prefix} {format_log_event(event)}")

    def summary(self, state: RolloutState):
        rows = []
        for side in (LogSide.OLD, LogSide.NEW):
            for pod, status in sorted(state.pods(side).items()):
                rows.append([side.value.upper(), pod, status.display])
        if rows:
            self.emit(format_table(rows, ["SIDE", "POD", "STATUS"]))
