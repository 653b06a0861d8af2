"""Kubectl command wrapper"""
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .errors import ClusterError
from .logger import Logger


@dataclass(frozen=True)
class ApplyResult:
    ok: bool
    output: str = ""
    error: str = ""


class KubeCommand:
    """Execute kubectl commands against one cluster context"""

    def __init__(self, namespace: str = "default", context: Optional[str] = None, verbose: bool = False):
        self.namespace = namespace
        self.context = context
        self.verbose = verbose
        if verbose:
            Logger.verbose = True

    def build(self, cmd: List[str]) -> List[str]:
        full_cmd = ["kubectl"] + cmd

        if self.context:
            full_cmd.extend(["--context", self.context])

        return full_cmd

    def run(self, cmd: List[str], capture_output: bool = True, check: bool = True) -> subprocess.CompletedProcess:
        """Run kubectl command"""
        full_cmd = self.build(cmd)

        Logger.verbose_log(f"Running: {' '.join(full_cmd)}")

        try:
            return subprocess.run(
                full_cmd, capture_output=capture_output, text=True, check=check)
        except subprocess.CalledProcessError as e:
            raise ClusterError(
                f"kubectl {cmd[0]} failed: {(e.stderr or '').strip() or e}") from e
        except FileNotFoundError as e:
            raise ClusterError("kubectl not found. Is it installed and in PATH?") from e

    def stream(self, cmd: List[str]) -> subprocess.Popen:
        """Start a long-running kubectl command with line-buffered stdout"""
        full_cmd = self.build(cmd)

        Logger.verbose_log(f"Streaming: {' '.join(full_cmd)}")

        try:
            return subprocess.Popen(
                full_cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                bufsize=1,
            )
        except FileNotFoundError as e:
            raise ClusterError("kubectl not found. Is it installed and in PATH?") from e

    def apply(self, filepath: Path, namespace: Optional[str] = None) -> ApplyResult:
        """Apply a manifest file, capturing output instead of raising"""
        cmd = ["apply", "-f", str(filepath)]
        if namespace:
            cmd.extend(["-n", namespace])

        try:
            result = self.run(cmd, check=False)
        except ClusterError as e:
            return ApplyResult(ok=False, error=str(e))

        if result.returncode != 0:
            return ApplyResult(
                ok=False,
                output=result.stdout,
                error=result.stderr.strip() or f"kubectl apply exited with {result.returncode}",
            )
        return ApplyResult(ok=True, output=result.stdout)

    def watch_pods(self, selector: str, namespace: Optional[str] = None) -> subprocess.Popen:
        """Stream pod watch events as JSON objects"""
        return self.stream([
            "get", "pods",
            "-n", namespace or self.namespace,
            "-l", selector,
            "--watch", "--output-watch-events",
            "-o", "json",
        ])

    def follow_logs(self, pod: str, container: Optional[str] = None,
                    namespace: Optional[str] = None, tail: int = 10) -> subprocess.Popen:
        """Follow a pod's log stream"""
        cmd = ["logs", "-f", "--timestamps", f"--tail={tail}", "-n", namespace or self.namespace]
        if container:
            cmd.extend(["-c", container])
        cmd.append(pod)
        return self.stream(cmd)

    @staticmethod
    def get_current_context() -> str:
        """Get current kubectl context"""
        try:
            result = subprocess.run(
                ["kubectl", "config", "current-context"],
                capture_output=True, text=True, check=True
            )
            return result.stdout.strip()
        except (OSError, subprocess.CalledProcessError):
            return "unknown"
