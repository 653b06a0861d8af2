"""kubectl-backed streams for pod watch events and pod logs"""
import json
import subprocess
import threading
from typing import Callable, Iterator, Optional

from davit.core.errors import ClusterError
from davit.core.kubectl import KubeCommand
from davit.core.logger import Logger
from davit.deploy.models import PodEvent
from davit.utils.parsers import parse_pod_event

# A watch source yields PodEvents until its cancel flag is set. Ending on
# its own, or raising, is a cluster failure.
WatchSource = Callable[[threading.Event], Iterator[PodEvent]]


def _terminate_on(cancel, proc: subprocess.Popen):
    """Kill proc as soon as cancel is set, so blocked reads return"""
    def watchdog():
        while proc.poll() is None:
            if cancel.wait(0.2):
                proc.terminate()
                return

    thread = threading.Thread(target=watchdog, name="kubectl-watchdog", daemon=True)
    thread.start()
    return thread


def _finish(proc: subprocess.Popen, what: str, cancel) -> None:
    """Reap proc and turn an unexpected exit into a ClusterError"""
    try:
        proc.wait(timeout=5)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait()

    if cancel.is_set():
        return

    stderr = proc.stderr.read().strip() if proc.stderr else ""
    if proc.returncode != 0:
        raise ClusterError(f"{what} failed ({proc.returncode}): {stderr or 'no output'}")


def iter_json_objects(lines) -> Iterator[dict]:
    """Split a stream of concatenated (pretty-printed) JSON objects"""
    decoder = json.JSONDecoder()
    buffer = ""
    for line in lines:
        buffer += line
        while True:
            stripped = buffer.lstrip()
            if not stripped:
                buffer = ""
                break
            try:
                obj, end = decoder.raw_decode(stripped)
            except json.JSONDecodeError:
                buffer = stripped
                break
            buffer = stripped[end:]
            if isinstance(obj, dict):
                yield obj


def kubectl_pod_watch(kube: KubeCommand, selector: str, container: str,
                      namespace: Optional[str] = None) -> WatchSource:
    """Watch source for pods matching selector"""
    def watch(cancel) -> Iterator[PodEvent]:
        proc = kube.watch_pods(selector, namespace)
        _terminate_on(cancel, proc)
        try:
            for obj in iter_json_objects(proc.stdout):
                if cancel.is_set():
                    return
                if obj.get("type") == "ERROR":
                    message = (obj.get("object") or {}).get("message", "watch error")
                    raise ClusterError(f"Pod watch error: {message}")
                event = parse_pod_event(obj, container)
                if event is not None:
                    yield event
        finally:
            if proc.poll() is None and cancel.is_set():
                proc.terminate()
        _finish(proc, "kubectl get pods --watch", cancel)
        if not cancel.is_set():
            raise ClusterError("Pod watch stream ended unexpectedly")

    return watch


def kubectl_log_source(kube: KubeCommand, container: str,
                       namespace: Optional[str] = None, tail: int = 10):
    """Log source following one pod's container"""
    def follow(pod: str, cancel) -> Iterator[str]:
        proc = kube.follow_logs(pod, container, namespace, tail)
        _terminate_on(cancel, proc)
        for line in proc.stdout:
            if cancel.is_set():
                break
            yield line.rstrip("\n")
        _finish(proc, f"kubectl logs {pod}", cancel)
        Logger.verbose_log(f"Log stream for {pod} ended")

    return follow
