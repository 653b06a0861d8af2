"""Parsing utilities for images, pod events and log lines"""
import json
import re
from datetime import datetime
from typing import Tuple, Optional, Dict, Any

from davit.deploy.models import PodEvent

# Prefix added by `kubectl logs --timestamps`
KUBECTL_TIMESTAMP = re.compile(
    r"^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:\d{2})) ")


def split_image_reference(reference: str) -> Tuple[str, Optional[str], Optional[str]]:
    """
    Split an image reference into (path, tag, digest)

    A ':' only starts a tag when it comes after the last '/', so registry
    ports survive.

    Examples:
        >>> split_image_reference("gcr.io/proj/app:v1")
        ('gcr.io/proj/app', 'v1', None)
        >>> split_image_reference("localhost:5000/app@sha256:abc")
        ('localhost:5000/app', None, 'sha256:abc')
    """
    digest = None
    if '@' in reference:
        reference, digest = reference.split('@', 1)

    tag = None
    slash = reference.rfind('/')
    colon = reference.rfind(':')
    if colon > slash:
        reference, tag = reference[:colon], reference[colon + 1:]

    return reference, tag, digest


def image_base(reference: str) -> str:
    """
    Strip tag and digest from an image reference

    Examples:
        >>> image_base("gcr.io/proj/app:v1")
        'gcr.io/proj/app'
    """
    return split_image_reference(reference)[0]


def short_digest(name: str) -> str:
    """
    Short form of the sha256 digest in a registry image name

    Examples:
        >>> short_digest("gcr.io/p/app@sha256:0123456789abcdef")
        '0123456'
        >>> short_digest("gcr.io/p/app")
        'unknown'
    """
    _, _, digest = split_image_reference(name)
    if digest and digest.startswith("sha256:") and len(digest) >= len("sha256:") + 7:
        return digest[len("sha256:"):len("sha256:") + 7]
    return "unknown"


def parse_timestamp(value: str) -> datetime:
    """
    Parse an RFC 3339 timestamp, tolerating 'Z' and nanosecond fractions

    Examples:
        >>> parse_timestamp("2024-01-02T03:04:05.123456789Z").isoformat()
        '2024-01-02T03:04:05.123456+00:00'
    """
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'

    # fromisoformat accepts at most 6 fractional digits
    if '.' in text:
        head, rest = text.split('.', 1)
        digits = len(rest) - len(rest.lstrip('0123456789'))
        text = f"{head}.{rest[:min(digits, 6)].ljust(6, '0')}{rest[digits:]}"

    return datetime.fromisoformat(text)


def container_image(pod_spec: Dict[str, Any], container: str) -> Optional[str]:
    """Image of the named container in a pod spec"""
    for entry in pod_spec.get("containers") or []:
        if entry.get("name") == container:
            return entry.get("image")
    return None


def parse_pod_event(event: Dict[str, Any], container: str) -> Optional[PodEvent]:
    """
    Convert one `kubectl get pods --watch --output-watch-events -o json`
    object into a PodEvent

    Returns None for objects that are not pods (e.g. bookmarks).
    """
    kind = event.get("type", "ADDED")
    obj = event.get("object", event)
    if obj.get("kind", "Pod") != "Pod":
        return None

    metadata = obj.get("metadata") or {}
    name = metadata.get("name")
    if not name:
        return None

    status = obj.get("status") or {}
    phase = status.get("phase", "Unknown")

    ready = False
    reason = None
    for cs in status.get("containerStatuses") or []:
        if cs.get("name") != container:
            continue
        ready = bool(cs.get("ready"))
        state = cs.get("state") or {}
        waiting = state.get("waiting") or {}
        terminated = state.get("terminated") or {}
        reason = waiting.get("reason") or terminated.get("reason")
        if not reason:
            last = (cs.get("lastState") or {}).get("terminated") or {}
            if last.get("reason") == "OOMKilled":
                reason = "OOMKilled"

    return PodEvent(
        pod=name,
        kind=kind,
        phase=phase,
        ready=ready,
        reason=reason,
        image=container_image(obj.get("spec") or {}, container),
        terminating=bool(metadata.get("deletionTimestamp")),
    )


def parse_log_line(raw: str) -> Tuple[Optional[str], Optional[str], str]:
    """
    Extract (level, timestamp, message) from a log line

    A leading RFC 3339 stamp from `kubectl logs --timestamps` becomes the
    timestamp; a timestamp inside a JSON payload takes precedence over it.
    Structured JSON lines are understood in the common shapes: GKE uses
    'severity', others 'level'; 'timestamp' or 'time'; 'message', 'msg',
    'textPayload' or 'fields.message'. Anything else is returned raw.

    Examples:
        >>> parse_log_line('{"severity": "warning", "message": "slow"}')
        ('WARNING', None, 'slow')
        >>> parse_log_line("2024-01-02T03:04:05.1Z plain text")
        (None, '2024-01-02T03:04:05.1Z', 'plain text')
    """
    content = raw.strip()
    stamp = None
    match = KUBECTL_TIMESTAMP.match(content)
    if match:
        stamp = match.group(1)
        content = content[match.end():]

    if not content.startswith('{'):
        return None, stamp, content

    try:
        payload = json.loads(content)
    except ValueError:
        return None, stamp, content

    if not isinstance(payload, dict):
        return None, stamp, content

    level = payload.get("severity") or payload.get("level")
    level = level.upper() if isinstance(level, str) else None

    timestamp = payload.get("timestamp") or payload.get("time")
    timestamp = timestamp if isinstance(timestamp, str) else stamp

    fields = payload.get("fields")
    message = (payload.get("message")
               or payload.get("msg")
               or payload.get("textPayload")
               or (fields.get("message") if isinstance(fields, dict) else None))

    return level, timestamp, message if isinstance(message, str) else content
