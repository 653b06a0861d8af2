"""Tables, ages and log lines for the terminal"""
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from davit.core.colors import Colors
from davit.deploy.models import LogEvent, LogKind, LogSide


def format_table(rows: List[List[str]], headers: Optional[List[str]] = None) -> str:
    """
    Left-aligned columns two spaces apart, a dashed rule under the headers

        >>> print(format_table([['v2', 'abc1234'], ['v1', 'def5678']], ['TAG', 'DIGEST']))
        TAG  DIGEST
        ------------
        v2   abc1234
        v1   def5678
    """
    if not rows:
        return ""

    table = [[str(cell) for cell in row] for row in ([headers] if headers else []) + rows]
    widths = [max(len(row[i]) for row in table) for i in range(len(table[0]))]
    lines = ['  '.join(cell.ljust(w) for cell, w in zip(row, widths)).rstrip() for row in table]
    if headers:
        lines.insert(1, '-' * (sum(widths) + 2 * (len(widths) - 1)))
    return '\n'.join(lines) + '\n'


def format_age(td: timedelta) -> str:
    """
    Coarsest non-zero unit, as "<n>d ago", "<n>h ago" or "<n>m ago"

        >>> format_age(timedelta(days=2, hours=3))
        '2d ago'
        >>> format_age(timedelta(seconds=45))
        'just now'
    """
    seconds = int(td.total_seconds())
    for unit, size in (("d", 86400), ("h", 3600), ("m", 60)):
        if seconds >= size:
            return f"{seconds // size}{unit} ago"
    return "just now"


def format_since(moment: datetime, now: Optional[datetime] = None) -> str:
    """Age of an aware timestamp relative to now"""
    now = now or datetime.now(timezone.utc)
    return format_age(now - moment)


def short_pod_id(pod: str) -> str:
    """
    Last dash-separated segment of a pod name

    Examples:
        >>> short_pod_id("payment-service-7d9f8-x2k4q")
        'x2k4q'
    """
    return pod.rsplit('-', 1)[-1]


def short_time(timestamp: Optional[str]) -> str:
    """
    HH:MM:SS part of an ISO timestamp

    Examples:
        >>> short_time("2024-01-02T03:04:05.123Z")
        '03:04:05'
    """
    if not timestamp:
        return ""
    clock = timestamp.split('T')[-1]
    return clock.split('.')[0].rstrip('Z')


def level_color(level: Optional[str], line: str = "") -> str:
    """Pick a color for a log line from its level"""
    text = level or line
    if "ERROR" in text or "FATAL" in text or "CRITICAL" in text:
        return Colors.RED
    if "WARN" in text:
        return Colors.YELLOW
    return ""


def format_log_event(event: LogEvent, color: bool = True) -> str:
    """
    Render a log event as `[pod-suffix] HH:MM:SS LEVEL message`

    Markers (dropped lines, closed streams, errors) render in brackets.
    """
    pod_id = short_pod_id(event.pod)

    if event.kind is LogKind.DROPPED:
        text = f"[{pod_id}] ... {event.dropped} line(s) dropped ..."
    elif event.kind is LogKind.CLOSED:
        text = f"[{pod_id}] -- log stream closed --"
    elif event.kind is LogKind.ERROR:
        text = f"[{pod_id}] ERROR {event.message}"
    else:
        ts = short_time(event.timestamp)
        ts = f"{ts} " if ts else ""
        text = f"[{pod_id}] {ts}{event.level or 'INFO'} {event.message}"

    if not color:
        return text

    side_color = Colors.GREEN if event.side is LogSide.NEW else Colors.DIM
    if event.kind is LogKind.ERROR:
        tint = Colors.RED
    elif event.kind is LogKind.LINE:
        tint = level_color(event.level, event.message) or side_color
    else:
        tint = Colors.YELLOW
    return f"{tint}{text}{Colors.RESET}"
