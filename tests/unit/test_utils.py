"""Unit tests for parsing, formatting and validation helpers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from davit.deploy.models import LogEvent, LogKind, LogSide
from davit.deploy.watch import iter_json_objects
from davit.utils.formatters import format_age, format_log_event, format_since, format_table
from davit.utils.parsers import (parse_log_line, parse_pod_event, parse_timestamp,
                                 short_digest, split_image_reference)
from davit.utils.validators import (validate_image_tag, validate_label_selector,
                                    validate_resource_name)


def pod_object(name: str = "api-7d9f8-x2k4q", phase: str = "Running", **container_status) -> dict:
    status = {"name": "api", "ready": True, "state": {"running": {}}}
    status.update(container_status)
    return {
        "kind": "Pod",
        "metadata": {"name": name},
        "spec": {"containers": [
            {"name": "api", "image": "gcr.io/p/api:v2"},
            {"name": "proxy", "image": "gcr.io/p/proxy:1"},
        ]},
        "status": {"phase": phase, "containerStatuses": [status]},
    }


class TestImageReferences:
    @pytest.mark.parametrize(
        ("reference", "expected"),
        [
            ("gcr.io/p/api:v1", ("gcr.io/p/api", "v1", None)),
            ("gcr.io/p/api", ("gcr.io/p/api", None, None)),
            ("localhost:5000/api:v1", ("localhost:5000/api", "v1", None)),
            ("localhost:5000/api", ("localhost:5000/api", None, None)),
            ("gcr.io/p/api:v1@sha256:abc", ("gcr.io/p/api", "v1", "sha256:abc")),
        ],
    )
    def test_split(self, reference: str, expected: tuple) -> None:
        assert split_image_reference(reference) == expected

    def test_short_digest(self) -> None:
        assert short_digest("gcr.io/p/api@sha256:0123456789abcdef") == "0123456"
        assert short_digest("gcr.io/p/api@sha256:01") == "unknown"
        assert short_digest("") == "unknown"


class TestParsePodEvent:
    """Tests for watch event conversion."""

    def test_running_ready(self) -> None:
        event = parse_pod_event({"type": "MODIFIED", "object": pod_object()}, "api")

        assert event.pod == "api-7d9f8-x2k4q"
        assert event.kind == "MODIFIED"
        assert event.phase == "Running"
        assert event.ready is True
        assert event.reason is None
        assert event.image == "gcr.io/p/api:v2"
        assert not event.terminating

    def test_waiting_reason(self) -> None:
        obj = pod_object(ready=False, state={"waiting": {"reason": "CrashLoopBackOff"}})

        event = parse_pod_event({"type": "MODIFIED", "object": obj}, "api")

        assert event.reason == "CrashLoopBackOff"
        assert event.ready is False

    def test_oom_killed_last_state(self) -> None:
        obj = pod_object(lastState={"terminated": {"reason": "OOMKilled"}})

        assert parse_pod_event({"object": obj}, "api").reason == "OOMKilled"

    def test_deleted_and_terminating(self) -> None:
        obj = pod_object()
        obj["metadata"]["deletionTimestamp"] = "2024-05-01T10:00:00Z"

        event = parse_pod_event({"type": "DELETED", "object": obj}, "api")

        assert event.deleted
        assert event.terminating

    def test_other_container_status_ignored(self) -> None:
        obj = pod_object()

        event = parse_pod_event({"type": "ADDED", "object": obj}, "proxy")

        assert event.ready is False
        assert event.image == "gcr.io/p/proxy:1"

    def test_non_pod_objects(self) -> None:
        assert parse_pod_event({"type": "BOOKMARK", "object": {"kind": "Status"}}, "api") is None
        assert parse_pod_event({"object": {"kind": "Pod", "metadata": {}}}, "api") is None


class TestIterJsonObjects:
    def test_pretty_printed_stream(self) -> None:
        lines = ['{\n', '  "type": "ADDED",\n', '  "object": {}\n', '}\n', '{"type": "DELETED"}\n']

        assert [o["type"] for o in iter_json_objects(lines)] == ["ADDED", "DELETED"]

    def test_partial_object_is_held_back(self) -> None:
        assert list(iter_json_objects(['{"type": "ADDED",\n'])) == []


class TestParseLogLine:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("plain text line", (None, None, "plain text line")),
            ('{"level": "warn", "msg": "slow query", "time": "2024-05-01T10:00:00Z"}',
             ("WARN", "2024-05-01T10:00:00Z", "slow query")),
            ('{"severity": "ERROR", "textPayload": "boom"}', ("ERROR", None, "boom")),
            ('{"fields": {"message": "nested"}}', (None, None, "nested")),
            ('{"no_message": true}', (None, None, '{"no_message": true}')),
            ("{not json", (None, None, "{not json")),
            ("[1, 2]", (None, None, "[1, 2]")),
        ],
    )
    def test_shapes(self, raw: str, expected: tuple) -> None:
        assert parse_log_line(raw) == expected

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("2024-05-01T10:11:12.123456789Z listening on :8080",
             (None, "2024-05-01T10:11:12.123456789Z", "listening on :8080")),
            ("2024-05-01T10:11:12+02:00 ready", (None, "2024-05-01T10:11:12+02:00", "ready")),
            ('2024-05-01T10:11:12Z {"level": "info", "msg": "up"}',
             ("INFO", "2024-05-01T10:11:12Z", "up")),
            ('2024-05-01T10:11:12Z {"msg": "up", "time": "2024-05-01T09:00:00Z"}',
             (None, "2024-05-01T09:00:00Z", "up")),
            ("2024-01-02 listening on :8080", (None, None, "2024-01-02 listening on :8080")),
        ],
    )
    def test_kubectl_timestamp_prefix(self, raw: str, expected: tuple) -> None:
        """The stamp kubectl prepends is used unless the payload carries its own."""
        assert parse_log_line(raw) == expected

    def test_plain_line_shows_its_time(self) -> None:
        level, timestamp, message = parse_log_line("2024-05-01T10:11:12.5Z cache warmed")
        event = LogEvent(LogSide.NEW, "api-7d9f8-x2k4q", message=message,
                         level=level, timestamp=timestamp)

        assert format_log_event(event, color=False) == "[x2k4q] 10:11:12 INFO cache warmed"


class TestFormatters:
    def test_format_table(self) -> None:
        table = format_table([["staging", "no"], ["production", "yes"]], ["NAME", "PROTECTED"])

        assert table.splitlines() == [
            "NAME        PROTECTED",
            "---------------------",
            "staging     no",
            "production  yes",
        ]

    def test_format_table_empty(self) -> None:
        assert format_table([], ["NAME"]) == ""

    @pytest.mark.parametrize(
        ("delta", "expected"),
        [
            (timedelta(days=3, hours=5), "3d ago"),
            (timedelta(hours=2, minutes=59), "2h ago"),
            (timedelta(minutes=1), "1m ago"),
            (timedelta(seconds=59), "just now"),
        ],
    )
    def test_format_age(self, delta: timedelta, expected: str) -> None:
        assert format_age(delta) == expected

    def test_format_since(self) -> None:
        now = datetime(2024, 5, 3, 12, 0, tzinfo=timezone.utc)

        assert format_since(parse_timestamp("2024-05-03T09:30:00Z"), now=now) == "2h ago"

    def test_log_line(self) -> None:
        event = LogEvent(LogSide.NEW, "api-7d9f8-x2k4q", message="ready",
                         level="INFO", timestamp="2024-05-01T10:11:12.345Z")

        assert format_log_event(event, color=False) == "[x2k4q] 10:11:12 INFO ready"

    def test_markers(self) -> None:
        dropped = LogEvent(LogSide.OLD, "api-old-abcde", LogKind.DROPPED, dropped=12)
        closed = LogEvent(LogSide.OLD, "api-old-abcde", LogKind.CLOSED)

        assert format_log_event(dropped, color=False) == "[abcde] ... 12 line(s) dropped ..."
        assert format_log_event(closed, color=False) == "[abcde] -- log stream closed --"


class TestValidators:
    def test_resource_names(self) -> None:
        assert validate_resource_name("payment-service") == (True, None)
        assert validate_resource_name("Payment")[0] is False
        assert validate_resource_name("payment-")[0] is False
        assert validate_resource_name("")[0] is False

    @pytest.mark.parametrize("tag", ["v1.2.3", "latest", "2024_05_01-abc123"])
    def test_valid_tags(self, tag: str) -> None:
        assert validate_image_tag(tag) == (True, None)

    @pytest.mark.parametrize("tag", ["", "-v1", "v1:2", "a" * 129, "v1 2"])
    def test_invalid_tags(self, tag: str) -> None:
        assert validate_image_tag(tag)[0] is False

    def test_label_selector(self) -> None:
        assert validate_label_selector("app=api,tier=web") == (True, None)
        assert validate_label_selector("")[0] is False
        assert validate_label_selector("app")[0] is False
