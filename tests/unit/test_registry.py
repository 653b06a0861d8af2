"""Unit tests for gcloud image listing."""

from __future__ import annotations

import json
import subprocess
from datetime import datetime, timezone

import pytest

from davit.core.errors import RegistryError
from davit.deploy.registry import RegistryClient, parse_records

BASE = "europe-docker.pkg.dev/my-project/apps/payment-service"

RECORDS = [
    {
        "package": BASE,
        "version": "sha256:aaaaaaa1111111111111111111111111",
        "tags": "v1.4.0",
        "updateTime": "2024-05-01T10:00:00.123456789Z",
    },
    {
        "package": BASE,
        "version": "sha256:bbbbbbb2222222222222222222222222",
        "tags": "v1.5.0,latest",
        "updateTime": "2024-05-03T09:30:00Z",
    },
    {
        "package": BASE,
        "version": "sha256:ccccccc3333333333333333333333333",
        "tags": "",
        "updateTime": "2024-05-04T00:00:00Z",
    },
]


class FakeRunner:
    def __init__(self, stdout: str = "[]", returncode: int = 0, stderr: str = "") -> None:
        self.stdout = stdout
        self.returncode = returncode
        self.stderr = stderr
        self.commands: list[list[str]] = []

    def __call__(self, cmd, **kwargs) -> subprocess.CompletedProcess:
        self.commands.append(cmd)
        return subprocess.CompletedProcess(cmd, self.returncode, self.stdout, self.stderr)


class TestParseRecords:
    """Tests for turning gcloud records into candidates."""

    def test_newest_first_one_per_tag(self) -> None:
        candidates = parse_records(RECORDS, BASE)

        assert [c.tag for c in candidates] == ["v1.5.0", "latest", "v1.4.0"]
        assert candidates[0].digest == "bbbbbbb"
        assert candidates[0].reference == f"{BASE}:v1.5.0"
        assert candidates[0].updated == datetime(2024, 5, 3, 9, 30, tzinfo=timezone.utc)

    def test_untagged_images_skipped(self) -> None:
        candidates = parse_records(RECORDS, BASE)

        assert all(c.digest != "ccccccc" for c in candidates)

    def test_name_form_and_tag_list(self) -> None:
        """Older listings give a full name and a list of tags."""
        records = [{
            "name": f"{BASE}@sha256:ddddddd4444444444444444444444444",
            "tags": ["v2"],
            "updateTime": "2024-06-01T00:00:00Z",
        }]

        candidate = parse_records(records, "ignored")[0]

        assert candidate.registry_path == BASE
        assert candidate.digest == "ddddddd"

    def test_not_a_list(self) -> None:
        with pytest.raises(RegistryError):
            parse_records({"images": []}, BASE)

    def test_bad_timestamp(self) -> None:
        with pytest.raises(RegistryError):
            parse_records([{"package": BASE, "tags": "v1", "updateTime": "yesterday"}], BASE)


class TestRegistryClient:
    """Tests for the gcloud invocation."""

    def test_lists_by_image_base(self) -> None:
        runner = FakeRunner(stdout=json.dumps(RECORDS))
        client = RegistryClient(runner=runner)

        candidates = client.list_images(f"{BASE}:v1.4.0")

        assert len(candidates) == 3
        assert runner.commands == [[
            "gcloud", "artifacts", "docker", "images", "list", BASE,
            "--include-tags", "--format=json", "--sort-by=~updateTime",
        ]]

    def test_command_failure(self) -> None:
        client = RegistryClient(runner=FakeRunner(returncode=1, stderr="PERMISSION_DENIED\n"))

        with pytest.raises(RegistryError, match="PERMISSION_DENIED"):
            client.list_images(f"{BASE}:v1")

    def test_invalid_json(self) -> None:
        client = RegistryClient(runner=FakeRunner(stdout="not json"))

        with pytest.raises(RegistryError, match="parse"):
            client.list_images(f"{BASE}:v1")

    def test_gcloud_missing(self) -> None:
        def runner(cmd, **kwargs):
            raise FileNotFoundError("gcloud")

        with pytest.raises(RegistryError, match="gcloud"):
            RegistryClient(runner=runner).list_images(f"{BASE}:v1")

    def test_find_tag_is_exact(self) -> None:
        client = RegistryClient(runner=FakeRunner())
        candidates = parse_records(RECORDS, BASE)

        assert client.find_tag(candidates, "v1.4.0").digest == "aaaaaaa"
        assert client.find_tag(candidates, "v1.4") is None
