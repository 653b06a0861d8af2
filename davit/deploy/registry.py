"""Image listing through gcloud Artifact Registry"""
import json
import subprocess
from typing import Any, Callable, List, Optional

from davit.core.errors import RegistryError
from davit.core.logger import Logger
from davit.deploy.models import ImageCandidate
from davit.utils.parsers import image_base, parse_timestamp, short_digest

Runner = Callable[..., subprocess.CompletedProcess]


def parse_records(records: Any, registry_path: str) -> List[ImageCandidate]:
    """
    Turn gcloud image records into candidates, newest first

    Each record has 'tags' (list or comma-separated string), 'updateTime'
    and either 'name' ('<path>@sha256:<digest>') or 'package' plus
    'version'. Untagged images are skipped and
    a record with several tags yields one candidate per tag.
    """
    if not isinstance(records, list):
        raise RegistryError("Registry listing is not a JSON array")

    candidates = []
    for record in records:
        if not isinstance(record, dict):
            raise RegistryError(f"Unexpected registry record: {record!r}")

        tags = record.get("tags") or []
        if isinstance(tags, str):
            tags = [t.strip() for t in tags.split(",") if t.strip()]

        if not tags:
            continue

        try:
            updated = parse_timestamp(str(record.get("updateTime", "")))
        except ValueError as e:
            raise RegistryError(
                f"Bad updateTime in registry record {record.get('name')}: {e}") from e

        # Artifact Registry reports package + version, older listings a full name
        name = str(record.get("name") or "")
        if record.get("package"):
            name = f"{record['package']}@{record.get('version', '')}"
        digest = short_digest(name)
        path = image_base(name) if name else registry_path
        for tag in tags:
            candidates.append(ImageCandidate(
                registry_path=path or registry_path,
                tag=tag,
                digest=digest,
                updated=updated,
            ))

    candidates.sort(key=lambda c: c.updated, reverse=True)
    return candidates


class RegistryClient:
    """Lists image tags for a service's image path"""

    def __init__(self, runner: Runner = subprocess.run):
        self.runner = runner

    def list_images(self, image: str) -> List[ImageCandidate]:
        base = image_base(image)
        cmd = [
            "gcloud", "artifacts", "docker", "images", "list", base,
            "--include-tags", "--format=json", "--sort-by=~updateTime",
        ]

        Logger.verbose_log(f"Running: {' '.join(cmd)}")

        try:
            result = self.runner(cmd, capture_output=True, text=True, check=False)
        except FileNotFoundError as e:
            raise RegistryError(
                "Failed to execute gcloud. Is gcloud installed and in PATH?") from e

        if result.returncode != 0:
            raise RegistryError(f"gcloud command failed: {result.stderr.strip()}")

        try:
            records = json.loads(result.stdout or "[]")
        except json.JSONDecodeError as e:
            raise RegistryError(f"Failed to parse gcloud JSON output: {e}") from e

        return parse_records(records, base)

    def find_tag(self, candidates: List[ImageCandidate], tag: str) -> Optional[ImageCandidate]:
        for candidate in candidates:
            if candidate.tag == tag:
                return candidate
        return None
